from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping

import httpx

from docembed.errors import VectorStoreError
from docembed.types import Point, ScoredPoint
from docembed.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)

# Qdrant only accepts unsigned integers or UUIDs as point ids.
_POINT_NAMESPACE = uuid.UUID("6f1c7f36-3c4b-4f55-9a52-2f0f8d3e9c11")
DOCUMENT_ID_KEY = "document_id"


class QdrantVectorStore(VectorStore):
    """Vector store backed by a Qdrant collection, spoken to over its REST API."""

    def __init__(
        self,
        url: str,
        collection: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"api-key": api_key} if api_key else {}
        self.collection = collection
        self._client = httpx.Client(
            base_url=url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "QdrantVectorStore":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def ensure_collection(self, dimension: int, distance: str = "Cosine") -> bool:
        """Create the collection when missing. Returns True if it was created."""

        response = self._send("GET", f"/collections/{self.collection}", "inspect collection")
        if response.status_code == 200:
            return False
        if response.status_code != 404:
            _raise_for_status(response, "inspect collection")

        response = self._send(
            "PUT",
            f"/collections/{self.collection}",
            "create collection",
            json={"vectors": {"size": dimension, "distance": distance}},
        )
        _raise_for_status(response, "create collection")
        logger.info(
            "Created Qdrant collection",
            extra={"collection": self.collection, "dimension": dimension, "distance": distance},
        )
        return True

    def upsert(self, points: Iterable[Point]) -> int:
        body = [
            {
                "id": point_uuid(point.id),
                "vector": [float(value) for value in point.vector],
                "payload": {**dict(point.payload), DOCUMENT_ID_KEY: str(point.id)},
            }
            for point in points
        ]
        if not body:
            return 0
        response = self._send(
            "PUT",
            f"/collections/{self.collection}/points",
            "upsert points",
            params={"wait": "true"},
            json={"points": body},
        )
        _raise_for_status(response, "upsert points")
        logger.info("Upserted points", extra={"collection": self.collection, "count": len(body)})
        return len(body)

    def query(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        payload_filter: Mapping[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        request: dict[str, Any] = {
            "vector": [float(value) for value in vector],
            "limit": limit,
            "with_payload": True,
        }
        if payload_filter:
            request["filter"] = {
                "must": [{"key": key, "match": {"value": value}} for key, value in payload_filter.items()]
            }
        response = self._send(
            "POST", f"/collections/{self.collection}/points/search", "search points", json=request
        )
        _raise_for_status(response, "search points")

        try:
            body = response.json()
            result = body.get("result") if isinstance(body, dict) else None
            if not isinstance(result, list):
                raise VectorStoreError("Qdrant search response is missing a result list")
            hits = []
            for item in result:
                payload = dict(item.get("payload") or {})
                point_id = payload.pop(DOCUMENT_ID_KEY, None) or str(item.get("id"))
                hits.append(ScoredPoint(id=point_id, score=float(item.get("score", 0.0)), payload=payload))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise VectorStoreError(f"Malformed Qdrant search response: {exc!r}") from exc
        return hits

    def _send(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise VectorStoreError(f"Qdrant request to {action} failed: {exc}") from exc


def point_uuid(point_id: str) -> str:
    return str(uuid.uuid5(_POINT_NAMESPACE, str(point_id)))


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise VectorStoreError(
        f"Qdrant failed to {action} (status {response.status_code}): {response.text[:200]}"
    )
