from __future__ import annotations

import logging
import random
import time
from typing import Any, Sequence

import httpx

from docembed.embeddings.base import EmbeddingProvider
from docembed.errors import EmbeddingError

logger = logging.getLogger(__name__)
_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

TEXT_EMBEDDING_ADA_002 = "text-embedding-ada-002"
TEXT_EMBEDDING_3_SMALL = "text-embedding-3-small"
TEXT_EMBEDDING_3_LARGE = "text-embedding-3-large"

_KNOWN_DIMENSIONS = {
    TEXT_EMBEDDING_ADA_002: 1536,
    TEXT_EMBEDDING_3_SMALL: 1536,
    TEXT_EMBEDDING_3_LARGE: 3072,
}


class OpenAIEmbeddingClient(EmbeddingProvider):
    """
    Client for OpenAI-compatible `/embeddings` endpoints.

    Inputs are sent in chunks of `batch_size`. Transient failures are retried with bounded
    backoff; anything else fails the whole call with `EmbeddingError`.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = TEXT_EMBEDDING_ADA_002,
        timeout: float = 30.0,
        user_agent: str = "docembed/0.1",
        batch_size: int = 64,
        max_retries: int = 4,
        backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 8.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("An OpenAI API key is required")
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        self.model = model
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._dimension = _KNOWN_DIMENSIONS.get(model)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {key}", "User-Agent": user_agent},
            timeout=timeout,
            transport=transport,
        )

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OpenAIEmbeddingClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = list(texts[start : start + self._batch_size])
            vectors.extend(self._embed_chunk(chunk))
        if vectors:
            self._dimension = len(vectors[0])
        return vectors

    def _embed_chunk(self, texts: list[str]) -> list[list[float]]:
        # The API rejects empty strings; a single space embeds as near-empty content.
        payload = {"model": self.model, "input": [text if text else " " for text in texts]}
        try:
            response = self._post_with_retry("/embeddings", payload)
        except httpx.HTTPStatusError as exc:
            raise EmbeddingError(
                f"Embedding request failed with status {exc.response.status_code}: "
                f"{_error_detail(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        try:
            body = response.json()
            data = body.get("data") if isinstance(body, dict) else None
            if not isinstance(data, list) or len(data) != len(texts):
                raise EmbeddingError(
                    f"Expected {len(texts)} embeddings, got {len(data) if isinstance(data, list) else 'none'}"
                )
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            vectors = [list(map(float, item["embedding"])) for item in ordered]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise EmbeddingError(f"Malformed embeddings response: {exc!r}") from exc
        logger.debug("Embedded chunk", extra={"model": self.model, "count": len(vectors)})
        return vectors

    def _post_with_retry(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        for attempt in range(self._max_retries + 1):
            try:
                response = self._client.post(url, json=payload)
                if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    wait_seconds = self._compute_backoff(attempt, response=response)
                    logger.warning(
                        "Retrying embedding request after retryable status",
                        extra={
                            "url": url,
                            "status_code": response.status_code,
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "wait_seconds": wait_seconds,
                        },
                    )
                    time.sleep(wait_seconds)
                    continue
                response.raise_for_status()
                return response
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt >= self._max_retries:
                    raise
                wait_seconds = self._compute_backoff(attempt)
                logger.warning(
                    "Retrying embedding request after transport failure",
                    extra={
                        "url": url,
                        "attempt": attempt + 1,
                        "max_retries": self._max_retries,
                        "wait_seconds": wait_seconds,
                        "error": str(exc),
                    },
                )
                time.sleep(wait_seconds)

        raise RuntimeError("Unreachable retry state while requesting embeddings")

    def _compute_backoff(
        self,
        attempt: int,
        *,
        response: httpx.Response | None = None,
    ) -> float:
        retry_after = response.headers.get("Retry-After") if response is not None else None
        if retry_after:
            try:
                wait = float(retry_after)
                return max(0.0, min(wait, self._max_backoff_seconds))
            except ValueError:
                pass
        expo = self._backoff_seconds * (2**attempt)
        jitter = random.uniform(0.0, self._backoff_seconds)
        return max(0.0, min(expo + jitter, self._max_backoff_seconds))


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text[:200]
