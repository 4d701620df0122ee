from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from docembed.errors import VectorStoreError
from docembed.storage import PointRecord
from docembed.types import Point, ScoredPoint
from docembed.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)


class SqlVectorStore(VectorStore):
    """
    Vector table kept in any SQLAlchemy database.

    Queries scan the whole collection and rank by cosine similarity, which is fine for the few
    thousand documents a local corpus usually holds.
    """

    def __init__(self, session_factory: sessionmaker, collection: str = "documents") -> None:
        self.session_factory = session_factory
        self.collection = collection

    def upsert(self, points: Iterable[Point]) -> int:
        written = 0
        with self.session_factory() as session:
            for point in points:
                if not point.vector:
                    raise VectorStoreError(f"Point {point.id} has an empty vector")
                session.merge(
                    PointRecord(
                        collection=self.collection,
                        id=str(point.id),
                        dimension=len(point.vector),
                        vector=[float(value) for value in point.vector],
                        payload_json=dict(point.payload),
                    )
                )
                written += 1
            session.commit()
        logger.info("Upserted points", extra={"collection": self.collection, "count": written})
        return written

    def query(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        payload_filter: Mapping[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        if limit < 1:
            return []
        with self.session_factory() as session:
            records = session.scalars(
                select(PointRecord).where(PointRecord.collection == self.collection)
            ).all()

        candidates = []
        for record in records:
            payload = record.payload_json or {}
            if payload_filter and any(payload.get(key) != value for key, value in payload_filter.items()):
                continue
            if record.dimension != len(vector):
                raise VectorStoreError(
                    f"Query vector has dimension {len(vector)}, "
                    f"collection {self.collection!r} stores {record.dimension}"
                )
            candidates.append((record.id, payload, record.vector))
        if not candidates:
            return []

        matrix = np.asarray([stored for _, _, stored in candidates], dtype=np.float64)
        scores = _cosine_scores(matrix, np.asarray(vector, dtype=np.float64))
        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            ScoredPoint(id=candidates[idx][0], score=float(scores[idx]), payload=candidates[idx][1])
            for idx in order
        ]

    def count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(
                select(func.count())
                .select_from(PointRecord)
                .where(PointRecord.collection == self.collection)
            )


def _cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of `query` against each row of `matrix`. Zero vectors score 0."""

    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    return np.divide(dots, denominators, out=np.zeros_like(dots), where=denominators > 0)
