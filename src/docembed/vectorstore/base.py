from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from docembed.types import Point, ScoredPoint


class VectorStore(Protocol):
    """Interface for vector stores that accept point upserts and nearest-neighbour queries."""

    def upsert(self, points: Iterable[Point]) -> int:
        """Insert or replace points by id. Returns the number of points written."""

    def query(
        self,
        vector: list[float],
        *,
        limit: int = 5,
        payload_filter: Mapping[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        """Return up to `limit` closest points whose payload matches every filter key."""
