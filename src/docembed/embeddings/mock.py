from __future__ import annotations

import hashlib
from typing import Sequence

import numpy as np

from docembed.embeddings.base import EmbeddingProvider


class HashEmbeddingClient(EmbeddingProvider):
    """
    Deterministic embeddings derived from SHA-256 digests.

    Identical texts always map to the same unit vector, which is enough for offline runs and
    tests that need stable nearest-neighbour results without a model.
    """

    def __init__(self, dimension: int = 64) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        rounds = -(-self._dimension // 32)
        digests = b"".join(
            hashlib.sha256(f"{counter}:{text}".encode("utf-8")).digest() for counter in range(rounds)
        )
        # Map each byte from [0, 255] onto [-1, 1].
        vector = np.frombuffer(digests, dtype=np.uint8)[: self._dimension] / 127.5 - 1.0
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector.tolist()
        return (vector / norm).tolist()
