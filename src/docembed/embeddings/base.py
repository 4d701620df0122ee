from __future__ import annotations

from typing import Protocol, Sequence

from docembed.errors import EmbeddingError
from docembed.types import Document, EmbeddedDocument


class EmbeddingProvider(Protocol):
    """Interface for turning text into vectors."""

    @property
    def dimension(self) -> int | None:
        """Vector length when known up front, otherwise None."""

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""

    def embed_documents(self, documents: Sequence[Document]) -> list[EmbeddedDocument]:
        vectors = self.embed_texts([document.text for document in documents])
        if len(vectors) != len(documents):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(documents)} documents"
            )
        return [
            EmbeddedDocument(document=document, vectors=[vector])
            for document, vector in zip(documents, vectors)
        ]


def build_embeddings(
    provider: EmbeddingProvider,
    documents: Sequence[Document],
) -> list[EmbeddedDocument]:
    """Embed a batch of documents, rejecting batches that could not be indexed unambiguously."""

    if not documents:
        raise ValueError("At least one document is required to build embeddings")
    seen: set[str] = set()
    for document in documents:
        if document.id in seen:
            raise ValueError(f"Duplicate document id in batch: {document.id}")
        seen.add(document.id)
    return provider.embed_documents(documents)
