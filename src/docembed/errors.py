from __future__ import annotations

from pathlib import Path


class DocembedError(Exception):
    """Base class for errors surfaced to callers of the toolkit."""


class LoaderError(DocembedError):
    """Pattern-level failure raised while resolving a glob pattern."""

    def __init__(self, pattern: str, message: str) -> None:
        super().__init__(message)
        self.pattern = pattern


class InvalidPattern(LoaderError):
    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(pattern, f"Invalid glob pattern {pattern!r}: {reason}")
        self.reason = reason


class IoFailure(LoaderError):
    def __init__(self, pattern: str, path: Path, cause: OSError) -> None:
        super().__init__(pattern, f"Unable to enumerate {path} for pattern {pattern!r}: {cause}")
        self.path = path
        self.cause = cause


class EmbeddingError(DocembedError):
    """The embedding provider failed for a whole batch."""


class VectorStoreError(DocembedError):
    """A vector store request failed or returned an unexpected shape."""


class IngestionError(DocembedError):
    """Raised by strict ingestion runs when a matched file cannot be read."""


class StorageError(DocembedError):
    """The database URL is unusable or the schema could not be created."""
