"""Load documents by glob pattern, embed them, and index the vectors."""

from importlib import metadata

from docembed.errors import (
    DocembedError,
    EmbeddingError,
    IngestionError,
    InvalidPattern,
    IoFailure,
    LoaderError,
    StorageError,
    VectorStoreError,
)
from docembed.loader import Content, Failure, FileLoader, FileReadResult

__all__ = [
    "Content",
    "DocembedError",
    "EmbeddingError",
    "Failure",
    "FileLoader",
    "FileReadResult",
    "IngestionError",
    "InvalidPattern",
    "IoFailure",
    "LoaderError",
    "StorageError",
    "VectorStoreError",
    "__version__",
]


def __getattr__(name: str) -> str:
    if name == "__version__":
        try:
            return metadata.version("docembed")
        except metadata.PackageNotFoundError:  # pragma: no cover - package not installed yet
            return "0.0.0"
    raise AttributeError(name)
