from .base import VectorStore
from .qdrant import QdrantVectorStore
from .sql import SqlVectorStore

__all__ = ["QdrantVectorStore", "SqlVectorStore", "VectorStore"]
