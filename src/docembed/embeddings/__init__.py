from .base import EmbeddingProvider, build_embeddings
from .http import TEXT_EMBEDDING_ADA_002, OpenAIEmbeddingClient
from .mock import HashEmbeddingClient

__all__ = [
    "EmbeddingProvider",
    "HashEmbeddingClient",
    "OpenAIEmbeddingClient",
    "TEXT_EMBEDDING_ADA_002",
    "build_embeddings",
]
