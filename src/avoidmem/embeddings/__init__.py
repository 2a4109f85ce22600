"""Embedding providers and the embedding service."""

from avoidmem.embeddings.backends import (
    EmbeddingBackend,
    HashEmbedder,
    OpenAIEmbedder,
    create_embedder,
)
from avoidmem.embeddings.service import (
    EMBEDDING_DIMENSIONS,
    EmbeddingService,
    blob_to_vector,
    vector_to_blob,
)

__all__ = [
    "EMBEDDING_DIMENSIONS",
    "EmbeddingBackend",
    "EmbeddingService",
    "HashEmbedder",
    "OpenAIEmbedder",
    "blob_to_vector",
    "create_embedder",
    "vector_to_blob",
]
