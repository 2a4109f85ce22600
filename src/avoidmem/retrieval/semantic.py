"""Cosine-similarity search over stored memory embeddings."""

from __future__ import annotations

import numpy as np

from avoidmem.embeddings.service import EmbeddingService, blob_to_vector
from avoidmem.storage.base import StoragePort
from avoidmem.types import SimilarMemory


_BLOB_TYPES = (bytes, bytearray, memoryview)


def _as_vector(value: bytes | np.ndarray) -> np.ndarray | None:
    """Float64 view of a vector, or None for a blob torn mid-float."""
    if isinstance(value, _BLOB_TYPES):
        blob = bytes(value)
        if len(blob) % 4:
            return None
        return blob_to_vector(blob).astype(np.float64)
    return np.asarray(value, dtype=np.float64).reshape(-1)


def cosine_similarity(a: bytes | np.ndarray, b: bytes | np.ndarray) -> float:
    """Cosine of the angle between two vectors, in [-1, 1].

    Mismatched lengths and zero vectors score 0.0 instead of raising.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va is None or vb is None or va.shape != vb.shape:
        return 0.0
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


async def search_similar_memories(
    store: StoragePort,
    service: EmbeddingService,
    query_text: str,
    limit: int = 10,
    min_similarity: float = 0.3,
) -> list[SimilarMemory]:
    """Rank embedded memories by similarity to ``query_text``.

    Embedding errors propagate to the caller.
    """
    query = await service.embed(query_text)
    candidates = store.get_memories_with_embeddings()
    if not candidates:
        return []

    scored: list[SimilarMemory] = []
    for memory in candidates:
        if memory.embedding is None:
            continue
        similarity = cosine_similarity(query, memory.embedding)
        if similarity >= min_similarity:
            scored.append(SimilarMemory(memory=memory, similarity=similarity))
    scored.sort(key=lambda s: s.similarity, reverse=True)
    return scored[:max(0, limit)]
