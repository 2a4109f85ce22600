"""Fixed-size text embeddings and their storage codec."""

from __future__ import annotations

import logging

import numpy as np

from avoidmem.embeddings.backends import EmbeddingBackend
from avoidmem.exceptions import EmbeddingError, EmbeddingUnavailableError
from avoidmem.types import EmbeddingOutcome, EmbeddingStatus

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1536

# Stored vectors are little-endian float32 regardless of host byte order.
_BLOB_DTYPE = np.dtype("<f4")


def vector_to_blob(vec: np.ndarray | list[float]) -> bytes:
    return np.asarray(vec, dtype=_BLOB_DTYPE).reshape(-1).tobytes()


def blob_to_vector(blob: bytes) -> np.ndarray:
    if len(blob) % _BLOB_DTYPE.itemsize:
        raise EmbeddingError(f"embedding blob length {len(blob)} is not a multiple of 4")
    return np.frombuffer(blob, dtype=_BLOB_DTYPE).astype(np.float32)


class EmbeddingService:
    """Wraps an embedding backend with a fixed output dimensionality.

    Callers check ``is_available()`` before relying on semantic features.
    ``embed``/``embed_blob`` raise on provider failure; ``try_embed`` returns
    the failure as an ``EmbeddingOutcome`` instead.
    """

    def __init__(self, backend: EmbeddingBackend, dims: int = EMBEDDING_DIMENSIONS) -> None:
        self.backend = backend
        self.dims = dims

    @property
    def blob_size(self) -> int:
        return self.dims * _BLOB_DTYPE.itemsize

    def is_available(self) -> bool:
        return bool(self.backend.available)

    async def embed(self, text: str) -> np.ndarray:
        if not self.is_available():
            raise EmbeddingUnavailableError("no embedding credential configured")
        vec = np.asarray(await self.backend.embed_single(text), dtype=np.float32).reshape(-1)
        if vec.shape[0] != self.dims:
            raise EmbeddingError(f"expected {self.dims} dimensions, got {vec.shape[0]}")
        return vec

    async def embed_blob(self, text: str) -> bytes:
        return vector_to_blob(await self.embed(text))

    async def try_embed(self, text: str) -> EmbeddingOutcome:
        if not self.is_available():
            return EmbeddingOutcome(status=EmbeddingStatus.UNAVAILABLE)
        try:
            blob = await self.embed_blob(text)
        except Exception as exc:
            logger.warning("Embedding generation failed, continuing without: %s", exc)
            return EmbeddingOutcome(status=EmbeddingStatus.FAILED, error=str(exc) or type(exc).__name__)
        return EmbeddingOutcome(status=EmbeddingStatus.OK, embedding=blob)

    async def close(self) -> None:
        await self.backend.close()
