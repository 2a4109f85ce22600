"""avoid-memory exception hierarchy."""

from __future__ import annotations


class AvoidMemError(Exception):
    """Base class for all avoid-memory errors."""


class StorageError(AvoidMemError):
    """Raised by storage backends for contract violations (unknown fields, closed handles)."""


class EmbeddingError(AvoidMemError):
    """The embedding provider failed or returned an unusable vector."""


class EmbeddingUnavailableError(EmbeddingError):
    """No embedding credential is configured."""
