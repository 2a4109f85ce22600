"""Memory creation with auto-tagging and best-effort embeddings."""

from __future__ import annotations

import logging

from avoidmem.embeddings.service import EmbeddingService
from avoidmem.retrieval.keyword import extract_keywords
from avoidmem.storage.base import StoragePort
from avoidmem.types import BackfillResult, EmbeddingOutcome, EmbeddingStatus, MemoryType, StoredMemory
from avoidmem.utils import unique

logger = logging.getLogger(__name__)

MAX_KEYWORD_TAGS = 10


async def store_memory(
    store: StoragePort,
    service: EmbeddingService | None,
    *,
    content: str,
    type: MemoryType | str,
    session_id: str | None = None,
    avoidance_type: str | None = None,
    importance: float = 1.0,
    tags: list[str] | None = None,
    max_keyword_tags: int = MAX_KEYWORD_TAGS,
) -> StoredMemory:
    """Persist a memory, merging extracted keywords into its tags.

    An unavailable or failing embedding provider never blocks the write;
    the memory is stored without a vector and the returned outcome says why.
    """
    all_tags = unique(list(tags or []) + extract_keywords(content)[:max_keyword_tags])

    if service is None:
        outcome = EmbeddingOutcome(status=EmbeddingStatus.UNAVAILABLE)
    else:
        outcome = await service.try_embed(content)

    memory = store.create_memory(
        type=type,
        content=content,
        session_id=session_id,
        avoidance_type=avoidance_type,
        importance=importance,
        tags=all_tags,
        embedding=outcome.embedding,
    )
    return StoredMemory(memory=memory, embedding=outcome)


async def backfill_embeddings(
    store: StoragePort,
    service: EmbeddingService,
    batch_size: int = 50,
) -> BackfillResult:
    """Embed up to ``batch_size`` memories that have no vector yet."""
    if not service.is_available():
        return BackfillResult()

    missing = [m for m in store.get_all_memories() if m.embedding is None]
    batch = missing[:max(0, batch_size)]

    result = BackfillResult(remaining=len(missing))
    for memory in batch:
        outcome = await service.try_embed(memory.content)
        if outcome.embedding is None:
            result.failed += 1
            continue
        store.update_memory_embedding(memory.id, outcome.embedding)
        result.embedded += 1
    result.remaining = len(missing) - result.embedded
    logger.info("Backfilled %d embeddings (%d failed, %d remaining)",
                result.embedded, result.failed, result.remaining)
    return result
