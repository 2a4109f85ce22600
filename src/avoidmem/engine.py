"""Memory engine: wires configuration, storage and embeddings together."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from avoidmem.config import Config
from avoidmem.context.builder import ContextOptions, build_memory_context_detailed
from avoidmem.embeddings.backends import EmbeddingBackend, create_embedder
from avoidmem.embeddings.service import EmbeddingService
from avoidmem.patterns.analyzer import analyze_patterns
from avoidmem.patterns.consolidation import consolidate_memories, should_consolidate
from avoidmem.retrieval.decay import get_top_memories, half_life_days
from avoidmem.retrieval.keyword import extract_keywords
from avoidmem.retrieval.semantic import search_similar_memories
from avoidmem.storage.base import StoragePort
from avoidmem.storage.sqlite_store import SQLiteStore
from avoidmem.types import (
    BackfillResult,
    ConsolidationResult,
    DecayOptions,
    Memory,
    MemoryContext,
    MemoryType,
    PatternAnalysis,
    Session,
    SessionStatus,
    SimilarMemory,
    StoredMemory,
)
from avoidmem.writer import backfill_embeddings, store_memory


class MemoryEngine:
    """Owns one storage handle and one embedding service.

    Consolidation runs started through the same engine are serialized.
    Separate engines (or processes) sharing a database are not coordinated
    beyond the per-session-count guard in ``consolidate_memories``.
    """

    def __init__(
        self,
        config: Config | None = None,
        store: StoragePort | None = None,
        embedder: EmbeddingBackend | None = None,
    ) -> None:
        self.config = config or Config()
        if store is None:
            self.config.ensure_dirs()
            store = SQLiteStore(self.config.db_path)
        self.store = store
        self.embedder = embedder or create_embedder(self.config.embedding)
        self.embeddings = EmbeddingService(self.embedder, dims=self.config.embedding.embedding_dims)
        self._consolidation_lock = asyncio.Lock()

    # --- Sessions ---

    def start_session(self, task: str | None = None) -> Session:
        return self.store.create_session(task=task)

    def finish_session(
        self,
        session_id: str,
        status: SessionStatus | str = SessionStatus.COMPLETED,
        avoidance_type: str | None = None,
        timer_completed: bool = False,
    ) -> None:
        updates: dict[str, Any] = {"status": SessionStatus(status), "timer_completed": timer_completed}
        if avoidance_type is not None:
            updates["avoidance_type"] = avoidance_type
        self.store.update_session(session_id, **updates)

    # --- Memories ---

    async def remember(
        self,
        content: str,
        type: MemoryType | str = MemoryType.OBSERVATION,
        session_id: str | None = None,
        avoidance_type: str | None = None,
        importance: float = 1.0,
        tags: list[str] | None = None,
    ) -> StoredMemory:
        return await store_memory(
            self.store,
            self.embeddings,
            content=content,
            type=type,
            session_id=session_id,
            avoidance_type=avoidance_type,
            importance=importance,
            tags=tags,
            max_keyword_tags=self.config.context.max_keyword_tags,
        )

    def top_memories(
        self,
        limit: int = 10,
        task_text: str | None = None,
        tags: list[str] | None = None,
        avoidance_type: str | None = None,
    ) -> list[Memory]:
        options = DecayOptions(
            match_tags=list(tags or []),
            match_keywords=extract_keywords(task_text) if task_text else [],
            match_avoidance_type=avoidance_type,
        )
        return get_top_memories(self.store, limit, options, config=self.config.decay)

    async def similar(self, query: str, limit: int = 10, min_similarity: float = 0.3) -> list[SimilarMemory]:
        return await search_similar_memories(
            self.store, self.embeddings, query, limit=limit, min_similarity=min_similarity
        )

    # --- Patterns ---

    def analyze(self) -> PatternAnalysis:
        return analyze_patterns(self.store)

    def should_consolidate(self) -> bool:
        return should_consolidate(self.store, self.config.consolidation)

    async def consolidate(self, force: bool = False) -> ConsolidationResult:
        async with self._consolidation_lock:
            return consolidate_memories(self.store, force=force, config=self.config.consolidation)

    # --- Context ---

    async def context_detailed(
        self,
        task_text: str | None = None,
        tags: list[str] | None = None,
        avoidance_type: str | None = None,
    ) -> MemoryContext:
        options = ContextOptions(
            task_text=task_text,
            match_tags=list(tags or []),
            match_avoidance_type=avoidance_type,
        )
        async with self._consolidation_lock:
            return await build_memory_context_detailed(
                self.store, self.embeddings, options, config=self.config
            )

    async def context(
        self,
        task_text: str | None = None,
        tags: list[str] | None = None,
        avoidance_type: str | None = None,
    ) -> str:
        result = await self.context_detailed(task_text, tags, avoidance_type)
        return result.text

    async def backfill(self, batch_size: int = 50) -> BackfillResult:
        return await backfill_embeddings(self.store, self.embeddings, batch_size=batch_size)

    def status(self) -> dict[str, Any]:
        memories = self.store.get_all_memories()
        latest = self.store.get_latest_pattern_summary()
        return {
            "sessions": self.store.get_session_count(),
            "completed_sessions": self.store.get_completed_session_count(),
            "memories": len(memories),
            "embedded_memories": sum(1 for m in memories if m.embedding is not None),
            "latest_summary_at": latest.created_at.isoformat() if latest else None,
            "embeddings_available": self.embeddings.is_available(),
            "consolidation_due": self.should_consolidate(),
            "half_life_days": half_life_days(self.config.decay),
        }

    async def close(self) -> None:
        await self.embeddings.close()
        self.store.close()


def open_memory_engine(data_dir: str | None = None, config: Config | None = None) -> MemoryEngine:
    """Build an engine over the SQLite store under ``data_dir``."""
    config = config or Config()
    if data_dir:
        config = config.model_copy(update={"data_dir": Path(data_dir)})
    return MemoryEngine(config)
