"""Storage port shared by every backing store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from avoidmem.types import Memory, MemoryType, PatternSummary, Session


@runtime_checkable
class StoragePort(Protocol):
    """Operations the memory engine needs from persistence.

    Reads of memories are newest first. None of the read-then-write
    sequences built on top of this port are atomic.
    """

    # --- Memories ---

    def create_memory(
        self,
        *,
        type: MemoryType | str,
        content: str,
        session_id: str | None = None,
        avoidance_type: str | None = None,
        importance: float = 1.0,
        tags: list[str] | None = None,
        embedding: bytes | None = None,
        created_at: datetime | None = None,
    ) -> Memory: ...

    def get_memory(self, memory_id: str) -> Memory | None: ...

    def get_all_memories(self) -> list[Memory]: ...

    def get_memories_with_embeddings(self) -> list[Memory]: ...

    def count_memories(self) -> int: ...

    def increment_memory_access(self, memory_id: str, accessed_at: datetime | None = None) -> None: ...

    def reduce_memory_importance(self, memory_id: str, factor: float) -> None: ...

    def update_memory_embedding(self, memory_id: str, embedding: bytes) -> None: ...

    # --- Pattern summaries ---

    def create_pattern_summary(self, summary_text: str, data: dict[str, Any]) -> PatternSummary: ...

    def get_latest_pattern_summary(self) -> PatternSummary | None: ...

    # --- Sessions ---

    def create_session(self, task: str | None = None, created_at: datetime | None = None) -> Session: ...

    def get_session(self, session_id: str) -> Session | None: ...

    def get_in_progress_session(self) -> Session | None: ...

    def update_session(self, session_id: str, **updates: Any) -> None: ...

    def get_session_count(self) -> int: ...

    def get_completed_session_count(self) -> int: ...

    def get_timer_completion_rate(self) -> float: ...

    def get_avoidance_type_stats(self) -> dict[str, int]: ...

    def close(self) -> None: ...
