"""In-process storage backing (ephemeral engines and tests)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from avoidmem.exceptions import StorageError
from avoidmem.types import AgenticTurn, Memory, MemoryType, PatternSummary, Session, SessionStatus
from avoidmem.utils import ensure_utc, utcnow

_SESSION_FIELDS = {
    "status",
    "task",
    "avoidance_type",
    "explanation",
    "timer_started",
    "timer_completed",
    "agentic_log",
}


class InMemoryStore:
    """Storage port over plain lists, ordered the same way as SQLiteStore."""

    def __init__(self) -> None:
        self._sessions: list[Session] = []
        self._memories: list[Memory] = []
        self._summaries: list[PatternSummary] = []
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("store is closed")

    def close(self) -> None:
        self._closed = True

    # --- Sessions ---

    def create_session(self, task: str | None = None, created_at: datetime | None = None) -> Session:
        self._check_open()
        session = Session(task=task)
        if created_at is not None:
            session.created_at = session.updated_at = ensure_utc(created_at)
        self._sessions.append(session)
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> Session | None:
        self._check_open()
        for session in self._sessions:
            if session.id == session_id:
                return session.model_copy(deep=True)
        return None

    def get_in_progress_session(self) -> Session | None:
        self._check_open()
        active = [s for s in self._sessions if s.status == SessionStatus.IN_PROGRESS]
        if not active:
            return None
        return max(active, key=lambda s: s.updated_at).model_copy(deep=True)

    def update_session(self, session_id: str, **updates: Any) -> None:
        self._check_open()
        unknown = set(updates) - _SESSION_FIELDS
        if unknown:
            raise StorageError(f"Unknown session fields: {sorted(unknown)}")
        for session in self._sessions:
            if session.id != session_id:
                continue
            for key, value in updates.items():
                if key == "status":
                    value = SessionStatus(value)
                elif key in ("timer_started", "timer_completed"):
                    value = bool(value)
                elif key == "agentic_log":
                    value = [AgenticTurn.model_validate(t) for t in value]
                setattr(session, key, value)
            session.updated_at = utcnow()
            return

    def get_session_count(self) -> int:
        self._check_open()
        return len(self._sessions)

    def get_completed_session_count(self) -> int:
        self._check_open()
        return sum(1 for s in self._sessions if s.status == SessionStatus.COMPLETED)

    def get_timer_completion_rate(self) -> float:
        self._check_open()
        completed = [s for s in self._sessions if s.status == SessionStatus.COMPLETED]
        if not completed:
            return 0.0
        return sum(1 for s in completed if s.timer_completed) / len(completed)

    def get_avoidance_type_stats(self) -> dict[str, int]:
        self._check_open()
        counts: dict[str, int] = {}
        for session in self._sessions:
            if session.avoidance_type is not None:
                counts[session.avoidance_type] = counts.get(session.avoidance_type, 0) + 1
        # sorted() is stable, so equal counts keep first-seen order
        return dict(sorted(counts.items(), key=lambda kv: kv[1], reverse=True))

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
    ) -> Memory:
        self._check_open()
        memory = Memory(
            type=MemoryType(type),
            content=content,
            session_id=session_id,
            avoidance_type=avoidance_type,
            importance=importance,
            tags=list(tags or []),
            embedding=embedding,
        )
        if created_at is not None:
            memory.created_at = ensure_utc(created_at)
        self._memories.append(memory)
        return memory.model_copy(deep=True)

    def _find(self, memory_id: str) -> Memory | None:
        for memory in self._memories:
            if memory.id == memory_id:
                return memory
        return None

    def _newest_first(self, memories: list[Memory]) -> list[Memory]:
        # Reverse insertion order first so equal timestamps favor the later insert.
        ordered = sorted(reversed(memories), key=lambda m: m.created_at, reverse=True)
        return [m.model_copy(deep=True) for m in ordered]

    def get_memory(self, memory_id: str) -> Memory | None:
        self._check_open()
        memory = self._find(memory_id)
        return memory.model_copy(deep=True) if memory else None

    def get_all_memories(self) -> list[Memory]:
        self._check_open()
        return self._newest_first(self._memories)

    def get_memories_with_embeddings(self) -> list[Memory]:
        self._check_open()
        return self._newest_first([m for m in self._memories if m.embedding is not None])

    def count_memories(self) -> int:
        self._check_open()
        return len(self._memories)

    def increment_memory_access(self, memory_id: str, accessed_at: datetime | None = None) -> None:
        self._check_open()
        memory = self._find(memory_id)
        if memory is not None:
            memory.access_count += 1
            memory.last_accessed_at = ensure_utc(accessed_at) if accessed_at else utcnow()

    def reduce_memory_importance(self, memory_id: str, factor: float) -> None:
        self._check_open()
        memory = self._find(memory_id)
        if memory is not None:
            memory.importance = memory.importance * factor

    def update_memory_embedding(self, memory_id: str, embedding: bytes) -> None:
        self._check_open()
        memory = self._find(memory_id)
        if memory is not None:
            memory.embedding = embedding

    # --- Pattern summaries ---

    def create_pattern_summary(self, summary_text: str, data: dict[str, Any]) -> PatternSummary:
        self._check_open()
        summary = PatternSummary(summary_text=summary_text, data=dict(data))
        self._summaries.append(summary)
        return summary.model_copy(deep=True)

    def get_latest_pattern_summary(self) -> PatternSummary | None:
        self._check_open()
        if not self._summaries:
            return None
        latest = max(reversed(self._summaries), key=lambda s: s.created_at)
        return latest.model_copy(deep=True)
