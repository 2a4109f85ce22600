"""Core data types."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from avoidmem.utils import utcnow


def _new_id() -> str:
    return uuid.uuid4().hex


class MemoryType(str, Enum):
    OBSERVATION = "observation"
    PATTERN = "pattern"
    INSIGHT = "insight"
    SUMMARY = "summary"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


AVOIDANCE_TYPES = (
    "Ambiguity",
    "Fear",
    "Perfectionism",
    "Boredom",
    "Energy mismatch",
    "Social discomfort",
)


class Memory(BaseModel):
    """An atomic fact the coach may recall later."""

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)
    session_id: str | None = None
    type: MemoryType
    content: str
    avoidance_type: str | None = None
    importance: float = Field(default=1.0, ge=0.0)
    access_count: int = Field(default=0, ge=0)
    last_accessed_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    embedding: bytes | None = None


class PatternSummary(BaseModel):
    """Compaction artifact written by consolidation. Never updated."""

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)
    summary_text: str
    data: dict[str, Any] = Field(default_factory=dict)


class AgenticTurn(BaseModel):
    role: str  # ai | user
    action: str | None = None
    message: str
    timestamp: str


class Session(BaseModel):
    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    task: str | None = None
    avoidance_type: str | None = None
    explanation: str | None = None
    timer_started: bool = False
    timer_completed: bool = False
    agentic_log: list[AgenticTurn] = Field(default_factory=list)


class PatternAnalysis(BaseModel):
    total_sessions: int = 0
    completed_sessions: int = 0
    timer_completion_rate: float = 0.0
    most_common_type: str | None = None
    type_distribution: dict[str, int] = Field(default_factory=dict)
    type_percentages: dict[str, int] = Field(default_factory=dict)


class DecayOptions(BaseModel):
    """Relevance hints for decay scoring."""

    match_tags: list[str] = Field(default_factory=list)
    match_keywords: list[str] = Field(default_factory=list)
    match_avoidance_type: str | None = None


class SimilarMemory(BaseModel):
    memory: Memory
    similarity: float


class EmbeddingStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class EmbeddingOutcome(BaseModel):
    """Result of a best-effort embedding attempt.

    ``embedding`` is None whenever ``status`` is not OK.
    """

    status: EmbeddingStatus
    embedding: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == EmbeddingStatus.OK


class StoredMemory(BaseModel):
    memory: Memory
    embedding: EmbeddingOutcome


class BackfillResult(BaseModel):
    embedded: int = 0
    failed: int = 0
    remaining: int = 0


class ConsolidationResult(BaseModel):
    performed: bool
    reason: str
    summary: PatternSummary | None = None
    consolidated_ids: list[str] = Field(default_factory=list)


class MemoryContext(BaseModel):
    """Prompt context plus what went into it."""

    text: str
    sections: list[str] = Field(default_factory=list)
    top_memories: list[Memory] = Field(default_factory=list)
    similar_memories: list[SimilarMemory] = Field(default_factory=list)
    semantic_error: str | None = None
    consolidation: ConsolidationResult | None = None
