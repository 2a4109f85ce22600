"""Prompt context assembly.

Section order and labels are relied on by prompt templates:

1. ``--- User History ---``
2. ``--- Consolidated Patterns ---``
3. ``--- Recent Memories (by relevance) ---``
4. ``--- Semantically Related Memories ---``

Empty sections are omitted; with nothing to say the builder returns
``FIRST_SESSION_CONTEXT``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel, Field

from avoidmem.config import Config
from avoidmem.embeddings.service import EmbeddingService
from avoidmem.patterns.analyzer import analyze_patterns
from avoidmem.patterns.consolidation import consolidate_memories, should_consolidate
from avoidmem.retrieval.decay import get_top_memories
from avoidmem.retrieval.keyword import extract_keywords
from avoidmem.retrieval.semantic import search_similar_memories
from avoidmem.storage.base import StoragePort
from avoidmem.types import ConsolidationResult, DecayOptions, Memory, MemoryContext, MemoryType, SimilarMemory
from avoidmem.utils import ensure_utc, format_date, round_half_up, utcnow

logger = logging.getLogger(__name__)

FIRST_SESSION_CONTEXT = "This is the user's first session. No prior history available."

HISTORY_HEADER = "--- User History ---"
PATTERNS_HEADER = "--- Consolidated Patterns ---"
RECENT_HEADER = "--- Recent Memories (by relevance) ---"
SEMANTIC_HEADER = "--- Semantically Related Memories ---"

_TYPE_PREFIX = {
    MemoryType.OBSERVATION: "Obs",
    MemoryType.INSIGHT: "Insight",
    MemoryType.PATTERN: "Pattern",
    MemoryType.SUMMARY: "Summary",
}


class ContextOptions(BaseModel):
    task_text: str | None = None
    match_tags: list[str] = Field(default_factory=list)
    match_avoidance_type: str | None = None


def _history_lines(store: StoragePort) -> list[str]:
    patterns = analyze_patterns(store)
    if patterns.total_sessions <= 0:
        return []
    lines = [
        HISTORY_HEADER,
        f"Sessions: {patterns.total_sessions} total, {patterns.completed_sessions} completed.",
    ]
    if patterns.timer_completion_rate > 0:
        lines.append(f"Timer completion rate: {round_half_up(patterns.timer_completion_rate * 100)}%.")
    if patterns.most_common_type:
        pct = patterns.type_percentages.get(patterns.most_common_type, 0)
        lines.append(f"Most common avoidance pattern: {patterns.most_common_type} ({pct}%).")
    if len(patterns.type_percentages) > 1:
        breakdown = ", ".join(f"{t}: {pct}%" for t, pct in patterns.type_percentages.items())
        lines.append(f"Full breakdown: {breakdown}.")
    return lines


def _memory_line(memory: Memory) -> str:
    return f"[{_TYPE_PREFIX[memory.type]} {format_date(memory.created_at)}] {memory.content}"


def _similar_line(item: SimilarMemory) -> str:
    pct = round_half_up(item.similarity * 100)
    return f"[{pct}% match, {format_date(item.memory.created_at)}] {item.memory.content}"


async def build_memory_context_detailed(
    store: StoragePort,
    service: EmbeddingService | None = None,
    options: ContextOptions | None = None,
    *,
    now: datetime | None = None,
    config: Config | None = None,
) -> MemoryContext:
    cfg = config or Config()
    opts = options or ContextOptions()
    now = ensure_utc(now) if now else utcnow()

    consolidation: ConsolidationResult | None = None
    if should_consolidate(store, cfg.consolidation):
        consolidation = consolidate_memories(store, now, config=cfg.consolidation)

    parts: list[str] = []
    sections: list[str] = []

    history = _history_lines(store)
    if history:
        parts.extend(history)
        sections.append(HISTORY_HEADER)

    summary = store.get_latest_pattern_summary()
    if summary is not None:
        parts.extend(["", PATTERNS_HEADER, summary.summary_text])
        sections.append(PATTERNS_HEADER)

    decay_options = DecayOptions(
        match_tags=list(opts.match_tags),
        match_avoidance_type=opts.match_avoidance_type,
        match_keywords=extract_keywords(opts.task_text) if opts.task_text else [],
    )
    top = get_top_memories(store, cfg.context.top_k, decay_options, now=now, config=cfg.decay)
    if top:
        parts.extend(["", RECENT_HEADER])
        parts.extend(_memory_line(m) for m in top)
        sections.append(RECENT_HEADER)

    similar: list[SimilarMemory] = []
    semantic_error: str | None = None
    if opts.task_text and service is not None and service.is_available():
        try:
            found = await search_similar_memories(
                store,
                service,
                opts.task_text,
                limit=cfg.context.semantic_limit,
                min_similarity=cfg.context.semantic_min_similarity,
            )
        except Exception as exc:
            semantic_error = str(exc) or type(exc).__name__
            logger.warning("Semantic memory search failed, omitting section: %s", semantic_error)
        else:
            shown = {m.id for m in top}
            similar = [s for s in found if s.memory.id not in shown]
            if similar:
                parts.extend(["", SEMANTIC_HEADER])
                parts.extend(_similar_line(s) for s in similar)
                sections.append(SEMANTIC_HEADER)

    text = "\n".join(parts) if parts else FIRST_SESSION_CONTEXT
    return MemoryContext(
        text=text,
        sections=sections,
        top_memories=top,
        similar_memories=similar,
        semantic_error=semantic_error,
        consolidation=consolidation,
    )


async def build_memory_context(
    store: StoragePort,
    service: EmbeddingService | None = None,
    options: ContextOptions | None = None,
    *,
    now: datetime | None = None,
    config: Config | None = None,
) -> str:
    """Build the memory text injected into coaching prompts."""
    result = await build_memory_context_detailed(store, service, options, now=now, config=config)
    return result.text
