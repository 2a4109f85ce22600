"""Periodic consolidation: summarize old memories and discount them.

Consolidation is lossy. Detail from the discounted memories survives only
in the summary text; the importance discount is never undone.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from avoidmem.config import ConsolidationConfig
from avoidmem.patterns.analyzer import analyze_patterns
from avoidmem.storage.base import StoragePort
from avoidmem.types import ConsolidationResult, Memory, MemoryType, PatternAnalysis
from avoidmem.utils import ensure_utc, round_half_up, utcnow

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = ConsolidationConfig()

# Key in PatternSummary.data recording the session count a run was made at.
SESSION_COUNT_KEY = "sessionCount"


def is_consolidation_due(session_count: int, config: ConsolidationConfig | None = None) -> bool:
    every = (config or _DEFAULT_CONFIG).every_n_sessions
    return session_count > 0 and session_count % every == 0


def should_consolidate(store: StoragePort, config: ConsolidationConfig | None = None) -> bool:
    return is_consolidation_due(store.get_session_count(), config)


def select_candidates(
    memories: list[Memory],
    now: datetime,
    config: ConsolidationConfig | None = None,
) -> list[Memory]:
    cutoff = ensure_utc(now) - timedelta(days=(config or _DEFAULT_CONFIG).min_age_days)
    return [m for m in memories if ensure_utc(m.created_at) < cutoff and m.type != MemoryType.SUMMARY]


def build_summary_text(
    patterns: PatternAnalysis,
    candidates: list[Memory],
    max_observations: int = 5,
) -> str:
    parts: list[str] = []

    if patterns.most_common_type:
        pct = patterns.type_percentages.get(patterns.most_common_type, 0)
        parts.append(f"Most common avoidance type: {patterns.most_common_type} ({pct}% of sessions).")

    parts.append(f"{patterns.total_sessions} total sessions, {patterns.completed_sessions} completed.")

    if patterns.timer_completion_rate > 0:
        parts.append(f"Timer completion rate: {round_half_up(patterns.timer_completion_rate * 100)}%.")

    if len(patterns.type_percentages) > 1:
        breakdown = ", ".join(f"{t}: {pct}%" for t, pct in patterns.type_percentages.items())
        parts.append(f"Type breakdown: {breakdown}.")

    observations = [m.content for m in candidates if m.type == MemoryType.OBSERVATION][:max_observations]
    if observations:
        parts.append(f"Key past observations: {'; '.join(observations)}")

    return " ".join(parts)


def consolidate_memories(
    store: StoragePort,
    now: datetime | None = None,
    *,
    force: bool = False,
    config: ConsolidationConfig | None = None,
) -> ConsolidationResult:
    """Compact memories older than the age window into a pattern summary.

    Writes nothing when there are no sessions or no candidates. Unless
    ``force`` is set, a run is skipped when the latest summary was already
    written at the current session count, so repeated context builds at a
    multiple of the trigger do not discount the same memories twice.
    """
    cfg = config or _DEFAULT_CONFIG
    now = ensure_utc(now) if now else utcnow()

    patterns = analyze_patterns(store)
    if patterns.total_sessions == 0:
        return ConsolidationResult(performed=False, reason="no_sessions")

    if not force:
        latest = store.get_latest_pattern_summary()
        if latest is not None and latest.data.get(SESSION_COUNT_KEY) == patterns.total_sessions:
            logger.debug("Consolidation already ran at %d sessions", patterns.total_sessions)
            return ConsolidationResult(performed=False, reason="already_consolidated")

    candidates = select_candidates(store.get_all_memories(), now, cfg)
    if not candidates:
        return ConsolidationResult(performed=False, reason="no_candidates")

    summary = store.create_pattern_summary(
        build_summary_text(patterns, candidates, cfg.max_observations),
        {
            "totalSessions": patterns.total_sessions,
            "completedSessions": patterns.completed_sessions,
            "typeDistribution": patterns.type_distribution,
            "typePercentages": patterns.type_percentages,
            "timerCompletionRate": patterns.timer_completion_rate,
            "consolidatedMemoryCount": len(candidates),
            SESSION_COUNT_KEY: patterns.total_sessions,
        },
    )

    for memory in candidates:
        store.reduce_memory_importance(memory.id, cfg.importance_factor)

    logger.info(
        "Consolidated %d memories into summary %s at %d sessions",
        len(candidates), summary.id, patterns.total_sessions,
    )
    return ConsolidationResult(
        performed=True,
        reason="consolidated",
        summary=summary,
        consolidated_ids=[m.id for m in candidates],
    )
