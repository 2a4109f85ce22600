"""Aggregate statistics over coaching sessions."""

from __future__ import annotations

from avoidmem.storage.base import StoragePort
from avoidmem.types import PatternAnalysis
from avoidmem.utils import round_half_up


def analyze_patterns(store: StoragePort) -> PatternAnalysis:
    total_sessions = store.get_session_count()
    completed_sessions = store.get_completed_session_count()
    timer_completion_rate = store.get_timer_completion_rate()
    type_distribution = store.get_avoidance_type_stats()

    most_common_type: str | None = None
    max_count = 0
    for avoidance_type, count in type_distribution.items():
        # strict comparison: the first type seen wins a tie
        if count > max_count:
            max_count = count
            most_common_type = avoidance_type

    type_percentages: dict[str, int] = {}
    total_typed = sum(type_distribution.values())
    if total_typed > 0:
        for avoidance_type, count in type_distribution.items():
            type_percentages[avoidance_type] = round_half_up(count / total_typed * 100)

    return PatternAnalysis(
        total_sessions=total_sessions,
        completed_sessions=completed_sessions,
        timer_completion_rate=timer_completion_rate,
        most_common_type=most_common_type,
        type_distribution=dict(type_distribution),
        type_percentages=type_percentages,
    )
