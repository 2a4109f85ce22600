"""Session pattern analysis and memory consolidation."""

from avoidmem.patterns.analyzer import analyze_patterns
from avoidmem.patterns.consolidation import (
    build_summary_text,
    consolidate_memories,
    is_consolidation_due,
    should_consolidate,
)

__all__ = [
    "analyze_patterns",
    "build_summary_text",
    "consolidate_memories",
    "is_consolidation_due",
    "should_consolidate",
]
