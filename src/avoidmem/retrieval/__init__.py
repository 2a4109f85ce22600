"""Keyword, decay and semantic retrieval."""

from avoidmem.retrieval.decay import (
    calculate_decay_score,
    get_memories_by_type,
    get_top_memories,
    half_life_days,
)
from avoidmem.retrieval.keyword import STOP_WORDS, extract_keywords
from avoidmem.retrieval.semantic import cosine_similarity, search_similar_memories

__all__ = [
    "STOP_WORDS",
    "calculate_decay_score",
    "cosine_similarity",
    "extract_keywords",
    "get_memories_by_type",
    "get_top_memories",
    "half_life_days",
    "search_similar_memories",
]
