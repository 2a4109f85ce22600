"""Keyword extraction for relevance hints and auto-tagging."""

from __future__ import annotations

import re

STOP_WORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "shall", "to", "of", "in", "for",
    "on", "with", "at", "by", "from", "as", "into", "through", "during",
    "before", "after", "and", "but", "or", "nor", "not", "so", "yet",
    "both", "either", "neither", "each", "every", "all", "any", "few",
    "more", "most", "other", "some", "such", "no", "only", "own", "same",
    "than", "too", "very", "just", "about", "above", "below", "between",
    "over", "i", "me", "my", "we", "our", "you", "your", "he", "him", "his",
    "she", "her", "it", "its", "they", "them", "their", "this", "that",
    "these", "those", "what", "which", "who", "whom", "when", "where",
    "why", "how", "if", "then", "because", "while", "although", "though",
})

MIN_KEYWORD_LENGTH = 3

_SPLIT_RE = re.compile(r"\W+", re.ASCII)


def extract_keywords(text: str) -> list[str]:
    """Return unique lowercase keywords in order of first appearance.

    Splits on ASCII non-word characters, then drops stopwords and tokens
    shorter than three characters.
    """
    out: list[str] = []
    seen: set[str] = set()
    for token in _SPLIT_RE.split((text or "").lower()):
        if not token or token in seen:
            continue
        seen.add(token)
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
            continue
        out.append(token)
    return out
