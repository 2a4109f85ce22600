"""Time-decay ranking with relevance boosts."""

from __future__ import annotations

import logging
import math
from datetime import datetime

from avoidmem.config import DecayConfig
from avoidmem.storage.base import StoragePort
from avoidmem.types import DecayOptions, Memory, MemoryType
from avoidmem.utils import days_between, ensure_utc, utcnow

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = DecayConfig()


def half_life_days(config: DecayConfig | None = None) -> float:
    cfg = config or _DEFAULT_CONFIG
    return math.log(2.0) / cfg.decay_lambda


def calculate_decay_score(
    memory: Memory,
    now: datetime | None = None,
    options: DecayOptions | None = None,
    config: DecayConfig | None = None,
) -> float:
    """Score a memory for recall.

    ``importance * exp(-lambda * age_days)`` plus capped bonuses for prior
    access, matching tags, keywords found in the content and a matching
    avoidance type. All matching is case-insensitive.
    """
    cfg = config or _DEFAULT_CONFIG
    opts = options or DecayOptions()
    now = ensure_utc(now) if now else utcnow()

    age_days = days_between(memory.created_at, now)
    importance = 1.0 if memory.importance is None else memory.importance
    base = importance * math.exp(-cfg.decay_lambda * age_days)

    access_bonus = cfg.access_bonus_per_hit * min(memory.access_count or 0, cfg.access_bonus_cap)

    tag_bonus = 0.0
    if opts.match_tags:
        memory_tags = {t.lower() for t in memory.tags}
        matched = sum(1 for tag in opts.match_tags if tag.lower() in memory_tags)
        tag_bonus = min(matched * cfg.tag_match_bonus, cfg.max_tag_bonus)

    keyword_bonus = 0.0
    if opts.match_keywords:
        content = memory.content.lower()
        matched = sum(1 for kw in opts.match_keywords if kw.lower() in content)
        keyword_bonus = min(matched * cfg.keyword_match_bonus, cfg.max_keyword_bonus)

    type_bonus = 0.0
    if (
        opts.match_avoidance_type
        and memory.avoidance_type
        and memory.avoidance_type.lower() == opts.match_avoidance_type.lower()
    ):
        type_bonus = cfg.type_match_bonus

    return base + access_bonus + tag_bonus + keyword_bonus + type_bonus


def _rank(
    memories: list[Memory],
    now: datetime,
    options: DecayOptions | None,
    config: DecayConfig | None,
) -> list[Memory]:
    scored = [(calculate_decay_score(m, now, options, config), m) for m in memories]
    # Stable sort: equal scores keep the store's newest-first order.
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [m for _, m in scored]


def get_top_memories(
    store: StoragePort,
    limit: int = 10,
    options: DecayOptions | None = None,
    now: datetime | None = None,
    config: DecayConfig | None = None,
) -> list[Memory]:
    """Return the ``limit`` best-scoring memories and record the access.

    Each returned memory has its access count bumped in the store, which
    nudges it up in later rankings (bounded by the access bonus cap).
    """
    now = ensure_utc(now) if now else utcnow()
    top = _rank(store.get_all_memories(), now, options, config)[:max(0, limit)]
    out: list[Memory] = []
    for memory in top:
        store.increment_memory_access(memory.id, now)
        out.append(memory.model_copy(update={
            "access_count": memory.access_count + 1,
            "last_accessed_at": now,
        }))
    logger.debug("Selected %d top memories", len(out))
    return out


def get_memories_by_type(
    store: StoragePort,
    memory_type: MemoryType | str,
    limit: int = 5,
    options: DecayOptions | None = None,
    now: datetime | None = None,
    config: DecayConfig | None = None,
) -> list[Memory]:
    """Rank memories of a single type. Does not touch access counts."""
    wanted = MemoryType(memory_type)
    candidates = [m for m in store.get_all_memories() if m.type == wanted]
    now = ensure_utc(now) if now else utcnow()
    return _rank(candidates, now, options, config)[:max(0, limit)]
