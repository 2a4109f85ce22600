from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from avoidmem.config import DecayConfig
from avoidmem.retrieval.decay import (
    calculate_decay_score,
    get_memories_by_type,
    get_top_memories,
    half_life_days,
)
from avoidmem.retrieval.keyword import extract_keywords
from avoidmem.storage.memory_store import InMemoryStore
from avoidmem.storage.sqlite_store import SQLiteStore
from avoidmem.types import DecayOptions, Memory, MemoryType

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _memory(days_old: float = 0.0, **kwargs) -> Memory:
    kwargs.setdefault("type", MemoryType.OBSERVATION)
    kwargs.setdefault("content", "walked away from the spreadsheet")
    return Memory(created_at=NOW - timedelta(days=days_old), **kwargs)


def test_extract_keywords_drops_stopwords_punctuation_and_short_tokens() -> None:
    words = extract_keywords("The quick brown fox jumps over the lazy dog")
    assert set(words) == {"quick", "brown", "fox", "jumps", "lazy", "dog"}


def test_extract_keywords_is_lowercase_unique_and_ordered() -> None:
    words = extract_keywords("Report, REPORT; report... Deadline!! it's an ok day")
    assert words == ["report", "deadline", "day"]


def test_extract_keywords_empty_input() -> None:
    assert extract_keywords("") == []
    assert extract_keywords("?! ... --") == []


def test_half_life_matches_decay_constant() -> None:
    assert half_life_days() == pytest.approx(13.8629, abs=1e-3)
    assert half_life_days(DecayConfig(decay_lambda=0.1)) == pytest.approx(math.log(2) / 0.1)


def test_score_halves_after_one_half_life() -> None:
    memory = _memory(days_old=half_life_days())
    assert calculate_decay_score(memory, NOW) == pytest.approx(0.5)


def test_score_strictly_decreases_with_elapsed_time() -> None:
    memory = _memory(days_old=0, access_count=3, tags=["fear"], avoidance_type="Fear")
    options = DecayOptions(match_tags=["fear"], match_avoidance_type="Fear")
    scores = [
        calculate_decay_score(memory, NOW + timedelta(days=d), options)
        for d in (0, 1, 7, 30, 90)
    ]
    assert all(a > b for a, b in zip(scores, scores[1:]))


def test_access_bonus_is_capped() -> None:
    fresh = _memory(access_count=2)
    busy = _memory(access_count=50)
    assert calculate_decay_score(fresh, NOW) == pytest.approx(1.2)
    assert calculate_decay_score(busy, NOW) == pytest.approx(1.5)


def test_tag_bonus_is_case_insensitive_and_capped() -> None:
    memory = _memory(tags=["a", "b", "c", "d", "e"])
    one = DecayOptions(match_tags=["A"])
    many = DecayOptions(match_tags=["A", "B", "C", "D", "E"])
    assert calculate_decay_score(memory, NOW, one) == pytest.approx(1.15)
    assert calculate_decay_score(memory, NOW, many) == pytest.approx(1.6)


def test_keyword_bonus_matches_substrings_and_is_capped() -> None:
    memory = _memory(content="Alpha beta gamma delta epsilon zeta")
    two = DecayOptions(match_keywords=["alp", "gamma"])
    six = DecayOptions(match_keywords=["alpha", "beta", "gamma", "delta", "epsilon", "zeta"])
    assert calculate_decay_score(memory, NOW, two) == pytest.approx(1.2)
    assert calculate_decay_score(memory, NOW, six) == pytest.approx(1.5)


def test_type_bonus_requires_matching_avoidance_type() -> None:
    memory = _memory(avoidance_type="Fear")
    assert calculate_decay_score(memory, NOW, DecayOptions(match_avoidance_type="fear")) == pytest.approx(1.2)
    assert calculate_decay_score(memory, NOW, DecayOptions(match_avoidance_type="Boredom")) == pytest.approx(1.0)
    assert calculate_decay_score(_memory(), NOW, DecayOptions(match_avoidance_type="Fear")) == pytest.approx(1.0)


def test_get_top_memories_returns_best_and_records_access() -> None:
    store = InMemoryStore()
    old = store.create_memory(type="observation", content="old note", created_at=NOW - timedelta(days=60))
    mid = store.create_memory(type="observation", content="mid note", created_at=NOW - timedelta(days=5))
    new = store.create_memory(type="insight", content="new note", created_at=NOW - timedelta(hours=1))

    top = get_top_memories(store, 2, now=NOW)

    assert [m.id for m in top] == [new.id, mid.id]
    assert all(m.access_count == 1 and m.last_accessed_at == NOW for m in top)
    assert store.get_memory(new.id).access_count == 1
    assert store.get_memory(mid.id).access_count == 1
    assert store.get_memory(old.id).access_count == 0
    assert store.get_memory(old.id).last_accessed_at is None


def test_get_top_memories_ties_favor_newer_insert() -> None:
    store = InMemoryStore()
    first = store.create_memory(type="observation", content="same", created_at=NOW)
    second = store.create_memory(type="observation", content="same", created_at=NOW)

    top = get_top_memories(store, 2, now=NOW)

    assert [m.id for m in top] == [second.id, first.id]


def test_get_top_memories_applies_relevance_hints() -> None:
    store = InMemoryStore()
    store.create_memory(type="observation", content="went for a run", created_at=NOW)
    hinted = store.create_memory(
        type="observation",
        content="dreaded the tax forms",
        avoidance_type="Fear",
        created_at=NOW - timedelta(days=3),
    )

    options = DecayOptions(match_keywords=["tax"], match_avoidance_type="Fear")
    top = get_top_memories(store, 1, options, now=NOW)

    assert [m.id for m in top] == [hinted.id]


def test_get_top_memories_on_empty_store() -> None:
    assert get_top_memories(InMemoryStore(), 5, now=NOW) == []


def test_get_memories_by_type_filters_without_bookkeeping() -> None:
    store = InMemoryStore()
    store.create_memory(type="observation", content="obs", created_at=NOW)
    insight = store.create_memory(type="insight", content="ins", created_at=NOW)

    found = get_memories_by_type(store, MemoryType.INSIGHT, now=NOW)

    assert [m.id for m in found] == [insight.id]
    assert store.get_memory(insight.id).access_count == 0


@pytest.mark.parametrize("backend", ["memory", "sqlite"])
def test_naive_times_rank_like_utc(backend: str, tmp_path) -> None:
    store = InMemoryStore() if backend == "memory" else SQLiteStore(tmp_path / "avoid.db")
    naive_now = NOW.replace(tzinfo=None)
    older = store.create_memory(type="observation", content="older", created_at=naive_now - timedelta(days=3))
    newer = store.create_memory(type="observation", content="newer", created_at=naive_now)

    top = get_top_memories(store, 2, now=naive_now)

    assert [m.id for m in top] == [newer.id, older.id]
    assert top[0].last_accessed_at == NOW
    assert calculate_decay_score(top[1], naive_now) == pytest.approx(
        calculate_decay_score(top[1], NOW)
    )
    store.close()
