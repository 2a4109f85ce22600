from __future__ import annotations

import asyncio

import numpy as np

from avoidmem.embeddings.backends import HashEmbedder
from avoidmem.embeddings.service import EmbeddingService
from avoidmem.storage.memory_store import InMemoryStore
from avoidmem.storage.sqlite_store import SQLiteStore
from avoidmem.types import EmbeddingStatus, MemoryType
from avoidmem.writer import backfill_embeddings, store_memory


class _BrokenEmbedder:
    dims = 1536

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on

    @property
    def available(self) -> bool:
        return True

    async def embed(self, texts: list[str]) -> np.ndarray:
        return np.stack([await self.embed_single(t) for t in texts])

    async def embed_single(self, text: str) -> np.ndarray:
        if self.fail_on is None or text in self.fail_on:
            raise ConnectionError("embedding provider unreachable")
        return np.ones(self.dims, dtype=np.float32)

    async def close(self) -> None:
        return None


class _NoKeyEmbedder(_BrokenEmbedder):
    @property
    def available(self) -> bool:
        return False


def test_store_memory_merges_keywords_into_tags(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "avoid.db")
    service = EmbeddingService(HashEmbedder())

    async def _run():
        return await store_memory(
            store,
            service,
            content="Missed the deadline again because the report felt scary",
            type=MemoryType.OBSERVATION,
            avoidance_type="Fear",
            tags=["Fear", "deadline"],
        )

    stored = asyncio.run(_run())

    assert stored.memory.tags == ["Fear", "deadline", "missed", "again", "report", "felt", "scary"]
    assert stored.embedding.status == EmbeddingStatus.OK
    persisted = store.get_memory(stored.memory.id)
    assert persisted.tags == stored.memory.tags
    assert persisted.avoidance_type == "Fear"
    assert len(persisted.embedding) == 6144
    store.close()


def test_store_memory_caps_keyword_tags() -> None:
    store = InMemoryStore()
    words = " ".join(f"word{chr(97 + i)}" for i in range(15))

    stored = asyncio.run(store_memory(store, None, content=words, type="insight"))

    assert len(stored.memory.tags) == 10
    assert stored.memory.tags[0] == "worda"


def test_store_memory_survives_embedding_failure(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "avoid.db")
    service = EmbeddingService(_BrokenEmbedder())

    async def _run():
        return await store_memory(store, service, content="took a walk first", type="observation")

    stored = asyncio.run(_run())

    assert stored.embedding.status == EmbeddingStatus.FAILED
    assert "unreachable" in stored.embedding.error
    assert store.count_memories() == 1
    assert store.get_memory(stored.memory.id).embedding is None
    store.close()


def test_store_memory_without_provider_is_unavailable() -> None:
    store = InMemoryStore()

    async def _run():
        no_service = await store_memory(store, None, content="a note", type="observation")
        no_key = await store_memory(
            store, EmbeddingService(_NoKeyEmbedder()), content="another note", type="observation"
        )
        return no_service, no_key

    no_service, no_key = asyncio.run(_run())

    assert no_service.embedding.status == EmbeddingStatus.UNAVAILABLE
    assert no_key.embedding.status == EmbeddingStatus.UNAVAILABLE
    assert store.count_memories() == 2


def test_backfill_embeds_in_batches() -> None:
    store = InMemoryStore()
    for i in range(3):
        store.create_memory(type="observation", content=f"note {i}")
    service = EmbeddingService(HashEmbedder())

    first = asyncio.run(backfill_embeddings(store, service, batch_size=2))
    assert (first.embedded, first.failed, first.remaining) == (2, 0, 1)

    second = asyncio.run(backfill_embeddings(store, service, batch_size=2))
    assert (second.embedded, second.failed, second.remaining) == (1, 0, 0)
    assert len(store.get_memories_with_embeddings()) == 3


def test_backfill_counts_failures_and_skips_when_unavailable() -> None:
    store = InMemoryStore()
    store.create_memory(type="observation", content="good")
    store.create_memory(type="observation", content="bad")

    result = asyncio.run(backfill_embeddings(store, EmbeddingService(_BrokenEmbedder(fail_on={"bad"}))))
    assert (result.embedded, result.failed, result.remaining) == (1, 1, 1)

    offline = asyncio.run(backfill_embeddings(store, EmbeddingService(_NoKeyEmbedder())))
    assert (offline.embedded, offline.failed, offline.remaining) == (0, 0, 0)
    assert len(store.get_memories_with_embeddings()) == 1
