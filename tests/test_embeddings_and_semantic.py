from __future__ import annotations

import asyncio
import struct

import httpx
import numpy as np
import pytest

from avoidmem.config import EmbeddingConfig
from avoidmem.embeddings.backends import HashEmbedder, OpenAIEmbedder, create_embedder
from avoidmem.embeddings.service import EmbeddingService, blob_to_vector, vector_to_blob
from avoidmem.exceptions import EmbeddingError, EmbeddingUnavailableError
from avoidmem.retrieval.semantic import cosine_similarity, search_similar_memories
from avoidmem.storage.memory_store import InMemoryStore
from avoidmem.types import EmbeddingStatus


class _MapBackend:
    def __init__(self, vectors: dict[str, list[float]], dims: int = 3) -> None:
        self.vectors = vectors
        self.dims = dims

    @property
    def available(self) -> bool:
        return True

    async def embed(self, texts: list[str]) -> np.ndarray:
        return np.array([self.vectors[t] for t in texts], dtype=np.float32)

    async def embed_single(self, text: str) -> np.ndarray:
        return np.array(self.vectors[text], dtype=np.float32)

    async def close(self) -> None:
        return None


class _FailingBackend(_MapBackend):
    def __init__(self) -> None:
        super().__init__({})

    async def embed_single(self, text: str) -> np.ndarray:
        raise RuntimeError("provider timeout")


class _OfflineBackend(_MapBackend):
    @property
    def available(self) -> bool:
        return False


def test_blob_codec_is_little_endian_float32() -> None:
    blob = vector_to_blob([1.0, -2.5])
    assert blob == struct.pack("<ff", 1.0, -2.5)
    assert blob_to_vector(blob).tolist() == [1.0, -2.5]
    with pytest.raises(EmbeddingError):
        blob_to_vector(b"\x00\x01\x02")


def test_default_service_produces_6144_byte_blobs() -> None:
    async def _run() -> None:
        service = EmbeddingService(HashEmbedder())
        assert service.blob_size == 6144
        blob = await service.embed_blob("could not start the essay")
        assert len(blob) == 6144
        outcome = await service.try_embed("could not start the essay")
        assert outcome.ok
        assert outcome.embedding == blob

    asyncio.run(_run())


def test_try_embed_reports_unavailable_without_calling_backend() -> None:
    async def _run() -> None:
        service = EmbeddingService(_OfflineBackend({}), dims=3)
        assert not service.is_available()
        outcome = await service.try_embed("anything")
        assert outcome.status == EmbeddingStatus.UNAVAILABLE
        assert outcome.embedding is None
        with pytest.raises(EmbeddingUnavailableError):
            await service.embed("anything")

    asyncio.run(_run())


def test_try_embed_reports_provider_failure() -> None:
    async def _run() -> None:
        outcome = await EmbeddingService(_FailingBackend(), dims=3).try_embed("x")
        assert outcome.status == EmbeddingStatus.FAILED
        assert outcome.embedding is None
        assert outcome.error == "provider timeout"

    asyncio.run(_run())


def test_embed_rejects_wrong_dimensionality() -> None:
    async def _run() -> None:
        service = EmbeddingService(_MapBackend({"q": [1.0, 0.0]}), dims=3)
        with pytest.raises(EmbeddingError):
            await service.embed("q")
        outcome = await service.try_embed("q")
        assert outcome.status == EmbeddingStatus.FAILED

    asyncio.run(_run())


def test_create_embedder_providers() -> None:
    assert isinstance(create_embedder(EmbeddingConfig(embedding_provider="hash")), HashEmbedder)
    openai = create_embedder(EmbeddingConfig(embedding_provider="openai", api_key=""))
    assert isinstance(openai, OpenAIEmbedder)
    assert not openai.available
    with pytest.raises(ValueError):
        create_embedder(EmbeddingConfig(embedding_provider="nope"))


def test_openai_embedder_posts_and_orders_by_index() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.content
        return httpx.Response(200, json={"data": [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
        ]})

    async def _run() -> np.ndarray:
        embedder = OpenAIEmbedder(api_key="sk-test", dims=2, base_url="https://example.test/v1")
        embedder._client = httpx.AsyncClient(
            base_url=embedder.base_url,
            transport=httpx.MockTransport(handler),
            headers={"Authorization": "Bearer sk-test"},
        )
        try:
            return await embedder.embed(["first", "second"])
        finally:
            await embedder.close()

    vecs = asyncio.run(_run())
    assert vecs.tolist() == [[1.0, 0.0], [0.0, 1.0]]
    assert seen["path"] == "/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert b"text-embedding-3-small" in seen["body"]


def test_openai_embedder_without_key_is_unavailable() -> None:
    async def _run() -> None:
        with pytest.raises(EmbeddingUnavailableError):
            await OpenAIEmbedder(api_key="").embed(["x"])

    asyncio.run(_run())


def test_cosine_similarity_edge_cases() -> None:
    a = vector_to_blob([0.3, 0.4, 0.5])
    assert cosine_similarity(a, a) == pytest.approx(1.0)
    assert cosine_similarity(a, vector_to_blob([0.3, 0.4, 0.5, 0.6])) == 0.0
    assert cosine_similarity(a, vector_to_blob([0.0, 0.0, 0.0])) == 0.0
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([-1.0, 0.0])) == pytest.approx(-1.0)


def _seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    store.create_memory(type="observation", content="same", embedding=vector_to_blob([1.0, 0.0, 0.0]))
    store.create_memory(type="observation", content="close", embedding=vector_to_blob([0.8, 0.6, 0.0]))
    store.create_memory(type="observation", content="unrelated", embedding=vector_to_blob([0.0, 1.0, 0.0]))
    store.create_memory(type="observation", content="no vector")
    return store


def test_search_ranks_filters_and_truncates() -> None:
    store = _seeded_store()
    service = EmbeddingService(_MapBackend({"query": [1.0, 0.0, 0.0]}), dims=3)

    async def _run():
        everything = await search_similar_memories(store, service, "query", min_similarity=0.3)
        first = await search_similar_memories(store, service, "query", limit=1, min_similarity=0.3)
        strict = await search_similar_memories(store, service, "query", min_similarity=0.9)
        return everything, first, strict

    everything, first, strict = asyncio.run(_run())

    assert [r.memory.content for r in everything] == ["same", "close"]
    assert everything[1].similarity == pytest.approx(0.8)
    assert all(r.similarity >= 0.3 for r in everything)
    assert [r.memory.content for r in first] == ["same"]
    assert [r.memory.content for r in strict] == ["same"]


def test_search_propagates_embedding_errors() -> None:
    store = _seeded_store()

    async def _run() -> None:
        await search_similar_memories(store, EmbeddingService(_FailingBackend(), dims=3), "query")

    with pytest.raises(RuntimeError, match="provider timeout"):
        asyncio.run(_run())


def test_search_with_no_embedded_memories() -> None:
    store = InMemoryStore()
    store.create_memory(type="observation", content="plain")
    service = EmbeddingService(_MapBackend({"q": [1.0, 0.0, 0.0]}), dims=3)
    assert asyncio.run(search_similar_memories(store, service, "q")) == []


def test_cosine_similarity_treats_torn_blob_as_mismatch() -> None:
    torn = b"\x00" * 6
    assert cosine_similarity(np.ones(3), torn) == 0.0
    assert cosine_similarity(torn, vector_to_blob([1.0, 0.0, 0.0])) == 0.0


def test_search_skips_torn_blobs() -> None:
    store = InMemoryStore()
    store.create_memory(type="observation", content="ok", embedding=vector_to_blob([1.0, 0.0, 0.0]))
    store.create_memory(type="observation", content="torn", embedding=b"\x00" * 6)
    service = EmbeddingService(_MapBackend({"query": [1.0, 0.0, 0.0]}), dims=3)

    results = asyncio.run(search_similar_memories(store, service, "query", min_similarity=0.0))

    assert [r.memory.content for r in results] == ["ok"]


def test_hash_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashEmbedder(dims=256)

    async def _run():
        return await embedder.embed(["put off the tax forms", "put off the tax forms", "a an to"])

    vecs = asyncio.run(_run())

    assert vecs.shape == (3, 256)
    assert np.array_equal(vecs[0], vecs[1])
    assert float(np.linalg.norm(vecs[0])) == pytest.approx(1.0, abs=1e-5)
    assert not vecs[2].any()
    assert asyncio.run(embedder.embed([])).shape == (0, 256)


def test_hash_embedder_scores_shared_words_above_unrelated() -> None:
    embedder = HashEmbedder(dims=512)
    base = embedder.vector("avoided the tax forms again")
    related = embedder.vector("the tax forms are still waiting")
    unrelated = embedder.vector("went running by the river")

    assert cosine_similarity(base, related) > cosine_similarity(base, unrelated)
    assert not np.array_equal(HashEmbedder(dims=512, salt="other").vector("tax forms"), embedder.vector("tax forms"))
