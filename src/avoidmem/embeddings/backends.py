"""Embedding backend abstraction."""

from __future__ import annotations

import hashlib
import re
from typing import Protocol, runtime_checkable

import httpx
import numpy as np

from avoidmem.config import EmbeddingConfig
from avoidmem.exceptions import EmbeddingError, EmbeddingUnavailableError


@runtime_checkable
class EmbeddingBackend(Protocol):
    dims: int

    @property
    def available(self) -> bool: ...

    async def embed(self, texts: list[str]) -> np.ndarray: ...
    async def embed_single(self, text: str) -> np.ndarray: ...
    async def close(self) -> None: ...


class OpenAIEmbedder:
    """OpenAI-compatible ``/embeddings`` endpoint over httpx."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        dims: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.dims = dims
        self.base_url = base_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise EmbeddingUnavailableError("OPENAI_API_KEY is required")
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        return self._client

    async def embed(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dims), dtype=np.float32)
        client = await self._get_client()
        resp = await client.post(
            "/embeddings",
            json={"model": self.model, "input": texts, "dimensions": self.dims},
        )
        resp.raise_for_status()
        data = resp.json()
        rows = sorted(data.get("data", []), key=lambda x: x.get("index", 0))
        vecs = [x["embedding"] for x in rows]
        if len(vecs) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(vecs)}")
        return np.array(vecs, dtype=np.float32)

    async def embed_single(self, text: str) -> np.ndarray:
        return (await self.embed([text]))[0]

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class HashEmbedder:
    """Offline embedder: signed feature hashing of words and word pairs.

    Always available, so the ``hash`` provider keeps semantic search working
    without a credential. Vectors are L2-normalized; text without any word of
    three or more characters embeds to the zero vector.
    """

    _WORD_RE = re.compile(r"[a-z0-9]{3,}")

    def __init__(self, dims: int = 1536, salt: str = "avoidmem") -> None:
        self.dims = int(dims)
        self._salt = salt.encode("utf-8")

    @property
    def available(self) -> bool:
        return True

    def _features(self, text: str) -> list[str]:
        words = self._WORD_RE.findall((text or "").lower())
        return words + [f"{a} {b}" for a, b in zip(words, words[1:])]

    def _bucket(self, feature: str) -> tuple[int, float]:
        digest = hashlib.sha256(self._salt + feature.encode("utf-8")).digest()
        index = int.from_bytes(digest[:8], "big") % self.dims
        return index, (-1.0 if digest[8] & 1 else 1.0)

    def vector(self, text: str) -> np.ndarray:
        out = np.zeros(self.dims, dtype=np.float32)
        for feature in self._features(text):
            index, sign = self._bucket(feature)
            out[index] += sign
        norm = float(np.linalg.norm(out))
        return out / norm if norm else out

    async def embed(self, texts: list[str]) -> np.ndarray:
        vecs = [self.vector(t) for t in texts]
        return np.vstack(vecs) if vecs else np.empty((0, self.dims), dtype=np.float32)

    async def embed_single(self, text: str) -> np.ndarray:
        return self.vector(text)

    async def close(self) -> None:
        return None


def create_embedder(config: EmbeddingConfig | None = None) -> EmbeddingBackend:
    cfg = config or EmbeddingConfig()
    provider = (cfg.embedding_provider or "openai").strip().lower()
    if provider in {"openai", "default"}:
        return OpenAIEmbedder(
            api_key=cfg.api_key,
            model=cfg.embedding_model,
            dims=cfg.embedding_dims,
            base_url=cfg.base_url,
            timeout=cfg.timeout,
        )
    if provider in {"hash", "localhash", "local"}:
        return HashEmbedder(dims=cfg.embedding_dims)
    raise ValueError(f"Unsupported embedding provider: {cfg.embedding_provider}")
