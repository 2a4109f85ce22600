"""avoid-memory configuration."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field


def _default_data_dir() -> Path:
    return Path(os.environ.get("AVOIDMEM_DATA_DIR", Path.home() / ".avoid"))


class EmbeddingConfig(BaseModel):
    embedding_provider: str = Field(default_factory=lambda: os.environ.get("AVOIDMEM_EMBED_PROVIDER", "openai"))
    api_key: str = Field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embedding_dims: int = 1536
    timeout: float = 30.0


class DecayConfig(BaseModel):
    decay_lambda: float = 0.05
    access_bonus_per_hit: float = 0.1
    access_bonus_cap: int = 5
    tag_match_bonus: float = 0.15
    max_tag_bonus: float = 0.6
    keyword_match_bonus: float = 0.1
    max_keyword_bonus: float = 0.5
    type_match_bonus: float = 0.2


class ConsolidationConfig(BaseModel):
    every_n_sessions: int = 10
    min_age_days: int = 30
    importance_factor: float = 0.3
    max_observations: int = 5


class ContextConfig(BaseModel):
    top_k: int = 8
    semantic_limit: int = 5
    semantic_min_similarity: float = 0.4
    max_keyword_tags: int = 10


class APIConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8431
    bearer_token: str = Field(default_factory=lambda: os.environ.get("AVOIDMEM_API_TOKEN", ""))


class Config(BaseModel):
    data_dir: Path = Field(default_factory=_default_data_dir)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    decay: DecayConfig = Field(default_factory=DecayConfig)
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @property
    def db_path(self) -> Path:
        return self.data_dir / "avoid.db"

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
