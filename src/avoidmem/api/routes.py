"""FastAPI HTTP API for avoid-memory."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from avoidmem.config import Config
from avoidmem.engine import MemoryEngine, open_memory_engine
from avoidmem.exceptions import EmbeddingError
from avoidmem.types import MemoryType, SessionStatus


# --- Request/Response Models ---

class RememberRequest(BaseModel):
    content: str
    type: MemoryType = MemoryType.OBSERVATION
    session_id: str | None = None
    avoidance_type: str | None = None
    importance: float = Field(default=1.0, ge=0.0)
    tags: list[str] = Field(default_factory=list)


class MemoryItem(BaseModel):
    id: str
    type: str
    content: str
    created_at: str
    importance: float
    access_count: int
    avoidance_type: str | None = None
    tags: list[str] = Field(default_factory=list)
    has_embedding: bool = False


class RememberResponse(BaseModel):
    memory: MemoryItem
    embedding_status: str
    embedding_error: str | None = None


class TopRequest(BaseModel):
    limit: int = 10
    task_text: str | None = None
    tags: list[str] = Field(default_factory=list)
    avoidance_type: str | None = None


class MemoryListResponse(BaseModel):
    memories: list[MemoryItem]
    count: int


class SearchRequest(BaseModel):
    query: str
    limit: int = 10
    min_similarity: float = 0.3


class SearchResultItem(BaseModel):
    memory: MemoryItem
    similarity: float


class SearchResponse(BaseModel):
    results: list[SearchResultItem]
    count: int


class ContextRequest(BaseModel):
    task_text: str | None = None
    tags: list[str] = Field(default_factory=list)
    avoidance_type: str | None = None


class ContextResponse(BaseModel):
    text: str
    sections: list[str]
    semantic_error: str | None = None
    consolidated: bool = False


class SessionRequest(BaseModel):
    task: str | None = None
    status: SessionStatus = SessionStatus.COMPLETED
    avoidance_type: str | None = None
    timer_completed: bool = False


class SessionResponse(BaseModel):
    id: str
    status: str
    consolidation_due: bool


class ConsolidateRequest(BaseModel):
    force: bool = False


class ConsolidateResponse(BaseModel):
    performed: bool
    reason: str
    summary_text: str | None = None
    consolidated_ids: list[str] = Field(default_factory=list)


def _memory_item(memory) -> MemoryItem:
    return MemoryItem(
        id=memory.id,
        type=memory.type.value,
        content=memory.content,
        created_at=memory.created_at.isoformat(),
        importance=memory.importance,
        access_count=memory.access_count,
        avoidance_type=memory.avoidance_type,
        tags=memory.tags,
        has_embedding=memory.embedding is not None,
    )


# --- App factory ---

_engine: MemoryEngine | None = None


def get_engine() -> MemoryEngine:
    if _engine is None:
        raise HTTPException(status_code=500, detail="Memory engine not initialized")
    return _engine


def create_app(
    data_dir: str | None = None,
    config: Config | None = None,
    engine: MemoryEngine | None = None,
) -> FastAPI:
    global _engine
    if engine is None:
        engine = open_memory_engine(data_dir, config)
    _engine = engine
    config = engine.config

    app = FastAPI(
        title="avoid-memory API",
        version="0.1.0",
        default_response_class=ORJSONResponse,
    )

    token = config.api.bearer_token

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        if request.url.path in ("/api/v1/health", "/docs", "/openapi.json"):
            return await call_next(request)
        if token:
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer ") or auth[7:] != token:
                return ORJSONResponse({"detail": "Unauthorized"}, status_code=401)
        return await call_next(request)

    # --- Routes ---

    @app.get("/api/v1/health")
    async def health():
        return {"status": "ok", "service": "avoidmem"}

    @app.get("/api/v1/status")
    async def get_status(engine: MemoryEngine = Depends(get_engine)) -> dict[str, Any]:
        return engine.status()

    @app.post("/api/v1/memories", response_model=RememberResponse)
    async def remember(req: RememberRequest, engine: MemoryEngine = Depends(get_engine)):
        stored = await engine.remember(
            req.content,
            type=req.type,
            session_id=req.session_id,
            avoidance_type=req.avoidance_type,
            importance=req.importance,
            tags=req.tags,
        )
        return RememberResponse(
            memory=_memory_item(stored.memory),
            embedding_status=stored.embedding.status.value,
            embedding_error=stored.embedding.error,
        )

    @app.post("/api/v1/memories/top", response_model=MemoryListResponse)
    async def top_memories(req: TopRequest, engine: MemoryEngine = Depends(get_engine)):
        memories = engine.top_memories(
            req.limit, task_text=req.task_text, tags=req.tags, avoidance_type=req.avoidance_type
        )
        return MemoryListResponse(memories=[_memory_item(m) for m in memories], count=len(memories))

    @app.post("/api/v1/memories/search", response_model=SearchResponse)
    async def search(req: SearchRequest, engine: MemoryEngine = Depends(get_engine)):
        try:
            results = await engine.similar(req.query, limit=req.limit, min_similarity=req.min_similarity)
        except EmbeddingError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return SearchResponse(
            results=[
                SearchResultItem(memory=_memory_item(r.memory), similarity=r.similarity)
                for r in results
            ],
            count=len(results),
        )

    @app.post("/api/v1/context", response_model=ContextResponse)
    async def context(req: ContextRequest, engine: MemoryEngine = Depends(get_engine)):
        result = await engine.context_detailed(req.task_text, req.tags, req.avoidance_type)
        return ContextResponse(
            text=result.text,
            sections=result.sections,
            semantic_error=result.semantic_error,
            consolidated=bool(result.consolidation and result.consolidation.performed),
        )

    @app.get("/api/v1/patterns")
    async def patterns(engine: MemoryEngine = Depends(get_engine)):
        return engine.analyze().model_dump()

    @app.post("/api/v1/consolidate", response_model=ConsolidateResponse)
    async def consolidate(req: ConsolidateRequest, engine: MemoryEngine = Depends(get_engine)):
        result = await engine.consolidate(force=req.force)
        return ConsolidateResponse(
            performed=result.performed,
            reason=result.reason,
            summary_text=result.summary.summary_text if result.summary else None,
            consolidated_ids=result.consolidated_ids,
        )

    @app.post("/api/v1/sessions", response_model=SessionResponse)
    async def add_session(req: SessionRequest, engine: MemoryEngine = Depends(get_engine)):
        session = engine.start_session(req.task)
        engine.finish_session(
            session.id,
            status=req.status,
            avoidance_type=req.avoidance_type,
            timer_completed=req.timer_completed,
        )
        return SessionResponse(
            id=session.id,
            status=req.status.value,
            consolidation_due=engine.should_consolidate(),
        )

    return app
