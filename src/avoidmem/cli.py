"""avoid-memory CLI."""

from __future__ import annotations

import asyncio
import logging

import click

from avoidmem.config import Config
from avoidmem.engine import MemoryEngine, open_memory_engine
from avoidmem.types import AVOIDANCE_TYPES, MemoryType, SessionStatus


def _get_engine(data_dir: str | None = None) -> MemoryEngine:
    return open_memory_engine(data_dir)


@click.group()
@click.option("--data-dir", envvar="AVOIDMEM_DATA_DIR", default=None, help="Data directory")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None, verbose: bool) -> None:
    """avoid-memory: adaptive memory for the avoidance coach."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show memory system status."""
    engine = _get_engine(ctx.obj.get("data_dir"))
    try:
        st = engine.status()
        click.echo("avoid-memory status")
        click.echo(f"  Sessions:          {st['sessions']} ({st['completed_sessions']} completed)")
        click.echo(f"  Memories:          {st['memories']}")
        click.echo(f"  With embeddings:   {st['embedded_memories']}")
        click.echo(f"  Latest summary:    {st['latest_summary_at'] or '-'}")
        click.echo(f"  Embeddings:        {'available' if st['embeddings_available'] else 'unavailable'}")
        click.echo(f"  Consolidation due: {'yes' if st['consolidation_due'] else 'no'}")
        click.echo(f"  Half-life (days):  {st['half_life_days']:.2f}")
    finally:
        asyncio.run(engine.close())


@main.command()
@click.argument("content")
@click.option("--type", "-t", "memory_type", default=MemoryType.OBSERVATION.value,
              type=click.Choice([t.value for t in MemoryType]), help="Memory type")
@click.option("--avoidance-type", "-a", default=None, help=f"One of: {', '.join(AVOIDANCE_TYPES)}")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--session-id", "-s", default=None, help="Originating session")
@click.option("--importance", default=1.0, type=float, help="Initial importance")
@click.pass_context
def remember(ctx: click.Context, content: str, memory_type: str, avoidance_type: str | None,
             tags: tuple[str, ...], session_id: str | None, importance: float) -> None:
    """Store a memory."""
    engine = _get_engine(ctx.obj.get("data_dir"))

    async def _run():
        try:
            return await engine.remember(
                content,
                type=memory_type,
                session_id=session_id,
                avoidance_type=avoidance_type,
                importance=importance,
                tags=list(tags),
            )
        finally:
            await engine.close()

    stored = asyncio.run(_run())
    click.echo(f"Stored {stored.memory.type.value} {stored.memory.id}")
    click.echo(f"  Tags:      {', '.join(stored.memory.tags) or '-'}")
    click.echo(f"  Embedding: {stored.embedding.status.value}")
    if stored.embedding.error:
        click.echo(f"  Error:     {stored.embedding.error}")


@main.command(name="session-add")
@click.option("--task", default=None, help="Task the session was about")
@click.option("--status", "session_status", default=SessionStatus.COMPLETED.value,
              type=click.Choice([s.value for s in SessionStatus]), help="Final status")
@click.option("--avoidance-type", "-a", default=None, help="Classified avoidance type")
@click.option("--timer-completed", is_flag=True, help="The focus timer ran to completion")
@click.pass_context
def session_add(ctx: click.Context, task: str | None, session_status: str,
                avoidance_type: str | None, timer_completed: bool) -> None:
    """Record a finished coaching session."""
    engine = _get_engine(ctx.obj.get("data_dir"))
    try:
        session = engine.start_session(task)
        engine.finish_session(
            session.id,
            status=session_status,
            avoidance_type=avoidance_type,
            timer_completed=timer_completed,
        )
        click.echo(f"Session {session.id} recorded ({session_status})")
        if engine.should_consolidate():
            click.echo("Consolidation is due; it will run on the next context build.")
    finally:
        asyncio.run(engine.close())


@main.command()
@click.option("--top-k", "-k", default=10, help="Number of results")
@click.option("--task", default=None, help="Task text used for keyword boosts")
@click.option("--tag", "tags", multiple=True, help="Tag to boost (repeatable)")
@click.option("--avoidance-type", "-a", default=None, help="Avoidance type to boost")
@click.pass_context
def top(ctx: click.Context, top_k: int, task: str | None, tags: tuple[str, ...],
        avoidance_type: str | None) -> None:
    """List memories by decay score (records access)."""
    engine = _get_engine(ctx.obj.get("data_dir"))
    try:
        memories = engine.top_memories(top_k, task_text=task, tags=list(tags),
                                       avoidance_type=avoidance_type)
        if not memories:
            click.echo("No memories stored.")
        for m in memories:
            preview = m.content[:200].replace("\n", " ")
            click.echo(f"  [{m.id[:8]}] {m.type.value:<11} imp={m.importance:.2f} "
                       f"hits={m.access_count} {preview}")
    finally:
        asyncio.run(engine.close())


@main.command()
@click.argument("query")
@click.option("--limit", "-k", default=10, help="Number of results")
@click.option("--min-similarity", default=0.3, type=float, help="Similarity floor")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, min_similarity: float) -> None:
    """Semantic search over embedded memories."""
    engine = _get_engine(ctx.obj.get("data_dir"))

    async def _run():
        try:
            return await engine.similar(query, limit=limit, min_similarity=min_similarity)
        finally:
            await engine.close()

    if not engine.embeddings.is_available():
        asyncio.run(engine.close())
        raise click.ClickException("Embeddings unavailable: set OPENAI_API_KEY or AVOIDMEM_EMBED_PROVIDER=hash")
    results = asyncio.run(_run())
    if not results:
        click.echo("No results found.")
    for i, r in enumerate(results, 1):
        preview = r.memory.content[:200].replace("\n", " ")
        click.echo(f"{i}. ({r.similarity:.3f}) {preview}")


@main.command()
@click.option("--task", default=None, help="Current task text")
@click.option("--tag", "tags", multiple=True, help="Tag to boost (repeatable)")
@click.option("--avoidance-type", "-a", default=None, help="Current avoidance type")
@click.pass_context
def context(ctx: click.Context, task: str | None, tags: tuple[str, ...],
            avoidance_type: str | None) -> None:
    """Print the memory context for a prompt."""
    engine = _get_engine(ctx.obj.get("data_dir"))

    async def _run() -> str:
        try:
            return await engine.context(task, tags=list(tags), avoidance_type=avoidance_type)
        finally:
            await engine.close()

    click.echo(asyncio.run(_run()))


@main.command()
@click.pass_context
def patterns(ctx: click.Context) -> None:
    """Show session pattern analysis."""
    engine = _get_engine(ctx.obj.get("data_dir"))
    try:
        analysis = engine.analyze()
        click.echo(f"Sessions:        {analysis.total_sessions} ({analysis.completed_sessions} completed)")
        click.echo(f"Timer rate:      {analysis.timer_completion_rate:.0%}")
        click.echo(f"Most common:     {analysis.most_common_type or '-'}")
        for avoidance_type, count in analysis.type_distribution.items():
            pct = analysis.type_percentages.get(avoidance_type, 0)
            click.echo(f"  {avoidance_type:<18} {count:>4}  {pct}%")
    finally:
        asyncio.run(engine.close())


@main.command(name="consolidate")
@click.option("--force", is_flag=True, help="Run even if not due or already run at this session count")
@click.pass_context
def consolidate_cmd(ctx: click.Context, force: bool) -> None:
    """Summarize and discount memories older than the consolidation window."""
    engine = _get_engine(ctx.obj.get("data_dir"))

    async def _run():
        try:
            if not force and not engine.should_consolidate():
                return None
            return await engine.consolidate(force=force)
        finally:
            await engine.close()

    result = asyncio.run(_run())
    if result is None:
        click.echo("Consolidation not due (use --force to run anyway).")
        return
    if not result.performed:
        click.echo(f"Nothing consolidated: {result.reason}")
        return
    click.echo(f"Consolidated {len(result.consolidated_ids)} memories.")
    click.echo(result.summary.summary_text)


@main.command()
@click.option("--batch-size", "-b", default=50, help="Max memories to embed")
@click.pass_context
def backfill(ctx: click.Context, batch_size: int) -> None:
    """Embed memories that were stored without a vector."""
    engine = _get_engine(ctx.obj.get("data_dir"))

    async def _run():
        try:
            return await engine.backfill(batch_size=batch_size)
        finally:
            await engine.close()

    if not engine.embeddings.is_available():
        asyncio.run(engine.close())
        click.echo("Embeddings unavailable; nothing to do.")
        return
    result = asyncio.run(_run())
    click.echo(f"Embedded {result.embedded}, failed {result.failed}, remaining {result.remaining}")


@main.command()
@click.option("--host", "-h", default=None, help="Bind host")
@click.option("--port", "-p", default=None, type=int, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the HTTP API server."""
    import uvicorn
    from avoidmem.api.routes import create_app

    config = Config()
    app = create_app(data_dir=ctx.obj.get("data_dir"), config=config)
    host = host or config.api.host
    port = port or config.api.port
    click.echo(f"Starting avoid-memory API on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
