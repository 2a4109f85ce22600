"""SQLite storage for sessions, memories and pattern summaries."""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from avoidmem.exceptions import StorageError
from avoidmem.types import (
    AgenticTurn,
    Memory,
    MemoryType,
    PatternSummary,
    Session,
    SessionStatus,
)
from avoidmem.utils import ensure_utc, json_dumps, json_loads_or, parse_iso, utcnow

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'in_progress',
    task TEXT,
    avoidance_type TEXT,
    explanation TEXT,
    timer_started INTEGER DEFAULT 0,
    timer_completed INTEGER DEFAULT 0,
    agentic_log TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);

CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    session_id TEXT,
    type TEXT NOT NULL,
    content TEXT NOT NULL,
    avoidance_type TEXT,
    importance REAL DEFAULT 1.0,
    access_count INTEGER DEFAULT 0,
    last_accessed_at TEXT,
    tags TEXT DEFAULT '[]',
    embedding BLOB
);
CREATE INDEX IF NOT EXISTS idx_memories_session ON memories(session_id);
CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type);
CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at);

CREATE TABLE IF NOT EXISTS pattern_summaries (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    summary_text TEXT NOT NULL,
    data TEXT NOT NULL DEFAULT '{}'
);
"""

_SESSION_COLUMNS = {
    "status",
    "task",
    "avoidance_type",
    "explanation",
    "timer_started",
    "timer_completed",
    "agentic_log",
}


def _ts(dt: datetime | None) -> str:
    # All timestamps are stored as UTC so text ordering matches time ordering.
    return ensure_utc(dt or utcnow()).isoformat(timespec="microseconds")


class SQLiteStore:
    """Embedded SQLite implementation of the storage port."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False,
                                     timeout=30.0)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA busy_timeout=30000")
        self._init_schema()

    def _init_schema(self) -> None:
        for attempt in range(5):
            try:
                cur = self._conn.cursor()
                cur.executescript(_SCHEMA)
                cur.execute(
                    "INSERT OR IGNORE INTO meta(key, value) VALUES (?, ?)",
                    ("schema_version", str(SCHEMA_VERSION)),
                )
                self._conn.commit()
                return
            except sqlite3.OperationalError as e:
                if "locked" in str(e) and attempt < 4:
                    time.sleep(2 * (attempt + 1))
                    continue
                raise

    def close(self) -> None:
        self._conn.close()

    # --- Sessions ---

    def create_session(self, task: str | None = None, created_at: datetime | None = None) -> Session:
        session = Session(task=task)
        if created_at is not None:
            session.created_at = session.updated_at = ensure_utc(created_at)
        self._conn.execute(
            """INSERT INTO sessions(id, created_at, updated_at, status, task)
               VALUES (?, ?, ?, ?, ?)""",
            (session.id, _ts(session.created_at), _ts(session.updated_at),
             session.status.value, task),
        )
        self._conn.commit()
        return session

    def get_session(self, session_id: str) -> Session | None:
        row = self._conn.execute("SELECT * FROM sessions WHERE id=?", (session_id,)).fetchone()
        if not row:
            return None
        return self._row_to_session(row)

    def get_in_progress_session(self) -> Session | None:
        row = self._conn.execute(
            "SELECT * FROM sessions WHERE status='in_progress' ORDER BY updated_at DESC LIMIT 1"
        ).fetchone()
        if not row:
            return None
        return self._row_to_session(row)

    def update_session(self, session_id: str, **updates: Any) -> None:
        unknown = set(updates) - _SESSION_COLUMNS
        if unknown:
            raise StorageError(f"Unknown session fields: {sorted(unknown)}")
        sets = ["updated_at=?"]
        values: list[Any] = [_ts(None)]
        for key, value in updates.items():
            if key == "status":
                value = SessionStatus(value).value
            elif key in ("timer_started", "timer_completed"):
                value = 1 if value else 0
            elif key == "agentic_log":
                value = json_dumps([
                    t.model_dump() if isinstance(t, AgenticTurn) else t for t in value
                ])
            sets.append(f"{key}=?")
            values.append(value)
        values.append(session_id)
        self._conn.execute(f"UPDATE sessions SET {', '.join(sets)} WHERE id=?", values)
        self._conn.commit()

    def get_session_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM sessions").fetchone()
        return row[0]

    def get_completed_session_count(self) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM sessions WHERE status='completed'"
        ).fetchone()
        return row[0]

    def get_timer_completion_rate(self) -> float:
        row = self._conn.execute(
            """SELECT COUNT(*) AS total,
                      COALESCE(SUM(CASE WHEN timer_completed=1 THEN 1 ELSE 0 END), 0) AS timed
               FROM sessions WHERE status='completed'"""
        ).fetchone()
        if row["total"] == 0:
            return 0.0
        return row["timed"] / row["total"]

    def get_avoidance_type_stats(self) -> dict[str, int]:
        rows = self._conn.execute(
            """SELECT avoidance_type, COUNT(*) AS count, MIN(rowid) AS first_seen
               FROM sessions
               WHERE avoidance_type IS NOT NULL
               GROUP BY avoidance_type
               ORDER BY count DESC, first_seen ASC"""
        ).fetchall()
        return {r["avoidance_type"]: r["count"] for r in rows}

    # --- Memories ---

    def create_memory(
        self,
        *,
        type: MemoryType | str,
        content: str,
        session_id: str | None = None,
        avoidance_type: str | None = None,
        importance: float = 1.0,
        tags: list[str] | None = None,
        embedding: bytes | None = None,
        created_at: datetime | None = None,
    ) -> Memory:
        memory = Memory(
            type=MemoryType(type),
            content=content,
            session_id=session_id,
            avoidance_type=avoidance_type,
            importance=importance,
            tags=list(tags or []),
            embedding=embedding,
        )
        if created_at is not None:
            memory.created_at = ensure_utc(created_at)
        self._conn.execute(
            """INSERT INTO memories(id, created_at, session_id, type, content,
               avoidance_type, importance, access_count, tags, embedding)
               VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
            (
                memory.id, _ts(memory.created_at), memory.session_id,
                memory.type.value, memory.content, memory.avoidance_type,
                memory.importance, json_dumps(memory.tags), memory.embedding,
            ),
        )
        self._conn.commit()
        return memory

    def get_memory(self, memory_id: str) -> Memory | None:
        row = self._conn.execute("SELECT * FROM memories WHERE id=?", (memory_id,)).fetchone()
        if not row:
            return None
        return self._row_to_memory(row)

    def get_all_memories(self) -> list[Memory]:
        rows = self._conn.execute(
            "SELECT * FROM memories ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [self._row_to_memory(r) for r in rows]

    def get_memories_with_embeddings(self) -> list[Memory]:
        rows = self._conn.execute(
            """SELECT * FROM memories WHERE embedding IS NOT NULL
               ORDER BY created_at DESC, rowid DESC"""
        ).fetchall()
        return [self._row_to_memory(r) for r in rows]

    def count_memories(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM memories").fetchone()
        return row[0]

    def increment_memory_access(self, memory_id: str, accessed_at: datetime | None = None) -> None:
        self._conn.execute(
            """UPDATE memories SET access_count = COALESCE(access_count, 0) + 1,
               last_accessed_at = ? WHERE id = ?""",
            (_ts(accessed_at), memory_id),
        )
        self._conn.commit()

    def reduce_memory_importance(self, memory_id: str, factor: float) -> None:
        self._conn.execute(
            "UPDATE memories SET importance = COALESCE(importance, 1.0) * ? WHERE id = ?",
            (factor, memory_id),
        )
        self._conn.commit()

    def update_memory_embedding(self, memory_id: str, embedding: bytes) -> None:
        self._conn.execute(
            "UPDATE memories SET embedding = ? WHERE id = ?",
            (embedding, memory_id),
        )
        self._conn.commit()

    # --- Pattern summaries ---

    def create_pattern_summary(self, summary_text: str, data: dict[str, Any]) -> PatternSummary:
        summary = PatternSummary(summary_text=summary_text, data=dict(data))
        self._conn.execute(
            """INSERT INTO pattern_summaries(id, created_at, summary_text, data)
               VALUES (?, ?, ?, ?)""",
            (summary.id, _ts(summary.created_at), summary.summary_text, json_dumps(summary.data)),
        )
        self._conn.commit()
        return summary

    def get_latest_pattern_summary(self) -> PatternSummary | None:
        row = self._conn.execute(
            "SELECT * FROM pattern_summaries ORDER BY created_at DESC, rowid DESC LIMIT 1"
        ).fetchone()
        if not row:
            return None
        return PatternSummary(
            id=row["id"],
            created_at=parse_iso(row["created_at"]),
            summary_text=row["summary_text"],
            data=json_loads_or(row["data"], {}),
        )

    # --- Row Converters ---

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            created_at=parse_iso(row["created_at"]),
            session_id=row["session_id"],
            type=row["type"],
            content=row["content"],
            avoidance_type=row["avoidance_type"],
            importance=1.0 if row["importance"] is None else row["importance"],
            access_count=row["access_count"] or 0,
            last_accessed_at=parse_iso(row["last_accessed_at"]) if row["last_accessed_at"] else None,
            tags=[str(t) for t in json_loads_or(row["tags"], [])],
            embedding=row["embedding"],
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        turns = []
        for raw in json_loads_or(row["agentic_log"], []):
            try:
                turns.append(AgenticTurn.model_validate(raw))
            except ValidationError:
                logger.warning("Dropping malformed agentic turn in session %s", row["id"])
        return Session(
            id=row["id"],
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
            status=row["status"],
            task=row["task"],
            avoidance_type=row["avoidance_type"],
            explanation=row["explanation"],
            timer_started=bool(row["timer_started"]),
            timer_completed=bool(row["timer_completed"]),
            agentic_log=turns,
        )
