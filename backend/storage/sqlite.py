"""
SQLite storage engine.

Embeddings are packed float32 BLOBs and similarity is a brute-force cosine
scan, which is plenty for a single developer's history. Every sqlite3 call
runs in a worker thread so the event loop never blocks on disk.
"""

import asyncio
import json
import logging
import sqlite3
import struct
import threading
from pathlib import Path
from typing import Optional

from models.records import ActionRecord, EventRecord, SessionRecord
from storage.base import LAST_ACTIVE_EVENT_TYPES, Embedder, VectorStorage

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS schema_meta (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER DEFAULT (strftime('%s', 'now'))
    );

    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        timestamp INTEGER NOT NULL,
        event_type TEXT NOT NULL,
        file_path TEXT NOT NULL,
        metadata TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp DESC);
    CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);

    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        timestamp INTEGER NOT NULL,
        summary TEXT NOT NULL,
        embedding BLOB NOT NULL,
        project TEXT,
        event_count INTEGER DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS actions (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        description TEXT NOT NULL,
        diff TEXT,
        files TEXT,
        embedding BLOB NOT NULL,
        FOREIGN KEY (session_id) REFERENCES sessions(id)
    );

    CREATE INDEX IF NOT EXISTS idx_actions_timestamp ON actions(timestamp DESC);
    CREATE INDEX IF NOT EXISTS idx_actions_session_id ON actions(session_id);
"""


def serialize_embedding(embedding: list[float]) -> bytes:
    return struct.pack(f"{len(embedding)}f", *embedding)


def deserialize_embedding(blob: bytes) -> list[float]:
    float_count = len(blob) // 4
    return list(struct.unpack(f"{float_count}f", blob))


class SQLiteStorage(VectorStorage):
    def __init__(self, db_path: Path, embedder: Optional[Embedder] = None):
        super().__init__(embedder)
        self._db_path = Path(db_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        await asyncio.to_thread(self._connect_sync)

    async def close(self) -> None:
        await asyncio.to_thread(self._close_sync)

    def _connect_sync(self) -> None:
        with self._lock:
            if self._connection is not None:
                return
            if str(self._db_path) != ":memory:":
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA_SQL)
            row = conn.execute("SELECT MAX(version) AS v FROM schema_meta").fetchone()
            if not row or not row["v"]:
                conn.execute("INSERT INTO schema_meta (version) VALUES (?)", (SCHEMA_VERSION,))
            self._connection = conn
            logger.info("SQLite storage ready at %s", self._db_path)

    def _close_sync(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    async def _run(self, fn, *args):
        if self._connection is None:
            await self.connect()
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn, *args):
        with self._lock:
            return fn(self._connection, *args)

    # ── Writes ───────────────────────────────────────────────────────────────

    async def _insert_event(self, record: EventRecord) -> None:
        await self._run(_insert_event_sync, record)

    async def _insert_action(self, record: ActionRecord) -> None:
        await self._run(_insert_action_sync, record)

    async def _insert_session(self, record: SessionRecord) -> None:
        await self._run(_insert_session_sync, record)

    async def update_session_summary(self, session_id: str, summary: str, embedding: list[float]) -> None:
        updated = await self._run(_update_session_sync, session_id, summary, embedding)
        if not updated:
            raise KeyError(session_id)

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        rows = await self._run(
            _fetch, "SELECT * FROM sessions WHERE id = ?", (session_id,)
        )
        return _row_to_session(rows[0]) if rows else None

    async def get_recent_events(self, limit: int = 50) -> list[EventRecord]:
        rows = await self._run(
            _fetch,
            "SELECT * FROM events ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_event(r) for r in rows]

    async def get_recent_actions(self, limit: int = 10) -> list[ActionRecord]:
        rows = await self._run(
            _fetch,
            "SELECT * FROM actions ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_action(r) for r in rows]

    async def get_last_active_file(self) -> Optional[str]:
        placeholders = ", ".join("?" for _ in LAST_ACTIVE_EVENT_TYPES)
        rows = await self._run(
            _fetch,
            f"""
            SELECT file_path FROM events
            WHERE event_type IN ({placeholders})
            ORDER BY timestamp DESC, rowid DESC
            LIMIT 1
            """,
            LAST_ACTIVE_EVENT_TYPES,
        )
        return rows[0]["file_path"] if rows else None

    async def _all_sessions(self) -> list[SessionRecord]:
        rows = await self._run(_fetch, "SELECT * FROM sessions", ())
        return [_row_to_session(r) for r in rows]

    async def _all_actions(self) -> list[ActionRecord]:
        rows = await self._run(_fetch, "SELECT * FROM actions", ())
        return [_row_to_action(r) for r in rows]

    async def count_events(self) -> int:
        rows = await self._run(_fetch, "SELECT COUNT(*) AS c FROM events", ())
        return rows[0]["c"] if rows else 0


# ── Synchronous helpers (run in worker threads) ──────────────────────────────

def _fetch(conn: sqlite3.Connection, sql: str, params) -> list[sqlite3.Row]:
    return conn.execute(sql, params).fetchall()


def _insert_event_sync(conn: sqlite3.Connection, record: EventRecord) -> None:
    conn.execute(
        """
        INSERT INTO events (id, timestamp, event_type, file_path, metadata)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            record.id,
            record.timestamp,
            record.event_type,
            record.file_path,
            json.dumps(record.metadata),
        ),
    )


def _insert_action_sync(conn: sqlite3.Connection, record: ActionRecord) -> None:
    conn.execute(
        """
        INSERT INTO actions (id, session_id, timestamp, description, diff, files, embedding)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.id,
            record.session_id,
            record.timestamp,
            record.description,
            json.dumps(record.diff),
            json.dumps(record.files),
            serialize_embedding(record.embedding),
        ),
    )
    conn.execute(
        "UPDATE sessions SET event_count = event_count + 1 WHERE id = ?",
        (record.session_id,),
    )


def _insert_session_sync(conn: sqlite3.Connection, record: SessionRecord) -> None:
    conn.execute(
        """
        INSERT INTO sessions (id, timestamp, summary, embedding, project, event_count)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            record.id,
            record.timestamp,
            record.summary,
            serialize_embedding(record.embedding),
            record.project,
            record.event_count,
        ),
    )


def _update_session_sync(
    conn: sqlite3.Connection, session_id: str, summary: str, embedding: list[float]
) -> bool:
    cursor = conn.execute(
        "UPDATE sessions SET summary = ?, embedding = ? WHERE id = ?",
        (summary, serialize_embedding(embedding), session_id),
    )
    return cursor.rowcount > 0


def _row_to_event(row: sqlite3.Row) -> EventRecord:
    return EventRecord(
        id=row["id"],
        timestamp=row["timestamp"],
        event_type=row["event_type"],
        file_path=row["file_path"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
    )


def _row_to_action(row: sqlite3.Row) -> ActionRecord:
    return ActionRecord(
        id=row["id"],
        session_id=row["session_id"],
        timestamp=row["timestamp"],
        description=row["description"],
        diff=json.loads(row["diff"]) if row["diff"] else [],
        files=json.loads(row["files"]) if row["files"] else [],
        embedding=deserialize_embedding(row["embedding"]),
    )


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        timestamp=row["timestamp"],
        summary=row["summary"],
        embedding=deserialize_embedding(row["embedding"]),
        project=row["project"] or "",
        event_count=row["event_count"] or 0,
    )
