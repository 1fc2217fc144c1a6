"""PostgreSQL-backed submission store."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

import psycopg2
from psycopg2 import pool

from .contracts import (
    StorageUnavailable,
    TextNote,
    TextNoteDraft,
    VoiceAudio,
    VoiceNoteDraft,
    VoiceNoteMetadata,
)
from .limits import MAX_AUDIO_BYTES, MAX_AUDIO_DURATION_SECONDS, MAX_MESSAGE_LENGTH
from .store_base import SubmissionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Applied in order at startup. Every step must be safe to re-run.
SCHEMA_STEPS: tuple[str, ...] = (
    f"""
CREATE TABLE IF NOT EXISTS messages (
  id SERIAL PRIMARY KEY,
  guest_name TEXT NOT NULL DEFAULT '',
  text TEXT NOT NULL CHECK (char_length(text) BETWEEN 1 AND {MAX_MESSAGE_LENGTH}),
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
""",
    f"""
CREATE TABLE IF NOT EXISTS voice_messages (
  id SERIAL PRIMARY KEY,
  guest_name TEXT NOT NULL DEFAULT '',
  note TEXT,
  audio BYTEA NOT NULL CHECK (octet_length(audio) BETWEEN 1 AND {MAX_AUDIO_BYTES}),
  mime_type TEXT NOT NULL,
  duration_seconds INT NOT NULL
    CHECK (duration_seconds > 0 AND duration_seconds <= {MAX_AUDIO_DURATION_SECONDS}),
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
""",
    "ALTER TABLE messages ADD COLUMN IF NOT EXISTS guest_name TEXT NOT NULL DEFAULT ''",
    "ALTER TABLE voice_messages ADD COLUMN IF NOT EXISTS guest_name TEXT NOT NULL DEFAULT ''",
    "CREATE INDEX IF NOT EXISTS messages_created_at_idx ON messages (created_at DESC)",
    "CREATE INDEX IF NOT EXISTS voice_messages_created_at_idx ON voice_messages (created_at DESC)",
)

_INSERT_TEXT = "INSERT INTO messages (guest_name, text) VALUES (%s, %s) RETURNING id"
_INSERT_VOICE = (
    "INSERT INTO voice_messages (guest_name, note, audio, mime_type, duration_seconds) "
    "VALUES (%s, %s, %s, %s, %s) RETURNING id"
)
_LIST_TEXT = (
    "SELECT id, guest_name, text, created_at FROM messages "
    "ORDER BY created_at DESC, id DESC LIMIT %s"
)
_LIST_VOICE = (
    "SELECT id, guest_name, COALESCE(note, ''), duration_seconds, mime_type, created_at "
    "FROM voice_messages ORDER BY created_at DESC, id DESC LIMIT %s"
)
_FETCH_AUDIO = "SELECT audio, mime_type FROM voice_messages WHERE id = %s"

_SCHEMA_TIMEOUT_SECONDS = 30.0


class PostgresSubmissionStore(SubmissionStore):
    """Thread-safe store over a psycopg2 connection pool.

    A semaphore sized to the pool makes callers wait for a free connection
    instead of failing fast; the wait counts against the caller's timeout.
    """

    def __init__(self, dsn: str, *, max_connections: int = 10, connect_timeout: int = 5):
        if max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        self._dsn = dsn
        self._max_connections = max_connections
        self._connect_timeout = connect_timeout
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._pool_lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_connections)

    def name(self) -> str:
        return "postgres"

    def connect(self, budget: Optional[float] = None) -> None:
        # libpq takes whole seconds; never wait longer than the caller has left.
        connect_timeout = self._connect_timeout
        if budget is not None:
            connect_timeout = max(1, min(connect_timeout, int(budget)))
        with self._pool_lock:
            if self._pool is None:
                self._pool = pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self._max_connections,
                    dsn=self._dsn,
                    connect_timeout=connect_timeout,
                )

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None

    @contextmanager
    def _connection(self, deadline: float) -> Iterator[Any]:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not self._slots.acquire(timeout=remaining):
            raise StorageUnavailable("timed out waiting for a database connection")
        try:
            if self._pool is None:
                self.connect(budget=deadline - time.monotonic())
            if self._pool is None:
                raise StorageUnavailable("database pool is not available")
            conn = self._pool.getconn()
            try:
                conn.autocommit = True
                yield conn
            finally:
                self._pool.putconn(conn, close=bool(conn.closed))
        finally:
            self._slots.release()

    def _run(self, timeout: float, work: Callable[[Any], T]) -> T:
        deadline = time.monotonic() + timeout
        try:
            with self._connection(deadline) as conn, conn.cursor() as cursor:
                budget_ms = max(1, int((deadline - time.monotonic()) * 1000))
                cursor.execute("SET statement_timeout = %s", (budget_ms,))
                return work(cursor)
        except psycopg2.Error as exc:
            raise StorageUnavailable(str(exc).strip() or exc.__class__.__name__) from exc

    def ensure_schema(self) -> None:
        def _apply(cursor: Any) -> None:
            for step in SCHEMA_STEPS:
                cursor.execute(step)

        self._run(_SCHEMA_TIMEOUT_SECONDS, _apply)
        logger.info("schema ensured steps=%s", len(SCHEMA_STEPS))

    def insert_text_note(self, draft: TextNoteDraft, timeout: float) -> int:
        def _insert(cursor: Any) -> int:
            cursor.execute(_INSERT_TEXT, (draft.guest_name, draft.text))
            return int(cursor.fetchone()[0])

        return self._run(timeout, _insert)

    def insert_voice_note(self, draft: VoiceNoteDraft, timeout: float) -> int:
        def _insert(cursor: Any) -> int:
            cursor.execute(
                _INSERT_VOICE,
                (
                    draft.guest_name,
                    draft.note,
                    psycopg2.Binary(draft.audio),
                    draft.mime_type,
                    draft.duration_seconds,
                ),
            )
            return int(cursor.fetchone()[0])

        return self._run(timeout, _insert)

    def list_text_notes(self, limit: int, timeout: float) -> list[TextNote]:
        def _select(cursor: Any) -> list[TextNote]:
            cursor.execute(_LIST_TEXT, (limit,))
            return [
                TextNote(id=int(row[0]), guest_name=row[1], text=row[2], created_at=row[3])
                for row in cursor.fetchall()
            ]

        return self._run(timeout, _select)

    def list_voice_notes(self, limit: int, timeout: float) -> list[VoiceNoteMetadata]:
        def _select(cursor: Any) -> list[VoiceNoteMetadata]:
            cursor.execute(_LIST_VOICE, (limit,))
            return [
                VoiceNoteMetadata(
                    id=int(row[0]),
                    guest_name=row[1],
                    note=row[2],
                    duration_seconds=int(row[3]),
                    mime_type=row[4],
                    created_at=row[5],
                )
                for row in cursor.fetchall()
            ]

        return self._run(timeout, _select)

    def fetch_voice_audio(self, voice_id: int, timeout: float) -> VoiceAudio | None:
        def _select(cursor: Any) -> VoiceAudio | None:
            cursor.execute(_FETCH_AUDIO, (voice_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return VoiceAudio(audio=bytes(row[0]), mime_type=row[1])

        return self._run(timeout, _select)

    def ping(self) -> bool:
        def _select(cursor: Any) -> bool:
            cursor.execute("SELECT 1")
            return cursor.fetchone() is not None

        try:
            return self._run(1.0, _select)
        except StorageUnavailable:
            return False
