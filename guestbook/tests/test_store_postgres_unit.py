from datetime import datetime, timezone

import psycopg2
import pytest

from guestbook.internal_core import store as store_module
from guestbook.internal_core.contracts import StorageUnavailable, TextNoteDraft, VoiceNoteDraft
from guestbook.internal_core.store import SCHEMA_STEPS, PostgresSubmissionStore


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._result: list = []

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def execute(self, query, params=None) -> None:
        self._conn.executed.append((" ".join(str(query).split()), params))
        if self._conn.fail_on and self._conn.fail_on in query:
            raise psycopg2.OperationalError("canceling statement due to statement timeout")
        self._result = list(self._conn.results.pop(0)) if self._conn.results and "SET " not in query else []

    def fetchone(self):
        return self._result[0] if self._result else None

    def fetchall(self):
        return list(self._result)


class FakeConnection:
    def __init__(self) -> None:
        self.autocommit = False
        self.closed = 0
        self.executed: list = []
        self.results: list = []
        self.fail_on: str | None = None

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)


class FakePool:
    instances: list = []

    def __init__(self, minconn, maxconn, dsn, connect_timeout) -> None:
        self.minconn = minconn
        self.maxconn = maxconn
        self.dsn = dsn
        self.connect_timeout = connect_timeout
        self.conn = FakeConnection()
        self.returned = 0
        self.closed_all = False
        FakePool.instances.append(self)

    def getconn(self) -> FakeConnection:
        return self.conn

    def putconn(self, conn, close=False) -> None:
        self.returned += 1

    def closeall(self) -> None:
        self.closed_all = True


@pytest.fixture
def fake_pool(monkeypatch):
    FakePool.instances = []
    monkeypatch.setattr(store_module.pool, "ThreadedConnectionPool", FakePool)
    return FakePool


def _statements(conn: FakeConnection) -> list[str]:
    return [query for query, _params in conn.executed]


def test_schema_steps_are_idempotent() -> None:
    for step in SCHEMA_STEPS:
        assert "IF NOT EXISTS" in step
    joined = " ".join(SCHEMA_STEPS)
    assert "char_length(text) BETWEEN 1 AND 500" in joined
    assert "octet_length(audio) BETWEEN 1 AND 2097152" in joined
    assert "duration_seconds <= 60" in joined


def test_ensure_schema_runs_every_step(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app", max_connections=3, connect_timeout=7)
    store.ensure_schema()
    pool = fake_pool.instances[0]
    assert (pool.minconn, pool.maxconn, pool.connect_timeout) == (1, 3, 7)
    statements = _statements(pool.conn)
    assert statements[0].startswith("SET statement_timeout")
    assert len(statements) == len(SCHEMA_STEPS) + 1
    assert pool.conn.autocommit is True


def test_insert_text_note_returns_new_id_under_statement_timeout(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    pool.conn.results = [[(17,)]]

    note_id = store.insert_text_note(TextNoteDraft(guest_name="Sam", text="Congrats!"), timeout=3.0)

    assert note_id == 17
    (set_query, set_params), (insert_query, insert_params) = pool.conn.executed
    assert set_query == "SET statement_timeout = %s"
    assert 0 < set_params[0] <= 3000
    assert insert_query.startswith("INSERT INTO messages")
    assert insert_query.endswith("RETURNING id")
    assert insert_params == ("Sam", "Congrats!")
    assert pool.returned == 1


def test_insert_voice_note_sends_binary_audio(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    pool.conn.results = [[(3,)]]
    draft = VoiceNoteDraft(
        guest_name="Ana", note="", audio=b"\x01\x02", mime_type="audio/webm", duration_seconds=10
    )

    assert store.insert_voice_note(draft, timeout=5.0) == 3
    _query, params = pool.conn.executed[1]
    assert params[0] == "Ana"
    assert isinstance(params[2], type(psycopg2.Binary(b"")))
    assert params[3:] == ("audio/webm", 10)


def test_list_queries_order_newest_first_and_pass_limit(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    created = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    pool.conn.results = [
        [(2, "Ana", "second", created), (1, "", "first", created)],
        [(9, "Ana", "", 10, "audio/webm", created)],
    ]

    texts = store.list_text_notes(50, timeout=3.0)
    voices = store.list_voice_notes(20, timeout=3.0)

    assert [item.id for item in texts] == [2, 1]
    assert texts[0].created_at == created
    assert voices[0].duration_seconds == 10
    assert voices[0].audio_path == "/voice-messages/9/audio"
    list_queries = [(q, p) for q, p in pool.conn.executed if q.startswith("SELECT")]
    assert all("ORDER BY created_at DESC, id DESC LIMIT %s" in q for q, _p in list_queries)
    assert [p for _q, p in list_queries] == [(50,), (20,)]


def test_fetch_voice_audio_converts_buffer_and_reports_absence(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    pool.conn.results = [[(memoryview(b"abc"), "audio/ogg")], []]

    clip = store.fetch_voice_audio(4, timeout=3.0)
    assert clip is not None
    assert clip.audio == b"abc"
    assert isinstance(clip.audio, bytes)
    assert clip.mime_type == "audio/ogg"
    assert store.fetch_voice_audio(5, timeout=3.0) is None


def test_driver_errors_become_storage_unavailable(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    pool.conn.fail_on = "INSERT INTO messages"

    with pytest.raises(StorageUnavailable) as excinfo:
        store.insert_text_note(TextNoteDraft(guest_name="", text="hi"), timeout=3.0)
    assert "statement timeout" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, psycopg2.OperationalError)
    assert pool.returned == 1


def test_exhausted_pool_waits_then_reports_storage_unavailable(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app", max_connections=1)
    store.connect()
    assert store._slots.acquire(timeout=1)
    try:
        with pytest.raises(StorageUnavailable) as excinfo:
            store.list_text_notes(10, timeout=0.05)
    finally:
        store._slots.release()
    assert "timed out waiting" in str(excinfo.value)


def test_ping_and_close(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app")
    store.connect()
    pool = fake_pool.instances[0]
    pool.conn.results = [[(1,)]]
    assert store.ping() is True
    pool.conn.fail_on = "SELECT 1"
    assert store.ping() is False
    store.close()
    assert pool.closed_all is True


def test_rejects_empty_pool_size() -> None:
    with pytest.raises(ValueError):
        PostgresSubmissionStore("postgres://db/app", max_connections=0)


def test_first_connection_respects_caller_budget(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app", connect_timeout=5)
    store.list_text_notes(10, timeout=3.0)
    assert fake_pool.instances[0].connect_timeout <= 3


def test_short_budget_still_gets_a_positive_connect_timeout(fake_pool) -> None:
    store = PostgresSubmissionStore("postgres://db/app", connect_timeout=5)
    store.list_voice_notes(10, timeout=0.5)
    assert fake_pool.instances[0].connect_timeout == 1
