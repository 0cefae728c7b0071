from __future__ import annotations

import os
import tempfile

os.environ.setdefault("CHECKIN_APP_HOME", tempfile.mkdtemp(prefix="checkin-app-home-"))

import pytest

from checkin_app.core import CipherEngine, CodeDeriver, PayloadCodec
from checkin_app.data import Database
from checkin_app.models import AttendanceRecord, Registration
from checkin_app.services import AttendanceCommitter, AttendanceStorageError, SqliteAttendanceStore

SECRET = "test-secret-key"


class FakeCamera:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.started = False
        self.paused = False
        self.stopped = False
        self.on_payload = None
        self.on_error = None

    def start(self, on_payload, *, on_error=None) -> None:
        if self.error is not None:
            raise self.error
        self.started = True
        self.stopped = False
        self.on_payload = on_payload
        self.on_error = on_error

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.started = False
        self.stopped = True


class _Handle:
    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects cooldown callbacks so tests decide when time passes."""

    def __init__(self) -> None:
        self.calls: list[_Handle] = []

    def call_later(self, delay: float, callback) -> _Handle:
        handle = _Handle(delay, callback)
        self.calls.append(handle)
        return handle

    def fire_all(self) -> None:
        for handle in list(self.calls):
            if not handle.cancelled:
                handle.callback()


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Stands in for ``requests.Session``; replays canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FlakyStore:
    """Wraps a store and fails inserts while ``failing`` is set."""

    def __init__(self, inner: SqliteAttendanceStore) -> None:
        self.inner = inner
        self.failing = False
        self.before_insert = None

    def find(self, registration_id: str, event_id: str):
        return self.inner.find(registration_id, event_id)

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        if self.before_insert is not None:
            self.before_insert()
        if self.failing:
            raise AttendanceStorageError("connection reset")
        return self.inner.insert(record)

    def count_marked_by(self, coordinator_id, since):
        return self.inner.count_marked_by(coordinator_id, since)

    def recent_for_coordinator(self, coordinator_id, limit=10):
        return self.inner.recent_for_coordinator(coordinator_id, limit)


@pytest.fixture
def database(tmp_path) -> Database:
    db = Database(tmp_path / "checkin.db")
    db.initialize()
    return db


@pytest.fixture
def store(database) -> SqliteAttendanceStore:
    return SqliteAttendanceStore(database)


@pytest.fixture
def committer(store) -> AttendanceCommitter:
    return AttendanceCommitter(store)


@pytest.fixture
def cipher() -> CipherEngine:
    return CipherEngine(SECRET)


@pytest.fixture
def codec() -> PayloadCodec:
    return PayloadCodec()


@pytest.fixture
def deriver() -> CodeDeriver:
    return CodeDeriver(SECRET)


@pytest.fixture
def registration() -> Registration:
    return Registration(
        id="abc-123",
        event_id="evt-9",
        name="Priya Raman",
        email="priya@example.com",
        phone="+91 90000 00000",
        college="RIT",
    )


def attendance_count(database: Database) -> int:
    with database.connect() as connection:
        return int(connection.execute("SELECT COUNT(*) FROM attendance").fetchone()[0])
