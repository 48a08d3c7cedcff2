"""
Shared fixtures: a file-backed SQLite database per test, a controllable
clock, and an audit sink that records what it receives.

File-backed rather than in-memory so that threads in the concurrency tests
each get their own connection and really contend on the database lock.
"""
import threading

import pytest

from app.db.init_db import init_db
from app.db.session import make_engine, make_session_factory
from app.services.audit import AuditSink
from app.services.container import build_services


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAuditSink(AuditSink):
    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def emit(self, audit_event):
        with self._lock:
            self.events.append(audit_event)

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Fresh database file for each test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def services(session_factory, clock, audit_sink):
    return build_services(session_factory, ttl_seconds=300, clock=clock, audit_sink=audit_sink)
