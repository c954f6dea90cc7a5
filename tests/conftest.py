"""Shared test fixtures for the Lynx SDR test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("PIPEFY_API_KEY", "test-pipefy-key-456")
    os.environ.setdefault("PIPEFY_PIPE_ID", "301")
    os.environ.setdefault("CALENDAR_API_KEY", "test-calcom-key-789")
    os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")


class FakeClock:
    """Controllable ``now()`` for session-expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """A conversation store over a fresh in-memory SQLite database."""
    from lynx_sdr.db import create_db_engine, create_session_factory, init_db
    from lynx_sdr.services.store import ConversationStore

    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield ConversationStore(
        create_session_factory(engine),
        session_timeout=timedelta(minutes=30),
        clock=clock,
    )
    engine.dispose()


@pytest.fixture
def slot_cache():
    from lynx_sdr.services.slot_cache import SlotCache

    return SlotCache(max_entries=100)


@pytest.fixture
def make_slots():
    """Factory for ``n`` hourly slots starting tomorrow at 13:00 UTC."""
    from lynx_sdr.services.calendar_client import TimeSlot

    def _make(n: int = 5):
        base = datetime(2026, 10, 20, 13, 0, tzinfo=UTC)
        return [TimeSlot(start=base + timedelta(hours=i)) for i in range(n)]

    return _make


@pytest.fixture
def calendar(make_slots):
    """Mock Cal.com client returning five slots and a fixed booking."""
    from lynx_sdr.services.calendar_client import Booking

    mock = MagicMock()
    mock.timezone = "America/Sao_Paulo"
    mock.list_slots.return_value = make_slots(5)
    mock.book.return_value = Booking(event_id="evt-1", meeting_link="https://meet.example/abc")
    return mock


@pytest.fixture
def crm():
    mock = MagicMock()
    mock.register_no_interest_lead.return_value = "card-lost-1"
    mock.register_qualified_lead.return_value = "card-won-1"
    return mock


@pytest.fixture
def dispatcher(store, slot_cache, calendar, crm):
    from lynx_sdr.dispatcher import FunctionDispatcher

    return FunctionDispatcher(store, slot_cache, calendar, crm)


@pytest.fixture
def session_id(store):
    """An active session already present in the store."""
    store.create_session("sess-1")
    return "sess-1"


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict | None, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.content = b"" if data is None else b"{...}"
        return mock

    return _make
