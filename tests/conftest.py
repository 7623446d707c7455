"""
Pytest configuration and shared fixtures.

Environment variables are set here before any chatroom import so the
settings, engine and app are built against a throwaway SQLite database
with the background sweeper disabled. Tests drive sweeps explicitly.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_chatroom.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["SWEEPER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from chatroom.config import get_settings
get_settings.cache_clear()

from chatroom.gateway import SessionGateway
from chatroom.main import app, get_gateway
from chatroom.presence import PresenceRegistry
from chatroom.storage import Base, SessionLocal, engine
from chatroom.sweeper import EvictionSweeper

STALE_AFTER_MS = 10_000
START_MS = 1_700_000_000_000


class FakeClock:
    """Controllable clock returning epoch milliseconds."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return PresenceRegistry(clock=clock, stale_after_ms=STALE_AFTER_MS, broadcast_target="Todos")


@pytest.fixture
def sweeper(registry):
    return EvictionSweeper(registry, session_factory=SessionLocal, interval_seconds=0.01)


@pytest.fixture
def db():
    """Fresh schema and a session for direct registry/gateway tests."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(registry):
    """Create test client with fresh database, wired to the fake clock."""
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_gateway] = lambda: SessionGateway(registry)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def join(client, name: str):
    """Helper to join the room and assert success."""
    response = client.post("/participants", json={"name": name})
    assert response.status_code == 201, response.text
    return response


def post(client, sender: str, to: str, text: str, type: str = "message"):
    """Helper to post a message as `sender`."""
    return client.post(
        "/messages",
        json={"to": to, "text": text, "type": type},
        headers={"User": sender},
    )
