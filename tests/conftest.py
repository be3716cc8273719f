"""Test fixtures — in-memory database, captured notifications, app clients.

Learn: Testing pattern for async SQLAlchemy + FastAPI + aiosqlite:

1. Each test gets its own in-memory SQLite engine. StaticPool keeps the
   one underlying connection alive, so every session sees the same tables.
2. get_db is overridden to yield a session bound to that engine.
3. get_notifier is overridden with a recorder, so tests can assert on
   what would have been POSTed to the bridge without a bridge running.

Bridge tests get a Bridge with a long flush delay and heartbeat, so
nothing fires on its own unless the test waits for it.
"""

import asyncio
import json
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from rfidlive.config import Settings
from rfidlive.db.engine import get_db, init_db
from rfidlive.main import app
from rfidlive.realtime.app import create_app
from rfidlive.realtime.bridge import Bridge
from rfidlive.realtime.notifier import get_notifier


# ─── Event source ─────────────────────────────────────────


class RecordingNotifier:
    """Stands in for BridgeNotifier; remembers every published event."""

    def __init__(self):
        self.events: list[dict[str, Any]] = []

    async def publish(self, event_type: str, data: dict) -> bool:
        self.events.append({"type": event_type, "data": data})
        return True

    def of_type(self, event_type: str) -> list[dict]:
        return [e for e in self.events if e["type"] == event_type]


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture()
async def client(db_session, notifier):
    """HTTP client for the event source with DB and notifier overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Bridge ───────────────────────────────────────────────


class FakeChannel:
    """Duck-typed WebSocket: records what the bridge sends and closes."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[str] = []
        self.closed: Optional[tuple[int, Optional[str]]] = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.gate: Optional[asyncio.Event] = None  # when set, sends wait on it

    async def send_text(self, text: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    @property
    def messages(self) -> list[dict]:
        return [json.loads(t) for t in self.sent]

    def of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


@pytest.fixture()
def make_channel():
    """Factory for FakeChannel objects."""
    return FakeChannel


@pytest.fixture()
def bridge_settings():
    return Settings(flush_delay_ms=60_000, heartbeat_interval=3600.0)


@pytest_asyncio.fixture()
async def bridge(bridge_settings):
    b = Bridge(bridge_settings)
    yield b
    await b.stop()


@pytest_asyncio.fixture()
async def bridge_client(bridge):
    """HTTP client for a bridge app (no lifespan: no heartbeat task)."""
    transport = ASGITransport(app=create_app(bridge))
    async with AsyncClient(transport=transport, base_url="http://bridge") as ac:
        yield ac
