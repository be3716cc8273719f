"""Broadcast bridge — HTTP submissions in, WebSocket fan-out out.

Learn: The bridge is fire-and-forget. Submitted events sit in a two-level
priority buffer for at most one short flush delay, then go out to every
connected subscriber as one serialized message:

  submit() → PendingBatch(high | low) → flush() → send_text() × N

The buffer runs an explicit little state machine:

  idle → scheduled → flushing → idle

so "at most one flush is scheduled" is a property you can assert on,
not an accident of a nullable timer handle.

Nothing here is durable. A restart drops queued events and every
connection; subscribers reconnect and catch up by polling the event
source.
"""

import asyncio
import contextlib
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog
from starlette.websockets import WebSocketDisconnect, WebSocketState

from rfidlive.clock import iso_millis
from rfidlive.config import Settings, settings as default_settings
from rfidlive.events.types import (
    BATCH,
    DEFAULT_EVENT_TYPE,
    HIGH_PRIORITY_TYPES,
    PING,
    WELCOME,
)

logger = structlog.get_logger()

WELCOME_MESSAGE = "Connected to RFID live updates"

# Close codes sent to subscribers
CLOSE_REPLACED = 4000
CLOSE_GOING_AWAY = 1001

# What a failed write to one subscriber looks like
SEND_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


def dumps(message: Any) -> str:
    """Compact JSON, the same bytes for every subscriber."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


class Priority(str, Enum):
    HIGH = "high"
    LOW = "low"


class FlushState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FLUSHING = "flushing"


def build_event(payload: Any, received_at: str) -> dict[str, Any]:
    """Wrap a submitted body in the broadcast envelope.

    A body shaped like {type, data} keeps both; anything else becomes the
    data of a default-typed event.
    """
    event_type = DEFAULT_EVENT_TYPE
    data = payload
    if isinstance(payload, dict):
        if isinstance(payload.get("type"), str) and payload["type"]:
            event_type = payload["type"]
        if payload.get("data") is not None:
            data = payload["data"]
    return {"type": event_type, "data": data, "receivedAt": received_at}


def classify(event: dict[str, Any]) -> Priority:
    return Priority.HIGH if event.get("type") in HIGH_PRIORITY_TYPES else Priority.LOW


@dataclass
class PendingBatch:
    """Events waiting for the next flush, split by priority."""

    high: list[dict] = field(default_factory=list)
    low: list[dict] = field(default_factory=list)
    state: FlushState = FlushState.IDLE

    def add(self, event: dict, priority: Priority) -> None:
        if priority is Priority.HIGH:
            self.high.append(event)
        else:
            self.low.append(event)

    def take(self, low_cap: int) -> list[dict]:
        """Drain every high item and at most low_cap low items (oldest first)."""
        items = self.high + self.low[:low_cap]
        self.high = []
        self.low = self.low[low_cap:]
        return items

    def __len__(self) -> int:
        return len(self.high) + len(self.low)


@dataclass
class BridgeConnection:
    """One live subscriber channel.

    `channel` is a Starlette WebSocket in production; anything with
    send_text/close and the two state attributes works.
    """

    client_id: str
    channel: Any
    connected_at: str
    is_alive: bool = True

    @property
    def is_ready(self) -> bool:
        return (
            self.channel.client_state == WebSocketState.CONNECTED
            and self.channel.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        await self.channel.send_text(text)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self.channel.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.channel.close(code=code, reason=reason)
        except SEND_ERRORS as e:
            logger.debug("bridge.close_failed", client_id=self.client_id, error=str(e))


@dataclass
class BridgeStats:
    """Runtime counters, exposed for logs and tests."""

    received: int = 0
    flushes: int = 0
    messages_sent: int = 0
    send_failures: int = 0
    reaped: int = 0
    replaced: int = 0


class Bridge:
    """In-process fan-out hub. Construct one per listener.

    Usage:
        bridge = Bridge(settings)
        app = create_app(bridge)   # binds it to HTTP + WebSocket routes
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings
        self.flush_delay = self.settings.flush_delay_ms / 1000
        self.low_priority_cap = self.settings.flush_low_priority_cap
        self.heartbeat_interval = self.settings.heartbeat_interval
        self.connections: dict[str, BridgeConnection] = {}
        self.batch = PendingBatch()
        self.stats = BridgeStats()
        self._flush_task: Optional[asyncio.Task] = None
        self._flush_lock = asyncio.Lock()
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    def now(self) -> str:
        return iso_millis(tz=self.settings.timezone)

    # ─── Submissions ──────────────────────────────────────

    def submit(self, payload: Any) -> int:
        """Queue one decoded event body. Returns the current subscriber count.

        The count is advisory: it says who is connected now, not who will
        receive the event.
        """
        event = build_event(payload, self.now())
        priority = classify(event)
        self.batch.add(event, priority)
        self.stats.received += 1
        logger.debug(
            "bridge.queued",
            event_type=event["type"],
            priority=priority.value,
            pending=len(self.batch),
        )
        if self.batch.state is FlushState.IDLE:
            self._schedule_flush()
        return self.connection_count

    def _schedule_flush(self) -> None:
        self.batch.state = FlushState.SCHEDULED
        self._flush_task = asyncio.create_task(self._flush_after(self.flush_delay))

    async def _flush_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.flush()

    async def flush(self) -> Optional[dict]:
        """Send one batch to every ready subscriber. Returns what was sent."""
        current = asyncio.current_task()
        # The slot only ever holds a timer that has not reached flush() yet:
        # a timer clears it on entry, before its first await.
        if self._flush_task is not None and self._flush_task is not current:
            self._flush_task.cancel()
        self._flush_task = None

        # One fan-out at a time keeps batches in order on every socket
        async with self._flush_lock:
            self.batch.state = FlushState.FLUSHING
            try:
                items = self.batch.take(self.low_priority_cap)
                if not items:
                    return None
                message = items[0] if len(items) == 1 else {
                    "type": BATCH,
                    "data": items,
                    "count": len(items),
                }
                delivered = await self._fan_out(dumps(message))
                self.stats.flushes += 1
                logger.debug(
                    "bridge.flushed",
                    items=len(items),
                    delivered=delivered,
                    backlog=len(self.batch.low),
                )
                return message
            finally:
                self.batch.state = FlushState.IDLE
                # Excess low-priority items ride the next flush
                if len(self.batch):
                    self._schedule_flush()

    async def _fan_out(self, text: str) -> int:
        targets = [c for c in self.connections.values() if c.is_ready]
        results = await asyncio.gather(*(self.send_to(c, text) for c in targets))
        sent = sum(1 for ok in results if ok)
        self.stats.messages_sent += sent
        return sent

    async def send_to(self, connection: BridgeConnection, text: str) -> bool:
        """Write to one subscriber; a failure drops that subscriber only."""
        try:
            await connection.send(text)
            return True
        except SEND_ERRORS as e:
            self.stats.send_failures += 1
            logger.warning(
                "bridge.send_failed",
                client_id=connection.client_id,
                error=str(e) or type(e).__name__,
            )
            self.unregister(connection)
            return False

    # ─── Connections ──────────────────────────────────────

    async def close_existing(self, client_id: str) -> None:
        """Close and forget whatever is registered under client_id."""
        previous = self.connections.pop(client_id, None)
        if previous is None:
            return
        self.stats.replaced += 1
        logger.info("bridge.client_replaced", client_id=client_id)
        await previous.close(code=CLOSE_REPLACED, reason="Replaced by newer connection")

    async def register(
        self, channel: Any, client_id: Optional[str] = None
    ) -> BridgeConnection:
        """Track an accepted channel and greet it.

        At most one connection per client id: an older one is closed first.
        """
        client_id = client_id or uuid.uuid4().hex
        await self.close_existing(client_id)

        connection = BridgeConnection(
            client_id=client_id,
            channel=channel,
            connected_at=self.now(),
        )
        self.connections[client_id] = connection
        logger.info(
            "bridge.client_connected",
            client_id=client_id,
            clients=self.connection_count,
        )

        await self.send_to(connection, dumps({
            "type": WELCOME,
            "data": {
                "message": WELCOME_MESSAGE,
                "connectedAt": connection.connected_at,
                "clientId": client_id,
            },
        }))
        return connection

    def unregister(self, connection: BridgeConnection) -> None:
        # A replaced connection disconnecting late must not evict its successor
        if self.connections.get(connection.client_id) is connection:
            del self.connections[connection.client_id]
            logger.info(
                "bridge.client_disconnected",
                client_id=connection.client_id,
                clients=self.connection_count,
            )

    def mark_alive(self, connection: BridgeConnection) -> None:
        connection.is_alive = True

    # ─── Liveness ─────────────────────────────────────────

    async def sweep(self) -> int:
        """Reap silent connections and probe the rest. Returns how many were reaped."""
        reaped = 0
        probe = dumps({"type": PING})
        for connection in list(self.connections.values()):
            if not connection.is_alive:
                reaped += 1
                self.unregister(connection)
                logger.info("bridge.client_timed_out", client_id=connection.client_id)
                await connection.close(code=CLOSE_GOING_AWAY, reason="Heartbeat timeout")
                continue
            connection.is_alive = False
            if connection.is_ready:
                await self.send_to(connection, probe)
        self.stats.reaped += reaped
        return reaped

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("bridge.sweep_error")

    # ─── Lifecycle ────────────────────────────────────────

    def start(self) -> None:
        """Start the heartbeat sweep (must be called inside a running loop)."""
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
            logger.info("bridge.heartbeat_started", interval=self.heartbeat_interval)

    async def stop(self) -> None:
        """Cancel timers and close every connection. Queued events are dropped."""
        # Empty the buffer first so a cancelled flush does not reschedule itself
        dropped = len(self.batch)
        self.batch = PendingBatch()
        for task in (self._heartbeat_task, self._flush_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._heartbeat_task = None
        self._flush_task = None

        for connection in list(self.connections.values()):
            await connection.close(code=CLOSE_GOING_AWAY, reason="Server shutting down")
        self.connections.clear()
        logger.info("bridge.stopped", dropped_events=dropped, stats=vars(self.stats))
