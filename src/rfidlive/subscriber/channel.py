"""LiveChannel — the subscriber's end of the bridge WebSocket.

Learn: One control loop owns the connection for its whole life:

  Connecting ─open within connect_timeout─→ Connected ─close─→ Disconnected
      │                                         │
      └─timeout / transport error─→ Errored ←───┘ (read error)

Every non-terminal failure sleeps the backoff delay and loops back to
Connecting. close() is the only way out and ends in Closed.

The network is behind a Connector (an async callable returning a
Transport) so tests can script opens, frames and failures without a
socket.
"""

import asyncio
import json
import ssl
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol

import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from rfidlive.clock import local_now
from rfidlive.config import Settings, settings as default_settings
from rfidlive.events.types import BATCH, PING, PONG, WELCOME
from rfidlive.subscriber.backoff import Backoff
from rfidlive.subscriber.dedup import RecentMessages
from rfidlive.subscriber.states import (
    Closed,
    Connected,
    Connecting,
    ConnectionState,
    Disconnected,
    Errored,
    is_terminal,
)
from rfidlive.subscriber.store import LocalState

logger = structlog.get_logger()

CLIENT_ID_HEADER = "X-Client-Id"

# Close code reported when the peer vanished without a close frame
ABNORMAL_CLOSURE = 1006


class TransportClosed(Exception):
    """The peer closed the channel (cleanly or not)."""

    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = ""):
        super().__init__(f"closed ({code}) {reason}".strip())
        self.code = code
        self.reason = reason


class TransportError(Exception):
    """Opening the channel failed before it was usable."""


class Transport(Protocol):
    async def recv(self) -> str: ...

    async def send(self, text: str) -> None: ...

    async def close(self) -> None: ...


Connector = Callable[[], Awaitable[Transport]]


# ─── websockets transport ────────────────────────────────


class WebsocketsTransport:
    """Adapts a websockets ClientConnection to Transport."""

    def __init__(self, ws):
        self._ws = ws

    async def recv(self) -> str:
        try:
            message = await self._ws.recv()
        except ConnectionClosed as e:
            close = e.rcvd
            raise TransportClosed(
                close.code if close else ABNORMAL_CLOSURE,
                close.reason if close else "",
            ) from e
        if isinstance(message, bytes):
            return message.decode("utf-8", "replace")
        return message

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            close = e.rcvd
            raise TransportClosed(close.code if close else ABNORMAL_CLOSURE) from e

    async def close(self) -> None:
        await self._ws.close()


def websockets_connector(url: str, client_id: str = "", verify_tls: bool = False) -> Connector:
    """Connector for a real bridge URL (ws:// or wss://)."""
    headers = {CLIENT_ID_HEADER: client_id} if client_id else None
    ssl_context = None
    if url.startswith("wss://") and not verify_tls:
        # Bridges usually run on self-signed certificates
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    async def _open() -> Transport:
        kwargs = {"additional_headers": headers, "open_timeout": None}
        if ssl_context is not None:
            kwargs["ssl"] = ssl_context
        try:
            ws = await connect(url, **kwargs)
        except (InvalidURI, InvalidHandshake, OSError) as e:
            raise TransportError(str(e) or type(e).__name__) from e
        return WebsocketsTransport(ws)

    return _open


# ─── Channel ─────────────────────────────────────────────


class LiveChannel:
    """Keeps one live connection open and feeds frames into LocalState."""

    def __init__(
        self,
        state: LocalState,
        config: Optional[Settings] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        dedup: Optional[RecentMessages] = None,
    ):
        self.settings = config or default_settings
        self.state = state
        self.connector = connector or websockets_connector(
            self.settings.live_updates_url,
            self.settings.client_id,
            self.settings.bridge_verify_tls,
        )
        self.connect_timeout = self.settings.connect_timeout
        self.backoff = Backoff(self.settings.reconnect_base_ms, self.settings.reconnect_cap_ms)
        self.dedup = dedup if dedup is not None else RecentMessages(self.settings.dedup_window)
        self._sleep = sleep
        self._closing = False
        self._transport: Optional[Transport] = None
        self._sleep_task: Optional[asyncio.Future] = None
        self._listeners: list[Callable[[ConnectionState], None]] = []
        self.history: list[ConnectionState] = []

    @property
    def current(self) -> Optional[ConnectionState]:
        return self.history[-1] if self.history else None

    def on_state(self, listener: Callable[[ConnectionState], None]) -> None:
        self._listeners.append(listener)

    def _set_state(self, new_state: ConnectionState) -> None:
        if is_terminal(self.current):
            return
        self.history.append(new_state)
        self.state.set_connection(new_state)
        logger.info("subscriber.state", state=new_state.name, detail=_detail(new_state))
        for listener in self._listeners:
            listener(new_state)

    # ─── Control loop ────────────────────────────────────

    async def run(self) -> None:
        """Connect, read, reconnect until close() is called."""
        while not self._closing:
            self._set_state(Connecting(attempt=self.backoff.attempts + 1))
            try:
                transport = await asyncio.wait_for(self.connector(), self.connect_timeout)
            except asyncio.TimeoutError:
                self._set_state(Errored("Connection timeout"))
            except (TransportError, TransportClosed, OSError) as e:
                self._set_state(Errored(str(e) or type(e).__name__))
            else:
                if self._closing:
                    await transport.close()
                    break
                self._transport = transport
                self.backoff.reset()
                self._set_state(Connected(since=local_now(self.settings.timezone)))
                outcome = await self._pump(transport)
                self._transport = None
                if self._closing:
                    break
                self._set_state(outcome)

            if self._closing:
                break
            delay = self.backoff.next_delay()
            logger.debug("subscriber.reconnect_scheduled", delay=delay, attempt=self.backoff.attempts)
            await self._wait(delay)

        self._set_state(Closed())

    async def _wait(self, delay: float) -> None:
        # close() cancels this wait so shutdown is not held up by the backoff
        self._sleep_task = asyncio.ensure_future(self._sleep(delay))
        try:
            await self._sleep_task
        except asyncio.CancelledError:
            if not self._closing:
                raise
        finally:
            self._sleep_task = None

    async def _pump(self, transport: Transport) -> ConnectionState:
        """Read until the channel ends; return the state that describes why."""
        try:
            while True:
                raw = await transport.recv()
                await self.handle_raw(raw, transport)
        except TransportClosed as e:
            return Disconnected(e.code, e.reason)
        except (TransportError, OSError) as e:
            return Errored(str(e) or type(e).__name__)

    async def close(self) -> None:
        """Deliberate shutdown. The run loop ends in Closed."""
        self._closing = True
        if self._sleep_task is not None:
            self._sleep_task.cancel()
        transport = self._transport
        if transport is not None:
            try:
                await transport.close()
            except (TransportError, TransportClosed, OSError) as e:
                logger.debug("subscriber.close_failed", error=str(e))

    # ─── Inbound frames ──────────────────────────────────

    async def handle_raw(self, raw: str, transport: Optional[Transport] = None) -> int:
        """Apply one inbound frame. Returns how many events changed state."""
        if self.dedup.seen(raw):
            logger.debug("subscriber.duplicate_dropped")
            return 0
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("subscriber.bad_frame", error=str(e))
            return 0
        if not isinstance(message, dict):
            return 0

        msg_type = message.get("type")
        if msg_type == PING:
            if transport is not None:
                await transport.send(json.dumps({"type": PONG}))
            return 0
        if msg_type == WELCOME:
            data = message.get("data")
            client_id = data.get("clientId") if isinstance(data, dict) else None
            logger.info("subscriber.welcome", client_id=client_id)
            return 0
        if msg_type == BATCH:
            items = message.get("data")
            if not isinstance(items, list):
                return 0
            return sum(1 for item in items if self._apply(item))
        return 1 if self._apply(message) else 0

    def _apply(self, event: object) -> bool:
        """Apply one event; a malformed one is logged and dropped."""
        try:
            return self.state.apply_event(event)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("subscriber.bad_event", error=str(e) or type(e).__name__)
            return False


def _detail(state: ConnectionState) -> Optional[str]:
    if isinstance(state, Connecting):
        return f"attempt {state.attempt}"
    if isinstance(state, Disconnected):
        return f"code {state.code}"
    if isinstance(state, Errored):
        return state.reason
    if isinstance(state, Connected) and isinstance(state.since, datetime):
        return state.since.isoformat()
    return None
