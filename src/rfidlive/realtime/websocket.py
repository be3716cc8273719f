"""WebSocket endpoint — live scan events for dashboards.

Learn: Each client connects to / (or /ws) and may name itself with an
X-Client-Id header (or ?client_id=). The handler:
1. Closes any older connection that claimed the same client id
2. Accepts and registers the socket with the bridge (which greets it)
3. Reads inbound frames only to track liveness and answer pings
4. Unregisters on disconnect

Outbound traffic never flows through this handler: the bridge's flush
task writes to every registered socket directly.

This is a long-lived connection — one per dashboard tab.
"""

import json

import structlog
from fastapi import APIRouter, WebSocket

from rfidlive.events.types import PING, PONG
from rfidlive.realtime.bridge import Bridge, dumps

logger = structlog.get_logger()
router = APIRouter()

CLIENT_ID_HEADER = "X-Client-Id"


def _client_id(websocket: WebSocket) -> str:
    return (
        websocket.headers.get(CLIENT_ID_HEADER)
        or websocket.query_params.get("client_id")
        or ""
    ).strip()


def _is_ping(text: str) -> bool:
    try:
        msg = json.loads(text)
    except json.JSONDecodeError:
        return False
    return isinstance(msg, dict) and msg.get("type") == PING


@router.websocket("/")
@router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Subscriber channel. Any inbound frame counts as a heartbeat."""
    bridge: Bridge = websocket.app.state.bridge
    client_id = _client_id(websocket) or None

    # Replace before accepting, so the old socket is closed first
    if client_id:
        await bridge.close_existing(client_id)

    await websocket.accept()
    connection = await bridge.register(websocket, client_id)
    log = logger.bind(client_id=connection.client_id)

    try:
        while True:
            # Raw receive: after a server-side close (replacement, reaping)
            # receive_text() would raise instead of waiting for the client.
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                log.debug("bridge.socket_closed", code=message.get("code"))
                break
            bridge.mark_alive(connection)
            text = message.get("text")
            if text is not None and _is_ping(text) and connection.is_ready:
                await bridge.send_to(connection, dumps({"type": PONG}))
    finally:
        bridge.unregister(connection)
