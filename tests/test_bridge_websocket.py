"""End-to-end bridge tests over a real WebSocket (Starlette TestClient).

Learn: TestClient runs the app, lifespan included, on a background event
loop, so the bridge's flush task and heartbeat live there too. The test
side uses blocking receive calls; the subscriber side is driven with
asyncio.run() on the frames it receives.
"""

import asyncio
import json

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from rfidlive.config import Settings
from rfidlive.realtime.app import create_app
from rfidlive.realtime.bridge import CLOSE_REPLACED, Bridge
from rfidlive.subscriber.channel import LiveChannel
from rfidlive.subscriber.store import LocalState


@pytest.fixture()
def live_settings():
    return Settings(flush_delay_ms=0, heartbeat_interval=3600.0)


@pytest.fixture()
def live_client(live_settings):
    bridge = Bridge(live_settings)
    with TestClient(create_app(bridge)) as client:
        yield client


def test_connect_gets_welcome(live_client):
    with live_client.websocket_connect("/", headers={"X-Client-Id": "dash-1"}) as ws:
        welcome = ws.receive_json()
    assert welcome["type"] == "welcome"
    assert welcome["data"]["clientId"] == "dash-1"
    assert welcome["data"]["message"] == "Connected to RFID live updates"


def test_ws_path_alias_and_query_client_id(live_client):
    with live_client.websocket_connect("/ws?client_id=tab-7") as ws:
        assert ws.receive_json()["data"]["clientId"] == "tab-7"


def test_broadcast_reaches_subscriber_cache(live_client, live_settings):
    """POST an rfid-log with id 42; the subscriber's cache ends up holding it."""
    state = LocalState(max_entries=50, tz=live_settings.timezone)
    channel = LiveChannel(state, live_settings, connector=lambda: None)

    with live_client.websocket_connect("/") as ws:
        asyncio.run(channel.handle_raw(ws.receive_text()))  # welcome

        r = live_client.post(
            "/broadcast",
            json={"type": "rfid-log", "data": {"id": 42, "rfid_data": "04A1B2C3", "rfid_status": True}},
        )
        assert r.json() == {"success": True, "delivered": 1}

        raw = ws.receive_text()
        changed = asyncio.run(channel.handle_raw(raw))

    assert changed == 1
    assert json.loads(raw)["receivedAt"]
    entry = state.logs.entries[0]
    assert entry.id == 42
    assert entry.rfid_data == "04A1B2C3"
    assert entry.status_text == "1"
    assert entry.found is True
    assert state.logs.latest_id == 42


def test_burst_arrives_as_one_batch(live_settings):
    # A flush delay long enough for all three POSTs to land in one batch
    bridge = Bridge(live_settings.model_copy(update={"flush_delay_ms": 500}))
    with TestClient(create_app(bridge)) as client:
        with client.websocket_connect("/") as ws:
            ws.receive_json()
            for i in range(3):
                client.post("/broadcast", json={"type": "rfid-log", "data": {"id": i}})
            message = ws.receive_json()

    assert message["type"] == "batch"
    assert message["count"] == 3
    assert [e["data"]["id"] for e in message["data"]] == [0, 1, 2]


def test_duplicate_client_id_closes_older_connection(live_client):
    headers = {"X-Client-Id": "kiosk"}
    with live_client.websocket_connect("/", headers=headers) as first:
        first.receive_json()
        with live_client.websocket_connect("/", headers=headers) as second:
            second.receive_json()

            with pytest.raises(WebSocketDisconnect) as closed:
                first.receive_text()
            assert closed.value.code == CLOSE_REPLACED

            assert live_client.get("/health").json() == {"status": "ok", "clients": 1}

            # The newer connection keeps receiving
            live_client.post("/broadcast", json={"type": "rfid-log", "data": {"id": 1}})
            assert second.receive_json()["data"]["id"] == 1


def test_ping_is_answered_with_pong(live_client):
    with live_client.websocket_connect("/") as ws:
        ws.receive_json()
        ws.send_text(json.dumps({"type": "ping"}))
        assert ws.receive_json() == {"type": "pong"}


def test_disconnect_unregisters(live_client):
    with live_client.websocket_connect("/") as ws:
        ws.receive_json()
        assert live_client.get("/health").json()["clients"] == 1
    # Leaving the block waits for the handler, finally included
    assert live_client.get("/health").json()["clients"] == 0
