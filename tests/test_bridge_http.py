"""Bridge HTTP surface — /broadcast, /health, CORS and unknown routes."""

import json

import pytest

from rfidlive.config import Settings
from rfidlive.realtime.app import create_app
from rfidlive.realtime.bridge import Bridge, FlushState


@pytest.mark.asyncio
async def test_broadcast_accepts_event(bridge_client, bridge, make_channel):
    await bridge.register(make_channel(), "dash")

    r = await bridge_client.post("/broadcast", json={"type": "rfid-log", "data": {"id": 1}})

    assert r.status_code == 200
    assert r.json() == {"success": True, "delivered": 1}
    assert len(bridge.batch) == 1
    assert bridge.batch.state is FlushState.SCHEDULED


@pytest.mark.asyncio
async def test_broadcast_with_no_subscribers_still_succeeds(bridge_client):
    r = await bridge_client.post("/broadcast", json={"id": 5})
    assert r.status_code == 200
    assert r.json() == {"success": True, "delivered": 0}


@pytest.mark.asyncio
async def test_empty_body_is_an_empty_event(bridge_client, bridge):
    r = await bridge_client.post("/broadcast", content=b"")
    assert r.status_code == 200
    assert bridge.batch.high[0]["data"] == {}


@pytest.mark.asyncio
async def test_broadcast_rejects_malformed_json(bridge_client, bridge):
    r = await bridge_client.post(
        "/broadcast",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Invalid JSON payload"}
    assert len(bridge.batch) == 0


@pytest.mark.asyncio
async def test_broadcast_rejects_oversized_body():
    from httpx import ASGITransport, AsyncClient

    bridge = Bridge(Settings(max_body_bytes=64, flush_delay_ms=60_000))
    transport = ASGITransport(app=create_app(bridge))
    try:
        async with AsyncClient(transport=transport, base_url="http://bridge") as c:
            body = json.dumps({"type": "rfid-log", "data": {"pad": "x" * 200}})
            r = await c.post("/broadcast", content=body)
        assert r.status_code == 413
        assert r.json() == {"success": False, "error": "Payload too large"}
        assert len(bridge.batch) == 0
    finally:
        await bridge.stop()


@pytest.mark.asyncio
async def test_health_reports_client_count(bridge_client, bridge, make_channel):
    r = await bridge_client.get("/health")
    assert r.json() == {"status": "ok", "clients": 0}

    await bridge.register(make_channel(), "a")
    await bridge.register(make_channel(), "b")
    r = await bridge_client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "clients": 2}


@pytest.mark.asyncio
async def test_options_preflight_is_204_with_cors_headers(bridge_client):
    r = await bridge_client.options("/broadcast")
    assert r.status_code == 204
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert r.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
    assert "X-Client-Id" in r.headers["Access-Control-Allow-Headers"]


@pytest.mark.asyncio
async def test_cors_headers_on_normal_responses(bridge_client):
    r = await bridge_client.get("/health")
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(bridge_client):
    r = await bridge_client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not found"}


@pytest.mark.asyncio
async def test_wrong_method_on_known_route_is_404(bridge_client):
    r = await bridge_client.get("/broadcast")
    assert r.status_code == 404
    assert r.json() == {"error": "Not found"}

    r = await bridge_client.post("/health")
    assert r.status_code == 404
