"""BridgeNotifier — publishing never raises, whatever the bridge does."""

import json

import httpx
import pytest

from rfidlive.config import Settings
from rfidlive.realtime.notifier import BridgeNotifier

BRIDGE = "https://bridge.local:9443/broadcast"


def _notifier(handler, **overrides) -> BridgeNotifier:
    config = Settings(bridge_url=BRIDGE, **overrides)
    return BridgeNotifier(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_publish_posts_type_and_data():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "delivered": 2})

    ok = await _notifier(handler).publish("rfid-log", {"id": 1})

    assert ok is True
    assert str(seen[0].url) == BRIDGE
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == {"type": "rfid-log", "data": {"id": 1}}


@pytest.mark.asyncio
async def test_publish_reports_rejection():
    notifier = _notifier(lambda request: httpx.Response(400, json={"success": False}))
    assert await notifier.publish("rfid-log", {"id": 1}) is False


@pytest.mark.asyncio
async def test_publish_swallows_transport_errors():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    assert await _notifier(handler).publish("rfid-log", {"id": 1}) is False


@pytest.mark.asyncio
async def test_disabled_notifier_sends_nothing():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    assert await _notifier(handler, bridge_enabled=False).publish("rfid-log", {}) is False
    assert seen == []
