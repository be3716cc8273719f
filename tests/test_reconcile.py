"""Reconciler tests — full vs incremental polls, 304s, failures.

Learn: httpx.MockTransport plays the event source. The handler sees every
request the reconciler makes, so tests can assert on cursors and
validators as well as on the resulting LocalState.
"""

import httpx
import pytest
import pytest_asyncio

from rfidlive.config import Settings
from rfidlive.main import app
from rfidlive.subscriber.normalize import normalize_log_entry
from rfidlive.subscriber.reconcile import Reconciler
from rfidlive.subscriber.store import LocalState


def _log(log_id: int, rfid: str = "A") -> dict:
    return {"id": log_id, "rfid_data": rfid, "time_log": "2026-03-01 08:00:00", "rfid_status": True}


class FakeEventSource:
    """Scripted /api/logs and /api/registered responses, recording requests."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.logs: list[dict] = []
        self.registered: list[dict] = []
        self.logs_etag = '"logs-v1"'
        self.reg_etag = '"reg-v1"'
        self.last_modified = "2026-03-01 08:00:00"
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, json={"detail": "db down"})
        if request.url.path == "/api/logs":
            return self._logs(request)
        if request.url.path == "/api/registered":
            return self._registered(request)
        return httpx.Response(404, json={"error": "Not found"})

    def _logs(self, request):
        after_id = int(request.url.params.get("after_id", 0))
        if after_id == 0 and request.headers.get("if-none-match") == self.logs_etag:
            return httpx.Response(304, headers={"ETag": self.logs_etag})
        rows = [r for r in self.logs if r["id"] > after_id]
        return httpx.Response(
            200,
            headers={"ETag": self.logs_etag},
            json={"success": True, "count": len(rows), "logs": rows},
        )

    def _registered(self, request):
        if request.headers.get("if-none-match") == self.reg_etag:
            return httpx.Response(304, headers={"ETag": self.reg_etag})
        since = request.url.params.get("updated_since")
        return httpx.Response(
            200,
            headers={"ETag": self.reg_etag},
            json={
                "success": True,
                "count": len(self.registered),
                "registered": self.registered,
                "last_modified": self.last_modified,
                "filtered_since": since is not None,
            },
        )

    def last(self, path: str) -> httpx.Request:
        return [r for r in self.requests if r.url.path == path][-1]


@pytest.fixture()
def source():
    return FakeEventSource()


@pytest.fixture()
def state():
    return LocalState(max_entries=50, tz="Asia/Manila")


@pytest_asyncio.fixture()
async def reconciler(state, source):
    r = Reconciler(state, Settings(), transport=httpx.MockTransport(source))
    yield r
    await r.aclose()


@pytest.mark.asyncio
async def test_full_sync_replaces_both_lists(reconciler, state, source):
    source.logs = [_log(3), _log(2), _log(1)]
    source.registered = [{"id": 1, "rfid_data": "A", "rfid_status": True}]
    state.logs.push(normalize_log_entry({"id": 999_999, "rfid_data": "STALE"}, state.tz))

    await reconciler.sync(force_full=True)

    assert [e.id for e in state.logs] == [3, 2, 1]
    assert [r.id for r in state.registrations.items] == [1]
    assert reconciler.logs_etag == '"logs-v1"'
    assert reconciler.registered_since == "2026-03-01 08:00:00"
    assert state.online is True

    first = source.last("/api/logs")
    assert "after_id" not in first.url.params
    assert first.url.params["limit"] == "50"


@pytest.mark.asyncio
async def test_incremental_sync_uses_cursor_and_merges(reconciler, state, source):
    source.logs = [_log(2), _log(1)]
    await reconciler.fetch_logs(force_full=True)

    source.logs = [_log(4), _log(3), _log(2), _log(1)]
    changed = await reconciler.fetch_logs()

    request = source.last("/api/logs")
    assert request.url.params["after_id"] == "2"
    assert "if-none-match" not in request.headers
    assert changed is True
    assert [e.id for e in state.logs] == [4, 3, 2, 1]


@pytest.mark.asyncio
async def test_etag_is_sent_only_without_a_cursor(reconciler, state, source):
    # Empty log: no cursor, so the second poll revalidates with the ETag
    await reconciler.fetch_logs(force_full=True)
    changed = await reconciler.fetch_logs()

    assert source.last("/api/logs").headers["if-none-match"] == '"logs-v1"'
    assert changed is False
    assert len(state.logs) == 0


@pytest.mark.asyncio
async def test_registered_304_leaves_store_untouched(reconciler, state, source):
    source.registered = [{"id": 1, "rfid_data": "A"}]
    await reconciler.fetch_registered(force_full=True)

    assert await reconciler.fetch_registered() is False
    request = source.last("/api/registered")
    assert request.headers["if-none-match"] == '"reg-v1"'
    assert request.url.params["updated_since"] == "2026-03-01 08:00:00"
    assert [r.id for r in state.registrations.items] == [1]


@pytest.mark.asyncio
async def test_filtered_registered_response_merges(reconciler, state, source):
    source.registered = [{"id": 1, "rfid_data": "A"}, {"id": 2, "rfid_data": "B"}]
    await reconciler.fetch_registered(force_full=True)

    source.reg_etag = '"reg-v2"'
    source.registered = [{"id": 2, "rfid_data": "B", "rfid_status": True}]
    await reconciler.fetch_registered()

    assert [r.id for r in state.registrations.items] == [1, 2]
    assert state.registrations.get(2).rfid_status is True


@pytest.mark.asyncio
async def test_failure_marks_offline_and_clears_validators(reconciler, state, source):
    await reconciler.sync(force_full=True)
    assert reconciler.logs_etag is not None

    source.fail = True
    await reconciler.sync()

    assert state.online is False
    assert "Failed to fetch" in state.last_error
    # The log poll had no cursor (empty cache), so its ETag is dropped;
    # the registry poll was incremental and keeps its validators
    assert reconciler.logs_etag is None
    assert reconciler.registered_etag == '"reg-v1"'

    source.fail = False
    await reconciler.sync()
    assert state.online is True
    assert state.last_error == ""


@pytest.mark.asyncio
async def test_unreachable_source_never_raises(state):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    reconciler = Reconciler(state, Settings(), transport=httpx.MockTransport(refuse))
    try:
        await reconciler.sync(force_full=True)
    finally:
        await reconciler.aclose()
    assert state.online is False


# ─── Against the real event source ───────────────────────


@pytest.mark.asyncio
async def test_status_only_change_reaches_the_registry(client, state):
    """A scan flips a status without adding rows; the next poll must see it."""
    await client.post("/api/registered", json={"rfid_data": "AA"})
    await client.post("/api/registered", json={"rfid_data": "BB"})
    reconciler = Reconciler(
        state,
        Settings(api_base_url="http://test/api"),
        transport=httpx.ASGITransport(app=app),
    )
    try:
        await reconciler.sync(force_full=True)
        bb = next(r for r in state.registrations.items if r.rfid_data == "BB")
        assert bb.rfid_status is False

        r = await client.get("/api/check_rfid", params={"rfid_data": "BB"})
        assert r.json()["status"] == 1

        changed = await reconciler.fetch_registered()

        assert changed is True
        assert state.registrations.get(bb.id).rfid_status is True
    finally:
        await reconciler.aclose()
