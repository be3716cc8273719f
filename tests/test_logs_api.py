"""Scan log listing — ordering, cursor, conditional requests."""

import pytest


async def _scan(client, rfid: str):
    r = await client.get("/api/check_rfid", params={"rfid_data": rfid})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_logs_newest_first_with_cursor(client):
    for uid in ("A1", "B2", "C3"):
        await _scan(client, uid)

    r = await client.get("/api/logs")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["count"] == 3
    ids = [row["id"] for row in body["logs"]]
    assert ids == sorted(ids, reverse=True)
    assert body["cursor"] == {"latest_id": ids[0], "requested_after_id": 0}
    assert r.headers["ETag"].startswith('"')
    assert "Last-Modified" in r.headers


@pytest.mark.asyncio
async def test_logs_after_id_returns_only_newer_rows(client):
    await _scan(client, "A1")
    first = (await client.get("/api/logs")).json()
    latest = first["cursor"]["latest_id"]

    await _scan(client, "B2")
    r = await client.get("/api/logs", params={"after_id": latest})
    body = r.json()
    assert [row["rfid_data"] for row in body["logs"]] == ["B2"]
    assert body["cursor"]["requested_after_id"] == latest


@pytest.mark.asyncio
async def test_logs_limit_is_clamped(client):
    for i in range(3):
        await _scan(client, f"T{i}")
    r = await client.get("/api/logs", params={"limit": 2})
    assert r.json()["count"] == 2
    r = await client.get("/api/logs", params={"limit": 0})
    assert r.json()["count"] == 1


@pytest.mark.asyncio
async def test_logs_304_when_etag_matches(client):
    await _scan(client, "A1")
    r = await client.get("/api/logs")
    etag = r.headers["ETag"]

    r = await client.get("/api/logs", headers={"If-None-Match": etag})
    assert r.status_code == 304
    assert r.content == b""

    await _scan(client, "B2")
    r = await client.get("/api/logs", headers={"If-None-Match": etag})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_logs_304_when_not_modified_since(client):
    await _scan(client, "A1")
    r = await client.get("/api/logs")
    last_modified = r.headers["Last-Modified"]

    r = await client.get("/api/logs", headers={"If-Modified-Since": last_modified})
    assert r.status_code == 304


@pytest.mark.asyncio
async def test_validators_ignored_with_a_cursor(client):
    await _scan(client, "A1")
    r = await client.get("/api/logs")
    etag = r.headers["ETag"]

    r = await client.get("/api/logs", params={"after_id": 1}, headers={"If-None-Match": etag})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_found_is_computed_at_read_time(client):
    await _scan(client, "LATE")
    await client.post("/api/registered", json={"rfid_data": "LATE"})

    row = (await client.get("/api/logs")).json()["logs"][0]
    assert row["found"] is True
    assert row["status_text"] == "0"


@pytest.mark.asyncio
async def test_registering_a_scanned_tag_invalidates_etag(client):
    await _scan(client, "LATE")
    r = await client.get("/api/logs")
    etag = r.headers["ETag"]
    assert r.json()["logs"][0]["found"] is False

    await client.post("/api/registered", json={"rfid_data": "LATE"})

    r = await client.get("/api/logs", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert r.headers["ETag"] != etag
    assert r.json()["logs"][0]["found"] is True


@pytest.mark.asyncio
async def test_stale_etag_wins_over_if_modified_since(client):
    await _scan(client, "A1")
    r = await client.get("/api/logs")
    etag, last_modified = r.headers["ETag"], r.headers["Last-Modified"]

    await client.post("/api/registered", json={"rfid_data": "A1"})

    r = await client.get(
        "/api/logs",
        headers={"If-None-Match": etag, "If-Modified-Since": last_modified},
    )
    assert r.status_code == 200
