"""Reconciler — periodic pull from the event source.

Learn: The live channel can drop events (bridge restart, reconnect gap,
queue overflow). The reconciler closes those gaps by polling:

- at startup, a full fetch of both lists (no cursors)
- then every poll_interval, an incremental fetch:
    logs       ?after_id=<newest id in cache>    → merge
    registered ?updated_since=<last_modified>    → merge
  and 304s cost nothing.

Pull results go through the same normalization and id-merge as pushes,
so the two paths can race freely. Errors never escape the loop: they
flip the state offline and the next tick tries again.
"""

import asyncio
from typing import Optional

import httpx
import structlog

from rfidlive.config import Settings, settings as default_settings
from rfidlive.subscriber.normalize import normalize_log_entry, normalize_registration
from rfidlive.subscriber.store import LocalState

logger = structlog.get_logger()


class Reconciler:
    """Keeps LocalState in step with /api/logs and /api/registered."""

    def __init__(
        self,
        state: LocalState,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = config or default_settings
        self.state = state
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.poll_interval = self.settings.poll_interval
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._stopping = asyncio.Event()
        # Validators from the last successful responses
        self.logs_etag: Optional[str] = None
        self.registered_etag: Optional[str] = None
        self.registered_since: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.settings.connect_timeout,
                verify=self.settings.bridge_verify_tls,
                transport=self._transport,
            )
        return self._http

    # ─── Logs ────────────────────────────────────────────

    async def fetch_logs(self, force_full: bool = False) -> bool:
        """Pull the log. Returns True when the cache changed."""
        after_id = 0 if force_full else self.state.logs.latest_id
        params = {"limit": self.state.logs.max_entries}
        headers = {}
        if after_id > 0:
            params["after_id"] = after_id
        elif self.logs_etag and not force_full:
            headers["If-None-Match"] = self.logs_etag

        try:
            response = await self._client().get("/logs", params=params, headers=headers)
            if response.status_code == 304:
                self.state.mark_online()
                return False
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._failed("logs", e, full=after_id == 0)
            return False

        entries = [
            normalize_log_entry(row, self.state.tz)
            for row in body.get("logs") or []
            if isinstance(row, dict)
        ]
        if after_id > 0:
            self.state.logs.merge(entries)
        else:
            self.state.logs.replace(entries)
            self.logs_etag = response.headers.get("etag")

        self.state.mark_online()
        if entries:
            self.state.touch()
        logger.debug("subscriber.logs_synced", rows=len(entries), after_id=after_id)
        return bool(entries) or after_id == 0

    # ─── Registry ────────────────────────────────────────

    async def fetch_registered(self, force_full: bool = False) -> bool:
        """Pull the registry. Returns True when the store changed."""
        params = {}
        headers = {}
        if not force_full:
            if self.registered_since:
                params["updated_since"] = self.registered_since
            if self.registered_etag:
                headers["If-None-Match"] = self.registered_etag
        full = "updated_since" not in params

        try:
            response = await self._client().get("/registered", params=params, headers=headers)
            if response.status_code == 304:
                self.state.mark_online()
                return False
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._failed("registered", e, full=full)
            return False

        regs = [
            r for r in (normalize_registration(row) for row in body.get("registered") or [])
            if r is not None
        ]
        if body.get("filtered_since"):
            self.state.registrations.merge(regs)
        else:
            self.state.registrations.replace(regs)

        self.registered_etag = response.headers.get("etag")
        self.registered_since = body.get("last_modified") or self.registered_since
        self.state.mark_online()
        logger.debug("subscriber.registered_synced", rows=len(regs), incremental=not full)
        return True

    # ─── Loop ────────────────────────────────────────────

    def _failed(self, what: str, error: Exception, full: bool) -> None:
        logger.warning("subscriber.sync_failed", resource=what, error=str(error) or type(error).__name__)
        self.state.mark_offline(f"Failed to fetch {what}: {error}")
        if full:
            # Next attempt must fetch everything again
            if what == "logs":
                self.logs_etag = None
            else:
                self.registered_etag = None
                self.registered_since = None

    async def sync(self, force_full: bool = False) -> None:
        await self.fetch_logs(force_full=force_full)
        await self.fetch_registered(force_full=force_full)

    async def run(self) -> None:
        """Full sync now, then incremental syncs until stop()."""
        await self.sync(force_full=True)
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), self.poll_interval)
            except asyncio.TimeoutError:
                await self.sync()

    def stop(self) -> None:
        self._stopping.set()

    async def aclose(self) -> None:
        self.stop()
        if self._http is not None:
            await self._http.aclose()
            self._http = None
