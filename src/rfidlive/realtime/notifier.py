"""Bridge notifier — how the event source announces state changes.

Learn: Publishing is fire-and-forget, exactly like the bridge itself. If
the bridge is down, slow or disabled, the event is lost and the scan
request still succeeds; dashboards catch up through their polling path.
That's why publish() reports success as a bool and never raises.

Each event is one POST {type, data} to the bridge's /broadcast.
"""

from typing import Any, Optional

import httpx
import structlog

from rfidlive.config import Settings, settings as default_settings

logger = structlog.get_logger()


class BridgeNotifier:
    """POSTs events to the broadcast bridge."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = config or default_settings
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.bridge_enabled and bool(self.settings.bridge_url)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.bridge_timeout,
            verify=self.settings.bridge_verify_tls,
            transport=self._transport,
        )

    async def publish(self, event_type: str, data: dict[str, Any]) -> bool:
        """Send one event. Returns True when the bridge answered 2xx."""
        if not self.enabled:
            return False

        log = logger.bind(event_type=event_type, bridge_url=self.settings.bridge_url)
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.settings.bridge_url,
                    json={"type": event_type, "data": data},
                )
        except httpx.HTTPError as e:
            log.warning("notifier.unreachable", error=str(e) or type(e).__name__)
            return False

        if resp.is_success:
            log.debug("notifier.published", status=resp.status_code)
            return True

        log.warning("notifier.rejected", status=resp.status_code, body=resp.text[:200])
        return False


def get_notifier() -> BridgeNotifier:
    """FastAPI dependency — overridden in tests to capture events."""
    return BridgeNotifier()
