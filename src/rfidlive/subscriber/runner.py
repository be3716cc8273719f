"""Subscriber — one LocalState fed by a LiveChannel and a Reconciler.

Usage:
    subscriber = Subscriber(settings)
    subscriber.state.on_log(print)
    await subscriber.run()        # until stop()
"""

import asyncio
from typing import Optional

import httpx
import structlog

from rfidlive.config import Settings, settings as default_settings
from rfidlive.subscriber.channel import Connector, LiveChannel
from rfidlive.subscriber.reconcile import Reconciler
from rfidlive.subscriber.store import LocalState

logger = structlog.get_logger()


class Subscriber:
    def __init__(
        self,
        config: Optional[Settings] = None,
        connector: Optional[Connector] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        poll: bool = True,
    ):
        self.settings = config or default_settings
        self.state = LocalState(self.settings.max_log_entries, tz=self.settings.timezone)
        self.channel = LiveChannel(self.state, self.settings, connector=connector)
        self.reconciler = Reconciler(self.state, self.settings, transport=http_transport)
        self.poll = poll

    async def run(self) -> None:
        """Run the live channel and the poll loop side by side."""
        logger.info(
            "subscriber.starting",
            live_url=self.settings.live_updates_url,
            api_url=self.settings.api_base_url,
            poll=self.poll,
        )
        tasks = [self.channel.run()]
        if self.poll:
            tasks.append(self.reconciler.run())
        try:
            await asyncio.gather(*tasks)
        finally:
            await self.reconciler.aclose()
            logger.info("subscriber.stopped", cached_logs=len(self.state.logs))

    async def stop(self) -> None:
        self.reconciler.stop()
        await self.channel.close()
