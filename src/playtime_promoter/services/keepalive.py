"""Self keep-alive for hosts that suspend idle services.

Free-tier hosts put a web service to sleep when it has not been requested for
a while. The worker pings the service's own health endpoint whenever no
playtime report has arrived within the idle window.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

logger = logging.getLogger(__name__)


class ActivityTracker:
    """Remembers when the last playtime report was received."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_seen = clock()

    def touch(self) -> None:
        self._last_seen = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self._last_seen


class KeepAliveWorker:
    """Periodically pings ``url`` while the service is idle."""

    def __init__(
        self,
        url: str,
        activity: ActivityTracker,
        *,
        idle_seconds: float = 300.0,
        interval_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.activity = activity
        self.idle_seconds = idle_seconds
        self.interval_seconds = max(0.1, interval_seconds)
        self._transport = transport
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.ping_count = 0

    async def start(self) -> None:
        """Start the background ping loop."""

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background ping loop."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            while not self._stopping.is_set():
                await self.ping_if_idle(client)
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
                except TimeoutError:
                    continue

    async def ping_if_idle(self, client: httpx.AsyncClient) -> bool:
        """Ping the health URL if no report arrived within the idle window."""
        if self.activity.idle_seconds() <= self.idle_seconds:
            return False

        logger.info("Sending keep-alive ping")
        try:
            await client.get(self.url)
        except httpx.HTTPError as exc:
            logger.debug("Keep-alive ping to %s failed: %s", self.url, exc)
            return False
        self.ping_count += 1
        return True
