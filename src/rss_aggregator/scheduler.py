"""Background fetch scheduler for RSS Aggregator."""

import asyncio
import logging
from typing import Awaitable, Callable

from rss_aggregator.config import DEFAULT_FETCH_INTERVAL
from rss_aggregator.coordinator import IngestionCoordinator
from rss_aggregator.models import BatchResult

logger = logging.getLogger(__name__)


class FeedScheduler:
    """Periodically ingests every feed that is not a test source.

    Ticks never overlap: a tick requested while another is still running is
    skipped. The sleep coroutine is injectable so tests can drive the loop.
    """

    def __init__(
        self,
        coordinator: IngestionCoordinator,
        interval: float = DEFAULT_FETCH_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.coordinator = coordinator
        self.interval = interval
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> BatchResult | None:
        """Run one background fetch; returns None if one is already running."""
        if self._running:
            logger.info("Background feed fetch still running, skipping tick")
            return None
        self._running = True
        try:
            logger.info("Background feed fetch started")
            result = await asyncio.to_thread(
                self.coordinator.ingest_all, exclude_test_sources=True
            )
            self.ticks += 1
            logger.info(
                "Background feed fetch completed: %d created, %d updated, %d errors",
                result.created,
                result.updated,
                result.errors,
            )
            return result
        finally:
            self._running = False

    async def run(self) -> None:
        """Fetch immediately, then once per interval, until cancelled."""
        logger.info("Starting background feed fetcher (interval: %ss)", self.interval)
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.error("Background feed fetch failed: %s", e)
            await self._sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Start the loop as a task on the running event loop."""
        if self.is_running:
            raise RuntimeError("Scheduler already started")
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Background feed fetcher stopped")
