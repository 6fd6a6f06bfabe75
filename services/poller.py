"""
Fixed-Interval Polling

Runs a fetch coroutine every `interval` seconds and keeps the most recently
completed result. Each tick runs as its own task, so a slow fetch never delays
the schedule; ticks may overlap and the result that completes last wins.

Usage:
    poller = create_price_poller(client)
    await poller.start()
    ...
    quotes = poller.latest
    await poller.stop()
"""

import asyncio
import contextlib
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Optional, Set, TypeVar

from core.config import settings
from core.logging import get_logger
from core.utils.time import current_utc_datetime
from feeds.api_client import PriceFeedClient
from services.api_status import ApiStatusMonitor


T = TypeVar("T")


class PollingLoop(Generic[T]):
    """
    Background poller with last-write-wins results.

    Attributes:
        name: Name used in logs and task names
        interval: Seconds between tick starts
        latest: Most recently completed result (None until the first one)
        updated_at: When `latest` was replaced
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        interval: float,
        on_update: Optional[Callable[[T], Any]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._fetch = fetch
        self._on_update = on_update
        self._logger = get_logger(__name__)
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()
        self.latest: Optional[T] = None
        self.updated_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.info(f"Starting {self.name} poller (every {self.interval}s)")
        self._task = asyncio.create_task(self._run(), name=f"{self.name}_poller")

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info(f"Stopping {self.name} poller...")
        self._running.clear()

        tasks = [t for t in (self._task, *self._ticks) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._task = None
        self._ticks.clear()

    # ============================================
    # Core Loop
    # ============================================

    async def _run(self) -> None:
        while self._running.is_set():
            tick = asyncio.create_task(self._tick(), name=f"{self.name}_tick")
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval)

    async def _tick(self) -> None:
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(f"{self.name} poll failed: {e}")
            return

        self.latest = result
        self.updated_at = current_utc_datetime()
        if self._on_update is not None:
            try:
                self._on_update(result)
            except Exception as e:
                self._logger.error(f"{self.name} update handler failed: {e}")


# ============================================
# Factories
# ============================================

def create_price_poller(
    client: PriceFeedClient,
    interval: Optional[float] = None,
    on_update: Optional[Callable[[Any], Any]] = None,
) -> PollingLoop:
    """Poll all prices (default every settings.price_poll_interval seconds)"""
    return PollingLoop(
        "prices",
        client.fetch_all_prices,
        settings.price_poll_interval if interval is None else interval,
        on_update,
    )


def create_stats_poller(
    client: PriceFeedClient,
    interval: Optional[float] = None,
    on_update: Optional[Callable[[Any], Any]] = None,
) -> PollingLoop:
    """Poll cache statistics (default every settings.stats_poll_interval seconds)"""
    return PollingLoop(
        "stats",
        client.fetch_stats,
        settings.stats_poll_interval if interval is None else interval,
        on_update,
    )


def create_status_poller(
    monitor: ApiStatusMonitor,
    interval: Optional[float] = None,
    on_update: Optional[Callable[[Any], Any]] = None,
) -> PollingLoop:
    """Poll live/fallback provenance (default every settings.status_check_interval seconds)"""
    return PollingLoop(
        "status",
        monitor.check_data_source,
        settings.status_check_interval if interval is None else interval,
        on_update,
    )
