"""
Cache Benchmark Runner

Compares the cached read path of the upstream (fetch_price, served from the
upstream cache or the local fallback) with the uncached path (request_price,
a real round trip that is allowed to fail).

All samples are wall-clock durations measured around the client call and
converted to microseconds, so the speedup factor is a ratio of two means in
the same unit.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from core.config import settings
from core.errors import PriceFeedError
from core.logging import get_logger
from core.schemas import BenchmarkResult
from feeds.api_client import PriceFeedClient
from services.stats_engine import speedup_factor, summarize


class BenchmarkRunner:
    """
    Latency benchmark over a PriceFeedClient.

    Example:
        >>> async with PriceFeedClient() as client:
        ...     runner = BenchmarkRunner(client)
        ...     result = await runner.run("AAPL")
        ...     print(f"{result.speedup_factor:.1f}x")
    """

    def __init__(
        self,
        client: PriceFeedClient,
        cached_iterations: Optional[int] = None,
        uncached_iterations: Optional[int] = None,
        uncached_delay: Optional[float] = None,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.cached_iterations = (
            settings.benchmark_cached_iterations if cached_iterations is None else cached_iterations
        )
        self.uncached_iterations = (
            settings.benchmark_uncached_iterations if uncached_iterations is None else uncached_iterations
        )
        self.uncached_delay = settings.benchmark_uncached_delay if uncached_delay is None else uncached_delay
        self._clock = clock
        self._sleep = sleep
        self.cached_samples: Dict[str, List[float]] = {}
        self.logger = get_logger(__name__)

    async def collect_cached_samples(self, symbol: str, iterations: Optional[int] = None) -> List[float]:
        """Time `iterations` cached reads; returns microseconds"""
        iterations = self.cached_iterations if iterations is None else iterations
        samples = []
        for _ in range(iterations):
            started = self._clock()
            await self.client.fetch_price(symbol)
            samples.append((self._clock() - started) * 1_000_000)
        return samples

    async def collect_uncached_samples(
        self,
        symbol: str,
        iterations: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> List[float]:
        """
        Time `iterations` uncached round trips; returns microseconds.

        Failed requests are logged and contribute no sample. The pause between
        requests keeps the benchmark under the upstream rate limit.
        """
        iterations = self.uncached_iterations if iterations is None else iterations
        delay = self.uncached_delay if delay is None else delay
        samples = []
        for i in range(iterations):
            started = self._clock()
            try:
                await self.client.request_price(symbol)
            except PriceFeedError as e:
                self.logger.warning(f"Uncached request {i + 1}/{iterations} for {symbol} failed: {e}")
            else:
                samples.append((self._clock() - started) * 1_000_000)

            if i < iterations - 1 and delay > 0:
                await self._sleep(delay)
        return samples

    async def run(self, symbol: str) -> BenchmarkResult:
        """
        Benchmark one symbol.

        When every uncached request fails, the uncached mean and the speedup
        are reported as 0.

        Raises:
            InvalidArgumentError: If no cached sample could be collected
        """
        symbol = symbol.strip().upper()
        self.logger.info(f"Benchmarking {symbol}...")

        samples = await self.collect_cached_samples(symbol)
        self.cached_samples[symbol] = samples
        cached = summarize(samples)
        uncached_samples = await self.collect_uncached_samples(symbol)

        if uncached_samples:
            uncached_mean = summarize(uncached_samples).mean
            speedup = speedup_factor(uncached_mean, cached.mean) if cached.mean > 0 else 0.0
        else:
            self.logger.warning(f"No uncached samples for {symbol}; speedup unavailable")
            uncached_mean = 0.0
            speedup = 0.0

        result = BenchmarkResult(
            symbol=symbol,
            cached_latency_us=cached.mean,
            uncached_latency_us=uncached_mean,
            speedup_factor=speedup,
            p95_latency_us=cached.p95,
            p99_latency_us=cached.p99,
            sample_count=cached.count + len(uncached_samples),
        )
        self.logger.info(
            f"{symbol}: cached {cached.mean:.3f}us, uncached {uncached_mean:.3f}us, "
            f"speedup {speedup:.2f}x"
        )
        return result

    async def run_all(self, symbols: Iterable[str]) -> List[BenchmarkResult]:
        """Benchmark symbols one after another"""
        return [await self.run(symbol) for symbol in symbols]
