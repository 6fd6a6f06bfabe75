"""
Unit Tests for the Benchmark Runner

The client is replaced by an AsyncMock and time by a scripted clock, so every
sample is known in advance.

Run with:
    pytest tests/unit/test_benchmark.py -v
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.errors import InvalidArgumentError, NetworkUnreachableError
from core.schemas import BenchmarkResult
from services.benchmark import BenchmarkRunner


def scripted_clock(*readings):
    """Clock returning the given readings in order"""
    return iter(readings).__next__


def make_client(request_side_effect=None):
    client = MagicMock()
    client.fetch_price = AsyncMock(return_value=None)
    client.request_price = AsyncMock(side_effect=request_side_effect)
    return client


class TestSampleCollection:
    """Tests for sample collection"""

    @pytest.mark.asyncio
    async def test_cached_samples_in_microseconds(self):
        clock = scripted_clock(0.0, 0.000001, 1.0, 1.000002, 2.0, 2.000003)
        client = make_client()
        runner = BenchmarkRunner(client, clock=clock)

        samples = await runner.collect_cached_samples("AAPL", iterations=3)

        assert samples == pytest.approx([1.0, 2.0, 3.0])
        assert client.fetch_price.await_count == 3

    @pytest.mark.asyncio
    async def test_uncached_delay_between_requests_only(self):
        sleep = AsyncMock()
        runner = BenchmarkRunner(make_client(), clock=scripted_clock(0.0, 0.1, 1.0, 1.2, 2.0, 2.3), sleep=sleep)

        samples = await runner.collect_uncached_samples("AAPL", iterations=3, delay=0.5)

        assert samples == pytest.approx([100_000.0, 200_000.0, 300_000.0])
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_uncached_failures_absorbed(self):
        client = make_client([None, NetworkUnreachableError("down"), None])
        runner = BenchmarkRunner(client, clock=scripted_clock(0.0, 0.1, 1.0, 2.0, 2.3), sleep=AsyncMock())

        samples = await runner.collect_uncached_samples("AAPL", iterations=3)

        assert samples == pytest.approx([100_000.0, 300_000.0])


class TestRun:
    """Tests for run()/run_all()"""

    @pytest.mark.asyncio
    async def test_result(self):
        # 4 cached reads of 0.5us, 2 uncached round trips of 0.1s and 0.2s
        clock = scripted_clock(
            0.0, 0.0000005, 1.0, 1.0000005, 2.0, 2.0000005, 3.0, 3.0000005,
            10.0, 10.1, 11.0, 11.2,
        )
        runner = BenchmarkRunner(
            make_client(),
            cached_iterations=4,
            uncached_iterations=2,
            clock=clock,
            sleep=AsyncMock(),
        )

        result = await runner.run("aapl")

        assert isinstance(result, BenchmarkResult)
        assert result.symbol == "AAPL"
        assert result.cached_latency_us == pytest.approx(0.5)
        assert result.uncached_latency_us == pytest.approx(150_000.0)
        assert result.speedup_factor == pytest.approx(300_000.0)
        assert result.p95_latency_us == pytest.approx(0.5)
        assert result.sample_count == 6
        assert len(runner.cached_samples["AAPL"]) == 4

    @pytest.mark.asyncio
    async def test_all_uncached_failures(self):
        client = make_client(NetworkUnreachableError("down"))
        runner = BenchmarkRunner(
            client,
            cached_iterations=2,
            uncached_iterations=2,
            clock=scripted_clock(0.0, 0.000001, 1.0, 1.000001, 5.0, 6.0),
            sleep=AsyncMock(),
        )

        result = await runner.run("AAPL")

        assert result.uncached_latency_us == 0.0
        assert result.speedup_factor == 0.0

    @pytest.mark.asyncio
    async def test_no_cached_iterations_rejected(self):
        runner = BenchmarkRunner(make_client(), cached_iterations=0, uncached_iterations=0)

        with pytest.raises(InvalidArgumentError):
            await runner.run("AAPL")

    @pytest.mark.asyncio
    async def test_run_all(self):
        runner = BenchmarkRunner(
            make_client(),
            cached_iterations=1,
            uncached_iterations=1,
            clock=scripted_clock(0.0, 0.000001, 1.0, 1.01, 2.0, 2.000001, 3.0, 3.01),
            sleep=AsyncMock(),
        )

        results = await runner.run_all(["AAPL", "MSFT"])

        assert [r.symbol for r in results] == ["AAPL", "MSFT"]
