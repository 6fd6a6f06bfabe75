"""
Unit Tests for Upstream Status Probes

Requests are served by httpx.MockTransport, so no network is involved.

Run with:
    pytest tests/unit/test_api_status.py -v
"""

import httpx
import pytest

from services.api_status import ApiStatusMonitor


def monitor_for(handler) -> ApiStatusMonitor:
    return ApiStatusMonitor(base_url="http://upstream.test", transport=httpx.MockTransport(handler))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class TestHealth:
    """Tests for check_health / is_healthy"""

    @pytest.mark.asyncio
    async def test_healthy(self):
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "healthy", "timestamp": 1704110400.0})

        monitor = monitor_for(handler)
        health = await monitor.check_health()

        assert health.status == "healthy"
        assert health.timestamp.year == 2024
        assert await monitor.is_healthy() is True

    @pytest.mark.asyncio
    async def test_unreachable(self):
        monitor = monitor_for(unreachable)
        assert await monitor.check_health() is None
        assert await monitor.is_healthy() is False

    @pytest.mark.asyncio
    async def test_error_status(self):
        monitor = monitor_for(lambda request: httpx.Response(503))
        assert await monitor.check_health() is None


class TestDataSource:
    """Tests for check_data_source"""

    @pytest.mark.asyncio
    async def test_live(self):
        def handler(request):
            return httpx.Response(200, json={
                "prices": {"AAPL": {"symbol": "AAPL", "price": 1, "source": "yahoo_finance"}},
                "latency_us": 0.4,
            })

        info = await monitor_for(handler).check_data_source()

        assert info.status == "live"
        assert info.last_checked is not None

    @pytest.mark.asyncio
    async def test_upstream_serving_fallback(self):
        def handler(request):
            return httpx.Response(200, json={"prices": {"AAPL": {"source": "fallback"}}})

        assert (await monitor_for(handler).check_data_source()).status == "fallback"

    @pytest.mark.asyncio
    async def test_unreachable_means_fallback(self):
        info = await monitor_for(unreachable).check_data_source()
        assert info.status == "fallback"
        assert "unreachable" in info.message

    @pytest.mark.asyncio
    async def test_invalid_json_means_fallback(self):
        monitor = monitor_for(lambda request: httpx.Response(200, content=b"<html>"))
        assert (await monitor.check_data_source()).status == "fallback"


class TestCircuitBreaker:
    """Tests for breaker status and reset"""

    @pytest.mark.asyncio
    async def test_status_as_reported(self):
        def handler(request):
            assert request.url.path == "/circuit-breaker/status"
            return httpx.Response(200, json={
                "name": "yahoo_finance",
                "state": "open",
                "total_calls": 12,
                "failed_calls": 5,
                "config": {
                    "failure_threshold": 4,
                    "success_threshold": 1,
                    "timeout_seconds": 30,
                    "half_open_max_calls": 2,
                },
            })

        status = await monitor_for(handler).fetch_circuit_breaker_status()

        assert status.state == "open"
        assert status.failed_calls == 5
        assert status.config.failure_threshold == 4

    @pytest.mark.asyncio
    async def test_missing_config_filled_from_settings(self):
        monitor = monitor_for(lambda request: httpx.Response(200, json={"state": "closed"}))

        status = await monitor.fetch_circuit_breaker_status()

        assert status.config.failure_threshold == 5
        assert status.config.success_threshold == 2
        assert status.config.timeout_seconds == 60
        assert status.config.half_open_max_calls == 3

    @pytest.mark.asyncio
    async def test_unreachable_returns_none(self):
        assert await monitor_for(unreachable).fetch_circuit_breaker_status() is None

    @pytest.mark.asyncio
    async def test_invalid_document_returns_none(self):
        monitor = monitor_for(lambda request: httpx.Response(200, json={"state": "melting"}))
        assert await monitor.fetch_circuit_breaker_status() is None

    @pytest.mark.asyncio
    async def test_reset(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"message": "reset"})

        assert await monitor_for(handler).reset_circuit_breaker() is True
        assert seen == [("POST", "/circuit-breaker/reset")]

    @pytest.mark.asyncio
    async def test_reset_failure(self):
        assert await monitor_for(lambda request: httpx.Response(500)).reset_circuit_breaker() is False
        assert await monitor_for(unreachable).reset_circuit_breaker() is False
