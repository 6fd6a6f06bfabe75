"""
Unit Tests for the Command Line Client

Run with:
    pytest tests/unit/test_cli.py -v
"""

import pytest
from unittest.mock import AsyncMock, patch

from app.main import build_parser, main
from core.schemas import ApiStatusInfo, HealthStatus


class TestParser:
    """Tests for argument parsing"""

    def test_benchmark_arguments(self):
        args = build_parser().parse_args(["benchmark", "--symbols", "AAPL,MSFT", "--export", "json"])
        assert args.command == "benchmark"
        assert args.symbols == "AAPL,MSFT"
        assert args.export == "json"

    def test_unknown_export_format_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["watch", "--export", "xml"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for command dispatch"""

    @pytest.mark.asyncio
    async def test_breaker_reset(self, capsys):
        with patch("app.main.ApiStatusMonitor") as monitor_cls:
            monitor_cls.return_value.reset_circuit_breaker = AsyncMock(return_value=True)
            code = await main(["--base-url", "http://upstream.test", "breaker-reset"])

        assert code == 0
        monitor_cls.assert_called_once_with(base_url="http://upstream.test")
        assert "Circuit breaker reset" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_status_when_breaker_unavailable(self, capsys):
        with patch("app.main.ApiStatusMonitor") as monitor_cls:
            monitor = monitor_cls.return_value
            monitor.check_health = AsyncMock(return_value=HealthStatus(status="healthy"))
            monitor.check_data_source = AsyncMock(
                return_value=ApiStatusInfo(status="live", message="Connected to live API")
            )
            monitor.fetch_circuit_breaker_status = AsyncMock(return_value=None)

            code = await main(["status"])

        out = capsys.readouterr().out
        assert code == 0
        assert "healthy" in out
        assert "live" in out
        assert "unavailable" in out
