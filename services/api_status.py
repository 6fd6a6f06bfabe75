"""
Upstream Status Probes

Lightweight probes against the upstream service used to drive status
indicators:
- GET  /health                  liveness
- GET  /prices                  live vs. fallback provenance
- GET  /circuit-breaker/status  read-only breaker document
- POST /circuit-breaker/reset   operator-requested breaker reset

Every probe uses its own short-lived httpx client with a 3s timeout and
never raises on network or HTTP errors; a failed probe is reported as
unhealthy, "fallback", None or False.
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from core.config import settings
from core.logging import get_logger
from core.schemas import ApiStatusInfo, BreakerConfig, CircuitBreakerStatus, HealthStatus
from core.utils.time import current_utc_datetime


logger = get_logger(__name__)


class ApiStatusMonitor:
    """
    Status probes for the upstream price cache.

    Args:
        base_url: Upstream base URL (default: settings.api_base_url)
        timeout: Probe timeout in seconds (default: settings.status_timeout)
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = settings.status_timeout if timeout is None else timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str) -> Optional[httpx.Response]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, headers={"Accept": "application/json"})
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.warning(f"{method} {path} returned {e.response.status_code}")
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
        return None

    @staticmethod
    def _json(response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON from {path}: {e}")
            return None

    # ============================================
    # Health
    # ============================================

    async def check_health(self) -> Optional[HealthStatus]:
        """GET /health; None when unreachable or malformed"""
        response = await self._request("GET", "/health")
        if response is None:
            return None
        data = self._json(response, "/health")
        try:
            return HealthStatus.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid /health payload: {e}")
            return None

    async def is_healthy(self) -> bool:
        return await self.check_health() is not None

    # ============================================
    # Data Provenance
    # ============================================

    async def check_data_source(self) -> ApiStatusInfo:
        """
        Report whether the upstream is serving live data.

        The upstream tags each quote with its data provider; a provider of
        "fallback" means the upstream itself is degraded.
        """
        checked_at = current_utc_datetime()
        response = await self._request("GET", "/prices")
        if response is None:
            return ApiStatusInfo(
                status="fallback",
                message="API unreachable - using fallback data",
                last_checked=checked_at,
            )

        data = self._json(response, "/prices")
        prices = data.get("prices") if isinstance(data, dict) else None
        first = next(iter(prices.values()), None) if isinstance(prices, dict) else None

        if isinstance(first, dict) and first.get("source") != "fallback":
            return ApiStatusInfo(
                status="live",
                message="Connected to live API",
                last_checked=checked_at,
            )

        return ApiStatusInfo(
            status="fallback",
            message="API returned fallback data",
            last_checked=checked_at,
        )

    # ============================================
    # Circuit Breaker (read-only)
    # ============================================

    async def fetch_circuit_breaker_status(self) -> Optional[CircuitBreakerStatus]:
        """
        GET /circuit-breaker/status.

        Returns the document as reported, with the configured display defaults
        filled in when it carries no config. Returns None when the upstream
        cannot be reached or the document is invalid; no state is ever made up.
        """
        response = await self._request("GET", "/circuit-breaker/status")
        if response is None:
            return None

        data = self._json(response, "/circuit-breaker/status")
        if not isinstance(data, dict):
            return None

        try:
            status = CircuitBreakerStatus.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid circuit breaker payload: {e}")
            return None

        if status.config is None:
            status.config = BreakerConfig(
                failure_threshold=settings.breaker_failure_threshold,
                success_threshold=settings.breaker_success_threshold,
                timeout_seconds=settings.breaker_timeout_seconds,
                half_open_max_calls=settings.breaker_half_open_max_calls,
            )
        return status

    async def reset_circuit_breaker(self) -> bool:
        """POST /circuit-breaker/reset; True when the upstream accepted it"""
        response = await self._request("POST", "/circuit-breaker/reset")
        if response is None:
            return False
        logger.info("Circuit breaker reset requested")
        return True
