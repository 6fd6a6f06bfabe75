"""
Price Feed REST Client

This module provides an async HTTP client for the upstream price cache API.
It handles:
- Bounded-time requests (the aiohttp timeout cancels the in-flight request)
- Mapping of transport failures onto error kinds
- Degradation to synthesized fallback data on any failure
- Normalization of upstream payloads to our schemas

Degradation Policy:
    The fetch_* methods never propagate a network or parse error. A failed
    request resolves to fallback data from the FallbackSynthesizer; quotes
    carry source="fallback" so callers can tell live data from synthetic data.

Endpoints:
    GET /price/{SYMBOL}  -> PriceQuote JSON
    GET /prices          -> {"prices": {...}, "latency_us": float}
    GET /stats           -> {"cache_stats": {...}}

Usage:
    async with PriceFeedClient() as client:
        quote = await client.fetch_price("AAPL")
        quotes = await client.fetch_all_prices()
        stats = await client.fetch_stats()
"""

import aiohttp
import asyncio
import math
import time
from typing import Dict, Optional, Any
from pydantic import ValidationError

from core.config import settings
from core.errors import (
    PriceFeedError,
    FeedTimeoutError,
    NetworkUnreachableError,
    NonSuccessStatusError,
    MalformedPayloadError,
)
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import PriceQuote, CacheStatistics
from feeds.fallback import FallbackSynthesizer


class PriceFeedClient:
    """
    Async HTTP client for the upstream price cache.

    Attributes:
        base_url: Upstream API base URL
        timeout: Total timeout per request in seconds
        synthesizer: Fallback data source used on any failure
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with PriceFeedClient() as client:
        ...     quote = await client.fetch_price("AAPL")
        ...     print(quote.price, quote.source)

    Notes:
        - Uses context manager for automatic session cleanup
        - One attempt per call; retries are replaced by the fallback feed
        - Symbols are normalized to uppercase
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        synthesizer: Optional[FallbackSynthesizer] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the price feed client.

        Args:
            base_url: Upstream base URL (default: settings.api_base_url)
            synthesizer: Fallback source (default: a new FallbackSynthesizer)
            timeout: Request timeout in seconds (default: settings.request_timeout)
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.synthesizer = synthesizer or FallbackSynthesizer()
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        """
        Enter async context - creates HTTP session.

        Returns:
            Self for use in async with statement
        """
        self.session = aiohttp.ClientSession()
        self.logger.debug("PriceFeedClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """
        Exit async context - closes HTTP session.
        """
        if self.session:
            await self.session.close()
            self.logger.debug("PriceFeedClient session closed")

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _get(self, path: str) -> Any:
        """
        Make one bounded-time GET request to the upstream.

        Args:
            path: API endpoint path (e.g., "/prices")

        Returns:
            Decoded JSON response

        Raises:
            RuntimeError: If the session was not initialized
            FeedTimeoutError: Request exceeded the timeout and was cancelled
            NetworkUnreachableError: Connection could not be established
            NonSuccessStatusError: Upstream answered with a non-2xx status
            MalformedPayloadError: Body is not valid JSON
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        log_api_request("GET", path)
        started = time.perf_counter()

        try:
            async with self.session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                log_api_response(path, resp.status, time.perf_counter() - started)

                if not 200 <= resp.status < 300:
                    text = await resp.text()
                    raise NonSuccessStatusError(resp.status, path, text[:200])

                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise MalformedPayloadError(f"Invalid JSON from {path}: {e}") from e

        except asyncio.TimeoutError as e:
            raise FeedTimeoutError(f"Timeout after {self.timeout}s on {path}") from e

        except aiohttp.ClientError as e:
            raise NetworkUnreachableError(f"Request failed on {path}: {e}") from e

        except OSError as e:
            raise NetworkUnreachableError(f"Request failed on {path}: {e}") from e

    # ============================================
    # Raw Requests
    # ============================================

    async def request_price(self, symbol: str) -> PriceQuote:
        """
        Fetch one quote without falling back.

        Used where the caller needs to observe the real upstream round trip,
        e.g. the uncached benchmark path.

        Raises:
            PriceFeedError: On any failure
        """
        path = f"/price/{symbol.strip().upper()}"
        data = await self._get(path)
        try:
            return PriceQuote.from_upstream(data)
        except (ValidationError, TypeError) as e:
            raise MalformedPayloadError(f"Invalid quote from {path}: {e}") from e

    # ============================================
    # Degrading Fetchers
    # ============================================

    async def fetch_price(self, symbol: str) -> Optional[PriceQuote]:
        """
        Fetch the latest quote for a symbol.

        Args:
            symbol: Ticker symbol (e.g., "AAPL")

        Returns:
            The live quote, the fallback quote on failure, or None if the
            symbol is not part of the fallback feed either

        Upstream Endpoint:
            GET /price/{SYMBOL}
        """
        try:
            return await self.request_price(symbol)
        except PriceFeedError as e:
            self.logger.warning(f"Price fetch failed for {symbol.upper()} ({e.kind.value}): {e}; using fallback")
            return self.synthesizer.get_fallback_quote(symbol)

    async def fetch_all_prices(self) -> Dict[str, PriceQuote]:
        """
        Fetch quotes for every symbol the upstream tracks.

        The bulk endpoint reports one round-trip latency for the whole batch;
        it is copied onto every returned quote.

        Returns:
            Either the full live mapping or the full fallback mapping, never a
            partial result

        Upstream Endpoint:
            GET /prices

        Response Format:
            {
              "prices": {"AAPL": {...}, "MSFT": {...}},
              "latency_us": 0.42
            }
        """
        try:
            data = await self._get("/prices")
            return self._parse_prices(data)
        except PriceFeedError as e:
            self.logger.warning(f"Bulk price fetch failed ({e.kind.value}): {e}; using fallback")
            return self.synthesizer.get_fallback_prices()

    async def fetch_stats(self) -> CacheStatistics:
        """
        Fetch aggregate cache statistics.

        Returns:
            Live statistics, or synthetic healthy-looking statistics on failure

        Upstream Endpoint:
            GET /stats -> {"cache_stats": {...}}
        """
        try:
            data = await self._get("/stats")
            if not isinstance(data, dict) or not isinstance(data.get("cache_stats"), dict):
                raise MalformedPayloadError("Missing 'cache_stats' in /stats response")
            try:
                return CacheStatistics.model_validate(data["cache_stats"])
            except ValidationError as e:
                raise MalformedPayloadError(f"Invalid cache_stats: {e}") from e
        except PriceFeedError as e:
            self.logger.warning(f"Stats fetch failed ({e.kind.value}): {e}; using fallback")
            return self.synthesizer.get_fallback_stats()

    # ============================================
    # Normalization
    # ============================================

    def _parse_prices(self, data: Any) -> Dict[str, PriceQuote]:
        """
        Normalize a /prices response.

        Raises:
            MalformedPayloadError: If the envelope or any single quote is invalid
        """
        if not isinstance(data, dict) or not isinstance(data.get("prices"), dict):
            raise MalformedPayloadError("Missing 'prices' in /prices response")

        quotes: Dict[str, PriceQuote] = {}

        try:
            batch_latency = data.get("latency_us")
            if batch_latency is not None:
                batch_latency = float(batch_latency)
                if not math.isfinite(batch_latency) or batch_latency < 0:
                    raise ValueError(f"invalid latency_us {batch_latency}")

            for symbol, payload in data["prices"].items():
                quote = PriceQuote.from_upstream(payload)
                # model_copy skips validation; batch_latency is checked above
                if batch_latency is not None:
                    quote = quote.model_copy(update={"latency_us": batch_latency})
                quotes[symbol.strip().upper()] = quote
        except (ValidationError, TypeError, ValueError) as e:
            raise MalformedPayloadError(f"Invalid quote in /prices response: {e}") from e

        if not quotes:
            raise MalformedPayloadError("Empty 'prices' in /prices response")

        self.logger.debug(f"Fetched {len(quotes)} live quotes")
        return quotes
