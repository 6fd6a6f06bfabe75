"""
Configuration Management Module

This module handles loading, validating, and providing access to client configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates upstream URL, timeouts and reconnection policy
- Converts the comma-separated symbol string to a list
- Derives the WebSocket stats URL from the REST base URL

Usage:
    from core.config import settings

    print(settings.api_base_url)
    print(settings.symbols_list)  # ["AAPL", "MSFT", ...]
    print(settings.ws_stats_url)  # "ws://localhost:8000/ws/stats"
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Client Settings

    All values are loaded from environment variables or the .env file
    (case-insensitive, e.g. API_BASE_URL=http://prices.internal:8000).

    Attributes:
        api_base_url: Base URL of the upstream price cache service
        supported_symbols: Symbols tracked by polling and the fallback feed
        request_timeout: Timeout for REST price/stats requests (seconds)
        status_timeout: Timeout for health and breaker probes (seconds)
        ws_reconnect_interval_ms: Base interval of the reconnect backoff
        ws_max_reconnect_attempts: Automatic reconnects before giving up
        fallback_ttl_seconds: Freshness window of synthesized fallback data
        history_capacity: Maximum number of retained metrics snapshots
    """

    # ============================================
    # Upstream Service Configuration
    # ============================================

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the upstream price cache API"
    )

    ws_stats_path: str = Field(
        default="/ws/stats",
        description="Path of the statistics streaming channel"
    )

    # ============================================
    # Tracked Symbols
    # ============================================

    supported_symbols: str = Field(
        default="AAPL,MSFT,GOOGL,AMZN,TSLA",
        description="Comma-separated list of ticker symbols"
    )

    # ============================================
    # Application Configuration
    # ============================================

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    export_dir: str = Field(
        default="exports",
        description="Directory that receives CSV/JSON export artifacts"
    )

    # ============================================
    # Timeouts
    # ============================================

    request_timeout: float = Field(
        default=5.0,
        description="Timeout for price and stats requests (seconds)"
    )

    status_timeout: float = Field(
        default=3.0,
        description="Timeout for health and circuit-breaker probes (seconds)"
    )

    # ============================================
    # Streaming & Reconnection
    # ============================================

    ws_reconnect_interval_ms: int = Field(
        default=3000,
        description="Base reconnect delay; doubled on every attempt (milliseconds)"
    )

    ws_max_reconnect_attempts: int = Field(
        default=5,
        description="Maximum automatic reconnection attempts"
    )

    ws_heartbeat: float = Field(
        default=30.0,
        description="WebSocket ping interval (seconds)"
    )

    # ============================================
    # Fallback Feed
    # ============================================

    fallback_ttl_seconds: float = Field(
        default=2.0,
        description="How long a generated fallback batch stays fresh (seconds)"
    )

    fallback_default_price: float = Field(
        default=150.0,
        description="Base price for symbols without a known reference price"
    )

    # ============================================
    # Polling & History
    # ============================================

    price_poll_interval: float = Field(
        default=2.0,
        description="Interval between price polls (seconds)"
    )

    stats_poll_interval: float = Field(
        default=2.0,
        description="Interval between stats polls (seconds)"
    )

    status_check_interval: float = Field(
        default=10.0,
        description="Interval between live/fallback provenance checks (seconds)"
    )

    history_capacity: int = Field(
        default=100,
        description="Number of metrics snapshots retained in memory"
    )

    # ============================================
    # Benchmark Configuration
    # ============================================

    benchmark_cached_iterations: int = Field(
        default=500,
        description="Samples collected on the cached read path"
    )

    benchmark_uncached_iterations: int = Field(
        default=3,
        description="Samples collected on the uncached read path"
    )

    benchmark_uncached_delay: float = Field(
        default=0.5,
        description="Pause between uncached requests to respect rate limits (seconds)"
    )

    # ============================================
    # Circuit Breaker Display Defaults
    # ============================================
    # The breaker lives upstream. These values are only shown when the
    # reported status omits its own configuration.

    breaker_failure_threshold: int = Field(default=5)
    breaker_success_threshold: int = Field(default=2)
    breaker_timeout_seconds: float = Field(default=60.0)
    breaker_half_open_max_calls: int = Field(default=3)

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Values
    # ============================================

    @property
    def symbols_list(self) -> List[str]:
        """
        Convert comma-separated symbols string to a list.

        Example:
            >>> settings.symbols_list
            ['AAPL', 'MSFT', 'GOOGL', 'AMZN', 'TSLA']
        """
        return [s.strip().upper() for s in self.supported_symbols.split(",") if s.strip()]

    @property
    def ws_stats_url(self) -> str:
        """
        WebSocket URL of the stats stream.

        http:// becomes ws:// and https:// becomes wss://.

        Example:
            >>> settings.ws_stats_url
            'ws://localhost:8000/ws/stats'
        """
        return to_ws_url(self.api_base_url) + self.ws_stats_path


def to_ws_url(url: str) -> str:
    """Swap an http(s) scheme for the matching ws(s) scheme."""
    url = url.rstrip("/")
    if url.startswith("https:"):
        return "wss:" + url[len("https:"):]
    if url.startswith("http:"):
        return "ws:" + url[len("http:"):]
    return url


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings on startup.

    Raises:
        ValueError: If configuration is missing or invalid
    """
    # logging.py imports config.py, so the logger is imported lazily
    from core.logging import logger

    if not settings.symbols_list:
        raise ValueError("SUPPORTED_SYMBOLS must contain at least one symbol")

    if not settings.api_base_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API_BASE_URL: '{settings.api_base_url}'. "
            f"Must start with http:// or https://"
        )

    if settings.request_timeout <= 0 or settings.status_timeout <= 0:
        raise ValueError("REQUEST_TIMEOUT and STATUS_TIMEOUT must be positive")

    if settings.ws_reconnect_interval_ms <= 0:
        raise ValueError("WS_RECONNECT_INTERVAL_MS must be positive")

    if settings.ws_max_reconnect_attempts < 0:
        raise ValueError("WS_MAX_RECONNECT_ATTEMPTS cannot be negative")

    if settings.history_capacity < 1:
        raise ValueError("HISTORY_CAPACITY must be at least 1")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Tracking symbols: {', '.join(settings.symbols_list)}")
    logger.info(f"Upstream API: {settings.api_base_url}")
    logger.info(f"Stats stream: {settings.ws_stats_url}")
    logger.info(f"Log level: {settings.log_level.upper()}")
