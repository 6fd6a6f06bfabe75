"""
Unified Logging Configuration

This module sets up a centralized logging system for the client.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.warning("Upstream unreachable, serving fallback data")

Log Levels used by the client:
    DEBUG    - Routine traffic (requests, responses, stream frames)
    INFO     - Lifecycle events (connected, poller started, export written)
    WARNING  - Degradation (fallback served, reconnect scheduled)
    ERROR    - Dropped data (malformed frame, exhausted reconnects)

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


ROOT_LOGGER_NAME = "pricefeed"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the client logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Client started")
        2024-01-01 12:00:00 [INFO] pricefeed Client started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger named "pricefeed.<name>"

    Example:
        >>> get_logger("feeds.api_client").name
        'pricefeed.feeds.api_client'
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(method: str, endpoint: str, params: dict = None) -> None:
    """
    Log an outgoing upstream request.

    Example:
        >>> log_api_request("GET", "/price/AAPL")
        [DEBUG] API Request: GET /price/AAPL
    """
    if params:
        logger.debug(f"API Request: {method} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {method} {endpoint}")


def log_api_response(endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an upstream response with status and timing information.

    Args:
        endpoint: API endpoint
        status: HTTP status code
        response_time: Round-trip time in seconds (optional)

    Example:
        >>> log_api_response("/prices", 200, 0.012)
        [DEBUG] API Response: /prices | Status: 200 | Time: 0.012s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {endpoint} | Status: {status}{time_str}")


def log_websocket_event(event: str, url: str = None, details: str = None) -> None:
    """
    Log a stream lifecycle event with consistent formatting.

    Example:
        >>> log_websocket_event("connected", "ws://localhost:8000/ws/stats")
        [INFO] WebSocket: connected | ws://localhost:8000/ws/stats

        >>> log_websocket_event("error", details="Connection refused")
        [ERROR] WebSocket: error | Connection refused
    """
    url_str = f" | {url}" if url else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {event}{url_str}{details_str}")


logger.debug("Logging system initialized")
