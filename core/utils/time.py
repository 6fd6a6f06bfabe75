"""
Time Utilities

The upstream service is not consistent about timestamps:
- quotes carry ISO-8601 strings
- /health and the circuit-breaker status carry Unix seconds (float)
- some deployments send Unix milliseconds

The utilities in this module normalize all of them into timezone-aware UTC
datetime objects for use in our Pydantic schemas.
"""

from datetime import datetime, timezone
from typing import Union


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Detection Logic:
        - If timestamp > 1e12 (1 trillion): Assumed to be milliseconds
        - Otherwise: Assumed to be seconds

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime object in UTC

    Raises:
        ValueError: If timestamp is negative or invalid

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime(1704110400.5)
        datetime.datetime(2024, 1, 1, 12, 0, 0, 500000, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def ensure_utc(dt: datetime) -> datetime:
    """
    Attach UTC to naive datetimes and convert aware ones to UTC.

    Example:
        >>> ensure_utc(datetime(2024, 1, 1, 12, 0))
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def current_utc_datetime() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        datetime: Current time as timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)
