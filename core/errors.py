"""
Error Kinds

Every failure the feed client can observe is mapped onto one of a small set
of error kinds. Most of them never leave the client layer: PriceFeedClient,
BenchmarkRunner and ApiStatusMonitor absorb them and hand back fallback data,
and StreamClient turns them into state transitions.

The one exception is InvalidArgumentError, which signals caller misuse
(e.g. summarizing an empty latency sample) and must be handled explicitly.

Usage:
    from core.errors import PriceFeedError, InvalidArgumentError

    try:
        summary = summarize(samples)
    except InvalidArgumentError:
        ...
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification of feed failures"""

    TIMEOUT = "timeout"
    NETWORK_UNREACHABLE = "network_unreachable"
    NON_SUCCESS_STATUS = "non_success_status"
    MALFORMED_PAYLOAD = "malformed_payload"
    CHANNEL_CLOSED = "channel_closed"
    INVALID_ARGUMENT = "invalid_argument"


class PriceFeedError(RuntimeError):
    """Base class for all feed errors."""

    kind: ErrorKind = ErrorKind.NETWORK_UNREACHABLE


class FeedTimeoutError(PriceFeedError):
    """Raised when a request exceeds its timeout and is cancelled."""

    kind = ErrorKind.TIMEOUT


class NetworkUnreachableError(PriceFeedError):
    """Raised when the upstream cannot be reached at all."""

    kind = ErrorKind.NETWORK_UNREACHABLE


class NonSuccessStatusError(PriceFeedError):
    """Raised when the upstream answers with a non-2xx status."""

    kind = ErrorKind.NON_SUCCESS_STATUS

    def __init__(self, status: int, path: str, body: Optional[str] = None):
        self.status = status
        self.path = path
        self.body = body
        super().__init__(f"HTTP {status} on {path}")


class MalformedPayloadError(PriceFeedError):
    """Raised when a response or stream frame cannot be decoded or validated."""

    kind = ErrorKind.MALFORMED_PAYLOAD


class ChannelClosedError(PriceFeedError):
    """Raised when writing to a stream channel that is not open."""

    kind = ErrorKind.CHANNEL_CLOSED


class InvalidArgumentError(PriceFeedError, ValueError):
    """Raised on caller misuse, e.g. an empty latency sample set."""

    kind = ErrorKind.INVALID_ARGUMENT
