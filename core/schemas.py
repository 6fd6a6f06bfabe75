"""
Normalized Data Schemas

This module defines Pydantic models for everything the client hands to the
display layer. Live upstream payloads and locally synthesized fallback data
are normalized into the same models; the `source` field on PriceQuote is the
only way to tell them apart.

Models:
    - PriceQuote: A single symbol's price with bid/ask and latency
    - CacheStatistics: Upstream cache hit/miss counters
    - LatencyDistributionSummary: min/max/mean/median/p95/p99 of a sample
    - LatencyBucket: One histogram bucket of a latency distribution
    - MetricsSnapshot: One stats frame received from the stream
    - BenchmarkResult: Cached vs. uncached latency comparison for a symbol
    - HealthStatus: Upstream liveness probe result
    - CircuitBreakerStatus: Read-only upstream breaker document
    - ApiStatusInfo: Live/fallback provenance indicator
    - StreamEvent: Lifecycle and data events published by StreamClient

All snapshot-like models are frozen: they are superseded by the next poll or
frame, never mutated.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator, computed_field, ConfigDict

from core.utils.time import to_utc_datetime, ensure_utc, current_utc_datetime


DataSource = Literal["live", "fallback"]


def _coerce_timestamp(value: Any) -> Any:
    """Accept Unix seconds/milliseconds in addition to ISO strings"""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return to_utc_datetime(value)
    return value


# ============================================
# Price Quote Schema
# ============================================

class PriceQuote(BaseModel):
    """
    Price Quote Data Model

    Represents the latest price of one symbol, either fetched from the
    upstream cache ("live") or synthesized locally ("fallback").

    Attributes:
        symbol: Ticker symbol in uppercase (e.g., "AAPL")
        price: Last price
        bid: Best bid (never above price)
        ask: Best ask (never below price)
        volume: Traded volume
        observed_at: When the quote was produced (wire name: "timestamp")
        latency_us: Lookup latency reported by the upstream (microseconds)
        latency_ns: Lookup latency in nanoseconds, when reported
        source: "live" for upstream data, "fallback" for synthesized data
        provider: Upstream data provider, when reported (e.g., "yahoo_finance")

    Example:
        >>> quote = PriceQuote(
        ...     symbol="AAPL",
        ...     price=181.5,
        ...     bid=181.32,
        ...     ask=181.68,
        ...     volume=1_250_000,
        ...     latency_us=0.42,
        ...     source="live"
        ... )

    Notes:
        - bid <= price <= ask is enforced on construction
        - Upstream quotes keep their provider name in `provider`
    """

    symbol: str = Field(
        ...,
        description="Ticker symbol in uppercase",
        examples=["AAPL", "MSFT", "TSLA"]
    )

    price: float = Field(..., gt=0, description="Last price")
    bid: float = Field(..., ge=0, description="Best bid")
    ask: float = Field(..., ge=0, description="Best ask")

    volume: float = Field(
        default=0,
        ge=0,
        description="Traded volume"
    )

    observed_at: datetime = Field(
        default_factory=current_utc_datetime,
        alias="timestamp",
        description="Quote time in UTC"
    )

    latency_us: float = Field(
        default=0.0,
        ge=0,
        description="Upstream lookup latency in microseconds"
    )

    latency_ns: Optional[float] = Field(
        default=None,
        ge=0,
        description="Upstream lookup latency in nanoseconds"
    )

    source: DataSource = Field(
        default="live",
        description="Data provenance"
    )

    provider: Optional[str] = Field(
        default=None,
        description="Upstream data provider name"
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "symbol": "AAPL",
                "price": 181.5,
                "bid": 181.32,
                "ask": 181.68,
                "volume": 1250000,
                "timestamp": "2024-01-01T12:00:00Z",
                "latency_us": 0.42,
                "source": "live"
            }
        }
    )

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is uppercase"""
        return v.strip().upper()

    @field_validator('observed_at', mode='before')
    @classmethod
    def parse_observed_at(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @field_validator('observed_at')
    @classmethod
    def normalize_observed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode='after')
    def check_spread(self) -> "PriceQuote":
        """Ensure bid <= price <= ask"""
        if not (self.bid <= self.price <= self.ask):
            raise ValueError(
                f"Quote for {self.symbol} violates bid <= price <= ask "
                f"({self.bid} / {self.price} / {self.ask})"
            )
        return self

    @classmethod
    def from_upstream(cls, payload: Any) -> "PriceQuote":
        """
        Build a quote from an upstream price payload.

        The upstream reports its data provider in `source`; that value is kept
        in `provider` and the quote is tagged "live" unless the upstream itself
        says it is serving fallback data.

        Raises:
            pydantic.ValidationError: If the payload does not describe a quote
            TypeError: If the payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise TypeError(f"Expected a JSON object, got {type(payload).__name__}")
        data = dict(payload)
        provider = data.pop("source", None)
        data.pop("provider", None)
        source = "fallback" if provider == "fallback" else "live"
        return cls(**data, source=source, provider=provider)


# ============================================
# Cache Statistics Schema
# ============================================

class CacheStatistics(BaseModel):
    """
    Upstream cache statistics.

    total_requests and hit_rate_percent are always derived from the hit and
    miss counters; totals reported by the upstream are ignored.

    Example:
        >>> CacheStatistics(cache_hits=995, cache_misses=5).hit_rate_percent
        99.5
    """

    cache_hits: int = Field(default=0, ge=0, description="Cache hits")
    cache_misses: int = Field(default=0, ge=0, description="Cache misses")
    avg_latency_us: float = Field(
        default=0.0,
        ge=0,
        description="Mean lookup latency in microseconds"
    )

    model_config = ConfigDict(frozen=True, extra="ignore")

    @computed_field
    @property
    def total_requests(self) -> int:
        return self.cache_hits + self.cache_misses

    @computed_field
    @property
    def hit_rate_percent(self) -> float:
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.cache_hits / total * 100


# ============================================
# Latency Statistics Schemas
# ============================================

class LatencyDistributionSummary(BaseModel):
    """
    Descriptive statistics of one latency sample.

    All values are in the unit of the input sample. Percentiles use the
    nearest-rank method on the ascending sort (no interpolation).
    """

    min: float
    max: float
    mean: float
    median: float
    p95: float
    p99: float
    count: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True)


class LatencyBucket(BaseModel):
    """One half-open [lower, upper) histogram bucket"""

    label: str
    lower: float
    upper: float
    count: int = Field(..., ge=0)
    percentage: float = Field(..., ge=0, le=100)

    model_config = ConfigDict(frozen=True)


# ============================================
# Metrics Snapshot Schema
# ============================================

class MetricsSnapshot(BaseModel):
    """
    Metrics Snapshot

    One statistics frame received on the stats stream. Missing numeric fields
    default to 0 so a sparse frame still produces a complete row.

    Attributes:
        timestamp: Arrival time in UTC
        cache_hits: Cumulative cache hits
        cache_misses: Cumulative cache misses
        stale_hits: Hits served from stale entries while revalidating
        hit_rate_percent: Hit rate as reported by the upstream
        avg_latency_us: Mean lookup latency (microseconds)
        p95_latency_us: 95th percentile lookup latency (microseconds)
        p99_latency_us: 99th percentile lookup latency (microseconds)
        refresh_errors: Failed background refreshes
        cache_size: Number of cached entries
    """

    timestamp: datetime = Field(default_factory=current_utc_datetime)
    cache_hits: int = Field(default=0, ge=0)
    cache_misses: int = Field(default=0, ge=0)
    stale_hits: int = Field(default=0, ge=0)
    hit_rate_percent: float = Field(default=0.0, ge=0, le=100)
    avg_latency_us: float = Field(default=0.0, ge=0)
    p95_latency_us: float = Field(default=0.0, ge=0)
    p99_latency_us: float = Field(default=0.0, ge=0)
    refresh_errors: int = Field(default=0, ge=0)
    cache_size: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator(
        'cache_hits', 'cache_misses', 'stale_hits', 'hit_rate_percent',
        'avg_latency_us', 'p95_latency_us', 'p99_latency_us',
        'refresh_errors', 'cache_size',
        mode='before'
    )
    @classmethod
    def default_missing(cls, v: Any) -> Any:
        """Treat null values like missing ones"""
        return 0 if v is None else v

    @field_validator('timestamp', mode='before')
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        return _coerce_timestamp(v)


# ============================================
# Benchmark Result Schema
# ============================================

class BenchmarkResult(BaseModel):
    """
    Cached vs. uncached latency comparison for one symbol.

    Latencies are means in microseconds; p95/p99 describe the cached path.
    speedup_factor = uncached_latency_us / cached_latency_us. sample_count
    counts cached samples plus successful uncached requests; failed uncached
    requests contribute no sample.
    """

    symbol: str
    cached_latency_us: float = Field(..., ge=0)
    uncached_latency_us: float = Field(..., ge=0)
    speedup_factor: float = Field(..., ge=0)
    p95_latency_us: float = Field(..., ge=0)
    p99_latency_us: float = Field(..., ge=0)
    sample_count: int = Field(..., ge=0, description="Successful samples only")
    timestamp: datetime = Field(default_factory=current_utc_datetime)

    model_config = ConfigDict(frozen=True)


# ============================================
# Upstream Status Schemas
# ============================================

class HealthStatus(BaseModel):
    """Result of GET /health"""

    status: str
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator('timestamp', mode='before')
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        return _coerce_timestamp(v)


class BreakerConfig(BaseModel):
    """Upstream circuit-breaker thresholds (display only)"""

    failure_threshold: int
    success_threshold: int
    timeout_seconds: float
    half_open_max_calls: int


class CircuitBreakerStatus(BaseModel):
    """
    Circuit Breaker Status

    Read-only document reported by GET /circuit-breaker/status. The client
    never derives breaker transitions itself; it renders what the upstream
    reports. Unknown fields are preserved as extras.
    """

    name: str = "upstream"
    state: Literal["closed", "open", "half_open"]
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    success_rate_percent: float = 0.0
    state_changes: int = 0
    last_failure_time: Optional[datetime] = None
    last_state_change_time: Optional[datetime] = None
    config: Optional[BreakerConfig] = None

    model_config = ConfigDict(extra="allow")

    @field_validator('last_failure_time', 'last_state_change_time', mode='before')
    @classmethod
    def parse_times(cls, v: Any) -> Any:
        return _coerce_timestamp(v)


class ApiStatusInfo(BaseModel):
    """Live/fallback provenance indicator"""

    status: Literal["live", "fallback", "checking"] = "checking"
    message: str = "Checking API status..."
    last_checked: Optional[datetime] = None


# ============================================
# Stream Events
# ============================================

class StreamState(str, Enum):
    """Connection state of the stats stream"""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class StreamEvent(BaseModel):
    """
    Event published by StreamClient on the event bus.

    Kinds:
        open: channel established
        close: channel lost or closed
        snapshot: a stats frame was received (see `snapshot`)
        reconnect_scheduled: a reconnect timer was armed (see `delay_ms`, `attempt`)
        exhausted: no further automatic reconnects will happen
    """

    kind: Literal["open", "close", "snapshot", "reconnect_scheduled", "exhausted"]
    state: StreamState
    snapshot: Optional[MetricsSnapshot] = None
    delay_ms: Optional[int] = None
    attempt: Optional[int] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=current_utc_datetime)

    model_config = ConfigDict(frozen=True)
