"""
Latency Statistics

Descriptive statistics over latency samples: extremes, mean, median,
nearest-rank percentiles, speedup ratio and a coarse histogram.

Percentiles are read straight off the ascending sort at index floor(n * q),
clamped to the last element. No interpolation is performed, so every reported
value is a value that was actually observed.
"""

import math
import statistics
from typing import Iterable, List, Sequence, Tuple

from core.errors import InvalidArgumentError
from core.schemas import LatencyBucket, LatencyDistributionSummary


# (label, lower, upper) half-open ranges in microseconds
DEFAULT_BUCKETS: Tuple[Tuple[str, float, float], ...] = (
    ("0.0-0.5µs", 0.0, 0.5),
    ("0.5-1.0µs", 0.5, 1.0),
    ("1.0-5.0µs", 1.0, 5.0),
    ("5.0+µs", 5.0, math.inf),
)


def _validated(samples: Iterable[float]) -> List[float]:
    values = [float(s) for s in samples]
    if not values:
        raise InvalidArgumentError("Cannot summarize an empty latency sample")
    if not all(math.isfinite(v) for v in values):
        raise InvalidArgumentError("Latency sample contains non-finite values")
    return values


def _rank(ordered: Sequence[float], q: float) -> float:
    index = min(int(math.floor(len(ordered) * q)), len(ordered) - 1)
    return ordered[index]


def summarize(samples: Iterable[float]) -> LatencyDistributionSummary:
    """
    Summarize a latency sample.

    Args:
        samples: Latency values, all in the same unit

    Returns:
        LatencyDistributionSummary in the unit of the input

    Raises:
        InvalidArgumentError: If the sample is empty or holds NaN/inf

    Example:
        >>> s = summarize([0.3, 0.35, 0.4, 0.9, 1.2])
        >>> s.median, s.p95, s.p99
        (0.4, 1.2, 1.2)
    """
    ordered = sorted(_validated(samples))
    return LatencyDistributionSummary(
        min=ordered[0],
        max=ordered[-1],
        mean=statistics.fmean(ordered),
        median=_rank(ordered, 0.5),
        p95=_rank(ordered, 0.95),
        p99=_rank(ordered, 0.99),
        count=len(ordered),
    )


def speedup_factor(uncached_mean: float, cached_mean: float) -> float:
    """How many times faster the cached path is; both means in the same unit"""
    if not math.isfinite(cached_mean) or cached_mean <= 0:
        raise InvalidArgumentError(f"Cached mean must be positive, got {cached_mean}")
    if not math.isfinite(uncached_mean) or uncached_mean < 0:
        raise InvalidArgumentError(f"Uncached mean must be non-negative, got {uncached_mean}")
    return uncached_mean / cached_mean


def latency_distribution(
    samples: Iterable[float],
    buckets: Sequence[Tuple[str, float, float]] = DEFAULT_BUCKETS,
) -> List[LatencyBucket]:
    """Count samples per [lower, upper) bucket; percentages sum to 100 when buckets cover the sample"""
    values = _validated(samples)
    total = len(values)
    result = []
    for label, lower, upper in buckets:
        count = sum(1 for v in values if lower <= v < upper)
        result.append(
            LatencyBucket(
                label=label,
                lower=lower,
                upper=upper,
                count=count,
                percentage=count / total * 100,
            )
        )
    return result
