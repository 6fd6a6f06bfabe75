"""
Export Formats

Deterministic CSV and JSON serialization for metrics history and benchmark
results, plus the file naming rule for export artifacts.

CSV layout:
    - header row of field names
    - every value quoted
    - fixed decimal precision per field, independent of magnitude
      (hit rates and speedups 2 places, latencies 3 places, counters integers)

JSON layout:
    {
      "export_timestamp": "2024-01-01T12:00:00Z",
      "export_type": "metrics_history",
      "count": 2,
      "data": [...],
      "summary": {...}
    }

File names:
    {prefix}_{YYYY-MM-DD}_{HH-MM-SS}.{csv|json}   (UTC)

Usage:
    from storage.export import metrics_to_csv, export_metrics_history

    text = metrics_to_csv(history.snapshots())
    path = export_metrics_history(history.snapshots(), "json", directory="exports")
"""

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.config import settings
from core.errors import InvalidArgumentError
from core.logging import get_logger
from core.schemas import BenchmarkResult, MetricsSnapshot
from core.utils.time import current_utc_datetime, ensure_utc


logger = get_logger(__name__)

EXPORT_FORMATS = ("csv", "json")
MIME_TYPES = {"csv": "text/csv", "json": "application/json"}

METRICS_PREFIX = "metrics-history"
BENCHMARK_PREFIX = "benchmark-results"


# ============================================
# Field Formatting
# ============================================

def _iso(dt: datetime) -> str:
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def _fixed(places: int) -> Callable[[Any], str]:
    return lambda value: f"{float(value):.{places}f}"


def _integer(value: Any) -> str:
    return str(int(value))


# (field, formatter) in column order
METRICS_COLUMNS: List[Tuple[str, Callable[[Any], str]]] = [
    ("timestamp", _iso),
    ("cache_hits", _integer),
    ("cache_misses", _integer),
    ("stale_hits", _integer),
    ("hit_rate_percent", _fixed(2)),
    ("avg_latency_us", _fixed(3)),
    ("p95_latency_us", _fixed(3)),
    ("p99_latency_us", _fixed(3)),
    ("refresh_errors", _integer),
    ("cache_size", _integer),
]

BENCHMARK_COLUMNS: List[Tuple[str, Callable[[Any], str]]] = [
    ("symbol", str),
    ("cached_latency_us", _fixed(3)),
    ("uncached_latency_us", _fixed(3)),
    ("speedup_factor", _fixed(2)),
    ("p95_latency_us", _fixed(3)),
    ("p99_latency_us", _fixed(3)),
    ("sample_count", _integer),
    ("timestamp", _iso),
]


def _to_csv(items: Sequence[Any], columns: List[Tuple[str, Callable[[Any], str]]]) -> str:
    buffer = io.StringIO()
    header = csv.writer(buffer, lineterminator="\n")
    header.writerow([name for name, _ in columns])

    rows = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for item in items:
        rows.writerow([fmt(getattr(item, name)) for name, fmt in columns])

    return buffer.getvalue()


def _to_json(
    export_type: str,
    items: Sequence[Any],
    summary: Dict[str, Any],
    exported_at: Optional[datetime],
) -> str:
    payload = {
        "export_timestamp": _iso(exported_at or current_utc_datetime()),
        "export_type": export_type,
        "count": len(items),
        "data": [item.model_dump(mode="json") for item in items],
        "summary": summary,
    }
    return json.dumps(payload, indent=2)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# ============================================
# Metrics History
# ============================================

def metrics_to_csv(snapshots: Sequence[MetricsSnapshot]) -> str:
    """Render snapshots as CSV; an empty sequence yields the header row only"""
    return _to_csv(snapshots, METRICS_COLUMNS)


def metrics_summary(snapshots: Sequence[MetricsSnapshot]) -> Dict[str, Any]:
    """Totals and averages over every snapshot"""
    return {
        "avg_hit_rate": _mean([s.hit_rate_percent for s in snapshots]),
        "avg_latency": _mean([s.avg_latency_us for s in snapshots]),
        "total_cache_hits": sum(s.cache_hits for s in snapshots),
        "total_cache_misses": sum(s.cache_misses for s in snapshots),
        "total_stale_hits": sum(s.stale_hits for s in snapshots),
        "total_refresh_errors": sum(s.refresh_errors for s in snapshots),
    }


def metrics_to_json(snapshots: Sequence[MetricsSnapshot], exported_at: Optional[datetime] = None) -> str:
    return _to_json("metrics_history", snapshots, metrics_summary(snapshots), exported_at)


# ============================================
# Benchmark Results
# ============================================

def benchmark_to_csv(results: Sequence[BenchmarkResult]) -> str:
    """Render benchmark results as CSV; an empty sequence yields the header row only"""
    return _to_csv(results, BENCHMARK_COLUMNS)


def benchmark_summary(results: Sequence[BenchmarkResult]) -> Dict[str, Any]:
    cached = [r.cached_latency_us for r in results]
    uncached = [r.uncached_latency_us for r in results]
    return {
        "avg_speedup": _mean([r.speedup_factor for r in results]),
        "min_cached_latency": min(cached) if cached else 0,
        "max_cached_latency": max(cached) if cached else 0,
        "min_uncached_latency": min(uncached) if uncached else 0,
        "max_uncached_latency": max(uncached) if uncached else 0,
    }


def benchmark_to_json(results: Sequence[BenchmarkResult], exported_at: Optional[datetime] = None) -> str:
    return _to_json("benchmark_results", results, benchmark_summary(results), exported_at)


# ============================================
# Artifacts
# ============================================

def _check_format(fmt: str) -> str:
    if fmt not in EXPORT_FORMATS:
        raise InvalidArgumentError(
            f"Unsupported export format: '{fmt}'. Must be one of: {', '.join(EXPORT_FORMATS)}"
        )
    return fmt


def generate_filename(prefix: str, fmt: str, now: Optional[datetime] = None) -> str:
    """
    Build an export file name from a prefix, the current time and a format.

    Example:
        >>> generate_filename("metrics-history", "csv", datetime(2024, 1, 1, 12, 30, 5))
        'metrics-history_2024-01-01_12-30-05.csv'
    """
    _check_format(fmt)
    now = ensure_utc(now or current_utc_datetime())
    return f"{prefix}_{now:%Y-%m-%d}_{now:%H-%M-%S}.{fmt}"


def _write(prefix: str, fmt: str, content: str, directory: Optional[str], now: Optional[datetime]) -> Path:
    target_dir = Path(directory or settings.export_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / generate_filename(prefix, fmt, now)
    path.write_text(content, encoding="utf-8")
    logger.info(f"Exported {path.name} ({MIME_TYPES[fmt]})")
    return path


def export_metrics_history(
    snapshots: Sequence[MetricsSnapshot],
    fmt: str = "csv",
    directory: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Path:
    """
    Write metrics history to `directory` and return the artifact path.

    Raises:
        InvalidArgumentError: If fmt is not "csv" or "json"
    """
    _check_format(fmt)
    content = metrics_to_csv(snapshots) if fmt == "csv" else metrics_to_json(snapshots, now)
    return _write(METRICS_PREFIX, fmt, content, directory, now)


def export_benchmark_results(
    results: Sequence[BenchmarkResult],
    fmt: str = "csv",
    directory: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Path:
    """
    Write benchmark results to `directory` and return the artifact path.

    Raises:
        InvalidArgumentError: If fmt is not "csv" or "json"
    """
    _check_format(fmt)
    content = benchmark_to_csv(results) if fmt == "csv" else benchmark_to_json(results, now)
    return _write(BENCHMARK_PREFIX, fmt, content, directory, now)
