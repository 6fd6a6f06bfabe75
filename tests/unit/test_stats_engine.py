"""
Unit Tests for Latency Statistics

Run with:
    pytest tests/unit/test_stats_engine.py -v
"""

import math

import pytest

from core.errors import InvalidArgumentError
from services.stats_engine import latency_distribution, speedup_factor, summarize


class TestSummarize:
    """Tests for summarize()"""

    def test_reference_sample(self):
        summary = summarize([0.3, 0.35, 0.4, 0.9, 1.2])

        assert summary.min == 0.3
        assert summary.max == 1.2
        assert summary.mean == pytest.approx(0.63)
        assert summary.median == 0.4
        assert summary.p95 == 1.2
        assert summary.p99 == 1.2
        assert summary.count == 5

    def test_input_order_irrelevant(self):
        assert summarize([1.2, 0.3, 0.9, 0.4, 0.35]) == summarize([0.3, 0.35, 0.4, 0.9, 1.2])

    def test_single_sample(self):
        summary = summarize([7.5])
        assert summary.min == summary.max == summary.median == summary.p95 == summary.p99 == 7.5

    def test_even_count_median_is_upper_middle(self):
        """Median is the value at index floor(n/2), not an average"""
        assert summarize([1.0, 2.0, 3.0, 4.0]).median == 3.0

    def test_nearest_rank_percentiles(self):
        samples = [float(i) for i in range(1, 101)]
        summary = summarize(samples)

        assert summary.p95 == 96.0
        assert summary.p99 == 100.0

    def test_percentiles_are_observed_values(self):
        samples = [0.11, 0.52, 0.97, 3.3, 8.1, 0.42, 0.47]
        summary = summarize(samples)
        assert summary.p95 in samples
        assert summary.p99 in samples

    def test_ordering_invariant(self):
        summary = summarize([5.0, 0.1, 0.2, 0.2, 0.3, 9.9, 0.4])
        assert summary.min <= summary.median <= summary.p95 <= summary.p99 <= summary.max

    def test_empty_sample_rejected(self):
        with pytest.raises(InvalidArgumentError):
            summarize([])

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, bad):
        with pytest.raises(InvalidArgumentError):
            summarize([0.1, bad])

    def test_invalid_argument_is_value_error(self):
        with pytest.raises(ValueError):
            summarize([])


class TestSpeedupFactor:
    """Tests for speedup_factor()"""

    def test_ratio(self):
        assert speedup_factor(150_000.0, 0.5) == pytest.approx(300_000.0)

    def test_non_positive_cached_mean_rejected(self):
        with pytest.raises(InvalidArgumentError):
            speedup_factor(10.0, 0.0)


class TestLatencyDistribution:
    """Tests for latency_distribution()"""

    def test_bucket_counts(self):
        buckets = latency_distribution([0.1, 0.4, 0.5, 0.7, 2.0, 12.0])

        assert [b.label for b in buckets] == ["0.0-0.5µs", "0.5-1.0µs", "1.0-5.0µs", "5.0+µs"]
        assert [b.count for b in buckets] == [2, 2, 1, 1]
        assert sum(b.percentage for b in buckets) == pytest.approx(100.0)

    def test_boundaries_are_half_open(self):
        buckets = latency_distribution([0.5, 1.0, 5.0])
        assert [b.count for b in buckets] == [0, 1, 1, 1]

    def test_empty_sample_rejected(self):
        with pytest.raises(InvalidArgumentError):
            latency_distribution([])
