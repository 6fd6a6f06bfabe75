"""
Unit Tests for the Metrics History Buffer

Run with:
    pytest tests/unit/test_metrics_history.py -v
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from core.errors import InvalidArgumentError
from core.schemas import MetricsSnapshot
from storage.metrics_history import DEFAULT_CAPACITY, MetricsHistoryBuffer


START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def snapshot(i: int) -> MetricsSnapshot:
    return MetricsSnapshot(timestamp=START + timedelta(seconds=i), cache_hits=i)


class TestCapacity:
    """Tests for bounded FIFO behaviour"""

    def test_default_capacity(self):
        assert MetricsHistoryBuffer().capacity == DEFAULT_CAPACITY == 100

    def test_fifo_eviction(self):
        """150 appends leave the 100 most recent, oldest being the 51st"""
        history = MetricsHistoryBuffer(100)
        snapshots = [snapshot(i) for i in range(150)]
        for s in snapshots:
            history.append(s)

        assert len(history) == 100
        assert history.oldest is snapshots[50]
        assert history.latest is snapshots[149]
        assert list(history) == snapshots[50:]

    def test_insertion_order_preserved(self):
        history = MetricsHistoryBuffer(5)
        for i in (3, 1, 2):
            history.append(snapshot(i))

        assert [s.cache_hits for s in history.snapshots()] == [3, 1, 2]

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(InvalidArgumentError):
            MetricsHistoryBuffer(capacity)


class TestAccessors:
    """Tests for read access"""

    def test_empty_buffer(self):
        history = MetricsHistoryBuffer(3)
        assert len(history) == 0
        assert history.latest is None
        assert history.oldest is None
        assert history.snapshots() == ()

    def test_snapshots_is_immutable(self):
        history = MetricsHistoryBuffer(3)
        history.append(snapshot(1))
        assert isinstance(history.snapshots(), tuple)

    def test_clear(self):
        history = MetricsHistoryBuffer(3)
        history.append(snapshot(1))
        history.clear()
        assert len(history) == 0


class TestExport:
    """Tests for buffer-level export"""

    def test_to_csv_has_row_per_snapshot(self):
        history = MetricsHistoryBuffer(10)
        for i in range(3):
            history.append(snapshot(i))

        lines = history.to_csv().splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("timestamp,cache_hits")

    def test_to_json_summary(self):
        history = MetricsHistoryBuffer(10)
        for i in range(1, 4):
            history.append(snapshot(i))

        payload = json.loads(history.to_json(exported_at=START))

        assert payload["export_timestamp"] == "2024-01-01T12:00:00Z"
        assert payload["count"] == 3
        assert payload["summary"]["total_cache_hits"] == 6
        assert history.summary() == payload["summary"]
