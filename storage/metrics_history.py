"""
Metrics History Buffer

Bounded, insertion-ordered store of MetricsSnapshot records received from the
stats stream. When the buffer is full, appending evicts the oldest snapshot
(strict FIFO), so memory stays bounded by construction.

Readers get immutable tuples; nothing outside the buffer can reorder or edit
its contents.

Usage:
    history = MetricsHistoryBuffer(capacity=100)
    history.append(snapshot)
    history.to_csv()
"""

from collections import deque
from datetime import datetime
from typing import Deque, Iterator, Optional, Tuple

from core.config import settings
from core.errors import InvalidArgumentError
from core.schemas import MetricsSnapshot
from storage import export


DEFAULT_CAPACITY = 100


class MetricsHistoryBuffer:
    """Fixed-capacity FIFO of metrics snapshots"""

    def __init__(self, capacity: Optional[int] = None) -> None:
        capacity = settings.history_capacity if capacity is None else capacity
        if capacity < 1:
            raise InvalidArgumentError(f"History capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._snapshots: Deque[MetricsSnapshot] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, snapshot: MetricsSnapshot) -> None:
        """Insert at the tail, evicting the oldest snapshot when full"""
        self._snapshots.append(snapshot)

    def clear(self) -> None:
        self._snapshots.clear()

    def snapshots(self) -> Tuple[MetricsSnapshot, ...]:
        """All retained snapshots, oldest first"""
        return tuple(self._snapshots)

    @property
    def latest(self) -> Optional[MetricsSnapshot]:
        return self._snapshots[-1] if self._snapshots else None

    @property
    def oldest(self) -> Optional[MetricsSnapshot]:
        return self._snapshots[0] if self._snapshots else None

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[MetricsSnapshot]:
        return iter(self.snapshots())

    # ============================================
    # Export
    # ============================================

    def to_csv(self) -> str:
        return export.metrics_to_csv(self.snapshots())

    def to_json(self, exported_at: Optional[datetime] = None) -> str:
        return export.metrics_to_json(self.snapshots(), exported_at)

    def summary(self) -> dict:
        return export.metrics_summary(self.snapshots())
