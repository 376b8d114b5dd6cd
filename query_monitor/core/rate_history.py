"""
Rate History

Fixed-capacity sliding windows of derived rate samples, one per tracked
query metric. Insertion order is temporal: the head is the oldest sample.
"""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Iterator

DEFAULT_CAPACITY = 30


class RateMetric(str, Enum):
    """Metrics tracked by the poller."""

    SCHEDULED_TIME = "scheduled_time_rate"
    CPU_TIME = "cpu_time_rate"
    ROW_INPUT = "row_input_rate"
    BYTE_INPUT = "byte_input_rate"
    RESERVED_MEMORY = "reserved_memory"


class RateHistory:
    """Bounded window of float samples; the oldest sample is evicted on overflow."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._samples: deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._samples.append(float(value))

    def last_or_default(self, default: float = 0.0) -> float:
        if not self._samples:
            return default
        return self._samples[-1]

    def values(self) -> tuple[float, ...]:
        """Read-only copy of the window, oldest first."""
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[float]:
        return iter(self.values())

    def __repr__(self) -> str:
        return f"RateHistory(capacity={self.capacity}, samples={list(self._samples)!r})"


class RateHistories:
    """One RateHistory per RateMetric, all sharing a capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._histories: dict[RateMetric, RateHistory] = {
            metric: RateHistory(capacity) for metric in RateMetric
        }

    def __getitem__(self, metric: RateMetric) -> RateHistory:
        return self._histories[metric]

    def push(self, metric: RateMetric, value: float) -> None:
        self._histories[metric].push(value)

    def as_dict(self) -> dict[str, tuple[float, ...]]:
        return {metric.value: history.values() for metric, history in self._histories.items()}

    def latest(self) -> dict[str, float]:
        return {
            metric.value: history.last_or_default()
            for metric, history in self._histories.items()
        }
