"""
Skew histograms.

Equal-width binning of per-task samples (scheduled time, CPU time) so the
spread across a stage's tasks can be drawn as a small histogram.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Sequence

# Maximum bucket count; matches the pixel width of the histogram widget.
HISTOGRAM_WIDTH = 175


@dataclass(frozen=True, slots=True)
class Histogram:
    counts: tuple[int, ...]
    data_min: float
    data_max: float
    bucket_size: float

    @property
    def total(self) -> int:
        return sum(self.counts)

    def ranges(self) -> list[tuple[float, float]]:
        """``[low, high)`` range of each bucket, by index."""
        return [
            (
                self.data_min + i * self.bucket_size,
                self.data_min + (i + 1) * self.bucket_size,
            )
            for i in range(len(self.counts))
        ]

    def labels(self, formatter: Callable[[float], str] = str) -> list[str]:
        return [f"{formatter(low)}-{formatter(high)}" for low, high in self.ranges()]


def bucketize(samples: Sequence[float], max_buckets: int = HISTOGRAM_WIDTH) -> Histogram:
    """
    Bin samples into ``min(max_buckets, floor(sqrt(n)))`` equal-width buckets.

    An extra trailing bucket holds samples equal to the maximum. When all
    samples are equal the histogram collapses to one bucket holding them all.

    Args:
        samples: Non-empty sequence of numeric samples.
        max_buckets: Upper bound on the number of regular buckets.

    Returns:
        Histogram whose counts always sum to ``len(samples)``.

    Raises:
        ValueError: If ``samples`` is empty.
    """
    if not samples:
        raise ValueError("cannot build a histogram from an empty sample set")

    values = [float(v) for v in samples]
    num_buckets = max(1, min(max_buckets, math.isqrt(len(values))))
    data_min = min(values)
    data_max = max(values)
    bucket_size = (data_max - data_min) / num_buckets

    if bucket_size == 0:
        return Histogram((len(values),), data_min, data_max, 0.0)

    counts = [0] * (num_buckets + 1)
    last = len(counts) - 1
    for value in values:
        bucket = math.floor((value - data_min) / bucket_size)
        counts[min(bucket, last)] += 1
    return Histogram(tuple(counts), data_min, data_max, bucket_size)
