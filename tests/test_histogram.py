"""
Tests for skew histogram bucketing.
"""

from __future__ import annotations

import pytest

from query_monitor.core.histogram import HISTOGRAM_WIDTH, bucketize
from query_monitor.core.units import format_duration


class TestBucketize:
    def test_counts_sum_to_sample_count(self) -> None:
        samples = [float(i * 7 % 23) for i in range(200)]
        histogram = bucketize(samples)
        assert histogram.total == len(samples)

    def test_max_value_lands_in_trailing_bucket(self) -> None:
        histogram = bucketize([0, 1, 2, 3])
        assert histogram.bucket_size == pytest.approx(1.5)
        assert histogram.counts == (2, 1, 1)

    def test_identical_samples_collapse_to_one_bucket(self) -> None:
        histogram = bucketize([5.0] * 9)
        assert histogram.counts == (9,)
        assert histogram.bucket_size == 0.0

    def test_single_sample(self) -> None:
        histogram = bucketize([42.0])
        assert histogram.counts == (1,)

    def test_bucket_count_is_capped(self) -> None:
        samples = list(range(100_000))
        histogram = bucketize(samples)
        # Regular buckets plus the trailing bucket for the maximum.
        assert len(histogram.counts) == HISTOGRAM_WIDTH + 1
        assert histogram.total == len(samples)

    def test_custom_cap(self) -> None:
        histogram = bucketize(list(range(100)), max_buckets=4)
        assert len(histogram.counts) == 5

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            bucketize([])

    def test_is_deterministic(self) -> None:
        samples = [3.0, 1.0, 4.0, 1.0, 5.0, 9.0, 2.0, 6.0]
        assert bucketize(samples) == bucketize(samples)


class TestRangesAndLabels:
    def test_ranges(self) -> None:
        histogram = bucketize([0, 1, 2, 3])
        assert histogram.ranges() == [(0.0, 1.5), (1.5, 3.0), (3.0, 4.5)]

    def test_labels_use_formatter(self) -> None:
        histogram = bucketize([0, 1000, 2000, 3000])
        assert histogram.labels(format_duration) == ["0.00ms-1.50s", "1.50s-3.00s", "3.00s-4.50s"]
