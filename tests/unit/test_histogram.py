"""Tests for LatencyHistogram."""

from __future__ import annotations

import pytest

from loadstage.metrics.histogram import LatencyHistogram
from loadstage.metrics.models import LatencyStats


class TestLatencyHistogram:
    def test_record_and_get_percentile(self):
        h = LatencyHistogram()
        # Record 100 values from 1.0 to 100.0 ms
        for i in range(1, 101):
            h.record(float(i))

        assert h.count == 100
        assert 49.0 <= h.percentile(50.0) <= 51.0
        assert 98.0 <= h.percentile(99.0) <= 101.0

    def test_empty_histogram_returns_zeros(self):
        h = LatencyHistogram()
        assert h.count == 0
        assert h.percentile(95.0) == 0.0
        assert h.stats() == LatencyStats()

    def test_single_value(self):
        h = LatencyHistogram()
        h.record(10.0)  # 10ms = 10000us
        assert 9.9 <= h.percentile(50.0) <= 10.1

    def test_stats(self):
        h = LatencyHistogram()
        for value in (5.0, 10.0, 15.0):
            h.record(value)

        stats = h.stats()
        assert stats.min == pytest.approx(5.0, rel=0.01)
        assert stats.max == pytest.approx(15.0, rel=0.01)
        assert stats.avg == pytest.approx(10.0, rel=0.01)
        assert stats.min <= stats.p50 <= stats.p99 <= stats.max

    def test_out_of_range_values_are_clamped(self):
        h = LatencyHistogram()
        h.record(-3.0)
        h.record(0.0)
        h.record(10_000_000.0)  # beyond one hour
        assert h.count == 3
        assert h.stats().max <= 3_600_000.0 * 1.01
