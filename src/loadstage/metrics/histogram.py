"""HDR histogram of latencies for whole-run percentile computation.

Run-long aggregates would otherwise need every latency kept in memory.
``hdrh`` stores integers, so values are recorded as microseconds and read
back as milliseconds.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

from loadstage.metrics.models import LatencyStats

# 1 microsecond to 1 hour, 3 significant digits.
_LOWEST_US = 1
_HIGHEST_US = 3_600_000_000
_SIGNIFICANT_DIGITS = 3


class LatencyHistogram:
    """Millisecond-facing wrapper around ``HdrHistogram``.

    Recorded values are clamped into the trackable range, so an
    out-of-range latency is never dropped.
    """

    def __init__(self) -> None:
        self._histogram = HdrHistogram(_LOWEST_US, _HIGHEST_US, _SIGNIFICANT_DIGITS)

    def record(self, latency_ms: float) -> None:
        """Record one latency in milliseconds."""
        value_us = min(max(int(latency_ms * 1000), _LOWEST_US), _HIGHEST_US)
        self._histogram.record_value(value_us)

    @property
    def count(self) -> int:
        return int(self._histogram.total_count)

    def percentile(self, percentile: float) -> float:
        """Return the latency (ms) at *percentile*, or 0.0 if empty."""
        if self.count == 0:
            return 0.0
        return self._histogram.get_value_at_percentile(percentile) / 1000.0

    def stats(self) -> LatencyStats:
        """Summarise the recorded distribution."""
        if self.count == 0:
            return LatencyStats()
        hist = self._histogram
        return LatencyStats(
            min=hist.get_min_value() / 1000.0,
            max=hist.get_max_value() / 1000.0,
            avg=hist.get_mean_value() / 1000.0,
            p50=self.percentile(50.0),
            p75=self.percentile(75.0),
            p90=self.percentile(90.0),
            p95=self.percentile(95.0),
            p99=self.percentile(99.0),
            p999=self.percentile(99.9),
        )
