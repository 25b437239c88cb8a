"""Metrics collector: thread-safe counters and rolling histograms for remote delivery.

Counters cover the whole lifetime of the collector. Averages and p95 values
are computed over the most recent ``window`` successful deliveries only, so a
long-running process keeps a fixed memory footprint.
"""

import statistics
import threading
import time
from collections import deque

FLUSH_TRIGGERS = ("size", "timer", "manual", "shutdown", "unload")

DEFAULT_WINDOW = 1000


class _RollingSample:
    """The last *maxlen* observations of one measurement."""

    def __init__(self, maxlen: int):
        self._values: deque[float] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._values)

    def add(self, value: float) -> None:
        self._values.append(value)

    def mean(self) -> float:
        return statistics.fmean(self._values) if self._values else 0.0

    def p95(self) -> float:
        # Linear interpolation between closest ranks.
        if len(self._values) < 2:
            return float(self._values[0]) if self._values else 0.0
        return statistics.quantiles(self._values, n=100, method="inclusive")[94]


class MetricsCollector:
    """Collects and reports metrics about remote batch delivery."""

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self._lock = threading.Lock()
        self._batches_sent = 0
        self._total_entries = 0
        self._total_bytes = 0
        self._failed_batches = 0
        self._requeued_entries = 0
        self._dropped_entries = 0
        self._batch_sizes = _RollingSample(window)
        self._send_times = _RollingSample(window)
        self._flush_triggers = dict.fromkeys(FLUSH_TRIGGERS, 0)
        self._start_time = time.monotonic()

    def record_flush(self, trigger: str) -> None:
        """Count a flush that actually submitted a batch."""
        with self._lock:
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def record_batch(self, batch_size: int, bytes_sent: int, send_time_ms: float) -> None:
        """Record one successful delivery of *batch_size* entries."""
        with self._lock:
            self._batches_sent += 1
            self._total_entries += batch_size
            self._total_bytes += bytes_sent
            self._batch_sizes.add(batch_size)
            self._send_times.add(send_time_ms)

    def record_failure(self, requeued: int, dropped: int) -> None:
        """Record a failed delivery and what happened to its entries."""
        with self._lock:
            self._failed_batches += 1
            self._requeued_entries += requeued
            self._dropped_entries += dropped

    def snapshot(self) -> dict:
        """Point-in-time copy of the counters plus rolling averages and p95s."""
        with self._lock:
            snap = {
                "batches_sent": self._batches_sent,
                "total_entries": self._total_entries,
                "total_bytes": self._total_bytes,
                "failed_batches": self._failed_batches,
                "requeued_entries": self._requeued_entries,
                "dropped_entries": self._dropped_entries,
                "flush_triggers": dict(self._flush_triggers),
                "sample_count": len(self._batch_sizes),
                "avg_batch_size": self._batch_sizes.mean(),
                "p95_batch_size": self._batch_sizes.p95(),
                "avg_send_time_ms": self._send_times.mean(),
                "p95_send_time_ms": self._send_times.p95(),
            }
        snap["uptime_seconds"] = time.monotonic() - self._start_time
        return snap
