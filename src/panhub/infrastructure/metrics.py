"""Zero-impact in-memory performance metrics.

All counters are plain Python integers manipulated inside the single-threaded
async event loop: no locks, no I/O, no external dependencies.

``time.perf_counter_ns()`` is used for timing (monotonic, nanosecond
resolution, near-zero overhead).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class SourceCallStats:
    """Accumulated statistics for one source family."""

    calls: int = 0
    successes: int = 0
    failures: int = 0
    total_results: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable summary."""
        avg_ms = (
            round(self.total_duration_ns / self.calls / 1_000_000, 1)
            if self.calls
            else 0.0
        )
        return {
            "calls": self.calls,
            "successes": self.successes,
            "failures": self.failures,
            "total_results": self.total_results,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector.

    Thread-safety is not required: the event loop is single-threaded.
    """

    _families: dict[str, SourceCallStats] = field(default_factory=dict)
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    def record_source_call(
        self,
        family: str,
        duration_ns: int,
        result_count: int,
        *,
        success: bool,
    ) -> None:
        """Record one remote batch call."""
        stats = self._families.setdefault(family, SourceCallStats())
        stats.calls += 1
        stats.total_duration_ns += duration_ns
        if success:
            stats.successes += 1
            stats.total_results += result_count
        else:
            stats.failures += 1

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_s = round((time.perf_counter_ns() - self._start_ns) / 1_000_000_000, 1)
        return {
            "uptime_seconds": uptime_s,
            "sources": {
                name: stats.snapshot() for name, stats in sorted(self._families.items())
            },
        }
