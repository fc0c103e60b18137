"""
JSON metrics for tracer-stream.

One aggregator is shared by the render worker thread and the event loop:

- counters: monotonic totals (passes merged, frames sent, resets, ...)
- gauges: latest value (epoch, connected clients)
- timings: rolling window of ``*_ms`` observations summarised with percentiles

``snapshot()`` returns the dict served at ``/metrics.json``.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Dict

import numpy as np

_EMPTY_TIMING = {
    "last_ms": 0.0,
    "mean_ms": 0.0,
    "p50_ms": 0.0,
    "p90_ms": 0.0,
    "p99_ms": 0.0,
    "min_ms": 0.0,
    "max_ms": 0.0,
    "count": 0,
}


class _Timing:
    """Rolling window of millisecond samples; ``count`` and extremes are all-time."""

    __slots__ = ("samples", "count", "lowest", "highest")

    def __init__(self, window: int) -> None:
        self.samples: Deque[float] = deque(maxlen=window)
        self.count = 0
        self.lowest = float("inf")
        self.highest = float("-inf")

    def add(self, value_ms: float) -> None:
        self.samples.append(value_ms)
        self.count += 1
        self.lowest = min(self.lowest, value_ms)
        self.highest = max(self.highest, value_ms)

    def summary(self) -> Dict[str, float]:
        if not self.samples:
            return dict(_EMPTY_TIMING)
        window = np.fromiter(self.samples, dtype=np.float64, count=len(self.samples))
        p50, p90, p99 = np.percentile(window, (50, 90, 99), method="nearest")
        return {
            "last_ms": float(window[-1]),
            "mean_ms": float(window.mean()),
            "p50_ms": float(p50),
            "p90_ms": float(p90),
            "p99_ms": float(p99),
            "min_ms": self.lowest,
            "max_ms": self.highest,
            "count": self.count,
        }


class Metrics:
    """Thread-safe counters, gauges and timings with a JSON snapshot."""

    def __init__(self, window: int = 512) -> None:
        self._window = max(16, int(window))
        self._lock = threading.Lock()
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._timings: Dict[str, _Timing] = {}
        # passes/s is derived from the merged-pass counter between snapshots
        self._rate_mark = (0.0, time.time())

    def inc(self, name: str, value: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + float(value)

    def set(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe_ms(self, name: str, value_ms: float) -> None:
        with self._lock:
            timing = self._timings.get(name)
            if timing is None:
                timing = self._timings[name] = _Timing(self._window)
            timing.add(float(value_ms))

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def snapshot(self) -> Dict[str, object]:
        now = time.time()
        with self._lock:
            merged = self._counters.get("tracer_stream_passes_merged", 0.0)
            prev_merged, prev_ts = self._rate_mark
            self._rate_mark = (merged, now)
            rate = max(0.0, merged - prev_merged) / max(1e-3, now - prev_ts)

            counters = {k: int(v) if v.is_integer() else v for k, v in self._counters.items()}
            gauges = dict(self._gauges)
            timings = {k: t.summary() for k, t in self._timings.items()}

        return {
            "version": "v1",
            "ts": now,
            "counters": counters,
            "gauges": gauges,
            "histograms": timings,
            "derived": {"passes_per_s": rate},
        }


__all__ = ["Metrics"]
