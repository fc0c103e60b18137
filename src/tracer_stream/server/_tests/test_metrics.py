from __future__ import annotations

import json
import threading

import pytest

from tracer_stream.server.metrics import Metrics


def test_counters_gauges_and_histograms_snapshot() -> None:
    m = Metrics(window=16)
    m.inc("tracer_stream_passes_merged")
    m.inc("tracer_stream_passes_merged", 2)
    m.set("tracer_stream_epoch", 3)
    for v in (1.0, 2.0, 3.0, 4.0):
        m.observe_ms("tracer_stream_pass_ms", v)

    snap = m.snapshot()
    json.dumps(snap)
    assert snap["counters"]["tracer_stream_passes_merged"] == 3
    assert snap["gauges"]["tracer_stream_epoch"] == pytest.approx(3.0)
    hist = snap["histograms"]["tracer_stream_pass_ms"]
    assert hist["count"] == 4
    assert hist["mean_ms"] == pytest.approx(2.5)
    assert hist["min_ms"] == pytest.approx(1.0)
    assert hist["max_ms"] == pytest.approx(4.0)
    assert snap["derived"]["passes_per_s"] >= 0.0


def test_histogram_window_is_bounded() -> None:
    m = Metrics(window=16)
    for v in range(100):
        m.observe_ms("tracer_stream_encode_ms", float(v))
    hist = m.snapshot()["histograms"]["tracer_stream_encode_ms"]
    assert hist["count"] == 100
    assert hist["p50_ms"] >= 84.0


def test_concurrent_increments() -> None:
    m = Metrics()

    def bump() -> None:
        for _ in range(1000):
            m.inc("tracer_stream_frames_sent")

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.counter("tracer_stream_frames_sent") == 4000
    assert m.gauge("missing") == 0.0
