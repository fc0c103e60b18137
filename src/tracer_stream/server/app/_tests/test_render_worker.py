"""Unit tests for the render worker lifecycle helpers."""

from __future__ import annotations

import threading
import time

import pytest

from tracer_stream.engine import default_scene
from tracer_stream.server.app.render_worker import RenderWorkerState, start_worker, stop_worker
from tracer_stream.server.config import RenderCfg
from tracer_stream.server.rendering.orchestrator import RenderOrchestrator
from tracer_stream.server.scene_state import SceneState


def _orchestrator(engine) -> RenderOrchestrator:
    scene, camera = default_scene(16 / 9)
    return RenderOrchestrator(
        SceneState(camera=camera, scene=scene),
        width=16,
        height=9,
        render_cfg=RenderCfg(max_depth=2),
        engine=engine,
    )


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_worker_accumulates_until_stopped() -> None:
    def engine(settings, cancel) -> bool:
        settings.buffer.data[..., :3] = 1.0
        time.sleep(0.001)
        return True

    orch = _orchestrator(engine)
    state = RenderWorkerState()
    start_worker(orch, state)
    try:
        assert _wait_for(lambda: orch.snapshot().merges >= 3)
    finally:
        stop_worker(state, orchestrator=orch)

    assert state.thread is None
    assert state.merged >= 3
    assert state.passes >= state.merged


def test_stop_cancels_in_flight_pass() -> None:
    entered = threading.Event()

    def engine(settings, cancel) -> bool:
        entered.set()
        return not cancel.wait(timeout=10.0)

    orch = _orchestrator(engine)
    state = RenderWorkerState()
    start_worker(orch, state)
    assert entered.wait(timeout=5.0)

    t0 = time.monotonic()
    stop_worker(state, orchestrator=orch, timeout=5.0)

    assert time.monotonic() - t0 < 5.0
    assert state.thread is None
    assert orch.snapshot().merges == 0


def test_worker_survives_engine_errors() -> None:
    calls = {"n": 0}

    def engine(settings, cancel) -> bool:
        calls["n"] += 1
        if calls["n"] % 2:
            raise RuntimeError("boom")
        settings.buffer.data[..., :3] = 0.5
        return True

    orch = _orchestrator(engine)
    state = RenderWorkerState()
    start_worker(orch, state)
    try:
        assert _wait_for(lambda: orch.snapshot().merges >= 2)
    finally:
        stop_worker(state, orchestrator=orch)
    assert orch.metrics.counter("tracer_stream_passes_failed") >= 2


def test_double_start_rejected() -> None:
    release = threading.Event()

    def engine(settings, cancel) -> bool:
        release.wait(timeout=5.0)
        return True

    orch = _orchestrator(engine)
    state = RenderWorkerState()
    start_worker(orch, state)
    try:
        with pytest.raises(RuntimeError):
            start_worker(orch, state)
    finally:
        release.set()
        stop_worker(state, orchestrator=orch)
