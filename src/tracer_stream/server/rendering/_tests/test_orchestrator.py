from __future__ import annotations

import io
import threading
from typing import Optional

import numpy as np
import pytest

from tracer_stream.codec import decode_png
from tracer_stream.engine import HitterList, RenderSettings, default_camera, default_scene, ray_hit_mask, render
from tracer_stream.engine.geometry import BVHNode
from tracer_stream.server.config import RenderCfg, ServerConfig, ServerCtx
from tracer_stream.server.errors import StartupError
from tracer_stream.server.metrics import Metrics
from tracer_stream.server.rendering.generation import CancelToken
from tracer_stream.server.rendering.orchestrator import RenderOrchestrator
from tracer_stream.server.scene_state import SceneState

WIDTH, HEIGHT = 32, 18
CENTRE = (WIDTH // 2, HEIGHT // 2)


class ConstantEngine:
    """Fills sample passes with a fixed colour; optionally blocks until released.

    Outline (hit mask) passes go to the real engine.
    """

    def __init__(self, value: float = 1.0) -> None:
        self.value = value
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self.calls = 0

    def __call__(self, settings: RenderSettings, cancel: Optional[CancelToken]) -> bool:
        if settings.color_func is ray_hit_mask:
            return render(settings, cancel)
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        settings.buffer.data[..., :3] = self.value
        return True


def _state() -> SceneState:
    scene, camera = default_scene(WIDTH / HEIGHT)
    return SceneState(camera=camera, scene=scene)


def _orchestrator(engine=None, **cfg) -> RenderOrchestrator:
    kwargs = {} if engine is None else {"engine": engine}
    return RenderOrchestrator(
        _state(),
        width=WIDTH,
        height=HEIGHT,
        render_cfg=RenderCfg(max_depth=4, seed=7, **cfg),
        metrics=Metrics(),
        **kwargs,
    )


def _assert_zeroed(orch: RenderOrchestrator) -> None:
    scene, gui = orch.buffers()
    assert not scene.data.any()
    assert not gui.data.any()


def test_sample_pass_merges_into_live_buffer() -> None:
    orch = _orchestrator(ConstantEngine(0.8))

    assert orch.produce_sample_pass() is True
    assert orch.produce_sample_pass() is True

    scene, _ = orch.buffers()
    assert scene.merges == 2
    assert scene.data[..., :3] == pytest.approx(np.full((HEIGHT, WIDTH, 3), 0.6))
    assert orch.metrics.counter("tracer_stream_passes_merged") == 2


def test_running_accumulation_mode_uses_true_mean() -> None:
    orch = _orchestrator(ConstantEngine(0.8), accumulate="running")
    orch.produce_sample_pass()
    orch.produce_sample_pass()

    scene, _ = orch.buffers()
    assert scene.data[..., :3] == pytest.approx(np.full((HEIGHT, WIDTH, 3), 0.8))


def test_passes_in_flight_across_resets_are_discarded() -> None:
    engine = ConstantEngine(1.0)
    engine.gate = threading.Event()
    orch = _orchestrator(engine)
    results: list[bool] = []

    worker = threading.Thread(target=lambda: results.append(orch.produce_sample_pass()))
    worker.start()
    assert engine.started.wait(timeout=5.0)

    for _ in range(5):
        orch.reset("test")
    engine.gate.set()
    worker.join(timeout=5.0)

    assert results == [False]
    assert orch.snapshot().epoch == 5
    _assert_zeroed(orch)
    assert orch.metrics.counter("tracer_stream_passes_discarded") == 1


def test_reset_cancels_token_seen_by_engine() -> None:
    seen: list[CancelToken] = []

    def engine(settings: RenderSettings, cancel: Optional[CancelToken]) -> bool:
        seen.append(cancel)
        return not cancel.wait(timeout=5.0)

    orch = _orchestrator(engine)
    worker = threading.Thread(target=orch.produce_sample_pass)
    worker.start()
    while not seen:
        threading.Event().wait(0.001)
    orch.reset("test")
    worker.join(timeout=5.0)

    assert not worker.is_alive()
    assert seen[0].cancelled
    _assert_zeroed(orch)


def test_failed_pass_is_dropped_and_loop_can_continue() -> None:
    calls = {"n": 0}

    def flaky(settings: RenderSettings, cancel: Optional[CancelToken]) -> bool:
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("engine blew up")
        settings.buffer.data[..., :3] = 0.5
        return True

    orch = _orchestrator(flaky)

    assert orch.produce_sample_pass() is False
    assert orch.produce_sample_pass() is True
    assert orch.metrics.counter("tracer_stream_passes_failed") == 1
    assert orch.snapshot().merges == 1


def test_camera_pan_advances_epoch_once_and_zeroes_buffers() -> None:
    orch = _orchestrator(ConstantEngine(0.5))
    orch.produce_sample_pass()
    before = orch.snapshot()

    epoch = orch.set_camera_offset((0.0, 0.0, -0.5))

    after = orch.snapshot()
    assert epoch == before.epoch + 1 == after.epoch
    assert after.camera.look_from == (0.0, 2.0, 0.5)
    assert after.merges == 0
    _assert_zeroed(orch)


def test_hover_sets_and_clears_handle_without_reset() -> None:
    orch = _orchestrator()

    node = orch.set_hover(*CENTRE)

    assert node is not None
    assert node.left.center.tolist() == [0.0, 0.0, -1.0]
    snap = orch.snapshot()
    assert snap.hovered is node
    assert snap.epoch == 0
    _, gui = orch.buffers()
    outline = gui.data[..., 3] > 0
    assert outline.any()
    assert gui.data[outline, :3] == pytest.approx(np.tile([1.0, 1.0, 0.0], (int(outline.sum()), 1)))

    assert orch.set_hover(0, 0) is None
    assert orch.snapshot().hovered is None
    _, gui = orch.buffers()
    assert not gui.data.any()


def test_hover_outside_image_clears_handle() -> None:
    orch = _orchestrator()
    orch.set_hover(*CENTRE)

    assert orch.set_hover(WIDTH + 5, -1) is None
    assert orch.snapshot().hovered is None


def test_selection_outline_is_red_and_drawn_over_hover() -> None:
    orch = _orchestrator()
    orch.set_hover(*CENTRE)
    node = orch.set_selection(*CENTRE)

    assert node is not None
    _, gui = orch.buffers()
    outline = gui.data[..., 3] > 0
    assert gui.data[outline, :3] == pytest.approx(np.tile([1.0, 0.0, 0.0], (int(outline.sum()), 1)))
    assert orch.snapshot().epoch == 0


def test_slow_overlay_pass_never_overwrites_newer_one() -> None:
    entered = threading.Event()
    release = threading.Event()

    def engine(settings: RenderSettings, cancel: Optional[CancelToken]) -> bool:
        if settings.color_func is ray_hit_mask and not entered.is_set():
            entered.set()
            release.wait(timeout=5.0)
        return render(settings, cancel)

    orch = _orchestrator(engine)
    picked: list = []
    slow = threading.Thread(target=lambda: picked.append(orch.set_hover(*CENTRE)))
    slow.start()
    assert entered.wait(timeout=5.0)

    # the later pointer move clears the hover and installs its empty overlay first
    assert orch.set_hover(0, 0) is None
    installed = orch.snapshot().overlay_seq
    release.set()
    slow.join(timeout=5.0)

    assert picked and picked[0] is not None
    assert orch.snapshot().overlay_seq == installed
    assert orch.snapshot().hovered is None
    _, gui = orch.buffers()
    assert not gui.data.any()


def test_failed_overlay_pass_keeps_previous_overlay() -> None:
    failing = threading.Event()

    def engine(settings: RenderSettings, cancel: Optional[CancelToken]) -> bool:
        if failing.is_set() and settings.color_func is ray_hit_mask:
            raise RuntimeError("engine failed mid overlay pass")
        return render(settings, cancel)

    orch = _orchestrator(engine)
    orch.set_hover(*CENTRE)
    _, before = orch.buffers()
    failing.set()

    node = orch.set_selection(*CENTRE)

    assert node is not None
    assert orch.snapshot().selected is node
    _, after = orch.buffers()
    assert before.data.any()
    assert np.array_equal(before.data, after.data)
    assert orch.metrics.counter("tracer_stream_overlay_failed") == 1


def test_encode_writes_png_of_configured_size() -> None:
    orch = _orchestrator(ConstantEngine(0.25))
    orch.produce_sample_pass()
    out = io.BytesIO()

    orch.encode(out)

    img = decode_png(out.getvalue())
    assert img.shape == (HEIGHT, WIDTH, 3)
    # 0.125 linear after one pairwise merge, gamma 2 -> ~90
    assert abs(int(img[0, 0, 0]) - 90) <= 1


def test_composed_image_shows_outline_over_scene() -> None:
    orch = _orchestrator(ConstantEngine(0.25))
    orch.produce_sample_pass()
    orch.set_selection(*CENTRE)

    composed = orch.compose()
    _, gui = orch.buffers()
    outline = gui.data[..., 3] > 0
    assert composed.data[outline, :3] == pytest.approx(np.tile([1.0, 0.0, 0.0], (int(outline.sum()), 1)))
    assert composed.data[~outline, 0] == pytest.approx(np.full(int((~outline).sum()), 0.125))


def test_from_ctx_fails_fast_on_empty_scene() -> None:
    ctx = ServerCtx(cfg=ServerConfig(width=WIDTH, height=HEIGHT))

    def empty_scene(aspect: float):
        return BVHNode.build(HitterList([]).items), default_camera(aspect)

    with pytest.raises(StartupError):
        RenderOrchestrator.from_ctx(ctx, scene_factory=empty_scene)


def test_real_engine_passes_refine_the_image() -> None:
    orch = _orchestrator()
    assert orch.produce_sample_pass() is True
    first, _ = orch.buffers()
    assert orch.produce_sample_pass() is True
    second, _ = orch.buffers()

    assert second.merges == 2
    assert not np.array_equal(first.data, second.data)
