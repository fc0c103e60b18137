"""Progressive render orchestrator.

Owns the scene state, the base ("scene") and overlay ("gui") buffers and the
render generation behind a single lock. The lock is held only while state is
inspected or swapped, never across an engine call, so resets and encodes stay
responsive while a pass is in flight.

Every pass captures the epoch it started under. When it finishes, its result
is merged only if that epoch is still live; a reset in between makes the
pass's output stale and it is dropped.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import BinaryIO, Optional, Sequence

import numpy as np

from tracer_stream.codec.png import encode_png
from tracer_stream.engine import BVHNode, Camera, RenderSettings, SceneError, camera_coordinates_from_pixel
from tracer_stream.engine import render as engine_render
from tracer_stream.server.config import LoggingToggles, RenderCfg, ServerCtx
from tracer_stream.server.metrics import Metrics
from tracer_stream.server.rendering.accumulation import AccumulationBuffer
from tracer_stream.server.rendering.generation import Generation
from tracer_stream.server.rendering.overlay import HOVER_COLOR, SELECT_COLOR, RenderFunc, render_outline
from tracer_stream.server.scene_state import SceneFactory, SceneState, load_scene_state

logger = logging.getLogger(__name__)

# composed = base * BASE_WEIGHT + overlay * OVERLAY_WEIGHT where the overlay is opaque
OVERLAY_WEIGHT = 1.0
BASE_WEIGHT = 0.0


@dataclass(frozen=True)
class OrchestratorSnapshot:
    epoch: int
    merges: int
    overlay_seq: int
    camera: Camera
    hovered: Optional[BVHNode]
    selected: Optional[BVHNode]


class RenderOrchestrator:
    def __init__(
        self,
        state: SceneState,
        *,
        width: int,
        height: int,
        render_cfg: RenderCfg = RenderCfg(),
        metrics: Optional[Metrics] = None,
        log_toggles: LoggingToggles = LoggingToggles(),
        engine: RenderFunc = engine_render,
    ) -> None:
        self._width = int(width)
        self._height = int(height)
        self._cfg = render_cfg
        self._engine = engine
        self.metrics = metrics if metrics is not None else Metrics()
        self._log_passes = bool(log_toggles.log_passes)
        self._log_overlay = bool(log_toggles.log_overlay)
        self._seeds = np.random.SeedSequence(render_cfg.seed)

        self._lock = threading.Lock()
        self._state = state
        self._generation = Generation()
        self._scene_frame = self._new_scene_frame()
        self._gui_frame = self._new_gui_frame()
        self._overlay_requested = 0
        self._overlay_installed = 0

    @classmethod
    def from_ctx(
        cls,
        ctx: ServerCtx,
        *,
        metrics: Optional[Metrics] = None,
        scene_factory: Optional[SceneFactory] = None,
        engine: RenderFunc = engine_render,
    ) -> "RenderOrchestrator":
        """Load the scene and build the orchestrator; raises ``StartupError`` on a bad scene."""

        cfg = ctx.cfg
        if scene_factory is None:
            state = load_scene_state(cfg.aspect_ratio)
        else:
            state = load_scene_state(cfg.aspect_ratio, scene_factory)
        return cls(
            state,
            width=cfg.width,
            height=cfg.height,
            render_cfg=cfg.render,
            metrics=metrics,
            log_toggles=ctx.debug_policy.logging,
            engine=engine,
        )

    # ---- properties ----------------------------------------------------------

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def size(self) -> tuple[int, int]:
        return self._width, self._height

    def snapshot(self) -> OrchestratorSnapshot:
        with self._lock:
            return OrchestratorSnapshot(
                epoch=self._generation.epoch,
                merges=self._scene_frame.merges,
                overlay_seq=self._overlay_installed,
                camera=self._state.camera,
                hovered=self._state.hovered,
                selected=self._state.selected,
            )

    def buffers(self) -> tuple[AccumulationBuffer, AccumulationBuffer]:
        """Copies of the live (scene, gui) buffers."""
        with self._lock:
            return self._scene_frame.copy(), self._gui_frame.copy()

    # ---- internals -----------------------------------------------------------

    def _new_scene_frame(self) -> AccumulationBuffer:
        return AccumulationBuffer(self._width, self._height)

    def _new_gui_frame(self) -> AccumulationBuffer:
        return AccumulationBuffer(self._width, self._height, supports_alpha=True)

    def _next_rng_locked(self) -> np.random.Generator:
        return np.random.default_rng(self._seeds.spawn(1)[0])

    def _merge_locked(self, frame: AccumulationBuffer) -> None:
        if self._cfg.accumulate == "running":
            self._scene_frame.merge_running(frame)
        else:
            self._scene_frame.merge_average(frame)

    def _advance_locked(self, reason: str) -> int:
        epoch = self._generation.advance()
        self._scene_frame = self._scene_frame.zeros_like()
        self._gui_frame = self._gui_frame.zeros_like()
        self.metrics.inc("tracer_stream_resets")
        self.metrics.set("tracer_stream_epoch", float(epoch))
        logger.debug("reset epoch=%d reason=%s", epoch, reason)
        return epoch

    # ---- progressive loop ----------------------------------------------------

    def produce_sample_pass(self) -> bool:
        """Render one pass and merge it if its epoch is still live."""

        with self._lock:
            epoch = self._generation.epoch
            token = self._generation.token
            state = self._state
            rng = self._next_rng_locked()

        frame = self._new_scene_frame()
        settings = RenderSettings(
            buffer=frame,
            camera=state.camera,
            hitter=state.scene,
            samples_per_pixel=self._cfg.samples_per_pass,
            max_depth=self._cfg.max_depth,
            band_rows=self._cfg.band_rows,
            rng=rng,
        )
        t0 = time.perf_counter()
        try:
            completed = self._engine(settings, token)
        except Exception:
            logger.exception("sample pass failed epoch=%d; dropping", epoch)
            self.metrics.inc("tracer_stream_passes_failed")
            return False
        pass_ms = (time.perf_counter() - t0) * 1000.0

        with self._lock:
            live = self._generation.epoch
            if not completed or live != epoch:
                merged = False
            else:
                self._merge_locked(frame)
                merged = True
                merges = self._scene_frame.merges

        if not merged:
            self.metrics.inc("tracer_stream_passes_discarded")
            logger.debug(
                "discarded pass epoch=%d live=%d completed=%s", epoch, live, completed
            )
            return False
        self.metrics.inc("tracer_stream_passes_merged")
        self.metrics.observe_ms("tracer_stream_pass_ms", pass_ms)
        log = logger.info if self._log_passes else logger.debug
        log("merged pass epoch=%d merges=%d %.1f ms", epoch, merges, pass_ms)
        return True

    # ---- overlay -------------------------------------------------------------

    def produce_overlay_pass(self) -> bool:
        """Rebuild the overlay from the hovered/selected handles.

        The new overlay is installed only if the epoch is unchanged and no
        later overlay pass got there first.
        """

        with self._lock:
            self._overlay_requested += 1
            ticket = self._overlay_requested
            epoch = self._generation.epoch
            token = self._generation.token
            state = self._state
            rng = self._next_rng_locked()

        t0 = time.perf_counter()
        gui = self._new_gui_frame()
        for node, color in ((state.hovered, HOVER_COLOR), (state.selected, SELECT_COLOR)):
            if node is None:
                continue
            try:
                outline = render_outline(
                    node,
                    state.camera,
                    self.size,
                    color,
                    samples=self._cfg.overlay_samples,
                    cancel=token,
                    rng=rng,
                    engine=self._engine,
                )
            except SceneError:
                logger.warning("could not isolate %r for outline; skipping", node, exc_info=True)
                continue
            except Exception:
                logger.exception("overlay pass failed ticket=%d epoch=%d; keeping previous overlay", ticket, epoch)
                self.metrics.inc("tracer_stream_overlay_failed")
                return False
            if outline is None:
                logger.debug("overlay pass cancelled epoch=%d", epoch)
                return False
            gui.blend(outline, 1.0, 0.0)

        with self._lock:
            if not self._generation.is_current(epoch) or ticket < self._overlay_installed:
                logger.debug("discarded overlay ticket=%d epoch=%d", ticket, epoch)
                return False
            self._gui_frame = gui
            self._overlay_installed = ticket

        overlay_ms = (time.perf_counter() - t0) * 1000.0
        self.metrics.observe_ms("tracer_stream_overlay_ms", overlay_ms)
        log = logger.info if self._log_overlay else logger.debug
        log(
            "overlay installed ticket=%d hovered=%s selected=%s %.1f ms",
            ticket,
            state.hovered is not None,
            state.selected is not None,
            overlay_ms,
        )
        return True

    # ---- output --------------------------------------------------------------

    def compose(self) -> AccumulationBuffer:
        with self._lock:
            composed = self._scene_frame.copy()
            composed.blend(self._gui_frame, OVERLAY_WEIGHT, BASE_WEIGHT)
        return composed

    def encode(self, output: BinaryIO) -> None:
        """Write the composed image to ``output`` as PNG; encoding runs unlocked."""

        composed = self.compose()
        t0 = time.perf_counter()
        encode_png(composed.to_image(), output)
        self.metrics.observe_ms("tracer_stream_encode_ms", (time.perf_counter() - t0) * 1000.0)

    def encode_png(self) -> bytes:
        composed = self.compose()
        t0 = time.perf_counter()
        data = encode_png(composed.to_image())
        self.metrics.observe_ms("tracer_stream_encode_ms", (time.perf_counter() - t0) * 1000.0)
        return data

    # ---- mutations -----------------------------------------------------------

    def reset(self, reason: str = "explicit") -> int:
        with self._lock:
            return self._advance_locked(reason)

    def set_camera_offset(self, delta: Sequence[float]) -> int:
        """Move the camera by ``delta`` and start a new epoch; returns the new epoch."""

        with self._lock:
            self._state = replace(self._state, camera=self._state.camera.translated(delta))
            return self._advance_locked("camera")

    def _pick(self, x: int, y: int) -> Optional[BVHNode]:
        with self._lock:
            state = self._state
        if not (0 <= x < self._width and 0 <= y < self._height):
            return None
        ray = state.camera.get_ray(camera_coordinates_from_pixel(y, x, self._width, self._height))
        record = state.scene.hit_one(ray)
        return record.node if record.hit else None

    def set_hover(self, x: int, y: int) -> Optional[BVHNode]:
        node = self._pick(x, y)
        with self._lock:
            self._state = replace(self._state, hovered=node)
        self.produce_overlay_pass()
        return node

    def set_selection(self, x: int, y: int) -> Optional[BVHNode]:
        node = self._pick(x, y)
        with self._lock:
            self._state = replace(self._state, selected=node)
        self.produce_overlay_pass()
        return node


__all__ = ["BASE_WEIGHT", "OVERLAY_WEIGHT", "OrchestratorSnapshot", "RenderOrchestrator"]
