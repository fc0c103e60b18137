"""Render worker lifecycle: the background thread driving progressive passes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from tracer_stream.server.rendering.orchestrator import RenderOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class RenderWorkerState:
    """Track the worker thread and its stop signal."""

    thread: Optional[threading.Thread] = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    passes: int = 0
    merged: int = 0


def run_passes(orchestrator: RenderOrchestrator, state: RenderWorkerState) -> None:
    """Loop ``produce_sample_pass`` until the stop event is set."""

    while not state.stop_event.is_set():
        try:
            merged = orchestrator.produce_sample_pass()
        except Exception:
            # produce_sample_pass already confines engine errors; this guards the loop itself
            logger.exception("render worker iteration failed; continuing")
            continue
        state.passes += 1
        if merged:
            state.merged += 1


def start_worker(orchestrator: RenderOrchestrator, state: RenderWorkerState) -> None:
    """Launch the progressive render loop on its own daemon thread."""

    if state.thread and state.thread.is_alive():
        raise RuntimeError("render worker thread already running")

    state.stop_event.clear()
    thread = threading.Thread(
        target=run_passes,
        args=(orchestrator, state),
        name="tracer-stream-render",
        daemon=True,
    )
    state.thread = thread
    thread.start()
    logger.info("render worker started %dx%d", orchestrator.width, orchestrator.height)


def stop_worker(state: RenderWorkerState, *, orchestrator: Optional[RenderOrchestrator] = None,
                timeout: float = 5.0) -> None:
    """Signal the worker to stop and wait for it; a reset cancels the in-flight pass."""

    state.stop_event.set()
    if orchestrator is not None:
        orchestrator.reset("shutdown")
    thread = state.thread
    if thread is None:
        return
    thread.join(timeout=timeout)
    if thread.is_alive():
        logger.warning("render worker did not stop within %.1fs", timeout)
    else:
        logger.info("render worker stopped after %d passes (%d merged)", state.passes, state.merged)
    state.thread = None


__all__ = ["RenderWorkerState", "run_passes", "start_worker", "stop_worker"]
