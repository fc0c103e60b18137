"""Per-connection frame publisher.

Each websocket gets its own paced loop: encode the composed image, send it,
then sleep for whatever is left of the interval. Encoding and sending are
awaited before the next frame so pushes never overlap, and slow encodes eat
into the sleep rather than stretching the cadence.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from contextlib import suppress
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed

from tracer_stream.server.metrics import Metrics
from tracer_stream.server.rendering.orchestrator import RenderOrchestrator

logger = logging.getLogger(__name__)


def configure_socket(ws: Any, *, label: str = "stream ws") -> None:
    """Disable Nagle's algorithm on the websocket transport if available."""

    try:
        sock = ws.transport.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except (AttributeError, OSError):
        logger.debug("%s: TCP_NODELAY toggle failed", label, exc_info=True)


def remaining_sleep(interval_s: float, elapsed_s: float) -> float:
    return max(0.0, float(interval_s) - float(elapsed_s))


async def publish_frames(
    orchestrator: RenderOrchestrator,
    ws: Any,
    *,
    interval_ms: float = 200.0,
    metrics: Optional[Metrics] = None,
    log_stream: bool = False,
    clock: Callable[[], float] = time.perf_counter,
) -> int:
    """Push composed frames to ``ws`` until it closes; returns frames sent."""

    interval_s = max(0.0, float(interval_ms)) / 1000.0
    remote = getattr(ws, "remote_address", None)
    sent = 0
    log = logger.info if log_stream else logger.debug
    log("stream start remote=%s interval=%.0f ms", remote, interval_s * 1000.0)
    try:
        while True:
            start = clock()
            payload = await asyncio.to_thread(orchestrator.encode_png)
            await ws.send(payload)
            sent += 1
            if metrics is not None:
                metrics.inc("tracer_stream_frames_sent")
                metrics.inc("tracer_stream_bytes_sent", len(payload))
            await asyncio.sleep(remaining_sleep(interval_s, clock() - start))
    except ConnectionClosed as exc:
        code = exc.rcvd.code if exc.rcvd is not None else None
        log("stream closed remote=%s code=%s after %d frames", remote, code, sent)
    except OSError as exc:
        logger.info("stream write failed remote=%s: %s", remote, exc)
    except Exception:
        # 1011: server-side failure
        with suppress(ConnectionClosed, OSError):
            await ws.close(1011, "frame stream failed")
        raise
    return sent


__all__ = ["configure_socket", "publish_frames", "remaining_sleep"]
