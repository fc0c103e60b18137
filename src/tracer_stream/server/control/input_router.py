"""Inbound control messages.

The vocabulary is tiny: ``1``..``4`` pan the camera, ``mousemove x y`` and
``mouseclick x y`` drive hover and selection. Camera commands start a new
render epoch; pointer commands only rebuild the overlay.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

from tracer_stream.server.errors import MalformedCommand
from tracer_stream.server.metrics import Metrics
from tracer_stream.server.rendering.orchestrator import RenderOrchestrator

logger = logging.getLogger(__name__)

PAN_STEP = 0.5

PAN_DELTAS: dict[str, tuple[float, float, float]] = {
    "1": (0.0, 0.0, -PAN_STEP),
    "2": (0.0, 0.0, PAN_STEP),
    "3": (-PAN_STEP, 0.0, 0.0),
    "4": (PAN_STEP, 0.0, 0.0),
}

POINTER_KINDS = ("mousemove", "mouseclick")


@dataclass(frozen=True)
class CameraPan:
    delta: tuple[float, float, float]


@dataclass(frozen=True)
class PointerCommand:
    kind: str  # "mousemove" | "mouseclick"
    x: int
    y: int


Command = Union[CameraPan, PointerCommand]


def parse_command(message: Union[str, bytes]) -> Command:
    """Decode one control message; raises ``MalformedCommand`` for anything else."""

    if isinstance(message, (bytes, bytearray, memoryview)):
        try:
            message = bytes(message).decode("ascii")
        except UnicodeDecodeError as exc:
            raise MalformedCommand("control message is not ASCII") from exc
    text = message.strip()
    delta = PAN_DELTAS.get(text)
    if delta is not None:
        return CameraPan(delta)
    parts = text.split(" ")
    if parts[0] not in POINTER_KINDS:
        raise MalformedCommand(f"unknown command {text[:32]!r}")
    if len(parts) != 3:
        raise MalformedCommand(f"{parts[0]} expects 2 coordinates, got {len(parts) - 1}")
    try:
        x = int(parts[1])
        y = int(parts[2])
    except ValueError as exc:
        raise MalformedCommand(f"non-integer coordinates in {text[:32]!r}") from exc
    return PointerCommand(parts[0], x, y)


def apply_command(orchestrator: RenderOrchestrator, command: Command) -> None:
    """Run ``command`` against the orchestrator (blocking)."""

    if isinstance(command, CameraPan):
        orchestrator.set_camera_offset(command.delta)
    elif command.kind == "mousemove":
        orchestrator.set_hover(command.x, command.y)
    else:
        orchestrator.set_selection(command.x, command.y)


async def route_message(
    orchestrator: RenderOrchestrator,
    message: Union[str, bytes],
    *,
    metrics: Optional[Metrics] = None,
    log_input: bool = False,
) -> Optional[Command]:
    """Parse and dispatch one message off the event loop; returns None if ignored."""

    try:
        command = parse_command(message)
    except MalformedCommand as exc:
        logger.debug("ignoring control message: %s", exc)
        if metrics is not None:
            metrics.inc("tracer_stream_commands_ignored")
        return None
    log = logger.info if log_input else logger.debug
    log("control command %s", command)
    await asyncio.to_thread(apply_command, orchestrator, command)
    if metrics is not None:
        metrics.inc("tracer_stream_commands_applied")
    return command


__all__ = [
    "CameraPan",
    "Command",
    "PAN_DELTAS",
    "PointerCommand",
    "apply_command",
    "parse_command",
    "route_message",
]
