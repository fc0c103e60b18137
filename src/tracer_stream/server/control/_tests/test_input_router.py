from __future__ import annotations

import asyncio
from collections import Counter

import pytest

from tracer_stream.server.control import input_router
from tracer_stream.server.control.input_router import CameraPan, PointerCommand, parse_command
from tracer_stream.server.errors import MalformedCommand


class DummyMetrics:
    def __init__(self) -> None:
        self.counts = Counter()

    def inc(self, name: str, value: float | int = 1) -> None:
        self.counts[name] += value


class FakeOrchestrator:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def set_camera_offset(self, delta) -> int:
        self.calls.append(("camera", tuple(delta)))
        return len(self.calls)

    def set_hover(self, x: int, y: int) -> None:
        self.calls.append(("hover", x, y))

    def set_selection(self, x: int, y: int) -> None:
        self.calls.append(("select", x, y))


@pytest.mark.parametrize(
    "message, delta",
    [
        ("1", (0.0, 0.0, -0.5)),
        ("2", (0.0, 0.0, 0.5)),
        ("3", (-0.5, 0.0, 0.0)),
        ("4", (0.5, 0.0, 0.0)),
    ],
)
def test_digit_commands_pan_camera(message: str, delta) -> None:
    assert parse_command(message) == CameraPan(delta)


def test_pointer_commands_parse_coordinates() -> None:
    assert parse_command("mousemove 12 40") == PointerCommand("mousemove", 12, 40)
    assert parse_command(b"mouseclick 3 7\n") == PointerCommand("mouseclick", 3, 7)
    # coordinates outside the image still parse; the orchestrator treats them as a miss
    assert parse_command("mousemove -5 9000") == PointerCommand("mousemove", -5, 9000)


@pytest.mark.parametrize(
    "message",
    ["", "5", "zoom", "mousemove", "mousemove 1", "mousemove 1 2 3", "mouseclick a b", "mousemove 1.5 2", b"\xff"],
)
def test_malformed_messages_raise(message) -> None:
    with pytest.raises(MalformedCommand):
        parse_command(message)


def test_apply_command_dispatches_to_orchestrator() -> None:
    orch = FakeOrchestrator()

    input_router.apply_command(orch, CameraPan((0.5, 0.0, 0.0)))
    input_router.apply_command(orch, PointerCommand("mousemove", 1, 2))
    input_router.apply_command(orch, PointerCommand("mouseclick", 3, 4))

    assert orch.calls == [("camera", (0.5, 0.0, 0.0)), ("hover", 1, 2), ("select", 3, 4)]


def test_route_message_applies_in_arrival_order() -> None:
    async def runner() -> None:
        orch = FakeOrchestrator()
        metrics = DummyMetrics()

        for message in ("1", "mousemove 10 10", "nonsense", "mouseclick 10 10", "4"):
            await input_router.route_message(orch, message, metrics=metrics)

        assert [call[0] for call in orch.calls] == ["camera", "hover", "select", "camera"]
        assert metrics.counts["tracer_stream_commands_applied"] == 4
        assert metrics.counts["tracer_stream_commands_ignored"] == 1

    asyncio.run(runner())


def test_route_message_ignores_garbage_without_touching_state() -> None:
    async def runner() -> None:
        orch = FakeOrchestrator()
        result = await input_router.route_message(orch, "mousemove x y")
        assert result is None
        assert orch.calls == []

    asyncio.run(runner())
