"""Error types raised by the server core."""

from __future__ import annotations


class StartupError(RuntimeError):
    """The scene could not be prepared; the server must not start serving."""


class DimensionMismatch(AssertionError):
    """Two pixel buffers of different sizes were combined."""

    def __init__(self, expected: tuple[int, int], actual: tuple[int, int]) -> None:
        super().__init__(f"buffer size mismatch: expected {expected[0]}x{expected[1]}, got {actual[0]}x{actual[1]}")
        self.expected = expected
        self.actual = actual


class MalformedCommand(ValueError):
    """Inbound control message could not be parsed."""


__all__ = ["DimensionMismatch", "MalformedCommand", "StartupError"]
