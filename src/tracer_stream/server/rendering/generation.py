"""Render epochs and their cancel tokens."""

from __future__ import annotations

import threading
from typing import Optional


class CancelToken:
    """One-shot cancellation flag; a cancelled token is never reused."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


class Generation:
    """Epoch counter plus the live token for that epoch.

    Not thread-safe on its own; the render orchestrator advances it while
    holding its state lock.
    """

    def __init__(self, epoch: int = 0) -> None:
        if epoch < 0:
            raise ValueError("epoch must be non-negative")
        self._epoch = int(epoch)
        self._token = CancelToken()

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def token(self) -> CancelToken:
        return self._token

    def advance(self) -> int:
        self._token.cancel()
        self._token = CancelToken()
        self._epoch += 1
        return self._epoch

    def is_current(self, epoch: int) -> bool:
        return self._epoch == epoch


__all__ = ["CancelToken", "Generation"]
