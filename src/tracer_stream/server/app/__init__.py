"""Server application entry points."""

from __future__ import annotations

__all__ = [
    "page",
    "render_worker",
    "stream_server",
]
