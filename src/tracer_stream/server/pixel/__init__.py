"""Outbound frame streaming."""

from .publisher import configure_socket, publish_frames, remaining_sleep

__all__ = ["configure_socket", "publish_frames", "remaining_sleep"]
