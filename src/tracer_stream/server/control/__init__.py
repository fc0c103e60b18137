"""Inbound control message parsing and dispatch."""

from .input_router import CameraPan, PointerCommand, apply_command, parse_command, route_message

__all__ = ["CameraPan", "PointerCommand", "apply_command", "parse_command", "route_message"]
