"""Shared configuration dataclasses for the tracer-stream server."""

from .loader import load_server_config, load_server_ctx
from .logging_policy import DebugPolicy, LoggingToggles, load_debug_policy
from .models import RenderCfg, ServerConfig, ServerCtx, StreamCfg

__all__ = [
    "DebugPolicy",
    "LoggingToggles",
    "RenderCfg",
    "ServerConfig",
    "ServerCtx",
    "StreamCfg",
    "load_debug_policy",
    "load_server_config",
    "load_server_ctx",
]
