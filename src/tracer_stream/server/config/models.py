"""Configuration dataclasses shared across the server package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from tracer_stream.server.config.logging_policy import DebugPolicy, load_debug_policy

ACCUMULATE_MODES = ("pairwise", "running")


@dataclass(frozen=True)
class RenderCfg:
    """Sampling parameters for the progressive loop and the overlay pass."""

    samples_per_pass: int = 1
    max_depth: int = 50
    overlay_samples: int = 1
    band_rows: int = 16
    accumulate: str = "pairwise"  # "pairwise" | "running"
    seed: Optional[int] = None


@dataclass(frozen=True)
class StreamCfg:
    """Push-channel pacing."""

    interval_ms: float = 200.0


@dataclass(frozen=True)
class ServerConfig:
    """Top-level server configuration values."""

    host: str = "0.0.0.0"
    port: int = 8080
    width: int = 500
    height: int = 281
    render: RenderCfg = field(default_factory=RenderCfg)
    stream: StreamCfg = field(default_factory=StreamCfg)

    @property
    def aspect_ratio(self) -> float:
        return float(self.width) / float(self.height)


@dataclass(frozen=True)
class ServerCtx:
    """Resolved server runtime context shared across subsystems."""

    cfg: ServerConfig
    debug_policy: DebugPolicy = field(default_factory=lambda: load_debug_policy({}))
    metrics_window: int = 512
