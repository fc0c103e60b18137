"""Environment-driven configuration loader.

``load_server_ctx(env)`` is called once at startup; the CLI then overrides the
transport and size fields it exposes as flags.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from tracer_stream.engine.scenes import ASPECT_RATIO
from tracer_stream.server.config.logging_policy import load_debug_policy
from tracer_stream.server.config.models import (
    ACCUMULATE_MODES,
    RenderCfg,
    ServerConfig,
    ServerCtx,
    StreamCfg,
)

logger = logging.getLogger(__name__)


# ---- Helpers -----------------------------------------------------------------

def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    v = env.get(name)
    if v is None:
        return int(default)
    try:
        return int(v)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, v, default)
        return int(default)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    v = env.get(name)
    if v is None:
        return float(default)
    try:
        return float(v)
    except ValueError:
        logger.warning("%s=%r is not a number; using %s", name, v, default)
        return float(default)


def _env_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    v = env.get(name)
    if v is None:
        return default
    v = v.strip()
    return v if v != "" else default


def default_height(width: int) -> int:
    return int(float(width) / ASPECT_RATIO)


# ---- Loaders -----------------------------------------------------------------

def load_render_cfg(env: Mapping[str, str]) -> RenderCfg:
    accumulate = (_env_str(env, "TRACER_STREAM_ACCUMULATE", "pairwise") or "pairwise").lower()
    if accumulate not in ACCUMULATE_MODES:
        logger.warning("Unknown TRACER_STREAM_ACCUMULATE=%r; using pairwise", accumulate)
        accumulate = "pairwise"
    seed_raw = _env_str(env, "TRACER_STREAM_SEED")
    seed: Optional[int] = None
    if seed_raw is not None:
        try:
            seed = int(seed_raw)
        except ValueError:
            logger.warning("TRACER_STREAM_SEED=%r is not an integer; ignoring", seed_raw)
    return RenderCfg(
        samples_per_pass=max(1, _env_int(env, "TRACER_STREAM_SAMPLES_PER_PASS", 1)),
        max_depth=max(1, _env_int(env, "TRACER_STREAM_MAX_DEPTH", 50)),
        overlay_samples=max(1, _env_int(env, "TRACER_STREAM_OVERLAY_SAMPLES", 1)),
        band_rows=max(1, _env_int(env, "TRACER_STREAM_BAND_ROWS", 16)),
        accumulate=accumulate,
        seed=seed,
    )


def load_server_config(env: Optional[Mapping[str, str]] = None) -> ServerConfig:
    env = os.environ if env is None else env
    width = max(2, _env_int(env, "TRACER_STREAM_WIDTH", 500))
    height = max(2, _env_int(env, "TRACER_STREAM_HEIGHT", default_height(width)))
    return ServerConfig(
        host=_env_str(env, "TRACER_STREAM_HOST", "0.0.0.0") or "0.0.0.0",
        port=_env_int(env, "TRACER_STREAM_PORT", 8080),
        width=width,
        height=height,
        render=load_render_cfg(env),
        stream=StreamCfg(interval_ms=max(0.0, _env_float(env, "TRACER_STREAM_STREAM_INTERVAL_MS", 200.0))),
    )


def load_server_ctx(env: Optional[Mapping[str, str]] = None) -> ServerCtx:
    env = os.environ if env is None else env
    return ServerCtx(
        cfg=load_server_config(env),
        debug_policy=load_debug_policy(env),
        metrics_window=max(16, _env_int(env, "TRACER_STREAM_METRICS_WINDOW", 512)),
    )


__all__ = ["default_height", "load_render_cfg", "load_server_config", "load_server_ctx"]
