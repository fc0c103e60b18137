"""Debug/logging policy resolved from ``TRACER_STREAM_DEBUG``.

Accepted forms:

- unset, ``0``, ``off``: everything stays at DEBUG level
- ``1``, ``true``, ``on``: every subsystem logs at INFO
- ``passes,input``: comma separated subsystem names
- JSON: ``["stream"]`` or ``{"enabled": true, "flags": "overlay"}``
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_VAR = "TRACER_STREAM_DEBUG"

SUBSYSTEMS = ("passes", "input", "stream", "overlay")


@dataclass(frozen=True)
class LoggingToggles:
    log_passes: bool = False
    log_input: bool = False
    log_stream: bool = False
    log_overlay: bool = False

    @classmethod
    def from_flags(cls, flags: frozenset[str]) -> "LoggingToggles":
        if "all" in flags:
            flags = frozenset(SUBSYSTEMS)
        return cls(**{f.name: f.name[len("log_"):] in flags for f in fields(cls)})


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool
    logging: LoggingToggles


def _parse_switch(text: str) -> Optional[bool]:
    lowered = text.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("", "0", "false", "no", "off"):
        return False
    return None


def _flag_set(raw: object) -> frozenset[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(str(item).strip().lower() for item in raw if str(item).strip())


def _resolve(raw: str) -> tuple[bool, frozenset[str]]:
    switch = _parse_switch(raw)
    if switch is not None:
        return switch, frozenset({"all"}) if switch else frozenset()
    try:
        parsed = json.loads(raw)
    except ValueError:
        return True, _flag_set(raw)
    if isinstance(parsed, dict):
        enabled = parsed.get("enabled", True)
        if isinstance(enabled, str):
            enabled = bool(_parse_switch(enabled))
        if not enabled:
            return False, frozenset()
        return True, _flag_set(parsed.get("flags", "all"))
    if isinstance(parsed, list):
        return True, _flag_set(parsed)
    # bare JSON scalars such as a number fall back to the flag-list reading
    return True, _flag_set(raw)


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    env = os.environ if env is None else env
    raw = env.get(ENV_VAR)
    if raw is None:
        return DebugPolicy(enabled=False, logging=LoggingToggles())
    enabled, flags = _resolve(raw)
    unknown = flags - set(SUBSYSTEMS) - {"all"}
    if unknown:
        logger.warning("Ignoring unknown %s flags: %s", ENV_VAR, ", ".join(sorted(unknown)))
    return DebugPolicy(enabled=enabled, logging=LoggingToggles.from_flags(flags))


__all__ = ["DebugPolicy", "LoggingToggles", "SUBSYSTEMS", "load_debug_policy"]
