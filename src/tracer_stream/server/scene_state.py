"""Scene state shared between the render worker and control connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from tracer_stream.engine import BVHNode, Camera, SceneError, default_scene
from tracer_stream.server.errors import StartupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SceneState:
    """Immutable snapshot; the orchestrator swaps in new instances under its lock."""

    camera: Camera
    scene: BVHNode
    hovered: Optional[BVHNode] = None
    selected: Optional[BVHNode] = None


SceneFactory = Callable[[float], "tuple[BVHNode, Camera]"]


def load_scene_state(aspect_ratio: float, factory: SceneFactory = default_scene) -> SceneState:
    """Build the scene and camera, turning construction failures into ``StartupError``."""

    try:
        scene, camera = factory(aspect_ratio)
    except SceneError as exc:
        raise StartupError(f"scene construction failed: {exc}") from exc
    logger.info(
        "scene loaded: %d primitives, camera from=%s at=%s vfov=%.1f",
        len(scene.primitives()),
        camera.look_from,
        camera.look_at,
        camera.vfov,
    )
    return SceneState(camera=camera, scene=scene)


__all__ = ["SceneFactory", "SceneState", "load_scene_state"]
