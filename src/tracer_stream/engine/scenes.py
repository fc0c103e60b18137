"""Built-in scenes."""

from __future__ import annotations

from tracer_stream.engine.camera import Camera
from tracer_stream.engine.geometry import BVHNode, HitterList, Sphere
from tracer_stream.engine.materials import Dielectric, Lambertian, Metal

ASPECT_RATIO = 16.0 / 9.0


def default_spheres() -> HitterList:
    """Ground plane sphere plus diffuse, hollow glass and metal spheres."""

    return HitterList(
        [
            Sphere((0.0, -100.5, -1.0), 100.0, Lambertian((0.8, 0.8, 0.0))),
            Sphere((0.0, 0.0, -1.0), 0.5, Lambertian((0.1, 0.2, 0.5))),
            Sphere((-1.0, 0.0, -1.0), 0.5, Dielectric(1.5)),
            Sphere((-1.0, 0.0, -1.0), -0.48, Dielectric(1.5)),
            Sphere((1.0, 0.0, -1.0), 0.5, Metal((0.8, 0.6, 0.2))),
        ]
    )


def default_camera(aspect_ratio: float = ASPECT_RATIO) -> Camera:
    return Camera(
        look_from=(0.0, 2.0, 1.0),
        look_at=(0.0, 0.0, -1.0),
        vup=(0.0, 1.0, 0.0),
        vfov=90.0,
        aspect_ratio=aspect_ratio,
    )


def default_scene(aspect_ratio: float = ASPECT_RATIO) -> tuple[BVHNode, Camera]:
    """Build the BVH and camera; raises ``SceneError`` if the BVH cannot be built."""

    return BVHNode.build(default_spheres().items), default_camera(aspect_ratio)


__all__ = ["ASPECT_RATIO", "default_camera", "default_scene", "default_spheres"]
