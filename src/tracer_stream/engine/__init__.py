"""Numpy ray tracing engine driven by the render orchestrator."""

from tracer_stream.engine.camera import Camera, camera_coordinates_from_pixel
from tracer_stream.engine.geometry import (
    AABB,
    BVHNode,
    HitBatch,
    HitRecord,
    Hitter,
    HitterList,
    Ray,
    Rays,
    SceneError,
    Sphere,
)
from tracer_stream.engine.materials import Dielectric, Lambertian, Metal
from tracer_stream.engine.render import (
    RenderSettings,
    avg_samples,
    coverage_samples,
    ray_color,
    ray_hit_mask,
    render,
)
from tracer_stream.engine.scenes import default_camera, default_scene, default_spheres

__all__ = [
    "AABB",
    "BVHNode",
    "Camera",
    "Dielectric",
    "HitBatch",
    "HitRecord",
    "Hitter",
    "HitterList",
    "Lambertian",
    "Metal",
    "Ray",
    "Rays",
    "RenderSettings",
    "SceneError",
    "Sphere",
    "avg_samples",
    "camera_coordinates_from_pixel",
    "coverage_samples",
    "default_camera",
    "default_scene",
    "default_spheres",
    "ray_color",
    "ray_hit_mask",
    "render",
]
