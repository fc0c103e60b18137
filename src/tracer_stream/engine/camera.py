"""Look-at pinhole camera."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np

from tracer_stream.engine.geometry import Ray, Rays
from tracer_stream.engine.materials import unit


def camera_coordinates_from_pixel(row: int, col: int, width: int, height: int) -> tuple[float, float]:
    """Map a pixel (row 0 at the top) to normalised ``(u, v)`` viewport coordinates."""

    u = float(col) / max(1, width - 1)
    v = float(height - 1 - row) / max(1, height - 1)
    return u, v


@dataclass(frozen=True)
class Camera:
    look_from: tuple[float, float, float]
    look_at: tuple[float, float, float]
    vup: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 90.0
    aspect_ratio: float = 16.0 / 9.0

    def translated(self, delta: Sequence[float]) -> "Camera":
        moved = tuple(float(a) + float(b) for a, b in zip(self.look_from, delta))
        return replace(self, look_from=moved)

    def _basis(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        h = math.tan(math.radians(self.vfov) / 2.0)
        viewport_height = 2.0 * h
        viewport_width = self.aspect_ratio * viewport_height
        origin = np.asarray(self.look_from, dtype=np.float64)
        w = unit(origin - np.asarray(self.look_at, dtype=np.float64))
        u = unit(np.cross(np.asarray(self.vup, dtype=np.float64), w))
        v = np.cross(w, u)
        horizontal = viewport_width * u
        vertical = viewport_height * v
        lower_left = origin - horizontal / 2.0 - vertical / 2.0 - w
        return origin, horizontal, vertical, lower_left

    def get_rays(self, s: np.ndarray, t: np.ndarray) -> Rays:
        origin, horizontal, vertical, lower_left = self._basis()
        s = np.asarray(s, dtype=np.float64).reshape(-1, 1)
        t = np.asarray(t, dtype=np.float64).reshape(-1, 1)
        directions = lower_left + s * horizontal + t * vertical - origin
        origins = np.broadcast_to(origin, directions.shape).copy()
        return Rays(origins, directions)

    def get_ray(self, coords: tuple[float, float]) -> Ray:
        rays = self.get_rays(np.array([coords[0]]), np.array([coords[1]]))
        return Ray(rays.origins[0], rays.directions[0])


__all__ = ["Camera", "camera_coordinates_from_pixel"]
