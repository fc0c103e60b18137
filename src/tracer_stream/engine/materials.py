"""Surface materials with batched scattering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np

from tracer_stream.engine.geometry import HitBatch, Rays


def unit(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / np.where(norm == 0.0, 1.0, norm)


def random_unit_vectors(rng: np.random.Generator, n: int) -> np.ndarray:
    return unit(rng.normal(size=(n, 3)))


def reflect(v: np.ndarray, n: np.ndarray) -> np.ndarray:
    return v - 2.0 * np.einsum("ij,ij->i", v, n)[:, None] * n


@dataclass(frozen=True)
class Scatter:
    """Scatter result for a ray batch; absorbed rays have ``alive`` false."""

    attenuation: np.ndarray
    rays: Rays
    alive: np.ndarray


class Material(Protocol):
    def scatter(self, rays: Rays, hits: HitBatch, rng: np.random.Generator) -> Scatter: ...


@dataclass(frozen=True)
class Lambertian:
    albedo: Sequence[float]

    def scatter(self, rays: Rays, hits: HitBatch, rng: np.random.Generator) -> Scatter:
        n = len(rays)
        direction = hits.normal + random_unit_vectors(rng, n)
        degenerate = np.all(np.abs(direction) < 1e-8, axis=1)
        direction[degenerate] = hits.normal[degenerate]
        attenuation = np.broadcast_to(np.asarray(self.albedo, dtype=np.float64), (n, 3))
        return Scatter(attenuation, Rays(hits.point, direction), np.ones(n, dtype=bool))


@dataclass(frozen=True)
class Metal:
    albedo: Sequence[float]
    fuzz: float = 0.0

    def scatter(self, rays: Rays, hits: HitBatch, rng: np.random.Generator) -> Scatter:
        n = len(rays)
        reflected = reflect(unit(rays.directions), hits.normal)
        fuzz = min(float(self.fuzz), 1.0)
        if fuzz > 0.0:
            reflected = reflected + fuzz * random_unit_vectors(rng, n)
        alive = np.einsum("ij,ij->i", reflected, hits.normal) > 0.0
        attenuation = np.broadcast_to(np.asarray(self.albedo, dtype=np.float64), (n, 3))
        return Scatter(attenuation, Rays(hits.point, reflected), alive)


@dataclass(frozen=True)
class Dielectric:
    refractive_index: float

    @staticmethod
    def reflectance(cosine: np.ndarray, ratio: np.ndarray) -> np.ndarray:
        # Schlick's approximation
        r0 = ((1.0 - ratio) / (1.0 + ratio)) ** 2
        return r0 + (1.0 - r0) * (1.0 - cosine) ** 5

    def scatter(self, rays: Rays, hits: HitBatch, rng: np.random.Generator) -> Scatter:
        n = len(rays)
        ir = float(self.refractive_index)
        ratio = np.where(hits.front_face, 1.0 / ir, ir)
        d = unit(rays.directions)
        cos_theta = np.minimum(np.einsum("ij,ij->i", -d, hits.normal), 1.0)
        sin_theta = np.sqrt(np.maximum(0.0, 1.0 - cos_theta * cos_theta))
        cannot_refract = ratio * sin_theta > 1.0
        reflects = cannot_refract | (self.reflectance(cos_theta, ratio) > rng.random(n))
        perp = ratio[:, None] * (d + cos_theta[:, None] * hits.normal)
        parallel = -np.sqrt(np.abs(1.0 - np.einsum("ij,ij->i", perp, perp)))[:, None] * hits.normal
        refracted = perp + parallel
        direction = np.where(reflects[:, None], reflect(d, hits.normal), refracted)
        return Scatter(np.ones((n, 3)), Rays(hits.point, direction), np.ones(n, dtype=bool))


__all__ = [
    "Dielectric",
    "Lambertian",
    "Material",
    "Metal",
    "Scatter",
    "random_unit_vectors",
    "reflect",
    "unit",
]
