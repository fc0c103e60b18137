"""Sample pass driver.

``render`` fills a pixel target band by band. Between bands it checks the
cancel signal, so a cancelled pass stops within one band of rows and reports
that it did not complete.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import numpy as np

from tracer_stream.engine.camera import Camera
from tracer_stream.engine.geometry import T_MIN, Hitter, Rays
from tracer_stream.engine.materials import unit

ColorFunc = Callable[[Rays, "RenderSettings"], np.ndarray]
AggregateFunc = Callable[[np.ndarray], np.ndarray]

SKY_TOP = np.array([0.5, 0.7, 1.0])


class PixelTarget(Protocol):
    width: int
    height: int
    data: np.ndarray


class CancelSignal(Protocol):
    @property
    def cancelled(self) -> bool: ...


def sky(directions: np.ndarray) -> np.ndarray:
    a = 0.5 * (unit(directions)[:, 1] + 1.0)
    return (1.0 - a)[:, None] * np.ones(3) + a[:, None] * SKY_TOP


def ray_color(rays: Rays, settings: "RenderSettings") -> np.ndarray:
    """Path trace each ray up to ``max_depth`` bounces; returns linear RGB."""

    n = len(rays)
    color = np.zeros((n, 3))
    throughput = np.ones((n, 3))
    materials = {prim.uid: prim.material for prim in settings.hitter.primitives()}
    active = np.arange(n)
    current = rays
    for _ in range(max(1, int(settings.max_depth))):
        if active.size == 0:
            break
        hits = settings.hitter.hit(current, T_MIN, np.full(len(current), np.inf))
        missed = ~hits.hit
        if missed.any():
            idx = active[missed]
            color[idx] += throughput[idx] * sky(current.directions[missed])

        alive = np.zeros(len(current), dtype=bool)
        origins = np.zeros((len(current), 3))
        directions = np.zeros((len(current), 3))
        attenuation = np.zeros((len(current), 3))
        for uid in np.unique(hits.prim[hits.hit]):
            sel = hits.prim == uid
            scattered = materials[int(uid)].scatter(current.take(sel), hits.take(sel), settings.rng)
            alive[sel] = scattered.alive
            origins[sel] = scattered.rays.origins
            directions[sel] = scattered.rays.directions
            attenuation[sel] = scattered.attenuation

        throughput[active[alive]] *= attenuation[alive]
        active = active[alive]
        current = Rays(origins[alive], directions[alive])
    return color


def ray_hit_mask(rays: Rays, settings: "RenderSettings") -> np.ndarray:
    """RGBA mask: 1 where the ray hits the hitter, 0 elsewhere."""

    hits = settings.hitter.hit(rays, T_MIN, np.full(len(rays), np.inf))
    m = hits.hit.astype(np.float64)
    return np.repeat(m[:, None], 4, axis=1)


def avg_samples(samples: np.ndarray) -> np.ndarray:
    return samples.mean(axis=0)


def coverage_samples(samples: np.ndarray) -> np.ndarray:
    """Majority vote across samples; used for hit masks."""
    return (samples.mean(axis=0) >= 0.5).astype(np.float64)


@dataclass
class RenderSettings:
    buffer: PixelTarget
    camera: Camera
    hitter: Hitter
    color_func: ColorFunc = ray_color
    aggregate_func: AggregateFunc = avg_samples
    samples_per_pixel: int = 1
    max_depth: int = 50
    jitter: bool = True
    band_rows: int = 16
    rng: Optional[np.random.Generator] = field(default=None, repr=False)


def render(settings: RenderSettings, cancel: Optional[CancelSignal] = None) -> bool:
    """Fill ``settings.buffer``; return False when cancelled before the last band."""

    if settings.rng is None:
        settings.rng = np.random.default_rng()
    target = settings.buffer
    width, height = int(target.width), int(target.height)
    spp = max(1, int(settings.samples_per_pixel))
    band = max(1, int(settings.band_rows))
    cols = np.arange(width, dtype=np.float64)
    for top in range(0, height, band):
        if cancel is not None and cancel.cancelled:
            return False
        rows = np.arange(top, min(top + band, height), dtype=np.float64)
        rr, cc = np.meshgrid(rows, cols, indexing="ij")
        shape = (spp,) + rr.shape
        rr = np.broadcast_to(rr, shape)
        cc = np.broadcast_to(cc, shape)
        if settings.jitter:
            du = settings.rng.random(shape)
            dv = settings.rng.random(shape)
        else:
            du = dv = np.zeros(shape)
        s = (cc + du) / max(1, width - 1)
        t = (height - 1 - rr + dv) / max(1, height - 1)
        rays = settings.camera.get_rays(s.ravel(), t.ravel())
        samples = settings.color_func(rays, settings)
        channels = samples.shape[1]
        samples = samples.reshape(shape + (channels,))
        target.data[top : top + rows.size, :, :channels] = settings.aggregate_func(samples)
    return True


__all__ = [
    "AggregateFunc",
    "CancelSignal",
    "ColorFunc",
    "PixelTarget",
    "RenderSettings",
    "avg_samples",
    "coverage_samples",
    "ray_color",
    "ray_hit_mask",
    "render",
    "sky",
]
