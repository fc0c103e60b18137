"""Hover/selection outline helpers for the overlay layer."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

import numpy as np

from tracer_stream.engine import BVHNode, Camera, RenderSettings, coverage_samples, ray_hit_mask, render
from tracer_stream.server.rendering.accumulation import AccumulationBuffer
from tracer_stream.server.rendering.generation import CancelToken

HOVER_COLOR = (1.0, 1.0, 0.0)
SELECT_COLOR = (1.0, 0.0, 0.0)

RenderFunc = Callable[[RenderSettings, Optional[CancelToken]], bool]


def isolate(node: BVHNode) -> BVHNode:
    """Derived scene holding only the primitive(s) under ``node``."""

    if node.is_leaf():
        return BVHNode.build([node.left])
    return BVHNode.build(node.primitives())


def edge_outline(mask: AccumulationBuffer, color: Sequence[float]) -> AccumulationBuffer:
    """One-pixel outline along the inside of a hit mask, opaque in ``color``."""

    inside = mask.data[..., 0] > 0.5
    padded = np.pad(inside, 1, mode="constant", constant_values=False)
    interior = (
        padded[:-2, 1:-1] & padded[2:, 1:-1] & padded[1:-1, :-2] & padded[1:-1, 2:]
    )
    edges = inside & ~interior
    out = AccumulationBuffer(mask.width, mask.height, supports_alpha=True)
    out.data[edges, :3] = np.asarray(color, dtype=np.float64)
    out.data[edges, 3] = 1.0
    return out


def render_outline(
    node: BVHNode,
    camera: Camera,
    size: tuple[int, int],
    color: Sequence[float],
    *,
    samples: int = 1,
    cancel: Optional[CancelToken] = None,
    rng: Optional[np.random.Generator] = None,
    engine: RenderFunc = render,
) -> Optional[AccumulationBuffer]:
    """Render the hit mask of ``node`` and turn it into an outline.

    Returns None when the pass was cancelled. Engine errors propagate.
    """

    width, height = size
    mask = AccumulationBuffer(width, height, supports_alpha=True)
    completed = engine(
        RenderSettings(
            buffer=mask,
            camera=camera,
            hitter=isolate(node),
            color_func=ray_hit_mask,
            aggregate_func=coverage_samples,
            samples_per_pixel=samples,
            jitter=samples > 1,
            rng=rng,
        ),
        cancel,
    )
    if not completed:
        return None
    return edge_outline(mask, color)


__all__ = ["HOVER_COLOR", "SELECT_COLOR", "edge_outline", "isolate", "render_outline"]
