from __future__ import annotations

import numpy as np

from tracer_stream.engine import default_scene
from tracer_stream.server.rendering.accumulation import AccumulationBuffer
from tracer_stream.server.rendering.generation import CancelToken
from tracer_stream.server.rendering.overlay import HOVER_COLOR, edge_outline, isolate, render_outline


def test_edge_outline_keeps_only_boundary() -> None:
    mask = AccumulationBuffer(5, 5, supports_alpha=True)
    mask.data[1:4, 1:4, :] = 1.0

    out = edge_outline(mask, HOVER_COLOR)

    alpha = out.data[..., 3]
    expected = np.zeros((5, 5))
    expected[1:4, 1:4] = 1.0
    expected[2, 2] = 0.0
    assert np.array_equal(alpha, expected)
    assert out.data[1, 1, :3].tolist() == [1.0, 1.0, 0.0]


def test_isolate_leaf_holds_single_primitive() -> None:
    scene, _ = default_scene()
    leaf = scene.leaves()[0]

    derived = isolate(leaf)

    assert [p.uid for p in derived.primitives()] == [leaf.left.uid]


def test_render_outline_cancelled_returns_none() -> None:
    scene, camera = default_scene(16 / 9)
    token = CancelToken()
    token.cancel()

    assert render_outline(scene.leaves()[0], camera, (16, 9), HOVER_COLOR, cancel=token) is None
