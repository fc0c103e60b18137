"""Accumulation buffers for progressive rendering.

An :class:`AccumulationBuffer` stores linear RGB plus alpha as float64 in a
``(height, width, 4)`` array. The base scene layer is merged pass by pass;
the overlay layer carries alpha so untouched pixels stay transparent when it
is blended over the scene.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from tracer_stream.server.errors import DimensionMismatch

CHANNELS = 4


class AccumulationBuffer:
    def __init__(self, width: int, height: int, *, supports_alpha: bool = False,
                 data: Optional[np.ndarray] = None) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"buffer size must be positive, got {width}x{height}")
        self._width = int(width)
        self._height = int(height)
        self.supports_alpha = bool(supports_alpha)
        if data is None:
            data = np.zeros((self._height, self._width, CHANNELS), dtype=np.float64)
        elif data.shape != (self._height, self._width, CHANNELS):
            raise DimensionMismatch((self._width, self._height), (data.shape[1], data.shape[0]))
        self.data = data
        self.merges = 0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def size(self) -> tuple[int, int]:
        return self._width, self._height

    def __repr__(self) -> str:
        return f"AccumulationBuffer({self._width}x{self._height}, alpha={self.supports_alpha}, merges={self.merges})"

    def _check(self, other: "AccumulationBuffer") -> None:
        if other.size != self.size:
            raise DimensionMismatch(self.size, other.size)

    def zeros_like(self) -> "AccumulationBuffer":
        return AccumulationBuffer(self._width, self._height, supports_alpha=self.supports_alpha)

    def copy(self) -> "AccumulationBuffer":
        clone = AccumulationBuffer(
            self._width, self._height, supports_alpha=self.supports_alpha, data=self.data.copy()
        )
        clone.merges = self.merges
        return clone

    def merge_average(self, other: "AccumulationBuffer") -> None:
        """Replace every pixel with the equal-weight average of itself and ``other``.

        Each merge halves the weight of everything merged before it, so the
        buffer leans towards recent passes: 0 merged with 100 twice gives 50
        then 75.
        """
        self._check(other)
        self.data += other.data
        self.data *= 0.5
        self.merges += 1

    def merge_running(self, other: "AccumulationBuffer") -> None:
        """Count-weighted running mean over every pass merged into this buffer."""
        self._check(other)
        self.merges += 1
        self.data += (other.data - self.data) / float(self.merges)

    def blend(self, overlay: "AccumulationBuffer", overlay_weight: float, base_weight: float) -> None:
        """Composite ``overlay`` where its alpha is non-zero.

        Affected pixels become ``base * base_weight + overlay * overlay_weight``
        and keep the larger of the two alphas. Zero-alpha overlay pixels leave
        the base untouched.
        """
        self._check(overlay)
        touched = overlay.data[..., 3] > 0.0
        if not touched.any():
            return
        rgb = self.data[touched, :3] * float(base_weight) + overlay.data[touched, :3] * float(overlay_weight)
        alpha = np.maximum(self.data[touched, 3], overlay.data[touched, 3])
        self.data[touched, :3] = rgb
        self.data[touched, 3] = alpha

    def to_image(self) -> np.ndarray:
        """Gamma-2 corrected ``uint8`` RGB copy, clamped to [0, 255]."""
        rgb = np.clip(self.data[..., :3], 0.0, 1.0)
        return np.clip(np.sqrt(rgb) * 256.0, 0.0, 255.0).astype(np.uint8)


__all__ = ["AccumulationBuffer", "CHANNELS"]
