"""PNG encode/decode of ``uint8`` RGB frames via Pillow."""

from __future__ import annotations

from io import BytesIO
from typing import BinaryIO, Optional

import numpy as np
from PIL import Image


def encode_png(image: np.ndarray, output: Optional[BinaryIO] = None, *, compress_level: int = 1) -> bytes:
    """Encode an ``(H, W, 3)`` uint8 array; also writes to ``output`` when given.

    Low compression keeps encode time small next to the 200 ms push cadence.
    """

    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"expected (H, W, 3) uint8 image, got {image.shape} {image.dtype}")
    buffer = BytesIO()
    Image.fromarray(image).save(buffer, format="PNG", compress_level=int(compress_level))
    data = buffer.getvalue()
    if output is not None:
        output.write(data)
    return data


def decode_png(data: bytes) -> np.ndarray:
    with Image.open(BytesIO(data)) as img:
        return np.asarray(img.convert("RGB"))


__all__ = ["decode_png", "encode_png"]
