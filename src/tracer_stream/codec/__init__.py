"""Image codecs for outbound frames."""

from .png import decode_png, encode_png

__all__ = ["decode_png", "encode_png"]
