"""
tracer-stream: progressive ray-traced scene streaming

A background worker keeps accumulating sample passes of a ray traced scene
while websocket clients steer the camera, hover and select objects, and
receive the composed image as a PNG stream.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
