"""
Pixel buffers and bounding rectangles.
"""

from resin_layers.buffers.bounds import (
    BoundingRectangle,
    bounding_box_of,
    union,
    union_all,
)
from resin_layers.buffers.pixel_buffer import EXPOSED, PixelBuffer

__all__ = [
    "EXPOSED",
    "PixelBuffer",
    "BoundingRectangle",
    "bounding_box_of",
    "union",
    "union_all",
]
