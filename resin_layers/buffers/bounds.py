"""Bounding rectangles of exposed pixels.

Used to narrow the pixel range scanned by bleed compensation.  Narrowing
is purely a performance measure: callers must obtain the same result with
the full-frame rectangle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import cv2

from resin_layers.buffers.pixel_buffer import PixelBuffer


@dataclass(frozen=True, slots=True)
class BoundingRectangle:
    """Axis-aligned rectangle in pixel coordinates.

    ``width == 0`` or ``height == 0`` means "no exposed pixels".  The
    right/bottom edges are exclusive.
    """

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Rectangle size must be non-negative, got {self.width}x{self.height}"
            )

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def slices(self) -> tuple[slice, slice]:
        """``(rows, cols)`` slices for indexing a ``(height, width)`` array."""
        return slice(self.y, self.bottom), slice(self.x, self.right)

    @classmethod
    def full(cls, width: int, height: int) -> BoundingRectangle:
        """Rectangle covering a whole ``width`` x ``height`` frame."""
        return cls(0, 0, width, height)


BoundingRectangle.EMPTY = BoundingRectangle()


def bounding_box_of(buffer: PixelBuffer) -> BoundingRectangle:
    """Tight box around all non-zero pixels; empty for an all-zero buffer."""
    x, y, w, h = cv2.boundingRect(buffer.data)
    if w == 0 or h == 0:
        return BoundingRectangle.EMPTY
    return BoundingRectangle(int(x), int(y), int(w), int(h))


def union(a: BoundingRectangle, b: BoundingRectangle) -> BoundingRectangle:
    """Smallest rectangle containing both; an empty operand is ignored."""
    if a.is_empty:
        return b
    if b.is_empty:
        return a
    x = min(a.x, b.x)
    y = min(a.y, b.y)
    return BoundingRectangle(x, y, max(a.right, b.right) - x, max(a.bottom, b.bottom) - y)


def union_all(rects: Iterable[BoundingRectangle]) -> BoundingRectangle:
    result = BoundingRectangle.EMPTY
    for rect in rects:
        result = union(result, rect)
    return result
