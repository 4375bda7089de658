"""Procedural calibration and lattice patterns.

Each generator returns a fresh :class:`PixelBuffer` of the requested
resolution containing ``0`` (dark) and ``255`` (lit) pixels.  All sizes
are in **pixels**.  Generators are pure functions of their arguments:
identical parameters always produce bit-identical buffers, so a pattern
can be built once per run and shared read-only between workers.

Patterns:

    grid
        Full-height/full-width lines spaced symmetrically outward from the
        frame centre.  Used to measure backlight uniformity.
    dot lattice
        Filled discs on a honeycomb (triangular) lattice.  First
        micro-exposure of shrinkage decomposition.
    line lattice
        Two families of 45-degree diagonals.  Combined with the inverted,
        dilated dot lattice it fills the gaps between dots.
"""

from __future__ import annotations

from typing import Callable

import cv2
import numpy as np

from resin_layers.buffers.pixel_buffer import EXPOSED, PixelBuffer

# 3x3 rectangle, one dilation pass -> one-pixel margin around dot cores
_DILATE_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _canvas(width: int, height: int) -> np.ndarray:
    if width <= 0 or height <= 0:
        raise ValueError(f"Pattern resolution must be positive, got {width}x{height}")
    return np.zeros((height, width), dtype=np.uint8)


def _require_positive(**values: int) -> None:
    for name, value in values.items():
        if int(value) != value or value < 1:
            raise ValueError(f"{name} must be an integer >= 1, got {value!r}")


def _line(
    canvas: np.ndarray,
    start: tuple[int, int],
    end: tuple[int, int],
    thickness: int,
) -> None:
    cv2.line(canvas, start, end, EXPOSED, thickness, cv2.LINE_4)


# ---------------------------------------------------------------------------
# Calibration patterns
# ---------------------------------------------------------------------------


def generate_grid(width: int, height: int, spacing: int, line_width: int) -> PixelBuffer:
    """Grid pattern -- measure light-engine uniformity.

    Vertical lines are drawn at ``x = width // 2 + k * spacing`` and
    mirrored to ``width - x``; horizontal lines likewise from
    ``height // 2``.

    Parameters
    ----------
    spacing : int
        Distance between neighbouring line centres (px).
    line_width : int
        Stroke thickness (px).
    """
    _require_positive(spacing=spacing, line_width=line_width)
    canvas = _canvas(width, height)

    for x in range(width // 2, width, spacing):
        _line(canvas, (x, 0), (x, height), line_width)
        _line(canvas, (width - x, 0), (width - x, height), line_width)

    for y in range(height // 2, height, spacing):
        _line(canvas, (0, y), (width, y), line_width)
        _line(canvas, (0, height - y), (width, height - y), line_width)

    return PixelBuffer(canvas)


# ---------------------------------------------------------------------------
# Shrinkage lattices
# ---------------------------------------------------------------------------


def generate_dot_lattice(width: int, height: int, grain_size: int, spacing: int) -> PixelBuffer:
    """Honeycomb lattice of filled discs.

    Columns are ``grain_size + spacing`` apart, rows half that.  Every
    second row is shifted right by half a column so the discs pack
    triangularly.

    Parameters
    ----------
    grain_size : int
        Disc diameter (px).
    spacing : int
        Free space between neighbouring discs in a row (px).
    """
    _require_positive(grain_size=grain_size, spacing=spacing)
    canvas = _canvas(width, height)

    x_step = grain_size + spacing
    y_step = x_step // 2
    radius = grain_size // 2

    shifted = False
    for y in range(0, height, y_step):
        offset = x_step // 2 if shifted else 0
        for x in range(0, width, x_step):
            cv2.circle(canvas, (x + offset, y), radius, EXPOSED, -1, cv2.LINE_4)
        shifted = not shifted

    return PixelBuffer(canvas)


def generate_line_lattice(width: int, height: int, grain_size: int, spacing: int) -> PixelBuffer:
    """Two families of diagonal lines, ``grain_size + spacing`` apart.

    Stroke width is ``max(1, grain_size // 5)``.  Each diagonal spans a
    horizontal run equal to the frame *height*, so on non-square frames
    the lattice is not symmetric about the vertical axis.
    """
    _require_positive(grain_size=grain_size, spacing=spacing)
    canvas = _canvas(width, height)

    thickness = max(1, grain_size // 5)
    step = grain_size + spacing

    for x in range(0, width, step):
        _line(canvas, (x, 0), (x + height, height), thickness)
        _line(canvas, (x, height), (x + height, 0), thickness)

    for y in range(0, height, step):
        _line(canvas, (0, y), (height, y + height), thickness)
        _line(canvas, (0, y), (height, y - height), thickness)

    return PixelBuffer(canvas)


def generate_dot_line_pattern(dot_pattern: PixelBuffer, line_pattern: PixelBuffer) -> PixelBuffer:
    """Line-lattice pixels outside the dot cores.

    ``dilate(NOT dots) AND lines``: the inverted dot lattice grows by one
    pixel into each core before masking the line lattice, so the fill
    exposure overlaps the cores only on their outermost ring.
    """
    dot_pattern.require_same_shape(line_pattern)
    inverse = cv2.bitwise_not(dot_pattern.data)
    inverse = cv2.dilate(
        inverse,
        _DILATE_KERNEL,
        anchor=(-1, -1),
        iterations=1,
        borderType=cv2.BORDER_REFLECT_101,
    )
    return PixelBuffer(cv2.bitwise_and(inverse, line_pattern.data))


PATTERN_GENERATORS: dict[str, Callable[..., PixelBuffer]] = {
    "grid": generate_grid,
    "dots": generate_dot_lattice,
    "lines": generate_line_lattice,
}
"""Name -> generator, used by the CLI ``patterns`` command."""
