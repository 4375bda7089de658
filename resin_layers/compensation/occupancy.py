"""Per-pixel exposure history over a window of preceding layers.

For layer ``i`` and lookback ``N`` the window is layers ``i-1`` down to
``i-depth`` where ``depth = min(N, i)``.  Each window layer is binarized
(any exposed pixel counts once) and summed into a ``uint16`` counter, so
occupancy values range over ``0..depth`` and can never wrap for any
lookback up to :data:`MAX_LOOKBACK_DEPTH`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from resin_layers.buffers.bounds import BoundingRectangle, union
from resin_layers.errors import PreconditionError
from resin_layers.stack.layers import Layer

logger = logging.getLogger(__name__)

OCCUPANCY_DTYPE = np.uint16
MAX_LOOKBACK_DEPTH = int(np.iinfo(OCCUPANCY_DTYPE).max)


@dataclass(frozen=True)
class OccupancyResult:
    """Output of :func:`accumulate`.

    Attributes
    ----------
    occupancy : np.ndarray
        ``(height, width)`` ``uint16`` counts.
    bounds : BoundingRectangle
        Union of the window layers' bounding rectangles (empty when
        ``depth == 0`` or the whole window is dark).
    depth : int
        Number of layers actually sampled.
    """

    occupancy: np.ndarray
    bounds: BoundingRectangle
    depth: int


def effective_depth(layer_index: int, lookback_depth: int) -> int:
    """Clamp *lookback_depth* to the history available below *layer_index*."""
    return min(lookback_depth, layer_index)


def accumulate(
    layers: Sequence[Layer],
    layer_index: int,
    lookback_depth: int,
) -> OccupancyResult:
    """Count how many of the preceding layers are exposed at each pixel.

    Parameters
    ----------
    layers : Sequence[Layer]
        Read-only source layers (a stack or a snapshot of one).
    layer_index : int
        Layer whose history is sampled.
    lookback_depth : int
        Requested window size; silently clamped to ``layer_index``.

    Raises
    ------
    PreconditionError
        If *layer_index* is outside *layers* or *lookback_depth* is
        negative or too large for the counter.
    """
    if not 0 <= layer_index < len(layers):
        raise PreconditionError(
            f"Layer index {layer_index} outside stack of {len(layers)} layers"
        )
    if lookback_depth < 0:
        raise PreconditionError(f"Lookback depth must be >= 0, got {lookback_depth}")
    if lookback_depth > MAX_LOOKBACK_DEPTH:
        raise PreconditionError(
            f"Lookback depth {lookback_depth} exceeds counter capacity {MAX_LOOKBACK_DEPTH}"
        )

    current = layers[layer_index].image
    depth = effective_depth(layer_index, lookback_depth)
    occupancy = np.zeros((current.height, current.width), dtype=OCCUPANCY_DTYPE)
    bounds = BoundingRectangle.EMPTY

    for below in range(layer_index - 1, layer_index - depth - 1, -1):
        layer = layers[below]
        current.require_same_shape(layer.image)
        rect = layer.bounding_rectangle
        if not rect.is_empty:
            rows, cols = rect.slices()
            occupancy[rows, cols] += layer.image.binarized()[rows, cols]
        bounds = union(bounds, rect)

    logger.debug(
        "Occupancy for layer %d: depth=%d bounds=%s", layer_index, depth, bounds
    )
    return OccupancyResult(occupancy=occupancy, bounds=bounds, depth=depth)
