"""Cross-layer bleed compensation.

Light leaking through cured resin over-cures regions of the layers below
an overhang.  A pixel is therefore kept only where *every* sampled layer
underneath was exposed as well; pixels with partial or no support are
suppressed.  Layers without history (index 0) pass through unchanged.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from resin_layers.buffers.bounds import BoundingRectangle
from resin_layers.buffers.pixel_buffer import PixelBuffer
from resin_layers.compensation.occupancy import MAX_LOOKBACK_DEPTH, accumulate
from resin_layers.errors import DimensionMismatchError
from resin_layers.scheduler.transform import LayerTransform
from resin_layers.stack.layers import Layer

logger = logging.getLogger(__name__)


def compensate(
    source: PixelBuffer,
    occupancy: np.ndarray,
    depth: int,
    scan_range: BoundingRectangle | None = None,
) -> PixelBuffer:
    """Keep source pixels fully supported by the sampled history.

    Parameters
    ----------
    source : PixelBuffer
        Layer image being corrected (read only).
    occupancy : np.ndarray
        Per-pixel count of exposed layers in the window (read only).
    depth : int
        Number of layers sampled into *occupancy*.
    scan_range : BoundingRectangle | None
        Region outside which the output is zero.  ``None`` scans the full
        frame.  Ignored when ``depth == 0``.

    Returns
    -------
    PixelBuffer
        New buffer: ``source`` where ``occupancy == depth`` inside
        *scan_range*, zero elsewhere.  With ``depth == 0`` an exact copy
        of ``source``.
    """
    if occupancy.shape != source.data.shape:
        h, w = occupancy.shape[:2]
        raise DimensionMismatchError(source.size, (w, h))

    if depth == 0:
        return source.copy()

    target = source.new_blank()
    if scan_range is None:
        scan_range = BoundingRectangle.full(source.width, source.height)
    if scan_range.is_empty:
        return target

    rows, cols = scan_range.slices()
    supported = occupancy[rows, cols] == depth
    target.data[rows, cols] = np.where(supported, source.data[rows, cols], np.uint8(0))
    return target


class BleedCompensation(LayerTransform):
    """Scheduler transform: one compensated layer per index.

    Parameters
    ----------
    lookback_depth : int
        Number of layers the exposure bleeds through.
    """

    name = "bleed"
    outputs_per_layer = 1
    min_layers = 2

    def __init__(self, lookback_depth: int) -> None:
        if not 1 <= lookback_depth <= MAX_LOOKBACK_DEPTH:
            raise ValueError(
                f"lookback_depth must be in [1, {MAX_LOOKBACK_DEPTH}], got {lookback_depth}"
            )
        self.lookback_depth = lookback_depth

    def apply(self, source: Sequence[Layer], index: int) -> list[Layer]:
        history = accumulate(source, index, self.lookback_depth)
        layer = source[index]
        image = compensate(layer.image, history.occupancy, history.depth, history.bounds)
        logger.debug(
            "Layer %d: kept %d of %d exposed pixels",
            index, image.count_nonzero(), layer.image.count_nonzero(),
        )
        return [layer.with_image(image)]

    def __repr__(self) -> str:
        return f"BleedCompensation(lookback_depth={self.lookback_depth})"
