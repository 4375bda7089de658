"""Calibration stacks built from procedural patterns.

Replaces a print job's layers with pattern images so the light engine can
be measured (e.g. by curing a thin grid film and checking line widths
across the build plate).
"""

from __future__ import annotations

import logging

from resin_layers.calibration.patterns import generate_grid
from resin_layers.errors import PreconditionError
from resin_layers.scheduler.progress import CancellationToken, ProgressTracker
from resin_layers.stack.layers import LayerStack

logger = logging.getLogger(__name__)

GRID_CALIBRATION_LAYERS = 2


def build_grid_calibration(
    stack: LayerStack,
    spacing: int,
    line_width: int,
    token: CancellationToken | None = None,
    progress: ProgressTracker | None = None,
) -> bool:
    """Replace *stack* with two layers showing the grid pattern.

    The two layers keep the metadata (exposure time) of the stack's first
    two layers; ``bottom_layer_count`` is clamped to the new size.

    Parameters
    ----------
    stack : LayerStack
        Stack to rewrite.  Must hold at least two layers.
    spacing, line_width : int
        Grid parameters (px), see :func:`generate_grid`.
    token : CancellationToken | None
        Checked before the swap; defaults to ``progress.token``.
    progress : ProgressTracker | None
        Receives one increment per calibration layer.

    Returns
    -------
    bool
        ``True`` if the stack was replaced, ``False`` if cancelled.

    Raises
    ------
    PreconditionError
        If the stack holds fewer than two layers.
    """
    if stack.layer_count < GRID_CALIBRATION_LAYERS:
        raise PreconditionError(
            f"Grid calibration requires at least {GRID_CALIBRATION_LAYERS} layers, "
            f"stack has {stack.layer_count}"
        )
    if progress is None:
        progress = ProgressTracker(token=token)
    if token is None:
        token = progress.token

    progress.reset("Building grid calibration", GRID_CALIBRATION_LAYERS)
    width, height = stack.resolution
    pattern = generate_grid(width, height, spacing, line_width)

    new_layers = []
    for index in range(GRID_CALIBRATION_LAYERS):
        new_layers.append(stack[index].with_image(pattern.copy()))
        progress.increment()

    if not stack.replace_all(new_layers, abort_if=lambda: token.is_cancelled):
        logger.warning("Grid calibration cancelled; stack left unchanged")
        return False

    logger.info(
        "Installed grid calibration (%dx%d, spacing=%d px, line width=%d px)",
        width, height, spacing, line_width,
    )
    return True
