"""Resin-shrinkage mitigation by multi-exposure decomposition.

Every layer is split into three exposures printed in this order:

1. ``core1`` -- the layer restricted to the dot lattice: small, isolated
   cores that cure and shrink without pulling on their neighbours.
2. ``core2`` -- the layer restricted to the dot-line pattern: diagonal
   fill between the cores.
3. ``full`` -- the unmodified layer.

Both core exposures are further restricted to pixels also exposed in the
previous layer, so they always have something to anchor to.  The first
layer of a stack has no predecessor and is treated as self-supporting.

Restriction is a bitwise AND of the 8-bit values, so a grey edge pixel
in the layer or its predecessor comes out as the AND of both levels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

from resin_layers.buffers.pixel_buffer import PixelBuffer
from resin_layers.calibration.patterns import (
    generate_dot_lattice,
    generate_dot_line_pattern,
    generate_line_lattice,
)
from resin_layers.scheduler.transform import LayerTransform
from resin_layers.stack.layers import Layer

logger = logging.getLogger(__name__)

SUB_EXPOSURES = 3


@dataclass(frozen=True)
class Decomposition:
    """The three exposures derived from one layer, in print order."""

    core1: PixelBuffer
    core2: PixelBuffer
    full: PixelBuffer

    def __iter__(self) -> Iterator[PixelBuffer]:
        return iter((self.core1, self.core2, self.full))


@dataclass(frozen=True)
class ShrinkagePatterns:
    """Read-only masks shared by every worker of one run."""

    dots: PixelBuffer
    dot_lines: PixelBuffer

    @classmethod
    def build(cls, width: int, height: int, grain_size: int, spacing: int) -> ShrinkagePatterns:
        dots = generate_dot_lattice(width, height, grain_size, spacing)
        lines = generate_line_lattice(width, height, grain_size, spacing)
        dot_lines = generate_dot_line_pattern(dots, lines)
        return cls(dots=dots.freeze(), dot_lines=dot_lines.freeze())

    @property
    def resolution(self) -> tuple[int, int]:
        return self.dots.size


def decompose(
    layer: PixelBuffer,
    previous: PixelBuffer | None,
    dot_pattern: PixelBuffer,
    dot_line_pattern: PixelBuffer,
) -> Decomposition:
    """Split *layer* into two anchored core exposures plus the full layer.

    Parameters
    ----------
    layer : PixelBuffer
        Layer image (read only).
    previous : PixelBuffer | None
        Image of the layer below, or ``None`` for the first layer.
    dot_pattern, dot_line_pattern : PixelBuffer
        Masks from :class:`ShrinkagePatterns`.

    Raises
    ------
    DimensionMismatchError
        If any input differs in size from *layer*.
    """
    anchored = layer if previous is None else layer.bitwise_and(previous)
    return Decomposition(
        core1=anchored.bitwise_and(dot_pattern),
        core2=anchored.bitwise_and(dot_line_pattern),
        full=layer.copy(),
    )


class ShrinkageDecomposition(LayerTransform):
    """Scheduler transform: three exposures per index.

    Parameters
    ----------
    grain_size : int
        Dot diameter (px).
    spacing : int
        Free space between dots (px).
    core_exposure_time : float | None
        Exposure time (s) for the two core sub-layers.  ``None`` keeps
        the source layer's exposure time.
    patterns : ShrinkagePatterns | None
        Prebuilt masks; built in :meth:`prepare` when omitted.
    """

    name = "shrinkage"
    outputs_per_layer = SUB_EXPOSURES
    min_layers = 1

    def __init__(
        self,
        grain_size: int,
        spacing: int,
        core_exposure_time: float | None = None,
        patterns: ShrinkagePatterns | None = None,
    ) -> None:
        self.grain_size = grain_size
        self.spacing = spacing
        self.core_exposure_time = core_exposure_time
        self.patterns = patterns

    def prepare(self, resolution: tuple[int, int]) -> None:
        if self.patterns is not None and self.patterns.resolution == resolution:
            return
        width, height = resolution
        self.patterns = ShrinkagePatterns.build(width, height, self.grain_size, self.spacing)
        logger.info(
            "Built shrinkage patterns %dx%d (grain=%d px, spacing=%d px)",
            width, height, self.grain_size, self.spacing,
        )

    def apply(self, source: Sequence[Layer], index: int) -> list[Layer]:
        if self.patterns is None:
            self.prepare(source[index].resolution)
        layer = source[index]
        previous = source[index - 1].image if index > 0 else None
        parts = decompose(layer.image, previous, self.patterns.dots, self.patterns.dot_lines)
        return [
            layer.with_image(parts.core1, self.core_exposure_time),
            layer.with_image(parts.core2, self.core_exposure_time),
            layer.with_image(parts.full),
        ]

    def __repr__(self) -> str:
        return (
            f"ShrinkageDecomposition(grain_size={self.grain_size}, "
            f"spacing={self.spacing})"
        )
