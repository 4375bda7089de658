"""Per-layer transform interface driven by :class:`ParallelLayerScheduler`."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from resin_layers.stack.layers import Layer


class LayerTransform(ABC):
    """One unit of work per layer index.

    Subclasses set:

    ``name``
        Short identifier used in progress titles and log lines.
    ``outputs_per_layer``
        Exact number of layers :meth:`apply` returns for every index.
    ``min_layers``
        Smallest stack the transform accepts.

    :meth:`apply` is called concurrently from worker threads.  It must
    treat *source* as read-only and return freshly built layers only.
    """

    name: str = "transform"
    outputs_per_layer: int = 1
    min_layers: int = 1

    def prepare(self, resolution: tuple[int, int]) -> None:
        """Build shared read-only inputs once before dispatch."""
        return None

    @abstractmethod
    def apply(self, source: Sequence[Layer], index: int) -> list[Layer]:
        """Produce the output layers for *index* from *source*."""
        raise NotImplementedError
