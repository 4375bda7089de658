"""Layers and the ordered layer stack of a print job.

The stack is the only piece of shared, long-lived state the pipeline
touches.  Transforms never edit it in place: they read from a snapshot
taken with :meth:`LayerStack.clone_layers` and hand a fully built layer
list to :meth:`LayerStack.replace_all`, which swaps it in under a lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional, Sequence

from resin_layers.buffers.bounds import BoundingRectangle, bounding_box_of
from resin_layers.buffers.pixel_buffer import PixelBuffer
from resin_layers.errors import DimensionMismatchError, PreconditionError

logger = logging.getLogger(__name__)


class Layer:
    """One cross-sectional exposure image plus the metadata we read/write.

    Parameters
    ----------
    image : PixelBuffer
        Exposure image.  The layer owns it exclusively.
    exposure_time : float
        Exposure time in seconds.
    """

    __slots__ = ("_image", "exposure_time", "_bounds")

    def __init__(self, image: PixelBuffer, exposure_time: float = 0.0) -> None:
        self._image = image
        self.exposure_time = float(exposure_time)
        self._bounds: BoundingRectangle | None = None

    @property
    def image(self) -> PixelBuffer:
        return self._image

    @image.setter
    def image(self, value: PixelBuffer) -> None:
        """Replace the image; the old buffer is released with the layer."""
        self._image = value
        self._bounds = None

    @property
    def resolution(self) -> tuple[int, int]:
        return self._image.size

    @property
    def bounding_rectangle(self) -> BoundingRectangle:
        """Cached box around the exposed pixels of :attr:`image`."""
        if self._bounds is None:
            self._bounds = bounding_box_of(self._image)
        return self._bounds

    @property
    def is_empty(self) -> bool:
        return self.bounding_rectangle.is_empty

    def clone(self) -> Layer:
        """Deep copy: independent image and metadata."""
        twin = Layer(self._image.copy(), self.exposure_time)
        twin._bounds = self._bounds
        return twin

    def with_image(self, image: PixelBuffer, exposure_time: float | None = None) -> Layer:
        """New layer sharing this layer's metadata but owning *image*."""
        return Layer(
            image,
            self.exposure_time if exposure_time is None else exposure_time,
        )

    def __repr__(self) -> str:
        return (
            f"Layer({self._image.width}x{self._image.height}, "
            f"exposure={self.exposure_time:.2f}s)"
        )


class LayerStack:
    """Ordered sequence of layers, index 0 printed first.

    All layers share one resolution.  ``bottom_layer_count`` is the
    print-job field telling the printer how many leading layers use bottom
    exposure settings.

    Parameters
    ----------
    layers : Sequence[Layer]
        Initial layers (at least one).
    bottom_layer_count : int
        Number of bottom layers, clamped to the layer count.
    """

    def __init__(self, layers: Sequence[Layer], bottom_layer_count: int = 0) -> None:
        self._lock = threading.Lock()
        self._layers: list[Layer] = []
        self._bottom_layer_count = 0
        self._install(list(layers))
        self.bottom_layer_count = bottom_layer_count

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def layer_count(self) -> int:
        return len(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __getitem__(self, index: int) -> Layer:
        return self._layers[index]

    def __iter__(self) -> Iterator[Layer]:
        return iter(list(self._layers))

    @property
    def resolution(self) -> tuple[int, int]:
        """``(width, height)`` shared by every layer."""
        return self._layers[0].resolution

    @property
    def layers(self) -> tuple[Layer, ...]:
        return tuple(self._layers)

    @property
    def bottom_layer_count(self) -> int:
        return self._bottom_layer_count

    @bottom_layer_count.setter
    def bottom_layer_count(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"bottom_layer_count must be >= 0, got {value}")
        self._bottom_layer_count = min(int(value), len(self._layers))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_layer(self, index: int, layer: Layer) -> None:
        """Replace one layer (same resolution required)."""
        self._check_resolution(layer, self.resolution)
        with self._lock:
            self._layers[index] = layer

    def replace_all(
        self,
        layers: Sequence[Layer],
        bottom_layer_count: Optional[int] = None,
        abort_if: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Swap in a new layer collection atomically.

        The new list is validated completely before the swap so a bad
        layer never leaves the stack half replaced.  *abort_if* is called
        under the stack lock right before the swap; if it returns true the
        stack is left as it was.

        Returns
        -------
        bool
            ``True`` if the new layers were installed.
        """
        new_layers = list(layers)
        if bottom_layer_count is not None and bottom_layer_count < 0:
            raise ValueError(f"bottom_layer_count must be >= 0, got {bottom_layer_count}")
        if not self._install(new_layers, bottom_layer_count, abort_if):
            logger.debug("Layer swap aborted")
            return False
        logger.debug("Installed %d layers", len(new_layers))
        return True

    def clone_layers(self) -> list[Layer]:
        """Independent deep copy of every layer, safe for concurrent reads."""
        with self._lock:
            current = list(self._layers)
        snapshot = [layer.clone() for layer in current]
        for layer in snapshot:
            layer.image.freeze()
        return snapshot

    def _install(
        self,
        layers: list[Layer],
        bottom_layer_count: Optional[int] = None,
        abort_if: Optional[Callable[[], bool]] = None,
    ) -> bool:
        if not layers:
            raise PreconditionError("A layer stack needs at least one layer")
        resolution = layers[0].resolution
        for layer in layers[1:]:
            self._check_resolution(layer, resolution)
        if bottom_layer_count is None:
            bottom_layer_count = self._bottom_layer_count
        with self._lock:
            if abort_if is not None and abort_if():
                return False
            self._layers = layers
            self._bottom_layer_count = min(int(bottom_layer_count), len(layers))
        return True

    @staticmethod
    def _check_resolution(layer: Layer, resolution: tuple[int, int]) -> None:
        if layer.resolution != resolution:
            raise DimensionMismatchError(resolution, layer.resolution)

    def __repr__(self) -> str:
        w, h = self.resolution
        return f"LayerStack({len(self._layers)} layers, {w}x{h})"
