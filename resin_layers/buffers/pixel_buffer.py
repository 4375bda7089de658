"""Single-channel intensity grid -- the common currency of the pipeline.

A ``PixelBuffer`` wraps a C-contiguous ``(height, width)`` ``uint8`` array.
Value ``0`` is unexposed; any positive value is exposed (cured).

Ownership
---------
A buffer is mutable only by its current owner.  Before a buffer is shared
with read-only consumers (worker threads, pattern caches) the owner calls
:meth:`PixelBuffer.freeze`, after which numpy rejects writes.  Every
combining operation returns a fresh buffer and never touches its inputs.
"""

from __future__ import annotations

import cv2
import numpy as np

from resin_layers.errors import DimensionMismatchError

EXPOSED = 255
"""Intensity used for fully exposed pattern pixels."""


class PixelBuffer:
    """Row-major single-channel 8-bit image.

    Parameters
    ----------
    data : np.ndarray
        2-D array of shape ``(height, width)``.  Converted to a contiguous
        ``uint8`` array; values outside ``[0, 255]`` are rejected.
    """

    __slots__ = ("_data",)

    def __init__(self, data: np.ndarray) -> None:
        arr = np.asarray(data)
        if arr.ndim != 2:
            raise ValueError(f"PixelBuffer requires a 2-D array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            if arr.size and (arr.min() < 0 or arr.max() > 255):
                raise ValueError("PixelBuffer values must lie in [0, 255]")
            arr = arr.astype(np.uint8)
        self._data = np.ascontiguousarray(arr)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zeros(cls, width: int, height: int) -> PixelBuffer:
        """Blank (fully unexposed) buffer."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Buffer size must be positive, got {width}x{height}")
        return cls(np.zeros((height, width), dtype=np.uint8))

    def copy(self) -> PixelBuffer:
        """Independent, writable copy."""
        return PixelBuffer(self._data.copy())

    def new_blank(self) -> PixelBuffer:
        """Blank buffer with the same dimensions."""
        return PixelBuffer(np.zeros_like(self._data))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def data(self) -> np.ndarray:
        """Underlying array (read-only once frozen)."""
        return self._data

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        """``(width, height)``."""
        return self.width, self.height

    @property
    def frozen(self) -> bool:
        return not self._data.flags.writeable

    def freeze(self) -> PixelBuffer:
        """Mark the buffer read-only and return it."""
        self._data.flags.writeable = False
        return self

    # ------------------------------------------------------------------
    # Pixel operations
    # ------------------------------------------------------------------

    def require_same_shape(self, other: PixelBuffer) -> None:
        """Raise :class:`DimensionMismatchError` unless *other* matches."""
        if self._data.shape != other._data.shape:
            raise DimensionMismatchError(self.size, other.size)

    def binarized(self) -> np.ndarray:
        """``{0, 1}`` array: 1 wherever the pixel is exposed."""
        _, out = cv2.threshold(self._data, 0, 1, cv2.THRESH_BINARY)
        return out

    def bitwise_and(self, other: PixelBuffer) -> PixelBuffer:
        self.require_same_shape(other)
        return PixelBuffer(cv2.bitwise_and(self._data, other._data))

    def count_nonzero(self) -> int:
        return int(cv2.countNonZero(self._data))

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self._data.shape == other._data.shape and bool(
            np.array_equal(self._data, other._data)
        )

    __hash__ = None  # mutable container

    def __repr__(self) -> str:
        state = "frozen" if self.frozen else "mutable"
        return f"PixelBuffer({self.width}x{self.height}, {state})"
