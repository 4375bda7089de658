"""Tests for PixelBuffer and bounding rectangles.

Validates:
    - Construction rejects non-2-D and out-of-range input
    - Combining operations return fresh buffers and check dimensions
    - Freezing makes the underlying array read-only
    - Bounding boxes and unions (empty operands are ignored)

Run:
    pytest tests/test_pixel_buffer.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from resin_layers.buffers import (
    BoundingRectangle,
    PixelBuffer,
    bounding_box_of,
    union,
    union_all,
)
from resin_layers.buffers.pixel_buffer import EXPOSED
from resin_layers.errors import DimensionMismatchError, LayerPipelineError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def square() -> PixelBuffer:
    """8x6 buffer with a 3x2 exposed block at x=2..4, y=1..2."""
    data = np.zeros((6, 8), dtype=np.uint8)
    data[1:3, 2:5] = 200
    return PixelBuffer(data)


# ---------------------------------------------------------------------------
# PixelBuffer
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_zeros_dimensions(self) -> None:
        buf = PixelBuffer.zeros(8, 6)
        assert buf.size == (8, 6)
        assert buf.data.shape == (6, 8)
        assert buf.count_nonzero() == 0

    def test_rejects_non_2d(self) -> None:
        with pytest.raises(ValueError):
            PixelBuffer(np.zeros((2, 2, 3), dtype=np.uint8))

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            PixelBuffer(np.full((2, 2), 300))

    def test_converts_int_array(self) -> None:
        buf = PixelBuffer(np.array([[0, 1], [254, 255]]))
        assert buf.data.dtype == np.uint8

    def test_zero_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            PixelBuffer.zeros(0, 4)


class TestOperations:
    def test_binarized(self, square: PixelBuffer) -> None:
        bits = square.binarized()
        assert set(np.unique(bits)) == {0, 1}
        assert int(bits.sum()) == 6

    def test_dimension_mismatch(self, square: PixelBuffer) -> None:
        with pytest.raises(DimensionMismatchError) as exc:
            square.bitwise_and(PixelBuffer.zeros(4, 4))
        assert isinstance(exc.value, LayerPipelineError)
        assert exc.value.left == (8, 6)
        assert exc.value.right == (4, 4)

    def test_bitwise_and(self) -> None:
        a = PixelBuffer(np.array([[EXPOSED, 0, EXPOSED]], dtype=np.uint8))
        b = PixelBuffer(np.array([[0, EXPOSED, EXPOSED]], dtype=np.uint8))
        assert a.bitwise_and(b).data.tolist() == [[0, 0, EXPOSED]]

    def test_bitwise_and_of_grey_levels(self) -> None:
        a = PixelBuffer(np.array([[200, 128]], dtype=np.uint8))
        b = PixelBuffer(np.array([[180, 127]], dtype=np.uint8))
        before = a.copy()
        assert a.bitwise_and(b).data.tolist() == [[128, 0]]
        assert a == before

    def test_freeze(self, square: PixelBuffer) -> None:
        assert not square.frozen
        assert square.freeze() is square
        assert square.frozen
        with pytest.raises(ValueError):
            square.data[0, 0] = 1

    def test_copy_of_frozen_is_writable(self, square: PixelBuffer) -> None:
        clone = square.freeze().copy()
        clone.data[0, 0] = 7
        assert square.data[0, 0] == 0

    def test_equality(self, square: PixelBuffer) -> None:
        assert square == square.copy()
        assert square != square.new_blank()
        assert square != PixelBuffer.zeros(6, 8)


# ---------------------------------------------------------------------------
# Bounding rectangles
# ---------------------------------------------------------------------------


class TestBoundingRectangle:
    def test_bounding_box(self, square: PixelBuffer) -> None:
        rect = bounding_box_of(square)
        assert rect == BoundingRectangle(2, 1, 3, 2)
        assert (rect.right, rect.bottom) == (5, 3)

    def test_empty_buffer(self) -> None:
        rect = bounding_box_of(PixelBuffer.zeros(5, 5))
        assert rect.is_empty

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            BoundingRectangle(0, 0, -1, 2)

    def test_slices(self, square: PixelBuffer) -> None:
        rows, cols = bounding_box_of(square).slices()
        assert square.data[rows, cols].min() == 200

    def test_union(self) -> None:
        a = BoundingRectangle(0, 0, 2, 2)
        b = BoundingRectangle(5, 3, 1, 4)
        assert union(a, b) == BoundingRectangle(0, 0, 6, 7)
        assert union(b, a) == union(a, b)

    def test_union_ignores_empty(self) -> None:
        a = BoundingRectangle(3, 3, 2, 2)
        assert union(a, BoundingRectangle.EMPTY) == a
        assert union(BoundingRectangle.EMPTY, a) == a
        assert union_all([]).is_empty
        assert union_all([BoundingRectangle.EMPTY, a]) == a

    def test_full(self) -> None:
        assert BoundingRectangle.full(4, 3).slices() == (slice(0, 3), slice(0, 4))
