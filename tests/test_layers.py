"""Tests for Layer and LayerStack.

Run:
    pytest tests/test_layers.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from resin_layers.buffers import BoundingRectangle, PixelBuffer
from resin_layers.errors import DimensionMismatchError, PreconditionError
from resin_layers.stack import Layer, LayerStack


def _layer(width: int = 8, height: int = 6, value: int = 0, exposure: float = 2.0) -> Layer:
    return Layer(PixelBuffer(np.full((height, width), value, dtype=np.uint8)), exposure)


class TestLayer:
    def test_bounding_rectangle_cached_and_invalidated(self) -> None:
        layer = _layer()
        assert layer.is_empty
        image = PixelBuffer.zeros(8, 6)
        image.data[2:4, 1:3] = 255
        layer.image = image
        assert layer.bounding_rectangle == BoundingRectangle(1, 2, 2, 2)
        assert not layer.is_empty

    def test_clone_is_deep(self) -> None:
        layer = _layer(value=9, exposure=4.0)
        twin = layer.clone()
        twin.image.data[0, 0] = 0
        twin.exposure_time = 1.0
        assert layer.image.data[0, 0] == 9
        assert layer.exposure_time == 4.0

    def test_with_image(self) -> None:
        layer = _layer(exposure=4.0)
        image = PixelBuffer.zeros(8, 6)
        assert layer.with_image(image).exposure_time == 4.0
        assert layer.with_image(image, 0.5).exposure_time == 0.5
        assert layer.with_image(image).image is image


class TestLayerStack:
    def test_basic_access(self) -> None:
        stack = LayerStack([_layer(value=i) for i in range(4)], bottom_layer_count=2)
        assert len(stack) == stack.layer_count == 4
        assert stack.resolution == (8, 6)
        assert stack[3].image.data[0, 0] == 3
        assert [layer.image.data[0, 0] for layer in stack] == [0, 1, 2, 3]
        assert stack.bottom_layer_count == 2

    def test_empty_rejected(self) -> None:
        with pytest.raises(PreconditionError):
            LayerStack([])

    def test_mixed_resolution_rejected(self) -> None:
        with pytest.raises(DimensionMismatchError):
            LayerStack([_layer(), _layer(width=9)])

    def test_bottom_layer_count_clamped(self) -> None:
        stack = LayerStack([_layer(), _layer()], bottom_layer_count=10)
        assert stack.bottom_layer_count == 2
        with pytest.raises(ValueError):
            stack.bottom_layer_count = -1

    def test_replace_all(self) -> None:
        stack = LayerStack([_layer() for _ in range(5)], bottom_layer_count=4)
        stack.replace_all([_layer(value=7), _layer(value=8)])
        assert stack.layer_count == 2
        assert stack.bottom_layer_count == 2

    def test_replace_all_validates_first(self) -> None:
        stack = LayerStack([_layer(), _layer()])
        before = stack.layers
        with pytest.raises(DimensionMismatchError):
            stack.replace_all([_layer(), _layer(width=3)])
        with pytest.raises(PreconditionError):
            stack.replace_all([])
        assert stack.layers == before

    def test_replace_all_sets_bottom_count(self) -> None:
        stack = LayerStack([_layer() for _ in range(2)], bottom_layer_count=1)
        assert stack.replace_all([_layer() for _ in range(6)], bottom_layer_count=3)
        assert stack.bottom_layer_count == 3
        stack.replace_all([_layer()], bottom_layer_count=3)
        assert stack.bottom_layer_count == 1
        with pytest.raises(ValueError):
            stack.replace_all([_layer()], bottom_layer_count=-1)

    def test_replace_all_aborted(self) -> None:
        stack = LayerStack([_layer(value=1)], bottom_layer_count=1)
        before = stack.layers
        assert not stack.replace_all([_layer(), _layer()], bottom_layer_count=0, abort_if=lambda: True)
        assert stack.layers == before
        assert stack.bottom_layer_count == 1
        assert stack.replace_all([_layer(), _layer()], abort_if=lambda: False)
        assert stack.layer_count == 2

    def test_set_layer(self) -> None:
        stack = LayerStack([_layer(), _layer()])
        replacement = _layer(value=5)
        stack.set_layer(1, replacement)
        assert stack[1] is replacement
        with pytest.raises(DimensionMismatchError):
            stack.set_layer(0, _layer(height=2))

    def test_clone_layers_frozen_and_independent(self) -> None:
        stack = LayerStack([_layer(value=1), _layer(value=2)])
        snapshot = stack.clone_layers()
        assert all(layer.image.frozen for layer in snapshot)
        assert not stack[0].image.frozen
        assert snapshot[0].image == stack[0].image
        assert snapshot[0] is not stack[0]
        stack[0].image.data[0, 0] = 99
        assert snapshot[0].image.data[0, 0] == 1
