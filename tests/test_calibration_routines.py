"""Tests for the grid calibration stack builder.

Run:
    pytest tests/test_calibration_routines.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from resin_layers.buffers import PixelBuffer
from resin_layers.calibration import build_grid_calibration, generate_grid
from resin_layers.errors import PreconditionError
from resin_layers.scheduler import CancellationToken, ProgressTracker
from resin_layers.stack import Layer, LayerStack


@pytest.fixture()
def stack() -> LayerStack:
    layers = [
        Layer(PixelBuffer(np.full((48, 64), i * 20, dtype=np.uint8)), exposure_time=30.0 - i)
        for i in range(5)
    ]
    return LayerStack(layers, bottom_layer_count=4)


class TestBuildGridCalibration:
    def test_replaces_stack_with_two_grid_layers(self, stack: LayerStack) -> None:
        assert build_grid_calibration(stack, spacing=20, line_width=2)

        expected = generate_grid(64, 48, 20, 2)
        assert stack.layer_count == 2
        assert stack[0].image == expected
        assert stack[1].image == expected

    def test_keeps_metadata_of_first_layers(self, stack: LayerStack) -> None:
        build_grid_calibration(stack, spacing=20, line_width=1)
        assert [layer.exposure_time for layer in stack] == [30.0, 29.0]
        assert stack.bottom_layer_count == 2

    def test_layers_own_their_images(self, stack: LayerStack) -> None:
        build_grid_calibration(stack, spacing=20, line_width=1)
        stack[0].image.data[0, 0] = 255 - stack[0].image.data[0, 0]
        assert stack[0].image != stack[1].image

    def test_requires_two_layers(self) -> None:
        single = LayerStack([Layer(PixelBuffer.zeros(8, 8), 1.0)])
        with pytest.raises(PreconditionError):
            build_grid_calibration(single, 4, 1)
        assert single.layer_count == 1

    def test_cancelled(self, stack: LayerStack) -> None:
        before = stack.layers
        token = CancellationToken()
        token.cancel()
        assert build_grid_calibration(stack, 20, 1, token=token) is False
        assert stack.layers == before

    def test_progress(self, stack: LayerStack) -> None:
        progress = ProgressTracker()
        build_grid_calibration(stack, 20, 1, progress=progress)
        assert progress.snapshot().processed == 2
        assert progress.snapshot().total == 2

    def test_invalid_spacing(self, stack: LayerStack) -> None:
        before = stack.layers
        with pytest.raises(ValueError):
            build_grid_calibration(stack, 0, 1)
        assert stack.layers == before
