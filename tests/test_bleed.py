"""Tests for occupancy accumulation and bleed compensation.

Validates:
    - Occupancy counts exposed layers in the clamped lookback window
    - Compensated output is a subset of the source layer
    - Layers without history pass through unchanged
    - Partially supported regions are cleared, fully supported kept
    - Narrowed scan range gives the same result as the full frame
    - Preconditions (index, depth, minimum stack size)

Run:
    pytest tests/test_bleed.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from resin_layers.buffers import BoundingRectangle, PixelBuffer
from resin_layers.compensation import (
    MAX_LOOKBACK_DEPTH,
    BleedCompensation,
    accumulate,
    compensate,
    effective_depth,
)
from resin_layers.errors import DimensionMismatchError, PreconditionError
from resin_layers.scheduler import ParallelLayerScheduler
from resin_layers.stack import Layer, LayerStack


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _layer(width: int, height: int, region: tuple[slice, slice] | None = None, value: int = 255) -> Layer:
    data = np.zeros((height, width), dtype=np.uint8)
    if region is not None:
        data[region] = value
    return Layer(PixelBuffer(data), exposure_time=2.5)


@pytest.fixture()
def half_supported() -> list[Layer]:
    """Two support layers cover the left half of R; layer 2 covers all of R."""
    region = (slice(2, 7), slice(2, 8))
    left = (slice(2, 7), slice(2, 5))
    return [
        _layer(10, 10, left),
        _layer(10, 10, left),
        _layer(10, 10, region),
    ]


@pytest.fixture()
def random_layers() -> list[Layer]:
    rng = np.random.default_rng(1234)
    return [
        Layer(PixelBuffer((rng.random((24, 32)) > 0.4).astype(np.uint8) * 255), 2.0)
        for _ in range(8)
    ]


# ---------------------------------------------------------------------------
# Occupancy
# ---------------------------------------------------------------------------


class TestOccupancy:
    def test_effective_depth(self) -> None:
        assert effective_depth(0, 5) == 0
        assert effective_depth(2, 5) == 2
        assert effective_depth(9, 5) == 5

    def test_counts(self, half_supported: list[Layer]) -> None:
        result = accumulate(half_supported, 2, lookback_depth=5)
        assert result.depth == 2
        assert result.occupancy.dtype == np.uint16
        assert result.occupancy[3, 3] == 2
        assert result.occupancy[3, 6] == 0
        assert int(result.occupancy.max()) == 2

    def test_bounds_union(self, half_supported: list[Layer]) -> None:
        result = accumulate(half_supported, 2, lookback_depth=5)
        assert result.bounds == BoundingRectangle(2, 2, 3, 5)

    def test_depth_zero(self, half_supported: list[Layer]) -> None:
        result = accumulate(half_supported, 0, lookback_depth=5)
        assert result.depth == 0
        assert result.bounds.is_empty
        assert not result.occupancy.any()

    def test_intensity_counts_once(self) -> None:
        layers = [_layer(4, 4, (slice(None), slice(None)), value=7), _layer(4, 4)]
        result = accumulate(layers, 1, lookback_depth=1)
        assert np.all(result.occupancy == 1)

    def test_index_out_of_range(self, half_supported: list[Layer]) -> None:
        with pytest.raises(PreconditionError):
            accumulate(half_supported, 3, 1)

    def test_negative_depth(self, half_supported: list[Layer]) -> None:
        with pytest.raises(PreconditionError):
            accumulate(half_supported, 1, -1)

    def test_depth_above_counter_capacity(self, half_supported: list[Layer]) -> None:
        with pytest.raises(PreconditionError):
            accumulate(half_supported, 1, MAX_LOOKBACK_DEPTH + 1)

    def test_dimension_mismatch(self) -> None:
        layers = [_layer(4, 4), _layer(5, 4)]
        with pytest.raises(DimensionMismatchError):
            accumulate(layers, 1, 1)


# ---------------------------------------------------------------------------
# Compensation
# ---------------------------------------------------------------------------


class TestCompensate:
    def test_half_supported_region(self, half_supported: list[Layer]) -> None:
        history = accumulate(half_supported, 2, lookback_depth=5)
        out = compensate(half_supported[2].image, history.occupancy, history.depth, history.bounds)

        assert np.all(out.data[2:7, 2:5] == 255)
        assert not out.data[2:7, 5:8].any()
        assert out.count_nonzero() == 15

    def test_depth_zero_is_identity(self, half_supported: list[Layer]) -> None:
        source = half_supported[2].image
        occupancy = np.zeros((10, 10), dtype=np.uint16)
        out = compensate(source, occupancy, 0, BoundingRectangle.EMPTY)
        assert out == source
        assert out is not source

    def test_empty_scan_range_clears(self, half_supported: list[Layer]) -> None:
        occupancy = np.ones((10, 10), dtype=np.uint16)
        out = compensate(half_supported[2].image, occupancy, 1, BoundingRectangle.EMPTY)
        assert out.count_nonzero() == 0

    def test_shape_mismatch(self, half_supported: list[Layer]) -> None:
        with pytest.raises(DimensionMismatchError):
            compensate(half_supported[2].image, np.zeros((4, 4), dtype=np.uint16), 1)

    def test_preserves_intensity(self) -> None:
        source = PixelBuffer(np.full((3, 3), 90, dtype=np.uint8))
        out = compensate(source, np.ones((3, 3), dtype=np.uint16), 1)
        assert np.all(out.data == 90)

    @pytest.mark.parametrize("index", range(8))
    @pytest.mark.parametrize("lookback", [1, 3, 5])
    def test_output_subset_of_source(
        self, random_layers: list[Layer], index: int, lookback: int
    ) -> None:
        history = accumulate(random_layers, index, lookback)
        source = random_layers[index].image
        out = compensate(source, history.occupancy, history.depth, history.bounds)
        assert not np.any((out.data > 0) & (source.data == 0))

    @pytest.mark.parametrize("index", [1, 4, 7])
    def test_bounds_do_not_change_result(self, random_layers: list[Layer], index: int) -> None:
        history = accumulate(random_layers, index, 3)
        source = random_layers[index].image
        narrowed = compensate(source, history.occupancy, history.depth, history.bounds)
        full = compensate(source, history.occupancy, history.depth, None)
        assert narrowed == full


# ---------------------------------------------------------------------------
# Transform through the scheduler
# ---------------------------------------------------------------------------


class TestBleedCompensation:
    def test_three_layer_stack(self, half_supported: list[Layer]) -> None:
        stack = LayerStack(half_supported)
        before = [layer.image.copy() for layer in stack]

        result = ParallelLayerScheduler(max_workers=2).run(stack, BleedCompensation(5))

        assert result.ok
        assert stack.layer_count == 3
        assert stack[0].image == before[0]
        assert stack[1].image == before[1]
        assert np.all(stack[2].image.data[2:7, 2:5] == 255)
        assert not stack[2].image.data[2:7, 5:8].any()

    def test_reads_original_layers(self) -> None:
        # Layer 1 loses its right half; layer 2 must still see the original layer 1.
        full = (slice(None), slice(None))
        left = (slice(None), slice(0, 2))
        layers = [_layer(4, 4, left), _layer(4, 4, full), _layer(4, 4, full)]
        stack = LayerStack(layers)

        ParallelLayerScheduler(max_workers=1).run(stack, BleedCompensation(1))

        assert stack[1].image.count_nonzero() == 8
        assert stack[2].image.count_nonzero() == 16

    def test_keeps_exposure_time(self, half_supported: list[Layer]) -> None:
        stack = LayerStack(half_supported)
        ParallelLayerScheduler(max_workers=1).run(stack, BleedCompensation(2))
        assert all(layer.exposure_time == 2.5 for layer in stack)

    def test_requires_two_layers(self) -> None:
        stack = LayerStack([_layer(4, 4)])
        before = stack.layers
        with pytest.raises(PreconditionError):
            ParallelLayerScheduler().run(stack, BleedCompensation(5))
        assert stack.layers == before

    @pytest.mark.parametrize("lookback", [0, -3, MAX_LOOKBACK_DEPTH + 1])
    def test_invalid_lookback(self, lookback: int) -> None:
        with pytest.raises(ValueError):
            BleedCompensation(lookback)
