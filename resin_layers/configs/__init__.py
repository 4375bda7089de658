"""Pipeline configuration schema and loader."""

from resin_layers.configs.loader import (
    CORE_EXPOSURE_TIME,
    GRAIN_SIZE,
    GRAIN_SPACING,
    GRID_LINE_WIDTH,
    GRID_SPACING,
    LOOKBACK_DEPTH,
    BleedParams,
    GridParams,
    LoggingParams,
    NumericInput,
    PipelineConfig,
    SchedulerParams,
    ShrinkageParams,
    load_config,
    with_overrides,
)

__all__ = [
    "CORE_EXPOSURE_TIME",
    "GRAIN_SIZE",
    "GRAIN_SPACING",
    "GRID_LINE_WIDTH",
    "GRID_SPACING",
    "LOOKBACK_DEPTH",
    "BleedParams",
    "GridParams",
    "LoggingParams",
    "NumericInput",
    "PipelineConfig",
    "SchedulerParams",
    "ShrinkageParams",
    "load_config",
    "with_overrides",
]
