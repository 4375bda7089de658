"""Pipeline configuration: numeric parameters and their declared limits.

Loads ``pipeline.yaml`` and validates it with pydantic.  Every numeric
parameter is declared once as a :class:`NumericInput` (label, unit,
minimum, maximum, increment, default); the schema models take their
defaults and limits from those declarations, and the CLI help text is
rendered from them too.

Units:
    - Pattern geometry: pixels (px)
    - Lookback: layers
    - Exposure: seconds (s)

Usage::

    from resin_layers.configs.loader import load_config
    cfg = load_config()                          # shipped defaults
    cfg = load_config("/custom/pipeline.yaml")   # explicit path
    cfg = with_overrides(cfg, "bleed", lookback_depth=8)
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from resin_layers.errors import ConfigError
from resin_layers.utils.fs import load_yaml

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "pipeline.v1"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "pipeline.yaml"


# ============================================================================
# PARAMETER DECLARATIONS
# ============================================================================

class NumericInput(BaseModel):
    """Declared limits of one user-facing numeric parameter."""

    model_config = ConfigDict(frozen=True)

    label: str
    unit: str = ""
    minimum: float
    maximum: float
    increment: float = Field(1, gt=0)
    default: float

    @model_validator(mode="after")
    def validate_limits(self) -> "NumericInput":
        if self.minimum > self.maximum:
            raise ValueError(f"minimum ({self.minimum}) exceeds maximum ({self.maximum})")
        self.check(self.default)
        return self

    def check(self, value: float) -> float:
        """Validate *value* against the limits and increment grid."""
        if not self.minimum <= value <= self.maximum:
            raise ValueError(
                f"{self.label} must be in [{self.minimum:g}, {self.maximum:g}] {self.unit}, got {value}"
            )
        steps = (value - self.minimum) / self.increment
        if not math.isclose(steps, round(steps), abs_tol=1e-6):
            raise ValueError(
                f"{self.label} must be a multiple of {self.increment:g} {self.unit} "
                f"above {self.minimum:g}, got {value}"
            )
        return value

    def describe(self) -> str:
        """Short help text, e.g. ``'Grid spacing [1..10000 px, default 200]'``."""
        return f"{self.label} [{self.minimum:g}..{self.maximum:g} {self.unit}, default {self.default:g}]"


GRID_SPACING = NumericInput(
    label="Grid spacing", unit="px", minimum=1, maximum=10000, increment=1, default=200,
)
GRID_LINE_WIDTH = NumericInput(
    label="Width of line", unit="px", minimum=1, maximum=500, increment=1, default=1,
)
LOOKBACK_DEPTH = NumericInput(
    label="Number of layers the exposure bleeds through", unit="layers",
    minimum=1, maximum=500, increment=1, default=5,
)
GRAIN_SIZE = NumericInput(
    label="Size of the initial grains", unit="px", minimum=1, maximum=500, increment=1, default=11,
)
GRAIN_SPACING = NumericInput(
    label="Free space between the grains", unit="px", minimum=1, maximum=500, increment=1, default=9,
)
CORE_EXPOSURE_TIME = NumericInput(
    label="Exposure time of the core sub-layers", unit="s",
    minimum=0.1, maximum=300, increment=0.1, default=2.0,
)


# ============================================================================
# SCHEMA MODELS
# ============================================================================

class _Params(BaseModel):
    """Base for parameter groups; checks every declared input."""

    model_config = ConfigDict(extra="forbid")

    inputs: ClassVar[dict[str, NumericInput]] = {}

    @model_validator(mode="after")
    def validate_inputs(self) -> "_Params":
        for name, declared in self.inputs.items():
            declared.check(getattr(self, name))
        return self


class GridParams(_Params):
    """Grid calibration pattern."""

    inputs: ClassVar[dict[str, NumericInput]] = {
        "spacing": GRID_SPACING,
        "line_width": GRID_LINE_WIDTH,
    }

    spacing: int = int(GRID_SPACING.default)
    line_width: int = int(GRID_LINE_WIDTH.default)


class BleedParams(_Params):
    """Cross-layer bleed compensation."""

    inputs: ClassVar[dict[str, NumericInput]] = {"lookback_depth": LOOKBACK_DEPTH}

    lookback_depth: int = int(LOOKBACK_DEPTH.default)


class ShrinkageParams(_Params):
    """Shrinkage decomposition lattices and sub-layer exposure."""

    inputs: ClassVar[dict[str, NumericInput]] = {
        "grain_size": GRAIN_SIZE,
        "spacing": GRAIN_SPACING,
        "core_exposure_time": CORE_EXPOSURE_TIME,
    }

    grain_size: int = int(GRAIN_SIZE.default)
    spacing: int = int(GRAIN_SPACING.default)
    core_exposure_time: float = CORE_EXPOSURE_TIME.default


class SchedulerParams(BaseModel):
    """Worker pool sizing."""

    model_config = ConfigDict(extra="forbid")

    max_workers: Optional[int] = Field(None, ge=1, description="None = os.cpu_count()")


class LoggingParams(BaseModel):
    """Logging setup passed to ``setup_logging``."""

    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    file: Optional[str] = None
    json_format: bool = Field(False, alias="json")
    color: bool = True

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}, got '{v}'")
        return v.upper()


class PipelineConfig(BaseModel):
    """Complete pipeline configuration (pipeline.v1)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    schema_version: str = Field(SCHEMA_VERSION, alias="schema")
    default_exposure_time: float = Field(2.0, gt=0, description="Exposure (s) for layers without metadata")
    grid: GridParams = Field(default_factory=GridParams)
    bleed: BleedParams = Field(default_factory=BleedParams)
    shrinkage: ShrinkageParams = Field(default_factory=ShrinkageParams)
    scheduler: SchedulerParams = Field(default_factory=SchedulerParams)
    logging: LoggingParams = Field(default_factory=LoggingParams)

    @field_validator("schema_version")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != SCHEMA_VERSION:
            raise ValueError(f"Expected schema '{SCHEMA_VERSION}', got '{v}'")
        return v


# ============================================================================
# PUBLIC API
# ============================================================================

def load_config(path: str | Path | None = None) -> PipelineConfig:
    """Load and validate pipeline configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to a ``pipeline.yaml``.  ``None`` loads the defaults shipped
        alongside this module.

    Returns
    -------
    PipelineConfig
        Validated configuration.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ConfigError
        If the file is empty or fails validation.
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)
    try:
        data: Any = load_yaml(path)
    except Exception as e:
        raise ConfigError(f"Could not read configuration {path}: {e}") from e
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}: {path}")

    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed at {path}: {e}") from e


def with_overrides(config: PipelineConfig, section: str, **values: Any) -> PipelineConfig:
    """Copy of *config* with ``section.key = value`` overrides, re-validated.

    ``None`` values are ignored so unset CLI options keep the configured
    value.

    Raises
    ------
    ConfigError
        If *section* is unknown or an override fails validation.
    """
    data = config.model_dump(by_alias=True)
    if section not in data or not isinstance(data[section], dict):
        raise ConfigError(f"Unknown configuration section: '{section}'")
    data[section].update({k: v for k, v in values.items() if v is not None})
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid override for '{section}': {e}") from e
