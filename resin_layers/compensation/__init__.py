"""
Per-layer compensation algorithms: occupancy history, bleed compensation
and shrinkage decomposition.
"""

from resin_layers.compensation.bleed import BleedCompensation, compensate
from resin_layers.compensation.occupancy import (
    MAX_LOOKBACK_DEPTH,
    OccupancyResult,
    accumulate,
    effective_depth,
)
from resin_layers.compensation.shrinkage import (
    Decomposition,
    ShrinkageDecomposition,
    ShrinkagePatterns,
    decompose,
)

__all__ = [
    "MAX_LOOKBACK_DEPTH",
    "OccupancyResult",
    "accumulate",
    "effective_depth",
    "compensate",
    "BleedCompensation",
    "Decomposition",
    "ShrinkagePatterns",
    "ShrinkageDecomposition",
    "decompose",
]
