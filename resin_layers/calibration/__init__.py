"""
Calibration module.

Provides procedural pattern generators (grid, dot lattice, line lattice)
and the grid calibration stack used to measure light-engine uniformity.
"""

from resin_layers.calibration.patterns import (
    PATTERN_GENERATORS,
    generate_dot_lattice,
    generate_dot_line_pattern,
    generate_grid,
    generate_line_lattice,
)
from resin_layers.calibration.routines import build_grid_calibration

__all__ = [
    "PATTERN_GENERATORS",
    "generate_grid",
    "generate_dot_lattice",
    "generate_line_lattice",
    "generate_dot_line_pattern",
    "build_grid_calibration",
]
