"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Atomic I/O and YAML (fs)
    - Hashing for provenance (hashing)
    - Unified logging (logging_config)
    - Timing (profiler)

No module in utils/ may import from upper layers (buffers, stack,
compensation, scheduler, ...).

Convenience imports:
    from resin_layers.utils import fs, hashing
    from resin_layers.utils.logging_config import setup_logging, push_context
"""

from . import fs
from . import hashing
from . import logging_config
from . import profiler

from .logging_config import push_context, setup_logging

__all__ = [
    "fs",
    "hashing",
    "logging_config",
    "profiler",
    "setup_logging",
    "push_context",
]
