"""
Parallel layer scheduling, progress reporting and cancellation.
"""

from resin_layers.scheduler.progress import (
    CancellationToken,
    ProgressSnapshot,
    ProgressTracker,
)
from resin_layers.scheduler.runner import (
    ParallelLayerScheduler,
    RunResult,
    RunStatus,
    resolve_range,
)
from resin_layers.scheduler.transform import LayerTransform

__all__ = [
    "CancellationToken",
    "ProgressSnapshot",
    "ProgressTracker",
    "LayerTransform",
    "ParallelLayerScheduler",
    "RunResult",
    "RunStatus",
    "resolve_range",
]
