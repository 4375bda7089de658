"""Lightweight wall-clock timing.

Provides:
    - timer(): Context manager timing one block, reporting to a sink
    - TimerAccumulator: Thread-safe running total for per-layer timings

Used to measure:
    - Whole transform runs (scheduler)
    - Per-layer work units (mean time per layer in run logs)
    - Pattern synthesis in the CLI

No profiling dependencies; ``time.perf_counter`` only.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None) -> Iterator[None]:
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds).
        If None, logs at DEBUG level.

    Examples
    --------
    >>> with timer("dot_lattice"):
    ...     dots = generate_dot_lattice(3840, 2400, 11, 9)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.debug("%s: %.3f s", name, elapsed)


class TimerAccumulator:
    """Accumulate timing measurements from many threads for averaging.

    Attributes
    ----------
    name : str
        Timer name
    total_time : float
        Accumulated time in seconds
    count : int
        Number of measurements

    Examples
    --------
    >>> per_layer = TimerAccumulator("bleed")
    >>> with per_layer.measure():
    ...     compensate(...)
    >>> per_layer.mean()
    """

    def __init__(self, name: str):
        self.name = name
        self.total_time = 0.0
        self.count = 0
        self._lock = threading.Lock()

    @contextmanager
    def measure(self) -> Iterator[None]:
        """Context manager to measure and accumulate time."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            with self._lock:
                self.total_time += elapsed
                self.count += 1

    def mean(self) -> float:
        """Mean time per measurement in seconds, or 0.0 if none."""
        with self._lock:
            return self.total_time / self.count if self.count > 0 else 0.0

    def reset(self) -> None:
        with self._lock:
            self.total_time = 0.0
            self.count = 0

    def __repr__(self) -> str:
        return f"TimerAccumulator({self.name}, mean={self.mean():.4f}s, count={self.count})"
