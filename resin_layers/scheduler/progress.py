"""Progress reporting and cooperative cancellation.

The progress counter is the only mutable state shared between workers.
Its lock guards the increment alone and is never held while a layer is
being computed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation signal polled by the scheduler between units of work."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a :class:`ProgressTracker`."""

    title: str
    processed: int
    total: int

    @property
    def fraction(self) -> float:
        """Completed share in ``[0, 1]`` (1.0 for an empty job)."""
        if self.total <= 0:
            return 1.0
        return min(self.processed / self.total, 1.0)


class ProgressTracker:
    """Thread-safe item counter with an optional update callback.

    Parameters
    ----------
    callback : Callable[[ProgressSnapshot], None] | None
        Invoked after every reset and increment, outside the counter lock.
        Exceptions raised by the callback are logged and swallowed.
    token : CancellationToken | None
        Cancellation signal exposed to the scheduler.  A fresh token is
        created when omitted.
    """

    def __init__(
        self,
        callback: Callable[[ProgressSnapshot], None] | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._title = ""
        self._processed = 0
        self._total = 0
        self._callback = callback
        self.token = token if token is not None else CancellationToken()

    def reset(self, title: str, total: int) -> None:
        """Start a new job of *total* items."""
        with self._lock:
            self._title = title
            self._total = int(total)
            self._processed = 0
        self._notify()

    def increment(self, count: int = 1) -> int:
        """Atomically add *count* processed items; return the new total."""
        with self._lock:
            self._processed += count
            processed = self._processed
        self._notify()
        return processed

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(self._title, self._processed, self._total)

    @property
    def processed(self) -> int:
        with self._lock:
            return self._processed

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    def _notify(self) -> None:
        if self._callback is None:
            return
        try:
            self._callback(self.snapshot())
        except Exception as exc:  # noqa: BLE001
            logger.error("Progress callback error: %s", exc)
