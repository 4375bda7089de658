"""Parallel per-layer scheduler.

Drives a :class:`LayerTransform` over a layer range with a bounded thread
pool and installs the result into the stack all at once.

Guarantees
----------
- Workers read only a frozen snapshot of the stack taken before dispatch,
  never a layer another worker is producing.
- Every index owns one pre-reserved output slot, so output order is a
  function of the index alone and no lock guards the slot list.
- Cancellation is polled before each dispatch and once more under the
  stack lock right before the swap.  Already running units finish, but a
  cancelled run never touches the stack.
- A worker exception stops further dispatch and is re-raised to the caller
  after in-flight units drain; the stack is left untouched.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum, auto
from typing import Sequence

from resin_layers.errors import LayerPipelineError, PreconditionError
from resin_layers.scheduler.progress import CancellationToken, ProgressTracker
from resin_layers.scheduler.transform import LayerTransform
from resin_layers.stack.layers import Layer, LayerStack
from resin_layers.utils.profiler import TimerAccumulator, timer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class RunStatus(Enum):
    """Outcome of a scheduler run."""

    COMPLETED = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :meth:`ParallelLayerScheduler.run`."""

    status: RunStatus
    transform: str
    range_start: int
    range_end: int
    processed: int
    layers_before: int
    layers_after: int
    elapsed_s: float

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


def resolve_range(
    layer_count: int,
    range_start: int | None,
    range_end: int | None,
) -> tuple[int, int]:
    """Fill defaults for an inclusive layer range and validate it."""
    start = 0 if range_start is None else range_start
    end = layer_count - 1 if range_end is None else range_end
    if not 0 <= start <= end < layer_count:
        raise PreconditionError(
            f"Invalid layer range [{start}, {end}] for a stack of {layer_count} layers"
        )
    return start, end


class ParallelLayerScheduler:
    """Bounded-concurrency driver for per-layer transforms.

    Parameters
    ----------
    max_workers : int | None
        Worker thread count.  ``None`` uses ``os.cpu_count()``.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._max_workers = max_workers or os.cpu_count() or 1

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def run(
        self,
        stack: LayerStack,
        transform: LayerTransform,
        range_start: int | None = None,
        range_end: int | None = None,
        token: CancellationToken | None = None,
        progress: ProgressTracker | None = None,
    ) -> RunResult:
        """Apply *transform* to every index in ``[range_start, range_end]``.

        Parameters
        ----------
        stack : LayerStack
            Stack to rewrite.  Replaced atomically on success only.
        transform : LayerTransform
            Per-index work.
        range_start, range_end : int | None
            Inclusive index range; defaults to the whole stack.  Layers
            outside the range are carried through unchanged.
        token : CancellationToken | None
            Cancellation signal.  Defaults to ``progress.token``.
        progress : ProgressTracker | None
            Receives one increment per finished index.

        Returns
        -------
        RunResult
            ``status`` is ``CANCELLED`` when cancellation was observed
            before the swap; the stack is then unchanged.

        Raises
        ------
        PreconditionError
            If the stack is too small or the range is invalid.
        LayerPipelineError
            If a worker returns the wrong number of layers.
        Exception
            Any exception raised by a worker, re-raised unchanged.
        """
        if progress is None:
            progress = ProgressTracker(token=token)
        if token is None:
            token = progress.token

        layer_count = stack.layer_count
        if layer_count < transform.min_layers:
            raise PreconditionError(
                f"'{transform.name}' requires at least {transform.min_layers} "
                f"layers, stack has {layer_count}"
            )
        start, end = resolve_range(layer_count, range_start, range_end)

        original = stack.layers
        old_bottom = stack.bottom_layer_count
        snapshot = stack.clone_layers()
        transform.prepare(stack.resolution)

        count = end - start + 1
        slots: list[list[Layer] | None] = [None] * count
        progress.reset(f"Applying {transform.name}", count)

        logger.info(
            "Running %s on layers %d..%d (%d workers)",
            transform.name, start, end, min(self._max_workers, count),
        )

        per_layer = TimerAccumulator(transform.name)

        def work(index: int) -> None:
            with per_layer.measure():
                produced = transform.apply(snapshot, index)
            if len(produced) != transform.outputs_per_layer:
                raise LayerPipelineError(
                    f"'{transform.name}' produced {len(produced)} layers for index "
                    f"{index}, expected {transform.outputs_per_layer}"
                )
            slots[index - start] = produced
            progress.increment()

        started = time.perf_counter()
        with timer(transform.name, sink=_log_elapsed):
            self._dispatch(work, range(start, end + 1), token)
        logger.debug(
            "%s: %.4f s per layer over %d layers",
            transform.name, per_layer.mean(), per_layer.count,
        )

        installed = False
        if not token.is_cancelled:
            new_layers: list[Layer] = []
            new_bottom = 0
            for index in range(layer_count):
                if start <= index <= end:
                    produced = slots[index - start]
                    if produced is None:
                        raise LayerPipelineError(f"No output produced for layer {index}")
                else:
                    produced = [original[index]]
                new_layers.extend(produced)
                if index < old_bottom:
                    new_bottom += len(produced)

            installed = stack.replace_all(
                new_layers, bottom_layer_count=new_bottom, abort_if=lambda: token.is_cancelled
            )

        if not installed:
            logger.warning(
                "%s cancelled after %d/%d layers; stack left unchanged",
                transform.name, progress.processed, count,
            )
            return RunResult(
                status=RunStatus.CANCELLED,
                transform=transform.name,
                range_start=start,
                range_end=end,
                processed=progress.processed,
                layers_before=layer_count,
                layers_after=layer_count,
                elapsed_s=time.perf_counter() - started,
            )

        logger.info(
            "%s installed %d layers (was %d, bottom layers %d)",
            transform.name, len(new_layers), layer_count, new_bottom,
        )

        return RunResult(
            status=RunStatus.COMPLETED,
            transform=transform.name,
            range_start=start,
            range_end=end,
            processed=progress.processed,
            layers_before=layer_count,
            layers_after=len(new_layers),
            elapsed_s=time.perf_counter() - started,
        )

    def _dispatch(self, work, indices: Sequence[int], token: CancellationToken) -> None:
        """Keep at most ``max_workers`` units in flight, polling *token*."""
        pending: set[Future] = set()
        error: BaseException | None = None
        queue = iter(indices)

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="layer-worker"
        ) as pool:
            while True:
                while error is None and len(pending) < self._max_workers:
                    if token.is_cancelled:
                        break
                    index = next(queue, None)
                    if index is None:
                        break
                    pending.add(pool.submit(work, index))

                if not pending:
                    break

                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    exc = future.exception()
                    if exc is not None and error is None:
                        logger.error("Layer worker failed: %s", exc)
                        error = exc

        if error is not None:
            raise error


def _log_elapsed(name: str, elapsed: float) -> None:
    logger.info("%s finished in %.3f s", name, elapsed)
