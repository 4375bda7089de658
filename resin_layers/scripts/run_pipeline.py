#!/usr/bin/env python3
"""Command-line entry point for layer-stack processing.

Usage::

    resin-layers patterns out/patterns --width 1920 --height 1080
    resin-layers grid layers/ out/grid
    resin-layers bleed layers/ out/bleed --lookback 8 --start 10 --end 200
    resin-layers shrink layers/ out/shrink --grain-size 11 --spacing 9
    resin-layers --config my_pipeline.yaml --workers 4 --log-level DEBUG bleed layers/ out/

Layer stacks are directories of PNG images (see ``resin_layers.stack.io``).
Ctrl+C requests cancellation: running layers finish, nothing is written,
and the command exits with status 2.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence

from resin_layers.calibration import PATTERN_GENERATORS, build_grid_calibration
from resin_layers.calibration.patterns import generate_dot_line_pattern
from resin_layers.compensation import BleedCompensation, ShrinkageDecomposition
from resin_layers.configs.loader import (
    DEFAULT_CONFIG_PATH,
    GRAIN_SIZE,
    GRAIN_SPACING,
    LOOKBACK_DEPTH,
    PipelineConfig,
    load_config,
    with_overrides,
)
from resin_layers.errors import LayerPipelineError
from resin_layers.scheduler import (
    CancellationToken,
    ParallelLayerScheduler,
    ProgressSnapshot,
    ProgressTracker,
)
from resin_layers.stack import LayerStack, load_layer_directory, save_layer_directory
from resin_layers.utils import fs
from resin_layers.utils.profiler import timer
from resin_layers.utils.logging_config import install_excepthook, push_context, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _ProgressLogger:
    """Progress callback that logs every *step* percent."""

    def __init__(self, step: int = 10) -> None:
        self._step = step
        self._last = -1
        self._lock = threading.Lock()

    def __call__(self, snap: ProgressSnapshot) -> None:
        percent = int(snap.fraction * 100)
        with self._lock:
            if snap.processed == 0:
                self._last = -1
                return
            bucket = percent // self._step
            if bucket <= self._last:
                return
            self._last = bucket
        logger.info("%s: %d/%d (%d%%)", snap.title, snap.processed, snap.total, percent)


def _install_sigint(token: CancellationToken) -> Callable:
    """Route Ctrl+C to *token*; return the previous handler."""

    def handler(signum, frame):
        logger.warning("Interrupt received, cancelling after running layers finish")
        token.cancel()

    return signal.signal(signal.SIGINT, handler)


def _load_stack(path: str, config: PipelineConfig) -> LayerStack:
    return load_layer_directory(path, exposure_time=config.default_exposure_time)


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config) if args.config else DEFAULT_CONFIG_PATH


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_patterns(args: argparse.Namespace, config: PipelineConfig, token: CancellationToken) -> int:
    out_dir = fs.ensure_dir(args.out_dir)
    grid = config.grid
    shrink = config.shrinkage

    with timer("pattern synthesis"):
        images = {
            "grid": PATTERN_GENERATORS["grid"](args.width, args.height, grid.spacing, grid.line_width),
            "dots": PATTERN_GENERATORS["dots"](args.width, args.height, shrink.grain_size, shrink.spacing),
            "lines": PATTERN_GENERATORS["lines"](args.width, args.height, shrink.grain_size, shrink.spacing),
        }
        images["dot_lines"] = generate_dot_line_pattern(images["dots"], images["lines"])

    for name, image in images.items():
        if token.is_cancelled:
            return EXIT_CANCELLED
        path = Path(out_dir) / f"{name}.png"
        fs.atomic_save_image(image.data, path)
        logger.info("Wrote %s (%dx%d)", path, image.width, image.height)
    return EXIT_OK


def cmd_grid(args: argparse.Namespace, config: PipelineConfig, token: CancellationToken) -> int:
    stack = _load_stack(args.in_dir, config)
    progress = ProgressTracker(callback=_ProgressLogger(), token=token)
    if not build_grid_calibration(
        stack, config.grid.spacing, config.grid.line_width, token=token, progress=progress
    ):
        return EXIT_CANCELLED
    save_layer_directory(stack, args.out_dir, config_path=_config_path(args))
    return EXIT_OK


def _run_transform(args, config: PipelineConfig, token: CancellationToken, transform) -> int:
    stack = _load_stack(args.in_dir, config)
    scheduler = ParallelLayerScheduler(max_workers=config.scheduler.max_workers)
    progress = ProgressTracker(callback=_ProgressLogger(), token=token)
    result = scheduler.run(
        stack, transform,
        range_start=args.start, range_end=args.end,
        token=token, progress=progress,
    )
    if not result.ok:
        return EXIT_CANCELLED
    save_layer_directory(stack, args.out_dir, config_path=_config_path(args))
    logger.info(
        "%s: %d -> %d layers in %.2f s",
        result.transform, result.layers_before, result.layers_after, result.elapsed_s,
    )
    return EXIT_OK


def cmd_bleed(args: argparse.Namespace, config: PipelineConfig, token: CancellationToken) -> int:
    return _run_transform(args, config, token, BleedCompensation(config.bleed.lookback_depth))


def cmd_shrink(args: argparse.Namespace, config: PipelineConfig, token: CancellationToken) -> int:
    params = config.shrinkage
    transform = ShrinkageDecomposition(
        params.grain_size, params.spacing, core_exposure_time=params.core_exposure_time
    )
    return _run_transform(args, config, token, transform)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resin-layers",
        description="Calibration patterns and per-layer compensation for resin print stacks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=str, help="Pipeline config file path")
    parser.add_argument("--workers", "-w", type=int,
                        help="Worker threads (default: one per CPU)")
    parser.add_argument("--log-level", type=str,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Override the configured log level")
    parser.add_argument("--log-file", type=str, help="Also log to this file")
    parser.add_argument("--json-logs", action="store_true",
                        help="Emit JSON log lines")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("patterns", help="Write grid, dot, line and dot-line pattern PNGs")
    p.add_argument("out_dir", help="Output directory")
    p.add_argument("--width", type=int, default=1920, help="Pattern width (px, default: 1920)")
    p.add_argument("--height", type=int, default=1080, help="Pattern height (px, default: 1080)")
    p.set_defaults(func=cmd_patterns, op="patterns")

    p = sub.add_parser("grid", help="Replace a stack with the two-layer grid calibration")
    p.add_argument("in_dir", help="Input layer directory")
    p.add_argument("out_dir", help="Output layer directory")
    p.add_argument("--spacing", type=int, help="Grid spacing (px)")
    p.add_argument("--line-width", type=int, help="Width of line (px)")
    p.set_defaults(func=cmd_grid, op="grid")

    p = sub.add_parser("bleed", help="Apply cross-layer bleed compensation")
    p.add_argument("in_dir", help="Input layer directory")
    p.add_argument("out_dir", help="Output layer directory")
    p.add_argument("--lookback", type=int, help=LOOKBACK_DEPTH.describe())
    _add_range(p)
    p.set_defaults(func=cmd_bleed, op="bleed")

    p = sub.add_parser("shrink", help="Split layers into shrinkage-mitigating exposures")
    p.add_argument("in_dir", help="Input layer directory")
    p.add_argument("out_dir", help="Output layer directory")
    p.add_argument("--grain-size", type=int, help=GRAIN_SIZE.describe())
    p.add_argument("--spacing", type=int, help=GRAIN_SPACING.describe())
    _add_range(p)
    p.set_defaults(func=cmd_shrink, op="shrink")

    return parser


def _add_range(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start", type=int, help="First layer index (inclusive, default: 0)")
    p.add_argument("--end", type=int, help="Last layer index (inclusive, default: last layer)")


def _resolve_config(args: argparse.Namespace) -> PipelineConfig:
    """Load config and fold command-line overrides into it."""
    config = load_config(args.config)
    config = with_overrides(config, "scheduler", max_workers=args.workers)
    config = with_overrides(
        config, "logging",
        level=args.log_level, file=args.log_file, json=True if args.json_logs else None,
    )
    if args.command == "grid":
        config = with_overrides(config, "grid", spacing=args.spacing, line_width=args.line_width)
    elif args.command == "bleed":
        config = with_overrides(config, "bleed", lookback_depth=args.lookback)
    elif args.command == "shrink":
        config = with_overrides(
            config, "shrinkage", grain_size=args.grain_size, spacing=args.spacing
        )
    return config


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _resolve_config(args)
    except (FileNotFoundError, LayerPipelineError) as e:
        setup_logging(log_level="INFO", context={"app": "resin-layers"})
        logger.error("%s", e)
        return EXIT_ERROR

    log = config.logging
    setup_logging(
        log_level=log.level,
        log_file=log.file,
        json=log.json_format,
        color=log.color,
        quiet_libs=["PIL"],
        context={"app": "resin-layers", "op": args.op},
    )
    install_excepthook()

    token = CancellationToken()
    previous = _install_sigint(token)
    try:
        code = args.func(args, config, token)
    except (FileNotFoundError, ValueError, LayerPipelineError) as e:
        logger.error("%s", e)
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous)

    if code == EXIT_CANCELLED:
        logger.warning("Cancelled; no output written")
    return code


if __name__ == "__main__":
    sys.exit(main())
