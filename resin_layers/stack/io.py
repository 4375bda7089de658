"""Layer stacks stored as a directory of PNG images.

A minimal exchange format for the CLI and tests; printer container
formats are handled by external tools.  Layout::

    layers/
        layer_00000.png
        layer_00001.png
        ...
        manifest.yaml     # optional: per-file exposure times, bottom layer count

Images are read in file-name order and converted to 8-bit greyscale.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union

from resin_layers.buffers.pixel_buffer import PixelBuffer
from resin_layers.errors import ConfigError, DimensionMismatchError, PreconditionError
from resin_layers.stack.layers import Layer, LayerStack
from resin_layers.utils import fs, hashing

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.yaml"
MANIFEST_SCHEMA = "layer_stack.v1"
LAYER_NAME = "layer_{index:05d}.png"


def _layer_files(directory: Path) -> list[Path]:
    return sorted(
        p for p in directory.glob("*.png")
        if p.is_file() and ".tmp" not in p.suffixes
    )


def load_layer_directory(
    directory: Union[str, Path],
    exposure_time: float = 2.0,
    bottom_layer_count: int = 0,
) -> LayerStack:
    """Read every PNG in *directory* into a :class:`LayerStack`.

    Values from ``manifest.yaml`` (if present) override *exposure_time*
    and *bottom_layer_count*.  Exposure times are matched to images by the
    ``file`` key, so a missing or extra PNG does not shift the others.

    Raises
    ------
    FileNotFoundError
        If *directory* does not exist.
    PreconditionError
        If it contains no PNG files.
    DimensionMismatchError
        If the images differ in size.
    ConfigError
        If the manifest is malformed.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Layer directory not found: {directory}")

    files = _layer_files(directory)
    if not files:
        raise PreconditionError(f"No PNG layers found in {directory}")

    exposures: dict[str, float] = {}
    manifest_path = directory / MANIFEST_NAME
    if manifest_path.exists():
        manifest = _read_manifest(manifest_path)
        bottom_layer_count = int(manifest.get("bottom_layer_count", bottom_layer_count))
        for entry in manifest.get("layers", []):
            if "exposure_time" in entry:
                exposures[entry["file"]] = float(entry["exposure_time"])

    layers: list[Layer] = []
    resolution: tuple[int, int] | None = None
    for path in files:
        image = PixelBuffer(fs.load_grayscale_image(path))
        if resolution is None:
            resolution = image.size
        elif image.size != resolution:
            raise DimensionMismatchError(resolution, image.size)
        layers.append(Layer(image, exposures.get(path.name, float(exposure_time))))

    logger.info(
        "Loaded %d layers (%dx%d) from %s", len(layers), resolution[0], resolution[1], directory
    )
    return LayerStack(layers, bottom_layer_count=bottom_layer_count)


def save_layer_directory(
    stack: LayerStack,
    directory: Union[str, Path],
    config_path: Union[str, Path, None] = None,
) -> Path:
    """Write *stack* as numbered PNGs plus ``manifest.yaml``.

    Stale ``layer_*.png`` files from an earlier, longer stack are removed
    so the directory always reloads to exactly *stack*.  When *config_path*
    is given, the path and SHA-256 of the configuration that produced the
    stack are recorded under ``config``.

    Returns
    -------
    Path
        The manifest path.
    """
    directory = fs.ensure_dir(directory)

    entries: list[dict[str, Any]] = []
    names = set()
    for index, layer in enumerate(stack.layers):
        name = LAYER_NAME.format(index=index)
        names.add(name)
        fs.atomic_save_image(layer.image.data, directory / name)
        rect = layer.bounding_rectangle
        entries.append({
            "file": name,
            "exposure_time": layer.exposure_time,
            "bounds": [rect.x, rect.y, rect.width, rect.height],
            "sha256": hashing.sha256_buffer(layer.image),
        })

    for stale in directory.glob("layer_*.png"):
        if stale.name not in names:
            stale.unlink()

    width, height = stack.resolution
    manifest = {
        "schema": MANIFEST_SCHEMA,
        "resolution": [width, height],
        "layer_count": stack.layer_count,
        "bottom_layer_count": stack.bottom_layer_count,
        "layers": entries,
    }
    if config_path is not None:
        manifest["config"] = {
            "path": str(config_path),
            "sha256": hashing.sha256_file(config_path),
        }
    manifest_path = directory / MANIFEST_NAME
    fs.atomic_yaml_dump(manifest, manifest_path)
    logger.info("Wrote %d layers to %s", stack.layer_count, directory)
    return manifest_path


def _read_manifest(path: Path) -> dict[str, Any]:
    data = fs.load_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Layer manifest must be a mapping: {path}")
    schema = data.get("schema", MANIFEST_SCHEMA)
    if schema != MANIFEST_SCHEMA:
        raise ConfigError(f"Expected schema '{MANIFEST_SCHEMA}', got '{schema}' in {path}")
    layers = data.get("layers", [])
    if not isinstance(layers, list):
        raise ConfigError(f"'layers' must be a list in {path}")
    for entry in layers:
        if not isinstance(entry, dict) or "file" not in entry:
            raise ConfigError(f"Every manifest layer entry needs a 'file' key in {path}")
    return data
