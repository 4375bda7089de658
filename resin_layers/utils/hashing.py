"""SHA-256 hashing for layer provenance and determinism checks.

Provides:
    - sha256_file(): Hash file contents (the config recorded in a layer manifest)
    - sha256_buffer(): Hash pixel buffer values

Buffer digests cover the shape as well as the bytes, so two buffers with
the same pixels in a different layout never collide.  They are written to
the layer-directory manifest so a rerun can be compared layer by layer.

Usage:
    from resin_layers.utils import hashing
    digest = hashing.sha256_buffer(layer.image)

Note: Module named `hashing.py` to avoid shadowing builtin `hash()`.
"""

import hashlib
from pathlib import Path
from typing import Union

import numpy as np


def sha256_file(path: Union[str, Path], chunk_size: int = 1 << 20) -> str:
    """Compute SHA-256 hash of file contents.

    Parameters
    ----------
    path : Union[str, Path]
        File path
    chunk_size : int
        Read chunk size in bytes, default 1 MB

    Returns
    -------
    str
        SHA-256 hex digest (64 characters)

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            sha256.update(chunk)
    return sha256.hexdigest()


def sha256_array(arr: np.ndarray) -> str:
    """Hash array shape, dtype and values."""
    sha256 = hashlib.sha256()
    sha256.update(f"{arr.dtype.str}:{arr.shape}".encode("ascii"))
    sha256.update(np.ascontiguousarray(arr).tobytes())
    return sha256.hexdigest()


def sha256_buffer(buffer) -> str:
    """Hash a :class:`~resin_layers.buffers.PixelBuffer` (or anything with ``.data``)."""
    return sha256_array(buffer.data)
