"""Exception hierarchy shared by every layer-pipeline module.

Cancellation has no exception type: a cancelled run is reported through
``RunStatus.CANCELLED`` on the scheduler result, not raised.
"""

from __future__ import annotations


class LayerPipelineError(Exception):
    """Base class for all layer-pipeline failures."""

    pass


class PreconditionError(LayerPipelineError):
    """Raised before any mutation when an operation cannot run on its input.

    Examples: fewer than two layers for an operation that needs a
    predecessor, or a layer range outside the stack.
    """

    pass


class DimensionMismatchError(LayerPipelineError):
    """Raised when two pixel buffers of different shape are combined."""

    def __init__(self, left: tuple[int, int], right: tuple[int, int]) -> None:
        self.left = left
        self.right = right
        super().__init__(
            f"Buffer dimensions differ: {left[0]}x{left[1]} vs {right[0]}x{right[1]}"
        )


class ConfigError(LayerPipelineError):
    """Raised when configuration validation fails."""

    pass
