"""
Classifier Errors
=================

Every error raised by the classifier engine derives from ``MLPError``.
Each class also derives from the closest built-in exception so callers can
catch ``ValueError`` / ``IndexError`` without importing this module.

Errors are always raised *before* any state is mutated: an engine that
raised is in exactly the state it was in before the call.
"""

from __future__ import annotations


class MLPError(Exception):
    """Base class for classifier engine errors."""


class TopologyError(MLPError, ValueError):
    """Invalid layer sizes or matrix dimensions."""


class ShapeMismatchError(MLPError, ValueError):
    """Input or target vector does not match the layer it feeds."""

    def __init__(self, what: str, got: int, expected: int) -> None:
        super().__init__(f"{what} is the wrong size: {got} != {expected}")
        self.got = got
        self.expected = expected


class WeightIndexError(MLPError, IndexError):
    """Weight matrix cell outside ``[0, rows) × [0, cols)``."""


class LayerIndexError(MLPError, IndexError):
    """Layer index outside ``[0, num_layers)``."""


class ModelFormatError(MLPError, ValueError):
    """Persisted model text is malformed or truncated."""


class NotInitializedError(MLPError, RuntimeError):
    """The engine has no topology yet; call ``init`` or ``read`` first."""
