"""
Model File – Positional Text Format
===================================

Layout (whitespace separated, positional – *not* key/value)::

    nn                      model tag
    4                       layer count N (>= 3)
    0.1                     learning rate
    1.0                     beta (sigmoid steepness)
    257                     layer size 0
    ...                     layer sizes 1 .. N-1
    w w w ...               matrix 0 weights, row-major
    ...                     matrices 1 .. N-2

``parse_model`` reads the whole stream before returning, so a caller only
ever sees a complete ``ModelFile`` or a ``ModelFormatError``.  Files with
fewer significant digits (e.g. ``0.123457``) load fine; ``format_model``
writes ``repr`` floats so a Python round trip is exact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, TextIO

import numpy as np

from frame_marker.models.errors import ModelFormatError

log = logging.getLogger(__name__)

MODEL_TAG: str = "nn"
MIN_LAYERS: int = 3


@dataclass
class ModelFile:
    """Fully parsed contents of a model file."""
    learning_rate: float
    beta: float
    layer_sizes: List[int]
    weights: List[np.ndarray] = field(default_factory=list)   # (size[l], size[l+1]) each


# ── Reading ────────────────────────────────────────────────────────────

class _Tokens:
    """Whitespace tokenizer with field-aware error messages."""

    def __init__(self, text: str) -> None:
        self._tokens: List[str] = text.split()
        self.consumed = 0

    def next(self, what: str) -> str:
        if self.consumed >= len(self._tokens):
            raise ModelFormatError(f"Model file truncated: missing {what}")
        token = self._tokens[self.consumed]
        self.consumed += 1
        return token

    def next_int(self, what: str) -> int:
        token = self.next(what)
        try:
            return int(token)
        except ValueError:
            raise ModelFormatError(f"Invalid {what}: {token!r}") from None

    def next_float(self, what: str) -> float:
        token = self.next(what)
        try:
            return float(token)
        except ValueError:
            raise ModelFormatError(f"Invalid {what}: {token!r}") from None

    def take_floats(self, count: int, what: str) -> np.ndarray:
        tokens = self._tokens[self.consumed:self.consumed + count]
        try:
            values = np.array(tokens, dtype=np.float64)
        except ValueError:
            raise ModelFormatError(f"Invalid number in {what}") from None
        self.consumed += count
        return values

    def remaining(self) -> int:
        return len(self._tokens) - self.consumed


def parse_model(stream: TextIO) -> ModelFile:
    """Parse a model from a text stream.

    Raises
    ------
    ModelFormatError
        Wrong tag, fewer than ``MIN_LAYERS`` layers, non-positive layer
        sizes, unparsable numbers, or missing weights.
    """
    tokens = _Tokens(stream.read())

    tag = tokens.next("model tag")
    if tag != MODEL_TAG:
        raise ModelFormatError(f"Not a neural network model: expected tag {MODEL_TAG!r}, got {tag!r}")

    layers = tokens.next_int("layer count")
    if layers < MIN_LAYERS:
        raise ModelFormatError(f"MLP has no hidden layers: layer count {layers} < {MIN_LAYERS}")

    learning_rate = tokens.next_float("learning rate")
    beta = tokens.next_float("beta")

    layer_sizes: List[int] = []
    for l in range(layers):
        size = tokens.next_int(f"size of layer {l}")
        if size <= 0:
            raise ModelFormatError(f"Layer {l} has non-positive size {size}")
        layer_sizes.append(size)

    shapes = list(zip(layer_sizes[:-1], layer_sizes[1:]))
    expected = sum(rows * cols for rows, cols in shapes)
    if tokens.remaining() < expected:
        raise ModelFormatError(
            f"Model file truncated: {tokens.remaining()} weight(s) for {expected} connections"
        )

    weights: List[np.ndarray] = []
    for l, (rows, cols) in enumerate(shapes):
        flat = tokens.take_floats(rows * cols, f"weights of matrix {l}")
        weights.append(flat.reshape(rows, cols))

    extra = tokens.remaining()
    if extra:
        log.warning("Ignoring %d trailing token(s) after model weights", extra)

    return ModelFile(
        learning_rate=learning_rate,
        beta=beta,
        layer_sizes=layer_sizes,
        weights=weights,
    )


# ── Writing ────────────────────────────────────────────────────────────

def format_model(
    layer_sizes: Sequence[int],
    learning_rate: float,
    beta: float,
    weights: Sequence[np.ndarray],
) -> str:
    """Render a model in the positional text format."""
    lines = [
        MODEL_TAG,
        str(len(layer_sizes)),
        repr(float(learning_rate)),
        repr(float(beta)),
    ]
    lines.extend(str(int(size)) for size in layer_sizes)
    for matrix in weights:
        lines.append(" ".join(repr(float(v)) for v in np.asarray(matrix).ravel()))
    return "\n".join(lines) + "\n"


def write_model(stream: TextIO, model: ModelFile) -> None:
    stream.write(format_model(model.layer_sizes, model.learning_rate, model.beta, model.weights))
