"""
MLP Classifier – Sigmoid Multilayer Perceptron with Online Back-Propagation
===========================================================================

Architectural decisions:
  • Fully connected layers, no bias weights.  A constant bias *input*
    (``-1.0``) is appended by the feature extractor instead.
  • Every non-input layer uses the logistic sigmoid
    ``1 / (1 + exp(-beta * x))``.
  • Training is online: one ``back_propagation`` call is one gradient
    step on the example most recently passed to ``feed_forward``.
  • Weights start as independent uniform draws on ``[-1, 1)`` regardless
    of fan-in.  The random source is passed in explicitly so
    initialisation can be reproduced.
  • Per-neuron work inside a layer is expressed as numpy vector/matrix
    products; layers are still processed strictly in order.

State ownership:
  The engine owns its weight matrices and its activation / error buffers
  and is *not* safe for concurrent ``train`` / ``classify`` calls.  Use
  ``copy()`` for an independent engine or ``snapshot()`` for a read-only
  torch model when several callers need to classify in parallel.
"""

from __future__ import annotations

import copy as _copy
import logging
from pathlib import Path
from typing import List, Sequence, TextIO, Tuple, Union

import numpy as np

from frame_marker.models.errors import (
    LayerIndexError,
    NotInitializedError,
    ShapeMismatchError,
    TopologyError,
)
from frame_marker.models.model_file import (
    MIN_LAYERS,
    ModelFile,
    format_model,
    parse_model,
)
from frame_marker.models.weights import WeightMatrix

log = logging.getLogger(__name__)

DEFAULT_LEARNING_RATE: float = 0.1
DEFAULT_BETA: float = 1.0
WEIGHT_INIT_RANGE: Tuple[float, float] = (-1.0, 1.0)

RandomSource = Union[None, int, np.random.Generator]


def as_generator(rng: RandomSource) -> np.random.Generator:
    """Accept ``None`` (OS entropy), an int seed or an existing ``Generator``."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def _as_vector(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


# ── Engine ─────────────────────────────────────────────────────────────

class MLPClassifier:
    """Multilayer perceptron with sigmoid units.

    A new instance has no layers; call :meth:`init` for a random network
    or :meth:`read` / :meth:`load` to restore a persisted one.
    """

    def __init__(self) -> None:
        self._learning_rate: float = DEFAULT_LEARNING_RATE
        self._beta: float = DEFAULT_BETA
        self._layer_sizes: List[int] = []
        self._weights: List[WeightMatrix] = []
        self._layers: List[np.ndarray] = []     # activations, one per layer
        self._errors: List[np.ndarray] = []     # errors[l] belongs to layer l + 1

    # ── Topology & introspection ───────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return bool(self._layer_sizes)

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def beta(self) -> float:
        return self._beta

    @property
    def layer_sizes(self) -> Tuple[int, ...]:
        return tuple(self._layer_sizes)

    @property
    def weights(self) -> Tuple[WeightMatrix, ...]:
        return tuple(self._weights)

    @property
    def activations(self) -> List[np.ndarray]:
        return [layer.copy() for layer in self._layers]

    @property
    def errors(self) -> List[np.ndarray]:
        return [error.copy() for error in self._errors]

    def num_layers(self) -> int:
        return len(self._layer_sizes)

    def layer_size(self, layer: int) -> int:
        if not 0 <= layer < len(self._layer_sizes):
            raise LayerIndexError(f"Layer does not exist: {layer} / {len(self._layer_sizes)}")
        return self._layer_sizes[layer]

    def _require_initialized(self) -> None:
        if not self._layer_sizes:
            raise NotInitializedError("MLP has no layers; call init() or read() first")

    # ── Initialisation ─────────────────────────────────────────────────

    @staticmethod
    def _validate_topology(layer_sizes: Sequence[int]) -> List[int]:
        sizes = [int(size) for size in layer_sizes]
        if len(sizes) < MIN_LAYERS:
            raise TopologyError(
                f"MLP has no hidden layers: {len(sizes)} layer(s) given, need at least {MIN_LAYERS}"
            )
        for l, size in enumerate(sizes):
            if size <= 0:
                raise TopologyError(f"Layer {l} has non-positive size {size}")
        return sizes

    def _install(
        self,
        layer_sizes: List[int],
        weights: List[WeightMatrix],
        learning_rate: float,
        beta: float,
    ) -> None:
        """Replace the entire engine state; buffers are reset to zero."""
        self._layer_sizes = layer_sizes
        self._weights = weights
        self._learning_rate = float(learning_rate)
        self._beta = float(beta)
        self._layers = [np.zeros(size, dtype=np.float64) for size in layer_sizes]
        self._errors = [np.zeros(size, dtype=np.float64) for size in layer_sizes[1:]]

    def init(
        self,
        layer_sizes: Sequence[int],
        learning_rate: float = DEFAULT_LEARNING_RATE,
        beta: float = DEFAULT_BETA,
        rng: RandomSource = None,
    ) -> None:
        """Discard all state and build a randomly weighted network.

        Parameters
        ----------
        layer_sizes : sequence of int
            Neuron counts, input layer first.  At least three entries
            (one hidden layer), all positive.
        learning_rate : float
            Step size of each weight update.
        beta : float
            Sigmoid steepness.
        rng : None | int | numpy.random.Generator
            Source of the initial weights.  An int seeds a new generator;
            ``None`` draws fresh OS entropy.
        """
        sizes = self._validate_topology(layer_sizes)
        generator = as_generator(rng)
        low, high = WEIGHT_INIT_RANGE

        weights: List[WeightMatrix] = []
        for rows, cols in zip(sizes[:-1], sizes[1:]):
            matrix = WeightMatrix(rows, cols)
            matrix.fill_uniform(generator, low, high)
            weights.append(matrix)

        self._install(sizes, weights, learning_rate, beta)
        log.info(
            "Initialised MLP  layers=%s  learning_rate=%g  beta=%g",
            sizes, self._learning_rate, self._beta,
        )

    # ── Forward / backward passes ──────────────────────────────────────

    def feed_forward(self, input: Sequence[float]) -> None:
        """Propagate *input* through the network, filling every activation buffer."""
        self._require_initialized()
        x = _as_vector(input)
        if x.size != self._layer_sizes[0]:
            raise ShapeMismatchError("Input", x.size, self._layer_sizes[0])

        self._layers[0][...] = x
        for l in range(1, len(self._layer_sizes)):
            weighted = self._layers[l - 1] @ self._weights[l - 1].values
            self._layers[l][...] = 1.0 / (1.0 + np.exp(-self._beta * weighted))

    def back_propagation(self, target: Sequence[float]) -> None:
        """Apply one online gradient step towards *target*.

        Consumes the activations left by the preceding :meth:`feed_forward`
        call.  All error terms are computed with the current weights before
        any weight is changed.
        """
        self._require_initialized()
        t = _as_vector(target)
        if t.size != self._layer_sizes[-1]:
            raise ShapeMismatchError("Target", t.size, self._layer_sizes[-1])

        last = len(self._layer_sizes) - 1
        output = self._layers[last]
        self._errors[last - 1][...] = (t - output) * output * (1.0 - output)

        for l in range(last - 1, 0, -1):
            log.debug("compute error layer %d -> %d", l, l + 1)
            activation = self._layers[l]
            propagated = self._weights[l].values @ self._errors[l]
            self._errors[l - 1][...] = activation * (1.0 - activation) * propagated

        for l in range(last - 1, -1, -1):
            log.debug("updating weights %d", l + 1)
            self._weights[l].values[...] += self._learning_rate * np.outer(self._layers[l], self._errors[l])

    def output_layer(self) -> np.ndarray:
        """Copy of the output activations from the last forward pass."""
        self._require_initialized()
        return self._layers[-1].copy()

    def train(self, input: Sequence[float], target: Sequence[float]) -> None:
        self._require_initialized()
        # Reject a bad target before the forward pass overwrites the buffers.
        t = _as_vector(target)
        if t.size != self._layer_sizes[-1]:
            raise ShapeMismatchError("Target", t.size, self._layer_sizes[-1])
        self.feed_forward(input)
        self.back_propagation(t)

    def classify(self, input: Sequence[float]) -> np.ndarray:
        self.feed_forward(input)
        return self.output_layer()

    # ── Persistence ────────────────────────────────────────────────────

    def write(self, stream: TextIO) -> None:
        """Write the model in the positional text format."""
        self._require_initialized()
        stream.write(format_model(
            self._layer_sizes,
            self._learning_rate,
            self._beta,
            [matrix.values for matrix in self._weights],
        ))
        log.debug("Wrote MLP with %d layers", len(self._layer_sizes))

    def read(self, stream: TextIO) -> None:
        """Replace the engine with the model stored in *stream*.

        The stream is parsed completely before anything is replaced; on
        ``ModelFormatError`` the engine keeps its previous state.
        """
        model: ModelFile = parse_model(stream)
        weights = [WeightMatrix.from_array(values) for values in model.weights]
        self._install(list(model.layer_sizes), weights, model.learning_rate, model.beta)
        log.info(
            "Read MLP  layers=%s  learning_rate=%g  beta=%g",
            self._layer_sizes, self._learning_rate, self._beta,
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            self.write(f)
        log.info("Saved MLP to %s", path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "MLPClassifier":
        """Convenience loader: a new engine read from a model file."""
        classifier = cls()
        with open(path, "r", encoding="utf-8") as f:
            classifier.read(f)
        return classifier

    # ── Independent copies ─────────────────────────────────────────────

    def copy(self) -> "MLPClassifier":
        """An independent engine with identical weights and buffers."""
        return _copy.deepcopy(self)

    def snapshot(self, device: str = "cpu"):
        """Read-only torch copy of the current weights for batched inference."""
        from frame_marker.models.snapshot import MLPSnapshot

        return MLPSnapshot.from_classifier(self, device=device)

    def __repr__(self) -> str:
        return (
            f"MLPClassifier(layers={self._layer_sizes}, "
            f"learning_rate={self._learning_rate}, beta={self._beta})"
        )
