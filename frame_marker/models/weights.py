"""
Weight Matrix – Dense Layer-to-Layer Connection Weights
=======================================================

One ``WeightMatrix`` stores the connections between two adjacent layers:
row ``j`` is a neuron in the source layer, column ``k`` a neuron in the
destination layer.

Design notes:
  • Backed by a single ``(rows, cols)`` float64 numpy array so the engine
    can run whole-layer matrix products instead of per-cell loops.
  • ``get`` / ``set`` are bounds-checked and raise ``WeightIndexError``;
    negative indices are rejected rather than wrapping around.
  • The shape is fixed at construction.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from frame_marker.models.errors import TopologyError, WeightIndexError


class WeightMatrix:
    """Zero-initialised ``rows × cols`` weight storage.

    Parameters
    ----------
    rows : int
        Size of the source layer.
    cols : int
        Size of the destination layer.
    """

    def __init__(self, rows: int, cols: int) -> None:
        if int(rows) <= 0 or int(cols) <= 0:
            raise TopologyError(f"Weight matrix dimensions must be positive: {rows} x {cols}")
        self._values = np.zeros((int(rows), int(cols)), dtype=np.float64)

    @classmethod
    def from_array(cls, values: np.ndarray) -> "WeightMatrix":
        """Build a matrix holding a copy of a 2-D array."""
        values = np.asarray(values, dtype=np.float64)
        if values.ndim != 2:
            raise TopologyError(f"Weight array must be 2-D, got shape {values.shape}")
        matrix = cls(*values.shape)
        matrix._values[...] = values
        return matrix

    # ── Dimensions ─────────────────────────────────────────────────────

    @property
    def rows(self) -> int:
        return self._values.shape[0]

    @property
    def cols(self) -> int:
        return self._values.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    @property
    def values(self) -> np.ndarray:
        """Backing array; callers may update it in place but not reshape it."""
        return self._values

    # ── Checked access ─────────────────────────────────────────────────

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise WeightIndexError(
                f"Out of bounds weight index ({row}, {col}) for {self.rows} x {self.cols} matrix"
            )

    def get(self, row: int, col: int) -> float:
        self._check(row, col)
        return float(self._values[row, col])

    def set(self, row: int, col: int, value: float) -> None:
        self._check(row, col)
        self._values[row, col] = value

    def __getitem__(self, index: Tuple[int, int]) -> float:
        return self.get(*index)

    def __setitem__(self, index: Tuple[int, int], value: float) -> None:
        self.set(*index, value)

    # ── Bulk operations ────────────────────────────────────────────────

    def fill_uniform(
        self,
        rng: np.random.Generator,
        low: float = -1.0,
        high: float = 1.0,
    ) -> None:
        """Overwrite every cell with an independent draw from ``[low, high)``."""
        self._values[...] = rng.uniform(low, high, size=self.shape)

    def copy(self) -> "WeightMatrix":
        return WeightMatrix.from_array(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightMatrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._values, other._values))

    def __repr__(self) -> str:
        return f"WeightMatrix(rows={self.rows}, cols={self.cols})"
