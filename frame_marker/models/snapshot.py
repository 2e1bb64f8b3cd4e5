"""
MLP Snapshot – Read-Only Torch Copy for Batched Inference
=========================================================

``MLPClassifier`` keeps mutable activation buffers and is therefore not
safe to share between callers.  An ``MLPSnapshot`` copies the weights into
torch buffers once and evaluates whole batches of feature vectors in a
single pass, e.g. every patch of a frame at once.

  • Weights are registered as *buffers*, not parameters: nothing here is
    trainable and ``requires_grad`` is never set.
  • The snapshot is independent of the engine it came from; training the
    engine afterwards does not change the snapshot.
  • Evaluation uses float64 so scores match ``MLPClassifier.classify``.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np
import torch
import torch.nn as nn

from frame_marker.models.errors import NotInitializedError, ShapeMismatchError


class MLPSnapshot(nn.Module):
    """Sigmoid MLP forward pass over frozen weight matrices.

    Parameters
    ----------
    weights : sequence of np.ndarray
        One ``(size[l], size[l+1])`` matrix per adjacent layer pair.
    beta : float
        Sigmoid steepness.
    device : str
        ``"cpu"`` or ``"cuda"``.
    """

    def __init__(
        self,
        weights: Sequence[np.ndarray],
        beta: float = 1.0,
        device: str = "cpu",
    ) -> None:
        super().__init__()
        if not weights:
            raise NotInitializedError("Cannot snapshot an MLP without weights")
        self.beta = float(beta)
        self.device = torch.device(device)
        self.layer_sizes: List[int] = [int(np.shape(weights[0])[0])]
        for l, matrix in enumerate(weights):
            tensor = torch.as_tensor(np.array(matrix, dtype=np.float64))
            self.register_buffer(f"weight_{l}", tensor)
            self.layer_sizes.append(int(tensor.shape[1]))
        self._num_matrices = len(weights)
        self.to(self.device)
        self.eval()

    @classmethod
    def from_classifier(cls, classifier, device: str = "cpu") -> "MLPSnapshot":
        """Snapshot the current weights of an ``MLPClassifier``."""
        if not classifier.is_initialized:
            raise NotInitializedError("Cannot snapshot an uninitialised MLP")
        return cls(
            [matrix.values for matrix in classifier.weights],
            beta=classifier.beta,
            device=device,
        )

    def weight_tensors(self) -> List[torch.Tensor]:
        return [getattr(self, f"weight_{l}") for l in range(self._num_matrices)]

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Return output activations for ``(n_in,)`` or ``(B, n_in)`` input."""
        if x.shape[-1] != self.layer_sizes[0]:
            raise ShapeMismatchError("Input", int(x.shape[-1]), self.layer_sizes[0])
        activation = x.to(device=self.device, dtype=torch.float64)
        for weight in self.weight_tensors():
            activation = torch.sigmoid(self.beta * (activation @ weight))
        return activation

    @torch.no_grad()
    def classify(self, input: Sequence[float]) -> np.ndarray:
        """Output activations for a single feature vector."""
        x = torch.as_tensor(np.asarray(input, dtype=np.float64).ravel())
        return self.forward(x).cpu().numpy()

    @torch.no_grad()
    def classify_batch(self, inputs: np.ndarray) -> np.ndarray:
        """Output activations of shape ``(B, n_out)`` for ``(B, n_in)`` input."""
        batch = np.asarray(inputs, dtype=np.float64)
        if batch.ndim != 2:
            raise ShapeMismatchError("Batch rank", batch.ndim, 2)
        return self.forward(torch.as_tensor(batch)).cpu().numpy()
