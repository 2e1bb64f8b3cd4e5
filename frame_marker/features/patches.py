"""
Patch Features – Frame History → Luminance Feature Vectors
==========================================================

Every decoded frame is reduced to luminance and pushed onto a short,
most-recent-first history.  The frame is then tiled into ``w × h`` patches
and each patch, sampled through the whole history, becomes one feature
vector for the classifier:

    index(x, y, f) = x + y * w + f * w * h        (f = 0 is the newest frame)

with one extra trailing element, the bias node, fixed at ``-1.0``.

Tiling:
  • Patch centres start at ``(w // 2, h // 2)`` and advance by ``w`` on
    both axes.
  • A centre is used while ``centre + half < extent``, so patches never
    leave the frame.

Frames are BGR ``uint8`` arrays as produced by the video decoder.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Sequence, Tuple

import cv2
import numpy as np

log = logging.getLogger(__name__)

PATCH_SIZE: int = 8
HISTORY_DEPTH: int = 4
BIAS_VALUE: float = -1.0

# Applied to channels (0, 1, 2) of a BGR frame.  Existing classifier files
# were trained with a green weight of 0.7512, so it stays.
LUMA_WEIGHTS: Tuple[float, float, float] = (0.2126, 0.7512, 0.0722)


# ── Sizes ──────────────────────────────────────────────────────────────

def feature_length(
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
    depth: int = HISTORY_DEPTH,
) -> int:
    """Length of one feature vector, bias node included."""
    return patch_w * patch_h * depth + 1


def default_layer_sizes(
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
    depth: int = HISTORY_DEPTH,
) -> List[int]:
    """Topology for a fresh frame classifier: three equal layers and one output."""
    n = feature_length(patch_w, patch_h, depth)
    return [n, n, n, 1]


# ── Luminance ──────────────────────────────────────────────────────────

def luminance(frame: np.ndarray) -> np.ndarray:
    """Convert a BGR ``(H, W, 3)`` frame to float64 luminance in ``[0, 1]``."""
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected a 3-channel frame, got shape {frame.shape}")
    kernel = np.array([LUMA_WEIGHTS], dtype=np.float32) / 255.0
    luma = cv2.transform(np.ascontiguousarray(frame, dtype=np.float32), kernel)
    return luma.reshape(frame.shape[:2]).astype(np.float64)


# ── Frame history ──────────────────────────────────────────────────────

class FrameHistory:
    """Most-recent-first window over the last *depth* luminance frames.

    The first frame pushed fills the whole window, so features are
    available from the very first frame onward.
    """

    def __init__(self, depth: int = HISTORY_DEPTH) -> None:
        if depth <= 0:
            raise ValueError(f"History depth must be positive: {depth}")
        self.depth = depth
        self._frames: Deque[np.ndarray] = deque(maxlen=depth)

    def push(self, frame: np.ndarray) -> None:
        """Add a BGR frame as the newest entry."""
        luma = luminance(frame)
        if self._frames and self._frames[0].shape != luma.shape:
            raise ValueError(
                f"Frame size changed: {luma.shape} != {self._frames[0].shape}"
            )
        if not self._frames:
            for _ in range(self.depth - 1):
                self._frames.appendleft(luma.copy())
        self._frames.appendleft(luma)

    @property
    def frames(self) -> List[np.ndarray]:
        """Luminance frames, newest first."""
        return list(self._frames)

    @property
    def frame_shape(self) -> Optional[Tuple[int, int]]:
        return self._frames[0].shape if self._frames else None

    def __len__(self) -> int:
        return len(self._frames)

    def clear(self) -> None:
        self._frames.clear()


# ── Patch extraction ───────────────────────────────────────────────────

def patch_centers(
    height: int,
    width: int,
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
) -> List[Tuple[int, int]]:
    """``(y, x)`` centres of every patch that fits inside the frame."""
    h_off, w_off = patch_h // 2, patch_w // 2
    ys = range(h_off, height - h_off, patch_w)
    xs = range(w_off, width - w_off, patch_w)
    return [(y, x) for y in ys for x in xs]


def patch_features(
    frames: Sequence[np.ndarray],
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
) -> np.ndarray:
    """Feature vectors for every patch of a luminance frame stack.

    Parameters
    ----------
    frames : sequence of np.ndarray
        Luminance frames ``(H, W)``, newest first (see ``FrameHistory``).
    patch_w, patch_h : int
        Patch size.

    Returns
    -------
    np.ndarray
        ``(n_patches, patch_w * patch_h * len(frames) + 1)`` array; the
        last column is the bias node.
    """
    if not frames:
        raise ValueError("No frames to extract patches from")
    if patch_w <= 0 or patch_h <= 0 or patch_w % 2 or patch_h % 2:
        raise ValueError(f"Patch size must be positive and even: {patch_w}x{patch_h}")
    stack = np.stack(frames)                       # (F, H, W)
    depth, height, width = stack.shape
    centers = patch_centers(height, width, patch_w, patch_h)
    h_off, w_off = patch_h // 2, patch_w // 2

    features = np.empty((len(centers), feature_length(patch_w, patch_h, depth)), dtype=np.float64)
    for i, (y, x) in enumerate(centers):
        patch = stack[:, y - h_off:y - h_off + patch_h, x - w_off:x - w_off + patch_w]
        features[i, :-1] = patch.reshape(-1)
    features[:, -1] = BIAS_VALUE

    log.debug("Extracted %d patches from %dx%d frames", len(centers), width, height)
    return features


def history_features(
    history: FrameHistory,
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
) -> np.ndarray:
    return patch_features(history.frames, patch_w, patch_h)
