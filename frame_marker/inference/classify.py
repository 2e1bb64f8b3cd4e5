"""
Frame Classification – Patch Scores → Marked Frames
===================================================

Each patch of a frame is scored by the classifier's single output neuron.
A patch counts as *positive* when its score is above ``threshold``; the
frame is marked when the fraction of positive patches exceeds
``marked_fraction`` (default ``0.0``: one positive patch marks the frame).

Either an ``MLPClassifier`` or an ``MLPSnapshot`` can score the patches;
a snapshot scores the whole frame in one batched torch pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Union

import numpy as np

from frame_marker.features.patches import (
    HISTORY_DEPTH,
    PATCH_SIZE,
    FrameHistory,
    history_features,
)
from frame_marker.models.mlp import MLPClassifier
from frame_marker.models.snapshot import MLPSnapshot

log = logging.getLogger(__name__)

OUTPUT_THRESHOLD: float = 0.5
MARKED_FRACTION: float = 0.0

Scorer = Union[MLPClassifier, MLPSnapshot]


@dataclass
class FrameClassification:
    """Per-frame classification result."""
    index: int
    patches: int                 # patches scored
    positives: int               # patches with score > threshold
    fraction: float              # positives / patches
    mean_output: float           # mean patch score
    marked: bool


def score_patches(model: Scorer, features: np.ndarray) -> np.ndarray:
    """First output neuron's score for every feature row."""
    if isinstance(model, MLPSnapshot):
        return model.classify_batch(features)[:, 0]
    return np.array([model.classify(vector)[0] for vector in features], dtype=np.float64)


def classify_frame(
    model: Scorer,
    history: FrameHistory,
    index: int = 0,
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
    threshold: float = OUTPUT_THRESHOLD,
    marked_fraction: float = MARKED_FRACTION,
) -> FrameClassification:
    """Score every patch of the newest frame in *history* and decide marking."""
    scores = score_patches(model, history_features(history, patch_w, patch_h))
    total = len(scores)
    positives = int(np.count_nonzero(scores > threshold))
    fraction = positives / total if total else 0.0
    mean_output = float(scores.mean()) if total else 0.0

    result = FrameClassification(
        index=index,
        patches=total,
        positives=positives,
        fraction=fraction,
        mean_output=mean_output,
        marked=fraction > marked_fraction,
    )
    log.debug(
        "Frame %d: %d%% of patches classified as marked, mean output %.4f",
        index, int(fraction * 100), mean_output,
    )
    return result


def classify_frames(
    model: Scorer,
    frames: Iterable[np.ndarray],
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
    depth: int = HISTORY_DEPTH,
    threshold: float = OUTPUT_THRESHOLD,
    marked_fraction: float = MARKED_FRACTION,
) -> List[FrameClassification]:
    """Classify a stream of decoded BGR frames, one result per frame."""
    history = FrameHistory(depth)
    results: List[FrameClassification] = []
    for index, frame in enumerate(frames):
        history.push(frame)
        results.append(classify_frame(
            model, history, index, patch_w, patch_h, threshold, marked_fraction,
        ))

    marked = sum(r.marked for r in results)
    log.info("Classified %d frame(s), %d marked", len(results), marked)
    return results


def marked_indices(results: Iterable[FrameClassification]) -> List[int]:
    return [r.index for r in results if r.marked]
