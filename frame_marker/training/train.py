"""
Training – Online Frame Training for the MLP Classifier
=======================================================

Frames arrive already decoded (BGR numpy arrays) together with a set of
*marked* frame indices.  Only a random subset of frames is trained on;
each patch of a selected frame is one online training example whose
target is ``[1.0]`` for a marked frame and ``[0.0]`` otherwise.

The frame history is updated for *every* frame, trained or not, so the
temporal context of a selected frame is always its true predecessors.

Usage
-----
::

    classifier = load_or_init("classifier.nn", default_layer_sizes())
    marked = read_marked_frames(open("marked.txt"), frame_count)
    subset = choose_training_subset(frame_count, rng=0)
    summary = train_on_frames(classifier, frames, marked, subset)
    classifier.save("classifier.nn")
    write_marked_frames(open("predicted.txt", "w"), classify_frames(classifier, frames))
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, TextIO, Union

import numpy as np

from frame_marker.features.patches import (
    HISTORY_DEPTH,
    PATCH_SIZE,
    FrameHistory,
    history_features,
)
from frame_marker.models.mlp import MLPClassifier, RandomSource, as_generator

log = logging.getLogger(__name__)

TRAINING_FRACTION: float = 0.1


@dataclass
class TrainingSummary:
    """Outcome of a ``train_on_frames`` run."""
    frames_seen: int
    frames_trained: int
    marked_trained: int
    patches_trained: int
    elapsed: float


# ── Inputs ─────────────────────────────────────────────────────────────

def read_marked_frames(stream: TextIO, frame_count: int) -> np.ndarray:
    """Parse whitespace-separated marked frame indices into a boolean mask."""
    marked = np.zeros(frame_count, dtype=bool)
    for token in stream.read().split():
        try:
            index = int(token)
        except ValueError:
            raise ValueError(f"Invalid marked frame index: {token!r}") from None
        if not 0 <= index < frame_count:
            log.warning("Marked frame %d outside [0, %d), skipping", index, frame_count)
            continue
        marked[index] = True
    log.info("Read %d marked frame(s)", int(marked.sum()))
    return marked


def write_marked_frames(stream: TextIO, marked: Union[np.ndarray, Iterable]) -> int:
    """Write marked frame indices, one per line, in the ``read_marked_frames`` format.

    *marked* is a boolean mask over frame indices, an iterable of
    classification results (anything with ``index`` and ``marked``), or an
    iterable of frame indices.  Returns the number of indices written.
    """
    if isinstance(marked, np.ndarray) and marked.dtype == bool:
        indices = np.flatnonzero(marked).tolist()
    else:
        indices = []
        for item in marked:
            if hasattr(item, "marked"):
                if item.marked:
                    indices.append(int(item.index))
            else:
                indices.append(int(item))
    for index in indices:
        stream.write(f"{index}\n")
    log.info("Wrote %d marked frame(s)", len(indices))
    return len(indices)


def choose_training_subset(
    frame_count: int,
    fraction: float = TRAINING_FRACTION,
    rng: RandomSource = None,
) -> np.ndarray:
    """Sorted random sample of ``int(frame_count * fraction)`` distinct frame indices."""
    if not 0.0 <= fraction <= 1.0:
        raise ValueError(f"Training fraction must be in [0, 1]: {fraction}")
    generator = as_generator(rng)
    size = int(frame_count * fraction)
    return np.sort(generator.permutation(frame_count)[:size])


def load_or_init(
    path: Union[str, Path],
    layer_sizes: Sequence[int],
    rng: RandomSource = None,
) -> MLPClassifier:
    """Load the classifier at *path* if it exists, else build a fresh one."""
    path = Path(path)
    if path.exists():
        classifier = MLPClassifier.load(path)
        log.info("Read classifier with %d layers from %s", classifier.num_layers(), path)
        for l in range(classifier.num_layers()):
            log.info("  %d: %d", l, classifier.layer_size(l))
        return classifier
    classifier = MLPClassifier()
    classifier.init(layer_sizes, rng=rng)
    return classifier


# ── Training ───────────────────────────────────────────────────────────

def train_frame(
    classifier: MLPClassifier,
    history: FrameHistory,
    marked: bool,
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
) -> int:
    """Train on every patch of the current history; return the patch count."""
    target = [1.0 if marked else 0.0]
    features = history_features(history, patch_w, patch_h)
    for vector in features:
        classifier.train(vector, target)
    return len(features)


def train_on_frames(
    classifier: MLPClassifier,
    frames: Iterable[np.ndarray],
    marked: np.ndarray,
    subset: Optional[Iterable[int]] = None,
    patch_w: int = PATCH_SIZE,
    patch_h: int = PATCH_SIZE,
    depth: int = HISTORY_DEPTH,
) -> TrainingSummary:
    """Run online training over a stream of decoded frames.

    Parameters
    ----------
    classifier : MLPClassifier
        Initialised engine whose input layer matches the feature length.
    frames : iterable of np.ndarray
        BGR frames in playback order.
    marked : np.ndarray
        Boolean mask over frame indices; frames past its end count as
        unmarked.
    subset : iterable of int, optional
        Frame indices to train on.  ``None`` trains on every frame.
    patch_w, patch_h, depth : int
        Feature geometry; must match the classifier's input layer.

    Returns
    -------
    TrainingSummary
    """
    selected = None if subset is None else set(int(i) for i in subset)
    history = FrameHistory(depth)
    t0 = time.time()
    frames_seen = frames_trained = marked_trained = patches = 0

    for index, frame in enumerate(frames):
        history.push(frame)
        frames_seen += 1
        if selected is not None and index not in selected:
            continue
        is_marked = bool(index < len(marked) and marked[index])
        patches += train_frame(classifier, history, is_marked, patch_w, patch_h)
        frames_trained += 1
        marked_trained += int(is_marked)
        log.debug("Frame %d trained (marked=%s)", index, is_marked)

    summary = TrainingSummary(
        frames_seen=frames_seen,
        frames_trained=frames_trained,
        marked_trained=marked_trained,
        patches_trained=patches,
        elapsed=time.time() - t0,
    )
    log.info(
        "Training complete  frames=%d/%d  marked=%d  patches=%d  (%.1fs)",
        frames_trained, frames_seen, marked_trained, patches, summary.elapsed,
    )
    return summary
