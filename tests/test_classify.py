import dataclasses
import io

import numpy as np
import pytest

from frame_marker.features.patches import FrameHistory, default_layer_sizes
from frame_marker.inference.classify import (
    classify_frame,
    classify_frames,
    marked_indices,
    score_patches,
)
from frame_marker.models.mlp import MLPClassifier
from frame_marker.training.train import read_marked_frames, write_marked_frames

PATCH = 4
DEPTH = 2


@pytest.fixture
def classifier():
    classifier = MLPClassifier()
    classifier.init(default_layer_sizes(PATCH, PATCH, DEPTH), rng=8)
    return classifier


def constant_output(classifier, value):
    """Make the classifier output *value* for any input."""
    for matrix in classifier.weights:
        matrix.values[...] = 0.0
    # sigmoid(0) = 0.5 in every hidden unit; the output sums 0.5 * w over them.
    hidden = classifier.layer_size(classifier.num_layers() - 2)
    logit = np.log(value / (1.0 - value))
    classifier.weights[-1].values[...] = logit / (0.5 * hidden)


def video(count, seed=0):
    rng = np.random.default_rng(seed)
    return [rng.integers(0, 256, size=(12, 16, 3), dtype=np.uint8) for _ in range(count)]


def test_classify_frame_counts(classifier):
    constant_output(classifier, 0.8)
    history = FrameHistory(DEPTH)
    history.push(video(1)[0])

    result = classify_frame(classifier, history, index=7, patch_w=PATCH, patch_h=PATCH)

    # 12x16 frame, 4x4 patches → 2 rows × 3 columns
    assert result.index == 7
    assert result.patches == 6
    assert result.positives == 6
    assert result.fraction == 1.0
    assert result.mean_output == pytest.approx(0.8)
    assert result.marked


def test_classify_frame_below_threshold(classifier):
    constant_output(classifier, 0.2)
    history = FrameHistory(DEPTH)
    history.push(video(1)[0])
    result = classify_frame(classifier, history, patch_w=PATCH, patch_h=PATCH)
    assert result.positives == 0
    assert not result.marked


def test_marked_fraction_threshold(classifier):
    constant_output(classifier, 0.8)
    history = FrameHistory(DEPTH)
    history.push(video(1)[0])
    result = classify_frame(
        classifier, history, patch_w=PATCH, patch_h=PATCH, marked_fraction=1.0,
    )
    assert not result.marked


def test_snapshot_and_engine_agree(classifier):
    frames = video(4, seed=2)
    from_engine = classify_frames(classifier, frames, PATCH, PATCH, DEPTH)
    from_snapshot = classify_frames(classifier.snapshot(), frames, PATCH, PATCH, DEPTH)

    assert len(from_engine) == 4
    for a, b in zip(from_engine, from_snapshot):
        assert a.positives == b.positives
        assert a.mean_output == pytest.approx(b.mean_output, rel=1e-12)


def test_score_patches_shape(classifier):
    features = np.zeros((5, classifier.layer_size(0)))
    assert score_patches(classifier, features).shape == (5,)
    assert score_patches(classifier.snapshot(), features).shape == (5,)


def test_marked_indices(classifier):
    constant_output(classifier, 0.9)
    results = classify_frames(classifier, video(3), PATCH, PATCH, DEPTH)
    assert marked_indices(results) == [0, 1, 2]


def test_marked_results_round_trip_through_file(classifier):
    constant_output(classifier, 0.9)
    results = classify_frames(classifier, video(4), PATCH, PATCH, DEPTH)
    results[2] = dataclasses.replace(results[2], marked=False)

    buffer = io.StringIO()
    assert write_marked_frames(buffer, results) == 3
    buffer.seek(0)
    marked = read_marked_frames(buffer, len(results))

    np.testing.assert_array_equal(marked, [True, True, False, True])
    assert marked_indices(results) == list(np.flatnonzero(marked))
