import io
import logging

import numpy as np
import pytest

from frame_marker.models.errors import ModelFormatError
from frame_marker.models.mlp import MLPClassifier
from frame_marker.models.model_file import MODEL_TAG, format_model, parse_model

# Written by the C++-era tools: default stream precision, trailing spaces.
LEGACY_MODEL = """nn
3
0.1
1
2
2
1
0.5 -0.25 0.125 -0.0625 \n0.75 -0.875 \n"""


def trained_classifier():
    classifier = MLPClassifier()
    classifier.init([4, 3, 3, 2], learning_rate=0.3, beta=1.5, rng=11)
    rng = np.random.default_rng(0)
    for _ in range(25):
        classifier.train(rng.random(4), [1.0, 0.0])
    return classifier


def round_trip(classifier):
    buffer = io.StringIO()
    classifier.write(buffer)
    buffer.seek(0)
    restored = MLPClassifier()
    restored.read(buffer)
    return restored


def test_write_layout():
    classifier = MLPClassifier()
    classifier.init([2, 2, 1], learning_rate=0.5, beta=2.0, rng=0)
    buffer = io.StringIO()
    classifier.write(buffer)
    lines = buffer.getvalue().splitlines()

    assert lines[0] == MODEL_TAG
    assert lines[1] == "3"
    assert float(lines[2]) == 0.5
    assert float(lines[3]) == 2.0
    assert lines[4:7] == ["2", "2", "1"]
    assert len(lines[7].split()) == 4
    assert len(lines[8].split()) == 2
    assert len(lines) == 9


def test_round_trip_is_exact():
    classifier = trained_classifier()
    restored = round_trip(classifier)

    assert restored.layer_sizes == classifier.layer_sizes
    assert restored.learning_rate == classifier.learning_rate
    assert restored.beta == classifier.beta
    assert restored.weights == classifier.weights

    x = [0.3, 0.1, 0.9, 0.5]
    np.testing.assert_array_equal(restored.classify(x), classifier.classify(x))


def test_read_resets_buffers():
    restored = round_trip(trained_classifier())
    assert not any(a.any() for a in restored.activations)
    assert not any(e.any() for e in restored.errors)


def test_read_legacy_file():
    classifier = MLPClassifier()
    classifier.read(io.StringIO(LEGACY_MODEL))

    assert classifier.layer_sizes == (2, 2, 1)
    assert classifier.learning_rate == pytest.approx(0.1)
    assert classifier.beta == 1.0
    np.testing.assert_array_equal(
        classifier.weights[0].values, [[0.5, -0.25], [0.125, -0.0625]]
    )
    np.testing.assert_array_equal(classifier.weights[1].values, [[0.75], [-0.875]])


def test_save_and_load(tmp_path):
    classifier = trained_classifier()
    path = classifier.save(tmp_path / "classifier.nn")
    loaded = MLPClassifier.load(path)
    assert loaded.weights == classifier.weights


@pytest.mark.parametrize(
    "text",
    [
        "",
        "mlp\n3\n0.1\n1\n2\n2\n1\n0 0 0 0\n0 0\n",
        "nn\n2\n0.1\n1\n2\n1\n0 0\n",
        "nn\nthree\n0.1\n1\n2\n2\n1\n0 0 0 0\n0 0\n",
        "nn\n3\n0.1\n1\n2\n0\n1\n",
        "nn\n3\n0.1\n1\n2\n2\n1\n0 0 0 0\n0\n",
        "nn\n3\n0.1\n1\n2\n2\n1\n0 0 x 0\n0 0\n",
        "nn\n3\n0.1\n",
        "nn\n3\n0.1\n1\n1000000\n1000000\n1\n0.5 0.5\n",
    ],
)
def test_malformed_model_leaves_prior_state(text):
    classifier = trained_classifier()
    sizes = classifier.layer_sizes
    weights = [m.copy() for m in classifier.weights]

    with pytest.raises(ModelFormatError):
        classifier.read(io.StringIO(text))

    assert classifier.layer_sizes == sizes
    assert list(classifier.weights) == weights


def test_malformed_model_on_fresh_engine():
    classifier = MLPClassifier()
    with pytest.raises(ValueError):
        classifier.read(io.StringIO("not a model"))
    assert not classifier.is_initialized


def test_trailing_tokens_warn(caplog):
    with caplog.at_level(logging.WARNING):
        model = parse_model(io.StringIO(LEGACY_MODEL + "junk 1 2\n"))
    assert model.layer_sizes == [2, 2, 1]
    assert "trailing" in caplog.text


def test_format_parse_agree():
    weights = [np.full((2, 3), 0.1), np.full((3, 1), -1.0 / 3.0)]
    text = format_model([2, 3, 1], 0.05, 0.75, weights)
    model = parse_model(io.StringIO(text))
    assert model.learning_rate == 0.05
    assert model.beta == 0.75
    for parsed, original in zip(model.weights, weights):
        np.testing.assert_array_equal(parsed, original)


def test_huge_topology_with_few_weights_is_truncated():
    text = "nn\n3\n0.1\n1\n1000000\n1000000\n1\n0.5 0.5\n"
    with pytest.raises(ModelFormatError, match="truncated"):
        parse_model(io.StringIO(text))
