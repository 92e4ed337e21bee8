"""Unit tests for the OpenCV-backed linear SVM trainer."""
from __future__ import annotations

import cv2
import numpy as np
import pytest

from classification.errors import RetrainFailed
from classification.svm import LinearSeparator, LinearSvmTrainer


@pytest.fixture()
def separable() -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(3)
    positives = rng.normal(loc=(2.0, 2.0), scale=0.3, size=(20, 2))
    negatives = rng.normal(loc=(-2.0, -2.0), scale=0.3, size=(30, 2))
    return positives, negatives


def test_trained_separator_scores_positives_higher(separable):
    positives, negatives = separable
    separator = LinearSvmTrainer(c=1.0).train(positives, negatives)

    assert isinstance(separator, LinearSeparator)
    assert separator.dimensions == 2
    assert separator.decision_values(positives).min() > 0
    assert separator.decision_values(negatives).max() < 0


def test_orientation_does_not_depend_on_argument_order(separable):
    positives, negatives = separable
    forward = LinearSvmTrainer().train(positives, negatives)
    backward = LinearSvmTrainer().train(negatives, positives)
    assert forward.decision_value(positives[0]) > 0
    assert backward.decision_value(negatives[0]) > 0


def test_too_few_examples_raise(separable):
    positives, negatives = separable
    trainer = LinearSvmTrainer(min_positive_examples=5, min_negative_examples=5)
    with pytest.raises(RetrainFailed):
        trainer.train(positives[:4], negatives)
    with pytest.raises(RetrainFailed):
        trainer.train(positives, np.empty((0, 2)))


def test_dimension_mismatch_raises(separable):
    positives, negatives = separable
    with pytest.raises(RetrainFailed, match="size mismatch"):
        LinearSvmTrainer().train(positives, np.hstack([negatives, negatives]))


def test_default_penalty_gives_margin_normalized_scores():
    # two-bin "histograms": share of object colour vs background colour
    def histograms(shares):
        return np.array([[s, 1.0 - s] for s in shares])

    positives = histograms([0.9, 0.95, 1.0, 1.0])
    negatives = histograms([0.0, 0.0, 0.1, 0.3, 0.45])
    separator = LinearSvmTrainer().train(positives, negatives)

    assert separator.decision_values(positives).min() > 0.9
    assert separator.decision_values(negatives).max() < -0.9


def test_missing_ml_module_raises_retrain_failed(separable, monkeypatch):
    positives, negatives = separable
    monkeypatch.delattr(cv2, "ml")
    with pytest.raises(RetrainFailed, match="ml module"):
        LinearSvmTrainer().train(positives, negatives)


# ── LinearSeparator ───────────────────────────────────────────────────────────

def test_linear_separator_decision_values():
    separator = LinearSeparator(np.array([1.0, -2.0]), 0.5)
    assert separator.decision_value(np.array([3.0, 1.0])) == pytest.approx(1.5)
    values = separator.decision_values(np.array([[3.0, 1.0], [0.0, 0.0]]))
    assert values == pytest.approx([1.5, 0.5])


def test_linear_separator_negated():
    separator = LinearSeparator(np.array([1.0, -2.0]), 0.5).negated()
    assert separator.decision_value(np.array([3.0, 1.0])) == pytest.approx(-1.5)


def test_linear_separator_weights_are_read_only():
    separator = LinearSeparator(np.array([1.0, 2.0]), 0.0)
    with pytest.raises(ValueError):
        separator.weights[0] = 5.0
