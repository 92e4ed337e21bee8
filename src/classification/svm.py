"""Trainable linear SVM separator backed by OpenCV's ``cv2.ml.SVM``.

The trainer fits a linear C-SVC and collapses it into a plain weight vector and
bias, so scoring is a single dot product and safe for concurrent readers.
"""
from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from classification.errors import RetrainFailed
from tracker_shared.logging import get_logger

log = get_logger(__name__)

_POSITIVE_LABEL = 1
_NEGATIVE_LABEL = -1


class RawSeparator(Protocol):
    """Two-class decision function producing uncalibrated real scores."""

    def decision_value(self, descriptor: np.ndarray) -> float: ...

    def decision_values(self, descriptors: np.ndarray) -> np.ndarray: ...


class SeparatorTrainer(Protocol):
    """Fits a new separator; raises RetrainFailed instead of returning a bad one."""

    def train(self, positives: np.ndarray, negatives: np.ndarray) -> RawSeparator: ...


class LinearSeparator:
    """Linear decision function ``w . x + bias``. Read-only after construction."""

    def __init__(self, weights: np.ndarray, bias: float) -> None:
        self._weights = np.array(weights, dtype=np.float64).ravel()
        self._weights.setflags(write=False)
        self._bias = float(bias)

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    @property
    def bias(self) -> float:
        return self._bias

    @property
    def dimensions(self) -> int:
        return self._weights.shape[0]

    def decision_value(self, descriptor: np.ndarray) -> float:
        return float(np.dot(self._weights, np.ravel(descriptor)) + self._bias)

    def decision_values(self, descriptors: np.ndarray) -> np.ndarray:
        descriptors = np.atleast_2d(np.asarray(descriptors, dtype=np.float64))
        return descriptors @ self._weights + self._bias

    def negated(self) -> LinearSeparator:
        return LinearSeparator(-self._weights, -self._bias)


class LinearSvmTrainer:
    """Trains linear C-SVCs with OpenCV.

    Args:
        c: Soft-margin penalty. The default is large enough that the margin
            is (nearly) hard, so the class means land near +-1 or beyond.
        min_positive_examples: Fewer positives than this fails the training.
        min_negative_examples: Fewer negatives than this fails the training.
        max_iterations: Optimizer iteration cap.
        epsilon: Optimizer tolerance.
    """

    def __init__(
        self,
        c: float = 100.0,
        min_positive_examples: int = 1,
        min_negative_examples: int = 1,
        max_iterations: int = 10000,
        epsilon: float = 1e-6,
    ) -> None:
        self._c = c
        self._min_positive = min_positive_examples
        self._min_negative = min_negative_examples
        self._max_iterations = max_iterations
        self._epsilon = epsilon

    def train(self, positives: np.ndarray, negatives: np.ndarray) -> LinearSeparator:
        positives = _as_matrix(positives)
        negatives = _as_matrix(negatives)

        if len(positives) < self._min_positive or len(negatives) < self._min_negative:
            raise RetrainFailed(
                f"Need at least {self._min_positive} positive and {self._min_negative} "
                f"negative examples, got {len(positives)} and {len(negatives)}"
            )
        if positives.shape[1] != negatives.shape[1]:
            raise RetrainFailed(
                f"Descriptor size mismatch: {positives.shape[1]} != {negatives.shape[1]}"
            )

        samples = np.vstack([positives, negatives]).astype(np.float32)
        labels = np.concatenate([
            np.full(len(positives), _POSITIVE_LABEL, dtype=np.int32),
            np.full(len(negatives), _NEGATIVE_LABEL, dtype=np.int32),
        ]).reshape(-1, 1)

        ml = getattr(cv2, "ml", None)
        if ml is None:
            raise RetrainFailed(f"OpenCV {cv2.__version__} was built without the ml module")

        svm = ml.SVM_create()
        svm.setType(ml.SVM_C_SVC)
        svm.setKernel(ml.SVM_LINEAR)
        svm.setC(self._c)
        svm.setTermCriteria(
            (cv2.TERM_CRITERIA_MAX_ITER + cv2.TERM_CRITERIA_EPS, self._max_iterations, self._epsilon)
        )
        try:
            trained = svm.train(samples, ml.ROW_SAMPLE, labels)
        except cv2.error as exc:
            raise RetrainFailed(f"SVM optimizer failed: {exc}") from exc
        if not trained:
            raise RetrainFailed("SVM optimizer did not converge")

        separator = _collapse_linear(svm)

        # OpenCV's raw output sign depends on label ordering; make positives score higher.
        if separator.decision_values(positives).mean() < separator.decision_values(negatives).mean():
            separator = separator.negated()

        log.debug(
            "svm_trained",
            positives=len(positives),
            negatives=len(negatives),
            dimensions=separator.dimensions,
        )
        return separator


def _as_matrix(examples: np.ndarray) -> np.ndarray:
    examples = np.asarray(examples, dtype=np.float64)
    if examples.size == 0:
        return examples.reshape(0, 0)
    return np.atleast_2d(examples)


def _collapse_linear(svm) -> LinearSeparator:
    """Fold the support vectors of a linear SVM into one weight vector."""
    support_vectors = svm.getSupportVectors().astype(np.float64)
    rho, alpha, sv_idx = svm.getDecisionFunction(0)
    alpha = np.ravel(alpha).astype(np.float64)
    sv_idx = np.ravel(sv_idx)
    weights = alpha @ support_vectors[sv_idx]
    return LinearSeparator(weights, -float(rho))
