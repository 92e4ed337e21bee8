"""Discriminative measurement model.

Turns a candidate state into the probability that it covers the tracked object:
region → descriptor → raw separator score → logistic calibration.

The separator and its calibration are kept together in one immutable pair that
is replaced by a single assignment on retrain/reset. A scoring pass reads the
pair once, so it never sees a separator from one training round combined with
the calibration of another.
"""
from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np

from classification.errors import ClassificationError, RetrainFailed
from classification.svm import RawSeparator, SeparatorTrainer
from tracker_shared.logging import get_logger

from tracking.features import FeatureExtractor
from tracking.schemas import Sample

log = get_logger(__name__)


class Calibration(Protocol):
    def apply(self, raw_score: float) -> float: ...

    def recalibrated(self, mean_positive_score: float, mean_negative_score: float) -> Calibration: ...


@dataclass(frozen=True)
class _Discriminator:
    separator: RawSeparator | None
    calibration: Calibration


class DiscriminativeMeasurementModel:
    """Scores samples with an online-trainable, calibrated two-class separator.

    Training examples are remembered across retrainings in bounded per-class
    buffers, so each retraining sees the most recent ``positive_capacity``
    positives and ``negative_capacity`` negatives.

    Args:
        feature_extractor: Builds a descriptor from an image region.
        trainer: Fits new separators from positive/negative descriptors.
        calibration: Fixed or adaptive logistic calibration.
        default_separator: Separator used before the first retraining and
            after ``reset()``. Without one the model is unusable until
            ``bootstrap()`` or ``retrain()`` succeeds.
        aspect_ratio: Height/width ratio used to turn samples into regions.
        object_threshold: Probability above which a sample is flagged as object.
        positive_capacity: Positive descriptors kept for retraining.
        negative_capacity: Negative descriptors kept for retraining.
        scoring_workers: Threads used by ``evaluate``; 1 scores inline.
    """

    def __init__(
        self,
        feature_extractor: FeatureExtractor,
        trainer: SeparatorTrainer,
        calibration: Calibration,
        default_separator: RawSeparator | None = None,
        aspect_ratio: float = 1.0,
        object_threshold: float = 0.5,
        positive_capacity: int = 10,
        negative_capacity: int = 50,
        scoring_workers: int = 1,
    ) -> None:
        self._extractor = feature_extractor
        self._trainer = trainer
        self._aspect_ratio = aspect_ratio
        self._object_threshold = object_threshold
        self._positive_capacity = positive_capacity
        self._negative_capacity = negative_capacity

        self._default = _Discriminator(default_separator, calibration)
        self._current = self._default
        self._positives: deque[np.ndarray] = deque(maxlen=positive_capacity)
        self._negatives: deque[np.ndarray] = deque(maxlen=negative_capacity)
        self._default_positives: tuple[np.ndarray, ...] = ()
        self._default_negatives: tuple[np.ndarray, ...] = ()

        self._executor: ThreadPoolExecutor | None = None
        if scoring_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=scoring_workers, thread_name_prefix="measurement"
            )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @property
    def separator(self) -> RawSeparator | None:
        return self._current.separator

    @property
    def calibration(self) -> Calibration:
        return self._current.calibration

    @property
    def training_set_sizes(self) -> tuple[int, int]:
        return len(self._positives), len(self._negatives)

    def is_usable(self) -> bool:
        return self._current.separator is not None

    def score(self, sample: Sample, image: np.ndarray) -> float:
        """Return the probability that ``sample`` covers the object. Pure."""
        return self._score(self._current, image, sample)

    def evaluate(self, image: np.ndarray, samples: Sequence[Sample]) -> None:
        """Score all samples in place, setting ``weight`` and ``is_object``."""
        current = self._current
        if self._executor is None or len(samples) < 2:
            probabilities = [self._score(current, image, s) for s in samples]
        else:
            probabilities = list(
                self._executor.map(lambda s: self._score(current, image, s), samples)
            )
        for sample, probability in zip(samples, probabilities):
            sample.weight = probability
            sample.is_object = probability > self._object_threshold

    def _score(self, current: _Discriminator, image: np.ndarray, sample: Sample) -> float:
        if current.separator is None:
            return 0.0
        descriptor = self._extractor.extract(image, sample.bounds(self._aspect_ratio))
        if descriptor is None:
            return 0.0
        return current.calibration.apply(current.separator.decision_value(descriptor))

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def bootstrap(
        self,
        positive_descriptors: Sequence[np.ndarray],
        negative_descriptors: Sequence[np.ndarray],
    ) -> bool:
        """Train the initial discriminator from annotated examples.

        The result, including its calibration and the examples, becomes the
        state ``reset()`` returns to. Later retrainings keep the examples in
        their training memory until newer ones push them out.

        Returns:
            True on success; False leaves the model untouched.
        """
        positives = deque(maxlen=self._positive_capacity)
        negatives = deque(maxlen=self._negative_capacity)
        discriminator = self._fit(
            self._default.calibration, positives, negatives, positive_descriptors, negative_descriptors
        )
        if discriminator is None:
            return False

        self._default = discriminator
        self._default_positives = tuple(positives)
        self._default_negatives = tuple(negatives)
        self._current = discriminator
        self._positives = positives
        self._negatives = negatives
        log.info("measurement_model_bootstrapped", positives=len(positives), negatives=len(negatives))
        return True

    def adapt(
        self,
        image: np.ndarray,
        positives: Sequence[Sample],
        negatives: Sequence[Sample],
    ) -> bool:
        """Extract descriptors for labelled samples and retrain on them."""
        return self.retrain(self._descriptors(image, positives), self._descriptors(image, negatives))

    def retrain(
        self,
        positive_descriptors: Sequence[np.ndarray],
        negative_descriptors: Sequence[np.ndarray],
    ) -> bool:
        """Retrain the separator and recalibrate; all-or-nothing.

        Returns:
            True if the new separator is in force, False if training failed and
            the previous separator, calibration and training buffers were kept.
        """
        positives = deque(self._positives, maxlen=self._positive_capacity)
        negatives = deque(self._negatives, maxlen=self._negative_capacity)
        discriminator = self._fit(
            self._current.calibration, positives, negatives, positive_descriptors, negative_descriptors
        )
        if discriminator is None:
            return False

        self._current = discriminator
        self._positives = positives
        self._negatives = negatives
        return True

    def _fit(
        self,
        calibration: Calibration,
        positives: deque,
        negatives: deque,
        positive_descriptors: Sequence[np.ndarray],
        negative_descriptors: Sequence[np.ndarray],
    ) -> _Discriminator | None:
        """Extend the given memories in place and train on them; None on failure."""
        positives.extend(np.ravel(d) for d in positive_descriptors)
        negatives.extend(np.ravel(d) for d in negative_descriptors)

        try:
            if not positives or not negatives:
                raise RetrainFailed(
                    f"Training needs both classes, have {len(positives)} positive "
                    f"and {len(negatives)} negative examples"
                )
            separator = self._trainer.train(_stack(positives), _stack(negatives))
            mean_positive = _mean_score(separator, positives)
            mean_negative = _mean_score(separator, negatives)
            calibration = calibration.recalibrated(mean_positive, mean_negative)
        except ClassificationError as exc:
            log.warning(
                "measurement_model_retrain_failed",
                error=str(exc),
                new_positives=len(positive_descriptors),
                new_negatives=len(negative_descriptors),
            )
            return None

        log.info(
            "measurement_model_retrained",
            positives=len(positives),
            negatives=len(negatives),
            mean_positive_score=round(mean_positive, 4),
            mean_negative_score=round(mean_negative, 4),
        )
        return _Discriminator(separator, calibration)

    def reset(self) -> None:
        """Drop everything learned online and return to the bootstrapped discriminator."""
        self._current = self._default
        self._positives = deque(self._default_positives, maxlen=self._positive_capacity)
        self._negatives = deque(self._default_negatives, maxlen=self._negative_capacity)
        log.info("measurement_model_reset", usable=self.is_usable())

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _descriptors(self, image: np.ndarray, samples: Sequence[Sample]) -> list[np.ndarray]:
        descriptors = []
        for sample in samples:
            descriptor = self._extractor.extract(image, sample.bounds(self._aspect_ratio))
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors


def _stack(descriptors: deque) -> np.ndarray:
    if not descriptors:
        return np.empty((0, 0))
    return np.vstack(list(descriptors))


def _mean_score(separator: RawSeparator, descriptors: deque) -> float:
    return float(np.mean([separator.decision_value(d) for d in descriptors]))
