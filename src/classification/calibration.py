"""Logistic calibration of raw separator scores (Platt-style).

A raw decision value x is mapped to a pseudo-probability

    p(x) = 1 / (1 + exp(a + b * x))

where (a, b) are chosen so that the mean score of the positive class maps to
``high_probability`` and the mean score of the negative class maps to
``low_probability``.

Two policies share the mapping:

* ``AdaptiveCalibration`` derives (a, b) from the mean scores observed on the
  training sets every time the separator is retrained.
* ``FixedCalibration`` derives (a, b) once from assumed mean scores and keeps
  them; it is told about retraining events and ignores them.

Both are immutable. ``recalibrated()`` returns the policy to use after a
retraining, so the caller can swap it in together with the new separator.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from classification.errors import InvalidCalibrationInput

DEFAULT_HIGH_PROBABILITY = 0.95
DEFAULT_LOW_PROBABILITY = 0.05
DEFAULT_MEAN_POSITIVE_SCORE = 1.01
DEFAULT_MEAN_NEGATIVE_SCORE = -1.01


@dataclass(frozen=True)
class LogisticParameters:
    """Parameters (a, b) of p(x) = 1 / (1 + exp(a + b * x))."""

    a: float
    b: float

    def apply(self, raw_score: float) -> float:
        z = self.a + self.b * raw_score
        # exp() of a large positive argument overflows; use the mirrored form
        if z >= 0.0:
            e = math.exp(-z)
            return e / (1.0 + e)
        return 1.0 / (1.0 + math.exp(z))


def _log_odds_against(probability: float) -> float:
    return math.log((1.0 - probability) / probability)


def compute_parameters(
    mean_positive_score: float,
    mean_negative_score: float,
    high_probability: float = DEFAULT_HIGH_PROBABILITY,
    low_probability: float = DEFAULT_LOW_PROBABILITY,
) -> LogisticParameters:
    """Solve for (a, b) so that the mean scores hit the target probabilities.

    Solves the linear system

        a + b * mean_positive_score = ln((1 - high) / high)
        a + b * mean_negative_score = ln((1 - low) / low)

    Raises:
        InvalidCalibrationInput: mean scores are equal or not finite, or the
            probabilities do not satisfy ``0 < low < high < 1``.
    """
    if not (0.0 < low_probability < high_probability < 1.0):
        raise InvalidCalibrationInput(
            f"Expected 0 < low_probability < high_probability < 1, "
            f"got low={low_probability}, high={high_probability}"
        )
    if not (math.isfinite(mean_positive_score) and math.isfinite(mean_negative_score)):
        raise InvalidCalibrationInput(
            f"Mean scores must be finite, got positive={mean_positive_score}, "
            f"negative={mean_negative_score}"
        )
    if mean_positive_score == mean_negative_score:
        raise InvalidCalibrationInput(
            f"Mean positive and negative scores are equal ({mean_positive_score}); "
            "the logistic slope is undefined"
        )

    rhs_pos = _log_odds_against(high_probability)
    rhs_neg = _log_odds_against(low_probability)
    b = (rhs_pos - rhs_neg) / (mean_positive_score - mean_negative_score)
    a = rhs_pos - b * mean_positive_score
    return LogisticParameters(a=a, b=b)


@dataclass(frozen=True)
class AdaptiveCalibration:
    """Recomputes its parameters from the training set statistics on every retrain.

    Until the first retraining the parameters default to (0, 0), which maps
    every score to 0.5.
    """

    high_probability: float = DEFAULT_HIGH_PROBABILITY
    low_probability: float = DEFAULT_LOW_PROBABILITY
    parameters: LogisticParameters = LogisticParameters(0.0, 0.0)

    def apply(self, raw_score: float) -> float:
        return self.parameters.apply(raw_score)

    def recalibrated(
        self, mean_positive_score: float, mean_negative_score: float
    ) -> AdaptiveCalibration:
        parameters = compute_parameters(
            mean_positive_score,
            mean_negative_score,
            self.high_probability,
            self.low_probability,
        )
        return AdaptiveCalibration(
            high_probability=self.high_probability,
            low_probability=self.low_probability,
            parameters=parameters,
        )


class FixedCalibration:
    """Computes its parameters once from assumed mean scores.

    Suited to margin-normalized separators whose class-conditional scores sit
    near +-1. Construction fails with ``InvalidCalibrationInput`` on degenerate
    inputs.
    """

    def __init__(
        self,
        high_probability: float = DEFAULT_HIGH_PROBABILITY,
        low_probability: float = DEFAULT_LOW_PROBABILITY,
        mean_positive_score: float = DEFAULT_MEAN_POSITIVE_SCORE,
        mean_negative_score: float = DEFAULT_MEAN_NEGATIVE_SCORE,
    ) -> None:
        self.high_probability = high_probability
        self.low_probability = low_probability
        self.mean_positive_score = mean_positive_score
        self.mean_negative_score = mean_negative_score
        self._parameters = compute_parameters(
            mean_positive_score, mean_negative_score, high_probability, low_probability
        )

    @property
    def parameters(self) -> LogisticParameters:
        return self._parameters

    def apply(self, raw_score: float) -> float:
        return self._parameters.apply(raw_score)

    def recalibrated(
        self, mean_positive_score: float, mean_negative_score: float
    ) -> FixedCalibration:
        # Retraining is accepted; the observed statistics are not used.
        return self

    def __repr__(self) -> str:
        return (
            f"FixedCalibration(a={self._parameters.a:.4f}, b={self._parameters.b:.4f}, "
            f"high={self.high_probability}, low={self.low_probability})"
        )
