"""Unit tests for logistic calibration."""
from __future__ import annotations

import math

import numpy as np
import pytest

from classification.calibration import (
    AdaptiveCalibration,
    FixedCalibration,
    LogisticParameters,
    compute_parameters,
)
from classification.errors import ClassificationError, InvalidCalibrationInput


# ── compute_parameters ────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "mean_pos, mean_neg, high, low",
    [
        (1.01, -1.01, 0.95, 0.05),
        (2.5, 0.5, 0.9, 0.2),
        (-0.3, -4.0, 0.99, 0.01),
        (-1.0, 1.0, 0.8, 0.3),   # positives scoring lower flips the slope
    ],
)
def test_means_map_to_target_probabilities(mean_pos, mean_neg, high, low):
    params = compute_parameters(mean_pos, mean_neg, high, low)
    assert params.apply(mean_pos) == pytest.approx(high, abs=1e-9)
    assert params.apply(mean_neg) == pytest.approx(low, abs=1e-9)


def test_equal_means_raise():
    with pytest.raises(InvalidCalibrationInput):
        compute_parameters(0.7, 0.7, 0.95, 0.05)


def test_invalid_calibration_input_is_value_error():
    with pytest.raises(ValueError):
        compute_parameters(1.0, 1.0)
    assert issubclass(InvalidCalibrationInput, ClassificationError)


@pytest.mark.parametrize(
    "high, low",
    [(0.05, 0.95), (0.5, 0.5), (1.0, 0.05), (0.95, 0.0), (1.2, 0.1)],
)
def test_invalid_probabilities_raise(high, low):
    with pytest.raises(InvalidCalibrationInput):
        compute_parameters(1.0, -1.0, high, low)


def test_non_finite_means_raise():
    with pytest.raises(InvalidCalibrationInput):
        compute_parameters(float("nan"), -1.0)
    with pytest.raises(InvalidCalibrationInput):
        compute_parameters(1.0, float("-inf"))


def test_default_parameters_end_to_end():
    params = compute_parameters(1.01, -1.01, 0.95, 0.05)
    # ln(0.05/0.95) and ln(0.95/0.05) are antisymmetric, so a vanishes
    assert params.a == pytest.approx(0.0, abs=1e-12)
    assert params.b == pytest.approx(-2 * math.log(19) / 2.02, rel=1e-12)
    assert params.b == pytest.approx(-2.915, abs=1e-3)
    assert params.apply(1.01) == pytest.approx(0.95)
    assert params.apply(-1.01) == pytest.approx(0.05)
    assert params.apply(0.0) == pytest.approx(0.5)


# ── LogisticParameters.apply ──────────────────────────────────────────────────

def test_apply_is_monotone_increasing_for_negative_slope():
    params = compute_parameters(1.01, -1.01)
    values = [params.apply(x) for x in np.linspace(-5, 5, 101)]
    assert all(b > a for a, b in zip(values, values[1:]))


def test_apply_is_monotone_decreasing_for_positive_slope():
    params = compute_parameters(-1.0, 1.0, 0.9, 0.1)
    assert params.b > 0
    values = [params.apply(x) for x in np.linspace(-5, 5, 101)]
    assert all(b < a for a, b in zip(values, values[1:]))


def test_apply_does_not_overflow():
    params = LogisticParameters(a=0.0, b=-50.0)
    assert params.apply(1000.0) == pytest.approx(1.0)
    assert params.apply(-1000.0) == pytest.approx(0.0)


def test_apply_stays_in_open_interval_for_moderate_scores():
    params = compute_parameters(1.01, -1.01)
    for x in (-10.0, -1.0, 0.0, 1.0, 10.0):
        assert 0.0 < params.apply(x) < 1.0


# ── Policies ──────────────────────────────────────────────────────────────────

def test_fixed_calibration_defaults():
    calibration = FixedCalibration()
    assert calibration.apply(1.01) == pytest.approx(0.95)
    assert calibration.apply(-1.01) == pytest.approx(0.05)
    assert calibration.apply(0.0) == pytest.approx(0.5)


def test_fixed_calibration_is_idempotent():
    first = FixedCalibration(0.9, 0.1, 2.0, -0.5)
    second = FixedCalibration(0.9, 0.1, 2.0, -0.5)
    assert first.parameters == second.parameters
    assert first.parameters.a == second.parameters.a
    assert first.parameters.b == second.parameters.b


def test_fixed_calibration_ignores_retraining():
    calibration = FixedCalibration()
    assert calibration.recalibrated(5.0, -3.0) is calibration
    # even statistics that would be invalid are accepted and ignored
    assert calibration.recalibrated(1.0, 1.0) is calibration


def test_fixed_calibration_rejects_degenerate_construction():
    with pytest.raises(InvalidCalibrationInput):
        FixedCalibration(mean_positive_score=0.0, mean_negative_score=0.0)


def test_adaptive_calibration_starts_neutral():
    calibration = AdaptiveCalibration()
    assert calibration.apply(-3.0) == pytest.approx(0.5)
    assert calibration.apply(3.0) == pytest.approx(0.5)


def test_adaptive_calibration_recomputes_from_observed_means():
    calibration = AdaptiveCalibration(high_probability=0.9, low_probability=0.1)
    updated = calibration.recalibrated(3.0, -1.0)
    assert updated is not calibration
    assert updated.apply(3.0) == pytest.approx(0.9)
    assert updated.apply(-1.0) == pytest.approx(0.1)
    # the original is unchanged
    assert calibration.apply(3.0) == pytest.approx(0.5)


def test_adaptive_calibration_rejects_equal_means():
    with pytest.raises(InvalidCalibrationInput):
        AdaptiveCalibration().recalibrated(0.4, 0.4)
