"""Exceptions raised by the classification package."""
from __future__ import annotations


class ClassificationError(Exception):
    """Base class for classification errors."""


class InvalidCalibrationInput(ClassificationError, ValueError):
    """Calibration inputs do not determine a valid logistic mapping.

    Raised for equal (or non-finite) mean scores and for target probabilities
    outside ``0 < low < high < 1``.
    """


class RetrainFailed(ClassificationError):
    """Training did not produce a usable separator.

    The measurement model catches this and keeps its previous state.
    """
