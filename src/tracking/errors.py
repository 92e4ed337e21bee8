"""Exceptions raised inside the tracking loop."""
from __future__ import annotations


class TrackingError(Exception):
    """Base class for tracking errors."""


class EmptySampleSet(TrackingError):
    """The sampler returned no samples for a frame.

    Handled by the tracker as a not-found frame.
    """
