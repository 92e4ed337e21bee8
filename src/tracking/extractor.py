"""Reduce a scored sample set to a single position estimate."""
from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np

from tracking.schemas import BoundingBox, Sample


class PositionExtractor(Protocol):
    def extract(self, samples: Sequence[Sample]) -> BoundingBox | None: ...


class WeightedMeanPositionExtractor:
    """Weighted mean of center and size over the samples flagged as object.

    Returns None when no sample is flagged or their total weight is zero.
    """

    def __init__(self, aspect_ratio: float = 1.0) -> None:
        self._aspect_ratio = aspect_ratio

    def extract(self, samples: Sequence[Sample]) -> BoundingBox | None:
        objects = [s for s in samples if s.is_object and s.weight > 0]
        if not objects:
            return None
        weights = np.array([s.weight for s in objects], dtype=np.float64)
        total = weights.sum()
        if total <= 0:
            return None
        x = float(np.dot(weights, [s.x for s in objects]) / total)
        y = float(np.dot(weights, [s.y for s in objects]) / total)
        size = float(np.dot(weights, [s.size for s in objects]) / total)
        return Sample(x=x, y=y, size=size).bounds(self._aspect_ratio)
