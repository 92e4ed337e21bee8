"""Appearance descriptors for candidate regions.

Both extractors return ``None`` for regions that do not lie fully inside the
frame; the measurement model scores those as 0.
"""
from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from tracking.schemas import BoundingBox


class FeatureExtractor(Protocol):
    def extract(self, image: np.ndarray, bounds: BoundingBox) -> np.ndarray | None: ...


def _crop(image: np.ndarray, bounds: BoundingBox) -> np.ndarray | None:
    h, w = image.shape[:2]
    if bounds.width <= 0 or bounds.height <= 0 or not bounds.inside(w, h):
        return None
    return np.ascontiguousarray(image[bounds.y:bounds.y2, bounds.x:bounds.x2])


def _to_uint8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image
    return np.clip(image, 0, 255).astype(np.uint8)


class PatchFeatureExtractor:
    """Grayscale patch scaled to a fixed size, histogram-equalized, then normalized.

    The descriptor is zero-mean and unit-length so a linear separator sees
    brightness- and contrast-invariant input.

    Args:
        width: Patch width after resizing.
        height: Patch height after resizing.
        equalize: Apply histogram equalization before normalizing.
    """

    def __init__(self, width: int = 20, height: int = 20, equalize: bool = True) -> None:
        self._size = (width, height)
        self._equalize = equalize

    @property
    def dimensions(self) -> int:
        return self._size[0] * self._size[1]

    def extract(self, image: np.ndarray, bounds: BoundingBox) -> np.ndarray | None:
        patch = _crop(image, bounds)
        if patch is None:
            return None
        patch = _to_uint8(patch)
        if patch.ndim == 3:
            patch = cv2.cvtColor(patch, cv2.COLOR_BGR2GRAY)
        patch = cv2.resize(patch, self._size, interpolation=cv2.INTER_AREA)
        if self._equalize:
            patch = cv2.equalizeHist(patch)

        vector = patch.astype(np.float64).ravel() / 255.0
        vector -= vector.mean()
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector


class HistogramFeatureExtractor:
    """Normalized 3D HSV colour histogram of the region.

    Args:
        bins: Bins per channel; the descriptor has ``bins ** 3`` entries.
    """

    def __init__(self, bins: int = 8) -> None:
        self._bins = bins

    @property
    def dimensions(self) -> int:
        return self._bins ** 3

    def extract(self, image: np.ndarray, bounds: BoundingBox) -> np.ndarray | None:
        patch = _crop(image, bounds)
        if patch is None:
            return None
        patch = _to_uint8(patch)
        if patch.ndim == 2:
            patch = cv2.cvtColor(patch, cv2.COLOR_GRAY2BGR)
        hsv = cv2.cvtColor(patch, cv2.COLOR_BGR2HSV)
        hist = cv2.calcHist(
            [hsv], [0, 1, 2], None, [self._bins] * 3, [0, 180, 0, 256, 0, 256]
        ).astype(np.float64).ravel()
        total = hist.sum()
        if total > 0:
            hist /= total
        return hist
