"""Sample proposal: cold start and resample-and-diffuse propagation."""
from __future__ import annotations

import math
from typing import Protocol, Sequence

import numpy as np

from tracker_shared.logging import get_logger

from tracking.schemas import MovementOffset, Sample

log = get_logger(__name__)


class Sampler(Protocol):
    def initial(self, image: np.ndarray) -> list[Sample]: ...

    def propagate(
        self, previous: Sequence[Sample], offset: MovementOffset, image: np.ndarray
    ) -> list[Sample]: ...


class ResamplingSampler:
    """Low-variance resampling plus random re-seeding and Gaussian diffusion.

    Each frame ``count * (1 - random_rate)`` samples are drawn from the previous
    set in proportion to their weights and moved by the transition model; the
    rest are drawn uniformly over the frame so a lost object can be found again.
    Samples whose box leaves the frame are dropped.

    Args:
        count: Samples per frame.
        random_rate: Share of uniformly drawn samples in [0, 1].
        position_deviation: Std-dev of the position noise relative to the sample size.
        size_deviation: Std-dev of the log-size noise.
        min_size: Smallest sample width in pixels.
        max_size: Largest sample width in pixels.
        aspect_ratio: Box height divided by width.
        rng: Random generator; seeded generators make runs reproducible.
    """

    def __init__(
        self,
        count: int = 800,
        random_rate: float = 0.35,
        position_deviation: float = 0.1,
        size_deviation: float = 0.05,
        min_size: int = 20,
        max_size: int = 200,
        aspect_ratio: float = 1.0,
        rng: np.random.Generator | None = None,
    ) -> None:
        if not 0.0 <= random_rate <= 1.0:
            raise ValueError(f"random_rate must be within [0, 1], got {random_rate}")
        if min_size > max_size:
            raise ValueError(f"min_size {min_size} exceeds max_size {max_size}")
        self.count = count
        self.random_rate = random_rate
        self.position_deviation = position_deviation
        self.size_deviation = size_deviation
        self.min_size = min_size
        self.max_size = max_size
        self.aspect_ratio = aspect_ratio
        self._rng = rng or np.random.default_rng()

    def initial(self, image: np.ndarray) -> list[Sample]:
        return self._random_samples(self.count, image)

    def propagate(
        self, previous: Sequence[Sample], offset: MovementOffset, image: np.ndarray
    ) -> list[Sample]:
        weights = np.array([s.weight for s in previous], dtype=np.float64)
        total = weights.sum()
        if len(previous) == 0 or not np.isfinite(total) or total <= 0:
            log.debug("sampler_cold_start", previous=len(previous))
            return self.initial(image)

        resample_count = int(round(self.count * (1.0 - self.random_rate)))
        indices = self._low_variance_indices(weights / total, resample_count)

        height, width = image.shape[:2]
        samples: list[Sample] = []
        for idx in indices:
            sample = self._transition(previous[idx], offset)
            if sample.bounds(self.aspect_ratio).inside(width, height):
                samples.append(sample)
        samples.extend(self._random_samples(self.count - resample_count, image))
        return samples

    def _low_variance_indices(self, weights: np.ndarray, n: int) -> np.ndarray:
        """Systematic resampling: one random offset, n evenly spaced pointers."""
        if n <= 0:
            return np.empty(0, dtype=np.int64)
        positions = (self._rng.random() + np.arange(n)) / n
        cumulative = np.cumsum(weights)
        cumulative[-1] = 1.0
        return np.searchsorted(cumulative, positions, side="right").clip(0, len(weights) - 1)

    def _transition(self, sample: Sample, offset: MovementOffset) -> Sample:
        size = sample.size + offset.size
        size *= math.exp(self._rng.normal(0.0, self.size_deviation))
        size = float(np.clip(size, self.min_size, self.max_size))
        deviation = self.position_deviation * size
        x = sample.x + offset.x + self._rng.normal(0.0, deviation)
        y = sample.y + offset.y + self._rng.normal(0.0, deviation)
        return Sample(x=x, y=y, size=size)

    def _random_samples(self, n: int, image: np.ndarray) -> list[Sample]:
        height, width = image.shape[:2]
        max_size = min(self.max_size, width, int(height / self.aspect_ratio))
        if n <= 0 or max_size < self.min_size:
            return []
        sizes = np.exp(self._rng.uniform(math.log(self.min_size), math.log(max_size), n))
        samples = []
        for size in sizes:
            half_w = size / 2.0
            half_h = size * self.aspect_ratio / 2.0
            x = self._rng.uniform(half_w, width - half_w)
            y = self._rng.uniform(half_h, height - half_h)
            samples.append(Sample(x=float(x), y=float(y), size=float(size)))
        return samples
