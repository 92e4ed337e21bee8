"""Condensation (particle filter) tracker with an online-learned measurement model.

Per frame:
1. propose samples (cold start, or propagate the previous set with the movement offset)
2. score every sample with the measurement model
3. reduce the scored set to one position, or none
4. update the movement offset (kept unchanged when the object is not found)
5. if learning is active, let the learning strategy pick training examples and
   forward its retrain request to the measurement model
6. rotate the two sample buffers (current -> previous)
"""
from __future__ import annotations

import time
from typing import Sequence

import numpy as np

from tracker_shared.logging import get_logger

from tracking.errors import EmptySampleSet
from tracking.extractor import PositionExtractor
from tracking.learning import LearningStrategy
from tracking.measurement import DiscriminativeMeasurementModel
from tracking.sampler import Sampler
from tracking.schemas import BoundingBox, MovementOffset, Sample, TrackingState

log = get_logger(__name__)


class LearningCondensationTracker:
    """Tracks one object and learns its appearance over time.

    Collaborators are shared references; the caller may keep and reconfigure
    them. ``process()`` must not be called concurrently for one tracker.

    Args:
        sampler: Proposes sample sets.
        measurement_model: Scores samples; retrained online.
        extractor: Reduces scored samples to a position.
        learning_strategy: Selects training examples from tracked frames.
        learning_active: Whether the measurement model is adapted initially.
    """

    def __init__(
        self,
        sampler: Sampler,
        measurement_model: DiscriminativeMeasurementModel,
        extractor: PositionExtractor,
        learning_strategy: LearningStrategy,
        learning_active: bool = True,
    ) -> None:
        self._sampler = sampler
        self._measurement_model = measurement_model
        self._extractor = extractor
        self._learning_strategy = learning_strategy
        self._learning_active = learning_active

        # Two buffers reused across frames: current and previous generation
        self._samples: list[Sample] = []
        self._old_samples: list[Sample] = []
        self._initialized = False

        self._position: BoundingBox | None = None
        self._offset = MovementOffset.zero()
        self._state = TrackingState.UNINITIALIZED
        self._frame_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, image: np.ndarray) -> BoundingBox | None:
        """Process the next frame and return the object's bounding box, if found."""
        t0 = time.perf_counter()
        self._frame_count += 1

        try:
            new_samples = self._propose(image)
        except EmptySampleSet:
            log.warning("tracker_sample_set_empty", frame=self._frame_count)
            self._set_state(TrackingState.LOST)
            return None

        self._measurement_model.evaluate(image, new_samples)
        position = self._extractor.extract(new_samples)

        if position is not None:
            if self._position is not None:
                self._offset = MovementOffset.between(self._position, position)
            self._position = position
            self._set_state(TrackingState.FOUND)
        else:
            self._set_state(TrackingState.LOST)

        if self._learning_active:
            request = self._learning_strategy.on_frame_processed(new_samples, position)
            if request is not None:
                self._measurement_model.adapt(image, request.positives, request.negatives)

        self._rotate(new_samples)

        log.debug(
            "tracker_frame_processed",
            frame=self._frame_count,
            state=self._state.value,
            samples=len(new_samples),
            position=position.model_dump() if position is not None else None,
            offset=(round(self._offset.x, 2), round(self._offset.y, 2)),
            latency_ms=round((time.perf_counter() - t0) * 1000.0, 2),
        )
        return position

    @property
    def samples(self) -> tuple[Sample, ...]:
        """Current scored sample set (read-only view)."""
        return tuple(self._samples)

    @property
    def measurement_model(self) -> DiscriminativeMeasurementModel:
        return self._measurement_model

    @property
    def sampler(self) -> Sampler:
        return self._sampler

    @sampler.setter
    def sampler(self, sampler: Sampler) -> None:
        self._sampler = sampler

    @property
    def learning_active(self) -> bool:
        return self._learning_active

    @learning_active.setter
    def learning_active(self, active: bool) -> None:
        was_active = self._learning_active
        self._learning_active = active
        if was_active and not active:
            # Disabling learning also discards what was learned
            self._measurement_model.reset()
        log.info("tracker_learning_toggled", active=active)

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def offset(self) -> MovementOffset:
        return self._offset

    @property
    def position(self) -> BoundingBox | None:
        """Last accepted position; kept while the object is lost."""
        return self._position

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _propose(self, image: np.ndarray) -> list[Sample]:
        if not self._initialized:
            samples = self._sampler.initial(image)
        else:
            samples = self._sampler.propagate(self._samples, self._offset, image)
        if not samples:
            raise EmptySampleSet("sampler returned no samples")
        return samples

    def _rotate(self, new_samples: Sequence[Sample]) -> None:
        self._old_samples, self._samples = self._samples, self._old_samples
        self._samples.clear()
        self._samples.extend(new_samples)
        self._initialized = True

    def _set_state(self, state: TrackingState) -> None:
        if state != self._state:
            log.info(
                "tracker_state_changed",
                frame=self._frame_count,
                previous=self._state.value,
                current=state.value,
            )
        self._state = state
