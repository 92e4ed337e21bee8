"""Learning strategies: decide which tracked samples become training examples."""
from __future__ import annotations

from typing import Protocol, Sequence

from tracker_shared.logging import get_logger

from tracking.schemas import BoundingBox, RetrainRequest, Sample

log = get_logger(__name__)


class LearningStrategy(Protocol):
    def on_frame_processed(
        self, samples: Sequence[Sample], position: BoundingBox | None
    ) -> RetrainRequest | None: ...


class PositionDependentLearningStrategy:
    """Labels samples by their overlap with the extracted position.

    Positives: the position itself plus samples overlapping it by at least
    ``positive_overlap`` (IoU). Negatives: samples overlapping by at most
    ``negative_overlap``, highest weight first, so the separator is corrected
    where it is most wrong. Frames without a position produce no request.

    Args:
        aspect_ratio: Box height divided by width.
        positive_overlap: Minimum IoU for a positive.
        negative_overlap: Maximum IoU for a negative.
        max_negatives: Negatives per request.
        interval: Request a retrain on every n-th found frame.
    """

    def __init__(
        self,
        aspect_ratio: float = 1.0,
        positive_overlap: float = 0.8,
        negative_overlap: float = 0.3,
        max_negatives: int = 10,
        interval: int = 1,
    ) -> None:
        if negative_overlap >= positive_overlap:
            raise ValueError(
                f"negative_overlap ({negative_overlap}) must be below positive_overlap ({positive_overlap})"
            )
        self._aspect_ratio = aspect_ratio
        self._positive_overlap = positive_overlap
        self._negative_overlap = negative_overlap
        self._max_negatives = max_negatives
        self._interval = max(1, interval)
        self._found_frames = 0

    def on_frame_processed(
        self, samples: Sequence[Sample], position: BoundingBox | None
    ) -> RetrainRequest | None:
        if position is None:
            return None
        self._found_frames += 1
        if self._found_frames % self._interval != 0:
            return None

        cx, cy = position.center
        positives = [Sample(x=cx, y=cy, size=float(position.width), weight=1.0, is_object=True)]
        negatives: list[Sample] = []
        for sample in samples:
            overlap = sample.bounds(self._aspect_ratio).iou(position)
            if overlap >= self._positive_overlap:
                positives.append(sample.copy())
            elif overlap <= self._negative_overlap:
                negatives.append(sample)

        negatives.sort(key=lambda s: s.weight, reverse=True)
        negatives = [s.copy() for s in negatives[: self._max_negatives]]

        log.debug(
            "learning_examples_selected",
            positives=len(positives),
            negatives=len(negatives),
        )
        return RetrainRequest(positives=positives, negatives=negatives)
