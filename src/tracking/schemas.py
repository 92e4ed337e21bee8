"""Value types shared across the tracking pipeline.

Sample          one weighted state hypothesis (center, width, weight, object flag)
BoundingBox     integer pixel rectangle reported to the driver
MovementOffset  displacement between the last two accepted positions
RetrainRequest  labelled samples handed from the learning strategy to the model
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class TrackingState(str, Enum):
    UNINITIALIZED = "uninitialized"
    FOUND = "found"
    LOST = "lost"


class BoundingBox(_FrozenModel):
    """Axis-aligned rectangle in pixel coordinates (top-left corner + size)."""

    x: int
    y: int
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> BoundingBox:
        w = int(round(width))
        h = int(round(height))
        return cls(x=int(round(cx - w / 2.0)), y=int(round(cy - h / 2.0)), width=w, height=h)

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> int:
        return self.width * self.height

    def iou(self, other: BoundingBox) -> float:
        """Intersection over union; 0 for disjoint or empty boxes."""
        w = min(self.x2, other.x2) - max(self.x, other.x)
        h = min(self.y2, other.y2) - max(self.y, other.y)
        if w <= 0 or h <= 0:
            return 0.0
        inter = w * h
        union = self.area + other.area - inter
        return inter / union if union > 0 else 0.0

    def inside(self, width: int, height: int) -> bool:
        """True if the box lies fully within a width x height frame."""
        return self.x >= 0 and self.y >= 0 and self.x2 <= width and self.y2 <= height


@dataclass
class Sample:
    """A weighted hypothesis of the object state.

    ``size`` is the box width in pixels; the height follows from the aspect ratio
    the pipeline is configured with.
    """

    x: float
    y: float
    size: float
    weight: float = 1.0
    is_object: bool = False

    def bounds(self, aspect_ratio: float = 1.0) -> BoundingBox:
        return BoundingBox.from_center(self.x, self.y, self.size, self.size * aspect_ratio)

    def copy(self) -> Sample:
        return Sample(self.x, self.y, self.size, self.weight, self.is_object)


@dataclass(frozen=True)
class MovementOffset:
    """Change of the accepted center (and width) between two found frames."""

    x: float = 0.0
    y: float = 0.0
    size: float = 0.0

    @classmethod
    def zero(cls) -> MovementOffset:
        return cls()

    @classmethod
    def between(cls, previous: BoundingBox, current: BoundingBox) -> MovementOffset:
        (px, py), (cx, cy) = previous.center, current.center
        return cls(x=cx - px, y=cy - py, size=float(current.width - previous.width))


@dataclass(frozen=True)
class RetrainRequest:
    """Samples labelled by the learning strategy for the next retraining."""

    positives: list[Sample] = field(default_factory=list)
    negatives: list[Sample] = field(default_factory=list)
