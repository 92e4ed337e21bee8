"""Tracker configuration and default wiring."""
from __future__ import annotations

from dataclasses import dataclass, fields

import numpy as np

from classification.calibration import AdaptiveCalibration, FixedCalibration
from classification.svm import LinearSvmTrainer, RawSeparator
from tracker_shared.logging import get_logger

from tracking.extractor import WeightedMeanPositionExtractor
from tracking.features import FeatureExtractor, HistogramFeatureExtractor, PatchFeatureExtractor
from tracking.learning import PositionDependentLearningStrategy
from tracking.measurement import DiscriminativeMeasurementModel
from tracking.sampler import ResamplingSampler
from tracking.tracker import LearningCondensationTracker

log = get_logger(__name__)


@dataclass(frozen=True)
class TrackerConfig:
    """Configuration for one tracker instance."""

    # Sampling
    sample_count: int = 800
    random_rate: float = 0.35
    position_deviation: float = 0.1
    size_deviation: float = 0.05
    min_size: int = 20
    max_size: int = 200
    aspect_ratio: float = 1.0

    # Features
    feature_type: str = "patch"  # "patch", "histogram"
    patch_size: int = 20
    histogram_bins: int = 8

    # Measurement model
    calibration_policy: str = "fixed"  # "fixed", "adaptive"
    high_probability: float = 0.95
    low_probability: float = 0.05
    mean_positive_score: float = 1.01
    mean_negative_score: float = -1.01
    object_threshold: float = 0.5
    positive_capacity: int = 10
    negative_capacity: int = 50
    min_positive_examples: int = 1
    min_negative_examples: int = 1
    svm_c: float = 100.0
    scoring_workers: int = 1

    # Learning
    learning_active: bool = True
    learning_interval: int = 1
    positive_overlap: float = 0.8
    negative_overlap: float = 0.3
    max_negatives_per_frame: int = 10

    random_seed: int | None = None


def build_config(settings) -> TrackerConfig:
    """Build TrackerConfig from tracker_shared.settings.Settings."""
    return TrackerConfig(**{f.name: getattr(settings, f.name) for f in fields(TrackerConfig)})


def build_feature_extractor(config: TrackerConfig) -> FeatureExtractor:
    if config.feature_type == "histogram":
        return HistogramFeatureExtractor(bins=config.histogram_bins)
    if config.feature_type == "patch":
        return PatchFeatureExtractor(width=config.patch_size, height=config.patch_size)
    raise ValueError(f"Unknown feature type '{config.feature_type}'")


def build_measurement_model(
    config: TrackerConfig,
    default_separator: RawSeparator | None = None,
    feature_extractor: FeatureExtractor | None = None,
) -> DiscriminativeMeasurementModel:
    """Create the measurement model; a fixed calibration is validated here."""
    if config.calibration_policy == "fixed":
        calibration = FixedCalibration(
            high_probability=config.high_probability,
            low_probability=config.low_probability,
            mean_positive_score=config.mean_positive_score,
            mean_negative_score=config.mean_negative_score,
        )
    elif config.calibration_policy == "adaptive":
        calibration = AdaptiveCalibration(
            high_probability=config.high_probability,
            low_probability=config.low_probability,
        )
    else:
        raise ValueError(f"Unknown calibration policy '{config.calibration_policy}'")

    trainer = LinearSvmTrainer(
        c=config.svm_c,
        min_positive_examples=config.min_positive_examples,
        min_negative_examples=config.min_negative_examples,
    )
    return DiscriminativeMeasurementModel(
        feature_extractor=feature_extractor or build_feature_extractor(config),
        trainer=trainer,
        calibration=calibration,
        default_separator=default_separator,
        aspect_ratio=config.aspect_ratio,
        object_threshold=config.object_threshold,
        positive_capacity=config.positive_capacity,
        negative_capacity=config.negative_capacity,
        scoring_workers=config.scoring_workers,
    )


def build_tracker(
    config: TrackerConfig,
    default_separator: RawSeparator | None = None,
    measurement_model: DiscriminativeMeasurementModel | None = None,
) -> LearningCondensationTracker:
    """Wire a tracker from the default sampler, extractor and learning strategy."""
    rng = np.random.default_rng(config.random_seed)
    sampler = ResamplingSampler(
        count=config.sample_count,
        random_rate=config.random_rate,
        position_deviation=config.position_deviation,
        size_deviation=config.size_deviation,
        min_size=config.min_size,
        max_size=config.max_size,
        aspect_ratio=config.aspect_ratio,
        rng=rng,
    )
    model = measurement_model or build_measurement_model(config, default_separator)
    extractor = WeightedMeanPositionExtractor(aspect_ratio=config.aspect_ratio)
    strategy = PositionDependentLearningStrategy(
        aspect_ratio=config.aspect_ratio,
        positive_overlap=config.positive_overlap,
        negative_overlap=config.negative_overlap,
        max_negatives=config.max_negatives_per_frame,
        interval=config.learning_interval,
    )
    log.info(
        "tracker_built",
        samples=config.sample_count,
        features=config.feature_type,
        calibration=config.calibration_policy,
        learning_active=config.learning_active,
    )
    return LearningCondensationTracker(
        sampler=sampler,
        measurement_model=model,
        extractor=extractor,
        learning_strategy=strategy,
        learning_active=config.learning_active,
    )
