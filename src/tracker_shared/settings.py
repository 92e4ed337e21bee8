from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sampling
    sample_count: int = Field(default=800, gt=0)
    random_rate: float = Field(default=0.35, ge=0.0, le=1.0, description="Share of uniformly drawn samples per frame")
    position_deviation: float = Field(default=0.1, ge=0.0, description="Position noise relative to sample size")
    size_deviation: float = Field(default=0.05, ge=0.0, description="Log-normal size noise")
    min_size: int = Field(default=20, gt=0)
    max_size: int = Field(default=200, gt=0)
    aspect_ratio: float = Field(default=1.0, gt=0.0, description="Box height divided by width")

    # Features
    feature_type: str = Field(default="patch", pattern="^(patch|histogram)$")
    patch_size: int = Field(default=20, gt=0)
    histogram_bins: int = Field(default=8, gt=0)

    # Measurement model
    calibration_policy: str = Field(default="fixed", pattern="^(fixed|adaptive)$")
    high_probability: float = Field(default=0.95)
    low_probability: float = Field(default=0.05)
    mean_positive_score: float = Field(default=1.01)
    mean_negative_score: float = Field(default=-1.01)
    object_threshold: float = Field(default=0.5)
    positive_capacity: int = Field(default=10, gt=0, description="Positive training examples kept across frames")
    negative_capacity: int = Field(default=50, gt=0)
    min_positive_examples: int = Field(default=1, gt=0)
    min_negative_examples: int = Field(default=1, gt=0)
    svm_c: float = Field(default=100.0, gt=0.0, description="SVM soft-margin penalty; large values give margin-normalized scores")
    scoring_workers: int = Field(default=1, ge=1)

    # Learning
    learning_active: bool = Field(default=True)
    learning_interval: int = Field(default=1, ge=1, description="Retrain on every n-th found frame")
    positive_overlap: float = Field(default=0.8)
    negative_overlap: float = Field(default=0.3)
    max_negatives_per_frame: int = Field(default=10, ge=0)

    random_seed: int | None = Field(default=None)

    # Logging
    log_format: str = Field(default="console")
    log_level: str = Field(default="INFO")


# Module-level singleton, import and use directly
settings = Settings()
