"""
Typed configuration models using Pydantic.

All experiment configuration is defined here with explicit typing and
validation. Polling and timeouts are explicit settings, never implicit
infinite retries.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceConfig(BaseModel):
    """Tabular source holding the rental records."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(default="bikeshare_trips", description="Source table identifier")
    path: Path = Field(description="Path to the rentals CSV")


class TrainingConfig(BaseModel):
    """Settings for the local trainer backend."""

    model_config = ConfigDict(frozen=True)

    model_kind: str = Field(default="linear_reg", description="Model kind to submit")
    eval_fraction: float = Field(default=0.2, gt=0.0, lt=1.0)
    random_state: int = Field(default=1337)
    max_workers: int = Field(default=4, ge=1, description="Concurrent training jobs")


class PollingConfig(BaseModel):
    """Caller-level readiness polling policy."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=60, ge=1)
    interval_s: float = Field(default=1.0, ge=0.0)

    @property
    def timeout_s(self) -> float:
        """Upper bound on time spent waiting for one model."""
        return self.max_attempts * self.interval_s


class EvaluationConfig(BaseModel):
    """Metric used to rank experiments."""

    model_config = ConfigDict(frozen=True)

    metric: str = Field(default="mean_absolute_error")
    recheck_interval_s: float = Field(default=0.5, ge=0.0)


class FeatureEntry(BaseModel):
    """A registered feature, optionally built from a parameterized factory."""

    model_config = ConfigDict(frozen=True)

    name: str
    params: dict[str, Any] = Field(default_factory=dict)


class TransformSetConfig(BaseModel):
    """One experiment: an ordered feature list plus the label."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = Field(default="duration")
    features: list[FeatureEntry] = Field(min_length=1)
    prediction_use: bool = Field(
        default=False, description="Reject features unknown at prediction time"
    )

    @field_validator("features", mode="before")
    @classmethod
    def expand_feature_names(cls, v: Any) -> Any:
        """Allow bare feature names in place of {name: ...} mappings."""
        if isinstance(v, list):
            return [{"name": item} if isinstance(item, str) else item for item in v]
        return v


class MLflowConfig(BaseModel):
    """MLflow experiment logging configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    tracking_uri: str = Field(default="http://127.0.0.1:5000")
    experiment_name: str | None = Field(
        default=None, description="MLflow experiment name (defaults to project name)"
    )


class LoggingConfig(BaseModel):
    """Log output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_output: bool = Field(default=False)


class RunnerConfig(BaseModel):
    """Complete experiment runner configuration."""

    model_config = ConfigDict(frozen=True)

    project: str = Field(description="Project identifier (e.g., 'bikeshare-duration')")

    source: SourceConfig
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    transform_sets: list[TransformSetConfig] = Field(default_factory=list)
    mlflow: MLflowConfig = Field(default_factory=MLflowConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("transform_sets")
    @classmethod
    def unique_names(cls, v: list[TransformSetConfig]) -> list[TransformSetConfig]:
        """Transform set names double as model names and must be unique."""
        names = [ts.name for ts in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            msg = f"Duplicate transform set names: {', '.join(duplicates)}"
            raise ValueError(msg)
        return v

    @property
    def experiment_name(self) -> str:
        """MLflow experiment name (derived from project if not set)."""
        return self.mlflow.experiment_name or self.project
