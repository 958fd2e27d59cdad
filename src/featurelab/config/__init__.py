"""
Configuration management with typed Pydantic models.

Provides YAML loading with environment-aware interpolation.
"""

from featurelab.config.loader import load_config
from featurelab.config.settings import (
    EvaluationConfig,
    FeatureEntry,
    LoggingConfig,
    MLflowConfig,
    PollingConfig,
    RunnerConfig,
    SourceConfig,
    TrainingConfig,
    TransformSetConfig,
)

__all__ = [
    "EvaluationConfig",
    "FeatureEntry",
    "LoggingConfig",
    "MLflowConfig",
    "PollingConfig",
    "RunnerConfig",
    "SourceConfig",
    "TrainingConfig",
    "TransformSetConfig",
    "load_config",
]
