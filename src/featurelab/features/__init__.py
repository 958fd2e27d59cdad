"""
Feature engineering module with declarative feature definitions.

Features are defined using a registry pattern for testability,
explicit dependency tracking and prediction-time validity.
"""

from featurelab.features.definitions import (
    FeatureKind,
    FeatureRegistry,
    FeatureSpec,
    Validity,
    get_registry,
    hour_bucket_feature,
)
from featurelab.features.transform_set import TransformSet, apply, transform_frame

__all__ = [
    "FeatureKind",
    "FeatureRegistry",
    "FeatureSpec",
    "TransformSet",
    "Validity",
    "apply",
    "get_registry",
    "hour_bucket_feature",
    "transform_frame",
]
