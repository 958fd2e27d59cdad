"""
TransformSets: the unit of experimentation.

A TransformSet is an ordered list of features plus the label field. Its
identity is a hash of that content, so two sets built independently from
the same features compare as the same experiment.
"""

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

import pandas as pd

from featurelab.config.settings import TransformSetConfig
from featurelab.errors import CausalityViolation
from featurelab.features.definitions import FeatureRegistry, FeatureSpec, get_registry
from featurelab.schemas.rental import RawRecord
from featurelab.utils.hashing import hash_content
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class TransformSet:
    """
    Named, ordered feature list plus label definition.

    Attributes:
        name: Human-readable name, also used as the model name.
        features: Ordered feature specs.
        label: Label field the model predicts.
        prediction_use: When True, every feature must be prediction-safe.
    """

    name: str
    features: tuple[FeatureSpec, ...]
    label: str = "duration"
    prediction_use: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", tuple(self.features))
        if not self.features:
            msg = f"TransformSet '{self.name}' has no features"
            raise ValueError(msg)

        names = self.feature_names
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            msg = f"Duplicate features in '{self.name}': {', '.join(duplicates)}"
            raise ValueError(msg)

        leaking = [f.name for f in self.features if self.label in f.dependencies]
        if leaking:
            msg = f"Features read the label '{self.label}': {', '.join(leaking)}"
            raise CausalityViolation(msg)

        if self.prediction_use:
            unsafe = [f.name for f in self.features if not f.prediction_safe]
            if unsafe:
                msg = (
                    f"TransformSet '{self.name}' is marked for prediction but uses "
                    f"features unknown at prediction time: {', '.join(unsafe)}"
                )
                raise CausalityViolation(msg)

    @property
    def feature_names(self) -> list[str]:
        """Feature names in order."""
        return [f.name for f in self.features]

    @property
    def dependencies(self) -> set[str]:
        """All record fields read by the features."""
        deps: set[str] = set()
        for feature in self.features:
            deps.update(feature.dependencies)
        return deps

    @property
    def identity(self) -> str:
        """Content hash of label and features (name and flags excluded)."""
        return hash_content(
            {
                "label": self.label,
                "features": [f.signature() for f in self.features],
            }
        )

    def for_prediction(self) -> "TransformSet":
        """
        Return this set marked for production prediction use.

        Raises:
            CausalityViolation: If any feature is training-only.
        """
        return replace(self, prediction_use=True)

    @classmethod
    def from_config(
        cls,
        config: TransformSetConfig,
        registry: FeatureRegistry | None = None,
    ) -> "TransformSet":
        """Build a TransformSet from its configuration block."""
        registry = registry or get_registry()
        features = tuple(registry.build(entry.name, **entry.params) for entry in config.features)
        return cls(
            name=config.name,
            features=features,
            label=config.label,
            prediction_use=config.prediction_use,
        )


def _as_mapping(record: RawRecord | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(record, RawRecord):
        return record.as_dict()
    return record


def apply(
    transform_set: TransformSet,
    record: RawRecord | Mapping[str, Any],
) -> dict[str, Any]:
    """
    Compute the feature vector of one record.

    Raises:
        InvalidField: If the record lacks a field a feature depends on.
        OutOfRange: If a field value is outside a transform's domain.
    """
    values = _as_mapping(record)
    return {feature.name: feature.compute(values) for feature in transform_set.features}


def transform_frame(
    transform_set: TransformSet,
    records: pd.DataFrame | Iterable[RawRecord | Mapping[str, Any]],
) -> pd.DataFrame:
    """
    Compute the feature frame of many records.

    Args:
        transform_set: Features to compute.
        records: Rentals frame or iterable of records.

    Returns:
        DataFrame with one column per feature, in TransformSet order.
    """
    if isinstance(records, pd.DataFrame):
        records = records.to_dict("records")

    rows = [apply(transform_set, record) for record in records]
    frame = pd.DataFrame(rows, columns=transform_set.feature_names)

    log.debug(
        "Computed feature frame",
        transform_set=transform_set.name,
        rows=len(frame),
        features=transform_set.feature_names,
    )
    return frame
