"""
Declarative feature definitions.

Features are defined using a registry pattern for explicit dependencies,
testable formulas and a declared prediction-time validity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from featurelab.errors import InvalidField
from featurelab.features.transforms import (
    DEFAULT_HOUR_BOUNDARIES,
    cast_categorical,
    day_of_week,
    hour_bucket,
    hour_of_day,
    validate_boundaries,
    weekday_fusion,
)
from featurelab.utils.logging import get_logger

log = get_logger(__name__)

Record = Mapping[str, Any]


class Validity(str, Enum):
    """When a feature's inputs are known."""

    PREDICTION_SAFE = "prediction_safe"  # known before the rental ends
    TRAINING_ONLY = "training_only"  # only known after the event


class FeatureKind(str, Enum):
    """How the trainer encodes a feature."""

    CATEGORICAL = "categorical"
    NUMERIC = "numeric"


@dataclass(frozen=True)
class FeatureSpec:
    """
    Definition of a feature derived from a raw record.

    Attributes:
        name: Feature name (column name in the feature frame).
        transform: Function computing the value from a record mapping.
        dependencies: Record fields the transform reads.
        validity: Whether the feature may be used at prediction time.
        kind: Categorical or numeric encoding.
        params: Parameters the spec was built with (part of its identity).
        description: Human-readable description.
    """

    name: str
    transform: Callable[[Record], Any] = field(compare=False)
    dependencies: tuple[str, ...]
    validity: Validity
    kind: FeatureKind = FeatureKind.CATEGORICAL
    params: tuple[tuple[str, Any], ...] = ()
    description: str = ""

    @property
    def prediction_safe(self) -> bool:
        """True if the feature is known before the predicted event."""
        return self.validity is Validity.PREDICTION_SAFE

    def compute(self, record: Record) -> Any:
        """
        Compute the feature value for one record.

        Raises:
            InvalidField: If a dependency is missing from the record.
        """
        for dep in self.dependencies:
            if record.get(dep) is None:
                raise InvalidField(dep, sorted(record.keys()))
        return self.transform(record)

    def signature(self) -> dict[str, Any]:
        """Content used for TransformSet identity hashing."""
        return {
            "name": self.name,
            "dependencies": list(self.dependencies),
            "validity": self.validity.value,
            "kind": self.kind.value,
            "params": [[k, list(v) if isinstance(v, tuple) else v] for k, v in self.params],
        }


def hour_bucket_feature(
    boundaries: Sequence[float] = DEFAULT_HOUR_BOUNDARIES,
) -> FeatureSpec:
    """Build the bucketized hour-of-day feature for the given cut points."""
    cuts = validate_boundaries(boundaries)
    return FeatureSpec(
        name="hourofday_bucket",
        transform=lambda r: hour_bucket(hour_of_day(r["start_date"]), cuts),
        dependencies=("start_date",),
        validity=Validity.PREDICTION_SAFE,
        params=(("boundaries", cuts),),
        description=f"Hour of day bucketized at {list(cuts)}",
    )


BUILTIN_FEATURES: list[FeatureSpec] = [
    FeatureSpec(
        name="start_station_name",
        transform=lambda r: r["start_station_name"],
        dependencies=("start_station_name",),
        validity=Validity.PREDICTION_SAFE,
        description="Station where the rental starts",
    ),
    FeatureSpec(
        name="dayofweek",
        transform=lambda r: cast_categorical(day_of_week(r["start_date"])),
        dependencies=("start_date",),
        validity=Validity.PREDICTION_SAFE,
        description="Day of week (1=Sunday) cast to a category",
    ),
    FeatureSpec(
        name="hourofday",
        transform=lambda r: cast_categorical(hour_of_day(r["start_date"])),
        dependencies=("start_date",),
        validity=Validity.PREDICTION_SAFE,
        description="Hour of day cast to a category",
    ),
    FeatureSpec(
        name="dayofweek_fused",
        transform=lambda r: weekday_fusion(day_of_week(r["start_date"])),
        dependencies=("start_date",),
        validity=Validity.PREDICTION_SAFE,
        description="Day of week fused into weekday/weekend",
    ),
    FeatureSpec(
        name="end_station_name",
        transform=lambda r: r["end_station_name"],
        dependencies=("end_station_name",),
        validity=Validity.TRAINING_ONLY,
        description="Station where the rental ends (unknown at prediction time)",
    ),
]

BUILTIN_FACTORIES: dict[str, Callable[..., FeatureSpec]] = {
    "hourofday_bucket": hour_bucket_feature,
}


@dataclass
class FeatureRegistry:
    """
    Registry of available features and parameterized feature factories.
    """

    features: dict[str, FeatureSpec] = field(default_factory=dict)
    factories: dict[str, Callable[..., FeatureSpec]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Initialize with built-in features."""
        for spec in BUILTIN_FEATURES:
            self.add(spec)
        for name, factory in BUILTIN_FACTORIES.items():
            self.register_factory(name, factory)

    def register(
        self,
        name: str,
        transform_fn: Callable[[Record], Any],
        validity: Validity,
        *,
        dependencies: Sequence[str] = (),
        kind: FeatureKind = FeatureKind.CATEGORICAL,
        description: str = "",
    ) -> FeatureSpec:
        """
        Register a feature from a transform function.

        Args:
            name: Feature name.
            transform_fn: Function computing the value from a record.
            validity: Prediction-time validity.
            dependencies: Record fields the function reads.
            kind: Categorical or numeric.
            description: Human-readable description.

        Returns:
            The registered FeatureSpec.
        """
        spec = FeatureSpec(
            name=name,
            transform=transform_fn,
            dependencies=tuple(dependencies),
            validity=Validity(validity),
            kind=FeatureKind(kind),
            description=description,
        )
        self.add(spec)
        return spec

    def add(self, spec: FeatureSpec) -> None:
        """Register a prepared FeatureSpec."""
        if spec.name in self.features:
            log.warning("Overwriting existing feature", name=spec.name)
        self.features[spec.name] = spec

    def register_factory(self, name: str, factory: Callable[..., FeatureSpec]) -> None:
        """Register a parameterized feature factory."""
        if name in self.factories:
            log.warning("Overwriting existing feature factory", name=name)
        self.factories[name] = factory

    def get(self, name: str) -> FeatureSpec:
        """
        Get a feature by name.

        Raises:
            KeyError: If feature not found.
        """
        if name not in self.features:
            available = ", ".join(self.list_features())
            msg = f"Unknown feature '{name}'. Available: {available}"
            raise KeyError(msg)
        return self.features[name]

    def build(self, name: str, **params: Any) -> FeatureSpec:
        """
        Resolve a feature, calling its factory when one is registered.

        Raises:
            KeyError: If no feature or factory has this name.
            ValueError: If parameters are given for a plain feature.
        """
        if name in self.factories:
            return self.factories[name](**params)
        if params:
            msg = f"Feature '{name}' takes no parameters, got {sorted(params)}"
            raise ValueError(msg)
        return self.get(name)

    def list_features(self) -> list[str]:
        """List all registered feature and factory names."""
        return sorted({*self.features, *self.factories})


# Global registry instance
_registry: FeatureRegistry | None = None


def get_registry() -> FeatureRegistry:
    """Get the global feature registry."""
    global _registry
    if _registry is None:
        _registry = FeatureRegistry()
    return _registry
