"""
Model kind registry and factory.

Model kinds are an open set: the built-in kind is ordinary least squares
and further kinds can be registered at runtime.
"""

from enum import Enum
from typing import Any

from sklearn.base import BaseEstimator
from sklearn.linear_model import LinearRegression

from featurelab.utils.logging import get_logger

log = get_logger(__name__)


class ModelKind(str, Enum):
    """Built-in model kinds."""

    LINEAR_REG = "linear_reg"


# Model kinds: name -> (class, default_kwargs, is_regression)
MODEL_REGISTRY: dict[str, tuple[type[BaseEstimator], dict[str, Any], bool]] = {
    ModelKind.LINEAR_REG.value: (LinearRegression, {}, True),
}


def _kind_name(kind: str | ModelKind) -> str:
    return kind.value if isinstance(kind, ModelKind) else str(kind)


def register_model_kind(
    kind: str,
    model_class: type[BaseEstimator],
    defaults: dict[str, Any] | None = None,
    *,
    regression: bool = True,
) -> None:
    """Register an additional model kind."""
    if kind in MODEL_REGISTRY:
        log.warning("Overwriting existing model kind", kind=kind)
    MODEL_REGISTRY[kind] = (model_class, defaults or {}, regression)


def is_known_kind(kind: str | ModelKind) -> bool:
    """True if the kind is registered."""
    return _kind_name(kind) in MODEL_REGISTRY


def is_regression(kind: str | ModelKind) -> bool:
    """True if the kind predicts a numeric label."""
    return MODEL_REGISTRY[_kind_name(kind)][2]


def get_model(kind: str | ModelKind, **kwargs: Any) -> BaseEstimator:
    """
    Get a model instance by kind.

    Args:
        kind: Model kind name.
        **kwargs: Override default parameters.

    Returns:
        Unfitted estimator.

    Raises:
        KeyError: If the kind is not registered.
    """
    name = _kind_name(kind)
    if name not in MODEL_REGISTRY:
        available = ", ".join(sorted(MODEL_REGISTRY))
        msg = f"Unknown model kind '{name}'. Available: {available}"
        raise KeyError(msg)

    model_class, defaults, _ = MODEL_REGISTRY[name]
    return model_class(**{**defaults, **kwargs})
