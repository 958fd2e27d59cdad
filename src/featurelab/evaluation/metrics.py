"""
Evaluation metrics for regression models.

Metric names follow the warehouse's model evaluation output so results
from the local backend and the warehouse compare directly.
"""

from dataclasses import dataclass

import numpy as np
from sklearn.metrics import (
    explained_variance_score,
    mean_absolute_error,
    mean_squared_error,
    median_absolute_error,
    r2_score,
)

from featurelab.utils.logging import get_logger

log = get_logger(__name__)

MEAN_ABSOLUTE_ERROR = "mean_absolute_error"


@dataclass(frozen=True)
class RegressionMetrics:
    """
    Standard regression metrics on a held-out split.

    Attributes:
        mean_absolute_error: Mean absolute error (lower is better)
        mean_squared_error: Mean squared error
        median_absolute_error: Median absolute error
        r2_score: R² (coefficient of determination)
        explained_variance: Explained variance score
        n_samples: Number of evaluated samples
    """

    mean_absolute_error: float
    mean_squared_error: float
    median_absolute_error: float
    r2_score: float
    explained_variance: float
    n_samples: int

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "mean_absolute_error": self.mean_absolute_error,
            "mean_squared_error": self.mean_squared_error,
            "median_absolute_error": self.median_absolute_error,
            "r2_score": self.r2_score,
            "explained_variance": self.explained_variance,
            "n_samples": self.n_samples,
        }

    def __str__(self) -> str:
        """String representation."""
        return (
            f"MAE={self.mean_absolute_error:.2f}, MSE={self.mean_squared_error:.2f}, "
            f"MedAE={self.median_absolute_error:.2f}, R²={self.r2_score:.4f}"
        )


def compute_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> RegressionMetrics:
    """
    Compute regression metrics.

    Args:
        y_true: True label values.
        y_pred: Predicted label values.

    Returns:
        RegressionMetrics object.

    Raises:
        ValueError: If the arrays are empty or differ in length.
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()

    if len(y_true) == 0:
        msg = "Cannot compute metrics on an empty evaluation split"
        raise ValueError(msg)
    if len(y_true) != len(y_pred):
        msg = f"Length mismatch: {len(y_true)} labels, {len(y_pred)} predictions"
        raise ValueError(msg)

    # R² is undefined for a single sample
    single = len(y_true) < 2
    metrics = RegressionMetrics(
        mean_absolute_error=float(mean_absolute_error(y_true, y_pred)),
        mean_squared_error=float(mean_squared_error(y_true, y_pred)),
        median_absolute_error=float(median_absolute_error(y_true, y_pred)),
        r2_score=float("nan") if single else float(r2_score(y_true, y_pred)),
        explained_variance=(
            float("nan") if single else float(explained_variance_score(y_true, y_pred))
        ),
        n_samples=len(y_true),
    )

    log.debug("Computed metrics", **metrics.to_dict())
    return metrics
