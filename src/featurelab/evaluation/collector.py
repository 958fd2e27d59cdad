"""
Evaluation collection.

Turns a ready model handle into an EvaluationResult with exactly one
metric query.
"""

import time
from dataclasses import dataclass, field

from featurelab.config.settings import EvaluationConfig
from featurelab.errors import ModelNotReady, ModelTrainingFailed
from featurelab.modeling.backend import JobStatus
from featurelab.modeling.submitter import ModelHandle, TrainingJobSubmitter
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    """
    Ranked metric of one trained model.

    Attributes:
        model_handle: Model the metric was measured on.
        metric_name: Name of the ranked metric.
        metric_value: Its value (lower is better).
        metrics: Full metric map returned by the metric query.
    """

    model_handle: ModelHandle
    metric_name: str
    metric_value: float
    metrics: dict[str, float] = field(default_factory=dict, compare=False)


class EvaluationCollector:
    """Fetches evaluation metrics for trained models."""

    def __init__(
        self,
        submitter: TrainingJobSubmitter,
        config: EvaluationConfig | None = None,
    ) -> None:
        self.submitter = submitter
        self.config = config or EvaluationConfig()

    def evaluate(self, handle: ModelHandle) -> EvaluationResult:
        """
        Evaluate a model once it is ready.

        A pending model is re-checked once after `recheck_interval_s`;
        longer waits are the caller's polling policy.

        Raises:
            ModelNotReady: Still pending after the re-check.
            ModelTrainingFailed: Training ended in the failed state.
            KeyError: The metric is missing from the metric map.
        """
        status = self.submitter.status(handle)
        if status is JobStatus.PENDING:
            time.sleep(self.config.recheck_interval_s)
            status = self.submitter.status(handle)

        if status is JobStatus.PENDING:
            msg = f"Model '{handle.model_name}' (job {handle.job_id}) is not ready"
            raise ModelNotReady(msg)
        if status is JobStatus.FAILED:
            reason = self.submitter.failure_reason(handle)
            msg = f"Model '{handle.model_name}' (job {handle.job_id}) failed: {reason}"
            raise ModelTrainingFailed(msg)

        metrics = self.submitter.metrics(handle)
        metric = self.config.metric
        if metric not in metrics:
            available = ", ".join(sorted(metrics))
            msg = f"Metric '{metric}' not reported. Available: {available}"
            raise KeyError(msg)

        result = EvaluationResult(
            model_handle=handle,
            metric_name=metric,
            metric_value=float(metrics[metric]),
            metrics=dict(metrics),
        )
        log.info(
            "Evaluated model",
            model=handle.model_name,
            job_id=handle.job_id,
            metric=metric,
            value=result.metric_value,
        )
        return result
