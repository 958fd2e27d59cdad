"""
Typed failures for the experiment loop.

Every failure surfaces to the caller as one of these exceptions. Nothing
in the package retries on them; retry and backoff belong to the caller.
"""


class ExperimentError(Exception):
    """Base class for all featurelab failures."""


class SourceUnavailable(ExperimentError):
    """The backing data source cannot be reached or read."""


class InvalidField(ExperimentError):
    """A referenced field does not exist in the source schema or has the wrong type."""

    def __init__(
        self,
        field: str,
        available: list[str] | None = None,
        reason: str | None = None,
    ) -> None:
        self.field = field
        self.available = available or []
        self.reason = reason
        msg = f"Field '{field}' {reason}" if reason else f"Unknown field '{field}'"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg)


class OutOfRange(ExperimentError):
    """A transform input lies outside the transform's domain."""


class CausalityViolation(ExperimentError):
    """A feature unknown at prediction time is used for prediction."""


class SubmissionRejected(ExperimentError):
    """The trainer refused a model definition."""


class ModelNotReady(ExperimentError):
    """The model has not finished training."""


class ModelSuperseded(ModelNotReady):
    """A newer submission under the same model name replaced this handle."""


class ModelTrainingFailed(ExperimentError):
    """The training job ended in the failed state."""


class NoExperiments(ExperimentError):
    """The experiment log is empty."""


class InvalidStateTransition(ExperimentError):
    """An experiment was moved along an edge its lifecycle does not allow."""
