"""
Experiment lifecycle and orchestration.

An experiment moves Defined -> Submitted -> Ready -> Evaluated, or
Submitted -> Failed. Evaluated and Failed are terminal; running the same
TransformSet identity again is refused.
"""

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from threading import Lock
from typing import Protocol

import mlflow

from featurelab.config.settings import MLflowConfig, PollingConfig
from featurelab.errors import InvalidStateTransition, ModelTrainingFailed
from featurelab.evaluation.collector import EvaluationCollector, EvaluationResult
from featurelab.evaluation.tracker import ExperimentTracker
from featurelab.features.transform_set import TransformSet
from featurelab.modeling.backend import JobStatus
from featurelab.modeling.models import ModelKind
from featurelab.modeling.submitter import ModelHandle, TrainingJobSubmitter
from featurelab.utils.logging import get_logger, log_context

log = get_logger(__name__)


class ExperimentState(str, Enum):
    """Lifecycle state of one experiment."""

    DEFINED = "defined"
    SUBMITTED = "submitted"
    READY = "ready"
    FAILED = "failed"
    EVALUATED = "evaluated"


TRANSITIONS: dict[ExperimentState, frozenset[ExperimentState]] = {
    ExperimentState.DEFINED: frozenset({ExperimentState.SUBMITTED}),
    ExperimentState.SUBMITTED: frozenset({ExperimentState.READY, ExperimentState.FAILED}),
    ExperimentState.READY: frozenset({ExperimentState.EVALUATED}),
    ExperimentState.FAILED: frozenset(),
    ExperimentState.EVALUATED: frozenset(),
}

TERMINAL_STATES = frozenset({ExperimentState.EVALUATED, ExperimentState.FAILED})


class Experiment:
    """
    One TransformSet on its way through training and evaluation.

    Attributes:
        transform_set: Configuration under test.
        state: Current lifecycle state.
        handle: Model handle once submitted.
        result: Evaluation once evaluated.
        error: Message of the failure that stopped the experiment, if any.
        sink_errors: Failures of experiment sinks after recording.
    """

    def __init__(self, transform_set: TransformSet) -> None:
        self.transform_set = transform_set
        self.state = ExperimentState.DEFINED
        self.handle: ModelHandle | None = None
        self.result: EvaluationResult | None = None
        self.error: str | None = None
        self.sink_errors: list[str] = []

    def __repr__(self) -> str:
        return f"Experiment({self.transform_set.name!r}, state={self.state.value})"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _move(self, target: ExperimentState) -> None:
        if target not in TRANSITIONS[self.state]:
            msg = (
                f"Experiment '{self.transform_set.name}' cannot move from "
                f"{self.state.value} to {target.value}"
            )
            raise InvalidStateTransition(msg)
        log.debug(
            "Experiment transition",
            transform_set=self.transform_set.name,
            source=self.state.value,
            target=target.value,
        )
        self.state = target

    def submitted(self, handle: ModelHandle) -> None:
        self._move(ExperimentState.SUBMITTED)
        self.handle = handle

    def ready(self) -> None:
        self._move(ExperimentState.READY)

    def failed(self, reason: str | None) -> None:
        self._move(ExperimentState.FAILED)
        self.error = reason

    def evaluated(self, result: EvaluationResult) -> None:
        self._move(ExperimentState.EVALUATED)
        self.result = result


class ExperimentSink(Protocol):
    """Receives every recorded experiment (e.g. an experiment tracking server)."""

    def log_experiment(self, transform_set: TransformSet, result: EvaluationResult) -> None:
        ...


class MlflowSink:
    """Logs each recorded experiment as an MLflow run."""

    def __init__(self, config: MLflowConfig, experiment_name: str) -> None:
        self.config = config
        self.experiment_name = experiment_name
        self._lock = Lock()

    def log_experiment(self, transform_set: TransformSet, result: EvaluationResult) -> None:
        handle = result.model_handle
        tags = {
            "transform_set_id": transform_set.identity,
            "model_name": handle.model_name,
            "model_kind": handle.model_kind,
            "job_id": handle.job_id,
        }
        params = {
            "transform_set": transform_set.name,
            "label": transform_set.label,
            "features": ",".join(transform_set.feature_names),
            "n_features": len(transform_set.features),
        }
        metrics = {k: float(v) for k, v in result.metrics.items() if not math.isnan(float(v))}

        # The fluent MLflow API keeps one active run per process
        with self._lock:
            mlflow.set_tracking_uri(self.config.tracking_uri)
            mlflow.set_experiment(self.experiment_name)
            with mlflow.start_run(run_name=transform_set.name, tags=tags) as run:
                mlflow.log_params(params)
                mlflow.log_metrics(metrics)

        log.info("Logged MLflow run", run_id=run.info.run_id, transform_set=transform_set.name)


class ExperimentRunner:
    """
    Drives TransformSets through submit, wait, evaluate and record.

    A failing experiment stops on its own; earlier records are untouched.
    """

    def __init__(
        self,
        submitter: TrainingJobSubmitter,
        collector: EvaluationCollector,
        tracker: ExperimentTracker,
        *,
        polling: PollingConfig | None = None,
        model_kind: str | ModelKind = ModelKind.LINEAR_REG,
        sinks: list[ExperimentSink] | None = None,
    ) -> None:
        self.submitter = submitter
        self.collector = collector
        self.tracker = tracker
        self.polling = polling or PollingConfig()
        self.model_kind = model_kind
        self.sinks = list(sinks or [])
        self._lock = Lock()
        self._claimed: set[str] = set()

    def _claim(self, transform_set: TransformSet) -> None:
        with self._lock:
            if transform_set.identity in self._claimed:
                msg = (
                    f"TransformSet '{transform_set.name}' ({transform_set.identity}) "
                    "has already been run; define a new feature configuration"
                )
                raise InvalidStateTransition(msg)
            self._claimed.add(transform_set.identity)

    def _release(self, transform_set: TransformSet) -> None:
        with self._lock:
            self._claimed.discard(transform_set.identity)

    def run(self, transform_set: TransformSet, model_name: str | None = None) -> Experiment:
        """
        Run one experiment to a terminal state.

        Raises:
            InvalidStateTransition: The identity was already run.
            ModelTrainingFailed: Training failed (experiment is FAILED).
            ExperimentError: Any other typed failure of a step.
        """
        experiment = Experiment(transform_set)
        self._drive(experiment, model_name)
        return experiment

    def _drive(self, experiment: Experiment, model_name: str | None = None) -> None:
        transform_set = experiment.transform_set
        self._claim(transform_set)

        with log_context(transform_set=transform_set.name):
            try:
                handle = self.submitter.submit(transform_set, self.model_kind, model_name)
                experiment.submitted(handle)

                status = self.submitter.wait(handle, self.polling)
                if status is JobStatus.FAILED:
                    reason = self.submitter.failure_reason(handle)
                    experiment.failed(reason)
                    msg = f"Training '{handle.model_name}' failed: {reason}"
                    raise ModelTrainingFailed(msg)

                experiment.ready()
                result = self.collector.evaluate(handle)
                experiment.evaluated(result)
            except Exception as e:
                if experiment.error is None:
                    experiment.error = str(e)
                if not experiment.is_terminal:
                    self._release(transform_set)
                log.warning(
                    "Experiment stopped",
                    state=experiment.state.value,
                    error=experiment.error,
                )
                raise

            self.tracker.record(transform_set, result)
            self._notify_sinks(experiment)

    def _notify_sinks(self, experiment: Experiment) -> None:
        # A sink failure is a logging problem, not an experiment failure
        for sink in self.sinks:
            try:
                sink.log_experiment(experiment.transform_set, experiment.result)
            except Exception as e:
                experiment.sink_errors.append(f"{type(sink).__name__}: {e}")
                log.warning(
                    "Experiment sink failed",
                    sink=type(sink).__name__,
                    error=str(e),
                )

    def run_all(
        self,
        transform_sets: list[TransformSet],
        max_workers: int = 1,
    ) -> list[Experiment]:
        """
        Run independent experiments, concurrently when max_workers > 1.

        Failures are logged and kept on the returned experiments; they do
        not stop the other experiments.

        Returns:
            Experiments in input order.
        """
        experiments = [Experiment(ts) for ts in transform_sets]
        log.info("Running experiments", n=len(experiments), max_workers=max_workers)

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self._drive, exp): exp for exp in experiments}
            for future in as_completed(futures):
                exp = futures[future]
                try:
                    future.result()
                except Exception as e:
                    if exp.error is None:
                        exp.error = str(e)
                    log.error(
                        "Experiment failed",
                        transform_set=exp.transform_set.name,
                        state=exp.state.value,
                        error=str(e),
                    )

        n_done = sum(exp.state is ExperimentState.EVALUATED for exp in experiments)
        log.info("Experiments finished", evaluated=n_done, total=len(experiments))
        return experiments
