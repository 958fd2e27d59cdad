"""
Training job submission.

Builds model definitions from TransformSets, submits them to a trainer
backend and tracks which handle is current for each model name.
"""

import itertools
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Iterable, Mapping

from featurelab.config.settings import PollingConfig
from featurelab.errors import (
    InvalidField,
    ModelNotReady,
    ModelSuperseded,
    ModelTrainingFailed,
    SubmissionRejected,
)
from featurelab.features.transform_set import TransformSet
from featurelab.modeling.backend import JobStatus, ModelRequest, Prediction, TrainerBackend
from featurelab.modeling.models import ModelKind, is_known_kind, is_regression
from featurelab.schemas.rental import RawRecord
from featurelab.utils.logging import get_logger

log = get_logger(__name__)

# pandas dtype kinds accepted as a regression label
NUMERIC_KINDS = frozenset("iuf")


@dataclass(frozen=True)
class ModelHandle:
    """
    Opaque reference to one submission.

    Attributes:
        model_name: Name the model is stored under.
        job_id: Trainer job identifier.
        model_kind: Submitted model kind.
        transform_set_id: Identity of the submitted TransformSet.
        submitted_at: Submission time (UTC).
        sequence: Submission order within this submitter.
    """

    model_name: str
    job_id: str
    model_kind: str
    transform_set_id: str
    submitted_at: datetime
    sequence: int


class TrainingJobSubmitter:
    """
    Client of a trainer backend.

    Resubmitting under an existing model name replaces the earlier model;
    only the newest handle for a name can be queried.
    """

    def __init__(self, backend: TrainerBackend) -> None:
        self.backend = backend
        self._lock = Lock()
        self._sequence = itertools.count()
        self._current: dict[str, ModelHandle] = {}
        self._transform_sets: dict[str, TransformSet] = {}

    def submit(
        self,
        transform_set: TransformSet,
        model_kind: str | ModelKind = ModelKind.LINEAR_REG,
        model_name: str | None = None,
    ) -> ModelHandle:
        """
        Submit a model definition for training.

        Returns immediately; poll `status` or call `wait` for readiness.

        Args:
            transform_set: Features and label to train on.
            model_kind: Model kind (default: linear_reg).
            model_name: Storage name (default: the TransformSet name).

        Returns:
            Handle of the new submission.

        Raises:
            SubmissionRejected: Unknown kind, or non-numeric label for a
                regression kind.
            InvalidField: Label or a feature dependency is not in the table.
        """
        kind = model_kind.value if isinstance(model_kind, ModelKind) else str(model_kind)
        name = model_name or transform_set.name

        if not is_known_kind(kind):
            msg = f"Unknown model kind '{kind}'"
            raise SubmissionRejected(msg)

        field_types = self.backend.field_types()
        available = sorted(field_types)
        for dep in sorted(transform_set.dependencies | {transform_set.label}):
            if dep not in field_types:
                raise InvalidField(dep, available)

        label_kind = field_types[transform_set.label]
        if is_regression(kind) and label_kind not in NUMERIC_KINDS:
            msg = (
                f"Label '{transform_set.label}' is not numeric (dtype kind "
                f"'{label_kind}'); '{kind}' requires a numeric label"
            )
            raise SubmissionRejected(msg)

        request = ModelRequest(model_name=name, transform_set=transform_set, model_kind=kind)

        with self._lock:
            job_id = self.backend.start(request)
            handle = ModelHandle(
                model_name=name,
                job_id=job_id,
                model_kind=kind,
                transform_set_id=transform_set.identity,
                submitted_at=datetime.now(timezone.utc),
                sequence=next(self._sequence),
            )
            previous = self._current.get(name)
            self._current[name] = handle
            self._transform_sets[job_id] = transform_set

        if previous is not None:
            log.info(
                "Replacing model",
                model=name,
                previous_job=previous.job_id,
                job_id=job_id,
            )
            self.backend.drop(previous.job_id)
            with self._lock:
                self._transform_sets.pop(previous.job_id, None)

        log.info(
            "Submitted model",
            model=name,
            kind=kind,
            job_id=job_id,
            transform_set=transform_set.name,
            transform_set_id=handle.transform_set_id,
        )
        return handle

    def current(self, model_name: str) -> ModelHandle:
        """
        Newest handle for a model name.

        Raises:
            KeyError: If nothing was submitted under the name.
        """
        with self._lock:
            if model_name not in self._current:
                msg = f"No model named '{model_name}'"
                raise KeyError(msg)
            return self._current[model_name]

    def _check_current(self, handle: ModelHandle) -> None:
        with self._lock:
            current = self._current.get(handle.model_name)
        if current is None or current.job_id != handle.job_id:
            msg = f"Model '{handle.model_name}' job {handle.job_id} was replaced"
            raise ModelSuperseded(msg)

    def status(self, handle: ModelHandle) -> JobStatus:
        """
        Current state of a submission.

        Raises:
            ModelSuperseded: If a newer submission replaced this handle.
        """
        self._check_current(handle)
        return self.backend.poll(handle.job_id)

    def failure_reason(self, handle: ModelHandle) -> str | None:
        """Error message of a failed submission."""
        self._check_current(handle)
        return self.backend.failure_reason(handle.job_id)

    def wait(self, handle: ModelHandle, polling: PollingConfig) -> JobStatus:
        """
        Poll until the job leaves the pending state.

        Args:
            handle: Submission to wait for.
            polling: Attempt count and interval.

        Returns:
            READY or FAILED.

        Raises:
            ModelNotReady: If still pending after max_attempts polls.
        """
        for attempt in range(1, polling.max_attempts + 1):
            status = self.status(handle)
            if status is not JobStatus.PENDING:
                log.debug("Job settled", job_id=handle.job_id, status=status.value, attempt=attempt)
                return status
            if attempt < polling.max_attempts:
                time.sleep(polling.interval_s)

        msg = (
            f"Model '{handle.model_name}' still pending after "
            f"{polling.max_attempts} polls"
        )
        raise ModelNotReady(msg)

    def metrics(self, handle: ModelHandle) -> dict[str, float]:
        """Run the metric query for a ready model."""
        self._check_current(handle)
        return self.backend.evaluate(handle.job_id)

    def transform_set(self, handle: ModelHandle) -> TransformSet:
        """TransformSet persisted with the model."""
        self._check_current(handle)
        with self._lock:
            return self._transform_sets[handle.job_id]

    def predict(
        self,
        handle: ModelHandle,
        records: Iterable[RawRecord | Mapping[str, Any]],
    ) -> list[Prediction]:
        """
        Predict labels for raw records using the persisted transforms.

        Raises:
            CausalityViolation: If the model uses training-only features.
            ModelNotReady: If training has not finished.
            ModelTrainingFailed: If training failed.
        """
        self.transform_set(handle).for_prediction()

        status = self.status(handle)
        if status is JobStatus.PENDING:
            msg = f"Model '{handle.model_name}' is still training"
            raise ModelNotReady(msg)
        if status is JobStatus.FAILED:
            msg = f"Model '{handle.model_name}' failed: {self.failure_reason(handle)}"
            raise ModelTrainingFailed(msg)

        return self.backend.predict(handle.job_id, records)
