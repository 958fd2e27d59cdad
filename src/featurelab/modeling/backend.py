"""
Trainer backends.

The trainer is an external collaborator reached through a small
start/poll/evaluate/predict interface. `LocalTrainerBackend` implements it
in-process with scikit-learn, running each training job on a worker
thread so submission returns immediately.
"""

import time
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder

from featurelab.config.settings import TrainingConfig
from featurelab.errors import ModelNotReady, ModelTrainingFailed
from featurelab.evaluation.metrics import compute_metrics
from featurelab.features.definitions import FeatureKind
from featurelab.features.transform_set import TransformSet, transform_frame
from featurelab.ingestion.base import DataSource
from featurelab.modeling.models import get_model
from featurelab.schemas.rental import RawRecord
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


class JobStatus(str, Enum):
    """Training job state as reported by the trainer."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelRequest:
    """
    Model definition sent to the trainer.

    The transform set travels with the request and is persisted with the
    model, so prediction callers pass raw records.
    """

    model_name: str
    transform_set: TransformSet
    model_kind: str


@dataclass(frozen=True)
class Prediction:
    """
    Predicted label for one record.

    Attributes:
        predicted_label: Predicted value.
        contributions: Per-feature share of the prediction (linear models only).
    """

    predicted_label: float
    contributions: dict[str, float] | None = None


class TrainerBackend(ABC):
    """Interface to a model trainer."""

    @abstractmethod
    def field_types(self) -> dict[str, str]:
        """Dtype kind of each field of the training table."""
        ...

    @abstractmethod
    def start(self, request: ModelRequest) -> str:
        """Start training and return a job id without waiting."""
        ...

    @abstractmethod
    def poll(self, job_id: str) -> JobStatus:
        """Current state of a job."""
        ...

    @abstractmethod
    def failure_reason(self, job_id: str) -> str | None:
        """Error message of a failed job."""
        ...

    @abstractmethod
    def evaluate(self, job_id: str) -> dict[str, float]:
        """Metric map of a ready model on its held-out split."""
        ...

    @abstractmethod
    def predict(
        self, job_id: str, records: Iterable[RawRecord | Mapping[str, Any]]
    ) -> list[Prediction]:
        """Predict labels for raw records."""
        ...

    @abstractmethod
    def drop(self, job_id: str) -> None:
        """Release a model that has been replaced."""
        ...


@dataclass
class TrainedModel:
    """
    Container for a trained model with its held-out split.

    Attributes:
        request: Model definition that produced it.
        pipeline: Fitted sklearn pipeline (encoding + estimator).
        X_eval: Held-out feature frame.
        y_eval: Held-out labels.
        n_train: Number of training rows.
        training_time_s: Fit time in seconds.
    """

    request: ModelRequest
    pipeline: Pipeline
    X_eval: pd.DataFrame
    y_eval: pd.Series
    n_train: int
    training_time_s: float = 0.0


def build_pipeline(transform_set: TransformSet, model_kind: str) -> Pipeline:
    """
    Build the encoding + estimator pipeline for a transform set.

    Each feature gets its own encoder so contributions can be attributed
    per feature.
    """
    transformers: list[tuple[str, Any, list[str]]] = []
    for feature in transform_set.features:
        if feature.kind is FeatureKind.NUMERIC:
            transformers.append((feature.name, "passthrough", [feature.name]))
        else:
            encoder = OneHotEncoder(handle_unknown="ignore", sparse_output=False)
            transformers.append((feature.name, encoder, [feature.name]))

    preprocessor = ColumnTransformer(transformers, remainder="drop", sparse_threshold=0.0)
    return Pipeline([("transform", preprocessor), ("model", get_model(model_kind))])


class LocalTrainerBackend(TrainerBackend):
    """
    In-process trainer using scikit-learn.

    Trains on every row of the source, holding out `eval_fraction` of it
    for evaluation.
    """

    def __init__(self, source: DataSource, config: TrainingConfig | None = None) -> None:
        """
        Initialize backend.

        Args:
            source: Table the models are trained on.
            config: Training configuration.
        """
        self.source = source
        self.config = config or TrainingConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="trainer"
        )
        self._jobs: dict[str, Future[TrainedModel]] = {}
        self._lock = Lock()

    def field_types(self) -> dict[str, str]:
        return self.source.field_types()

    def start(self, request: ModelRequest) -> str:
        job_id = uuid.uuid4().hex[:12]
        future = self._executor.submit(self._train, request, job_id)
        with self._lock:
            self._jobs[job_id] = future
        log.info("Training job started", job_id=job_id, model=request.model_name)
        return job_id

    def poll(self, job_id: str) -> JobStatus:
        future = self._future(job_id)
        if not future.done():
            return JobStatus.PENDING
        if future.cancelled() or future.exception() is not None:
            return JobStatus.FAILED
        return JobStatus.READY

    def failure_reason(self, job_id: str) -> str | None:
        future = self._future(job_id)
        if not future.done():
            return None
        if future.cancelled():
            return "cancelled"
        error = future.exception()
        return f"{type(error).__name__}: {error}" if error is not None else None

    def evaluate(self, job_id: str) -> dict[str, float]:
        model = self._model(job_id)
        y_pred = model.pipeline.predict(model.X_eval)
        metrics = compute_metrics(model.y_eval.to_numpy(), y_pred)
        return metrics.to_dict()

    def predict(
        self, job_id: str, records: Iterable[RawRecord | Mapping[str, Any]]
    ) -> list[Prediction]:
        model = self._model(job_id)
        transform_set = model.request.transform_set
        X = transform_frame(transform_set, records)
        if X.empty:
            return []

        predicted = model.pipeline.predict(X)
        contributions = _linear_contributions(model.pipeline, X, transform_set.feature_names)

        return [
            Prediction(
                predicted_label=float(value),
                contributions=contributions[i] if contributions is not None else None,
            )
            for i, value in enumerate(predicted)
        ]

    def drop(self, job_id: str) -> None:
        with self._lock:
            future = self._jobs.pop(job_id, None)
        if future is not None and future.cancel():
            log.info("Cancelled replaced training job", job_id=job_id)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop the worker pool."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def _future(self, job_id: str) -> Future[TrainedModel]:
        with self._lock:
            if job_id not in self._jobs:
                msg = f"Unknown training job '{job_id}'"
                raise KeyError(msg)
            return self._jobs[job_id]

    def _model(self, job_id: str) -> TrainedModel:
        future = self._future(job_id)
        if not future.done():
            msg = f"Training job '{job_id}' is still running"
            raise ModelNotReady(msg)
        if future.cancelled() or future.exception() is not None:
            msg = f"Training job '{job_id}' failed: {self.failure_reason(job_id)}"
            raise ModelTrainingFailed(msg)
        return future.result()

    def _train(self, request: ModelRequest, job_id: str) -> TrainedModel:
        start = time.perf_counter()
        transform_set = request.transform_set

        df = self.source.load()
        X = transform_frame(transform_set, df)
        y = df[transform_set.label].astype(float).reset_index(drop=True)

        if len(X) < 2:
            msg = f"Need at least 2 rows to train and evaluate, got {len(X)}"
            raise ValueError(msg)

        X_train, X_eval, y_train, y_eval = train_test_split(
            X,
            y,
            test_size=self.config.eval_fraction,
            random_state=self.config.random_state,
        )

        pipeline = build_pipeline(transform_set, request.model_kind)
        pipeline.fit(X_train, y_train)
        elapsed = time.perf_counter() - start

        log.info(
            "Training job finished",
            job_id=job_id,
            model=request.model_name,
            n_train=len(X_train),
            n_eval=len(X_eval),
            training_time_s=round(elapsed, 3),
        )
        return TrainedModel(
            request=request,
            pipeline=pipeline,
            X_eval=X_eval,
            y_eval=y_eval,
            n_train=len(X_train),
            training_time_s=elapsed,
        )


def _linear_contributions(
    pipeline: Pipeline,
    X: pd.DataFrame,
    feature_names: list[str],
) -> list[dict[str, float]] | None:
    """Split each linear prediction into per-feature weight contributions."""
    model = pipeline.named_steps["model"]
    if not hasattr(model, "coef_"):
        return None

    preprocessor: ColumnTransformer = pipeline.named_steps["transform"]
    encoded = np.asarray(preprocessor.transform(X), dtype=float)
    weighted = encoded * np.asarray(model.coef_, dtype=float).ravel()

    slices = preprocessor.output_indices_
    return [
        {name: float(row[slices[name]].sum()) for name in feature_names}
        for row in weighted
    ]
