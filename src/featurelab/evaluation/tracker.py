"""
Experiment bookkeeping.

Keeps the log of (TransformSet, EvaluationResult) pairs and answers which
configuration is best. Pure bookkeeping: no I/O.
"""

import math
from dataclasses import dataclass
from threading import Lock

import pandas as pd

from featurelab.errors import NoExperiments
from featurelab.evaluation.collector import EvaluationResult
from featurelab.evaluation.metrics import MEAN_ABSOLUTE_ERROR
from featurelab.features.transform_set import TransformSet
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ExperimentRecord:
    """One entry of the experiment log."""

    transform_set: TransformSet
    result: EvaluationResult
    order: int

    def sort_key(self) -> tuple[float, object, int, int]:
        """Lower metric first; ties go to the earlier submission."""
        value = self.result.metric_value
        handle = self.result.model_handle
        return (
            math.inf if math.isnan(value) else value,
            handle.submitted_at,
            handle.sequence,
            self.order,
        )


class ExperimentTracker:
    """
    Ordered log of experiment outcomes.

    Safe to record from several threads; a single lock serializes writers.
    """

    def __init__(self, metric_name: str = MEAN_ABSOLUTE_ERROR) -> None:
        self.metric_name = metric_name
        self._lock = Lock()
        self._records: list[ExperimentRecord] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def record(self, transform_set: TransformSet, result: EvaluationResult) -> None:
        """
        Append an evaluation to the log.

        Raises:
            ValueError: If the result ranks a different metric.
        """
        if result.metric_name != self.metric_name:
            msg = (
                f"Tracker ranks '{self.metric_name}', "
                f"got a result for '{result.metric_name}'"
            )
            raise ValueError(msg)

        with self._lock:
            self._records.append(
                ExperimentRecord(
                    transform_set=transform_set,
                    result=result,
                    order=len(self._records),
                )
            )

        log.info(
            "Recorded experiment",
            transform_set=transform_set.name,
            transform_set_id=transform_set.identity,
            metric=result.metric_name,
            value=result.metric_value,
        )

    def records(self) -> list[ExperimentRecord]:
        """Snapshot of the log, best first."""
        with self._lock:
            snapshot = list(self._records)
        return sorted(snapshot, key=ExperimentRecord.sort_key)

    def best(self) -> tuple[TransformSet, EvaluationResult]:
        """
        Best configuration found so far.

        Raises:
            NoExperiments: If nothing has been recorded.
        """
        ranked = self.records()
        if not ranked:
            msg = "No experiments recorded"
            raise NoExperiments(msg)
        top = ranked[0]
        return top.transform_set, top.result

    def ranking(self) -> pd.DataFrame:
        """Experiment log as a table, best first."""
        rows = [
            {
                "rank": rank,
                "transform_set": rec.transform_set.name,
                "transform_set_id": rec.transform_set.identity,
                "features": ", ".join(rec.transform_set.feature_names),
                "model": rec.result.model_handle.model_name,
                "metric": rec.result.metric_name,
                "value": rec.result.metric_value,
                "submitted_at": rec.result.model_handle.submitted_at,
            }
            for rank, rec in enumerate(self.records(), start=1)
        ]
        columns = [
            "rank",
            "transform_set",
            "transform_set_id",
            "features",
            "model",
            "metric",
            "value",
            "submitted_at",
        ]
        return pd.DataFrame(rows, columns=columns)

    def explain(self) -> str:
        """
        Say which configuration won and by how much.

        Raises:
            NoExperiments: If nothing has been recorded.
        """
        ranked = self.records()
        if not ranked:
            msg = "No experiments recorded"
            raise NoExperiments(msg)

        best = ranked[0]
        features = ", ".join(best.transform_set.feature_names)
        text = (
            f"'{best.transform_set.name}' [{features}] has the lowest "
            f"{self.metric_name} ({best.result.metric_value:.2f})"
        )
        if len(ranked) == 1:
            return text + "; it is the only experiment recorded."

        runner_up = ranked[1]
        delta = runner_up.result.metric_value - best.result.metric_value
        if delta == 0:
            return text + (
                f", tied with '{runner_up.transform_set.name}' "
                "and submitted earlier."
            )
        relative = delta / runner_up.result.metric_value if runner_up.result.metric_value else 0.0
        return text + (
            f", {delta:.2f} ({relative:.1%}) lower than "
            f"'{runner_up.transform_set.name}' ({runner_up.result.metric_value:.2f})."
        )
