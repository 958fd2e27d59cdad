"""
Wiring of the experiment loop from configuration.

Builds source, trainer, submitter, collector, tracker and runner for a
RunnerConfig and runs every configured TransformSet.
"""

from dataclasses import dataclass, field
from typing import Iterator

from featurelab.config.settings import RunnerConfig
from featurelab.evaluation.collector import EvaluationCollector
from featurelab.evaluation.experiment import (
    Experiment,
    ExperimentRunner,
    ExperimentSink,
    MlflowSink,
)
from featurelab.evaluation.tracker import ExperimentTracker
from featurelab.features.definitions import FeatureRegistry, get_registry
from featurelab.features.transform_set import TransformSet
from featurelab.ingestion.aggregation import AggregateRow, AggregationSpec, DatasetAccessor
from featurelab.ingestion.base import CsvSource, DataSource
from featurelab.modeling.backend import LocalTrainerBackend
from featurelab.modeling.submitter import TrainingJobSubmitter
from featurelab.utils.hashing import hash_config
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class ExperimentSession:
    """All collaborators of one experiment run."""

    config: RunnerConfig
    source: DataSource
    accessor: DatasetAccessor
    backend: LocalTrainerBackend
    submitter: TrainingJobSubmitter
    collector: EvaluationCollector
    tracker: ExperimentTracker
    runner: ExperimentRunner
    registry: FeatureRegistry = field(default_factory=get_registry)

    def transform_sets(self) -> list[TransformSet]:
        """TransformSets defined in the configuration."""
        return [
            TransformSet.from_config(ts_config, self.registry)
            for ts_config in self.config.transform_sets
        ]

    def query(self, spec: AggregationSpec) -> Iterator[AggregateRow]:
        """Run an aggregation query against the configured source."""
        return self.accessor.query(spec)

    def run(self) -> list[Experiment]:
        """Run all configured TransformSets."""
        return self.runner.run_all(
            self.transform_sets(),
            max_workers=self.config.training.max_workers,
        )

    def close(self) -> None:
        """Stop trainer workers."""
        self.backend.shutdown()

    def __enter__(self) -> "ExperimentSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_session(
    config: RunnerConfig,
    *,
    source: DataSource | None = None,
    use_mlflow: bool | None = None,
) -> ExperimentSession:
    """
    Build an experiment session.

    Args:
        config: Runner configuration.
        source: Source override (default: CSV at config.source.path).
        use_mlflow: Override config.mlflow.enabled.

    Returns:
        Ready-to-run session.
    """
    if source is None:
        source = CsvSource(config.source.table, config.source.path)

    backend = LocalTrainerBackend(source, config.training)
    submitter = TrainingJobSubmitter(backend)
    collector = EvaluationCollector(submitter, config.evaluation)
    tracker = ExperimentTracker(metric_name=config.evaluation.metric)

    sinks: list[ExperimentSink] = []
    mlflow_enabled = config.mlflow.enabled if use_mlflow is None else use_mlflow
    if mlflow_enabled:
        sinks.append(MlflowSink(config.mlflow, config.experiment_name))

    runner = ExperimentRunner(
        submitter,
        collector,
        tracker,
        polling=config.polling,
        model_kind=config.training.model_kind,
        sinks=sinks,
    )

    log.info(
        "Session ready",
        project=config.project,
        config_hash=hash_config(config),
        table=source.table,
        transform_sets=len(config.transform_sets),
        mlflow=mlflow_enabled,
    )
    return ExperimentSession(
        config=config,
        source=source,
        accessor=DatasetAccessor([source]),
        backend=backend,
        submitter=submitter,
        collector=collector,
        tracker=tracker,
        runner=runner,
    )
