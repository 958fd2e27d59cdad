"""Tests for the experiment lifecycle, runner and session wiring."""

from unittest.mock import MagicMock, patch

import pytest

from featurelab.config import MLflowConfig, PollingConfig, load_config
from featurelab.errors import (
    InvalidStateTransition,
    ModelNotReady,
    ModelTrainingFailed,
)
from featurelab.evaluation.collector import EvaluationCollector, EvaluationResult
from featurelab.evaluation.experiment import (
    Experiment,
    ExperimentRunner,
    ExperimentState,
    MlflowSink,
)
from featurelab.evaluation.tracker import ExperimentTracker
from featurelab.features import FeatureRegistry, TransformSet
from featurelab.ingestion import AggregationSpec
from featurelab.modeling.backend import JobStatus
from featurelab.modeling.submitter import ModelHandle, TrainingJobSubmitter
from featurelab.pipeline import build_session

NO_WAIT = PollingConfig(max_attempts=3, interval_s=0.0)


def make_transform_set(name: str, *feature_names: str) -> TransformSet:
    registry = FeatureRegistry()
    return TransformSet(name=name, features=tuple(registry.get(f) for f in feature_names))


def make_runner(backend, sinks=None) -> ExperimentRunner:
    submitter = TrainingJobSubmitter(backend)
    return ExperimentRunner(
        submitter,
        EvaluationCollector(submitter),
        ExperimentTracker(),
        polling=NO_WAIT,
        sinks=sinks,
    )


class TestExperimentLifecycle:
    """Tests for Experiment state transitions."""

    def test_happy_path(self) -> None:
        experiment = Experiment(make_transform_set("dow", "dayofweek"))
        handle = MagicMock(spec=ModelHandle)
        result = MagicMock(spec=EvaluationResult)

        experiment.submitted(handle)
        experiment.ready()
        experiment.evaluated(result)

        assert experiment.state is ExperimentState.EVALUATED
        assert experiment.is_terminal
        assert experiment.result is result

    def test_failure_is_terminal(self) -> None:
        experiment = Experiment(make_transform_set("dow", "dayofweek"))
        experiment.submitted(MagicMock(spec=ModelHandle))
        experiment.failed("boom")

        assert experiment.is_terminal
        with pytest.raises(InvalidStateTransition):
            experiment.ready()

    def test_cannot_skip_states(self) -> None:
        experiment = Experiment(make_transform_set("dow", "dayofweek"))
        with pytest.raises(InvalidStateTransition, match="defined to evaluated"):
            experiment.evaluated(MagicMock(spec=EvaluationResult))
        with pytest.raises(InvalidStateTransition):
            experiment.ready()

    def test_evaluated_is_final(self) -> None:
        experiment = Experiment(make_transform_set("dow", "dayofweek"))
        experiment.submitted(MagicMock(spec=ModelHandle))
        experiment.ready()
        experiment.evaluated(MagicMock(spec=EvaluationResult))
        with pytest.raises(InvalidStateTransition):
            experiment.submitted(MagicMock(spec=ModelHandle))


class TestExperimentRunner:
    """Tests for ExperimentRunner against the scripted backend."""

    def test_run_records_result(self, fake_backend_factory) -> None:
        runner = make_runner(fake_backend_factory(mae={"fused": 901.0}))
        ts = make_transform_set("fused", "dayofweek_fused")

        experiment = runner.run(ts)

        assert experiment.state is ExperimentState.EVALUATED
        assert experiment.result.metric_value == 901.0
        assert runner.tracker.best() == (ts, experiment.result)

    def test_failed_training(self, fake_backend_factory) -> None:
        runner = make_runner(fake_backend_factory(script=[JobStatus.FAILED]))
        ts = make_transform_set("dow", "dayofweek")
        experiment = Experiment(ts)

        with pytest.raises(ModelTrainingFailed, match="scripted failure"):
            runner._drive(experiment)

        assert experiment.state is ExperimentState.FAILED
        assert experiment.error == "scripted failure"
        assert len(runner.tracker) == 0

    def test_rerun_is_refused(self, fake_backend_factory) -> None:
        backend = fake_backend_factory()
        runner = make_runner(backend)
        runner.run(make_transform_set("dow", "dayofweek"))

        # Same features under another name is the same configuration
        with pytest.raises(InvalidStateTransition, match="already been run"):
            runner.run(make_transform_set("dow_again", "dayofweek"))
        assert len(backend.requests) == 1

    def test_timeout_releases_identity(self, fake_backend_factory) -> None:
        backend = fake_backend_factory(script=[JobStatus.PENDING])
        runner = make_runner(backend)
        ts = make_transform_set("dow", "dayofweek")

        with pytest.raises(ModelNotReady):
            runner.run(ts)

        backend.script = [JobStatus.READY]
        assert runner.run(ts).state is ExperimentState.EVALUATED

    def test_run_all_isolates_failures(self, fake_backend_factory) -> None:
        backend = fake_backend_factory(mae={"raw": 967.0, "fused": 901.0})
        runner = make_runner(backend)
        sets = [
            make_transform_set("raw", "start_station_name", "dayofweek", "hourofday"),
            make_transform_set("fused", "start_station_name", "dayofweek_fused"),
            make_transform_set("fused_again", "start_station_name", "dayofweek_fused"),
        ]

        experiments = runner.run_all(sets)

        assert [exp.transform_set.name for exp in experiments] == [
            "raw",
            "fused",
            "fused_again",
        ]
        assert [exp.state for exp in experiments] == [
            ExperimentState.EVALUATED,
            ExperimentState.EVALUATED,
            ExperimentState.DEFINED,
        ]
        assert "already been run" in experiments[2].error
        assert runner.tracker.best()[0].name == "fused"

    def test_sinks_receive_recorded_experiments(self, fake_backend_factory) -> None:
        sink = MagicMock()
        runner = make_runner(fake_backend_factory(), sinks=[sink])
        ts = make_transform_set("dow", "dayofweek")

        experiment = runner.run(ts)

        sink.log_experiment.assert_called_once_with(ts, experiment.result)

    def test_sink_failure_keeps_experiment(self, fake_backend_factory) -> None:
        broken = MagicMock()
        broken.log_experiment.side_effect = RuntimeError("tracking server down")
        healthy = MagicMock()
        runner = make_runner(fake_backend_factory(), sinks=[broken, healthy])
        ts = make_transform_set("dow", "dayofweek")

        experiment = runner.run(ts)

        assert experiment.state is ExperimentState.EVALUATED
        assert experiment.error is None
        assert "tracking server down" in experiment.sink_errors[0]
        assert runner.tracker.best()[0] is ts
        healthy.log_experiment.assert_called_once_with(ts, experiment.result)

    def test_run_all_sink_failure_is_not_experiment_failure(self, fake_backend_factory) -> None:
        sink = MagicMock()
        sink.log_experiment.side_effect = RuntimeError("tracking server down")
        runner = make_runner(fake_backend_factory(mae={"fused": 901.0}), sinks=[sink])

        experiments = runner.run_all([make_transform_set("fused", "dayofweek_fused")])

        assert experiments[0].state is ExperimentState.EVALUATED
        assert experiments[0].error is None
        assert len(runner.tracker) == 1


class TestMlflowSink:
    """Tests for MLflow logging."""

    @patch("featurelab.evaluation.experiment.mlflow")
    def test_logs_run(self, mock_mlflow: MagicMock) -> None:
        ts = make_transform_set("dow", "dayofweek")
        handle = ModelHandle(
            model_name="dow",
            job_id="job-0",
            model_kind="linear_reg",
            transform_set_id=ts.identity,
            submitted_at=MagicMock(),
            sequence=0,
        )
        result = EvaluationResult(
            model_handle=handle,
            metric_name="mean_absolute_error",
            metric_value=901.0,
            metrics={"mean_absolute_error": 901.0, "r2_score": float("nan")},
        )

        sink = MlflowSink(MLflowConfig(enabled=True, tracking_uri="file:///tmp/mlruns"), "exp")
        sink.log_experiment(ts, result)

        mock_mlflow.set_tracking_uri.assert_called_once_with("file:///tmp/mlruns")
        mock_mlflow.set_experiment.assert_called_once_with("exp")
        _, kwargs = mock_mlflow.start_run.call_args
        assert kwargs["run_name"] == "dow"
        assert kwargs["tags"]["transform_set_id"] == ts.identity
        # NaN metrics are not sent
        mock_mlflow.log_metrics.assert_called_once_with({"mean_absolute_error": 901.0})


class TestSession:
    """End-to-end run of a configuration file."""

    def test_run_configured_transform_sets(self, config_file) -> None:
        config = load_config(config_file)

        with build_session(config, use_mlflow=False) as session:
            experiments = session.run()
            rows = list(session.query(AggregationSpec("bikeshare_trips", "dayofweek")))

            assert [exp.state for exp in experiments] == [
                ExperimentState.EVALUATED,
                ExperimentState.EVALUATED,
            ]
            best_ts, best_result = session.tracker.best()
            assert best_ts.name == "fused_buckets"
            assert best_result.metric_value < min(
                exp.result.metric_value for exp in experiments if exp.transform_set is not best_ts
            )
            assert len(rows) == 7
