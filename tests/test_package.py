"""Basic package tests to verify installation."""


def test_package_imports() -> None:
    """Verify the main package can be imported."""
    import featurelab

    assert featurelab.__version__


def test_config_module_imports() -> None:
    """Verify config module structure is correct."""
    from featurelab.config import (
        EvaluationConfig,
        PollingConfig,
        RunnerConfig,
        SourceConfig,
        TrainingConfig,
        TransformSetConfig,
        load_config,
    )

    assert RunnerConfig is not None
    assert SourceConfig is not None
    assert TrainingConfig is not None
    assert PollingConfig is not None
    assert EvaluationConfig is not None
    assert TransformSetConfig is not None
    assert load_config is not None


def test_error_taxonomy() -> None:
    """All typed failures share one base class."""
    from featurelab import errors

    for name in [
        "SourceUnavailable",
        "InvalidField",
        "OutOfRange",
        "CausalityViolation",
        "SubmissionRejected",
        "ModelNotReady",
        "ModelTrainingFailed",
        "NoExperiments",
        "InvalidStateTransition",
    ]:
        assert issubclass(getattr(errors, name), errors.ExperimentError)

    assert issubclass(errors.ModelSuperseded, errors.ModelNotReady)
