"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd
import pytest

from featurelab.ingestion.base import FrameSource
from featurelab.modeling.backend import JobStatus, ModelRequest, Prediction, TrainerBackend

STATIONS = ["Hyde Park Corner", "Waterloo Station 3", "Kings Cross", "Borough Market"]


class FakeBackend(TrainerBackend):
    """
    Scripted trainer backend.

    Each job reports the statuses in `script` one poll at a time and then
    repeats the last one. `mae` maps model names to the reported error.
    """

    def __init__(
        self,
        script: list[JobStatus] | None = None,
        mae: dict[str, float] | None = None,
        field_types: dict[str, str] | None = None,
    ) -> None:
        self.script = script or [JobStatus.READY]
        self.mae = mae or {}
        self._field_types = field_types or {
            "duration": "f",
            "start_station_name": "O",
            "start_date": "M",
            "end_station_name": "O",
        }
        self.requests: dict[str, ModelRequest] = {}
        self.polls: dict[str, int] = {}
        self.evaluations: list[str] = []
        self.dropped: list[str] = []

    def field_types(self) -> dict[str, str]:
        return dict(self._field_types)

    def start(self, request: ModelRequest) -> str:
        job_id = f"job-{len(self.requests)}"
        self.requests[job_id] = request
        self.polls[job_id] = 0
        return job_id

    def poll(self, job_id: str) -> JobStatus:
        index = min(self.polls[job_id], len(self.script) - 1)
        self.polls[job_id] += 1
        return self.script[index]

    def failure_reason(self, job_id: str) -> str | None:
        return "scripted failure" if self.script[-1] is JobStatus.FAILED else None

    def evaluate(self, job_id: str) -> dict[str, float]:
        self.evaluations.append(job_id)
        name = self.requests[job_id].model_name
        return {
            "mean_absolute_error": self.mae.get(name, 100.0),
            "mean_squared_error": 1.0,
            "n_samples": 10,
        }

    def predict(
        self, job_id: str, records: Iterable[Any | Mapping[str, Any]]
    ) -> list[Prediction]:
        return [Prediction(predicted_label=1.0) for _ in records]

    def drop(self, job_id: str) -> None:
        self.dropped.append(job_id)


@pytest.fixture
def fake_backend_factory() -> type[FakeBackend]:
    """The scripted backend class, for tests that configure their own."""
    return FakeBackend


@pytest.fixture
def sample_rentals() -> pd.DataFrame:
    """
    Synthetic rentals with a weekend effect and an hour-of-day effect.

    Durations are longer on weekends and in the 10-17 window.
    """
    rng = np.random.default_rng(42)
    n = 400
    start = pd.Timestamp("2016-06-06")  # a Monday
    hours = rng.integers(0, 24 * 28, n)
    start_date = start + pd.to_timedelta(hours, unit="h")
    stations = rng.choice(STATIONS, n)

    weekend = start_date.dayofweek >= 5
    midday = (start_date.hour >= 10) & (start_date.hour < 17)
    station_effect = pd.Series(stations).map(
        {name: 60.0 * i for i, name in enumerate(STATIONS)}
    ).to_numpy()
    duration = (
        600.0
        + 900.0 * weekend
        + 400.0 * midday
        + station_effect
        + rng.normal(0.0, 50.0, n)
    ).clip(min=60.0)

    return pd.DataFrame(
        {
            "duration": duration,
            "start_station_name": stations,
            "start_date": start_date,
            "end_station_name": rng.choice(STATIONS, n),
        }
    )


@pytest.fixture
def rentals_source(sample_rentals: pd.DataFrame) -> FrameSource:
    """In-memory source over the synthetic rentals."""
    return FrameSource("bikeshare_trips", sample_rentals)


@pytest.fixture
def rentals_csv(tmp_path: Path, sample_rentals: pd.DataFrame) -> Path:
    """Synthetic rentals written to CSV."""
    path = tmp_path / "bikeshare_trips.csv"
    sample_rentals.to_csv(path, index=False)
    return path


@pytest.fixture
def config_file(tmp_path: Path, rentals_csv: Path) -> Path:
    """Minimal runner config pointing at the synthetic CSV."""
    path = tmp_path / "experiment.yaml"
    path.write_text(
        f"""
project: test-duration
source:
  path: {rentals_csv.name}
training:
  max_workers: 2
polling:
  max_attempts: 400
  interval_s: 0.05
evaluation:
  recheck_interval_s: 0.0
transform_sets:
  - name: station_dow
    features: [start_station_name, dayofweek]
  - name: fused_buckets
    features:
      - start_station_name
      - dayofweek_fused
      - name: hourofday_bucket
        params:
          boundaries: [5, 10, 17]
""",
        encoding="utf-8",
    )
    return path
