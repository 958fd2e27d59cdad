"""Tests for sources and the aggregation accessor."""

from pathlib import Path

import pandas as pd
import pytest

from featurelab.errors import InvalidField, SourceUnavailable
from featurelab.ingestion import (
    AggregateFunction,
    AggregationSpec,
    CsvSource,
    DatasetAccessor,
    FrameSource,
)
from featurelab.schemas.rental import RawRecord


@pytest.fixture
def accessor(rentals_source: FrameSource) -> DatasetAccessor:
    return DatasetAccessor([rentals_source])


class TestSources:
    """Tests for FrameSource and CsvSource."""

    def test_csv_round_trip(self, rentals_csv: Path, sample_rentals: pd.DataFrame) -> None:
        source = CsvSource("bikeshare_trips", rentals_csv)
        df = source.load()
        assert len(df) == len(sample_rentals)
        assert source.field_types()["duration"] == "f"
        assert source.field_types()["start_date"] == "M"

    def test_records_are_raw_records(self, rentals_source: FrameSource) -> None:
        first = next(rentals_source.records())
        assert isinstance(first, RawRecord)
        assert first.end_station_name is not None

    def test_missing_file(self, tmp_path: Path) -> None:
        source = CsvSource("trips", tmp_path / "missing.csv")
        with pytest.raises(SourceUnavailable, match="not found"):
            source.load()

    def test_schema_failure(self) -> None:
        bad = pd.DataFrame({"duration": [10.0], "start_station_name": ["A"]})
        with pytest.raises(SourceUnavailable, match="schema validation"):
            FrameSource("trips", bad).load()


class TestAggregationQuery:
    """Tests for DatasetAccessor.query."""

    def test_avg_by_dayofweek(
        self, accessor: DatasetAccessor, sample_rentals: pd.DataFrame
    ) -> None:
        rows = list(accessor.query(AggregationSpec("bikeshare_trips", "dayofweek")))
        keys = [row.key for row in rows]
        assert keys == sorted(keys)
        assert set(keys) <= set(range(1, 8))

        # Weekend days (1, 7) carry the long rentals
        by_day = {row.key: row.value for row in rows}
        assert by_day[1] > by_day[3]
        assert by_day[7] > by_day[4]

    def test_count_by_station(
        self, accessor: DatasetAccessor, sample_rentals: pd.DataFrame
    ) -> None:
        spec = AggregationSpec(
            "bikeshare_trips", "start_station_name", AggregateFunction.COUNT
        )
        rows = list(accessor.query(spec))
        assert sum(row.value for row in rows) == len(sample_rentals)

    def test_function_from_string(self, accessor: DatasetAccessor) -> None:
        spec = AggregationSpec("bikeshare_trips", "hourofday", "max")
        assert spec.function is AggregateFunction.MAX
        assert len(list(accessor.query(spec))) <= 24

    def test_rows_are_single_use(self, accessor: DatasetAccessor) -> None:
        rows = accessor.query(AggregationSpec("bikeshare_trips", "dayofweek"))
        assert list(rows)
        assert list(rows) == []

    def test_invalid_group_by(self, accessor: DatasetAccessor) -> None:
        with pytest.raises(InvalidField, match="weather"):
            accessor.query(AggregationSpec("bikeshare_trips", "weather"))

    def test_invalid_value_field(self, accessor: DatasetAccessor) -> None:
        with pytest.raises(InvalidField, match="distance"):
            accessor.query(AggregationSpec("bikeshare_trips", "dayofweek", field="distance"))

    def test_unknown_table(self, accessor: DatasetAccessor) -> None:
        with pytest.raises(SourceUnavailable, match="weather_stations"):
            accessor.query(AggregationSpec("weather_stations", "dayofweek"))

    def test_unreachable_source(self, tmp_path: Path) -> None:
        accessor = DatasetAccessor([CsvSource("trips", tmp_path / "gone.csv")])
        with pytest.raises(SourceUnavailable):
            accessor.query(AggregationSpec("trips", "dayofweek"))

    @pytest.mark.parametrize("function", ["avg", "sum", "min", "max", "median"])
    def test_text_field_needs_count(self, accessor: DatasetAccessor, function: str) -> None:
        spec = AggregationSpec("bikeshare_trips", "dayofweek", function, "start_station_name")
        with pytest.raises(InvalidField, match="not numeric") as excinfo:
            accessor.query(spec)
        assert excinfo.value.available == ["duration"]

    def test_count_text_field(
        self, accessor: DatasetAccessor, sample_rentals: pd.DataFrame
    ) -> None:
        spec = AggregationSpec("bikeshare_trips", "dayofweek", "count", "start_station_name")
        assert sum(row.value for row in accessor.query(spec)) == len(sample_rentals)
