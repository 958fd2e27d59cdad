"""
Read-only aggregation queries over registered sources.

Mirrors the exploratory GROUP BY queries used to decide which transform
to try next, e.g. average duration per day of week.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, NamedTuple

import pandas as pd
from pandas.api.types import is_numeric_dtype

from featurelab.errors import InvalidField, SourceUnavailable
from featurelab.features.transforms import day_of_week, hour_of_day
from featurelab.ingestion.base import DataSource
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


class AggregateFunction(str, Enum):
    """Supported aggregate functions."""

    COUNT = "count"
    AVG = "avg"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    MEDIAN = "median"


# Pandas reducer per aggregate function
_REDUCERS: dict[AggregateFunction, str] = {
    AggregateFunction.COUNT: "count",
    AggregateFunction.AVG: "mean",
    AggregateFunction.SUM: "sum",
    AggregateFunction.MIN: "min",
    AggregateFunction.MAX: "max",
    AggregateFunction.MEDIAN: "median",
}

# Group-by keys derived from a raw column: name -> (column, function)
DERIVED_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "dayofweek": ("start_date", day_of_week),
    "hourofday": ("start_date", hour_of_day),
}


@dataclass(frozen=True)
class AggregationSpec:
    """
    Declarative aggregation request.

    Attributes:
        source: Table identifier.
        group_by: Raw column or derived field to group on.
        function: Aggregate function.
        field: Column the function aggregates.
    """

    source: str
    group_by: str
    function: AggregateFunction = AggregateFunction.AVG
    field: str = "duration"

    def __post_init__(self) -> None:
        object.__setattr__(self, "function", AggregateFunction(self.function))


class AggregateRow(NamedTuple):
    """One (key, aggregate value) pair of a query response."""

    key: Any
    value: float


class DatasetAccessor:
    """Executes aggregation queries against registered sources."""

    def __init__(self, sources: list[DataSource] | None = None) -> None:
        self._sources: dict[str, DataSource] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: DataSource) -> None:
        """Make a source queryable under its table identifier."""
        self._sources[source.table] = source

    def source(self, table: str) -> DataSource:
        """
        Look up a registered source.

        Raises:
            SourceUnavailable: If no source is registered for the table.
        """
        if table not in self._sources:
            msg = f"No source registered for table '{table}'"
            raise SourceUnavailable(msg)
        return self._sources[table]

    def query(self, spec: AggregationSpec) -> Iterator[AggregateRow]:
        """
        Run an aggregation query.

        The source is read and every referenced field checked before this
        returns; rows are then yielded lazily in ascending key order. The
        iterator is single-use.

        Raises:
            SourceUnavailable: If the source cannot be reached.
            InvalidField: If group_by or field is not in the schema, or field
                is not numeric for a function other than count.
        """
        df = self.source(spec.source).load()
        available = sorted([*df.columns, *DERIVED_FIELDS])

        if spec.field not in df.columns:
            raise InvalidField(spec.field, available)

        # COUNT works on any column; every other function needs numbers
        if spec.function is not AggregateFunction.COUNT and not is_numeric_dtype(
            df[spec.field]
        ):
            numeric = sorted(c for c in df.columns if is_numeric_dtype(df[c]))
            raise InvalidField(
                spec.field,
                numeric,
                reason=f"is not numeric; {spec.function.value} needs a numeric field",
            )

        if spec.group_by in df.columns:
            keys = df[spec.group_by]
        elif spec.group_by in DERIVED_FIELDS:
            column, fn = DERIVED_FIELDS[spec.group_by]
            if column not in df.columns:
                raise InvalidField(column, available)
            keys = df[column].map(fn)
        else:
            raise InvalidField(spec.group_by, available)

        grouped = df[spec.field].groupby(keys.rename(spec.group_by), sort=True)
        result = grouped.agg(_REDUCERS[spec.function])

        log.info(
            "Aggregation query",
            source=spec.source,
            group_by=spec.group_by,
            function=spec.function.value,
            field=spec.field,
            groups=len(result),
        )
        return _iter_rows(result)


def _iter_rows(result: pd.Series) -> Iterator[AggregateRow]:
    for key, value in result.items():
        yield AggregateRow(key=key, value=float(value))
