"""
Data access for rental records.

Read-only sources with schema validation, and the aggregation accessor
used for exploratory queries.
"""

from featurelab.ingestion.aggregation import (
    AggregateFunction,
    AggregateRow,
    AggregationSpec,
    DatasetAccessor,
)
from featurelab.ingestion.base import CsvSource, DataSource, FrameSource

__all__ = [
    "AggregateFunction",
    "AggregateRow",
    "AggregationSpec",
    "CsvSource",
    "DataSource",
    "DatasetAccessor",
    "FrameSource",
]
