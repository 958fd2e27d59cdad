"""
Rental records: pandera boundary schema and the immutable row type.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Iterator

import pandas as pd
import pandera.pandas as pa
from pandera.typing import Series

# Columns only known once the rental has ended
POST_EVENT_FIELDS: tuple[str, ...] = ("end_station_name", "end_date")


class RentalSchema(pa.DataFrameModel):
    """
    Schema for bike rental records.

    One row per rental. Extra columns (end station, subscriber type, ...)
    are allowed and passed through.
    """

    duration: Series[float] = pa.Field(
        ge=0.0,
        description="Rental duration in seconds (the label)",
    )
    start_station_name: Series[str] = pa.Field(
        description="Name of the station where the rental started",
    )
    start_date: Series[pa.DateTime] = pa.Field(
        description="Rental start timestamp",
    )

    class Config:
        """Schema configuration."""

        name = "RentalSchema"
        strict = False
        coerce = True


@dataclass(frozen=True)
class RawRecord:
    """
    A single rental as read from the source.

    Attributes:
        start_station_name: Start station.
        start_date: Start timestamp.
        duration: Rental duration; None for records awaiting prediction.
        end_station_name: End station (post-event).
        end_date: End timestamp (post-event).
    """

    start_station_name: str
    start_date: datetime
    duration: float | None = None
    end_station_name: str | None = None
    end_date: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return the populated fields as a mapping."""
        return {k: v for k, v in asdict(self).items() if v is not None}


def iter_records(df: pd.DataFrame) -> Iterator[RawRecord]:
    """Yield RawRecords from a validated rentals frame."""
    known = ("start_station_name", "start_date", "duration", *POST_EVENT_FIELDS)
    columns = [c for c in known if c in df.columns]
    for row in df[columns].itertuples(index=False):
        values = {
            name: (None if pd.isna(value) else value)
            for name, value in zip(columns, row)
        }
        yield RawRecord(**values)
