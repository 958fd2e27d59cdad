"""
Base classes for read-only tabular sources.

All sources validate against the rentals schema at the system boundary
and report unreachable data as SourceUnavailable.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

import pandas as pd
import pandera.errors

from featurelab.errors import SourceUnavailable
from featurelab.schemas.rental import RawRecord, RentalSchema, iter_records
from featurelab.utils.logging import get_logger

log = get_logger(__name__)


class DataSource(ABC):
    """
    Abstract base class for rental data sources.

    Subclasses implement `_load_raw`; loading, validation and caching are
    shared.
    """

    def __init__(self, table: str, *, validate: bool = True) -> None:
        """
        Initialize data source.

        Args:
            table: Table identifier the source answers for.
            validate: Whether to validate against RentalSchema on load.
        """
        self.table = table
        self.validate = validate
        self._cached: pd.DataFrame | None = None

    @abstractmethod
    def _load_raw(self) -> pd.DataFrame:
        """Load raw data from the source. Implemented by subclasses."""
        ...

    def load(self) -> pd.DataFrame:
        """
        Load and validate the whole table (cached after the first call).

        Returns:
            Validated DataFrame. Callers must not mutate it.

        Raises:
            SourceUnavailable: If the data cannot be read or fails validation.
        """
        if self._cached is not None:
            return self._cached

        log.info("Loading source", source=self.__class__.__name__, table=self.table)
        df = self._load_raw()

        if self.validate:
            try:
                df = RentalSchema.validate(df)
            except (pandera.errors.SchemaError, pandera.errors.SchemaErrors) as e:
                msg = f"Table '{self.table}' failed schema validation: {e}"
                raise SourceUnavailable(msg) from e

        log.info("Loaded source", table=self.table, rows=len(df), columns=list(df.columns))
        self._cached = df
        return df

    def field_types(self) -> dict[str, str]:
        """Map each field to its pandas dtype kind ('f', 'i', 'O', 'M', ...)."""
        return {col: dtype.kind for col, dtype in self.load().dtypes.items()}

    def records(self) -> Iterator[RawRecord]:
        """Iterate the table as immutable RawRecords."""
        return iter_records(self.load())


class FrameSource(DataSource):
    """Source backed by an in-memory DataFrame."""

    def __init__(self, table: str, frame: pd.DataFrame, *, validate: bool = True) -> None:
        super().__init__(table, validate=validate)
        self._frame = frame

    def _load_raw(self) -> pd.DataFrame:
        return self._frame.copy()


class CsvSource(DataSource):
    """Source backed by a CSV file."""

    def __init__(self, table: str, path: Path, *, validate: bool = True) -> None:
        super().__init__(table, validate=validate)
        self.path = Path(path)

    def _load_raw(self) -> pd.DataFrame:
        if not self.path.exists():
            msg = f"Source file not found: {self.path}"
            raise SourceUnavailable(msg)
        try:
            return pd.read_csv(self.path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            msg = f"Cannot read source file {self.path}: {e}"
            raise SourceUnavailable(msg) from e
