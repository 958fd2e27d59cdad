"""
Data contracts for rental records.

Tabular sources are validated with Pandera at the system boundary.
"""

from featurelab.schemas.rental import (
    POST_EVENT_FIELDS,
    RawRecord,
    RentalSchema,
    iter_records,
)

__all__ = [
    "POST_EVENT_FIELDS",
    "RawRecord",
    "RentalSchema",
    "iter_records",
]
