"""
Scalar transforms applied to raw record fields.

Day-of-week numbering follows the warehouse convention: 1 = Sunday,
7 = Saturday.
"""

import numbers
from bisect import bisect_right
from datetime import datetime
from typing import Sequence

from featurelab.errors import OutOfRange

WEEKDAY = "weekday"
WEEKEND = "weekend"

DEFAULT_HOUR_BOUNDARIES: tuple[float, ...] = (5, 10, 17)


def _is_integer(value: object) -> bool:
    # numbers.Integral covers numpy integers; bool is not a day or an hour
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def day_of_week(ts: datetime) -> int:
    """Day of week of a timestamp, 1 (Sunday) through 7 (Saturday)."""
    # datetime.weekday(): Monday = 0 .. Sunday = 6
    return (ts.weekday() + 1) % 7 + 1


def hour_of_day(ts: datetime) -> int:
    """Hour of day of a timestamp, 0 through 23."""
    return ts.hour


def weekday_fusion(day: int) -> str:
    """
    Fuse a day-of-week number into weekday/weekend.

    Args:
        day: Day of week, 1 (Sunday) through 7 (Saturday).

    Returns:
        "weekday" for 2..6, "weekend" for 1 and 7.

    Raises:
        OutOfRange: If day is not an integer in 1..7.
    """
    if not _is_integer(day) or not 1 <= day <= 7:
        msg = f"Day of week must be an integer in [1, 7], got {day!r}"
        raise OutOfRange(msg)
    return WEEKDAY if 2 <= day <= 6 else WEEKEND


def validate_boundaries(boundaries: Sequence[float]) -> tuple[float, ...]:
    """
    Check that bucket boundaries are strictly increasing.

    Raises:
        ValueError: If the list is empty or not strictly increasing.
    """
    cuts = tuple(boundaries)
    if not cuts:
        msg = "At least one bucket boundary is required"
        raise ValueError(msg)
    if any(b <= a for a, b in zip(cuts, cuts[1:])):
        msg = f"Bucket boundaries must be strictly increasing, got {list(cuts)}"
        raise ValueError(msg)
    return cuts


def bucket_index(value: float, boundaries: Sequence[float]) -> int:
    """
    Index of the half-open interval holding value.

    Buckets are (-inf, b0), [b0, b1), ..., [b_last, inf), so there are
    len(boundaries) + 1 of them.
    """
    return bisect_right(validate_boundaries(boundaries), value)


def bucket_label(index: int) -> str:
    """Label for a bucket index; matches the warehouse's bin_1, bin_2, ... names."""
    return f"bin_{index + 1}"


def bucketize(value: float, boundaries: Sequence[float]) -> str:
    """Map a numeric value to its bucket label."""
    return bucket_label(bucket_index(value, boundaries))


def hour_bucket(hour: int, boundaries: Sequence[float] = DEFAULT_HOUR_BOUNDARIES) -> str:
    """
    Bucketize an hour of day.

    Raises:
        OutOfRange: If hour is not an integer in 0..23.
    """
    if not _is_integer(hour) or not 0 <= hour <= 23:
        msg = f"Hour of day must be an integer in [0, 23], got {hour!r}"
        raise OutOfRange(msg)
    return bucketize(hour, boundaries)


def cast_categorical(value: object) -> str:
    """Cast a value to a categorical string (integral floats lose the '.0')."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
