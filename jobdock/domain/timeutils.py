"""
Small time helpers shared by the domain layer.

All instants inside the core are pendulum ``DateTime`` objects; naive input is
interpreted as UTC.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

import pendulum
from pendulum import DateTime

InstantLike = Union[str, datetime, DateTime]


def to_instant(value: InstantLike) -> DateTime:
    """Convert an ISO string or datetime into a timezone-aware pendulum DateTime."""
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        return pendulum.instance(value, tz="UTC")
    if isinstance(value, str):
        parsed = pendulum.parse(value, tz="UTC")
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Expected a date-time, got: {value!r}")
        return parsed
    raise TypeError(f"Unsupported instant value: {value!r}")


def to_until_instant(value: Union[InstantLike, date, None]) -> Optional[DateTime]:
    """
    Resolve a recurrence ``until`` bound.

    A bare date (``2026-03-01``) is inclusive and therefore resolves to the end
    of that day in UTC.
    """
    if value is None:
        return None
    if isinstance(value, str) and len(value.strip()) == 10:
        return pendulum.parse(value.strip(), tz="UTC").end_of("day")
    if isinstance(value, date) and not isinstance(value, datetime):
        return pendulum.datetime(value.year, value.month, value.day, tz="UTC").end_of("day")
    return to_instant(value)


def format_instant(value: Optional[DateTime]) -> Optional[str]:
    """Render an instant as an ISO-8601 string in UTC."""
    if value is None:
        return None
    return value.in_timezone("UTC").to_iso8601_string()


def sunday_weekday(value: datetime) -> int:
    """Return the weekday with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def hhmm_to_minutes(value: str) -> int:
    """Convert a ``HH:mm`` string into minutes since midnight."""
    try:
        hours, minutes = value.strip().split(":")
        total = int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid HH:mm time: {value!r}") from exc
    if not 0 <= total <= 24 * 60:
        raise ValueError(f"Time out of range: {value!r}")
    return total


def ranges_overlap(
    start_a: DateTime,
    end_a: DateTime,
    start_b: DateTime,
    end_b: DateTime,
) -> bool:
    """Half-open overlap test: ``[start_a, end_a)`` intersects ``[start_b, end_b)``."""
    return start_a < end_b and end_a > start_b
