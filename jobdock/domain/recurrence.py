"""
Expansion of recurrence rules into concrete occurrences.

Everything here is pure: the same anchor and rule always produce the same
occurrences, and nothing touches the store.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Iterable, Iterator, Optional, Sequence

import pendulum
from pendulum import DateTime

from .models import (
    MAX_MONTHS,
    MAX_OCCURRENCES,
    BreakPeriod,
    Frequency,
    RecurrenceRule,
    TimeRange,
)
from .timeutils import sunday_weekday

logger = logging.getLogger(__name__)


def expand_recurrence(
    anchor: TimeRange,
    rule: RecurrenceRule,
    tz: Optional[tzinfo] = None,
) -> Iterator[TimeRange]:
    """
    Lazily yield the occurrences of a series.

    The sequence is bounded twice: by ``min(rule.count, MAX_OCCURRENCES)`` and
    by ``min(rule.until, anchor.start + MAX_MONTHS)``. The duration of every
    occurrence equals the anchor's duration.

    Args:
        anchor: First occurrence of the series
        rule: The recurrence pattern
        tz: Calendar used to read weekdays for ``days_of_week`` (defaults to UTC)
    """
    max_count = min(rule.count or MAX_OCCURRENCES, MAX_OCCURRENCES)
    max_date = anchor.start.add(months=MAX_MONTHS)
    if rule.until is not None and rule.until < max_date:
        max_date = rule.until

    if rule.uses_weekday_pattern:
        occurrences = _expand_weekdays(anchor, rule, max_date, tz or pendulum.UTC)
    else:
        occurrences = _expand_interval(anchor, rule, max_date)

    for emitted, occurrence in enumerate(occurrences):
        if emitted >= max_count:
            return
        yield occurrence


def _expand_weekdays(
    anchor: TimeRange,
    rule: RecurrenceRule,
    max_date: DateTime,
    tz: tzinfo,
) -> Iterator[TimeRange]:
    """Walk day by day from the anchor, keeping days listed in ``days_of_week``."""
    days = set(rule.days_of_week)
    current = anchor.start

    while current <= max_date:
        if sunday_weekday(current.in_timezone(tz)) in days:
            yield anchor.shifted_to(current)
        current = current.add(days=1)


def _expand_interval(
    anchor: TimeRange,
    rule: RecurrenceRule,
    max_date: DateTime,
) -> Iterator[TimeRange]:
    """
    Step from the anchor by the rule's interval.

    Months are always counted from the anchor so a series anchored on the
    31st lands on the last day of shorter months and returns to the 31st
    afterwards.
    """
    frequency = rule.normalized_frequency
    interval = max(rule.interval or 1, 1)

    if frequency not in (Frequency.DAILY.value, Frequency.WEEKLY.value, Frequency.MONTHLY.value):
        logger.warning(
            "Unknown recurrence frequency %r, advancing daily", rule.frequency
        )

    step = 0
    current = anchor.start
    while current <= max_date:
        yield anchor.shifted_to(current)
        step += 1
        if frequency == Frequency.WEEKLY.value:
            current = anchor.start.add(weeks=interval * step)
        elif frequency == Frequency.MONTHLY.value:
            current = anchor.start.add(months=interval * step)
        else:
            current = anchor.start.add(days=interval * step)


def exclude_breaks(
    occurrences: Iterable[TimeRange],
    breaks: Sequence[BreakPeriod],
) -> Iterator[TimeRange]:
    """Drop occurrences overlapping any break period; touching is not overlapping."""
    for occurrence in occurrences:
        blocking = next(
            (b for b in breaks if occurrence.start < b.end and occurrence.end > b.start),
            None,
        )
        if blocking is not None:
            logger.debug(
                "Skipping occurrence %s inside break %s - %s",
                occurrence,
                blocking.start,
                blocking.end,
            )
            continue
        yield occurrence
