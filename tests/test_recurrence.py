"""
Tests for recurrence expansion and break exclusion.
"""

import logging

import pendulum

from jobdock.domain.models import MAX_OCCURRENCES, BreakPeriod, RecurrenceRule, TimeRange
from jobdock.domain.recurrence import exclude_breaks, expand_recurrence


def _anchor(start: str, minutes: int = 60) -> TimeRange:
    begin = pendulum.parse(start, tz="UTC")
    return TimeRange(start=begin, end=begin.add(minutes=minutes))


def _starts(occurrences):
    return [o.start.format("YYYY-MM-DD HH:mm") for o in occurrences]


class TestIntervalExpansion:
    """Daily, weekly and monthly stepping from the anchor."""

    def test_daily_with_count(self):
        occurrences = list(
            expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("daily", count=3))
        )

        assert _starts(occurrences) == [
            "2026-01-05 09:00",
            "2026-01-06 09:00",
            "2026-01-07 09:00",
        ]
        assert all(o.duration_minutes() == 60 for o in occurrences)

    def test_weekly_interval_two(self):
        occurrences = list(
            expand_recurrence(
                _anchor("2026-01-05 09:00"), RecurrenceRule("weekly", interval=2, count=3)
            )
        )

        assert _starts(occurrences) == [
            "2026-01-05 09:00",
            "2026-01-19 09:00",
            "2026-02-02 09:00",
        ]

    def test_frequency_is_case_insensitive(self):
        occurrences = list(
            expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("WEEKLY", count=2))
        )

        assert _starts(occurrences) == ["2026-01-05 09:00", "2026-01-12 09:00"]

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 lands on Feb 29 in a leap year and returns to the 31st in March."""
        occurrences = list(
            expand_recurrence(_anchor("2028-01-31 10:00"), RecurrenceRule("monthly", count=3))
        )

        assert _starts(occurrences) == [
            "2028-01-31 10:00",
            "2028-02-29 10:00",
            "2028-03-31 10:00",
        ]

    def test_monthly_clamps_in_common_year(self):
        occurrences = list(
            expand_recurrence(_anchor("2026-01-31 10:00"), RecurrenceRule("monthly", count=2))
        )

        assert _starts(occurrences)[1] == "2026-02-28 10:00"

    def test_until_is_inclusive(self):
        rule = RecurrenceRule(
            "daily",
            until=pendulum.parse("2026-01-07", tz="UTC").end_of("day"),
        )

        occurrences = list(expand_recurrence(_anchor("2026-01-05 09:00"), rule))

        assert len(occurrences) == 3
        assert _starts(occurrences)[-1] == "2026-01-07 09:00"

    def test_unbounded_daily_is_capped(self):
        occurrences = list(expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("daily")))

        assert len(occurrences) == MAX_OCCURRENCES

    def test_count_above_cap_is_capped(self):
        occurrences = list(
            expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("daily", count=500))
        )

        assert len(occurrences) == MAX_OCCURRENCES

    def test_monthly_stops_after_twelve_months(self):
        anchor = _anchor("2026-01-05 09:00")

        occurrences = list(expand_recurrence(anchor, RecurrenceRule("monthly")))

        assert len(occurrences) == 13
        assert occurrences[-1].start <= anchor.start.add(months=12)

    def test_unknown_frequency_steps_daily(self, caplog):
        with caplog.at_level(logging.WARNING, logger="jobdock.domain.recurrence"):
            occurrences = list(
                expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("hourly", count=2))
            )

        assert _starts(occurrences) == ["2026-01-05 09:00", "2026-01-06 09:00"]
        assert "Unknown recurrence frequency" in caplog.text


class TestWeekdayPattern:
    """Weekly patterns with explicit days (0=Sunday)."""

    def test_tuesday_thursday(self):
        rule = RecurrenceRule("weekly", count=4, days_of_week=(2, 4))

        occurrences = list(expand_recurrence(_anchor("2026-01-06 08:00", 120), rule))

        assert _starts(occurrences) == [
            "2026-01-06 08:00",
            "2026-01-08 08:00",
            "2026-01-13 08:00",
            "2026-01-15 08:00",
        ]
        assert all(o.duration_minutes() == 120 for o in occurrences)

    def test_monday_anchor_starts_on_tuesday(self):
        rule = RecurrenceRule("weekly", days_of_week=(2, 4))

        occurrences = list(expand_recurrence(_anchor("2026-01-05 09:00"), rule))

        assert _starts(occurrences)[:2] == ["2026-01-06 09:00", "2026-01-08 09:00"]
        assert len(occurrences) == MAX_OCCURRENCES

    def test_anchor_day_outside_pattern_is_skipped(self):
        """A Monday anchor with a Wednesday-only pattern starts on Wednesday."""
        rule = RecurrenceRule("custom", count=2, days_of_week=(3,))

        occurrences = list(expand_recurrence(_anchor("2026-01-05 09:00"), rule))

        assert _starts(occurrences) == ["2026-01-07 09:00", "2026-01-14 09:00"]

    def test_weekdays_follow_given_calendar(self):
        """Thursday 00:00 UTC is Wednesday 16:00 at UTC-8, so a Wednesday pattern keeps it."""
        rule = RecurrenceRule("weekly", count=3, days_of_week=(3,))
        pacific = pendulum.FixedTimezone(-8 * 3600)

        occurrences = list(expand_recurrence(_anchor("2026-01-08 00:00"), rule, pacific))

        assert _starts(occurrences) == [
            "2026-01-08 00:00",
            "2026-01-15 00:00",
            "2026-01-22 00:00",
        ]
        local_days = {o.start.in_timezone(pacific).day_of_week for o in occurrences}
        assert local_days == {pendulum.WEDNESDAY}

    def test_pattern_respects_until(self):
        rule = RecurrenceRule(
            "weekly",
            days_of_week=(1, 3, 5),
            until=pendulum.parse("2026-01-11", tz="UTC").end_of("day"),
        )

        occurrences = list(expand_recurrence(_anchor("2026-01-05 09:00"), rule))

        assert len(occurrences) == 3


class TestExcludeBreaks:
    """Break periods remove overlapping occurrences only."""

    def test_occurrence_inside_break_is_removed(self):
        occurrences = list(
            expand_recurrence(_anchor("2026-01-05 09:00"), RecurrenceRule("daily", count=3))
        )
        holiday = BreakPeriod(
            start=pendulum.parse("2026-01-06 00:00", tz="UTC"),
            end=pendulum.parse("2026-01-07 00:00", tz="UTC"),
            reason="Holiday",
        )

        kept = list(exclude_breaks(occurrences, [holiday]))

        assert _starts(kept) == ["2026-01-05 09:00", "2026-01-07 09:00"]

    def test_adjacent_occurrence_is_kept(self):
        occurrences = [_anchor("2026-01-05 09:00")]
        touching = BreakPeriod(
            start=pendulum.parse("2026-01-05 08:00", tz="UTC"),
            end=pendulum.parse("2026-01-05 09:00", tz="UTC"),
        )

        assert list(exclude_breaks(occurrences, [touching])) == occurrences

    def test_partial_overlap_is_removed(self):
        occurrences = [_anchor("2026-01-05 09:00")]
        lunch = BreakPeriod(
            start=pendulum.parse("2026-01-05 09:30", tz="UTC"),
            end=pendulum.parse("2026-01-05 12:00", tz="UTC"),
        )

        assert list(exclude_breaks(occurrences, [lunch])) == []
