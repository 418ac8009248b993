"""
Core business logic for calculating open booking slots of a service.

Pure domain logic: existing jobs are passed in, nothing is fetched here.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional, Tuple

from pendulum import DateTime

from .conflicts import count_overlapping
from .exceptions import UnavailableError, ValidationError
from .models import AvailabilitySettings, DaySlots, Job, Service, TimeRange
from .timeutils import sunday_weekday

logger = logging.getLogger(__name__)


class AvailabilityCalculator:
    """
    Enumerates bookable slots from a service's working hours.

    Algorithm, per business-local day in the window:
    1. Look up the weekday's working hours, skip closed days
    2. Step through the day in ``duration + buffer_time`` minute increments
    3. Place each candidate in the service's fixed UTC offset
    4. Drop past, same-day (if disallowed), too-far-ahead and full slots
    5. Return days that still have at least one slot
    """

    def __init__(self, service: Service):
        if service.availability is None or not service.availability.working_hours:
            raise UnavailableError(f"Service {service.id} has no availability configured")
        self.service = service
        self.settings: AvailabilitySettings = service.availability

    def default_window(self, now: DateTime) -> Tuple[DateTime, DateTime]:
        """The window used when the caller does not pass one."""
        return now, now.add(days=self.settings.advance_booking_days)

    def find_open_slots(
        self,
        range_start: Optional[DateTime],
        range_end: Optional[DateTime],
        existing_jobs: Iterable[Job],
        now: DateTime,
    ) -> List[DaySlots]:
        """
        Find all open slots between ``range_start`` and ``range_end``.

        Args:
            range_start: First instant of the window (defaults to now)
            range_end: Last instant of the window (defaults to the advance limit)
            existing_jobs: Tenant jobs that may occupy capacity
            now: Current instant

        Returns:
            One DaySlots entry per day with at least one open slot
        """
        default_start, default_end = self.default_window(now)
        range_start = range_start or default_start
        range_end = range_end or default_end
        jobs = [job for job in existing_jobs if job.time_range is not None]
        max_per_slot = self.service.max_bookings_per_slot

        results: List[DaySlots] = []

        for day in self._iter_days(range_start, range_end):
            day_slots = [
                slot
                for slot in self._candidate_slots(day)
                if self._is_bookable(slot, now)
                and count_overlapping(jobs, slot) < max_per_slot
            ]
            if day_slots:
                results.append(DaySlots(date=day.to_date_string(), slots=day_slots))

        logger.debug(
            "Service %s: %d day(s) with availability between %s and %s",
            self.service.id,
            len(results),
            range_start,
            range_end,
        )
        return results

    def validate_slot(self, start: DateTime, now: DateTime) -> TimeRange:
        """
        Check a requested start time against the booking rules.

        Returns:
            The slot's time range in UTC

        Raises:
            ValidationError: If the slot is in the past, outside working hours
                or outside the advance booking window
            UnavailableError: If the service does not work on that day
        """
        slot = TimeRange(start=start, end=start.add(minutes=self.service.duration))

        if slot.start < now:
            raise ValidationError("Cannot book slots in the past")

        local_start = slot.start.in_timezone(self.settings.timezone)
        hours = self.settings.hours_for(sunday_weekday(local_start))
        if hours is None:
            raise UnavailableError("Service is not available on this day")

        start_minutes = local_start.hour * 60 + local_start.minute
        end_minutes = start_minutes + self.service.duration
        if start_minutes < hours.start_minutes or end_minutes > hours.end_minutes:
            raise ValidationError("Slot is outside working hours")

        if not self.settings.same_day_booking and self._is_same_day(slot.start, now):
            raise ValidationError("Same-day booking is not allowed")

        if self._beyond_advance_limit(slot.start, now):
            raise ValidationError("Booking is too far in advance")

        return TimeRange(start=slot.start.in_timezone("UTC"), end=slot.end.in_timezone("UTC"))

    def _iter_days(self, range_start: DateTime, range_end: DateTime) -> Iterator[DateTime]:
        """Yield business-local midnights covering the window."""
        current = range_start.in_timezone(self.settings.timezone).start_of("day")
        while current <= range_end:
            yield current
            current = current.add(days=1)

    def _candidate_slots(self, day: DateTime) -> Iterator[TimeRange]:
        """Generate the slot grid of one day; slots must end by closing time."""
        hours = self.settings.hours_for(sunday_weekday(day))
        if hours is None:
            return

        duration = self.service.duration
        step = duration + max(self.settings.buffer_time, 0)
        minutes = hours.start_minutes

        while minutes + duration <= hours.end_minutes:
            start = day.add(minutes=minutes).in_timezone("UTC")
            yield TimeRange(start=start, end=start.add(minutes=duration))
            minutes += step

    def _is_bookable(self, slot: TimeRange, now: DateTime) -> bool:
        if slot.start < now:
            return False
        if not self.settings.same_day_booking and self._is_same_day(slot.start, now):
            return False
        return not self._beyond_advance_limit(slot.start, now)

    def _is_same_day(self, instant: DateTime, now: DateTime) -> bool:
        tz = self.settings.timezone
        return instant.in_timezone(tz).to_date_string() == now.in_timezone(tz).to_date_string()

    def _beyond_advance_limit(self, instant: DateTime, now: DateTime) -> bool:
        return instant > now.add(days=self.settings.advance_booking_days)
