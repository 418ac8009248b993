"""
Domain models for jobs, recurrences, services and time ranges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from .timeutils import format_instant, hhmm_to_minutes, ranges_overlap, to_instant

MAX_OCCURRENCES = 50
MAX_MONTHS = 12


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return ranges_overlap(self.start, self.end, other.start, other.end)

    def shifted_to(self, start: DateTime) -> "TimeRange":
        """Return a range of the same length beginning at ``start``."""
        return TimeRange(start=start, end=start + (self.end - self.start))

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')}-{self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BreakPeriod:
    """A window during which no occurrence of a series may take place."""
    start: DateTime
    end: DateTime
    reason: Optional[str] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Break start {self.start} must be before break end {self.end}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": format_instant(self.start),
            "end_time": format_instant(self.end),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BreakPeriod":
        return cls(
            start=to_instant(data["start_time"]),
            end=to_instant(data["end_time"]),
            reason=data.get("reason"),
        )


class JobStatus(str, Enum):
    """Lifecycle states of a job."""
    PENDING_CONFIRMATION = "pending-confirmation"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Active jobs reserve their time range and count toward capacity."""
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.CANCELLED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _TRANSITIONS.get(self, frozenset())


ACTIVE_STATUSES = frozenset(
    {JobStatus.SCHEDULED, JobStatus.IN_PROGRESS, JobStatus.PENDING_CONFIRMATION}
)

_TRANSITIONS = {
    JobStatus.PENDING_CONFIRMATION: frozenset({JobStatus.SCHEDULED, JobStatus.CANCELLED}),
    JobStatus.SCHEDULED: frozenset(
        {JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.CANCELLED}
    ),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED}),
}


class Frequency(str, Enum):
    """Known recurrence frequencies."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"  # weekday pattern, same as weekly with days_of_week


@dataclass(frozen=True)
class RecurrenceRule:
    """
    The generating pattern of a recurring series.

    ``frequency`` is kept as a plain string so that unknown values coming from
    older records still expand (as daily) instead of failing.
    """
    frequency: str
    interval: int = 1
    count: Optional[int] = None
    until: Optional[DateTime] = None
    days_of_week: tuple = ()

    @property
    def normalized_frequency(self) -> str:
        return str(self.frequency).strip().lower()

    @property
    def uses_weekday_pattern(self) -> bool:
        return (
            self.normalized_frequency in (Frequency.WEEKLY.value, Frequency.CUSTOM.value)
            and bool(self.days_of_week)
        )


@dataclass
class Job:
    """A single piece of scheduled (or to-be-scheduled) work for a tenant."""
    id: str
    tenant_id: str
    title: str
    status: JobStatus = JobStatus.SCHEDULED
    contact_id: Optional[str] = None
    service_id: Optional[str] = None
    recurrence_id: Optional[str] = None
    start_time: Optional[DateTime] = None
    end_time: Optional[DateTime] = None
    breaks: List[BreakPeriod] = field(default_factory=list)
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None
    archived_at: Optional[DateTime] = None
    deleted_at: Optional[DateTime] = None

    def __post_init__(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.end_time <= self.start_time:
            raise ValueError(
                f"Job end time {self.end_time} must be after start time {self.start_time}"
            )

    @property
    def time_range(self) -> Optional[TimeRange]:
        if self.start_time is None or self.end_time is None:
            return None
        return TimeRange(start=self.start_time, end=self.end_time)

    @property
    def to_be_scheduled(self) -> bool:
        return self.start_time is None

    @property
    def is_visible(self) -> bool:
        return self.archived_at is None and self.deleted_at is None

    def reserves(self, time_range: TimeRange) -> bool:
        """True when this job holds capacity anywhere inside ``time_range``."""
        own_range = self.time_range
        return (
            own_range is not None
            and self.is_visible
            and self.status.is_active
            and own_range.overlaps(time_range)
        )

    def describe(self) -> str:
        """Human-readable label used in conflict summaries."""
        if self.time_range is None:
            return f"'{self.title}' (unscheduled)"
        return f"'{self.title}' on {self.time_range}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "status": self.status.value,
            "contact_id": self.contact_id,
            "service_id": self.service_id,
            "recurrence_id": self.recurrence_id,
            "start_time": format_instant(self.start_time),
            "end_time": format_instant(self.end_time),
            "breaks": [b.to_dict() for b in self.breaks],
            "location": self.location,
            "description": self.description,
            "notes": self.notes,
            "created_at": format_instant(self.created_at),
            "archived_at": format_instant(self.archived_at),
            "deleted_at": format_instant(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            title=data.get("title") or "Job",
            status=JobStatus(data.get("status", JobStatus.SCHEDULED.value)),
            contact_id=data.get("contact_id"),
            service_id=data.get("service_id"),
            recurrence_id=data.get("recurrence_id"),
            start_time=_optional_instant(data.get("start_time")),
            end_time=_optional_instant(data.get("end_time")),
            breaks=[BreakPeriod.from_dict(b) for b in data.get("breaks") or []],
            location=data.get("location"),
            description=data.get("description"),
            notes=data.get("notes"),
            created_at=_optional_instant(data.get("created_at")),
            archived_at=_optional_instant(data.get("archived_at")),
            deleted_at=_optional_instant(data.get("deleted_at")),
        )


@dataclass
class JobRecurrence:
    """Persisted record of the pattern that generated a family of jobs."""
    id: str
    tenant_id: str
    rule: RecurrenceRule
    start_time: DateTime
    end_time: DateTime
    contact_id: Optional[str] = None
    service_id: Optional[str] = None
    title: Optional[str] = None
    timezone: str = "UTC"

    @property
    def anchor(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "contact_id": self.contact_id,
            "service_id": self.service_id,
            "title": self.title,
            "frequency": self.rule.frequency,
            "interval": self.rule.interval,
            "count": self.rule.count,
            "until_date": format_instant(self.rule.until),
            "days_of_week": list(self.rule.days_of_week),
            "start_time": format_instant(self.start_time),
            "end_time": format_instant(self.end_time),
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecurrence":
        rule = RecurrenceRule(
            frequency=data["frequency"],
            interval=data.get("interval") or 1,
            count=data.get("count"),
            until=_optional_instant(data.get("until_date")),
            days_of_week=tuple(data.get("days_of_week") or ()),
        )
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            rule=rule,
            start_time=to_instant(data["start_time"]),
            end_time=to_instant(data["end_time"]),
            contact_id=data.get("contact_id"),
            service_id=data.get("service_id"),
            title=data.get("title"),
            timezone=data.get("timezone") or "UTC",
        )


@dataclass
class Contact:
    """Customer or lead, unique per tenant by email."""
    id: str
    tenant_id: str
    first_name: str = "Guest"
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            first_name=data.get("first_name") or "Guest",
            last_name=data.get("last_name") or "",
            email=data.get("email"),
            phone=data.get("phone"),
            company=data.get("company"),
            address=data.get("address"),
            notes=data.get("notes"),
        )


@dataclass
class WorkingHours:
    """
    Working hours of a service on one weekday.

    ``day_of_week`` uses 0=Sunday .. 6=Saturday; times are business-local
    ``HH:mm`` strings.
    """
    day_of_week: int
    start_time: str = "09:00"
    end_time: str = "17:00"
    is_working: bool = True

    def __post_init__(self):
        if self.day_of_week not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")
        if hhmm_to_minutes(self.end_time) <= hhmm_to_minutes(self.start_time):
            raise ValueError(
                f"Working hours must end after they start: {self.start_time}-{self.end_time}"
            )

    @property
    def start_minutes(self) -> int:
        return hhmm_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return hhmm_to_minutes(self.end_time)


@dataclass
class AvailabilitySettings:
    """When a service can be booked."""
    working_hours: List[WorkingHours] = field(default_factory=list)
    buffer_time: int = 0
    advance_booking_days: int = 30
    same_day_booking: bool = False
    timezone_offset: int = -8

    def hours_for(self, day_of_week: int) -> Optional[WorkingHours]:
        """Return the working hours for a weekday, or None when closed."""
        for entry in self.working_hours:
            if entry.day_of_week == day_of_week and entry.is_working:
                return entry
        return None

    @property
    def timezone(self) -> pendulum.FixedTimezone:
        return pendulum.FixedTimezone(self.timezone_offset * 3600)


@dataclass
class BookingSettings:
    require_confirmation: bool = False
    max_bookings_per_slot: int = 1


@dataclass
class Service:
    """A bookable offering with its availability configuration."""
    id: str
    tenant_id: str
    name: str
    duration: int
    is_active: bool = True
    availability: Optional[AvailabilitySettings] = None
    booking_settings: BookingSettings = field(default_factory=BookingSettings)

    def __post_init__(self):
        if self.duration <= 0:
            raise ValueError("Service duration must be greater than zero")

    @property
    def max_bookings_per_slot(self) -> int:
        return max(self.booking_settings.max_bookings_per_slot or 1, 1)

    @property
    def calendar_timezone(self):
        """Timezone of the business-local calendar; UTC without availability settings."""
        if self.availability is None:
            return pendulum.UTC
        return self.availability.timezone

    @property
    def initial_job_status(self) -> JobStatus:
        if self.booking_settings.require_confirmation:
            return JobStatus.PENDING_CONFIRMATION
        return JobStatus.SCHEDULED

    def to_dict(self) -> Dict[str, Any]:
        availability = None
        if self.availability is not None:
            availability = {
                "working_hours": [
                    {
                        "day_of_week": wh.day_of_week,
                        "start_time": wh.start_time,
                        "end_time": wh.end_time,
                        "is_working": wh.is_working,
                    }
                    for wh in self.availability.working_hours
                ],
                "buffer_time": self.availability.buffer_time,
                "advance_booking_days": self.availability.advance_booking_days,
                "same_day_booking": self.availability.same_day_booking,
                "timezone_offset": self.availability.timezone_offset,
            }
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "duration": self.duration,
            "is_active": self.is_active,
            "availability": availability,
            "booking_settings": {
                "require_confirmation": self.booking_settings.require_confirmation,
                "max_bookings_per_slot": self.booking_settings.max_bookings_per_slot,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Service":
        availability = None
        raw_availability = data.get("availability")
        if raw_availability:
            availability = AvailabilitySettings(
                working_hours=[
                    WorkingHours(**entry) for entry in raw_availability.get("working_hours") or []
                ],
                buffer_time=raw_availability.get("buffer_time") or 0,
                advance_booking_days=raw_availability.get("advance_booking_days") or 30,
                same_day_booking=bool(raw_availability.get("same_day_booking", False)),
                timezone_offset=raw_availability.get("timezone_offset", -8),
            )
        raw_booking = data.get("booking_settings") or {}
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            name=data["name"],
            duration=int(data["duration"]),
            is_active=bool(data.get("is_active", True)),
            availability=availability,
            booking_settings=BookingSettings(
                require_confirmation=bool(raw_booking.get("require_confirmation", False)),
                max_bookings_per_slot=raw_booking.get("max_bookings_per_slot") or 1,
            ),
        )


@dataclass(frozen=True)
class DaySlots:
    """Open slots of a single business-local calendar day."""
    date: str
    slots: List[TimeRange]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "slots": [
                {"start": format_instant(slot.start), "end": format_instant(slot.end)}
                for slot in self.slots
            ],
        }


def _optional_instant(value: Any) -> Optional[DateTime]:
    if value in (None, ""):
        return None
    return to_instant(value)


@dataclass
class BookingResult:
    """Everything a successful booking or scheduling call created."""
    jobs: List[Job]
    contact: Optional[Contact] = None
    recurrence: Optional[JobRecurrence] = None
    service: Optional[Service] = None

    @property
    def primary_job(self) -> Job:
        return self.jobs[0]

    @property
    def occurrence_count(self) -> int:
        return len(self.jobs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.primary_job.to_dict(),
            "jobs": [job.to_dict() for job in self.jobs],
            "occurrence_count": self.occurrence_count,
            "recurrence_id": self.recurrence.id if self.recurrence else None,
            "contact": self.contact.to_dict() if self.contact else None,
            "service_id": self.service.id if self.service else None,
        }
