"""
Request payloads accepted by the booking service.

Payloads arrive as plain mappings (usually decoded JSON with camelCase keys)
and are validated with pydantic before any scheduling logic runs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..domain.exceptions import ValidationError
from ..domain.models import BreakPeriod, Frequency, JobStatus, RecurrenceRule, TimeRange
from ..domain.timeutils import to_instant, to_until_instant

PayloadT = TypeVar("PayloadT", bound="Payload")


class Payload(BaseModel):
    """Base model: accepts snake_case or camelCase keys, ignores unknown ones."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class BreakInput(Payload):
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_order(self) -> "BreakInput":
        if to_instant(self.end_time) <= to_instant(self.start_time):
            raise ValueError("break endTime must be after startTime")
        return self

    def to_domain(self) -> BreakPeriod:
        return BreakPeriod(
            start=to_instant(self.start_time),
            end=to_instant(self.end_time),
            reason=self.reason,
        )


class RecurrenceInput(Payload):
    """Recurrence block of a create or booking request."""
    frequency: str
    interval: int = Field(default=1, ge=1)
    count: Optional[int] = Field(default=None, ge=1)
    until_date: Optional[datetime] = None
    days_of_week: List[int] = Field(default_factory=list)

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, value: str) -> str:
        """Accept known frequencies in any case."""
        normalized = value.strip().lower()
        known = [f.value for f in Frequency]
        if normalized not in known:
            raise ValueError(f"frequency must be one of {', '.join(known)}, got {value!r}")
        return normalized

    @field_validator("until_date", mode="before")
    @classmethod
    def parse_until_date(cls, value: Any) -> Any:
        """A bare date is inclusive: it covers the whole day."""
        if value in (None, ""):
            return None
        try:
            return to_until_instant(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid untilDate: {value!r}") from exc

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"daysOfWeek must be between 0 and 6, got {invalid_days}")
        return sorted(set(value))

    @model_validator(mode="after")
    def validate_custom_days(self) -> "RecurrenceInput":
        if self.frequency == Frequency.CUSTOM.value and not self.days_of_week:
            raise ValueError("custom recurrence requires daysOfWeek")
        return self

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            frequency=self.frequency,
            interval=self.interval,
            count=self.count,
            until=to_instant(self.until_date) if self.until_date else None,
            days_of_week=tuple(self.days_of_week),
        )


class ContactInput(Payload):
    """Inline contact fields or a reference to an existing contact."""
    id: Optional[str] = None
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if "@" not in value:
            raise ValueError(f"Invalid email address: {value!r}")
        return value.strip().lower()

    def split_name(self) -> tuple:
        """Return ``(first_name, last_name)``; a missing name becomes ``Guest``."""
        if self.first_name:
            return self.first_name.strip(), (self.last_name or "").strip()
        parts = (self.name or "").split()
        first_name = parts[0] if parts else "Guest"
        return first_name, " ".join(parts[1:])

    def new_contact_data(self) -> dict:
        first_name, last_name = self.split_name()
        return {
            "first_name": first_name,
            "last_name": last_name,
            "phone": self.phone.strip() if self.phone and self.phone.strip() else None,
            "company": self.company,
            "address": self.address,
            "notes": self.notes,
        }


class CreateJobRequest(Payload):
    """Tenant-initiated job creation, single or recurring."""
    tenant_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    contact_id: Optional[str] = None
    service_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    to_be_scheduled: bool = False
    status: JobStatus = JobStatus.SCHEDULED
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    recurrence: Optional[RecurrenceInput] = None
    breaks: List[BreakInput] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: JobStatus) -> JobStatus:
        if value not in (JobStatus.SCHEDULED, JobStatus.PENDING_CONFIRMATION):
            raise ValueError("new jobs must start as scheduled or pending-confirmation")
        return value

    @model_validator(mode="after")
    def validate_schedule(self) -> "CreateJobRequest":
        """Scheduled jobs need a valid time range; unscheduled ones cannot recur."""
        if self.to_be_scheduled:
            if self.recurrence is not None:
                raise ValueError("Recurring jobs must have scheduled times")
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("startTime and endTime are required for scheduled jobs")
        if to_instant(self.end_time) <= to_instant(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self

    def time_range(self) -> Optional[TimeRange]:
        if self.to_be_scheduled:
            return None
        return TimeRange(start=to_instant(self.start_time), end=to_instant(self.end_time))


class BookSlotRequest(Payload):
    """Public self-service booking of a service slot."""
    start_time: datetime
    contact: ContactInput = Field(default_factory=ContactInput)
    recurrence: Optional[RecurrenceInput] = None
    breaks: List[BreakInput] = Field(default_factory=list)
    location: Optional[str] = None
    notes: Optional[str] = None


def parse_payload(
    model: Type[PayloadT],
    payload: Union[PayloadT, Mapping[str, Any]],
) -> PayloadT:
    """
    Validate a raw payload into ``model``.

    Raises:
        ValidationError: If the payload is malformed
    """
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Expected an object payload, got {type(payload).__name__}")
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(f"Invalid request: {details}") from exc
