"""
Domain layer - Pure scheduling logic without I/O.
"""

from .availability import AvailabilityCalculator
from .conflicts import ConflictDetector, count_overlapping
from .exceptions import (
    ConflictError,
    NotFoundError,
    SchedulingError,
    StoreError,
    UnavailableError,
    ValidationError,
)
from .models import (
    ACTIVE_STATUSES,
    BreakPeriod,
    Contact,
    DaySlots,
    Job,
    JobRecurrence,
    JobStatus,
    RecurrenceRule,
    Service,
    TimeRange,
)
from .recurrence import exclude_breaks, expand_recurrence

__all__ = [
    "ACTIVE_STATUSES",
    "AvailabilityCalculator",
    "BreakPeriod",
    "ConflictDetector",
    "ConflictError",
    "Contact",
    "DaySlots",
    "Job",
    "JobRecurrence",
    "JobStatus",
    "NotFoundError",
    "RecurrenceRule",
    "SchedulingError",
    "Service",
    "StoreError",
    "TimeRange",
    "UnavailableError",
    "ValidationError",
    "count_overlapping",
    "exclude_breaks",
    "expand_recurrence",
]
