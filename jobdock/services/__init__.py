"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking import BookingService
from .payloads import BookSlotRequest, ContactInput, CreateJobRequest, RecurrenceInput

__all__ = [
    "BookSlotRequest",
    "BookingService",
    "ContactInput",
    "CreateJobRequest",
    "RecurrenceInput",
]
