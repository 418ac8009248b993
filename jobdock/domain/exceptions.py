"""
Domain-specific exception hierarchy for the scheduling core.

Each error carries an HTTP-like ``status_code`` so the surrounding web layer
can map it without inspecting message text.
"""

from __future__ import annotations

from typing import List, Sequence


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    status_code = 500


class ValidationError(SchedulingError):
    """Raised when a request is malformed or misses required fields."""

    status_code = 400


class NotFoundError(SchedulingError):
    """Raised when a referenced service, contact or job does not exist."""

    status_code = 404


class UnavailableError(SchedulingError):
    """Raised when a service is inactive or cannot be booked at all."""

    status_code = 422


class StoreError(SchedulingError):
    """Raised when the backing store fails to read or persist data."""

    status_code = 500


class ConflictError(SchedulingError):
    """
    Raised when a requested slot collides with existing active jobs.

    ``conflicts`` holds one entry per rejected occurrence; the message only
    enumerates the first ``SUMMARY_LIMIT`` of them.
    """

    status_code = 409
    SUMMARY_LIMIT = 5

    def __init__(self, prefix: str, conflicts: Sequence[str]):
        self.conflicts: List[str] = list(conflicts)
        shown = "; ".join(self.conflicts[: self.SUMMARY_LIMIT])
        remaining = len(self.conflicts) - self.SUMMARY_LIMIT
        message = f"{prefix}: {shown}"
        if remaining > 0:
            message += f" (+{remaining} more)"
        super().__init__(message)
