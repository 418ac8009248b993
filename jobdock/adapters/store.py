"""
Store contract consumed by the booking service.

Any persistence backend can be plugged in as long as it exposes these verbs
inside a transaction whose isolation is at least serializable for the
tenant's job table: the overlap check and the inserts that follow it run in
the same session.
"""

from __future__ import annotations

from typing import Any, ContextManager, Dict, Iterable, List, Optional, Protocol, Tuple

from ..domain.models import Contact, Job, JobRecurrence, Service, TimeRange


class StoreSession(Protocol):
    """Verbs available inside one transaction."""

    def find_service(self, service_id: str) -> Optional[Service]:
        """Look up a service by its globally unique id."""

    def find_overlapping(
        self,
        tenant_id: str,
        time_range: TimeRange,
        statuses: Iterable,
        exclude_job_id: Optional[str] = None,
    ) -> List[Job]:
        """Return visible, timed jobs of the tenant overlapping ``time_range``."""

    def list_jobs(self, tenant_id: str, include_archived: bool = False) -> List[Job]:
        """Return the tenant's jobs ordered by start time."""

    def get_job(self, tenant_id: str, job_id: str) -> Optional[Job]:
        """Return a job of the tenant or None."""

    def create_job(self, tenant_id: str, job: Job) -> Job:
        """Insert a job, assigning an id when it has none."""

    def update_job(self, tenant_id: str, job: Job) -> Job:
        """Replace a stored job."""

    def create_job_recurrence(self, tenant_id: str, recurrence: JobRecurrence) -> JobRecurrence:
        """Insert a recurrence record, assigning an id when it has none."""

    def get_contact(self, tenant_id: str, contact_id: str) -> Optional[Contact]:
        """Return a contact of the tenant or None."""

    def find_or_create_contact(
        self,
        tenant_id: str,
        email: Optional[str],
        data: Dict[str, Any],
    ) -> Tuple[Contact, bool]:
        """Return the contact with ``email`` or create one from ``data``; flag creation."""

    def update_contact(self, tenant_id: str, contact: Contact) -> Contact:
        """Replace a stored contact."""


class SchedulingStore(Protocol):
    """A transactional store; writes become visible only when the block exits cleanly."""

    def transaction(self) -> ContextManager[StoreSession]:
        """Open a unit of work."""
