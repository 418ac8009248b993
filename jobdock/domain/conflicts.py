"""
Overlap and capacity checks against a tenant's active jobs.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from .exceptions import ConflictError
from .models import ACTIVE_STATUSES, Job, TimeRange

logger = logging.getLogger(__name__)


class OverlapQuery(Protocol):
    """The single store verb the detector depends on."""

    def find_overlapping(
        self,
        tenant_id: str,
        time_range: TimeRange,
        statuses: Iterable,
        exclude_job_id: Optional[str] = None,
    ) -> List[Job]:
        """Return visible jobs of the tenant overlapping ``time_range``."""


def count_overlapping(jobs: Iterable[Job], time_range: TimeRange) -> int:
    """Count jobs that hold capacity inside ``time_range``."""
    return sum(1 for job in jobs if job.reserves(time_range))


class ConflictDetector:
    """
    Reports active jobs colliding with candidate time ranges.

    Pending-confirmation jobs count as active so that a slot stays reserved
    while the contractor decides; completed and cancelled jobs never do.
    """

    def find_conflicts(
        self,
        session: OverlapQuery,
        tenant_id: str,
        time_range: TimeRange,
        exclude_job_id: Optional[str] = None,
    ) -> List[Job]:
        jobs = session.find_overlapping(
            tenant_id,
            time_range,
            ACTIVE_STATUSES,
            exclude_job_id=exclude_job_id,
        )
        # Stores may be lenient about filters; re-apply the rule here.
        return [job for job in jobs if job.id != exclude_job_id and job.reserves(time_range)]

    def ensure_no_overlap(
        self,
        session: OverlapQuery,
        tenant_id: str,
        time_range: TimeRange,
        exclude_job_id: Optional[str] = None,
    ) -> None:
        """Single-overlap veto used for contractor-initiated scheduling."""
        self.ensure_capacity(
            session,
            tenant_id,
            time_range,
            max_per_slot=1,
            exclude_job_id=exclude_job_id,
        )

    def ensure_capacity(
        self,
        session: OverlapQuery,
        tenant_id: str,
        time_range: TimeRange,
        max_per_slot: int,
        exclude_job_id: Optional[str] = None,
    ) -> None:
        """Reject when ``max_per_slot`` active jobs already overlap the range."""
        conflicts = self.find_conflicts(session, tenant_id, time_range, exclude_job_id)
        if len(conflicts) >= max_per_slot:
            logger.info(
                "Slot %s for tenant %s is taken by %d job(s)",
                time_range,
                tenant_id,
                len(conflicts),
            )
            raise ConflictError(
                f"The requested time {time_range} is not available",
                [job.describe() for job in conflicts],
            )

    def check_series(
        self,
        session: OverlapQuery,
        tenant_id: str,
        occurrences: Sequence[TimeRange],
        max_per_slot: int = 1,
    ) -> None:
        """
        Validate every occurrence of a series before anything is written.

        Earlier occurrences of the same series count toward capacity as well,
        since they will be inserted in the same transaction.
        """
        rejected: List[str] = []
        accepted: List[TimeRange] = []

        for occurrence in occurrences:
            existing = self.find_conflicts(session, tenant_id, occurrence)
            siblings = sum(1 for other in accepted if other.overlaps(occurrence))
            if len(existing) + siblings >= max_per_slot:
                rejected.append(_describe_collision(occurrence, existing, siblings))
            accepted.append(occurrence)

        if rejected:
            logger.info(
                "Recurring schedule for tenant %s rejected: %d of %d occurrence(s) conflict",
                tenant_id,
                len(rejected),
                len(occurrences),
            )
            raise ConflictError(
                "Cannot create recurring schedule due to conflicts",
                rejected,
            )


def _describe_collision(occurrence: TimeRange, existing: List[Job], siblings: int) -> str:
    labels = [job.describe() for job in existing]
    if siblings:
        labels.append("another occurrence of this series")
    return f"{occurrence} (with {', '.join(labels)})"
