"""
Application service for scheduling jobs and booking service slots.

The service owns the transaction boundaries: every operation runs as a single
unit of work against the injected store, delegating recurrence expansion,
conflict detection and slot calculation to the domain layer. Notifications
are sent only after a commit and never affect the outcome of the call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pendulum
from pendulum import DateTime, FixedTimezone, Timezone

from ..adapters.notifier import (
    BOOKING_CONFIRMED,
    BOOKING_DECLINED,
    BOOKING_REQUESTED,
    LoggingNotifier,
    NotificationSender,
)
from ..adapters.store import SchedulingStore, StoreSession
from ..domain.availability import AvailabilityCalculator
from ..domain.conflicts import ConflictDetector
from ..domain.exceptions import (
    NotFoundError,
    SchedulingError,
    StoreError,
    UnavailableError,
    ValidationError,
)
from ..domain.models import (
    ACTIVE_STATUSES,
    BookingResult,
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
from ..domain.recurrence import exclude_breaks, expand_recurrence
from ..domain.timeutils import InstantLike, to_instant
from .payloads import BookSlotRequest, ContactInput, CreateJobRequest, parse_payload

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


class BookingService:
    """
    Entry point for job scheduling, availability and public slot booking.

    Dependencies are injected so that any transactional store and any
    notification channel can be plugged in.
    """

    def __init__(
        self,
        store: SchedulingStore,
        notifier: Optional[NotificationSender] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        clock: Clock = _utc_now,
    ) -> None:
        self._store = store
        self._notifier = notifier or LoggingNotifier()
        self._conflicts = conflict_detector or ConflictDetector()
        self._clock = clock

    # ------------------------------------------------------------------
    # Direct scheduling
    # ------------------------------------------------------------------

    def create_job(self, payload: Union[CreateJobRequest, Mapping[str, Any]]) -> BookingResult:
        """
        Create a single, recurring or to-be-scheduled job for a tenant.

        Any overlap with an active job of the tenant rejects the request.

        Raises:
            ValidationError: If the payload is malformed
            NotFoundError: If the referenced contact or service does not exist
            ConflictError: If any occurrence overlaps an active job
        """
        request = parse_payload(CreateJobRequest, payload)
        tenant_id = request.tenant_id
        breaks = [b.to_domain() for b in request.breaks]

        with self._transaction() as session:
            contact = self._load_contact(session, tenant_id, request.contact_id)
            service = self._load_tenant_service(session, tenant_id, request.service_id)

            template = Job(
                id="",
                tenant_id=tenant_id,
                title=request.title,
                status=request.status,
                contact_id=request.contact_id,
                service_id=request.service_id,
                breaks=breaks,
                location=request.location,
                description=request.description,
                notes=request.notes,
            )
            anchor = request.time_range()

            if anchor is None:
                jobs = [session.create_job(tenant_id, template)]
                recurrence = None
            elif request.recurrence is not None:
                recurrence, jobs = self._create_series(
                    session,
                    template,
                    anchor,
                    request.recurrence.to_rule(),
                    breaks,
                    max_per_slot=1,
                    tz=service.calendar_timezone if service else pendulum.UTC,
                )
            else:
                self._conflicts.ensure_no_overlap(session, tenant_id, anchor)
                jobs = [session.create_job(tenant_id, _timed(template, anchor))]
                recurrence = None

        logger.info(
            "Created %d job(s) for tenant %s%s",
            len(jobs),
            tenant_id,
            f" in recurrence {recurrence.id}" if recurrence else "",
        )
        return BookingResult(jobs=jobs, contact=contact, recurrence=recurrence, service=service)

    # ------------------------------------------------------------------
    # Public booking
    # ------------------------------------------------------------------

    def get_availability(
        self,
        service_id: str,
        start: Optional[InstantLike] = None,
        end: Optional[InstantLike] = None,
    ) -> List[DaySlots]:
        """
        List open slots of a service, grouped by business-local day.

        Raises:
            NotFoundError: If the service does not exist
            UnavailableError: If the service is inactive or has no availability
            ValidationError: If the window is malformed
        """
        range_start = _parse_optional_instant(start, "start")
        range_end = _parse_optional_instant(end, "end")
        now = self._clock()

        with self._transaction() as session:
            service = self._load_bookable_service(session, service_id)
            calculator = AvailabilityCalculator(service)
            default_start, default_end = calculator.default_window(now)
            window_start = range_start or default_start
            window_end = range_end or default_end
            if window_end <= window_start:
                raise ValidationError("Availability window must end after it starts")

            # Pad by a day on each side: slots belong to business-local days.
            lookup = TimeRange(start=window_start.subtract(days=1), end=window_end.add(days=2))
            jobs = session.find_overlapping(service.tenant_id, lookup, ACTIVE_STATUSES)

        return calculator.find_open_slots(window_start, window_end, jobs, now)

    def book_slot(
        self,
        service_id: str,
        payload: Union[BookSlotRequest, Mapping[str, Any]],
        notify_email: Optional[str] = None,
    ) -> BookingResult:
        """
        Book a slot (optionally recurring) on a service's public booking page.

        The service, contact, recurrence and jobs are handled in one
        transaction; capacity is enforced per occurrence against the
        service's ``max_bookings_per_slot``.

        Raises:
            ValidationError: If the payload or the requested slot is invalid
            NotFoundError: If the service or referenced contact does not exist
            UnavailableError: If the service cannot be booked
            ConflictError: If the slot (or any occurrence) is full
        """
        request = parse_payload(BookSlotRequest, payload)
        requested_start = to_instant(request.start_time)
        breaks = [b.to_domain() for b in request.breaks]
        now = self._clock()

        with self._transaction() as session:
            service = self._load_bookable_service(session, service_id)
            tenant_id = service.tenant_id
            slot = AvailabilityCalculator(service).validate_slot(requested_start, now)
            contact = self._upsert_contact(session, tenant_id, request.contact)

            template = Job(
                id="",
                tenant_id=tenant_id,
                title=f"{service.name} with {contact.full_name}".strip(),
                status=service.initial_job_status,
                contact_id=contact.id,
                service_id=service.id,
                breaks=breaks,
                location=request.location or request.contact.address or contact.address,
                notes=request.notes,
            )

            if request.recurrence is not None:
                recurrence, jobs = self._create_series(
                    session,
                    template,
                    slot,
                    request.recurrence.to_rule(),
                    breaks,
                    max_per_slot=service.max_bookings_per_slot,
                    tz=service.calendar_timezone,
                )
            else:
                self._conflicts.ensure_capacity(
                    session, tenant_id, slot, service.max_bookings_per_slot
                )
                jobs = [session.create_job(tenant_id, _timed(template, slot))]
                recurrence = None

        result = BookingResult(jobs=jobs, contact=contact, recurrence=recurrence, service=service)
        logger.info(
            "Booked %d occurrence(s) of service %s for contact %s (status %s)",
            result.occurrence_count,
            service.id,
            contact.id,
            result.primary_job.status.value,
        )
        self._notify(BOOKING_REQUESTED, result, notify_email)
        return result

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def confirm_job(
        self,
        tenant_id: str,
        job_id: str,
        whole_series: bool = False,
        notify_email: Optional[str] = None,
    ) -> Job:
        """
        Confirm a pending booking.

        Capacity is not re-checked: the slot was reserved when the booking was
        created.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the job is not pending confirmation
        """
        with self._transaction() as session:
            job = self._load_job(session, tenant_id, job_id)
            if job.status is not JobStatus.PENDING_CONFIRMATION:
                raise ValidationError("Only pending jobs can be confirmed")

            targets = self._series_members(session, job) if whole_series else [job]
            updated = []
            for target in targets:
                if target.status is JobStatus.PENDING_CONFIRMATION:
                    target.status = JobStatus.SCHEDULED
                    updated.append(session.update_job(tenant_id, target))
            result = self._lifecycle_result(session, updated)

        logger.info("Confirmed %d job(s) starting with %s", len(updated), job_id)
        self._notify(BOOKING_CONFIRMED, result, notify_email)
        return result.primary_job

    def decline_job(
        self,
        tenant_id: str,
        job_id: str,
        reason: Optional[str] = None,
        whole_series: bool = False,
        notify_email: Optional[str] = None,
    ) -> Job:
        """
        Decline a pending booking, releasing its slot.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the job is not pending confirmation
        """
        with self._transaction() as session:
            job = self._load_job(session, tenant_id, job_id)
            if job.status is not JobStatus.PENDING_CONFIRMATION:
                raise ValidationError("Only pending jobs can be declined")

            targets = self._series_members(session, job) if whole_series else [job]
            updated = []
            for target in targets:
                if target.status is not JobStatus.PENDING_CONFIRMATION:
                    continue
                target.status = JobStatus.CANCELLED
                if reason:
                    target.notes = f"{target.notes}\n" if target.notes else ""
                    target.notes += f"Declined: {reason}"
                updated.append(session.update_job(tenant_id, target))
            result = self._lifecycle_result(session, updated)

        logger.info("Declined %d job(s) starting with %s", len(updated), job_id)
        self._notify(BOOKING_DECLINED, result, notify_email)
        return result.primary_job

    def update_status(self, tenant_id: str, job_id: str, status: Union[JobStatus, str]) -> Job:
        """
        Move a job along its lifecycle.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the status is unknown or the transition is not allowed
        """
        try:
            target = JobStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown job status: {status!r}") from exc

        with self._transaction() as session:
            job = self._load_job(session, tenant_id, job_id)
            if not job.status.can_transition_to(target):
                raise ValidationError(
                    f"Cannot change status from {job.status.value} to {target.value}"
                )
            job.status = target
            updated = session.update_job(tenant_id, job)

        logger.info("Job %s moved to %s", job_id, target.value)
        return updated

    def reschedule_job(
        self,
        tenant_id: str,
        job_id: str,
        start: InstantLike,
        end: InstantLike,
    ) -> Job:
        """
        Move a job (or schedule a to-be-scheduled job) to a new time range.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the range is invalid or the job is finished
            ConflictError: If the new range overlaps another active job
        """
        try:
            new_range = TimeRange(start=to_instant(start), end=to_instant(end))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid time range: {exc}") from exc

        with self._transaction() as session:
            job = self._load_job(session, tenant_id, job_id)
            if job.status.is_terminal:
                raise ValidationError(f"Cannot reschedule a {job.status.value} job")
            if job.status.is_active:
                self._conflicts.ensure_no_overlap(
                    session, tenant_id, new_range, exclude_job_id=job.id
                )
            job.start_time = new_range.start
            job.end_time = new_range.end
            updated = session.update_job(tenant_id, job)

        logger.info("Job %s rescheduled to %s", job_id, new_range)
        return updated

    def archive_job(self, tenant_id: str, job_id: str) -> Job:
        """Hide a job from calendars; archived jobs no longer hold capacity."""
        with self._transaction() as session:
            job = self._load_job(session, tenant_id, job_id)
            job.archived_at = self._clock()
            updated = session.update_job(tenant_id, job)

        logger.info("Job %s archived", job_id)
        return updated

    def list_jobs(self, tenant_id: str, include_archived: bool = False) -> List[Job]:
        with self._transaction() as session:
            return session.list_jobs(tenant_id, include_archived=include_archived)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[StoreSession]:
        """Open a store transaction, surfacing unexpected failures as StoreError."""
        try:
            with self._store.transaction() as session:
                yield session
        except SchedulingError:
            raise
        except Exception as exc:
            logger.exception("Store transaction failed")
            raise StoreError(f"Could not complete the operation: {exc}") from exc

    def _create_series(
        self,
        session: StoreSession,
        template: Job,
        anchor: TimeRange,
        rule: RecurrenceRule,
        breaks: Sequence[BreakPeriod],
        max_per_slot: int,
        tz: Union[Timezone, FixedTimezone],
    ) -> Tuple[JobRecurrence, List[Job]]:
        """
        Expand, check and insert a whole series inside the current transaction.

        ``tz`` is the calendar whose weekdays a ``days_of_week`` pattern refers to.
        """
        occurrences = list(exclude_breaks(expand_recurrence(anchor, rule, tz), breaks))
        logger.debug(
            "Recurrence %s every %d expanded to %d occurrence(s) from %s",
            rule.frequency,
            rule.interval,
            len(occurrences),
            anchor,
        )
        if not occurrences:
            raise ValidationError("Recurrence does not produce any occurrence outside breaks")

        self._conflicts.check_series(session, template.tenant_id, occurrences, max_per_slot)

        recurrence = session.create_job_recurrence(
            template.tenant_id,
            JobRecurrence(
                id="",
                tenant_id=template.tenant_id,
                rule=rule,
                start_time=anchor.start,
                end_time=anchor.end,
                contact_id=template.contact_id,
                service_id=template.service_id,
                title=template.title,
                timezone=tz.name,
            ),
        )
        jobs = []
        for occurrence in occurrences:
            job = _timed(template, occurrence)
            job.recurrence_id = recurrence.id
            jobs.append(session.create_job(template.tenant_id, job))
        return recurrence, jobs

    def _load_bookable_service(self, session: StoreSession, service_id: str) -> Service:
        service = session.find_service(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found")
        if not service.is_active:
            raise UnavailableError(f"Service {service_id} is not active")
        return service

    def _load_tenant_service(
        self,
        session: StoreSession,
        tenant_id: str,
        service_id: Optional[str],
    ) -> Optional[Service]:
        if not service_id:
            return None
        service = session.find_service(service_id)
        if service is None or service.tenant_id != tenant_id:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    def _load_contact(
        self,
        session: StoreSession,
        tenant_id: str,
        contact_id: Optional[str],
    ) -> Optional[Contact]:
        if not contact_id:
            return None
        contact = session.get_contact(tenant_id, contact_id)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return contact

    def _load_job(self, session: StoreSession, tenant_id: str, job_id: str) -> Job:
        job = session.get_job(tenant_id, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def _upsert_contact(
        self,
        session: StoreSession,
        tenant_id: str,
        contact_input: ContactInput,
    ) -> Contact:
        """
        Reuse the contact by id or email, or create a new one.

        Existing contacts get their phone and address refreshed when the
        booking form supplies them.
        """
        if contact_input.id:
            contact = self._load_contact(session, tenant_id, contact_input.id)
            created = False
        else:
            contact, created = session.find_or_create_contact(
                tenant_id,
                contact_input.email,
                contact_input.new_contact_data(),
            )

        if created:
            logger.info("Created contact %s for tenant %s", contact.id, tenant_id)
            return contact

        changed = False
        if contact_input.address is not None:
            contact.address = contact_input.address or None
            changed = True
        if contact_input.phone and contact_input.phone.strip():
            contact.phone = contact_input.phone.strip()
            changed = True
        return session.update_contact(tenant_id, contact) if changed else contact

    def _series_members(self, session: StoreSession, job: Job) -> List[Job]:
        if not job.recurrence_id:
            return [job]
        members = [
            other
            for other in session.list_jobs(job.tenant_id)
            if other.recurrence_id == job.recurrence_id
        ]
        # The requested job leads so it becomes the primary job of the result.
        return [job] + [other for other in members if other.id != job.id]

    def _lifecycle_result(self, session: StoreSession, jobs: List[Job]) -> BookingResult:
        primary = jobs[0]
        contact = (
            session.get_contact(primary.tenant_id, primary.contact_id)
            if primary.contact_id
            else None
        )
        service = session.find_service(primary.service_id) if primary.service_id else None
        return BookingResult(jobs=jobs, contact=contact, service=service)

    def _notify(self, event: str, result: BookingResult, contractor_email: Optional[str]) -> None:
        """Best-effort delivery; failures are logged and never raised."""
        try:
            self._notifier.notify_client(event, result)
        except Exception:
            logger.exception(
                "Failed to send %s notification to client for job %s",
                event,
                result.primary_job.id,
            )

        if not contractor_email:
            return
        try:
            self._notifier.notify_contractor(event, result, contractor_email)
        except Exception:
            logger.exception(
                "Failed to send %s notification to %s for job %s",
                event,
                contractor_email,
                result.primary_job.id,
            )


def _timed(template: Job, time_range: TimeRange) -> Job:
    """Copy a job template onto a concrete time range."""
    return Job(
        id="",
        tenant_id=template.tenant_id,
        title=template.title,
        status=template.status,
        contact_id=template.contact_id,
        service_id=template.service_id,
        start_time=time_range.start,
        end_time=time_range.end,
        breaks=list(template.breaks),
        location=template.location,
        description=template.description,
        notes=template.notes,
    )


def _parse_optional_instant(value: Optional[InstantLike], name: str) -> Optional[DateTime]:
    if value is None:
        return None
    try:
        return to_instant(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {name}: {value!r}") from exc
