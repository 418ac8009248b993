"""
In-memory implementation of the scheduling store.

Used by the tests and the CLI. Data can be seeded from (and written back to)
a JSON snapshot file so the CLI keeps its bookings between runs.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pendulum

from ..domain.exceptions import StoreError
from ..domain.models import Contact, Job, JobRecurrence, Service, TimeRange

logger = logging.getLogger(__name__)


@dataclass
class _Tables:
    services: Dict[str, Service] = field(default_factory=dict)
    contacts: Dict[str, Contact] = field(default_factory=dict)
    jobs: Dict[str, Job] = field(default_factory=dict)
    recurrences: Dict[str, JobRecurrence] = field(default_factory=dict)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemorySession:
    """Session working on a private copy of the tables."""

    def __init__(self, tables: _Tables):
        self._tables = tables

    def find_service(self, service_id: str) -> Optional[Service]:
        service = self._tables.services.get(service_id)
        return copy.deepcopy(service) if service else None

    def find_overlapping(
        self,
        tenant_id: str,
        time_range: TimeRange,
        statuses: Iterable,
        exclude_job_id: Optional[str] = None,
    ) -> List[Job]:
        wanted = set(statuses)
        matches = [
            job
            for job in self._tables.jobs.values()
            if job.tenant_id == tenant_id
            and job.id != exclude_job_id
            and job.status in wanted
            and job.is_visible
            and job.time_range is not None
            and job.time_range.overlaps(time_range)
        ]
        return [copy.deepcopy(job) for job in _sorted_jobs(matches)]

    def list_jobs(self, tenant_id: str, include_archived: bool = False) -> List[Job]:
        jobs = [
            job
            for job in self._tables.jobs.values()
            if job.tenant_id == tenant_id
            and job.deleted_at is None
            and (include_archived or job.archived_at is None)
        ]
        return [copy.deepcopy(job) for job in _sorted_jobs(jobs)]

    def get_job(self, tenant_id: str, job_id: str) -> Optional[Job]:
        job = self._tables.jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id or job.deleted_at is not None:
            return None
        return copy.deepcopy(job)

    def create_job(self, tenant_id: str, job: Job) -> Job:
        stored = copy.deepcopy(job)
        stored.tenant_id = tenant_id
        stored.id = stored.id or _new_id()
        stored.created_at = stored.created_at or pendulum.now("UTC")
        if stored.id in self._tables.jobs:
            raise StoreError(f"Job {stored.id} already exists")
        self._tables.jobs[stored.id] = stored
        return copy.deepcopy(stored)

    def update_job(self, tenant_id: str, job: Job) -> Job:
        current = self._tables.jobs.get(job.id)
        if current is None or current.tenant_id != tenant_id:
            raise StoreError(f"Job {job.id} does not exist for tenant {tenant_id}")
        self._tables.jobs[job.id] = copy.deepcopy(job)
        return copy.deepcopy(job)

    def create_job_recurrence(self, tenant_id: str, recurrence: JobRecurrence) -> JobRecurrence:
        stored = copy.deepcopy(recurrence)
        stored.tenant_id = tenant_id
        stored.id = stored.id or _new_id()
        self._tables.recurrences[stored.id] = stored
        return copy.deepcopy(stored)

    def get_contact(self, tenant_id: str, contact_id: str) -> Optional[Contact]:
        contact = self._tables.contacts.get(contact_id)
        if contact is None or contact.tenant_id != tenant_id:
            return None
        return copy.deepcopy(contact)

    def find_or_create_contact(
        self,
        tenant_id: str,
        email: Optional[str],
        data: Dict[str, Any],
    ) -> Tuple[Contact, bool]:
        if email:
            email_key = email.strip().lower()
            for contact in self._tables.contacts.values():
                if contact.tenant_id == tenant_id and (contact.email or "").lower() == email_key:
                    return copy.deepcopy(contact), False

        contact = Contact(id=_new_id(), tenant_id=tenant_id, email=email, **data)
        self._tables.contacts[contact.id] = contact
        return copy.deepcopy(contact), True

    def update_contact(self, tenant_id: str, contact: Contact) -> Contact:
        current = self._tables.contacts.get(contact.id)
        if current is None or current.tenant_id != tenant_id:
            raise StoreError(f"Contact {contact.id} does not exist for tenant {tenant_id}")
        self._tables.contacts[contact.id] = copy.deepcopy(contact)
        return copy.deepcopy(contact)


class InMemoryStore:
    """
    Thread-safe in-memory store.

    Transactions are serialised with a lock and operate on a deep copy of the
    tables that replaces the live tables only on a clean exit, so a failed
    transaction leaves no trace and concurrent check-then-insert sequences
    cannot interleave.
    """

    def __init__(
        self,
        services: Iterable[Service] = (),
        contacts: Iterable[Contact] = (),
        jobs: Iterable[Job] = (),
        recurrences: Iterable[JobRecurrence] = (),
    ):
        self._lock = threading.RLock()
        self._tables = _Tables(
            services={s.id: s for s in services},
            contacts={c.id: c for c in contacts},
            jobs={j.id: j for j in jobs},
            recurrences={r.id: r for r in recurrences},
        )

    @contextmanager
    def transaction(self) -> Iterator[InMemorySession]:
        with self._lock:
            staged = copy.deepcopy(self._tables)
            yield InMemorySession(staged)
            self._tables = staged

    def add_service(self, service: Service) -> None:
        with self._lock:
            self._tables.services[service.id] = copy.deepcopy(service)

    def jobs(self) -> List[Job]:
        """Snapshot of every stored job, across tenants."""
        with self._lock:
            return [copy.deepcopy(job) for job in _sorted_jobs(self._tables.jobs.values())]

    def recurrences(self) -> List[JobRecurrence]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables.recurrences.values()]

    def contacts(self) -> List[Contact]:
        with self._lock:
            return [copy.deepcopy(c) for c in self._tables.contacts.values()]

    @classmethod
    def load_from_json(cls, data_file: Path) -> "InMemoryStore":
        """
        Build a store from a JSON snapshot.

        A missing file yields an empty store.

        Raises:
            StoreError: If the file cannot be read or parsed
        """
        if not data_file.exists():
            logger.info("Data file %s not found, starting with an empty store", data_file)
            return cls()

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
            return cls(
                services=[Service.from_dict(s) for s in data.get("services", [])],
                contacts=[Contact.from_dict(c) for c in data.get("contacts", [])],
                jobs=[Job.from_dict(j) for j in data.get("jobs", [])],
                recurrences=[JobRecurrence.from_dict(r) for r in data.get("recurrences", [])],
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Could not load data file {data_file}: {exc}") from exc

    def save_to_json(self, data_file: Path) -> None:
        """Write the current state to a JSON snapshot."""
        with self._lock:
            snapshot = {
                "services": [s.to_dict() for s in self._tables.services.values()],
                "contacts": [c.to_dict() for c in self._tables.contacts.values()],
                "jobs": [j.to_dict() for j in _sorted_jobs(self._tables.jobs.values())],
                "recurrences": [r.to_dict() for r in self._tables.recurrences.values()],
            }

        try:
            data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(data_file, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
        except OSError as exc:
            raise StoreError(f"Could not write data file {data_file}: {exc}") from exc


def _sorted_jobs(jobs: Iterable[Job]) -> List[Job]:
    far_future = pendulum.datetime(9999, 1, 1, tz="UTC")
    return sorted(jobs, key=lambda job: (job.start_time or far_future, job.id))
