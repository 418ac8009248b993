"""
Tests for the in-memory store and its JSON snapshots.
"""

import json

import pendulum
import pytest

from jobdock.adapters.memory_store import InMemoryStore
from jobdock.domain.exceptions import StoreError
from jobdock.domain.models import (
    ACTIVE_STATUSES,
    AvailabilitySettings,
    Job,
    JobStatus,
    Service,
    TimeRange,
    WorkingHours,
)


def _job(job_id: str, start: str, tenant_id: str = "t1", status=JobStatus.SCHEDULED) -> Job:
    begin = pendulum.parse(start, tz="UTC")
    return Job(
        id=job_id,
        tenant_id=tenant_id,
        title=f"Job {job_id}",
        status=status,
        start_time=begin,
        end_time=begin.add(hours=1),
    )


def _window(start: str, hours: int = 1) -> TimeRange:
    begin = pendulum.parse(start, tz="UTC")
    return TimeRange(start=begin, end=begin.add(hours=hours))


class TestTransactions:
    def test_commit_on_clean_exit(self):
        store = InMemoryStore()

        with store.transaction() as session:
            created = session.create_job("t1", _job("", "2026-01-07 10:00"))

        assert created.id
        assert created.created_at is not None
        assert [job.id for job in store.jobs()] == [created.id]

    def test_rollback_on_error(self):
        store = InMemoryStore(jobs=[_job("a", "2026-01-07 10:00")])

        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.create_job("t1", _job("", "2026-01-08 10:00"))
                job = session.get_job("t1", "a")
                job.status = JobStatus.CANCELLED
                session.update_job("t1", job)
                raise RuntimeError("abort")

        jobs = store.jobs()
        assert [job.id for job in jobs] == ["a"]
        assert jobs[0].status is JobStatus.SCHEDULED

    def test_returned_objects_are_copies(self):
        store = InMemoryStore(jobs=[_job("a", "2026-01-07 10:00")])

        with store.transaction() as session:
            session.get_job("t1", "a").title = "changed"

        assert store.jobs()[0].title == "Job a"

    def test_duplicate_job_id(self):
        store = InMemoryStore(jobs=[_job("a", "2026-01-07 10:00")])

        with pytest.raises(StoreError, match="already exists"):
            with store.transaction() as session:
                session.create_job("t1", _job("a", "2026-01-08 10:00"))

    def test_update_requires_same_tenant(self):
        store = InMemoryStore(jobs=[_job("a", "2026-01-07 10:00")])

        with pytest.raises(StoreError):
            with store.transaction() as session:
                session.update_job("t2", _job("a", "2026-01-07 10:00", tenant_id="t2"))


class TestQueries:
    def test_find_overlapping_filters(self):
        archived = _job("d", "2026-01-07 10:00")
        archived.archived_at = pendulum.parse("2026-01-01", tz="UTC")
        store = InMemoryStore(
            jobs=[
                _job("a", "2026-01-07 10:00"),
                _job("b", "2026-01-07 10:00", tenant_id="t2"),
                _job("c", "2026-01-07 10:00", status=JobStatus.CANCELLED),
                archived,
                _job("e", "2026-01-07 11:00"),
                Job(id="f", tenant_id="t1", title="Unscheduled"),
            ]
        )

        with store.transaction() as session:
            matches = session.find_overlapping("t1", _window("2026-01-07 10:00"), ACTIVE_STATUSES)
            excluded = session.find_overlapping(
                "t1", _window("2026-01-07 10:00"), ACTIVE_STATUSES, exclude_job_id="a"
            )

        assert [job.id for job in matches] == ["a"]
        assert excluded == []

    def test_list_jobs_sorted_with_unscheduled_last(self):
        store = InMemoryStore(
            jobs=[
                Job(id="z", tenant_id="t1", title="Unscheduled"),
                _job("b", "2026-01-08 10:00"),
                _job("a", "2026-01-07 10:00"),
            ]
        )

        with store.transaction() as session:
            jobs = session.list_jobs("t1")

        assert [job.id for job in jobs] == ["a", "b", "z"]

    def test_find_or_create_contact_by_email(self):
        store = InMemoryStore()

        with store.transaction() as session:
            first, created = session.find_or_create_contact(
                "t1", "jane@example.com", {"first_name": "Jane"}
            )
            again, created_again = session.find_or_create_contact(
                "t1", "JANE@example.com", {"first_name": "Other"}
            )
            other_tenant, created_other = session.find_or_create_contact(
                "t2", "jane@example.com", {"first_name": "Jane"}
            )

        assert created and not created_again and created_other
        assert again.id == first.id
        assert other_tenant.id != first.id


class TestJsonSnapshots:
    def test_missing_file_gives_empty_store(self, tmp_path):
        store = InMemoryStore.load_from_json(tmp_path / "missing.json")

        assert store.jobs() == []

    def test_save_and_load(self, tmp_path):
        service = Service(
            id="svc",
            tenant_id="t1",
            name="Clean",
            duration=60,
            availability=AvailabilitySettings(working_hours=[WorkingHours(day_of_week=3)]),
        )
        store = InMemoryStore(services=[service], jobs=[_job("a", "2026-01-07 10:00")])
        data_file = tmp_path / "nested" / "data.json"

        store.save_to_json(data_file)
        loaded = InMemoryStore.load_from_json(data_file)

        assert loaded.jobs() == store.jobs()
        with loaded.transaction() as session:
            assert session.find_service("svc") == service
        assert json.loads(data_file.read_text())["jobs"][0]["start_time"] == "2026-01-07T10:00:00Z"

    def test_invalid_file(self, tmp_path):
        data_file = tmp_path / "data.json"
        data_file.write_text("{not json")

        with pytest.raises(StoreError, match="Could not load data file"):
            InMemoryStore.load_from_json(data_file)
