"""Tests for the SQL job store contract"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from jobworker.core.exceptions import JobNotFoundError, StoreQueryError
from jobworker.infra.database import Database
from jobworker.jobs.store import SqlJobStore
from jobworker.jobs.types import JobStatus


def _now() -> datetime:
    return datetime.now(UTC)


async def test_claim_batch_orders_oldest_first_and_respects_limit(store, make_job):
    base = _now() - timedelta(hours=1)
    created = [
        await make_job(created_at=base + timedelta(minutes=offset))
        for offset in (5, 1, 4, 2, 3)
    ]

    claimed = await store.claim_batch(3, _now())

    assert len(claimed) == 3
    expected = sorted(created, key=lambda job: job.created_at)[:3]
    assert [job.id for job in claimed] == [job.id for job in expected]


async def test_claim_batch_skips_future_and_non_queued_jobs(store, make_job):
    due = await make_job()
    await make_job(run_after=_now() + timedelta(hours=1))
    await make_job(status="running", attempts=1)
    await make_job(status="done", attempts=1, result={"ok": True})
    await make_job(status="failed", attempts=3, last_error="boom")

    claimed = await store.claim_batch(10, _now())

    assert [job.id for job in claimed] == [due.id]


async def test_claim_batch_does_not_mutate(store, make_job, fetch_job):
    job = await make_job()

    await store.claim_batch(5, _now())

    stored = await fetch_job(job.id)
    assert stored.status == JobStatus.QUEUED.value
    assert stored.attempts == 0
    assert stored.started_at is None


async def test_claim_batch_with_zero_limit_returns_nothing(store, make_job):
    await make_job()

    assert await store.claim_batch(0, _now()) == []


async def test_acquire_marks_running_and_counts_attempt(store, make_job, fetch_job):
    job = await make_job(attempts=1)

    attempt = await store.acquire(job, _now())

    assert attempt == 2
    stored = await fetch_job(job.id)
    assert stored.status == JobStatus.RUNNING.value
    assert stored.attempts == 2
    assert stored.started_at is not None


async def test_acquire_is_won_by_exactly_one_claimer(store, make_job, fetch_job):
    await make_job()
    first_view = (await store.claim_batch(1, _now()))[0]
    second_view = (await store.claim_batch(1, _now()))[0]
    assert first_view.id == second_view.id

    assert await store.acquire(first_view, _now()) == 1
    assert await store.acquire(second_view, _now()) is None

    stored = await fetch_job(first_view.id)
    assert stored.attempts == 1


async def test_update_applies_partial_fields(store, make_job, fetch_job):
    job = await make_job(status="running", attempts=1)

    await store.update(
        job.id,
        {"status": JobStatus.DONE, "finished_at": _now(), "result": {"rows": 3}},
    )

    stored = await fetch_job(job.id)
    assert stored.status == "done"
    assert stored.result == {"rows": 3}
    assert stored.finished_at is not None
    assert stored.payload == job.payload


async def test_update_missing_job_raises_not_found(store):
    missing_id = uuid.uuid4()

    with pytest.raises(JobNotFoundError, match=str(missing_id)):
        await store.update(missing_id, {"status": JobStatus.DONE})


async def test_update_rejects_immutable_fields(store, make_job):
    job = await make_job()

    with pytest.raises(ValueError, match="immutable or unknown"):
        await store.update(job.id, {"payload": {"changed": True}})


async def test_transition_requires_expected_status_and_attempts(store, make_job, fetch_job):
    job = await make_job(status="running", attempts=2)

    assert not await store.transition(
        job.id, {"status": JobStatus.QUEUED}, from_status=JobStatus.RUNNING, attempts=1
    )
    assert await store.transition(
        job.id, {"status": JobStatus.QUEUED}, from_status=JobStatus.RUNNING, attempts=2
    )

    stored = await fetch_job(job.id)
    assert stored.status == "queued"


async def test_find_stale_returns_old_running_jobs(store, make_job):
    stale = await make_job(status="running", attempts=1, started_at=_now() - timedelta(hours=2))
    await make_job(status="running", attempts=1, started_at=_now())
    await make_job(status="done", attempts=1, started_at=_now() - timedelta(hours=2))

    found = await store.find_stale(_now() - timedelta(hours=1), limit=10)

    assert [job.id for job in found] == [stale.id]


async def test_database_errors_surface_as_store_query_error(settings):
    # No tables created: every query fails
    database = Database(settings)
    try:
        broken_store = SqlJobStore(database.SessionLocal)

        with pytest.raises(StoreQueryError, match="claim failed"):
            await broken_store.claim_batch(5, _now())

        with pytest.raises(StoreQueryError, match="update failed"):
            await broken_store.update(uuid.uuid4(), {"status": JobStatus.DONE})
    finally:
        await database.close()
