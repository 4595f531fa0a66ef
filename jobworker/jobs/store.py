"""
Job store: the only code that reads or writes the jobs table on behalf of the worker.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobworker.core.exceptions import JobNotFoundError, StoreQueryError
from jobworker.jobs.models import Job
from jobworker.jobs.types import JobStatus

# Fields the worker may change; id, type, payload and created_at are immutable.
MUTABLE_FIELDS = frozenset(
    {"status", "attempts", "run_after", "started_at", "finished_at", "result", "last_error"}
)


class JobStore(Protocol):
    """Operations the dispatcher needs from the persisted job table."""

    async def claim_batch(self, limit: int, now: datetime) -> list[Job]:
        ...

    async def acquire(self, job: Job, now: datetime) -> int | None:
        ...

    async def transition(
        self,
        job_id: UUID,
        fields: dict[str, Any],
        *,
        from_status: JobStatus,
        attempts: int,
    ) -> bool:
        ...

    async def update(self, job_id: UUID, fields: dict[str, Any]) -> None:
        ...

    async def find_stale(self, started_before: datetime, limit: int) -> list[Job]:
        ...


class SqlJobStore:
    """
    SQLAlchemy implementation of the job store.

    Claiming is two steps. ``claim_batch`` only selects due rows, so two
    workers polling at the same moment can select the same job. The race is
    closed by ``acquire``: a compare-and-swap ``UPDATE ... WHERE status =
    'queued' AND attempts = <seen>`` that exactly one worker can win. Callers
    must never run a job they did not acquire.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str, **context: Any) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            raise StoreQueryError(
                f"Job store {operation} failed",
                details={"error": str(e), **{k: str(v) for k, v in context.items()}},
            ) from e

    async def claim_batch(self, limit: int, now: datetime) -> list[Job]:
        """Select up to ``limit`` due queued jobs, oldest first."""
        if limit <= 0:
            return []

        query = (
            select(Job)
            .where(Job.status == JobStatus.QUEUED.value, Job.run_after <= now)
            .order_by(Job.created_at, Job.id)
            .limit(limit)
            # Rendered on PostgreSQL only; SQLite ignores row locks
            .with_for_update(skip_locked=True)
        )

        async with self._session("claim") as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def acquire(self, job: Job, now: datetime) -> int | None:
        """
        Atomically move a claimed job from queued to running.

        Returns the new attempt count, or None if another worker already took
        the job (or it is no longer queued).
        """
        attempt = job.attempts + 1
        won = await self.transition(
            job.id,
            {
                "status": JobStatus.RUNNING,
                "started_at": now,
                "attempts": attempt,
            },
            from_status=JobStatus.QUEUED,
            attempts=job.attempts,
        )
        return attempt if won else None

    async def transition(
        self,
        job_id: UUID,
        fields: dict[str, Any],
        *,
        from_status: JobStatus,
        attempts: int,
    ) -> bool:
        """Apply ``fields`` only if the row still has the expected status and attempts."""
        values = _validate_fields(fields)
        statement = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status == from_status.value,
                Job.attempts == attempts,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session("transition", job_id=job_id) as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount == 1

    async def update(self, job_id: UUID, fields: dict[str, Any]) -> None:
        """Partially update a job; raises JobNotFoundError if the row is gone."""
        values = _validate_fields(fields)
        statement = (
            update(Job)
            .where(Job.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session("update", job_id=job_id) as session:
            result = await session.execute(statement)
            await session.commit()
            if result.rowcount == 0:
                raise JobNotFoundError(job_id)

    async def find_stale(self, started_before: datetime, limit: int) -> list[Job]:
        """Running jobs whose attempt started before the cutoff."""
        query = (
            select(Job)
            .where(
                Job.status == JobStatus.RUNNING.value,
                Job.started_at < started_before,
            )
            .order_by(Job.started_at)
            .limit(limit)
        )

        async with self._session("stale scan") as session:
            result = await session.execute(query)
            return list(result.scalars().all())


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update immutable or unknown job fields: {sorted(unknown)}")
    if not fields:
        raise ValueError("No job fields to update")

    values = dict(fields)
    if isinstance(values.get("status"), JobStatus):
        values["status"] = values["status"].value
    return values
