"""
Job service for producers: enqueueing and inspecting jobs.

The worker never goes through this module; it talks to the table only via the
job store.
"""

import uuid
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobworker.config.logging import get_logger
from jobworker.jobs.models import Job
from jobworker.jobs.schemas import JobCreate, JobEnqueueResponse, JobStatsResponse
from jobworker.jobs.types import JobStatus

logger = get_logger(__name__)


class JobService:
    """Service for enqueueing and reading background jobs."""

    async def enqueue_job(
        self, session: AsyncSession, job_create: JobCreate
    ) -> JobEnqueueResponse:
        """
        Enqueue a new job with deduplication support.

        Args:
            session: Database session
            job_create: Job creation parameters

        Returns:
            Job enqueue response with job_id and deduplication info
        """
        if job_create.dedupe_key:
            existing_job = await self._find_existing_job(session, job_create.dedupe_key)
            if existing_job:
                logger.info(
                    "Job deduplicated",
                    job_id=str(existing_job.id),
                    dedupe_key=job_create.dedupe_key,
                    type=job_create.type.value,
                )
                return JobEnqueueResponse(
                    job_id=existing_job.id,
                    status=JobStatus(existing_job.status),
                    deduplicated=True,
                )

        now = datetime.now(UTC)
        job = Job(
            id=uuid.uuid4(),
            type=job_create.type.value,
            payload=job_create.payload,
            status=JobStatus.QUEUED.value,
            attempts=0,
            run_after=job_create.run_after or now,
            dedupe_key=job_create.dedupe_key,
            created_at=now,
        )

        session.add(job)
        await session.commit()

        logger.info(
            "Job enqueued",
            job_id=str(job.id),
            type=job.type,
            run_after=job.run_after.isoformat(),
            dedupe_key=job_create.dedupe_key,
        )

        return JobEnqueueResponse(job_id=job.id, status=JobStatus.QUEUED)

    async def _find_existing_job(self, session: AsyncSession, dedupe_key: str) -> Job | None:
        """Find a queued, running or done job with the same dedupe key."""
        result = await session.execute(
            select(Job)
            .where(
                Job.dedupe_key == dedupe_key,
                Job.status.in_(
                    [
                        JobStatus.QUEUED.value,
                        JobStatus.RUNNING.value,
                        JobStatus.DONE.value,
                    ]
                ),
            )
            .order_by(Job.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_job_by_id(self, session: AsyncSession, job_id: UUID) -> Job | None:
        result = await session.execute(select(Job).where(Job.id == job_id))
        return result.scalar_one_or_none()

    async def get_job_stats(self, session: AsyncSession) -> JobStatsResponse:
        """Get job counts by status and type."""
        status_result = await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        by_status = {status: count for status, count in status_result.all()}

        type_result = await session.execute(
            select(Job.type, func.count(Job.id)).group_by(Job.type)
        )
        by_type = {job_type: count for job_type, count in type_result.all()}

        due_result = await session.execute(
            select(func.count(Job.id)).where(
                Job.status == JobStatus.QUEUED.value,
                Job.run_after <= datetime.now(UTC),
            )
        )
        due_now = due_result.scalar() or 0

        queue_depth = by_status.get(JobStatus.QUEUED.value, 0) + by_status.get(
            JobStatus.RUNNING.value, 0
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            due_now=due_now,
        )
