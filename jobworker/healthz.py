from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from jobworker.config.settings import Settings, SettingsDep
from jobworker.core.exceptions import create_success_response
from jobworker.infra.database import get_session
from jobworker.jobs.models import Job
from jobworker.jobs.types import JobStatus

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue status."""

    queue_depth: int = 0
    due_now: int = 0
    running: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check with database connectivity and queue status."""

    db_health = await _check_database_health(session)

    queue_health = None
    if db_health.connected:
        queue_health = await _check_queue_health(session)

    health_data = {
        "ok": db_health.connected,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(connected=True, response_time_ms=round(response_time_ms, 2))

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_queue_health(session: AsyncSession) -> QueueHealth:
    counts = await session.execute(
        select(Job.status, func.count(Job.id))
        .where(Job.status.in_([JobStatus.QUEUED.value, JobStatus.RUNNING.value]))
        .group_by(Job.status)
    )
    by_status = dict(counts.all())

    due_result = await session.execute(
        select(func.count(Job.id)).where(
            Job.status == JobStatus.QUEUED.value, Job.run_after <= datetime.now(UTC)
        )
    )

    running = by_status.get(JobStatus.RUNNING.value, 0)
    return QueueHealth(
        queue_depth=by_status.get(JobStatus.QUEUED.value, 0) + running,
        due_now=due_result.scalar() or 0,
        running=running,
    )
