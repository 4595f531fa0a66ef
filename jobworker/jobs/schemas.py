"""
Pydantic schemas for enqueueing and inspecting jobs.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from jobworker.jobs.types import JobStatus, JobType


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    type: JobType = Field(..., description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    run_after: datetime | None = Field(
        default=None, description="Earliest time to run job, defaults to now"
    )
    dedupe_key: str | None = Field(
        default=None, min_length=1, max_length=200, description="Deduplication key"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue responses."""

    job_id: UUID
    status: JobStatus
    deduplicated: bool = False


class JobResponse(BaseModel):
    """Schema for a stored job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: dict[str, Any]
    status: JobStatus
    attempts: int
    run_after: datetime
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    last_error: str | None = None
    dedupe_key: str | None = None


class JobStatsResponse(BaseModel):
    """Schema for queue statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int = Field(description="Queued plus running jobs")
    due_now: int = Field(description="Queued jobs eligible for the next poll")
