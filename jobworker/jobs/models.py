"""
Job table model shared by producers and the worker.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobworker.infra.database import Base
from jobworker.jobs.types import JobStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class Job(Base):
    """
    A unit of asynchronous work.

    Producers insert rows with status ``queued`` and ``attempts = 0``; after
    that only the worker mutates them. Rows are never deleted here.
    """

    __tablename__ = "jobs"

    # Immutable identity
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job type identifier"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Handler input",
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.QUEUED.value,
        comment="Job status: queued|running|done|failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of attempts made"
    )
    run_after: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Earliest time to run job",
    )

    # Outcome
    result: Mapped[Any] = mapped_column(
        JSON, nullable=True, comment="Handler output, set on success"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Producer idempotency
    dedupe_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Deduplication key for idempotent enqueueing"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'running', 'done', 'failed')",
            name="jobs_status_check",
        ),
        CheckConstraint("attempts >= 0", name="jobs_attempts_check"),
        Index("ix_jobs_status_run_after_created_at", "status", "run_after", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Job {self.id} type={self.type} status={self.status} attempts={self.attempts}>"
