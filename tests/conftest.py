import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from jobworker.config.settings import Settings
from jobworker.core.registries import JobRegistry
from jobworker.infra.database import Base, Database
from jobworker.jobs.models import Job
from jobworker.jobs.store import SqlJobStore
from jobworker.jobs.types import JobType


def build_settings(database_url: str, **overrides: Any) -> Settings:
    """Settings for tests, ignoring any local .env file."""
    values = {
        "database_url": database_url,
        "functions_base_url": "http://functions.test",
        "service_role_key": "test-service-key",
        "worker_poll_interval_ms": 10,
        **overrides,
    }
    return Settings(_env_file=None, **values)


class RecordingHandler:
    """Work function that records payloads and returns or raises a fixed outcome."""

    def __init__(self, result: dict[str, Any] | None = None, error: Exception | None = None):
        self.result = result if result is not None else {"status": "completed"}
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return build_settings(database_url)


@pytest.fixture
async def database(settings) -> AsyncGenerator[Database, None]:
    """Database with the jobs table created, disposed after each test."""
    database = Database(settings)
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield database
    await database.close()


@pytest.fixture
def store(database) -> SqlJobStore:
    return SqlJobStore(database.SessionLocal)


@pytest.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    async with database.SessionLocal() as session:
        yield session


@pytest.fixture
def make_job(database):
    """Insert a job row directly, bypassing the producer service."""

    async def _make(
        job_type: str = JobType.REFRESH_PRICES.value,
        payload: dict[str, Any] | None = None,
        status: str = "queued",
        attempts: int = 0,
        run_after: datetime | None = None,
        created_at: datetime | None = None,
        **fields: Any,
    ) -> Job:
        now = datetime.now(UTC)
        job = Job(
            id=uuid.uuid4(),
            type=job_type,
            payload=payload if payload is not None else {},
            status=status,
            attempts=attempts,
            run_after=run_after or now - timedelta(minutes=1),
            created_at=created_at or now,
            **fields,
        )
        async with database.SessionLocal() as session:
            session.add(job)
            await session.commit()
        return job

    return _make


@pytest.fixture
def fetch_job(database):
    """Read the current row for a job in a fresh session."""

    async def _fetch(job_id: uuid.UUID) -> Job | None:
        async with database.SessionLocal() as session:
            return await session.get(Job, job_id)

    return _fetch


@pytest.fixture
def handlers() -> dict[JobType, RecordingHandler]:
    return {job_type: RecordingHandler() for job_type in JobType}


@pytest.fixture
def registry(handlers) -> JobRegistry:
    registry = JobRegistry()
    for job_type, handler in handlers.items():
        registry.register(job_type, handler)
    return registry
