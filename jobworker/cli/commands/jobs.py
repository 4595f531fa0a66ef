"""Jobs Commands - Enqueue and inspect jobs"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID

import typer
from pydantic import ValidationError
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobworker.config.settings import load_settings
from jobworker.core.exceptions import ConfigurationError
from jobworker.infra.database import Database
from jobworker.jobs.registry_init import DELEGATED_ENDPOINTS
from jobworker.jobs.schemas import JobCreate, JobResponse
from jobworker.jobs.service import JobService
from jobworker.jobs.types import JobType

from ..utils.formatting import (
    create_stats_table,
    create_types_table,
    display_job,
    print_error,
    print_success,
    print_warning,
)

T = TypeVar("T")

console = Console()
app = typer.Typer(name="jobs", help="Job enqueueing and inspection commands")


def _run_with_session(action: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Open a session against the configured job store and run ``action``."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print_error(f"{e.message}: {'; '.join(e.details.get('errors', []))}")
        raise typer.Exit(1) from None

    async def _run() -> T:
        database = Database(settings)
        try:
            async with database.SessionLocal() as session:
                return await action(session)
        finally:
            await database.close()

    try:
        return asyncio.run(_run())
    except (SQLAlchemyError, OSError) as e:
        print_error(f"Job store error: {e}")
        raise typer.Exit(1) from None


@app.command("enqueue")
def enqueue(
    job_type: str = typer.Argument(..., help="Job type, see 'jobs types'"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON object passed to the handler"),
    delay: float = typer.Option(0, "--delay", "-d", min=0, help="Seconds before the job is due"),
    dedupe_key: str | None = typer.Option(None, "--dedupe-key", help="Skip if an equal job exists"),
):
    """➕ Add a job to the queue"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        print_error(f"Payload is not valid JSON: {e}")
        raise typer.Exit(1) from None

    try:
        job_create = JobCreate(
            type=job_type,
            payload=payload_data,
            run_after=datetime.now(UTC) + timedelta(seconds=delay) if delay else None,
            dedupe_key=dedupe_key,
        )
    except ValidationError as e:
        print_error(f"Invalid job: {e.errors()[0]['msg']}")
        raise typer.Exit(1) from None

    response = _run_with_session(
        lambda session: JobService().enqueue_job(session, job_create)
    )

    if response.deduplicated:
        print_warning(f"Existing job reused: {response.job_id} ({response.status.value})")
    else:
        print_success(f"Job enqueued: {response.job_id}")


@app.command("show")
def show(
    job_id: str = typer.Argument(..., help="Job ID to show"),
):
    """🔍 Show a job's lifecycle, payload and outcome"""
    try:
        parsed_id = UUID(job_id)
    except ValueError:
        print_error(f"Invalid job id: {job_id}")
        raise typer.Exit(1) from None

    async def _load(session: AsyncSession) -> JobResponse | None:
        job = await JobService().get_job_by_id(session, parsed_id)
        return JobResponse.model_validate(job) if job else None

    job = _run_with_session(_load)
    if job is None:
        print_error(f"Job not found: {job_id}")
        raise typer.Exit(1)

    display_job(job)


@app.command("stats")
def stats():
    """📊 Show queue depth and job counts"""
    queue_stats = _run_with_session(lambda session: JobService().get_job_stats(session))
    console.print(create_stats_table(queue_stats))


@app.command("types")
def types():
    """📋 List the job types the worker can run"""
    rows = [
        (
            job_type.value,
            f"POST /functions/v1/{DELEGATED_ENDPOINTS[job_type]}"
            if job_type in DELEGATED_ENDPOINTS
            else "in process",
        )
        for job_type in JobType
    ]
    console.print(create_types_table(rows))
