"""
Dispatcher: claims due jobs, runs their handlers and persists the outcome.
"""

import asyncio
import random
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from jobworker.config.logging import bind_job_context, clear_job_context, get_logger
from jobworker.config.settings import Settings
from jobworker.core.exceptions import (
    HandlerExecutionError,
    JobWorkerError,
    StoreQueryError,
    classify_handler_error,
)
from jobworker.core.registries import JobRegistry
from jobworker.jobs.models import Job, utcnow
from jobworker.jobs.store import JobStore
from jobworker.jobs.types import JobStatus

logger = get_logger(__name__)

STALE_SCAN_LIMIT = 100


def compute_retry_delay(
    attempt: int, settings: Settings, rand: Callable[[], float] = random.random
) -> float:
    """
    Seconds to wait before a failed attempt becomes due again.

    Zero when no backoff base is configured, which re-queues the job for the
    very next poll. Otherwise base * 2^(attempt - 1), capped and jittered.
    """
    base_delay = settings.worker_retry_backoff_base_ms / 1000
    if base_delay <= 0:
        return 0.0

    delay = min(settings.worker_retry_max_backoff_s, base_delay * (2 ** (attempt - 1)))
    jitter = delay * settings.worker_retry_jitter * (2 * rand() - 1)
    return max(0.0, delay + jitter)


class JobDispatcher:
    """
    Executes claimed jobs one at a time and records each outcome.

    No error raised while processing a job escapes ``poll_once``; every
    failure becomes a store update and a log line. Outcomes that could not be
    written are kept and re-applied at the start of the next poll.
    """

    def __init__(
        self,
        store: JobStore,
        registry: JobRegistry,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings
        self._clock = clock
        self._pending_outcomes: dict[UUID, tuple[int, dict[str, Any]]] = {}
        self.in_flight: set[UUID] = set()

    @property
    def pending_outcomes(self) -> dict[UUID, tuple[int, dict[str, Any]]]:
        return dict(self._pending_outcomes)

    async def poll_once(self, should_continue: Callable[[], bool] = lambda: True) -> int:
        """Claim one batch and process it in claim order. Returns jobs executed."""
        await self._flush_pending_outcomes()

        try:
            jobs = await self.store.claim_batch(self.settings.worker_batch_size, self._clock())
        except StoreQueryError as e:
            logger.error("Poll failed, treating batch as empty", error=e.message, details=e.details)
            return 0

        processed = 0
        for job in jobs:
            if not should_continue():
                logger.info("Stop requested, leaving remaining claimed jobs queued")
                break
            if await self.process_job(job):
                processed += 1
        return processed

    async def process_job(self, job: Job) -> bool:
        """Run a single claimed job. Returns False if this worker did not execute it."""
        try:
            attempt = await self.store.acquire(job, self._clock())
        except StoreQueryError as e:
            logger.error(
                "Could not mark job running, leaving it queued",
                job_id=str(job.id),
                error=e.message,
            )
            return False

        if attempt is None:
            logger.debug("Job already taken by another worker", job_id=str(job.id))
            return False

        self.in_flight.add(job.id)
        bind_job_context(job_id=str(job.id), job_type=job.type, attempt=attempt)
        try:
            logger.info("Processing job")
            outcome = await self._execute(job, attempt)
            await self._commit(job.id, attempt, outcome)
        finally:
            clear_job_context()
            self.in_flight.discard(job.id)
        return True

    async def _execute(self, job: Job, attempt: int) -> dict[str, Any]:
        try:
            handler = self.registry.resolve(job.type)
            result = await handler.handle(dict(job.payload or {}))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_handler_error(exc)
            return self.failure_outcome(error, attempt)

        logger.info("Job completed")
        return {
            "status": JobStatus.DONE,
            "finished_at": self._clock(),
            "result": result,
        }

    def failure_outcome(self, error: JobWorkerError, attempt: int) -> dict[str, Any]:
        """Fields recording a failed attempt: re-queue while budget remains, else fail."""
        now = self._clock()
        if not error.retryable or attempt >= self.settings.worker_max_retries:
            logger.error(
                "Job failed permanently",
                error=error.message,
                error_type=error.__class__.__name__,
                attempts=attempt,
            )
            return {
                "status": JobStatus.FAILED,
                "finished_at": now,
                "last_error": error.message,
            }

        outcome: dict[str, Any] = {
            "status": JobStatus.QUEUED,
            "finished_at": None,
            "last_error": error.message,
        }
        delay = compute_retry_delay(attempt, self.settings)
        if delay > 0:
            outcome["run_after"] = now + timedelta(seconds=delay)

        logger.warning(
            "Job attempt failed, re-queued",
            error=error.message,
            attempts=attempt,
            max_retries=self.settings.worker_max_retries,
            retry_delay_s=round(delay, 3),
        )
        return outcome

    async def _commit(self, job_id: UUID, attempt: int, fields: dict[str, Any]) -> None:
        try:
            stored = await self._store_outcome(job_id, attempt, fields)
        except StoreQueryError as e:
            logger.error(
                "Failed to store job outcome, will retry on next poll",
                job_id=str(job_id),
                error=e.message,
            )
            self._pending_outcomes[job_id] = (attempt, fields)
            return

        if not stored:
            logger.warning(
                "Job outcome superseded, dropping it", job_id=str(job_id), attempt=attempt
            )

    async def _flush_pending_outcomes(self) -> None:
        for job_id, (attempt, fields) in list(self._pending_outcomes.items()):
            try:
                stored = await self._store_outcome(job_id, attempt, fields)
            except StoreQueryError as e:
                logger.error("Job store still unavailable", job_id=str(job_id), error=e.message)
                return

            if stored:
                logger.info("Stored deferred job outcome", job_id=str(job_id))
            else:
                logger.warning(
                    "Deferred job outcome superseded, dropping it",
                    job_id=str(job_id),
                    attempt=attempt,
                )
            del self._pending_outcomes[job_id]

    async def _store_outcome(self, job_id: UUID, attempt: int, fields: dict[str, Any]) -> bool:
        # Only the attempt that moved the job to running may finish it
        return await self.store.transition(
            job_id, fields, from_status=JobStatus.RUNNING, attempts=attempt
        )

    async def recover_stale(self, stale_after_s: int) -> int:
        """
        Re-queue or fail jobs left running by a worker that died mid-attempt.

        The stale attempt counts as a failed attempt. Each transition is
        conditioned on the job still being running with the attempt count we
        saw, so a worker that finishes in the meantime wins.
        """
        cutoff = self._clock() - timedelta(seconds=stale_after_s)
        try:
            stale_jobs = await self.store.find_stale(cutoff, STALE_SCAN_LIMIT)
        except StoreQueryError as e:
            logger.error("Stale job scan failed", error=e.message)
            return 0

        recovered = 0
        for job in stale_jobs:
            if job.id in self.in_flight or job.id in self._pending_outcomes:
                continue

            bind_job_context(job_id=str(job.id), job_type=job.type, attempt=job.attempts)
            try:
                error = HandlerExecutionError(f"Job exceeded stale timeout of {stale_after_s}s")
                fields = self.failure_outcome(error, job.attempts)
                won = await self.store.transition(
                    job.id, fields, from_status=JobStatus.RUNNING, attempts=job.attempts
                )
            except StoreQueryError as e:
                logger.error("Failed to recover stale job", error=e.message)
                continue
            finally:
                clear_job_context()

            if won:
                recovered += 1

        if recovered:
            logger.warning("Recovered stale jobs", count=recovered, stale_after_s=stale_after_s)
        return recovered
