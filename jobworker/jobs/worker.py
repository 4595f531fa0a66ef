"""
Poll loop that drives the dispatcher until the process is asked to stop.
"""

import asyncio
import os
import signal
import socket
from contextlib import suppress
from enum import Enum

import httpx

from jobworker.config.logging import get_logger
from jobworker.config.settings import Settings
from jobworker.infra.database import Database
from jobworker.jobs.dispatcher import JobDispatcher
from jobworker.jobs.registry_init import build_job_registry
from jobworker.jobs.store import SqlJobStore

logger = get_logger(__name__)


class WorkerState(str, Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    POLLING = "polling"


class JobWorker:
    """
    Single scheduler task that alternates between polling and idling.

    ``stop()`` sets the cancellation token. While idle the timed wait returns
    at once; while polling the job in flight finishes and the rest of the
    batch is left queued. Handlers are never interrupted.
    """

    def __init__(self, settings: Settings, dispatcher: JobDispatcher):
        self.settings = settings
        self.dispatcher = dispatcher
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}"
        self.state = WorkerState.STOPPED
        self._stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """Run the poll loop (and stale recovery, if enabled) until stopped."""
        if self.state != WorkerState.STOPPED:
            raise RuntimeError("Worker is already running")

        self._stop_event.clear()
        self.state = WorkerState.IDLE
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            poll_interval_ms=self.settings.worker_poll_interval_ms,
            batch_size=self.settings.worker_batch_size,
            max_retries=self.settings.worker_max_retries,
        )

        loops = [self._poll_loop()]
        if self.settings.worker_stale_after_s:
            loops.append(self._stale_recovery_loop(self.settings.worker_stale_after_s))

        try:
            await asyncio.gather(*loops)
        finally:
            self.state = WorkerState.STOPPED
            logger.info("Job worker stopped", worker_id=self.worker_id)

    def stop(self) -> None:
        """Request a graceful shutdown."""
        if not self._stop_event.is_set():
            logger.info("Stopping job worker", worker_id=self.worker_id, state=self.state.value)
        self._stop_event.set()

    async def _poll_loop(self) -> None:
        while not self.stopping:
            self.state = WorkerState.POLLING
            try:
                processed = await self.dispatcher.poll_once(
                    should_continue=lambda: not self.stopping
                )
            except Exception:
                logger.exception("Unexpected error in poll loop", worker_id=self.worker_id)
                processed = 0

            if processed > 0:
                logger.info("Processed jobs", worker_id=self.worker_id, count=processed)

            self.state = WorkerState.IDLE
            if await self._wait_for_stop(self.settings.poll_interval_s):
                break

    async def _stale_recovery_loop(self, stale_after_s: int) -> None:
        # Scan at most once a minute, more often for short thresholds
        interval = min(60.0, stale_after_s / 2)
        while not self.stopping:
            try:
                await self.dispatcher.recover_stale(stale_after_s)
            except Exception:
                logger.exception("Error in stale job recovery", worker_id=self.worker_id)

            if await self._wait_for_stop(interval):
                break

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Timed wait on the cancellation token. True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


async def run_worker(settings: Settings) -> None:
    """Wire the store, registry and dispatcher, then run until SIGINT/SIGTERM."""
    database = Database(settings)

    async with httpx.AsyncClient() as client:
        registry = build_job_registry(settings, client=client)
        dispatcher = JobDispatcher(SqlJobStore(database.SessionLocal), registry, settings)
        worker = JobWorker(settings, dispatcher)

        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()

        def _on_signal(signum: signal.Signals) -> None:
            if worker.stopping:
                # Second signal: stop waiting for the in-flight job
                logger.warning("Forced shutdown", signal=signum.name)
                main_task.cancel()
                return
            logger.info("Received shutdown signal", signal=signum.name)
            worker.stop()

        installed = []
        for signum in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(signum, _on_signal, signum)
                installed.append(signum)

        try:
            await worker.start()
        finally:
            for signum in installed:
                loop.remove_signal_handler(signum)
            await database.close()
