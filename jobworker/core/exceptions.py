from datetime import UTC, datetime
from typing import Any


class JobWorkerError(Exception):
    """Base exception for the job worker."""

    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(JobWorkerError):
    """Raised when startup configuration is missing or invalid."""


class StoreQueryError(JobWorkerError):
    """Raised when a claim or update against the job store fails."""


class JobNotFoundError(JobWorkerError):
    """Raised when an update targets a job that no longer exists."""

    def __init__(self, job_id: Any):
        super().__init__(f"Job not found: {job_id}", {"job_id": str(job_id)})
        self.job_id = job_id


class UnknownJobTypeError(JobWorkerError):
    """Raised when no handler is registered for a job type.

    Never retried: the handler set is fixed for the lifetime of the process,
    so another attempt would fail the same way.
    """

    def __init__(self, job_type: str):
        super().__init__(f"Unknown job type: {job_type}", {"job_type": job_type})
        self.job_type = job_type


class HandlerExecutionError(JobWorkerError):
    """Raised when a work function fails, including downstream call failures."""

    retryable = True


def classify_handler_error(exc: BaseException) -> JobWorkerError:
    """Map anything raised while executing a job onto the worker taxonomy."""
    if isinstance(exc, UnknownJobTypeError | HandlerExecutionError):
        return exc
    message = str(exc) or exc.__class__.__name__
    return HandlerExecutionError(message, {"exception": exc.__class__.__name__})


def create_success_response(data: Any, message: str | None = None) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
    }
