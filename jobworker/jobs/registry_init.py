"""
Job registry initialization.

Binds every JobType to its handler and freezes the result.
"""

import httpx

from jobworker.config.logging import get_logger
from jobworker.config.settings import Settings
from jobworker.core.registries import JobRegistry
from jobworker.jobs.handlers import DelegatingHandler, PaperEvalHandler, RunBacktestHandler
from jobworker.jobs.types import JobType

logger = get_logger(__name__)

# Downstream function backing each delegating job type
DELEGATED_ENDPOINTS: dict[JobType, str] = {
    JobType.REFRESH_PRICES: "prices-refresh",
    JobType.EVALUATE_ALERTS: "finance-evaluate-alerts",
    JobType.GENERATE_DIGEST: "finance-generate-digest",
    JobType.PARSE_STATEMENT: "finance-parse-statement",
}


def build_job_registry(
    settings: Settings, client: httpx.AsyncClient | None = None
) -> JobRegistry:
    """Register all job handlers and return the frozen registry."""

    logger.info("Registering job handlers")
    registry = JobRegistry()

    # Self-contained handlers
    registry.register(JobType.RUN_BACKTEST, RunBacktestHandler())
    registry.register(JobType.PAPER_EVAL, PaperEvalHandler())

    # Delegating handlers
    for job_type, endpoint in DELEGATED_ENDPOINTS.items():
        registry.register(
            job_type, DelegatingHandler(settings, job_type, endpoint, client=client)
        )

    registry.validate_complete()
    registry.freeze()

    logger.info(
        "Job handlers registered",
        registered_handlers=[job_type.value for job_type in registry.list()],
    )
    return registry
