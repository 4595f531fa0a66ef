"""
Job handlers registered in the job registry.

Two kinds of work functions live here: self-contained handlers that compute
their result locally, and delegating handlers that forward the payload to a
downstream function endpoint and return its response as the job result.
"""

from typing import Any

import httpx

from jobworker.config.logging import get_logger
from jobworker.config.settings import Settings
from jobworker.core.exceptions import HandlerExecutionError
from jobworker.jobs.types import JobType

logger = get_logger(__name__)


class RunBacktestHandler:
    """
    Backtest job. The execution engine is not part of the worker; the handler
    acknowledges the request so the job lifecycle can be exercised end to end.

    Payload expected:
    {
        "strategy_id": "uuid-string",  # optional
        "start": "2024-01-01",  # optional
        "end": "2024-06-30"  # optional
    }
    """

    async def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        logger.info("run_backtest requested", payload_keys=sorted(payload))
        return {
            "status": "completed",
            "note": "Backtest execution engine pending",
            "strategy_id": payload.get("strategy_id"),
        }


class PaperEvalHandler:
    """Paper-trading evaluation job; the evaluation loop is external."""

    async def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        logger.info("paper_eval requested", payload_keys=sorted(payload))
        return {
            "status": "completed",
            "note": "Paper evaluation loop pending",
            "portfolio_id": payload.get("portfolio_id"),
        }


class DelegatingHandler:
    """
    Forward the job payload to a downstream function and return its response.

    Every call is bounded by ``timeout``; a hung endpoint fails the attempt
    instead of stalling the worker.
    """

    def __init__(
        self,
        settings: Settings,
        job_type: JobType,
        endpoint: str,
        client: httpx.AsyncClient | None = None,
    ):
        self.job_type = job_type
        self.url = f"{settings.functions_base_url}/functions/v1/{endpoint}"
        self.timeout = settings.timeout_for(job_type)
        self._headers = {
            "Authorization": f"Bearer {settings.service_role_key}",
            "Content-Type": "application/json",
        }
        self._client = client

    async def handle(self, payload: dict[str, Any]) -> Any:
        logger.info("Calling downstream function", job_type=self.job_type.value, url=self.url)

        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
        except httpx.TimeoutException as e:
            raise HandlerExecutionError(
                f"{self.job_type.value} timed out after {self.timeout}s",
                details={"url": self.url},
            ) from e
        except httpx.RequestError as e:
            raise HandlerExecutionError(
                f"{self.job_type.value} request failed: {e}",
                details={"url": self.url},
            ) from e

        if not response.is_success:
            raise HandlerExecutionError(
                f"{self.job_type.value} returned HTTP {response.status_code}: "
                f"{_error_reason(response)}",
                details={"url": self.url, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise HandlerExecutionError(
                f"{self.job_type.value} returned a non-JSON response",
                details={"url": self.url, "status_code": response.status_code},
            ) from e

        return body

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(
            self.url, json=payload, headers=self._headers, timeout=self.timeout
        )


def _error_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase

    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                value = body[key]
                return value if isinstance(value, str) else str(value)
    return str(body)[:500]
