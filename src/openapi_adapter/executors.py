"""Execution layer for planned REST calls."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .logging import redact_headers
from .planner import RequestPlan

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    pass


class RestExecutor:
    """Issues one HTTP request per plan.

    Failures are not retried here; the caller decides whether to call again.
    """

    def __init__(self, timeout_seconds: float = 30, verify_ssl: bool = True) -> None:
        self.timeout_seconds = timeout_seconds
        self.verify_ssl = verify_ssl

    async def execute(self, plan: RequestPlan, timeout_seconds: Optional[float] = None) -> str:
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        logger.debug(
            "Executing API request method=%s url=%s headers=%s",
            plan.method,
            plan.url,
            redact_headers(plan.headers),
        )

        try:
            async with httpx.AsyncClient(timeout=timeout, verify=self.verify_ssl) as client:
                response = await client.request(
                    plan.method,
                    plan.url,
                    headers=plan.headers,
                    content=plan.body,
                )
        except httpx.HTTPError as exc:
            raise ExecutionError(f"API request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ExecutionError(
                f"API returned error status: {response.status_code} - {response.text}"
            )
        return response.text
