"""Core adapter service logic."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from .config import Settings
from .executors import ExecutionError, RestExecutor
from .logging import redact_payload
from .models import ToolDefinition
from .planner import BodyEncodingError, plan

logger = logging.getLogger(__name__)


class AdapterService:
    """
    Executes tool calls against the upstream API.

    The base URL is the ``service_url`` setting, falling back to the
    document's server URL when it is absolute. Without either, calls return a
    mock response describing the request instead of reaching the network.
    """

    def __init__(
        self,
        settings: Settings,
        executor: Optional[RestExecutor] = None,
        default_base_url: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.executor = executor or RestExecutor(timeout_seconds=settings.client_timeout_seconds)
        self.default_base_url = default_base_url
        self.semaphore = asyncio.Semaphore(settings.adapter_max_concurrency)

    @property
    def base_url(self) -> Optional[str]:
        if self.settings.service_url:
            return self.settings.service_url
        if self.default_base_url and self.default_base_url.startswith(("http://", "https://")):
            return self.default_base_url
        return None

    async def execute_tool(self, tool: ToolDefinition, args: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Execute a tool call.

        Args:
            tool: The tool definition
            args: Call arguments keyed by original parameter name

        Returns:
            MCP-formatted result; failures of this call are returned as an
            error result rather than raised.
        """
        async with self.semaphore:
            logger.info("Executing tool=%s args=%s", tool.tool_id, redact_payload(args))

            base_url = self.base_url
            if not base_url:
                return self._format_result(
                    f"Mock response for {tool.method} {tool.path}\nParams: {dict(args)}"
                )

            try:
                request = plan(
                    tool,
                    args,
                    base_url,
                    authorization=self.settings.service_authorization,
                )
                text = await self.executor.execute(
                    request, timeout_seconds=self.settings.client_timeout_seconds
                )
            except (BodyEncodingError, ExecutionError) as exc:
                logger.error("Tool execution failed: tool=%s error=%s", tool.tool_id, exc)
                return self._format_error(str(exc))

            return self._format_result(text)

    def _format_result(self, text: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": text}]}

    def _format_error(self, message: str) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": message}], "is_error": True}
