"""Tool registry for the OpenAPI adapter."""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from .config import Settings
from .models import ToolDefinition
from .openapi import OpenAPIDocument, OpenAPILoader
from .tool_builder import build_tools, count_id_collisions


logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        settings: Settings,
        openapi_loader: OpenAPILoader,
    ) -> None:
        self.settings = settings
        self.openapi_loader = openapi_loader
        self.document: Optional[OpenAPIDocument] = None
        self._cache: List[ToolDefinition] = []
        self._cache_source: Optional[str] = None
        self._cache_timestamp: float = 0.0

    async def load_tools(self, source: Optional[str] = None) -> List[ToolDefinition]:
        source = source or self.settings.adapter_openapi_url
        if not source:
            raise ValueError("No OpenAPI document configured (set ADAPTER_OPENAPI_URL)")

        if (
            self._cache
            and self._cache_source == source
            and time.time() - self._cache_timestamp < self.settings.adapter_tool_cache_seconds
        ):
            return self._cache

        document = await self.openapi_loader.load(source)
        tools = build_tools(document, strict=self.settings.adapter_strict_tool_ids)

        allowlist = self.settings.tool_allowlist()
        if allowlist:
            tools = [t for t in tools if t.tool_id in allowlist]

        collisions = count_id_collisions(tools)
        if collisions:
            logger.warning("%s tool ids are shared by more than one operation", collisions)

        self.document = document
        self._cache = tools
        self._cache_source = source
        self._cache_timestamp = time.time()
        return tools
