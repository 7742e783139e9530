"""MCP server setup for the OpenAPI adapter."""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .config import Settings
from .models import ToolDefinition
from .service import AdapterService
from .tool_builder import build_input_model, index_tools
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


async def build_server(
    settings: Settings,
    registry: ToolRegistry,
    service: Optional[AdapterService] = None,
) -> tuple[FastMCP, object | None]:
    tools = await registry.load_tools()
    document = registry.document
    if service is None:
        service = AdapterService(
            settings,
            default_base_url=document.server_url() if document else None,
        )

    title = document.info.title if document else settings.service_name
    mcp = FastMCP(settings.service_name, instructions=_instructions(title))
    app = _get_http_app(mcp, settings)
    _attach_auth(app, settings)
    _attach_healthcheck(app)

    # Tools sharing an identifier: the last declared operation is registered.
    for tool in index_tools(tools).values():
        handler = _tool_handler(service, tool)
        mcp.tool(name=tool.tool_id, description=tool.description)(handler)
        logger.info("Registered tool: %s", tool.tool_id)

    return mcp, app


def _tool_handler(
    service: AdapterService, tool: ToolDefinition
) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
    input_model = build_input_model(tool)

    async def handler(payload: input_model) -> Dict[str, Any]:  # type: ignore[valid-type]
        args = payload.model_dump(by_alias=True, exclude_none=True)
        return await service.execute_tool(tool, args)

    handler.__name__ = tool.tool_id
    return handler


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Rejects requests that do not carry the configured static bearer token."""

    def __init__(self, app, token: str) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)
        if request.url.path.endswith("/health"):
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        token = auth_header.replace("Bearer", "").strip()
        if token == self.token:
            return await call_next(request)

        return JSONResponse({"error": "Unauthorized"}, status_code=401)


def _attach_auth(app, settings: Settings) -> None:  # type: ignore[no-untyped-def]
    if not app:
        logger.warning("FastMCP app not available; auth middleware disabled")
        return
    if not settings.adapter_auth_token:
        return
    app.add_middleware(BearerTokenMiddleware, token=settings.adapter_auth_token)


def _attach_healthcheck(app) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        return JSONResponse({"status": "ok"})

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions(title: str) -> str:
    return (
        f"MCP server for the {title} API. "
        "Each tool corresponds to one operation of the API's OpenAPI document."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    if transport in {"http"}:
        app = mcp.http_app(transport="http", stateless_http=True, json_response=True)
        _attach_cors(app)
        return app
    if transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(
            transport="streamable-http", stateless_http=True, json_response=True
        )
        _attach_cors(app)
        return app
    if transport in {"sse"}:
        app = mcp.http_app(transport="sse")
        _attach_cors(app)
        return app
    return None


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
