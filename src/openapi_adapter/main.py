"""CLI entry point for the OpenAPI adapter."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import uvicorn

from .config import Settings, get_settings
from .emitter import ServerEmitter
from .logging import configure_logging
from .normalizer import MalformedInputError
from .openapi import DocumentFetchError, DocumentValidationError, OpenAPILoader
from .server import build_server
from .tool_builder import ToolCollisionError, count_id_collisions, duplicate_parameter_names
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

PIPELINE_ERRORS = (
    MalformedInputError,
    DocumentFetchError,
    DocumentValidationError,
    ToolCollisionError,
    OSError,
    ValueError,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openapi-adapter",
        description="Expose a REST API described by an OpenAPI document as MCP tools.",
    )
    parser.add_argument("--service-url", help="Base URL of the upstream API")
    parser.add_argument("--service-auth", help="Authorization header value sent upstream")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a standalone MCP server project")
    generate.add_argument("--url", help="OpenAPI document URL or file path")
    generate.add_argument("--output", help="Output directory")
    generate.add_argument("--timeout", type=float, help="Upstream request timeout in seconds")

    serve = subparsers.add_parser("serve", help="Serve the tools over MCP")
    serve.add_argument("--url", help="OpenAPI document URL or file path")

    tools = subparsers.add_parser("tools", help="Print the tool catalog as JSON")
    tools.add_argument("--url", help="OpenAPI document URL or file path")

    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides: Dict[str, Any] = {}
    if args.service_url:
        overrides["service_url"] = args.service_url
    if args.service_auth:
        overrides["service_authorization"] = args.service_auth
    if args.debug:
        overrides["adapter_log_level"] = "DEBUG"
    if getattr(args, "url", None):
        overrides["adapter_openapi_url"] = args.url
    if getattr(args, "output", None):
        overrides["adapter_output_dir"] = args.output
    if getattr(args, "timeout", None) is not None:
        overrides["client_timeout_seconds"] = args.timeout
    return settings.model_copy(update=overrides)


def _registry(settings: Settings) -> ToolRegistry:
    loader = OpenAPILoader(
        cache_seconds=settings.adapter_openapi_cache_seconds,
        timeout_seconds=settings.client_timeout_seconds,
    )
    return ToolRegistry(settings, loader)


async def generate(settings: Settings) -> None:
    registry = _registry(settings)
    tools = await registry.load_tools()
    emitter = ServerEmitter(
        timeout_seconds=settings.client_timeout_seconds,
        base_url=settings.service_url or None,
    )
    project_dir = emitter.emit(registry.document, tools, settings.adapter_output_dir)  # type: ignore[arg-type]
    print(f"Generated MCP server project in {project_dir}")


async def list_tools(settings: Settings) -> None:
    tools = await _registry(settings).load_tools()
    duplicate_names: Dict[str, List[str]] = {}
    for tool in tools:
        names = duplicate_parameter_names(tool)
        if names:
            duplicate_names[tool.tool_id] = names
    catalog = {
        "tools": [tool.to_dict() for tool in tools],
        "id_collisions": count_id_collisions(tools),
        "parameter_name_collisions": duplicate_names,
    }
    print(json.dumps(catalog, indent=2))


async def serve(settings: Settings) -> None:
    mcp, app = await build_server(settings, _registry(settings))
    transport = settings.adapter_transport.lower()

    if transport == "http":
        if not app:
            raise RuntimeError("HTTP app unavailable for transport=http")
        config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
        server = uvicorn.Server(config)
        await server.serve()
        return
    if transport in {"streamable-http", "streamablehttp", "sse"}:
        if not app:
            raise RuntimeError(f"HTTP app unavailable for transport={transport}")
        config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
        server = uvicorn.Server(config)
        await server.serve()
        return
    await mcp.run_stdio_async()


COMMANDS = {
    "generate": generate,
    "serve": serve,
    "tools": list_tools,
}


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)
    configure_logging(settings.adapter_log_level)

    try:
        asyncio.run(COMMANDS[args.command](settings))
    except PIPELINE_ERRORS as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
