"""Request construction shared by live tool calls and generated servers.

Everything here is a pure function of a ``ToolDefinition`` and the call
arguments: the base URL and authorization value are passed in explicitly and
nothing is read from configuration, so a generated server and the live
adapter build byte-identical requests for the same call.

Arguments are keyed by the original OpenAPI parameter names. A ``None``
value is treated as if the argument was not given.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from .models import HEADER, PATH, QUERY, ToolDefinition


JSON_CONTENT_TYPE = "application/json"


class BodyEncodingError(Exception):
    pass


@dataclass(frozen=True)
class RequestPlan:
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


def plan(
    tool: ToolDefinition,
    args: Mapping[str, Any],
    base_url: str,
    authorization: Optional[str] = None,
) -> RequestPlan:
    return RequestPlan(
        url=build_url(tool, args, base_url),
        method=tool.method,
        headers=build_headers(tool, args, authorization),
        body=build_body(tool, args),
    )


def build_url(tool: ToolDefinition, args: Mapping[str, Any], base_url: str) -> str:
    path = tool.path
    for parameter in tool.parameters_in(PATH):
        value = args.get(parameter.name)
        if value is not None:
            path = path.replace(f"{{{parameter.name}}}", format_value(value))

    # A query string on the base URL moves behind the path.
    base_url, _, base_query = base_url.partition("?")
    url = join_url(base_url, path)

    query = [
        (parameter.name, format_value(args[parameter.name]))
        for parameter in tool.parameters_in(QUERY)
        if args.get(parameter.name) is not None
    ]
    query_string = "&".join(part for part in (base_query, urlencode(query)) if part)
    if query_string:
        url += "?" + query_string
    return url


def join_url(base_url: str, path: str) -> str:
    if base_url.endswith("/") and path.startswith("/"):
        path = path[1:]
    elif not base_url.endswith("/") and not path.startswith("/"):
        base_url += "/"
    return base_url + path


def build_headers(
    tool: ToolDefinition, args: Mapping[str, Any], authorization: Optional[str] = None
) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for parameter in tool.parameters_in(HEADER):
        value = args.get(parameter.name)
        if value is not None:
            headers[parameter.name] = format_value(value)

    present = {name.lower() for name in headers}
    if "content-type" not in present:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    if "accept" not in present:
        headers["Accept"] = JSON_CONTENT_TYPE
    if authorization:
        for name in [name for name in headers if name.lower() == "authorization"]:
            del headers[name]
        headers["Authorization"] = authorization
    return headers


def build_body(tool: ToolDefinition, args: Mapping[str, Any]) -> Optional[bytes]:
    """Explicit ``body`` argument first, otherwise the unclaimed arguments.

    A string body is sent verbatim, even when it is not JSON. Header
    arguments are not claimed and therefore also land in a synthesized body.
    """
    if not tool.has_body:
        return None

    explicit = args.get("body")
    if explicit is not None:
        if isinstance(explicit, str):
            return explicit.encode("utf-8")
        if isinstance(explicit, (bytes, bytearray)):
            return bytes(explicit)
        return encode_json(explicit)

    claimed = {parameter.name for parameter in tool.parameters_in(PATH, QUERY)}
    fields = {
        name: value
        for name, value in args.items()
        if name not in claimed and value is not None
    }
    if not fields:
        return None
    return encode_json(fields)


def encode_json(value: Any) -> bytes:
    try:
        return json.dumps(
            value, separators=(",", ":"), sort_keys=True, allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise BodyEncodingError(f"failed to marshal request body: {exc}") from exc


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)
