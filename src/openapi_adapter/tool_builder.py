"""Derives tool definitions from a parsed OpenAPI document."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from .models import HEADER, PATH, PRIMITIVE_TYPES, QUERY, ParameterSpec, ToolDefinition
from .openapi import OpenAPIDocument, Operation, Parameter, RequestBody, Schema


logger = logging.getLogger(__name__)

_LOCATIONS = (PATH, QUERY, HEADER)

_PYTHON_TYPES = {"string": str, "integer": int, "number": float, "boolean": bool}


class ToolCollisionError(Exception):
    pass


def build_tools(document: OpenAPIDocument, strict: bool = False) -> List[ToolDefinition]:
    """Build one tool per operation, in document declaration order.

    Identifiers are not disambiguated: two paths deriving the same identifier
    both stay in the list and any mapping keyed by identifier keeps the last
    one. With ``strict`` such collisions raise ``ToolCollisionError``.
    """
    tools: List[ToolDefinition] = []
    for path, path_item in document.paths.items():
        for method, operation in path_item.operations.items():
            if operation is None:
                continue
            tools.append(build_tool(path, method, operation))

    collisions = duplicate_tool_ids(tools)
    if collisions and strict:
        details = ", ".join(
            f"{tool_id} ({', '.join(f'{t.method} {t.path}' for t in group)})"
            for tool_id, group in collisions.items()
        )
        raise ToolCollisionError(f"duplicate tool identifiers: {details}")
    for tool_id, group in collisions.items():
        logger.warning(
            "Tool id %s derived by %s operations; the last one wins: %s",
            tool_id,
            len(group),
            [f"{t.method} {t.path}" for t in group],
        )

    for tool in tools:
        duplicates = duplicate_parameter_names(tool)
        if duplicates:
            logger.warning("Tool %s has parameters sharing sanitized names: %s", tool.tool_id, duplicates)

    logger.info("Built %s tools from %s paths", len(tools), len(document.paths))
    return tools


def build_tool(path: str, method: str, operation: Operation) -> ToolDefinition:
    method = method.upper()
    description = operation.summary or operation.description or f"{method} {path}"

    required: List[ParameterSpec] = []
    optional: List[ParameterSpec] = []
    for parameter in operation.parameters:
        spec = classify_parameter(parameter)
        if spec is None:
            continue
        (required if spec.required else optional).append(spec)

    has_body, body_required, body_description = detect_body(operation.request_body)

    tool = ToolDefinition(
        tool_id=derive_tool_id(path, method),
        description=description,
        path=path,
        method=method,
        parameters=tuple(required + optional),
        has_body=has_body,
        body_required=body_required,
        body_description=body_description,
    )
    logger.debug("Added tool id=%s path=%s method=%s", tool.tool_id, path, method)
    return tool


def derive_tool_id(path: str, method: str) -> str:
    """``GET /users/{id}`` -> ``getUsers_id``."""
    sanitized = path.replace("{", "").replace("}", "")
    sanitized = sanitized.replace("/", "_").replace("-", "_")
    if sanitized.startswith("_"):
        sanitized = sanitized[1:]
    return method.lower() + title_case(sanitized)


def title_case(value: str) -> str:
    """Upper-case every letter that starts a word.

    Letters, digits and underscores continue a word, so ``users_id`` becomes
    ``Users_id`` while ``v1.0_users`` becomes ``V1.0_users``.
    """
    chars = []
    previous_is_separator = True
    for ch in value:
        chars.append(ch.upper() if previous_is_separator else ch)
        previous_is_separator = _is_separator(ch)
    return "".join(chars)


def _is_separator(ch: str) -> bool:
    if ch.isascii():
        return not (ch.isalnum() or ch == "_")
    if ch.isalpha() or ch.isdigit():
        return False
    return ch.isspace()


def sanitize_param_name(name: str) -> str:
    name = name.replace("-", "_")
    return "".join(ch if ch.isalpha() or ch.isdecimal() or ch == "_" else "_" for ch in name)


def classify_parameter(parameter: Parameter) -> Optional[ParameterSpec]:
    if parameter.location not in _LOCATIONS:
        logger.debug("Skipping %s parameter %s", parameter.location, parameter.name)
        return None

    schema = parameter.param_schema
    primitive = primitive_type(schema)
    return ParameterSpec(
        name=parameter.name,
        sanitized_name=sanitize_param_name(parameter.name),
        location=parameter.location,
        required=parameter.required,
        primitive_type=primitive,
        enum_values=string_enum(schema) if primitive == "string" else None,
        description=parameter.description,
    )


def primitive_type(schema: Optional[Schema]) -> str:
    if schema is None or schema.type not in PRIMITIVE_TYPES:
        return "string"
    return schema.type


def string_enum(schema: Optional[Schema]) -> Optional[Tuple[str, ...]]:
    if schema is None or schema.type != "string" or not schema.enum:
        return None
    values = tuple(value for value in schema.enum if isinstance(value, str))
    return values or None


def detect_body(request_body: Optional[RequestBody]) -> Tuple[bool, bool, Optional[str]]:
    if request_body is None:
        return False, False, None
    for media in request_body.content.values():
        if media is not None and media.media_schema is not None:
            return True, request_body.required, request_body.description or "Request body"
    return False, False, None


def duplicate_tool_ids(tools: Sequence[ToolDefinition]) -> Dict[str, List[ToolDefinition]]:
    groups: Dict[str, List[ToolDefinition]] = defaultdict(list)
    for tool in tools:
        groups[tool.tool_id].append(tool)
    return {tool_id: group for tool_id, group in groups.items() if len(group) > 1}


def count_id_collisions(tools: Sequence[ToolDefinition]) -> int:
    return len(duplicate_tool_ids(tools))


def duplicate_parameter_names(tool: ToolDefinition) -> List[str]:
    seen: Dict[str, int] = defaultdict(int)
    for parameter in tool.parameters:
        seen[parameter.sanitized_name] += 1
    return [name for name, count in seen.items() if count > 1]


def index_tools(tools: Sequence[ToolDefinition]) -> Dict[str, ToolDefinition]:
    return {tool.tool_id: tool for tool in tools}


def build_input_model(tool: ToolDefinition) -> type[BaseModel]:
    """Pydantic model validating the arguments of ``tool``.

    Fields are aliased to the original parameter names, so
    ``model_dump(by_alias=True)`` yields the argument mapping the planner
    expects. Unknown arguments are kept; they become implicit body fields.

    ``body`` is reserved for the request body. A parameter whose original
    name is already exposed, such as a query parameter named ``body``, is
    exposed under its suffixed field name and only dumped under the
    original one.
    """
    fields: Dict[str, Tuple[Any, Any]] = {}
    exposed: set[str] = {"body"} if tool.has_body else set()
    for parameter in tool.parameters:
        name = unique_name(_field_name(parameter.sanitized_name), set(fields) | exposed)
        field_type: Any = _PYTHON_TYPES[parameter.primitive_type]
        if parameter.enum_values:
            field_type = Literal[parameter.enum_values]  # type: ignore[valid-type]
        if not parameter.required:
            field_type = Optional[field_type]
        if parameter.name in exposed:
            default = Field(
                ... if parameter.required else None,
                serialization_alias=parameter.name,
                description=parameter.description,
            )
            exposed.add(name)
        else:
            default = Field(
                ... if parameter.required else None,
                alias=parameter.name,
                description=parameter.description,
            )
            exposed.add(parameter.name)
        fields[name] = (field_type, default)

    if tool.has_body:
        body_type: Any = Union[str, Dict[str, Any]]
        if tool.body_required:
            fields["body"] = (body_type, Field(..., description=tool.body_description))
        else:
            fields["body"] = (Optional[body_type], Field(None, description=tool.body_description))

    model_config = ConfigDict(extra="allow", populate_by_name=True)
    model_name = f"{_sanitize_name(tool.tool_id)}Input"
    return create_model(model_name, __config__=model_config, **fields)


def unique_name(name: str, taken: set[str]) -> str:
    """Suffix ``name`` with _2, _3, ... until it is not in ``taken``."""
    if name not in taken:
        return name
    suffix = 2
    while f"{name}_{suffix}" in taken:
        suffix += 1
    return f"{name}_{suffix}"


def _field_name(name: str) -> str:
    # Pydantic treats leading underscores as private attributes.
    if not name or name.startswith("_") or name[0].isdigit():
        return f"param_{name.lstrip('_')}"
    return name


def _sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name)
