"""Repairs OpenAPI documents so a 3.0.x-conformant loader accepts them.

The fixups are structural only:

- an ``openapi`` version starting with ``3.1`` is rewritten to ``3.0.0``;
- ``anyOf: [{type: T, ...}, {type: "null"}]`` becomes ``T``'s fields plus
  ``nullable: true``;
- vendor fields that strict validators reject are dropped from component
  schemas.

3.1-only keywords (``type`` arrays, ``const``...) are left untouched, so such
documents may still be rejected by the validator afterwards.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict


logger = logging.getLogger(__name__)

NON_STANDARD_FIELDS = ("error_messages", "hide_error_details")

_PATH_ITEM_METHODS = {"get", "put", "post", "delete", "options", "head", "patch", "trace"}


class MalformedInputError(Exception):
    """Raised when the document bytes cannot be decoded into a JSON object."""


def normalize(data: bytes) -> bytes:
    """Decode ``data``, apply every fixup and re-encode it as compact JSON."""
    try:
        spec = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise MalformedInputError(f"error decoding OpenAPI document: {exc}") from exc
    if not isinstance(spec, dict):
        raise MalformedInputError(
            f"error decoding OpenAPI document: expected a JSON object, got {type(spec).__name__}"
        )

    normalize_tree(spec)
    return json.dumps(spec, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def normalize_tree(spec: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the fixups to an already decoded document, in place."""
    version = spec.get("openapi")
    if isinstance(version, str) and version.startswith("3.1"):
        logger.info("Converting OpenAPI %s document to 3.0.0 for compatibility", version)
        spec["openapi"] = "3.0.0"

    components = spec.get("components")
    if isinstance(components, dict):
        schemas = components.get("schemas")
        if isinstance(schemas, dict):
            for schema in schemas.values():
                if isinstance(schema, dict):
                    fix_null_types(schema)
                    remove_non_standard_fields(schema)

        # Shared parameters end up inside operations once references are resolved.
        shared_parameters = components.get("parameters")
        if isinstance(shared_parameters, dict):
            _fix_parameter_schemas(list(shared_parameters.values()))

    paths = spec.get("paths")
    if isinstance(paths, dict):
        for path_item in paths.values():
            if not isinstance(path_item, dict):
                continue
            _fix_parameter_schemas(path_item.get("parameters"))
            for method, operation in path_item.items():
                if method.lower() in _PATH_ITEM_METHODS and isinstance(operation, dict):
                    _fix_parameter_schemas(operation.get("parameters"))

    return spec


def fix_null_types(schema: Dict[str, Any]) -> None:
    """Rewrite null unions in ``schema`` and, recursively, its properties and items."""
    fix_any_of(schema)

    properties = schema.get("properties")
    if isinstance(properties, dict):
        for prop in properties.values():
            if isinstance(prop, dict):
                fix_null_types(prop)

    items = schema.get("items")
    if isinstance(items, dict):
        fix_null_types(items)


def fix_any_of(schema: Dict[str, Any]) -> None:
    """Rewrite a two-member ``anyOf`` with a ``null`` member on this node only."""
    any_of = schema.get("anyOf")
    if not isinstance(any_of, list) or len(any_of) != 2:
        return

    main_type = None
    has_null = False
    for member in any_of:
        if not isinstance(member, dict) or "type" not in member:
            continue
        type_value = member["type"]
        if type_value == "null":
            has_null = True
        elif isinstance(type_value, str):
            main_type = member

    if not has_null or main_type is None:
        return

    schema.update(main_type)
    schema["nullable"] = True
    del schema["anyOf"]
    logger.debug("Converted anyOf with null to nullable %s", main_type["type"])


def remove_non_standard_fields(schema: Dict[str, Any]) -> None:
    for field in NON_STANDARD_FIELDS:
        if field in schema:
            del schema[field]
            logger.debug("Removed non-standard field from schema: %s", field)

    properties = schema.get("properties")
    if isinstance(properties, dict):
        for prop in properties.values():
            if isinstance(prop, dict):
                remove_non_standard_fields(prop)

    items = schema.get("items")
    if isinstance(items, dict):
        remove_non_standard_fields(items)


def _fix_parameter_schemas(parameters: Any) -> None:
    if not isinstance(parameters, list):
        return
    for parameter in parameters:
        if not isinstance(parameter, dict):
            continue
        schema = parameter.get("schema")
        if isinstance(schema, dict):
            fix_any_of(schema)
