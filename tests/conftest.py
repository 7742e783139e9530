"""Pytest configuration and fixtures."""

import copy
import json

import pytest
from prance.util.resolver import RefResolver

from openapi_adapter.config import Settings
from openapi_adapter.openapi import RESOLVER_OPTIONS, build_document


PETSTORE = {
    "openapi": "3.0.0",
    "info": {"title": "Pet Store", "version": "1.0.0", "description": "A sample pet store."},
    "servers": [
        {
            "url": "https://{region}.petstore.example.com/v1",
            "variables": {"region": {"default": "eu"}},
        }
    ],
    "paths": {
        "/pets": {
            "get": {
                "summary": "List pets",
                "operationId": "listPets",
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    {
                        "name": "status",
                        "in": "query",
                        "description": "Filter by status",
                        "schema": {"type": "string", "enum": ["available", "sold"]},
                    },
                    {"name": "X-Request-Id", "in": "header", "schema": {"type": "string"}},
                ],
                "responses": {"200": {"description": "A list of pets"}},
            },
            "post": {
                "summary": "Create a pet",
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}
                    },
                },
                "responses": {"201": {"description": "Created"}},
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}}
            ],
            "get": {
                "summary": "Get a pet",
                "parameters": [{"$ref": "#/components/parameters/Verbose"}],
                "responses": {"200": {"description": "A pet"}},
            },
            "delete": {
                "description": "Remove a pet",
                "responses": {"204": {"description": "Deleted"}},
            },
        },
        "/pet-tags/{tag-id}": {
            "put": {
                "parameters": [
                    {"name": "tag-id", "in": "path", "required": True, "schema": {"type": "string"}},
                    {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                ],
                "requestBody": {
                    "content": {"application/json": {"schema": {"type": "object"}}},
                },
                "responses": {"200": {"description": "Updated"}},
            },
        },
    },
    "components": {
        "parameters": {
            "Verbose": {"name": "verbose", "in": "query", "schema": {"type": "boolean"}},
        },
        "schemas": {
            "Pet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "age": {"type": "integer"},
                    "tag": {"anyOf": [{"type": "string"}, {"type": "null"}]},
                },
            },
        },
    },
}


def _resolve(spec):
    resolver = RefResolver(spec, "file:///openapi.json", **RESOLVER_OPTIONS)
    resolver.resolve_references()
    return resolver.specs


@pytest.fixture
def resolve():
    """Inline local references the way the loader does, without validating."""
    return _resolve


@pytest.fixture
def petstore_spec():
    """Fresh copy of the sample document."""
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def petstore_bytes(petstore_spec):
    return json.dumps(petstore_spec).encode("utf-8")


@pytest.fixture
def petstore_file(tmp_path, petstore_bytes):
    path = tmp_path / "petstore.json"
    path.write_bytes(petstore_bytes)
    return path


@pytest.fixture
def petstore_document(petstore_spec):
    """Document model built without the external validator."""
    return build_document(_resolve(petstore_spec))


@pytest.fixture
def settings():
    """Settings independent of the process environment."""
    return Settings(
        _env_file=None,
        service_name="test-adapter",
        service_url="https://api.example.com",
        service_authorization=None,
        client_timeout_seconds=5,
        adapter_openapi_url=None,
        adapter_transport="stdio",
        adapter_auth_token=None,
        adapter_max_concurrency=4,
        adapter_tool_cache_seconds=300,
        adapter_openapi_cache_seconds=3600,
        adapter_tool_allowlist=None,
        adapter_strict_tool_ids=False,
    )
