"""OpenAPI document loader and strict document model."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import prance
import pydantic
import yaml
from prance.util.formats import ParseError
from prance.util.resolver import RESOLVE_INTERNAL
from prance.util.url import ResolutionError
from pydantic import BaseModel, ConfigDict, Field

from .normalizer import normalize


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


class DocumentFetchError(Exception):
    pass


class DocumentValidationError(Exception):
    pass


class Schema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Any = None
    enum: Optional[List[Any]] = None
    ref: Optional[str] = Field(default=None, alias="$ref")


class Parameter(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    location: str = Field(alias="in")
    required: bool = False
    description: Optional[str] = None
    param_schema: Optional[Schema] = Field(default=None, alias="schema")


class MediaType(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    media_schema: Optional[Schema] = Field(default=None, alias="schema")


class RequestBody(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    description: Optional[str] = None
    required: bool = False
    content: Dict[str, Optional[MediaType]] = Field(default_factory=dict)


class Operation(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    operation_id: Optional[str] = Field(default=None, alias="operationId")
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    parameters: List[Parameter] = Field(default_factory=list)
    request_body: Optional[RequestBody] = Field(default=None, alias="requestBody")


class PathItem(BaseModel):
    parameters: List[Parameter] = Field(default_factory=list)
    # Upper-cased method -> operation, in document order.
    operations: Dict[str, Operation] = Field(default_factory=dict)


class Info(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    version: str = ""
    description: Optional[str] = None


class Server(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str
    variables: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class OpenAPIDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    openapi: str
    info: Info = Field(default_factory=Info)
    servers: List[Server] = Field(default_factory=list)
    paths: Dict[str, PathItem] = Field(default_factory=dict)
    components: Dict[str, Any] = Field(default_factory=dict)

    @property
    def schema_count(self) -> int:
        schemas = self.components.get("schemas")
        return len(schemas) if isinstance(schemas, dict) else 0

    def server_url(self) -> Optional[str]:
        """First declared server URL with its variables set to their defaults."""
        if not self.servers:
            return None
        server = self.servers[0]
        url = server.url
        for name, variable in server.variables.items():
            url = url.replace(f"{{{name}}}", str(variable.get("default", "")))
        return url


class OpenAPILoader:
    def __init__(self, cache_seconds: int = 3600, timeout_seconds: float = 30) -> None:
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self._cache: Dict[str, Tuple[float, OpenAPIDocument]] = {}

    async def load(self, source: str) -> OpenAPIDocument:
        cached = self._cache.get(source)
        if cached and time.time() - cached[0] < self.cache_seconds:
            return cached[1]

        data = await self.fetch(source)
        document = self.parse(data)
        self._cache[source] = (time.time(), document)
        return document

    async def fetch(self, source: str) -> bytes:
        logger.info("Fetching OpenAPI documentation: %s", source)
        if source.startswith(("http://", "https://")):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(source)
            except httpx.HTTPError as exc:
                raise DocumentFetchError(f"failed to fetch OpenAPI documentation: {exc}") from exc
            if response.status_code != 200:
                raise DocumentFetchError(
                    f"received non-OK response for {source}: {response.status_code}"
                )
            data = response.content
        else:
            try:
                data = Path(source).read_bytes()
            except OSError as exc:
                raise DocumentFetchError(f"failed to read OpenAPI documentation: {exc}") from exc
        return _as_json(data)

    def parse(self, data: bytes) -> OpenAPIDocument:
        normalized = normalize(data)
        spec = json.loads(normalized)

        version = spec.get("openapi")
        if not isinstance(version, str) or not version.startswith("3."):
            raise DocumentValidationError(
                f"unsupported OpenAPI version: {version or spec.get('swagger')!r}"
            )

        try:
            parser = prance.ResolvingParser(
                spec_string=normalized.decode("utf-8"),
                backend="openapi-spec-validator",
                **RESOLVER_OPTIONS,
            )
        except (prance.ValidationError, ParseError, ResolutionError) as exc:
            raise DocumentValidationError(f"OpenAPI documentation validation failed: {exc}") from exc

        document = build_document(parser.specification)
        logger.info(
            "Successfully parsed OpenAPI documentation: paths=%s components=%s",
            len(document.paths),
            document.schema_count,
        )
        return document


def _recursive_ref(limit, parsed_url, recursions=()):
    """Leave a recursive reference in place as a local pointer."""
    return {"$ref": f"#{parsed_url.fragment}"}


# Only local references are inlined; external ones stay as {"$ref": ...} nodes.
RESOLVER_OPTIONS: Dict[str, Any] = {
    "strict": False,
    "resolve_types": RESOLVE_INTERNAL,
    "recursion_limit_handler": _recursive_ref,
}


def build_document(spec: Dict[str, Any]) -> OpenAPIDocument:
    """Build the document model from a spec whose local references are resolved."""
    paths: Dict[str, PathItem] = {}
    for path, item in (spec.get("paths") or {}).items():
        if not isinstance(item, dict):
            continue
        shared = _parameters(item.get("parameters"))
        operations: Dict[str, Operation] = {}
        for method, raw_operation in item.items():
            if method.lower() not in HTTP_METHODS or not isinstance(raw_operation, dict):
                continue
            operation = dict(raw_operation)
            own = _parameters(operation.get("parameters"))
            operation["parameters"] = _merge_parameters(shared, own)
            operation["requestBody"] = _request_body(operation.get("requestBody"))
            try:
                operations[method.upper()] = Operation.model_validate(operation)
            except pydantic.ValidationError as exc:
                raise DocumentValidationError(
                    f"invalid operation {method.upper()} {path}: {exc}"
                ) from exc
        paths[path] = PathItem(
            parameters=[Parameter.model_validate(p) for p in shared],
            operations=operations,
        )

    try:
        return OpenAPIDocument.model_validate(
            {
                "openapi": spec.get("openapi"),
                "info": spec.get("info") or {},
                "servers": spec.get("servers") or [],
                "paths": paths,
                "components": spec.get("components") or {},
            }
        )
    except pydantic.ValidationError as exc:
        raise DocumentValidationError(f"invalid OpenAPI document: {exc}") from exc


def _parameters(raw: Any) -> List[Dict[str, Any]]:
    parameters: List[Dict[str, Any]] = []
    for entry in raw or []:
        # Recursive references are left as bare {"$ref": ...} nodes.
        if not isinstance(entry, dict) or "name" not in entry or "in" not in entry:
            logger.warning("Skipping unresolved parameter: %s", entry)
            continue
        parameters.append(entry)
    return parameters


def _merge_parameters(
    shared: List[Dict[str, Any]], own: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    overridden = {(p["name"], p["in"]) for p in own}
    return [p for p in shared if (p["name"], p["in"]) not in overridden] + own


def _request_body(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict) or "$ref" in raw:
        return None
    body = dict(raw)
    body["content"] = {
        media_type: media if isinstance(media, dict) else None
        for media_type, media in (body.get("content") or {}).items()
    }
    return body


def _as_json(data: bytes) -> bytes:
    """Convert YAML documents to JSON bytes; anything else is passed through."""
    try:
        json.loads(data)
        return data
    except ValueError:
        pass
    try:
        loaded = yaml.safe_load(data)
    except yaml.YAMLError:
        return data
    if not isinstance(loaded, dict):
        return data
    return json.dumps(loaded, default=str).encode("utf-8")
