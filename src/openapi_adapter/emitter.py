"""Renders a standalone MCP server project from tool definitions.

The generated server embeds every ``ToolDefinition`` and builds its requests
with ``openapi_adapter.planner``, the same code path the live adapter uses.
"""

from __future__ import annotations

import keyword
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import DictLoader, Environment, StrictUndefined

from .models import ParameterSpec, ToolDefinition
from .openapi import OpenAPIDocument
from .tool_builder import index_tools, unique_name


logger = logging.getLogger(__name__)

_PYTHON_TYPES = {"string": "str", "integer": "int", "number": "float", "boolean": "bool"}

# Names used inside every generated tool function.
_RESERVED = {"_args", "call_api", "TOOL_DEFINITIONS", "mcp"}


SERVER_TEMPLATE = '''"""{{ title }} MCP server.

Generated by openapi-adapter from {{ title }} (version {{ version }}).
"""

import logging
import os
from typing import Any, Dict, Literal, Optional, Union

import httpx
from fastmcp import FastMCP

from openapi_adapter.models import ToolDefinition
from openapi_adapter.planner import plan

logger = logging.getLogger(__name__)

SERVICE_URL = os.getenv("SERVICE_URL", {{ base_url | pyrepr }})
SERVICE_AUTHORIZATION = os.getenv("SERVICE_AUTHORIZATION") or None
CLIENT_TIMEOUT_SECONDS = float(os.getenv("CLIENT_TIMEOUT_SECONDS", {{ timeout_seconds | string | pyrepr }}))

mcp = FastMCP({{ title | pyrepr }})

TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
{%- for function in functions %}
    {{ function.tool_id | pyrepr }}: ToolDefinition.from_dict({{ function.definition | pyrepr }}),
{%- endfor %}
}


async def call_api(tool: ToolDefinition, args: Dict[str, Any]) -> str:
    if not SERVICE_URL:
        return f"Mock response for {tool.method} {tool.path}\\nParams: {args}"

    request = plan(tool, args, SERVICE_URL, authorization=SERVICE_AUTHORIZATION)
    logger.debug("Executing API request method=%s url=%s", request.method, request.url)
    async with httpx.AsyncClient(timeout=CLIENT_TIMEOUT_SECONDS) as client:
        response = await client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body,
        )
    if response.status_code >= 400:
        raise RuntimeError(f"API returned error status: {response.status_code} - {response.text}")
    return response.text
{% for function in functions %}

@mcp.tool(name={{ function.tool_id | pyrepr }})
async def {{ function.name }}(
{%- for argument in function.arguments %}
    {{ argument.identifier }}: {{ argument.annotation }}{% if not argument.required %} = None{% endif %},
{%- endfor %}
) -> str:
    {{ function.docstring | pyrepr }}
    _args: Dict[str, Any] = {}
{%- for argument in function.arguments | sort(attribute="is_body") %}
    if {{ argument.identifier }} is not None:
        _args[{{ argument.name | pyrepr }}] = {{ argument.identifier }}
{%- endfor %}
    return await call_api(TOOL_DEFINITIONS[{{ function.tool_id | pyrepr }}], _args)
{% endfor %}

def main() -> None:
    transport = os.getenv("MCP_TRANSPORT", "stdio")
    if transport == "stdio":
        mcp.run()
        return
    mcp.run(
        transport=transport,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
'''

PYPROJECT_TEMPLATE = """[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "{{ project_name }}"
version = {{ version | tojson }}
description = {{ ("MCP server generated from the " ~ title ~ " OpenAPI document") | tojson }}
readme = "README.md"
requires-python = ">=3.10"
dependencies = [
    "fastmcp",
    "httpx",
    "openapi-adapter",
]

[project.scripts]
{{ project_name | replace("_", "-") }}-mcp-server = "mcp_server:main"

[tool.setuptools]
package-dir = {"" = "src"}
py-modules = ["mcp_server"]
"""

README_TEMPLATE = """# {{ title }} MCP Server

This is a generated Model Context Protocol (MCP) server for {{ title }} (version {{ version }}).
{% if description %}
## Description

{{ description }}
{% endif %}
## Installation

```bash
python -m venv .venv
source .venv/bin/activate
pip install -e .
```

## Running the Server

```bash
python src/mcp_server.py
```

## Configuration

- `SERVICE_URL`: base URL of the upstream API (default: `{{ base_url }}`). Without it, tools return mock responses.
- `SERVICE_AUTHORIZATION`: value sent as the `Authorization` header.
- `CLIENT_TIMEOUT_SECONDS`: upstream request timeout (default: {{ timeout_seconds }}).
- `MCP_TRANSPORT`: `stdio` (default), `http`, `streamable-http` or `sse`.
- `HOST` / `PORT`: bind address for HTTP transports (default: `0.0.0.0:8000`).

## Tools
{% for function in functions %}
- `{{ function.tool_id }}`: {{ function.method }} {{ function.path }}
{%- endfor %}
"""

GITIGNORE_TEMPLATE = """# Python
__pycache__/
*.py[cod]
*.egg-info/
build/
dist/

# Virtual environments
.env
.venv
venv/

# IDE
.idea/
.vscode/

# OS
.DS_Store

# Logs
*.log
"""


@dataclass(frozen=True)
class Argument:
    name: str
    identifier: str
    annotation: str
    required: bool
    is_body: bool = False


@dataclass(frozen=True)
class Function:
    tool_id: str
    name: str
    method: str
    path: str
    docstring: str
    definition: Dict[str, Any]
    arguments: List[Argument]


class ServerEmitter:
    def __init__(self, timeout_seconds: float = 30, base_url: Optional[str] = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url
        self.env = Environment(
            loader=DictLoader(
                {
                    "mcp_server.py": SERVER_TEMPLATE,
                    "pyproject.toml": PYPROJECT_TEMPLATE,
                    "README.md": README_TEMPLATE,
                    ".gitignore": GITIGNORE_TEMPLATE,
                }
            ),
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["pyrepr"] = repr

    def emit(
        self,
        document: OpenAPIDocument,
        tools: Sequence[ToolDefinition],
        output_dir: str | Path,
    ) -> Path:
        """Write the generated project and return its directory.

        Tools sharing an identifier resolve the same way as in the live
        server: the last declared operation wins.
        """
        project_name = package_name(document.info.title)
        project_dir = Path(output_dir) / f"{project_name}_mcp_server"
        (project_dir / "src").mkdir(parents=True, exist_ok=True)

        context = {
            "title": document.info.title,
            "version": document.info.version,
            "description": document.info.description or "",
            "project_name": project_name,
            "base_url": self.base_url or _absolute(document.server_url()) or "",
            "timeout_seconds": self.timeout_seconds,
            "functions": self.functions(tools),
        }

        files = {
            "mcp_server.py": project_dir / "src" / "mcp_server.py",
            "pyproject.toml": project_dir / "pyproject.toml",
            "README.md": project_dir / "README.md",
            ".gitignore": project_dir / ".gitignore",
        }
        for template_name, target in files.items():
            content = self.env.get_template(template_name).render(**context)
            target.write_text(content, encoding="utf-8")
            logger.debug("Wrote %s", target)

        logger.info(
            "Generated MCP server project with %s tools in %s",
            len(context["functions"]),
            project_dir,
        )
        return project_dir

    def functions(self, tools: Sequence[ToolDefinition]) -> List[Function]:
        functions: List[Function] = []
        taken: set[str] = set()
        for tool in index_tools(tools).values():
            name = unique_name(python_identifier(tool.tool_id), taken)
            taken.add(name)
            functions.append(
                Function(
                    tool_id=tool.tool_id,
                    name=name,
                    method=tool.method,
                    path=tool.path,
                    docstring=_docstring(tool),
                    definition=tool.to_dict(),
                    arguments=_arguments(tool),
                )
            )
        return functions


def _absolute(url: Optional[str]) -> Optional[str]:
    if url and url.startswith(("http://", "https://")):
        return url
    return None


def package_name(title: str) -> str:
    name = title.lower().replace(" ", "_")
    name = re.sub(r"[^a-z0-9_]", "_", name)
    if not name:
        return "generated"
    if not name[0].isalpha():
        name = f"mcp_{name}"
    return name


def python_identifier(name: str) -> str:
    identifier = re.sub(r"\W", "_", name, flags=re.ASCII)
    if not identifier or identifier[0].isdigit() or keyword.iskeyword(identifier):
        identifier = f"p_{identifier}"
    if identifier in _RESERVED:
        identifier = f"{identifier}_"
    return identifier


def _annotation(parameter: ParameterSpec) -> str:
    if parameter.enum_values:
        annotation = f"Literal[{', '.join(repr(v) for v in parameter.enum_values)}]"
    else:
        annotation = _PYTHON_TYPES[parameter.primitive_type]
    return annotation if parameter.required else f"Optional[{annotation}]"


def _arguments(tool: ToolDefinition) -> List[Argument]:
    required: List[Argument] = []
    optional: List[Argument] = []
    taken: set[str] = {"body"} if tool.has_body else set()

    for parameter in tool.parameters:
        identifier = unique_name(python_identifier(parameter.sanitized_name), taken)
        taken.add(identifier)
        argument = Argument(
            name=parameter.name,
            identifier=identifier,
            annotation=_annotation(parameter),
            required=parameter.required,
        )
        (required if parameter.required else optional).append(argument)

    if tool.has_body:
        body_type = "Union[str, Dict[str, Any]]"
        if tool.body_required:
            required.append(Argument("body", "body", body_type, True, is_body=True))
        else:
            optional.append(Argument("body", "body", f"Optional[{body_type}]", False, is_body=True))

    return required + optional


def _docstring(tool: ToolDefinition) -> str:
    lines = [tool.description, "", f"{tool.method} {tool.path}"]
    documented = [p for p in tool.parameters if p.description]
    if documented or tool.has_body:
        lines.extend(["", "Args:"])
        for parameter in documented:
            lines.append(f"    {parameter.name}: {parameter.description}")
        if tool.has_body:
            lines.append(f"    body: {tool.body_description}")
    return "\n".join(lines)
