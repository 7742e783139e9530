"""Internal models for tool definitions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple


PATH = "path"
QUERY = "query"
HEADER = "header"

PRIMITIVE_TYPES = ("string", "integer", "number", "boolean")


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    sanitized_name: str
    location: str
    required: bool = False
    primitive_type: str = "string"
    enum_values: Optional[Tuple[str, ...]] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ToolDefinition:
    tool_id: str
    description: str
    path: str
    method: str
    parameters: Tuple[ParameterSpec, ...] = ()
    has_body: bool = False
    body_required: bool = False
    body_description: Optional[str] = None

    def parameters_in(self, *locations: str) -> List[ParameterSpec]:
        return [p for p in self.parameters if p.location in locations]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["parameters"] = [
            {**p, "enum_values": list(p["enum_values"]) if p["enum_values"] is not None else None}
            for p in data["parameters"]
        ]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDefinition":
        parameters = tuple(
            ParameterSpec(
                **{
                    **p,
                    "enum_values": tuple(p["enum_values"])
                    if p.get("enum_values") is not None
                    else None,
                }
            )
            for p in data.get("parameters", [])
        )
        return cls(**{**data, "parameters": parameters})
