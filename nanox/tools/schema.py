"""
Tool Schema Derivation.

Each capability declares its parameters explicitly as a flat tuple of
``ToolParam`` records: a primitive kind, a description, and whether the field
is required. ``derive_descriptor`` turns that declaration into the immutable
``ToolDescriptor`` the model backend consumes. No runtime type introspection is
involved, so the same declaration always yields the same descriptor and a
context refresh can never alter the tool-call contract mid-conversation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal

ParamKind = Literal["string", "number", "boolean"]

_VALID_KINDS: frozenset[str] = frozenset({"string", "number", "boolean"})


@dataclass(frozen=True)
class ToolParam:
    """One flat field of a capability's parameter record."""

    name: str
    kind: ParamKind = "string"
    description: str = ""
    required: bool = True

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool parameters must be named")
        if self.kind not in _VALID_KINDS:
            raise ValueError(
                f"Parameter '{self.name}' has unsupported kind '{self.kind}'. "
                "Only string, number and boolean fields are allowed."
            )

    def accepts(self, value: Any) -> bool:
        """Whether ``value`` matches this field's primitive kind."""
        if self.kind == "boolean":
            return isinstance(value, bool)
        if self.kind == "number":
            # JSON booleans are distinct from numbers even though bool subclasses int.
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return isinstance(value, str)


@dataclass(frozen=True)
class ToolDescriptor:
    """
    The backend-facing description of a capability.

    Immutable after registry construction; the name is the unique key
    across the registry.
    """

    name: str
    description: str
    parameters: tuple[ToolParam, ...] = ()

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def json_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.kind}
            if param.description:
                prop["description"] = param.description
            properties[param.name] = prop
        return {"type": "object", "properties": properties, "required": self.required}

    def to_api_format(self) -> dict[str, Any]:
        """
        The exact shape that goes into the 'tools' array of a model request:
        {
            "name": "tool_name",
            "description": "What this tool does and when to use it",
            "input_schema": { JSON Schema }
        }
        """
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.json_schema(),
        }


def derive_descriptor(
    name: str,
    description: str,
    parameters: Iterable[ToolParam],
) -> ToolDescriptor:
    """Build a descriptor from a capability's declared parameter record."""
    params = tuple(parameters)
    seen: set[str] = set()
    for param in params:
        if param.name in seen:
            raise ValueError(f"Tool '{name}' declares parameter '{param.name}' twice")
        seen.add(param.name)
    return ToolDescriptor(name=name, description=description, parameters=params)


def validate_arguments(descriptor: ToolDescriptor, args: dict[str, Any]) -> str | None:
    """
    Check required fields and primitive types for a tool call.

    Returns an error message string on failure, or None if the input is valid.
    Unknown extra fields are ignored.
    """
    missing = [p.name for p in descriptor.parameters if p.required and p.name not in args]
    if missing:
        return f"Missing required parameter(s): {', '.join(missing)}"

    for param in descriptor.parameters:
        if param.name not in args:
            continue
        value = args[param.name]
        if value is None and not param.required:
            continue
        if not param.accepts(value):
            return (
                f"Parameter '{param.name}' expected {param.kind}, "
                f"got {type(value).__name__}"
            )
    return None
