"""
Tool Registry — the agent's catalog of capabilities.

The registry serves two purposes:

1. DISCOVERY: it provides every registered capability's descriptor, in
   registration order, for the tools array of each model request. Order is
   deterministic because some backends bias toward earlier entries.

2. DISPATCH: when the model returns a tool call, the registry maps the tool
   name to the capability and runs it. An unknown name, an undecodable
   argument payload, or a fault inside the capability all come back as
   textual error content, so a single bad call cannot abort the session.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

import structlog

from nanox.tools.base import Tool
from nanox.tools.schema import ToolDescriptor

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """
    Central registry for all capabilities available to the agent.

    Registration happens at construction time; descriptors are derived once
    and cached so repeated context refreshes see an identical contract.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        self._descriptors: dict[str, ToolDescriptor] = {}
        for tool in tools:
            self._register(tool)
        logger.info("tool_registry.initialized", count=self.count)

    def _register(self, tool: Tool) -> None:
        existing = self._tools.get(tool.name)
        if existing is not None:
            logger.warning(
                "tool_registry.name_collision",
                name=tool.name,
                existing_family=existing.family.value,
                new_family=tool.family.value,
            )
            raise ValueError(f"Tool '{tool.name}' is already registered.")

        self._tools[tool.name] = tool
        self._descriptors[tool.name] = tool.descriptor()
        logger.info("tool_registry.registered", name=tool.name, family=tool.family.value)

    def resolve(self, name: str) -> Optional[Tool]:
        """Look up a capability by name."""
        return self._tools.get(name)

    def descriptors(self) -> list[ToolDescriptor]:
        """All descriptors, in registration order."""
        return list(self._descriptors.values())

    async def dispatch(self, name: str, arguments: str | dict[str, Any] | None) -> str:
        """
        Execute a tool call and return its textual result.

        ``arguments`` is the raw payload from the model — normally a JSON
        object string — or an already decoded mapping.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("tool_registry.unknown_tool", name=name)
            return f"Error: Unknown tool '{name}'"

        args, error = _decode_arguments(arguments)
        if error:
            logger.warning("tool_registry.bad_arguments", name=name, error=error)
            return f"Error: {error}"

        logger.info("tool_registry.dispatching", name=name, arg_keys=sorted(args))
        return await tool.run(args)

    @property
    def count(self) -> int:
        return len(self._tools)


def _decode_arguments(arguments: str | dict[str, Any] | None) -> tuple[dict[str, Any], str | None]:
    if arguments is None or arguments == "":
        return {}, None
    if isinstance(arguments, dict):
        return arguments, None
    try:
        decoded = json.loads(arguments)
    except (TypeError, ValueError) as e:
        return {}, f"Tool arguments are not valid JSON: {e}"
    if not isinstance(decoded, dict):
        return {}, "Tool arguments must be a JSON object"
    return decoded, None
