"""Memory tool — lets the model persist facts into the workspace memory store."""

from __future__ import annotations

from typing import Any

from nanox.memory import MemoryStore
from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolParam


class RememberTool(Tool):
    name = "remember"
    description = (
        "Save important information to memory. Use isLongTerm=true for lasting "
        "facts (user preferences, architectural decisions, solved hard bugs) and "
        "false for today's working notes."
    )
    family = ToolFamily.MEMORY
    parameters = (
        ToolParam("content", "string", "The information to remember"),
        ToolParam(
            "isLongTerm",
            "boolean",
            "True for long-term memory, false for today's daily log",
        ),
    )

    def __init__(self, memory: MemoryStore):
        self._memory = memory

    async def execute(self, args: dict[str, Any]) -> str:
        kind = "long" if args["isLongTerm"] else "daily"
        return self._memory.save(args["content"], kind)
