"""
Tool base class — the capability interface.

A capability is a name, a description, an explicitly declared flat parameter
record, and an async ``execute`` that turns structured arguments into text.
``run`` is the boundary the registry calls: it validates arguments and converts
any fault raised inside ``execute`` into textual error content, so nothing a
capability does can escape as a loop-level exception.
"""

from __future__ import annotations

import time
import traceback
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar

import structlog

from nanox.tools.schema import ToolDescriptor, ToolParam, derive_descriptor, validate_arguments

logger = structlog.get_logger(__name__)


class ToolFamily(str, Enum):
    """The closed set of capability families a registry can hold."""

    FILESYSTEM = "filesystem"
    SHELL = "shell"
    MEMORY = "memory"
    WEB_SEARCH = "web_search"
    WEB_FETCH = "web_fetch"
    SUBAGENT = "subagent"


class Tool(ABC):
    """Base class for every capability the agent can invoke."""

    name: ClassVar[str]
    description: ClassVar[str]
    family: ClassVar[ToolFamily]
    parameters: ClassVar[tuple[ToolParam, ...]] = ()

    def descriptor(self) -> ToolDescriptor:
        return derive_descriptor(self.name, self.description, self.parameters)

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> str:
        """Perform the capability. May raise; ``run`` contains the fault."""

    async def run(self, args: dict[str, Any]) -> str:
        """Validate ``args`` and execute, never raising past this boundary."""
        error = validate_arguments(self.descriptor(), args)
        if error:
            logger.warning("tool.invalid_arguments", tool=self.name, error=error)
            return f"Error: {error}"

        clean = {k: v for k, v in args.items() if v is not None}
        start = time.monotonic()
        try:
            result = await self.execute(clean)
        except Exception as e:
            logger.error(
                "tool.error",
                tool=self.name,
                error=f"{type(e).__name__}: {e}",
                traceback=traceback.format_exc(),
            )
            return f"Error executing {self.name}: {type(e).__name__}: {e}"

        logger.debug(
            "tool.executed",
            tool=self.name,
            elapsed=round(time.monotonic() - start, 3),
            result_length=len(result),
        )
        return result if isinstance(result, str) else str(result)
