"""
Shared fixtures for the nano-x test suite.

Provides a deterministic clock, an isolated workspace, and the scripted
backend and toy tools the loop/session tests drive, so individual test
modules can focus on behavior rather than setup. Nothing here touches the
network.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import pytest

from nanox.api.engine import BackendError
from nanox.memory import MemoryStore
from nanox.skills import SkillLibrary
from nanox.tools.base import Tool, ToolFamily
from nanox.tools.schema import ToolDescriptor, ToolParam
from nanox.types import Message, ToolCall
from nanox.workspace import WorkspaceStorage


# ---------------------------------------------------------------------------
# Time / workspace fixtures
# ---------------------------------------------------------------------------

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53)


@pytest.fixture()
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture()
def storage(tmp_path) -> WorkspaceStorage:
    ws = WorkspaceStorage(tmp_path / "workspace")
    ws.ensure()
    return ws


@pytest.fixture()
def memory(storage, fixed_clock) -> MemoryStore:
    store = MemoryStore(storage, clock=fixed_clock)
    store.ensure_structure()
    return store


@pytest.fixture()
def skills(storage) -> SkillLibrary:
    return SkillLibrary(storage)


# ---------------------------------------------------------------------------
# Scripted backend: stand-in for ModelEngine
# ---------------------------------------------------------------------------

class ScriptedBackend:
    """
    A fake backend that returns pre-scripted replies in order.

    Each entry is either a ``Message`` (returned) or a ``BackendError``
    (raised). When the script runs out, ``fallback`` is returned forever,
    which lets tests model "always answers with X".
    """

    model = "scripted-model"

    def __init__(self, script: Sequence[Any] = (), fallback: Message | None = None):
        self._script = list(script)
        self._fallback = fallback
        self.calls: list[list[Message]] = []

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDescriptor],
        tool_choice: str = "auto",
    ) -> Message:
        self.calls.append(list(messages))
        if self._script:
            item = self._script.pop(0)
        elif self._fallback is not None:
            item = self._fallback
        else:
            item = Message(role="assistant", content="[no more scripted responses]")
        if isinstance(item, BackendError):
            raise item
        return item


def assistant(content: str | None = None, *calls: ToolCall) -> Message:
    return Message(role="assistant", content=content, tool_calls=list(calls))


@pytest.fixture()
def scripted_backend():
    return ScriptedBackend


# ---------------------------------------------------------------------------
# Toy tools
# ---------------------------------------------------------------------------

class EchoTool(Tool):
    name = "echo"
    description = "Echo the given text back."
    family = ToolFamily.SHELL
    parameters = (
        ToolParam("text", "string", "Text to echo"),
        ToolParam("times", "number", "Repeat count", required=False),
    )

    async def execute(self, args: dict[str, Any]) -> str:
        return args["text"] * int(args.get("times", 1))


class BoomTool(Tool):
    name = "boom"
    description = "Always fails."
    family = ToolFamily.SHELL
    parameters = ()

    async def execute(self, args: dict[str, Any]) -> str:
        raise RuntimeError("kaboom")
