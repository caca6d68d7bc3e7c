"""
Session — one conversation's history plus the machinery to advance it.

A session owns exactly one message list. ``messages[0]`` is always the system
message, and it is rebuilt from the workspace (never patched) before every
user turn so skill activation tracks the latest input and memory reflects
everything remembered so far. The loop returns the new history, which replaces
the old one; nothing else holds a reference to it.

``build_session`` wires a session from configuration. Sessions share no
state with each other beyond what lives on disk in the workspace.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from nanox.api.engine import ModelBackend, ModelEngine
from nanox.config import NanoXConfig
from nanox.context import ContextBuilder
from nanox.harness.interaction_log import InteractionLog
from nanox.harness.loop import ConversationLoop, LoopResult
from nanox.memory import MemoryStore
from nanox.skills import SkillLibrary
from nanox.tools.builtin import build_default_registry
from nanox.tools.registry import ToolRegistry
from nanox.types import Message, ToolCall
from nanox.workspace import WorkspaceStorage

logger = structlog.get_logger(__name__)


class Session:
    """Per-conversation state: the message history and the turn driver."""

    def __init__(self, context: ContextBuilder, loop: ConversationLoop):
        self._context = context
        self._loop = loop
        self.messages: list[Message] = []
        self.turns = 0

    def create_context(self) -> list[Message]:
        """Start a fresh history holding only the system message."""
        self._context.prepare()
        self.messages = [Message.system(self._context.build())]
        return self.messages

    async def send(
        self,
        user_input: str,
        on_assistant: Optional[Callable[[str], Any]] = None,
        on_tool_result: Optional[Callable[[ToolCall, str], Any]] = None,
    ) -> LoopResult:
        """Run one user turn through the loop and adopt the resulting history."""
        if not self.messages:
            self.create_context()

        self.messages[0] = Message.system(self._context.build(user_input))
        self.messages.append(Message.user(user_input))
        self.turns += 1

        result = await self._loop.run(
            self.messages,
            on_assistant=on_assistant,
            on_tool_result=on_tool_result,
        )
        self.messages = result.messages
        logger.info(
            "session.turn_complete",
            turn=self.turns,
            status=result.status,
            history_length=len(self.messages),
        )
        return result


def build_session(
    config: NanoXConfig,
    backend: Optional[ModelBackend] = None,
    registry: Optional[ToolRegistry] = None,
    on_subagent_line: Optional[Callable[[str], Any]] = None,
) -> Session:
    """Wire a ready-to-use session from configuration."""
    storage = WorkspaceStorage(config.workspace.workspace_root)
    memory = MemoryStore(storage)
    context = ContextBuilder(
        storage,
        memory,
        SkillLibrary(storage),
        memory_budget=config.workspace.memory_budget,
        skill_summary_keywords=config.workspace.skill_summary_keywords,
    )

    if registry is None:
        registry = build_default_registry(config.tools, memory, on_subagent_line=on_subagent_line)
    if backend is None:
        backend = ModelEngine(config.engine)

    log_dir = Path(config.loop.interaction_log_dir)
    if not log_dir.is_absolute():
        log_dir = Path(config.workspace.project_root) / log_dir

    loop = ConversationLoop(
        backend,
        registry,
        interaction_log=InteractionLog(log_dir, max_field_chars=config.loop.tool_result_budget),
        max_iterations=config.loop.max_iterations,
        tool_result_budget=config.loop.tool_result_budget,
    )
    session = Session(context, loop)
    session.create_context()
    return session
