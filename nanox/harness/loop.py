"""
The Conversation Loop — the orchestration core.

The pattern is a bounded while loop with tools:

    while iteration < ceiling:
        reply = backend.complete(messages, tools)          # Requesting
        messages.append(reply)
        if not reply.tool_calls:
            break                                          # Terminal
        results = gather(dispatch(call) for call in calls) # Dispatching
        messages.extend(guard(result) for result in results)

Two things slot into that loop. A context-overflow rejection from the backend
triggers a self-heal: everything except the system message is discarded, a
short notice explains the reset, and the loop asks again. Any other backend
fault ends the invocation with the history gathered so far. The iteration
ceiling bounds cost and stops runaway tool-calling; reaching it is reported,
not hidden.

Every transition is written to the interaction log. The log never takes part
in a decision.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Literal, Optional

import structlog

from nanox.api.engine import BackendError, ContextOverflowError, ModelBackend
from nanox.harness.interaction_log import InteractionLog
from nanox.harness.truncation import guard
from nanox.tools.registry import ToolRegistry
from nanox.types import Message, ToolCall

logger = structlog.get_logger(__name__)

SELF_HEAL_NOTICE = (
    "The session was reset because earlier output overloaded the context window. "
    "Retry the task and use more precise tools: read files by line range, target "
    "specific paths, and keep commands narrow."
)

LoopStatus = Literal["completed", "max_iterations", "backend_error"]


class LoopResult:
    """
    The complete result of a loop invocation.

    ``messages`` is always the full history, including partial progress when
    the loop stopped on a backend fault or at the iteration ceiling.
    """

    def __init__(
        self,
        messages: list[Message],
        status: LoopStatus = "completed",
        iterations: int = 0,
        self_heals: int = 0,
        tool_calls: int = 0,
        elapsed_seconds: float = 0.0,
        error: Optional[str] = None,
    ):
        self.messages = messages
        self.status = status
        self.iterations = iterations
        self.self_heals = self_heals
        self.tool_calls = tool_calls
        self.elapsed_seconds = elapsed_seconds
        self.error = error

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def final_text(self) -> str:
        """Content of the last assistant message, or empty string."""
        for msg in reversed(self.messages):
            if msg.role == "assistant":
                return msg.content or ""
        return ""


class ConversationLoop:
    """
    Drives one bounded conversation invocation against a model backend.

    The loop holds no conversation state between invocations; callers pass
    the history in and get the new history back in the ``LoopResult``.
    """

    def __init__(
        self,
        backend: ModelBackend,
        registry: ToolRegistry,
        interaction_log: Optional[InteractionLog] = None,
        max_iterations: int = 10,
        tool_result_budget: int = 5000,
    ):
        self._backend = backend
        self._registry = registry
        self._log = interaction_log
        self._max_iterations = max(1, int(max_iterations))
        self._tool_result_budget = tool_result_budget

        logger.info(
            "conversation_loop.initialized",
            max_iterations=self._max_iterations,
            tool_result_budget=tool_result_budget,
        )

    async def run(
        self,
        messages: list[Message],
        on_assistant: Optional[Callable[[str], Any]] = None,
        on_tool_result: Optional[Callable[[ToolCall, str], Any]] = None,
        max_iterations: Optional[int] = None,
    ) -> LoopResult:
        """
        Run until the model stops asking for tools, the backend fails, or
        the iteration ceiling is reached.

        ``messages[0]`` must be the system message.
        """
        if not messages or messages[0].role != "system":
            raise ValueError("Conversation history must start with the system message")

        ceiling = max_iterations if max_iterations is not None else self._max_iterations
        history = list(messages)
        tools = self._registry.descriptors()
        start_time = time.monotonic()
        iteration = 0
        self_heals = 0
        tool_call_count = 0

        while iteration < ceiling:
            iteration += 1

            # --- Requesting ---
            await self._record(f"Iteration {iteration} Request", {
                "model": self._backend.model,
                "messages": history,
            })
            try:
                reply = await self._backend.complete(history, tools, tool_choice="auto")
            except ContextOverflowError as e:
                # --- SelfHealing ---
                self_heals += 1
                logger.warning(
                    "conversation_loop.self_heal",
                    iteration=iteration,
                    discarded=len(history) - 1,
                    error=str(e),
                )
                history = [history[0], Message.system(SELF_HEAL_NOTICE)]
                await self._record(f"Iteration {iteration} Self-Healing", {"action": "Context Cleared"})
                continue
            except BackendError as e:
                logger.error("conversation_loop.backend_error", iteration=iteration, error=str(e))
                await self._record(f"Iteration {iteration} Error", {
                    "error": str(e),
                    "status_code": e.status_code,
                })
                return LoopResult(
                    messages=history,
                    status="backend_error",
                    iterations=iteration,
                    self_heals=self_heals,
                    tool_calls=tool_call_count,
                    elapsed_seconds=time.monotonic() - start_time,
                    error=str(e),
                )

            await self._record(f"Iteration {iteration} Response", reply)
            history.append(reply)
            if reply.content:
                self._invoke_callback("on_assistant", on_assistant, reply.content)

            if not reply.has_tool_calls:
                logger.info(
                    "conversation_loop.complete",
                    iterations=iteration,
                    tool_calls=tool_call_count,
                    self_heals=self_heals,
                )
                return LoopResult(
                    messages=history,
                    status="completed",
                    iterations=iteration,
                    self_heals=self_heals,
                    tool_calls=tool_call_count,
                    elapsed_seconds=time.monotonic() - start_time,
                )

            # --- Dispatching ---
            tool_call_count += len(reply.tool_calls)
            results = await self._dispatch_all(reply.tool_calls, on_tool_result)
            await self._record(f"Iteration {iteration} Tool Results", results)
            history.extend(results)

        logger.warning(
            "conversation_loop.max_iterations",
            max=ceiling,
            tool_calls=tool_call_count,
        )
        await self._record("Iteration Limit", {"max_iterations": ceiling, "tool_calls": tool_call_count})
        return LoopResult(
            messages=history,
            status="max_iterations",
            iterations=iteration,
            self_heals=self_heals,
            tool_calls=tool_call_count,
            elapsed_seconds=time.monotonic() - start_time,
            error=f"Reached the iteration limit of {ceiling}",
        )

    async def _dispatch_all(
        self,
        calls: list[ToolCall],
        on_tool_result: Optional[Callable[[ToolCall, str], Any]],
    ) -> list[Message]:
        """Run every call of one assistant turn concurrently."""

        async def _one(call: ToolCall) -> Message:
            try:
                text = await self._registry.dispatch(call.name, call.arguments)
            except Exception as e:
                # Registry and tools contain their own faults; this is the last line.
                logger.error("conversation_loop.dispatch_failed", tool=call.name, error=str(e))
                text = f"Error executing {call.name}: {type(e).__name__}: {e}"
            text = guard(text, self._tool_result_budget)
            self._invoke_callback("on_tool_result", on_tool_result, call, text)
            return Message.tool(call.id, text)

        return list(await asyncio.gather(*(_one(call) for call in calls)))

    async def _record(self, step: str, payload: Any) -> None:
        # File writes run off the event loop so concurrent work keeps moving.
        if self._log is not None:
            await asyncio.to_thread(self._log.record, step, payload)

    @staticmethod
    def _invoke_callback(name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        """Run presentation hooks without letting their failures crash the loop."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as callback_error:
            logger.warning(
                "conversation_loop.callback_failed",
                callback=name,
                error=str(callback_error),
            )
