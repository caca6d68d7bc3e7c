"""
Model Engine — the backend the conversation loop talks to.

This module wraps the Anthropic SDK behind one operation, ``complete``: given
the ordered message history and the tool descriptors, return the next
assistant message. The rest of the runtime speaks the role-based message model
in ``nanox.types`` (system / user / assistant / tool); translating that into
Messages API blocks and back happens only here.

Backend failures are classified on the way out. A rejection that means "the
accumulated context no longer fits" raises ``ContextOverflowError`` so the loop
can self-heal; everything else raises ``BackendError`` and ends the turn.
Which statuses and messages count as overflow is configuration.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional, Protocol, Sequence

import anthropic
import structlog

from nanox.config import DEFAULT_OVERFLOW_MARKERS, EngineConfig
from nanox.tools.schema import ToolDescriptor
from nanox.types import Message, ToolCall

logger = structlog.get_logger(__name__)

_OVERFLOW_CANDIDATE_STATUSES = frozenset({400, 413})


class EngineInitError(RuntimeError):
    """Raised when the model client cannot be initialized."""


class BackendError(RuntimeError):
    """A backend request failed. Terminal for the current loop invocation."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ContextOverflowError(BackendError):
    """The backend rejected the request because the context is too large."""


class ModelBackend(Protocol):
    """What the conversation loop needs from a backend."""

    @property
    def model(self) -> str: ...

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDescriptor],
        tool_choice: str = "auto",
    ) -> Message: ...


def is_context_overflow(
    status_code: Optional[int],
    message: str,
    status_codes: Sequence[int] = (413,),
    markers: Sequence[str] = tuple(DEFAULT_OVERFLOW_MARKERS),
) -> bool:
    """
    Classify a backend rejection as context exhaustion.

    A status in ``status_codes`` always qualifies. A generic bad-request
    (400/413) qualifies only when its message names the context limit.
    """
    if status_code is not None and status_code in status_codes:
        return True
    if status_code is not None and status_code not in _OVERFLOW_CANDIDATE_STATUSES:
        return False
    lowered = (message or "").lower()
    return any(marker in lowered for marker in markers)


# ---------------------------------------------------------------------------
# Message translation
# ---------------------------------------------------------------------------


def to_api_request(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    """
    Split a role-based history into a system prompt and Messages API turns.

    The first message, when it is a system message, is the system prompt. Any
    later system message (the self-heal notice) becomes a user-visible notice
    turn. Blank text is dropped; the API rejects empty text blocks.
    Tool results travel as ``tool_result`` blocks in a user turn, and adjacent
    turns of the same role are merged so roles strictly alternate.
    """
    system = ""
    turns: list[dict[str, Any]] = []
    history = list(messages)
    if history and history[0].role == "system":
        system = history.pop(0).content or ""

    for msg in history:
        if msg.role == "system":
            role, blocks = "user", [_text_block(f"[System notice] {msg.content or ''}")]
        elif msg.role == "user":
            role, blocks = "user", _text_blocks(msg.content)
        elif msg.role == "tool":
            role, blocks = "user", [{
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content or "",
                "is_error": (msg.content or "").startswith("Error"),
            }]
        else:
            role, blocks = "assistant", _assistant_blocks(msg)
        if not blocks:
            continue

        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})

    if not turns or turns[0]["role"] != "user":
        turns.insert(0, {"role": "user", "content": [_text_block("Continue.")]})

    return system, turns


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _text_blocks(text: Optional[str]) -> list[dict[str, Any]]:
    return [_text_block(text)] if text and text.strip() else []


def _assistant_blocks(msg: Message) -> list[dict[str, Any]]:
    blocks = _text_blocks(msg.content)
    for call in msg.tool_calls:
        try:
            tool_input = json.loads(call.arguments) if call.arguments else {}
        except ValueError:
            tool_input = {}
        if not isinstance(tool_input, dict):
            tool_input = {}
        blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": tool_input})
    return blocks


def from_api_response(response: Any) -> Message:
    """Convert a Messages API response into an assistant ``Message``."""
    texts: list[str] = []
    calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            calls.append(ToolCall(
                id=block.id,
                name=block.name,
                arguments=json.dumps(block.input, ensure_ascii=False),
            ))
    content = "\n".join(t for t in texts if t and t.strip()) or None
    return Message(role="assistant", content=content, tool_calls=calls)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ModelEngine:
    """
    Anthropic-backed implementation of ``ModelBackend``.

    The engine keeps no conversation state. It receives the history and
    returns the next assistant message, plus token telemetry.
    """

    def __init__(self, config: EngineConfig, client: Any = None):
        try:
            if client is not None:
                self._async_client = client
            else:
                kwargs: dict[str, Any] = {}
                if config.api_key:
                    kwargs["api_key"] = config.api_key
                else:
                    kwargs["auth_token"] = config.auth_token
                if config.base_url:
                    kwargs["base_url"] = config.base_url
                self._async_client = anthropic.AsyncAnthropic(**kwargs)
        except Exception as exc:
            raise EngineInitError(f"Failed to initialize model engine: {exc}") from exc

        self._model = config.model
        self._max_tokens = config.max_tokens
        self._request_timeout_seconds = float(config.request_timeout_seconds)
        self._overflow_status_codes = tuple(config.overflow_status_codes)
        self._overflow_markers = tuple(config.overflow_markers)

        self._total_calls = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0

        logger.info("model_engine.initialized", model=self._model)

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDescriptor],
        tool_choice: str = "auto",
    ) -> Message:
        start_time = time.monotonic()
        system_prompt, api_messages = to_api_request(messages)

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": api_messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = [t.to_api_format() for t in tools]
            kwargs["tool_choice"] = {"type": tool_choice}

        try:
            response = await asyncio.wait_for(
                self._async_client.messages.create(**kwargs),
                timeout=self._request_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("model_engine.timeout", timeout=self._request_timeout_seconds)
            raise BackendError(
                f"Backend request timed out after {self._request_timeout_seconds}s"
            ) from e
        except anthropic.APIStatusError as e:
            status = getattr(e, "status_code", None)
            if is_context_overflow(status, str(e), self._overflow_status_codes, self._overflow_markers):
                logger.warning("model_engine.context_overflow", status=status)
                raise ContextOverflowError(str(e), status_code=status) from e
            logger.error("model_engine.api_error", error=str(e), status=status)
            raise BackendError(str(e), status_code=status) from e
        except anthropic.APIError as e:
            logger.error("model_engine.connection_error", error=str(e))
            raise BackendError(str(e)) from e

        self._total_calls += 1
        usage = getattr(response, "usage", None)
        if usage is not None:
            self._total_input_tokens += getattr(usage, "input_tokens", 0) or 0
            self._total_output_tokens += getattr(usage, "output_tokens", 0) or 0

        message = from_api_response(response)
        logger.debug(
            "model_engine.response",
            elapsed_seconds=round(time.monotonic() - start_time, 2),
            stop_reason=getattr(response, "stop_reason", None),
            tool_calls=len(message.tool_calls),
        )
        return message

    @property
    def telemetry(self) -> dict[str, Any]:
        return {
            "total_calls": self._total_calls,
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
        }
