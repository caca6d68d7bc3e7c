"""
Tests for nanox.api.engine — overflow classification, message translation,
and SDK error mapping. A fake client stands in for anthropic.AsyncAnthropic;
no network is used.
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from conftest import EchoTool
from nanox.api.engine import (
    BackendError,
    ContextOverflowError,
    ModelEngine,
    from_api_response,
    is_context_overflow,
    to_api_request,
)
from nanox.config import EngineConfig
from nanox.harness.loop import SELF_HEAL_NOTICE
from nanox.types import Message, ToolCall


class TestOverflowClassification:
    def test_configured_status_always_qualifies(self):
        assert is_context_overflow(413, "Request Entity Too Large")

    def test_bad_request_with_marker(self):
        assert is_context_overflow(400, "prompt is too long: 210000 tokens > 200000 maximum")

    def test_bad_request_without_marker(self):
        assert not is_context_overflow(400, "messages: roles must alternate")

    def test_other_status_with_marker_is_not_overflow(self):
        assert not is_context_overflow(500, "context window exceeded")

    def test_custom_configuration(self):
        assert is_context_overflow(422, "anything", status_codes=(422,), markers=())
        assert is_context_overflow(400, "CUSTOM LIMIT HIT", status_codes=(), markers=("custom limit",))


class TestToApiRequest:
    def test_system_prompt_split_out(self):
        system, turns = to_api_request([Message.system("SYS"), Message.user("hi")])
        assert system == "SYS"
        assert turns == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]

    def test_tool_round_trip_blocks(self):
        history = [
            Message.system("SYS"),
            Message.user("list files"),
            Message(role="assistant", content="Looking.", tool_calls=[
                ToolCall(id="t1", name="fs_ls", arguments='{"path": "."}'),
                ToolCall(id="t2", name="fs_ls", arguments='{"path": "src"}'),
            ]),
            Message.tool("t1", "a.py"),
            Message.tool("t2", "Error: nope"),
        ]
        _, turns = to_api_request(history)

        assert [t["role"] for t in turns] == ["user", "assistant", "user"]
        assistant_blocks = turns[1]["content"]
        assert assistant_blocks[0] == {"type": "text", "text": "Looking."}
        assert assistant_blocks[1] == {
            "type": "tool_use", "id": "t1", "name": "fs_ls", "input": {"path": "."},
        }
        results = turns[2]["content"]
        assert [r["tool_use_id"] for r in results] == ["t1", "t2"]
        assert results[0]["is_error"] is False
        assert results[1]["is_error"] is True

    def test_self_heal_notice_becomes_user_turn(self):
        system, turns = to_api_request([Message.system("SYS"), Message.system(SELF_HEAL_NOTICE)])
        assert system == "SYS"
        assert len(turns) == 1
        assert turns[0]["role"] == "user"
        assert turns[0]["content"][0]["text"] == f"[System notice] {SELF_HEAL_NOTICE}"

    def test_leading_assistant_gets_placeholder_user(self):
        _, turns = to_api_request([Message.system("S"), Message(role="assistant", content="hey")])
        assert turns[0] == {"role": "user", "content": [{"type": "text", "text": "Continue."}]}

    def test_blank_text_never_sent(self):
        _, turns = to_api_request([
            Message.system("S"),
            Message.user("go"),
            Message(role="assistant", content="\n\n", tool_calls=[ToolCall(id="t1", name="n", arguments="{}")]),
            Message.tool("t1", "ok"),
            Message(role="assistant", content=""),
            Message.user("again"),
        ])
        text_blocks = [
            block for turn in turns for block in turn["content"] if block["type"] == "text"
        ]
        assert all(block["text"].strip() for block in text_blocks)
        assert turns[1]["content"] == [{"type": "tool_use", "id": "t1", "name": "n", "input": {}}]
        assert [t["role"] for t in turns] == ["user", "assistant", "user"]

    def test_malformed_arguments_sent_as_empty_input(self):
        _, turns = to_api_request([
            Message.user("go"),
            Message(role="assistant", tool_calls=[ToolCall(id="x", name="n", arguments="{oops")]),
        ])
        assert turns[1]["content"][0]["input"] == {}


class TestFromApiResponse:
    def test_text_and_tool_use(self):
        response = SimpleNamespace(content=[
            SimpleNamespace(type="text", text="Checking."),
            SimpleNamespace(type="tool_use", id="tu_1", name="fs_read_file", input={"path": "a"}),
        ])
        message = from_api_response(response)
        assert message.role == "assistant"
        assert message.content == "Checking."
        assert message.tool_calls[0].id == "tu_1"
        assert json.loads(message.tool_calls[0].arguments) == {"path": "a"}

    def test_tool_only_has_no_content(self):
        response = SimpleNamespace(content=[
            SimpleNamespace(type="tool_use", id="tu_1", name="x", input={}),
        ])
        assert from_api_response(response).content is None

    def test_whitespace_text_dropped(self):
        response = SimpleNamespace(content=[
            SimpleNamespace(type="text", text="\n\n"),
            SimpleNamespace(type="tool_use", id="tu_1", name="x", input={}),
        ])
        message = from_api_response(response)
        assert message.content is None
        assert len(message.tool_calls) == 1


# ---------------------------------------------------------------------------
# ModelEngine with a fake client
# ---------------------------------------------------------------------------

class FakeMessages:
    def __init__(self, outcome):
        self._outcome = outcome
        self.kwargs: dict | None = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        if callable(self._outcome):
            return await self._outcome()
        return self._outcome


class FakeClient:
    def __init__(self, outcome):
        self.messages = FakeMessages(outcome)


def _status_error(status: int, message: str) -> anthropic.APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return anthropic.APIStatusError(message, response=response, body=None)


@pytest.fixture()
def engine_config() -> EngineConfig:
    return EngineConfig(
        ANTHROPIC_API_KEY="test-key",
        NANOX_MODEL="test-model",
        NANOX_REQUEST_TIMEOUT_SECONDS=1,
    )


class TestModelEngine:
    @pytest.mark.asyncio
    async def test_request_shape_and_response(self, engine_config):
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="hello")],
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=12, output_tokens=3),
        )
        client = FakeClient(response)
        engine = ModelEngine(engine_config, client=client)

        reply = await engine.complete(
            [Message.system("SYS"), Message.user("hi")],
            [EchoTool().descriptor()],
        )

        assert reply.content == "hello"
        sent = client.messages.kwargs
        assert sent["model"] == "test-model"
        assert sent["system"] == "SYS"
        assert sent["tool_choice"] == {"type": "auto"}
        assert sent["tools"][0]["name"] == "echo"
        assert engine.telemetry == {
            "total_calls": 1, "total_input_tokens": 12, "total_output_tokens": 3,
        }

    @pytest.mark.asyncio
    async def test_overflow_mapped(self, engine_config):
        engine = ModelEngine(engine_config, client=FakeClient(
            _status_error(400, "prompt is too long: 250000 tokens")
        ))
        with pytest.raises(ContextOverflowError) as exc_info:
            await engine.complete([Message.system("S"), Message.user("u")], [])
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_other_status_mapped_to_backend_error(self, engine_config):
        engine = ModelEngine(engine_config, client=FakeClient(_status_error(529, "overloaded")))
        with pytest.raises(BackendError) as exc_info:
            await engine.complete([Message.system("S"), Message.user("u")], [])
        assert not isinstance(exc_info.value, ContextOverflowError)
        assert exc_info.value.status_code == 529

    @pytest.mark.asyncio
    async def test_timeout_mapped_to_backend_error(self, engine_config):
        async def never():
            await asyncio.sleep(10)

        engine = ModelEngine(engine_config, client=FakeClient(never))
        with pytest.raises(BackendError, match="timed out"):
            await engine.complete([Message.system("S"), Message.user("u")], [])
