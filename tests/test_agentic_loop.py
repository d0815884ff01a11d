"""
Tests for switchboard.harness.loop — the model/tool loop.

Every test is deterministic: the scripted backend returns pre-scripted
replies so no network access is needed.
"""

from __future__ import annotations

import pytest

from switchboard.api.base import ModelRequestError
from switchboard.harness.loop import AgenticLoop
from switchboard.sessions.transcript import TranscriptStore
from switchboard.tools.executor import ToolExecutor
from switchboard.tools.registry import ToolDefinition


def _echo_executor() -> ToolExecutor:
    return ToolExecutor([
        ToolDefinition(
            name="echo",
            description="Echoes the input back",
            parameters={
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            },
            handler=lambda text="": f"echo: {text}",
        )
    ])


def _tool_call(call_id: str, text: str) -> list[dict]:
    return [{"type": "toolCall", "id": call_id, "name": "echo", "arguments": {"text": text}}]


USER = {"role": "user", "content": [{"type": "text", "text": "hi"}]}


class TestLoopConvergence:
    @pytest.mark.asyncio
    async def test_single_reply_no_tools(self, backend_factory):
        backend = backend_factory(["Hello, world!"])
        transcript = TranscriptStore.in_memory()
        loop = AgenticLoop(backend, _echo_executor(), transcript)

        result = await loop.run("sys", [USER])

        assert result.texts == ["Hello, world!"]
        assert result.iterations == 1
        assert not result.used_tools
        assert [m["role"] for m in transcript.build_session_messages()] == ["assistant"]
        assert result.usage.input == 10

    @pytest.mark.asyncio
    async def test_tool_call_then_reply(self, backend_factory):
        backend = backend_factory([_tool_call("c1", "ping"), "done"])
        transcript = TranscriptStore.in_memory()
        loop = AgenticLoop(backend, _echo_executor(), transcript)

        result = await loop.run("sys", [USER])

        assert result.texts == ["done"]
        assert result.iterations == 2
        assert [c["name"] for c in result.tool_calls] == ["echo"]
        roles = [m["role"] for m in transcript.build_session_messages()]
        assert roles == ["assistant", "toolResult", "assistant"]
        tool_result = transcript.build_session_messages()[1]
        assert tool_result["toolCallId"] == "c1"
        assert tool_result["content"][0]["text"] == "echo: ping"

        second_call = type(backend).calls[1]
        assert second_call["messages"][-1]["role"] == "toolResult"
        assert second_call["tools"] == ["echo"]
        assert result.usage.output == 10

    @pytest.mark.asyncio
    async def test_input_messages_not_mutated(self, backend_factory):
        messages = [USER]
        loop = AgenticLoop(backend_factory(["ok"]), _echo_executor(), TranscriptStore.in_memory())
        await loop.run("sys", messages)
        assert messages == [USER]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, backend_factory):
        script = [[{"type": "toolCall", "id": "c1", "name": "missing", "arguments": {}}], "sorry"]
        transcript = TranscriptStore.in_memory()
        loop = AgenticLoop(backend_factory(script), _echo_executor(), transcript)

        result = await loop.run("sys", [USER])

        assert result.texts == ["sorry"]
        assert transcript.build_session_messages()[1]["isError"] is True


class TestIterationLimit:
    @pytest.mark.asyncio
    async def test_wrap_up_call_without_tools(self, backend_factory):
        backend = backend_factory([_tool_call("c1", "a"), _tool_call("c2", "b"), "summary"])
        loop = AgenticLoop(backend, _echo_executor(), TranscriptStore.in_memory(), max_iterations=2)

        result = await loop.run("sys", [USER])

        assert result.was_truncated
        assert result.texts == ["summary"]
        last_call = type(backend).calls[-1]
        assert last_call["tools"] == []
        assert "iteration limit" in last_call["system_prompt"]


class TestFailuresAndCallbacks:
    @pytest.mark.asyncio
    async def test_backend_error_propagates(self, backend_factory):
        transcript = TranscriptStore.in_memory()
        loop = AgenticLoop(
            backend_factory([ModelRequestError("nope")]), _echo_executor(), transcript
        )
        with pytest.raises(ModelRequestError):
            await loop.run("sys", [USER])
        assert transcript.get_entries() == []

    @pytest.mark.asyncio
    async def test_on_assistant_text_receives_each_text(self, backend_factory):
        seen: list[str] = []
        script = [
            [{"type": "text", "text": "working"}, *_tool_call("c1", "x")],
            "finished",
        ]
        loop = AgenticLoop(backend_factory(script), _echo_executor(), TranscriptStore.in_memory())

        result = await loop.run("sys", [USER], on_assistant_text=seen.append)

        assert seen == ["working", "finished"]
        assert result.text == "working\n\nfinished"

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_break_loop(self, backend_factory):
        def explode(_text: str) -> None:
            raise RuntimeError("callback broke")

        loop = AgenticLoop(backend_factory(["ok"]), _echo_executor(), TranscriptStore.in_memory())
        result = await loop.run("sys", [USER], on_assistant_text=explode)
        assert result.texts == ["ok"]

    @pytest.mark.asyncio
    async def test_async_callback(self, backend_factory):
        seen: list[str] = []

        async def collect(text: str) -> None:
            seen.append(text)

        loop = AgenticLoop(backend_factory(["ok"]), _echo_executor(), TranscriptStore.in_memory())
        await loop.run("sys", [USER], on_assistant_text=collect)
        assert seen == ["ok"]
