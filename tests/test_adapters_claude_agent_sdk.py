"""Tests for the Claude Agent SDK adapter's message conversion and streaming."""

from __future__ import annotations

import types
from typing import Any

import pytest

from skilleval.adapters.base import AgentError, AgentOptions, TextBlock, ToolUseBlock
from skilleval.adapters.claude_agent_sdk_adapter import (
    ClaudeAgentSDKAdapter,
    convert_block,
    convert_message,
    convert_usage,
)
from skilleval.execution.interpreter import interpret_stream


# --- Stand-ins named like the SDK classes (conversion dispatches on class name) ---


class AssistantMessage:
    def __init__(self, content: list[Any], usage: Any = None, model: str = "claude-sonnet-4-5") -> None:
        self.content = content
        self.usage = usage
        self.model = model


class ResultMessage:
    def __init__(self, usage: Any = None) -> None:
        self.usage = usage
        self.subtype = "success"
        self.is_error = False
        self.num_turns = 2
        self.total_cost_usd = 0.01


class SystemMessage:
    subtype = "init"


class UserMessage:
    content: list[Any] = []


class ThinkingBlock:
    thinking = "hmm"


class SDKTextBlock:
    pass


# The adapter matches on __name__, so rename the helper to the SDK's class name.
SDKTextBlock.__name__ = "TextBlock"


class ToolUseBlockStub:
    def __init__(self, name: Any, input: Any, id: str = "toolu_1") -> None:
        self.name = name
        self.input = input
        self.id = id


ToolUseBlockStub.__name__ = "ToolUseBlock"


def _text(text: Any) -> SDKTextBlock:
    block = SDKTextBlock()
    block.text = text
    return block


class TestConvertUsage:
    """Test usage record conversion."""

    def test_dict_usage(self) -> None:
        usage = convert_usage({"input_tokens": 10, "output_tokens": 5, "cache_read_input_tokens": 3})
        assert usage.input_tokens == 10
        assert usage.output_tokens == 5
        assert usage.cache_read_input_tokens == 3
        assert usage.cache_creation_input_tokens == 0

    def test_object_usage(self) -> None:
        usage = convert_usage(types.SimpleNamespace(input_tokens=7, cache_creation_input_tokens=2))
        assert usage.input_tokens == 7
        assert usage.cache_creation_input_tokens == 2

    def test_malformed_counters_are_zero(self) -> None:
        """Negative, non-numeric, and boolean counters count as zero."""
        usage = convert_usage({"input_tokens": -5, "output_tokens": "12", "thinking_tokens": True})
        assert usage.input_tokens == 0
        assert usage.output_tokens == 0
        assert usage.thinking_tokens == 0

    def test_missing_usage_is_none(self) -> None:
        assert convert_usage(None) is None


class TestConvertBlock:
    """Test content block conversion."""

    def test_text_block_object(self) -> None:
        assert convert_block(_text("hello")) == TextBlock(text="hello")

    def test_tool_use_block_object(self) -> None:
        block = convert_block(ToolUseBlockStub("Skill", {"skill": "svelte5-runes"}))
        assert block == ToolUseBlock(name="Skill", arguments={"skill": "svelte5-runes"}, id="toolu_1")

    def test_tool_use_with_non_dict_input(self) -> None:
        block = convert_block(ToolUseBlockStub("Skill", "svelte5-runes"))
        assert block.arguments == {}

    def test_dict_blocks(self) -> None:
        assert convert_block({"type": "text", "text": "hi"}) == TextBlock(text="hi")
        tool = convert_block({"type": "tool_use", "name": "Read", "input": {"file_path": "a"}, "id": "t"})
        assert tool == ToolUseBlock(name="Read", arguments={"file_path": "a"}, id="t")

    def test_other_blocks_dropped(self) -> None:
        assert convert_block(ThinkingBlock()) is None
        assert convert_block({"type": "tool_result", "content": "x"}) is None
        assert convert_block(_text(None)) is None


class TestConvertMessage:
    """Test message kind tagging."""

    def test_assistant_message(self) -> None:
        message = convert_message(
            AssistantMessage(
                [_text("Use "), ThinkingBlock(), ToolUseBlockStub("Skill", {"skill": "svelte5-runes"})],
                usage={"input_tokens": 10},
            )
        )
        assert message.kind == "assistant"
        assert message.content == [
            TextBlock(text="Use "),
            ToolUseBlock(name="Skill", arguments={"skill": "svelte5-runes"}, id="toolu_1"),
        ]
        assert message.usage.input_tokens == 10
        assert message.raw["model"] == "claude-sonnet-4-5"

    def test_result_message(self) -> None:
        message = convert_message(ResultMessage(usage={"output_tokens": 9}))
        assert message.kind == "result"
        assert message.usage.output_tokens == 9
        assert message.raw["num_turns"] == 2

    def test_system_and_user_messages(self) -> None:
        assert convert_message(SystemMessage()).kind == "system"
        assert convert_message(UserMessage()).kind == "user"

    def test_unknown_message_kind(self) -> None:
        assert convert_message(object()).kind == "other"


def _fake_sdk(messages: list[Any], fail_with: Exception | None = None) -> types.SimpleNamespace:
    seen: dict[str, Any] = {"closed": False}

    def options_factory(**kwargs: Any) -> dict[str, Any]:
        seen["options"] = kwargs
        return kwargs

    async def query(prompt: str, options: Any):
        seen["prompt"] = prompt
        try:
            for message in messages:
                yield message
            if fail_with is not None:
                raise fail_with
        finally:
            seen["closed"] = True

    return types.SimpleNamespace(ClaudeAgentOptions=options_factory, query=query, seen=seen)


class TestAdapterQuery:
    """Test streaming through a stand-in SDK module."""

    @pytest.mark.asyncio
    async def test_streams_converted_messages(self) -> None:
        adapter = ClaudeAgentSDKAdapter()
        adapter._sdk = _fake_sdk([SystemMessage(), AssistantMessage([_text("hi")]), ResultMessage()])

        options = AgentOptions(model="claude-sonnet-4-5", cwd="/project", allowed_tools=["Skill"])
        kinds = [message.kind async for message in adapter.query("hello", options)]

        assert kinds == ["system", "assistant", "result"]
        assert adapter._sdk.seen["prompt"] == "hello"
        assert adapter._sdk.seen["options"] == {
            "model": "claude-sonnet-4-5",
            "allowed_tools": ["Skill"],
            "setting_sources": ["project"],
            "cwd": "/project",
        }

    @pytest.mark.asyncio
    async def test_cwd_omitted_when_unset(self) -> None:
        adapter = ClaudeAgentSDKAdapter()
        adapter._sdk = _fake_sdk([])
        _ = [m async for m in adapter.query("q", AgentOptions(model="m"))]
        assert "cwd" not in adapter._sdk.seen["options"]

    @pytest.mark.asyncio
    async def test_sdk_failure_wrapped_as_agent_error(self) -> None:
        adapter = ClaudeAgentSDKAdapter()
        adapter._sdk = _fake_sdk([AssistantMessage([_text("partial")])], fail_with=ConnectionError("reset"))

        received = []
        with pytest.raises(AgentError, match="ConnectionError: reset") as exc_info:
            async for message in adapter.query("q", AgentOptions(model="m")):
                received.append(message)

        assert len(received) == 1
        assert exc_info.value.agent_name == "claude-agent-sdk"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_early_stop_closes_sdk_stream(self) -> None:
        """Stopping at the first activation closes the SDK's own generator."""
        adapter = ClaudeAgentSDKAdapter()
        adapter._sdk = _fake_sdk([
            AssistantMessage([ToolUseBlockStub("Skill", {"skill": "svelte5-runes"})]),
            AssistantMessage([_text("never read")]),
        ])

        output = await interpret_stream(
            lambda: adapter.query("q", AgentOptions(model="m")),
            detect_activation=True,
        )

        assert output.activated_skill == "svelte5-runes"
        assert output.response_text == ""
        assert adapter._sdk.seen["closed"] is True

    @pytest.mark.asyncio
    async def test_drained_stream_is_closed(self) -> None:
        adapter = ClaudeAgentSDKAdapter()
        adapter._sdk = _fake_sdk([AssistantMessage([_text("hi")])])
        _ = [m async for m in adapter.query("q", AgentOptions(model="m"))]
        assert adapter._sdk.seen["closed"] is True
