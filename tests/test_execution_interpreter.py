"""Tests for the message interpreter (reduce_message and interpret_stream)."""

from __future__ import annotations

import pytest

from skilleval.adapters.base import AgentError, AgentMessage, AgentUsage, TextBlock, ToolUseBlock
from skilleval.execution.interpreter import InterpretedOutput, interpret_stream, reduce_message


def _assistant(*blocks, usage: AgentUsage | None = None) -> AgentMessage:
    return AgentMessage(kind="assistant", content=list(blocks), usage=usage)


def _skill(name: str) -> ToolUseBlock:
    return ToolUseBlock(name="Skill", arguments={"skill": name})


class _Stream:
    """Async iterator over canned messages that can fail and records closing."""

    def __init__(self, messages: list[AgentMessage], fail_with: Exception | None = None) -> None:
        self._messages = list(messages)
        self._fail_with = fail_with
        self.consumed = 0
        self.closed = False

    def __aiter__(self) -> _Stream:
        return self

    async def __anext__(self) -> AgentMessage:
        if self.consumed < len(self._messages):
            message = self._messages[self.consumed]
            self.consumed += 1
            return message
        if self._fail_with is not None:
            raise self._fail_with
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


class TestReduceMessage:
    """Test the pure per-message reducer."""

    def test_usage_is_additive_across_messages(self) -> None:
        """Counters from every assistant message are summed."""
        state = InterpretedOutput()
        for _ in range(2):
            reduce_message(
                state,
                _assistant(usage=AgentUsage(input_tokens=10, output_tokens=5, cache_read_input_tokens=3)),
                detect_activation=False,
            )
        assert state.usage.input_tokens == 20
        assert state.usage.output_tokens == 10
        assert state.usage.cache_read_tokens == 6
        assert state.message_count == 2

    def test_text_blocks_concatenate(self) -> None:
        """Text blocks append to response_text in order."""
        state = InterpretedOutput()
        reduce_message(state, _assistant(TextBlock("Use "), TextBlock("$state")), detect_activation=False)
        reduce_message(state, _assistant(TextBlock(" here.")), detect_activation=False)
        assert state.response_text == "Use $state here."

    def test_activation_detected_and_signals_stop(self) -> None:
        """A Skill tool use with a skill argument sets activated_skill."""
        state = InterpretedOutput()
        stop = reduce_message(state, _assistant(_skill("svelte5-runes")), detect_activation=True)
        assert stop is True
        assert state.activated_skill == "svelte5-runes"

    def test_stops_scanning_message_after_activation(self) -> None:
        """Later blocks in the activating message are not processed."""
        state = InterpretedOutput()
        reduce_message(
            state,
            _assistant(_skill("first"), _skill("second"), TextBlock("after")),
            detect_activation=True,
        )
        assert state.activated_skill == "first"
        assert state.response_text == ""

    def test_other_tools_do_not_activate(self) -> None:
        """Tool uses with another name are only logged."""
        lines: list[str] = []
        state = InterpretedOutput()
        stop = reduce_message(
            state,
            _assistant(ToolUseBlock(name="Read", arguments={"file_path": "x"})),
            detect_activation=True,
            log=lines.append,
        )
        assert stop is False
        assert state.activated_skill is None
        assert "Tool use detected: Read" in lines

    def test_skill_tool_without_skill_argument_ignored(self) -> None:
        """A Skill call whose arguments lack 'skill' is not an activation."""
        state = InterpretedOutput()
        reduce_message(state, _assistant(ToolUseBlock(name="Skill", arguments={})), detect_activation=True)
        assert state.activated_skill is None

    def test_non_string_skill_argument_is_stringified(self) -> None:
        """The activated skill is always a string."""
        state = InterpretedOutput()
        reduce_message(state, _assistant(ToolUseBlock(name="Skill", arguments={"skill": 42})), detect_activation=True)
        assert state.activated_skill == "42"

    def test_custom_activation_tool(self) -> None:
        """The activation capability name is configurable."""
        state = InterpretedOutput()
        reduce_message(
            state,
            _assistant(ToolUseBlock(name="LoadSkill", arguments={"skill": "x"})),
            detect_activation=True,
            activation_tool="LoadSkill",
        )
        assert state.activated_skill == "x"

    def test_quality_path_never_detects_activation(self) -> None:
        """With detect_activation=False the Skill call is ignored."""
        state = InterpretedOutput()
        stop = reduce_message(state, _assistant(_skill("svelte5-runes")), detect_activation=False)
        assert stop is False
        assert state.activated_skill is None

    def test_non_list_content_is_ignored(self) -> None:
        """Malformed content contributes no text and no activation."""
        state = InterpretedOutput()
        message = AgentMessage(kind="assistant", content="oops")  # type: ignore[arg-type]
        assert reduce_message(state, message, detect_activation=True) is False
        assert state.response_text == ""

    def test_non_dict_arguments_are_ignored(self) -> None:
        """A Skill call with non-dict arguments is not an activation."""
        state = InterpretedOutput()
        block = ToolUseBlock(name="Skill", arguments="svelte5-runes")  # type: ignore[arg-type]
        reduce_message(state, _assistant(block), detect_activation=True)
        assert state.activated_skill is None

    def test_result_usage_used_when_no_assistant_usage(self) -> None:
        """Usage on the result message is the fallback."""
        state = InterpretedOutput()
        reduce_message(state, _assistant(TextBlock("hi")), detect_activation=False)
        reduce_message(
            state,
            AgentMessage(kind="result", usage=AgentUsage(input_tokens=50, output_tokens=7)),
            detect_activation=False,
        )
        assert state.usage.input_tokens == 50
        assert state.usage.output_tokens == 7

    def test_result_usage_not_double_counted(self) -> None:
        """Result usage is ignored when assistant messages reported usage."""
        state = InterpretedOutput()
        reduce_message(state, _assistant(usage=AgentUsage(input_tokens=10)), detect_activation=False)
        reduce_message(state, AgentMessage(kind="result", usage=AgentUsage(input_tokens=10)), detect_activation=False)
        assert state.usage.input_tokens == 10

    def test_system_and_user_messages_ignored(self) -> None:
        """Non-assistant kinds only count as consumed messages."""
        state = InterpretedOutput()
        reduce_message(state, AgentMessage(kind="system"), detect_activation=True)
        reduce_message(state, AgentMessage(kind="user", content=[TextBlock("tool output")]), detect_activation=True)
        assert state.message_count == 2
        assert state.response_text == ""

    def test_logs_message_type(self) -> None:
        """Every message produces a 'Message type' trace line."""
        lines: list[str] = []
        reduce_message(InterpretedOutput(), AgentMessage(kind="system"), detect_activation=False, log=lines.append)
        assert lines == ["Message type: system"]


class TestInterpretStream:
    """Test the async stream driver."""

    @pytest.mark.asyncio
    async def test_activation_stops_consuming_stream(self) -> None:
        """After the activating message, no further messages are pulled."""
        stream = _Stream([
            AgentMessage(kind="system"),
            _assistant(_skill("sveltekit-data-flow")),
            _assistant(TextBlock("never read")),
        ])
        output = await interpret_stream(lambda: stream, detect_activation=True)
        assert output.activated_skill == "sveltekit-data-flow"
        assert stream.consumed == 2
        assert stream.closed is True
        assert output.error is None

    @pytest.mark.asyncio
    async def test_quality_path_drains_stream(self) -> None:
        """Without activation detection every message is consumed."""
        stream = _Stream([
            _assistant(_skill("svelte5-runes")),
            _assistant(TextBlock("Use $derived.")),
            AgentMessage(kind="result"),
        ])
        output = await interpret_stream(lambda: stream, detect_activation=False)
        assert stream.consumed == 3
        assert output.response_text == "Use $derived."

    @pytest.mark.asyncio
    async def test_error_preserves_partial_output(self) -> None:
        """Text and usage before a mid-stream failure are kept with the error."""
        stream = _Stream(
            [_assistant(TextBlock("partial"), usage=AgentUsage(input_tokens=12))],
            fail_with=AgentError("APIError: connection reset", agent_name="fake"),
        )
        output = await interpret_stream(lambda: stream, detect_activation=False)
        assert output.error == "APIError: connection reset"
        assert output.response_text == "partial"
        assert output.usage.input_tokens == 12

    @pytest.mark.asyncio
    async def test_error_when_opening_stream(self) -> None:
        """A failure before any message yields empty output plus the error."""

        def open_stream():
            raise RuntimeError("auth failed")

        output = await interpret_stream(open_stream, detect_activation=True)
        assert output.error == "auth failed"
        assert output.message_count == 0
        assert output.activated_skill is None

    @pytest.mark.asyncio
    async def test_error_without_message_uses_type_name(self) -> None:
        """An exception with no message is reported by its type."""
        stream = _Stream([], fail_with=TimeoutError())
        output = await interpret_stream(lambda: stream, detect_activation=False)
        assert output.error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_empty_stream(self) -> None:
        """An empty stream yields no activation, no text, and zero usage."""
        output = await interpret_stream(lambda: _Stream([]), detect_activation=True)
        assert output.activated_skill is None
        assert output.response_text == ""
        assert output.usage.input_tokens == 0
        assert output.error is None
