"""Message interpreter: reduces one agent stream to activation, text, and usage.

The reducer (reduce_message) is a pure function over InterpretedOutput
state; interpret_stream owns iteration, early stop on activation, and
error capture. Neither depends on how the adapter transports messages.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from skilleval.adapters.base import AgentMessage, AgentUsage, TextBlock, ToolUseBlock
from skilleval.models.result import UsageCounters

logger = logging.getLogger(__name__)

# Capability name whose invocation means "the agent loaded a skill".
DEFAULT_ACTIVATION_TOOL = "Skill"

LogFn = Callable[[str], None]


def _noop_log(message: str) -> None:
    pass


@dataclass
class InterpretedOutput:
    """Everything extracted from one agent call.

    Attributes:
        activated_skill: Skill named by the first activation tool use, if any.
        response_text: Concatenated assistant text blocks.
        usage: Accumulated token counters.
        message_count: Number of messages consumed from the stream.
        error: Error text if the stream raised; output before it is kept.
    """

    activated_skill: str | None = None
    response_text: str = ""
    usage: UsageCounters = field(default_factory=UsageCounters)
    message_count: int = 0
    error: str | None = None
    assistant_usage_seen: bool = field(default=False, repr=False)


def _add_usage(usage: UsageCounters, counters: AgentUsage) -> None:
    usage.input_tokens += counters.input_tokens or 0
    usage.output_tokens += counters.output_tokens or 0
    usage.cache_creation_tokens += counters.cache_creation_input_tokens or 0
    usage.cache_read_tokens += counters.cache_read_input_tokens or 0
    usage.thinking_tokens += counters.thinking_tokens or 0


def reduce_message(
    state: InterpretedOutput,
    message: AgentMessage,
    *,
    detect_activation: bool,
    activation_tool: str = DEFAULT_ACTIVATION_TOOL,
    log: LogFn = _noop_log,
) -> bool:
    """Fold a single message into the interpreter state.

    Args:
        state: Accumulated output, mutated in place.
        message: The next message from the stream.
        detect_activation: Whether to look for activation tool uses.
        activation_tool: Capability name that signals skill activation.
        log: Per-case trace line sink.

    Returns:
        True when an activation was found and the caller should stop
        consuming the stream.
    """
    state.message_count += 1
    kind = getattr(message, "kind", None)
    log(f"Message type: {kind}")

    if kind == "result":
        # Fallback for agents that only report usage on the final message.
        if isinstance(message.usage, AgentUsage) and not state.assistant_usage_seen:
            _add_usage(state.usage, message.usage)
        return False

    if kind != "assistant":
        return False

    if isinstance(message.usage, AgentUsage):
        _add_usage(state.usage, message.usage)
        state.assistant_usage_seen = True

    content = message.content
    if not isinstance(content, list):
        return False

    for block in content:
        if isinstance(block, TextBlock):
            if isinstance(block.text, str):
                state.response_text += block.text
                log(f"Got text response ({len(block.text)} chars)")
        elif isinstance(block, ToolUseBlock):
            log(f"Tool use detected: {block.name}")
            if (
                detect_activation
                and state.activated_skill is None
                and block.name == activation_tool
                and isinstance(block.arguments, dict)
                and "skill" in block.arguments
            ):
                state.activated_skill = str(block.arguments["skill"])
                log(f"Skill activated: {state.activated_skill}")
                break

    return detect_activation and state.activated_skill is not None


async def interpret_stream(
    open_stream: Callable[[], AsyncIterator[AgentMessage]],
    *,
    detect_activation: bool,
    activation_tool: str = DEFAULT_ACTIVATION_TOOL,
    log: LogFn = _noop_log,
) -> InterpretedOutput:
    """Consume an agent stream and return the interpreted output.

    The stream is drained to completion, or until the first activation
    when detect_activation is set. If opening or iterating the stream
    raises, the error text is recorded and the partial output collected
    so far is returned.

    Args:
        open_stream: Zero-argument callable that starts the agent call.
        detect_activation: Whether to detect and stop on activation.
        activation_tool: Capability name that signals skill activation.
        log: Per-case trace line sink.

    Returns:
        InterpretedOutput with activation, text, usage, and any error.
    """
    state = InterpretedOutput()
    stream: AsyncIterator[AgentMessage] | None = None

    try:
        stream = open_stream()
        async for message in stream:
            stop = reduce_message(
                state,
                message,
                detect_activation=detect_activation,
                activation_tool=activation_tool,
                log=log,
            )
            if stop:
                break
    except Exception as exc:
        state.error = str(exc) or type(exc).__name__
        log(f"Agent stream failed after {state.message_count} message(s): {state.error}")
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as exc:
                logger.warning("Failed to close agent stream: %s", exc)

    return state
