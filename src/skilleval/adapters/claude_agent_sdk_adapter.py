"""Claude Agent SDK adapter for the skilleval harness.

Streams messages from claude_agent_sdk.query() and converts SDK message
and block classes into the tagged AgentMessage/ContentBlock types.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from skilleval.adapters.base import (
    AgentError,
    AgentMessage,
    AgentOptions,
    AgentUsage,
    BaseAgent,
    ContentBlock,
    TextBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

# SDK message class name -> message kind
_MESSAGE_KINDS: dict[str, str] = {
    "AssistantMessage": "assistant",
    "SystemMessage": "system",
    "ResultMessage": "result",
    "UserMessage": "user",
}

_USAGE_FIELDS = (
    "input_tokens",
    "output_tokens",
    "cache_creation_input_tokens",
    "cache_read_input_tokens",
    "thinking_tokens",
)


def _as_count(value: Any) -> int:
    """Coerce a usage counter to a non-negative int, 0 if unusable."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return 0


def convert_usage(raw: Any) -> AgentUsage | None:
    """Convert an SDK usage record (dict or object) to AgentUsage.

    Returns None if the record is missing. Absent or malformed counters
    count as zero.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        values = {name: _as_count(raw.get(name)) for name in _USAGE_FIELDS}
    else:
        values = {name: _as_count(getattr(raw, name, None)) for name in _USAGE_FIELDS}
    return AgentUsage(**values)


def convert_block(block: Any) -> ContentBlock | None:
    """Convert a single SDK content block.

    Only text and tool-use blocks are kept; thinking blocks, tool results
    and unknown block types return None.
    """
    if isinstance(block, dict):
        block_type = block.get("type")
        if block_type == "text" and isinstance(block.get("text"), str):
            return TextBlock(text=block["text"])
        if block_type == "tool_use" and isinstance(block.get("name"), str):
            arguments = block.get("input")
            return ToolUseBlock(
                name=block["name"],
                arguments=arguments if isinstance(arguments, dict) else {},
                id=block.get("id"),
            )
        return None

    type_name = type(block).__name__
    if type_name == "TextBlock":
        text = getattr(block, "text", None)
        return TextBlock(text=text) if isinstance(text, str) else None
    if type_name == "ToolUseBlock":
        name = getattr(block, "name", None)
        if not isinstance(name, str):
            return None
        arguments = getattr(block, "input", None)
        return ToolUseBlock(
            name=name,
            arguments=arguments if isinstance(arguments, dict) else {},
            id=getattr(block, "id", None),
        )
    return None


def convert_message(message: Any) -> AgentMessage:
    """Convert an SDK message into an AgentMessage.

    Assistant messages carry their content blocks and, when the SDK
    reports it, per-turn usage. Result messages carry the session usage.
    """
    kind = _MESSAGE_KINDS.get(type(message).__name__, "other")

    content: list[ContentBlock] = []
    usage: AgentUsage | None = None
    raw: dict[str, Any] = {}

    if kind == "assistant":
        blocks = getattr(message, "content", None)
        if isinstance(blocks, list):
            for block in blocks:
                converted = convert_block(block)
                if converted is not None:
                    content.append(converted)
        usage = convert_usage(getattr(message, "usage", None))
        raw["model"] = getattr(message, "model", None)
    elif kind == "result":
        usage = convert_usage(getattr(message, "usage", None))
        raw["subtype"] = getattr(message, "subtype", None)
        raw["is_error"] = getattr(message, "is_error", None)
        raw["num_turns"] = getattr(message, "num_turns", None)
        raw["total_cost_usd"] = getattr(message, "total_cost_usd", None)
    elif kind == "system":
        raw["subtype"] = getattr(message, "subtype", None)

    return AgentMessage(kind=kind, content=content, usage=usage, raw=raw)


class ClaudeAgentSDKAdapter(BaseAgent):
    """Adapter for the Claude Agent SDK.

    The SDK is imported lazily on first query so the rest of the package
    works without it installed. Authentication (ANTHROPIC_API_KEY) is read
    by the SDK from the environment.
    """

    def __init__(self) -> None:
        self._sdk: Any = None

    def _get_sdk(self) -> Any:
        """Lazily import and return the claude_agent_sdk module."""
        if self._sdk is None:
            import claude_agent_sdk

            self._sdk = claude_agent_sdk
        return self._sdk

    def _build_options(self, options: AgentOptions) -> Any:
        """Translate AgentOptions into ClaudeAgentOptions."""
        sdk = self._get_sdk()
        kwargs: dict[str, Any] = {
            "model": options.model,
            "allowed_tools": list(options.allowed_tools),
            "setting_sources": list(options.setting_sources),
        }
        if options.cwd is not None:
            kwargs["cwd"] = options.cwd
        return sdk.ClaudeAgentOptions(**kwargs)

    async def query(self, prompt: str, options: AgentOptions) -> AsyncIterator[AgentMessage]:
        """Stream converted messages for a single agent query.

        Args:
            prompt: The user query.
            options: Agent configuration for this call.

        Yields:
            AgentMessage for every SDK message, in arrival order.

        Raises:
            AgentError: If the SDK fails to start or fails mid-stream.
        """
        sdk = self._get_sdk()
        sdk_options = self._build_options(options)
        logger.debug("Claude Agent SDK query (model=%s)", options.model)

        # Closing this generator early must also close the SDK stream in this task.
        try:
            async with aclosing(sdk.query(prompt=prompt, options=sdk_options)) as stream:
                async for message in stream:
                    yield convert_message(message)
        except Exception as exc:
            raise AgentError(
                f"{type(exc).__name__}: {exc}", agent_name=self.agent_name()
            ) from exc

    def agent_name(self) -> str:
        """Return the agent name."""
        return "claude-agent-sdk"
