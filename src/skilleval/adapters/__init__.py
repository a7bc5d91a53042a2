"""skilleval adapters - agent invocation abstraction layer.

Re-exports the BaseAgent ABC, the tagged message dataclasses, and the
agent registry function.
"""

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
from skilleval.adapters.registry import get_agent

__all__ = [
    "AgentError",
    "AgentMessage",
    "AgentOptions",
    "AgentUsage",
    "BaseAgent",
    "ContentBlock",
    "TextBlock",
    "ToolUseBlock",
    "get_agent",
]
