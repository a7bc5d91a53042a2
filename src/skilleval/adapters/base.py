"""BaseAgent ABC and the tagged message types an agent stream yields.

Every agent adapter (Claude Agent SDK, custom) subclasses BaseAgent and
implements query(). The dataclasses here are the only shapes the message
interpreter ever sees, regardless of how the adapter transports them.

These are plain dataclasses (not Pydantic) to avoid overhead in the
hot path of message streaming.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Union


class AgentError(Exception):
    """Base class for errors raised by agent adapters.

    Attributes:
        agent_name: Name of the adapter that raised the error.
    """

    def __init__(self, message: str, agent_name: str = "") -> None:
        self.agent_name = agent_name
        super().__init__(message)


@dataclass
class TextBlock:
    """Free-text content emitted by the agent."""

    text: str


@dataclass
class ToolUseBlock:
    """A capability invocation emitted by the agent."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


ContentBlock = Union[TextBlock, ToolUseBlock]


@dataclass
class AgentUsage:
    """Token counters reported on a single agent message."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    thinking_tokens: int = 0


@dataclass
class AgentMessage:
    """A single message from the agent stream.

    Kinds: system, assistant, result. Adapters may emit other kinds
    (e.g. user, for tool results echoed back); the interpreter ignores them.
    """

    kind: str
    content: list[ContentBlock] = field(default_factory=list)
    usage: AgentUsage | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentOptions:
    """Configuration passed to an agent for a single query.

    Holds the model, working directory, the capability names the agent
    may use, and which settings sources it loads skills from.
    """

    model: str
    cwd: str | None = None
    allowed_tools: list[str] = field(default_factory=lambda: ["Skill", "Read"])
    setting_sources: list[str] = field(default_factory=lambda: ["project"])


class BaseAgent(ABC):
    """Abstract base class for all agent adapters.

    Subclasses must implement query() which takes a prompt and options
    and returns a lazy, single-pass async iterator of AgentMessage.
    The iterator is not restartable; it may raise before yielding anything.
    """

    @abstractmethod
    def query(self, prompt: str, options: AgentOptions) -> AsyncIterator[AgentMessage]:
        """Send a prompt to the agent and stream its messages.

        Args:
            prompt: The user query.
            options: Agent configuration for this call.

        Returns:
            Async iterator yielding AgentMessage objects until the agent
            finishes.
        """
        ...

    def agent_name(self) -> str:
        """Return the name of this agent.

        Default implementation returns the class name.
        Subclasses may override for custom naming.
        """
        return type(self).__name__
