"""Agent registry for resolving agent names to adapter classes.

Supports builtin agent names (e.g., "claude-agent-sdk") and custom
dotted-path imports (e.g., "my.module.MyAgent").
"""

from __future__ import annotations

import importlib

from skilleval.adapters.base import BaseAgent

# Builtin agent short names -> fully-qualified class paths.
# Lazily imported; the agent SDK itself is only needed at query time.
BUILTIN_AGENTS: dict[str, str] = {
    "claude-agent-sdk": "skilleval.adapters.claude_agent_sdk_adapter.ClaudeAgentSDKAdapter",
}

_INSTALL_HINTS: dict[str, str] = {
    "claude-agent-sdk": "pip install skilleval[claude]",
}


def get_agent(name: str) -> BaseAgent:
    """Resolve an agent by name or dotted path and return an instance.

    Args:
        name: A builtin agent name or a fully-qualified dotted path
              to a BaseAgent subclass.

    Returns:
        An instance of the resolved agent class.

    Raises:
        ValueError: If the name is not a builtin and has no dots.
        ImportError: If the module cannot be imported.
        TypeError: If the resolved class is not a subclass of BaseAgent.
    """
    if name in BUILTIN_AGENTS:
        dotted_path = BUILTIN_AGENTS[name]
    elif "." in name:
        dotted_path = name
    else:
        available = ", ".join(sorted(BUILTIN_AGENTS.keys()))
        raise ValueError(
            f"Unknown agent '{name}'. "
            f"Available builtin agents: {available}. "
            f"For custom agents, provide the full dotted path "
            f"(e.g., 'my.module.MyAgent')."
        )

    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(
            f"Invalid agent path '{dotted_path}'. "
            f"Expected format: 'module.path.ClassName'."
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        if name in _INSTALL_HINTS:
            raise ImportError(
                f"Agent '{name}' requires an optional dependency. "
                f"Install it: {_INSTALL_HINTS[name]}"
            ) from exc
        raise

    try:
        cls = getattr(module, class_name)
    except AttributeError:
        raise ImportError(
            f"Module '{module_path}' has no attribute '{class_name}'."
        ) from None

    if not isinstance(cls, type) or not issubclass(cls, BaseAgent):
        raise TypeError(
            f"'{dotted_path}' is not a subclass of BaseAgent. "
            f"Custom agents must inherit from skilleval.adapters.base.BaseAgent."
        )

    return cls()
