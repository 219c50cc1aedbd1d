"""Exception types raised by the agent engine."""


class AgentError(Exception):
    """Base class for agent engine errors."""


class ToolNotFoundError(AgentError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolRegistryFrozenError(AgentError):
    """Raised when registering a tool after the registry was frozen."""


class DecisionBackendError(AgentError):
    """Raised when the decision backend cannot be reached or answers garbage."""


class MissingAPIKeyError(AgentError):
    """Raised when no usable API key is configured."""
