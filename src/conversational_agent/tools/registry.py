"""Typed tool registry: tool identifiers mapped to schema-described capabilities."""

import logging
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from conversational_agent.errors import ToolNotFoundError, ToolRegistryFrozenError
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    ToolResult,
)


class ToolName(str, Enum):
    """Every tool identifier the decision backend may request."""

    CREATE_IMAGE = "create_image"
    EDIT_IMAGE = "edit_image"
    CREATE_VIDEO = "create_video"
    IMAGE_TO_VIDEO = "image_to_video"
    TEXT_TO_SPEECH = "text_to_speech"
    CREATE_POLL = "create_poll"
    SEARCH_WEB = "search_web"
    GET_CHAT_HISTORY = "get_chat_history"
    GET_LONG_TERM_MEMORY = "get_long_term_memory"
    SAVE_USER_PREFERENCE = "save_user_preference"
    RETRY_WITH_DIFFERENT_PROVIDER = "retry_with_different_provider"
    RETRY_LAST_COMMAND = "retry_last_command"


class AgentTool:
    """Base class for a tool: declaration plus executable body."""

    name: ClassVar[ToolName]
    description: ClassVar[str]
    args_schema: ClassVar[type[BaseModel]]

    async def execute(self, args: Any, context: AgentContextState) -> ToolResult:
        raise NotImplementedError

    def declaration(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "description": self.description,
            "parameters": self.args_schema.model_json_schema(),
        }


def resolve_tool_name(name: str | ToolName) -> ToolName:
    """Map a raw tool name onto its identifier or raise ToolNotFoundError."""
    if isinstance(name, ToolName):
        return name
    try:
        return ToolName(name)
    except ValueError:
        raise ToolNotFoundError(str(name)) from None


class ToolRegistry:
    """Lookup and dispatch for tools. Immutable once frozen."""

    def __init__(self) -> None:
        self._tools: dict[ToolName, AgentTool] = {}
        self._frozen = False
        self.logger = logging.getLogger(__name__)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, tool: AgentTool) -> None:
        if self._frozen:
            raise ToolRegistryFrozenError(
                f"Cannot register {tool.name.value}: registry is frozen"
            )
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name.value}")
        self._tools[tool.name] = tool

    def freeze(self) -> None:
        self._frozen = True

    def has(self, name: str | ToolName) -> bool:
        try:
            return resolve_tool_name(name) in self._tools
        except ToolNotFoundError:
            return False

    def get(self, name: str | ToolName) -> AgentTool:
        tool_name = resolve_tool_name(name)
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name.value)
        return tool

    def names(self) -> list[str]:
        return [name.value for name in self._tools]

    def list_declarations(
        self, only: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Declarations ``{name, description, parameters}`` in registration order."""
        return [
            tool.declaration()
            for name, tool in self._tools.items()
            if only is None or name.value in only
        ]

    def validate_args(self, name: str | ToolName, args: dict[str, Any] | None) -> BaseModel:
        """Parse ``args`` with the tool's schema. Raises ValidationError."""
        return self.get(name).args_schema.model_validate(args or {})

    async def invoke(
        self,
        name: str | ToolName,
        args: dict[str, Any] | None,
        context: AgentContextState,
    ) -> ToolResult:
        """Validate arguments and run the tool.

        Unknown names raise ToolNotFoundError. Invalid arguments become a
        failed ToolResult. Exceptions raised by the tool body propagate.
        """
        tool = self.get(name)
        try:
            parsed = tool.args_schema.model_validate(args or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'args'}: {error['msg']}"
                for error in e.errors()
            )
            self.logger.warning(f"[ToolHandler] Invalid arguments for {tool.name.value}: {problems}")
            return ToolResult.failure(f"Invalid arguments for {tool.name.value}: {problems}")

        return await tool.execute(parsed, context)
