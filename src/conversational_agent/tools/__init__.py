"""Agent tools and the registry that dispatches them."""

from conversational_agent.core.media import MediaGenerationClient
from conversational_agent.core.search import WebSearchClient
from conversational_agent.storage.base import CommandStore, MessageStore, PreferenceStore
from conversational_agent.tools.creation import (
    CreateImageTool,
    CreatePollTool,
    CreateVideoTool,
    EditImageTool,
    ImageToVideoTool,
    TextToSpeechTool,
)
from conversational_agent.tools.memory import (
    GetChatHistoryTool,
    GetLongTermMemoryTool,
    SaveUserPreferenceTool,
)
from conversational_agent.tools.registry import AgentTool, ToolName, ToolRegistry
from conversational_agent.tools.retry import (
    RetryLastCommandTool,
    RetryWithDifferentProviderTool,
)
from conversational_agent.tools.search import SearchWebTool


def create_default_registry(
    media: MediaGenerationClient,
    search_client: WebSearchClient,
    message_store: MessageStore,
    preference_store: PreferenceStore,
    command_store: CommandStore,
) -> ToolRegistry:
    """Register every tool and freeze the registry."""
    registry = ToolRegistry()
    tools: list[AgentTool] = [
        CreateImageTool(media),
        EditImageTool(media),
        CreateVideoTool(media),
        ImageToVideoTool(media),
        TextToSpeechTool(media),
        CreatePollTool(),
        SearchWebTool(search_client),
        GetChatHistoryTool(message_store),
        GetLongTermMemoryTool(preference_store),
        SaveUserPreferenceTool(preference_store),
        RetryWithDifferentProviderTool(registry),
        RetryLastCommandTool(registry, command_store),
    ]
    for tool in tools:
        registry.register(tool)
    registry.freeze()
    return registry


__all__ = [
    "AgentTool",
    "ToolName",
    "ToolRegistry",
    "create_default_registry",
    # Tools
    "CreateImageTool",
    "EditImageTool",
    "CreateVideoTool",
    "ImageToVideoTool",
    "TextToSpeechTool",
    "CreatePollTool",
    "SearchWebTool",
    "GetChatHistoryTool",
    "GetLongTermMemoryTool",
    "SaveUserPreferenceTool",
    "RetryWithDifferentProviderTool",
    "RetryLastCommandTool",
]
