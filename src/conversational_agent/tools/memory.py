"""Tools reading chat history and long-term preferences."""

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    ToolResult,
)
from conversational_agent.interfaces.langchain.models import (
    ChatHistoryInput,
    LongTermMemoryInput,
    SaveUserPreferenceInput,
)
from conversational_agent.storage.base import MessageStore, PreferenceStore
from conversational_agent.tools.registry import AgentTool, ToolName


class GetChatHistoryTool(AgentTool):
    name = ToolName.GET_CHAT_HISTORY
    description = (
        "Read earlier messages of this chat to answer questions about what was said."
    )
    args_schema = ChatHistoryInput

    def __init__(self, message_store: MessageStore):
        self.message_store = message_store

    async def execute(self, args: ChatHistoryInput, context: AgentContextState) -> ToolResult:
        turns = await self.message_store.get_recent(context.chat_id, args.limit)
        if not turns:
            return ToolResult(data="No earlier messages in this chat.")
        transcript = "\n".join(f"{turn.speaker}: {turn.text}" for turn in turns)
        return ToolResult(data=transcript)


class GetLongTermMemoryTool(AgentTool):
    name = ToolName.GET_LONG_TERM_MEMORY
    description = "Read the user's saved preferences."
    args_schema = LongTermMemoryInput

    def __init__(self, preference_store: PreferenceStore):
        self.preference_store = preference_store

    async def execute(self, args: LongTermMemoryInput, context: AgentContextState) -> ToolResult:
        preferences = await self.preference_store.get(context.chat_id)
        if args.key:
            value = preferences.get(args.key)
            if value is None:
                return ToolResult(data=f"No saved preference named '{args.key}'.")
            return ToolResult(data=f"{args.key}: {value}")
        if not preferences:
            return ToolResult(data="No saved preferences.")
        return ToolResult(
            data="\n".join(f"{key}: {value}" for key, value in preferences.items())
        )


class SaveUserPreferenceTool(AgentTool):
    name = ToolName.SAVE_USER_PREFERENCE
    description = "Remember a user preference for future requests."
    args_schema = SaveUserPreferenceInput

    def __init__(self, preference_store: PreferenceStore):
        self.preference_store = preference_store

    async def execute(
        self, args: SaveUserPreferenceInput, context: AgentContextState
    ) -> ToolResult:
        await self.preference_store.put(context.chat_id, args.key, args.value)
        return ToolResult(data=f"Saved preference {args.key}: {args.value}")
