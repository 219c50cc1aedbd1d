"""Store interfaces consumed by the agent engine. All access is keyed by chat ID."""

from typing import Protocol

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    HistoryTurn,
    SavedCommand,
)


class MessageStore(Protocol):
    async def get_recent(self, chat_id: str, limit: int) -> list[HistoryTurn]: ...

    async def append(self, chat_id: str, turn: HistoryTurn) -> None: ...


class ContextStore(Protocol):
    async def get(self, chat_id: str) -> AgentContextState | None: ...

    async def put(self, chat_id: str, state: AgentContextState) -> None: ...


class CommandStore(Protocol):
    async def put(self, chat_id: str, message_id: str, record: SavedCommand) -> None: ...

    async def get(self, chat_id: str, message_id: str) -> SavedCommand | None: ...

    async def get_last(self, chat_id: str) -> SavedCommand | None: ...


class PreferenceStore(Protocol):
    async def get(self, chat_id: str) -> dict[str, str]: ...

    async def put(self, chat_id: str, key: str, value: str) -> None: ...
