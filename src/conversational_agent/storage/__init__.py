"""Stores for conversation history, agent context, retry records and preferences."""

from typing import Any

from conversational_agent.storage.base import (
    CommandStore,
    ContextStore,
    MessageStore,
    PreferenceStore,
)
from conversational_agent.storage.file_store import (
    JSONFileCommandStore,
    JSONFileContextStore,
)
from conversational_agent.storage.memory import (
    InMemoryCommandStore,
    InMemoryContextStore,
    InMemoryMessageStore,
    InMemoryPreferenceStore,
)


class AgentStores:
    """Explicitly constructed store bundle with a start/shutdown lifecycle."""

    def __init__(
        self,
        messages: MessageStore | None = None,
        contexts: ContextStore | None = None,
        commands: CommandStore | None = None,
        preferences: PreferenceStore | None = None,
    ):
        self.messages: MessageStore = messages or InMemoryMessageStore()
        self.contexts: ContextStore = contexts or InMemoryContextStore()
        self.commands: CommandStore = commands or InMemoryCommandStore()
        self.preferences: PreferenceStore = preferences or InMemoryPreferenceStore()

    def _all(self) -> list[Any]:
        return [self.messages, self.contexts, self.commands, self.preferences]

    def start(self) -> None:
        for store in self._all():
            start = getattr(store, "start", None)
            if callable(start):
                start()

    async def shutdown(self) -> None:
        for store in self._all():
            shutdown = getattr(store, "shutdown", None)
            if callable(shutdown):
                await shutdown()


__all__ = [
    "AgentStores",
    # Interfaces
    "MessageStore",
    "ContextStore",
    "CommandStore",
    "PreferenceStore",
    # Implementations
    "InMemoryMessageStore",
    "InMemoryContextStore",
    "InMemoryCommandStore",
    "InMemoryPreferenceStore",
    "JSONFileContextStore",
    "JSONFileCommandStore",
]
