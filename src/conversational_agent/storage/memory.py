"""In-memory stores with TTL-based cleanup."""

import asyncio
import logging
import time
from collections import defaultdict

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    HistoryTurn,
    SavedCommand,
)
from conversational_agent.utils.constants import CONTEXT_TTL_SECONDS


class ExpiringStore:
    """Base for stores whose per-chat entries expire after ``ttl_seconds``."""

    def __init__(self, ttl_seconds: float = CONTEXT_TTL_SECONDS, cleanup_interval: int = 300):
        self.ttl_seconds = ttl_seconds
        self.cleanup_interval = cleanup_interval
        self.last_accessed: dict[str, float] = {}
        self._cleanup_task: asyncio.Task | None = None
        self.logger = logging.getLogger(__name__)

    def _touch(self, chat_id: str) -> None:
        self.last_accessed[chat_id] = time.monotonic()

    def _is_expired(self, chat_id: str) -> bool:
        accessed = self.last_accessed.get(chat_id)
        return accessed is not None and time.monotonic() - accessed > self.ttl_seconds

    def _evict(self, chat_id: str) -> None:
        self.last_accessed.pop(chat_id, None)

    def purge_expired(self) -> int:
        """Drop expired chats. Returns the number of chats removed."""
        expired = [chat_id for chat_id in list(self.last_accessed) if self._is_expired(chat_id)]
        for chat_id in expired:
            self._evict(chat_id)
        return len(expired)

    def start(self) -> None:
        """Start the background cleanup task if there's a running event loop."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No event loop running, skip cleanup task creation
            return
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_expired())

    async def _cleanup_expired(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                removed = self.purge_expired()
                if removed:
                    self.logger.info(f"Cleaned up {removed} expired entries")
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.warning(f"Error in store cleanup: {e}")

    async def shutdown(self) -> None:
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None


class InMemoryMessageStore:
    """Conversation turns per chat, oldest first."""

    def __init__(self, max_turns_per_chat: int = 500):
        self.max_turns_per_chat = max_turns_per_chat
        self.turns: dict[str, list[HistoryTurn]] = defaultdict(list)

    async def get_recent(self, chat_id: str, limit: int) -> list[HistoryTurn]:
        if limit <= 0:
            return []
        return [turn.model_copy() for turn in self.turns.get(chat_id, [])[-limit:]]

    async def append(self, chat_id: str, turn: HistoryTurn) -> None:
        turns = self.turns[chat_id]
        turns.append(turn)
        if len(turns) > self.max_turns_per_chat:
            del turns[: len(turns) - self.max_turns_per_chat]


class InMemoryContextStore(ExpiringStore):
    """Persisted agent context snapshots per chat."""

    def __init__(self, ttl_seconds: float = CONTEXT_TTL_SECONDS, cleanup_interval: int = 300):
        super().__init__(ttl_seconds, cleanup_interval)
        self.contexts: dict[str, AgentContextState] = {}

    async def get(self, chat_id: str) -> AgentContextState | None:
        if self._is_expired(chat_id):
            self._evict(chat_id)
            return None
        state = self.contexts.get(chat_id)
        return state.model_copy(deep=True) if state else None

    async def put(self, chat_id: str, state: AgentContextState) -> None:
        self.contexts[chat_id] = state.model_copy(deep=True)
        self._touch(chat_id)

    def _evict(self, chat_id: str) -> None:
        super()._evict(chat_id)
        self.contexts.pop(chat_id, None)


class InMemoryCommandStore(ExpiringStore):
    """Retry records keyed by (chat ID, message ID).

    Each record also expires on its own once it is older than ``ttl_seconds``,
    and a chat keeps at most ``max_records`` of them.
    """

    def __init__(
        self,
        ttl_seconds: float = CONTEXT_TTL_SECONDS,
        cleanup_interval: int = 300,
        max_records: int = 20,
    ):
        super().__init__(ttl_seconds, cleanup_interval)
        self.max_records = max_records
        self.commands: dict[str, dict[str, SavedCommand]] = defaultdict(dict)
        self.last_message_ids: dict[str, str] = {}

    async def put(self, chat_id: str, message_id: str, record: SavedCommand) -> None:
        commands = self.commands[chat_id]
        commands.pop(message_id, None)
        commands[message_id] = record.model_copy(deep=True)
        while len(commands) > self.max_records:
            commands.pop(next(iter(commands)))
        self.last_message_ids[chat_id] = message_id
        self._touch(chat_id)

    async def get(self, chat_id: str, message_id: str) -> SavedCommand | None:
        record = self.commands.get(chat_id, {}).get(message_id)
        return record.model_copy(deep=True) if record else None

    async def get_last(self, chat_id: str) -> SavedCommand | None:
        if self._is_expired(chat_id):
            self._evict(chat_id)
            return None
        message_id = self.last_message_ids.get(chat_id)
        if message_id is None:
            return None
        return await self.get(chat_id, message_id)

    def purge_expired(self) -> int:
        """Drop expired chats and records. Returns the number of records removed."""
        removed = sum(
            len(self.commands.get(chat_id, {}))
            for chat_id in list(self.last_accessed)
            if self._is_expired(chat_id)
        )
        super().purge_expired()

        cutoff = time.time() - self.ttl_seconds
        for chat_id in list(self.commands):
            commands = self.commands[chat_id]
            stale = [
                message_id
                for message_id, record in commands.items()
                if record.saved_at < cutoff
            ]
            for message_id in stale:
                del commands[message_id]
            removed += len(stale)
            if not commands:
                self._evict(chat_id)
            elif self.last_message_ids.get(chat_id) not in commands:
                self.last_message_ids.pop(chat_id, None)
        return removed

    def _evict(self, chat_id: str) -> None:
        super()._evict(chat_id)
        self.commands.pop(chat_id, None)
        self.last_message_ids.pop(chat_id, None)


class InMemoryPreferenceStore:
    """Long-term user preferences per chat."""

    def __init__(self) -> None:
        self.preferences: dict[str, dict[str, str]] = defaultdict(dict)

    async def get(self, chat_id: str) -> dict[str, str]:
        return dict(self.preferences.get(chat_id, {}))

    async def put(self, chat_id: str, key: str, value: str) -> None:
        self.preferences[chat_id][key] = value
