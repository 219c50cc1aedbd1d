"""Agent context creation, loading and persistence."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TypeVar

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentOptions,
    GeneratedAssets,
    ToolCallRecord,
)
from conversational_agent.storage.base import ContextStore
from conversational_agent.utils.constants import MAX_TRACKED_ASSETS, MAX_TRACKED_TOOL_CALLS


def merge_assets(persisted: GeneratedAssets, current: GeneratedAssets) -> GeneratedAssets:
    """Persisted assets first, current request's assets last (most recent)."""
    merged = GeneratedAssets()
    for kind in ("images", "videos", "audio", "polls"):
        records = [*getattr(persisted, kind), *getattr(current, kind)]
        setattr(merged, kind, records[-MAX_TRACKED_ASSETS:])
    return merged


T = TypeVar("T")


def _append_new(existing: list[T], incoming: list[T], limit: int) -> list[T]:
    merged = [*existing, *(item for item in incoming if item not in existing)]
    return merged[-limit:]


def build_snapshot(
    chat_id: str, context: AgentContextState, stored: AgentContextState | None
) -> AgentContextState:
    """Persistable snapshot of ``context`` laid over the currently stored one.

    Only what the current request produced is taken from ``context`` when a
    stored snapshot exists. Everything else comes from ``stored``, which may
    hold the work of a request that finished in the meantime.
    """
    if stored is None:
        calls: list[ToolCallRecord] = context.tool_calls[-MAX_TRACKED_TOOL_CALLS:]
        results = dict(context.previous_tool_results)
        assets = context.generated_assets
    else:
        current_calls = context.current_calls()
        current_tools = {call.tool for call in current_calls}
        calls = _append_new(stored.tool_calls, current_calls, MAX_TRACKED_TOOL_CALLS)
        results = {
            **stored.previous_tool_results,
            **{
                name: result
                for name, result in context.previous_tool_results.items()
                if name in current_tools
            },
        }
        assets = GeneratedAssets()
        for kind in ("images", "videos", "audio", "polls"):
            setattr(
                assets,
                kind,
                _append_new(
                    getattr(stored.generated_assets, kind),
                    getattr(context.generated_assets, kind),
                    MAX_TRACKED_ASSETS,
                ),
            )

    return AgentContextState(
        chat_id=chat_id,
        tool_calls=[call.model_copy() for call in calls],
        previous_tool_results={
            name: result.model_copy(deep=True) for name, result in results.items()
        },
        generated_assets=assets.model_copy(deep=True),
    )


def new_request_context(chat_id: str, options: AgentOptions) -> AgentContextState:
    """Fresh working memory for one request, seeded from its options."""
    request_input = options.input
    return AgentContextState(
        chat_id=chat_id,
        original_input=request_input.model_copy(deep=True),
        quoted_context=request_input.quoted_context,
        last_command=options.last_command,
    )


class AgentContextManager:
    """Creates request contexts and persists them per chat.

    Saves for the same chat are serialized by a per-chat lock.
    """

    def __init__(self, store: ContextStore):
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self.logger = logging.getLogger(__name__)

    def create_initial_context(self, chat_id: str, options: AgentOptions) -> AgentContextState:
        return new_request_context(chat_id, options)

    async def load_previous_context(
        self, chat_id: str, base_context: AgentContextState, memory_enabled: bool
    ) -> AgentContextState:
        """Merge the persisted snapshot into ``base_context``.

        Values set by the current request win. Any failure returns the base
        context unchanged.
        """
        if not memory_enabled:
            return base_context

        try:
            previous = await self.store.get(chat_id)
        except Exception as e:
            self.logger.warning(f"[Context] Failed to load context for {chat_id}: {e}")
            return base_context

        if previous is None:
            self.logger.debug(f"[Context] No previous context for {chat_id}")
            return base_context

        merged = base_context.model_copy(deep=True)
        merged.tool_calls = [*previous.tool_calls, *base_context.tool_calls]
        merged.request_call_offset = len(previous.tool_calls)
        merged.previous_tool_results = {
            **previous.previous_tool_results,
            **base_context.previous_tool_results,
        }
        merged.generated_assets = merge_assets(
            previous.generated_assets, base_context.generated_assets
        )
        self.logger.info(
            f"[Context] Loaded previous context for {chat_id} with "
            f"{len(previous.tool_calls)} tool calls"
        )
        return merged

    async def save_context(
        self, chat_id: str, context: AgentContextState, memory_enabled: bool
    ) -> None:
        """Persist the tracked parts of ``context``. Failures are logged, never raised.

        The stored snapshot is re-read under the chat's lock and this request's
        calls, results and assets are merged onto it, so overlapping requests
        of one chat do not overwrite each other.
        """
        if not memory_enabled:
            return

        async with self._chat_lock(chat_id):
            try:
                stored = await self.store.get(chat_id)
            except Exception as e:
                self.logger.warning(f"[Context] Failed to re-read context for {chat_id}: {e}")
                stored = None

            snapshot = build_snapshot(chat_id, context, stored)
            try:
                await self.store.put(chat_id, snapshot)
                self.logger.info(
                    f"[Context] Saved context for {chat_id} with "
                    f"{len(snapshot.tool_calls)} tool calls"
                )
            except Exception as e:
                self.logger.warning(f"[Context] Failed to save context for {chat_id}: {e}")

    @asynccontextmanager
    async def _chat_lock(self, chat_id: str) -> AsyncIterator[None]:
        # Entries live only while a save for the chat is running or waiting
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._lock_users[chat_id] = self._lock_users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[chat_id] -= 1
            if not self._lock_users[chat_id]:
                del self._lock_users[chat_id]
                del self._locks[chat_id]
