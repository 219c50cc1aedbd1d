"""Tests for agent context creation, loading and persistence."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conversational_agent.agent.context import AgentContextManager, merge_assets
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentOptions,
    AssetRecord,
    GeneratedAssets,
    RequestInput,
    ToolCallRecord,
    ToolResult,
)
from conversational_agent.storage.memory import InMemoryContextStore
from conversational_agent.utils.constants import MAX_TRACKED_ASSETS


@pytest.fixture
def context_store() -> InMemoryContextStore:
    return InMemoryContextStore()


@pytest.fixture
def manager(context_store: InMemoryContextStore) -> AgentContextManager:
    return AgentContextManager(context_store)


def persisted_state(chat_id: str) -> AgentContextState:
    state = AgentContextState(chat_id=chat_id)
    state.tool_calls.append(
        ToolCallRecord(tool="create_image", args={"prompt": "cat"}, provider="gemini")
    )
    state.previous_tool_results["create_image"] = ToolResult(
        image_url="https://cdn.test/old.png"
    )
    state.previous_tool_results["search_web"] = ToolResult(data="old search")
    state.generated_assets.add("images", AssetRecord(url="https://cdn.test/old.png"))
    return state


class TestCreateInitialContext:
    """Test suite for fresh request contexts."""

    @pytest.mark.unit
    def test_seeds_from_options(self, manager: AgentContextManager) -> None:
        options = AgentOptions(
            input=RequestInput(
                user_text="edit this",
                image_url="https://cdn.test/in.png",
                quoted_context={"text": "earlier"},
            ),
            last_command={"tool": "create_image"},
        )

        context = manager.create_initial_context("chat", options)

        assert context.chat_id == "chat"
        assert context.original_input is not None
        assert context.original_input.image_url == "https://cdn.test/in.png"
        assert context.quoted_context == {"text": "earlier"}
        assert context.last_command == {"tool": "create_image"}
        assert context.tool_calls == []
        assert context.generated_assets.is_empty()

    @pytest.mark.unit
    def test_input_is_copied(self, manager: AgentContextManager) -> None:
        options = AgentOptions(input=RequestInput(user_text="hi"))
        context = manager.create_initial_context("chat", options)

        options.input.user_text = "changed"

        assert context.original_input is not None
        assert context.original_input.user_text == "hi"


class TestLoadPreviousContext:
    """Test suite for merging persisted context."""

    @pytest.mark.unit
    async def test_memory_disabled_returns_base(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        await context_store.put("chat", persisted_state("chat"))
        base = AgentContextState(chat_id="chat")

        loaded = await manager.load_previous_context("chat", base, memory_enabled=False)

        assert loaded is base
        assert loaded.tool_calls == []

    @pytest.mark.unit
    async def test_merges_and_current_request_wins(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        await context_store.put("chat", persisted_state("chat"))
        base = AgentContextState(chat_id="chat")
        base.previous_tool_results["search_web"] = ToolResult(data="new search")

        loaded = await manager.load_previous_context("chat", base, memory_enabled=True)

        assert loaded.previous_tool_results["search_web"].data == "new search"
        assert loaded.previous_tool_results["create_image"].image_url == "https://cdn.test/old.png"
        assert [call.tool for call in loaded.tool_calls] == ["create_image"]
        assert loaded.generated_assets.latest_url("images") == "https://cdn.test/old.png"

    @pytest.mark.unit
    async def test_persisted_calls_are_not_current(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        """Test that persisted calls are available but not counted for this request."""
        await context_store.put("chat", persisted_state("chat"))

        loaded = await manager.load_previous_context(
            "chat", AgentContextState(chat_id="chat"), memory_enabled=True
        )

        assert len(loaded.tool_calls) == 1
        assert loaded.current_calls() == []

    @pytest.mark.unit
    async def test_missing_snapshot_returns_base(self, manager: AgentContextManager) -> None:
        base = AgentContextState(chat_id="chat")
        loaded = await manager.load_previous_context("chat", base, memory_enabled=True)
        assert loaded is base

    @pytest.mark.unit
    async def test_store_failure_returns_base(self) -> None:
        store = AsyncMock()
        store.get.side_effect = RuntimeError("store down")
        manager = AgentContextManager(store)
        base = AgentContextState(chat_id="chat")

        loaded = await manager.load_previous_context("chat", base, memory_enabled=True)

        assert loaded is base

    @pytest.mark.unit
    async def test_chats_are_isolated(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        await context_store.put("chat-a", persisted_state("chat-a"))

        loaded = await manager.load_previous_context(
            "chat-b", AgentContextState(chat_id="chat-b"), memory_enabled=True
        )

        assert loaded.tool_calls == []


class TestSaveContext:
    """Test suite for context persistence."""

    @pytest.mark.unit
    async def test_save_then_load_round_trip(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        context = persisted_state("chat")

        await manager.save_context("chat", context, memory_enabled=True)
        stored = await context_store.get("chat")

        assert stored is not None
        assert stored.tool_calls[0].tool == "create_image"
        assert stored.original_input is None

    @pytest.mark.unit
    async def test_memory_disabled_skips_save(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        await manager.save_context("chat", persisted_state("chat"), memory_enabled=False)
        assert await context_store.get("chat") is None

    @pytest.mark.unit
    async def test_save_failure_is_swallowed(self) -> None:
        store = AsyncMock()
        store.put.side_effect = RuntimeError("disk full")
        store.get.return_value = None
        manager = AgentContextManager(store)

        await manager.save_context("chat", persisted_state("chat"), memory_enabled=True)

        store.put.assert_awaited_once()

    @pytest.mark.unit
    async def test_saves_for_one_chat_are_serialized(self) -> None:
        """Test that concurrent saves for the same chat never overlap."""
        active = 0
        max_active = 0

        async def slow_put(chat_id: str, state: AgentContextState) -> None:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1

        store = AsyncMock()
        store.put.side_effect = slow_put
        store.get.return_value = None
        manager = AgentContextManager(store)

        await asyncio.gather(
            *(
                manager.save_context("chat", persisted_state("chat"), memory_enabled=True)
                for _ in range(3)
            )
        )

        assert store.put.await_count == 3
        assert max_active == 1

    @pytest.mark.unit
    async def test_overlapping_requests_keep_each_others_work(
        self, manager: AgentContextManager, context_store: InMemoryContextStore
    ) -> None:
        """Test that two requests loaded from one snapshot both end up persisted."""
        await context_store.put("chat", persisted_state("chat"))
        first = await manager.load_previous_context(
            "chat", AgentContextState(chat_id="chat"), memory_enabled=True
        )
        second = await manager.load_previous_context(
            "chat", AgentContextState(chat_id="chat"), memory_enabled=True
        )
        first.tool_calls.append(ToolCallRecord(tool="search_web", args={"query": "alpha"}))
        first.previous_tool_results["search_web"] = ToolResult(data="alpha results")
        second.tool_calls.append(ToolCallRecord(tool="create_poll", args={"question": "beta"}))
        second.generated_assets.add("polls", AssetRecord(caption="beta"))

        await asyncio.gather(
            manager.save_context("chat", first, memory_enabled=True),
            manager.save_context("chat", second, memory_enabled=True),
        )
        stored = await context_store.get("chat")

        assert stored is not None
        assert [call.tool for call in stored.tool_calls] == [
            "create_image",
            "search_web",
            "create_poll",
        ]
        assert stored.previous_tool_results["search_web"].data == "alpha results"
        assert [record.caption for record in stored.generated_assets.polls] == ["beta"]
        assert stored.generated_assets.latest_url("images") == "https://cdn.test/old.png"

    @pytest.mark.unit
    async def test_locks_are_released_after_saving(self, manager: AgentContextManager) -> None:
        await asyncio.gather(
            manager.save_context("a", persisted_state("a"), memory_enabled=True),
            manager.save_context("a", persisted_state("a"), memory_enabled=True),
            manager.save_context("b", persisted_state("b"), memory_enabled=True),
        )

        assert manager._locks == {}
        assert manager._lock_users == {}


class TestMergeAssets:
    """Test suite for asset merging."""

    @pytest.mark.unit
    def test_current_assets_are_most_recent(self) -> None:
        persisted = GeneratedAssets()
        persisted.add("images", AssetRecord(url="old"))
        current = GeneratedAssets()
        current.add("images", AssetRecord(url="new"))

        merged = merge_assets(persisted, current)

        assert [record.url for record in merged.images] == ["old", "new"]
        assert merged.latest_url("images") == "new"

    @pytest.mark.unit
    def test_merge_is_capped(self) -> None:
        persisted = GeneratedAssets()
        for index in range(MAX_TRACKED_ASSETS):
            persisted.add("videos", AssetRecord(url=f"old-{index}"))
        current = GeneratedAssets()
        current.add("videos", AssetRecord(url="new"))

        merged = merge_assets(persisted, current)

        assert len(merged.videos) == MAX_TRACKED_ASSETS
        assert merged.videos[-1].url == "new"
