"""Tests for provider fallback and repeating the last command."""

from unittest.mock import AsyncMock

import pytest

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentResult,
    Plan,
    PlanStep,
    SavedCommand,
    ToolCallRecord,
)
from conversational_agent.storage import AgentStores
from conversational_agent.tools.registry import ToolName, ToolRegistry
from conversational_agent.tools.retry import RetryLastCommandTool, next_providers
from tests.fixtures.fakes import media_failure, media_success


def failed_call(tool: str, provider: str, **args: str) -> ToolCallRecord:
    return ToolCallRecord(
        tool=tool, args={"prompt": "a cat", **args}, success=False, provider=provider
    )


class TestNextProviders:
    """Test suite for provider ordering."""

    @pytest.mark.unit
    def test_order_minus_tried(self) -> None:
        assert next_providers("create_image", {"gemini"}) == ["openai", "grok"]
        assert next_providers("image_to_video", {"veo3", "sora"}) == ["kling"]
        assert next_providers("search_web", set()) == []


class TestRetryWithDifferentProvider:
    """Test suite for the provider fallback tool."""

    @pytest.mark.unit
    async def test_retries_last_failed_creation(
        self, default_registry: ToolRegistry, mock_media: AsyncMock
    ) -> None:
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("create_image", "gemini"))

        result = await default_registry.invoke("retry_with_different_provider", {}, context)

        assert result.success is True
        mock_media.generate_image.assert_awaited_once_with("a cat", "openai")

    @pytest.mark.unit
    async def test_skips_every_provider_already_tried(
        self, default_registry: ToolRegistry, mock_media: AsyncMock
    ) -> None:
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("create_image", "gemini"))
        context.tool_calls.append(failed_call("create_image", "openai"))

        await default_registry.invoke("retry_with_different_provider", {}, context)

        mock_media.generate_image.assert_awaited_once_with("a cat", "grok")

    @pytest.mark.unit
    async def test_walks_candidates_until_success(
        self, default_registry: ToolRegistry, mock_media: AsyncMock
    ) -> None:
        mock_media.generate_video.side_effect = [
            media_failure("Sora busy", "sora"),
            media_success("https://cdn.test/kling.mp4", "kling"),
        ]
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("create_video", "veo3"))

        result = await default_registry.invoke(
            "retry_with_different_provider", {"task_type": "video"}, context
        )

        assert result.success is True
        assert result.video_url == "https://cdn.test/kling.mp4"
        providers = [c.args[1] for c in mock_media.generate_video.await_args_list]
        assert providers == ["sora", "kling"]
        assert [(c.tool, c.provider, c.success) for c in context.tool_calls[1:]] == [
            ("create_video", "sora", False),
            ("create_video", "kling", True),
        ]
        assert context.previous_tool_results["create_video"].video_url == (
            "https://cdn.test/kling.mp4"
        )

    @pytest.mark.unit
    async def test_second_retry_skips_providers_that_failed_inside_the_first(
        self, default_registry: ToolRegistry, mock_media: AsyncMock
    ) -> None:
        mock_media.generate_image.return_value = media_failure("Busy", "any")
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("create_image", "gemini"))

        first = await default_registry.invoke(
            "retry_with_different_provider", {"avoid_provider": "grok"}, context
        )
        second = await default_registry.invoke("retry_with_different_provider", {}, context)

        assert first.success is False
        assert second.success is False
        providers = [c.args[1] for c in mock_media.generate_image.await_args_list]
        assert providers == ["openai", "grok"]

    @pytest.mark.unit
    async def test_all_providers_exhausted(self, default_registry: ToolRegistry) -> None:
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("edit_image", "gemini"))

        result = await default_registry.invoke(
            "retry_with_different_provider", {"avoid_provider": "openai"}, context
        )

        assert result.success is False
        assert "All providers for edit_image already failed" in (result.error or "")

    @pytest.mark.unit
    async def test_nothing_to_retry(self, default_registry: ToolRegistry) -> None:
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(ToolCallRecord(tool="search_web", success=False))

        result = await default_registry.invoke("retry_with_different_provider", {}, context)

        assert result.success is False
        assert result.error == "There is no failed creation to retry."

    @pytest.mark.unit
    async def test_failures_from_earlier_requests_are_ignored(
        self, default_registry: ToolRegistry
    ) -> None:
        context = AgentContextState(chat_id="chat")
        context.tool_calls.append(failed_call("create_image", "gemini"))
        context.request_call_offset = 1

        result = await default_registry.invoke("retry_with_different_provider", {}, context)

        assert result.success is False


class TestRetryLastCommand:
    """Test suite for repeating the previous command."""

    @pytest.mark.unit
    async def test_nothing_saved(self, default_registry: ToolRegistry) -> None:
        result = await default_registry.invoke(
            "retry_last_command", {}, AgentContextState(chat_id="chat")
        )
        assert result.success is False
        assert result.error == "There is no previous command to repeat."

    @pytest.mark.unit
    async def test_repeats_single_command_with_modifications(
        self,
        default_registry: ToolRegistry,
        agent_stores: AgentStores,
        mock_media: AsyncMock,
    ) -> None:
        await agent_stores.commands.put(
            "chat",
            "m1",
            SavedCommand(
                tool="create_image",
                tool_args={"prompt": "a cat"},
                result={"success": True, "provider": "openai"},
            ),
        )

        result = await default_registry.invoke(
            "retry_last_command", {"modifications": "in blue"}, AgentContextState(chat_id="chat")
        )

        assert result.success is True
        mock_media.generate_image.assert_awaited_once_with("a cat in blue", "openai")

    @pytest.mark.unit
    async def test_provider_override(
        self,
        default_registry: ToolRegistry,
        agent_stores: AgentStores,
        mock_media: AsyncMock,
    ) -> None:
        await agent_stores.commands.put(
            "chat",
            "m1",
            SavedCommand(tool="create_video", tool_args={"prompt": "waves", "provider": "veo3"}),
        )

        await default_registry.invoke(
            "retry_last_command",
            {"provider_override": "kling"},
            AgentContextState(chat_id="chat"),
        )

        assert mock_media.generate_video.await_args.args == ("waves", "kling")

    @pytest.mark.unit
    async def test_repeats_selected_plan_steps(
        self, default_registry: ToolRegistry, agent_stores: AgentStores
    ) -> None:
        plan = Plan(
            is_multi_step=True,
            steps=[
                PlanStep(step_number=1, tool="create_image", action="Draw a cat"),
                PlanStep(step_number=2, tool="image_to_video", action="Animate it"),
                PlanStep(step_number=3, tool="create_poll", action="Ask"),
            ],
        )
        await agent_stores.commands.put(
            "chat", "m1", SavedCommand(tool="multi_step", is_multi_step=True, plan=plan)
        )
        runner = AsyncMock(
            return_value=AgentResult(
                success=True,
                multi_step=True,
                video_url="https://cdn.test/video.mp4",
                steps_completed=2,
                total_steps=2,
            )
        )
        retry_tool = default_registry.get(ToolName.RETRY_LAST_COMMAND)
        assert isinstance(retry_tool, RetryLastCommandTool)
        retry_tool.bind_plan_runner(runner)

        result = await default_registry.invoke(
            "retry_last_command",
            {"step_numbers": [1, 2], "provider_override": "openai", "modifications": "bigger"},
            AgentContextState(chat_id="chat"),
        )

        retried_plan = runner.await_args.args[0]
        assert [step.step_number for step in retried_plan.steps] == [1, 2]
        assert retried_plan.steps[0].action == "Draw a cat bigger"
        assert retried_plan.steps[0].parameters == {"provider": "openai"}
        assert result.success is True
        assert result.suppress_final_response is True
        assert result.data == "Repeated 2/2 steps"
        assert result.video_url == "https://cdn.test/video.mp4"

    @pytest.mark.unit
    async def test_unknown_plan_steps(
        self, default_registry: ToolRegistry, agent_stores: AgentStores
    ) -> None:
        plan = Plan(
            is_multi_step=True,
            steps=[
                PlanStep(step_number=1, tool="create_image", action="Draw"),
                PlanStep(step_number=2, tool="create_poll", action="Ask"),
            ],
        )
        await agent_stores.commands.put(
            "chat", "m1", SavedCommand(tool="multi_step", is_multi_step=True, plan=plan)
        )
        retry_tool = default_registry.get(ToolName.RETRY_LAST_COMMAND)
        assert isinstance(retry_tool, RetryLastCommandTool)
        retry_tool.bind_plan_runner(AsyncMock())

        result = await default_registry.invoke(
            "retry_last_command", {"step_numbers": [7]}, AgentContextState(chat_id="chat")
        )

        assert result.success is False
        assert "Available steps: 1. create_image, 2. create_poll" in (result.error or "")
