"""Tests for engine assembly and message handling."""

from unittest.mock import AsyncMock, patch

import pytest

from conversational_agent.agent_service import AgentService, build_stores
from conversational_agent.config import AgentSettings
from conversational_agent.errors import MissingAPIKeyError
from conversational_agent.interfaces.langchain.agent_state import AgentResult, RequestInput
from conversational_agent.storage import AgentStores, JSONFileCommandStore
from conversational_agent.tools.registry import ToolName
from tests.fixtures.fakes import (
    FakeDecisionBackend,
    FakePlanner,
    RecordingOutputChannel,
    call,
    final,
    media_failure,
    media_success,
)


@pytest.fixture
def service(
    agent_settings: AgentSettings,
    agent_stores: AgentStores,
    output_channel: RecordingOutputChannel,
    mock_media: AsyncMock,
    mock_search: AsyncMock,
) -> AgentService:
    return AgentService(
        settings=agent_settings,
        stores=agent_stores,
        output=output_channel,
        planner=FakePlanner(),
        decision_backend=FakeDecisionBackend([[final("Hello!")]]),
        media=mock_media,
        search_client=mock_search,
    )


class TestAgentService:
    """Test suite for AgentService."""

    @pytest.mark.unit
    async def test_handle_message_records_turns(
        self, service: AgentService, agent_stores: AgentStores, chat_id: str
    ) -> None:
        result = await service.handle_message(
            chat_id, RequestInput(user_text="hi", original_message_id="m1")
        )

        assert result.text == "Hello!"
        turns = await agent_stores.messages.get_recent(chat_id, 10)
        assert [(t.speaker, t.text) for t in turns] == [
            ("user", "hi"),
            ("assistant", "Hello!"),
        ]

    @pytest.mark.unit
    async def test_already_sent_result_not_recorded_as_reply(
        self, service: AgentService, agent_stores: AgentStores, chat_id: str
    ) -> None:
        sent = AgentResult(success=True, text="Done.", already_sent=True)
        with patch.object(service.router, "route_to_agent", new=AsyncMock(return_value=sent)):
            await service.handle_message(chat_id, RequestInput(user_text="do two things"))

        turns = await agent_stores.messages.get_recent(chat_id, 10)
        assert [t.speaker for t in turns] == ["user"]

    @pytest.mark.unit
    def test_retry_tool_is_bound_to_plan_runner(self, service: AgentService) -> None:
        retry_tool = service.registry.get(ToolName.RETRY_LAST_COMMAND)
        assert retry_tool.plan_runner == service.multi_step_executor.run_plan

    @pytest.mark.unit
    async def test_start_and_shutdown(self, service: AgentService) -> None:
        service.start()
        await service.shutdown()

    @pytest.mark.unit
    def test_missing_key_without_injected_backend(
        self, agent_settings: AgentSettings, empty_env: None
    ) -> None:
        with patch("keyring.get_password", return_value=None):
            with pytest.raises(MissingAPIKeyError):
                AgentService(settings=agent_settings)


class TestBuildStores:
    """Test suite for store backend selection."""

    @pytest.mark.unit
    def test_memory_backend(self, agent_settings: AgentSettings) -> None:
        stores = build_stores(agent_settings.model_copy(update={"store_backend": "memory"}))
        assert not isinstance(stores.commands, JSONFileCommandStore)

    @pytest.mark.unit
    def test_file_backend(self, agent_settings: AgentSettings) -> None:
        stores = build_stores(agent_settings.model_copy(update={"store_backend": "file"}))
        assert isinstance(stores.commands, JSONFileCommandStore)


class TestRetryAcrossMessages:
    """Test suite for repeating a command in a later message."""

    @pytest.mark.unit
    async def test_try_again_after_provider_fallback_repeats_the_creation(
        self,
        agent_settings: AgentSettings,
        agent_stores: AgentStores,
        output_channel: RecordingOutputChannel,
        mock_media: AsyncMock,
        mock_search: AsyncMock,
        chat_id: str,
    ) -> None:
        mock_media.generate_image.side_effect = [
            media_failure("Quota exceeded", "gemini"),
            media_success("https://cdn.test/openai.png", "openai"),
            media_success("https://cdn.test/again.png", "openai"),
        ]
        backend = FakeDecisionBackend(
            [
                [
                    call("create_image", {"prompt": "a cat"}),
                    call("retry_with_different_provider", {"task_type": "image"}),
                    final("Here is your cat"),
                ],
                [call("retry_last_command"), final("Here it is again")],
            ]
        )
        service = AgentService(
            settings=agent_settings,
            stores=agent_stores,
            output=output_channel,
            planner=FakePlanner(),
            decision_backend=backend,
            media=mock_media,
            search_client=mock_search,
        )

        await service.handle_message(
            chat_id, RequestInput(user_text="draw a cat", original_message_id="m1")
        )
        saved = await agent_stores.commands.get_last(chat_id)
        second = await service.handle_message(
            chat_id, RequestInput(user_text="try again", original_message_id="m2")
        )

        assert saved is not None
        assert saved.tool == "create_image"
        assert saved.tool_args == {"prompt": "a cat", "provider": "openai"}
        assert saved.failed is False
        assert second.image_url == "https://cdn.test/again.png"
        assert mock_media.generate_image.await_args_list[-1].args == ("a cat", "openai")
