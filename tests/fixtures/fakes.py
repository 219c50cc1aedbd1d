"""Scripted collaborators for engine tests."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from conversational_agent.core.media import MediaGenerationClient
from conversational_agent.core.search import WebSearchClient
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    HistoryTurn,
    Plan,
    StepResult,
    ToolResult,
)
from conversational_agent.interfaces.langchain.decision_backend import (
    Decision,
    ToolRequest,
    ToolResponse,
)
from conversational_agent.storage import AgentStores
from conversational_agent.tools import create_default_registry
from conversational_agent.tools.registry import AgentTool, ToolName, ToolRegistry


def final(text: str) -> Decision:
    """Decision carrying a final answer."""
    return Decision(final_text=text)


def call(name: str, args: dict[str, Any] | None = None, call_id: str | None = None) -> Decision:
    """Decision requesting a single tool."""
    request = ToolRequest(name=name, args=args or {})
    if call_id:
        request.id = call_id
    return Decision(tool_requests=[request])


class FakeDecisionSession:
    """Returns scripted decisions in order and records what was sent."""

    def __init__(self, decisions: list[Decision], delay: float = 0.0):
        self.decisions = list(decisions)
        self.delay = delay
        self.sent: list[str | list[ToolResponse]] = []

    async def send(self, message: str | list[ToolResponse]) -> Decision:
        self.sent.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.decisions:
            return Decision(final_text="")
        return self.decisions.pop(0)


class FakeDecisionBackend:
    """Hands out one scripted session per ``start_session`` call."""

    def __init__(self, scripts: list[list[Decision]] | None = None, delay: float = 0.0):
        self.scripts = list(scripts or [])
        self.delay = delay
        self.sessions: list[FakeDecisionSession] = []
        self.started: list[dict[str, Any]] = []

    def start_session(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
    ) -> FakeDecisionSession:
        decisions = self.scripts.pop(0) if self.scripts else [Decision(final_text="")]
        session = FakeDecisionSession(decisions, self.delay)
        self.started.append(
            {
                "history": history,
                "system_instruction": system_instruction,
                "declarations": declarations,
            }
        )
        self.sessions.append(session)
        return session

    async def converse(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
        user_turn: str,
    ) -> Decision:
        session = self.start_session(history, system_instruction, declarations)
        return await session.send(user_turn)


class FakePlanner:
    """Planner returning a fixed plan (or raising) and recording its inputs."""

    def __init__(self, plan: Plan | None = None, error: Exception | None = None):
        self.plan = plan or Plan.single_step()
        self.error = error
        self.calls: list[str] = []

    async def classify(self, text: str) -> Plan:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.plan


class RecordingOutputChannel:
    """Output channel that keeps everything it was asked to deliver."""

    def __init__(self) -> None:
        self.acks: list[str] = []
        self.texts: list[str] = []
        self.steps: list[StepResult] = []
        self.errors: list[str] = []

    async def send_ack(self, chat_id: str, text: str) -> None:
        self.acks.append(text)

    async def send_text(self, chat_id: str, text: str) -> None:
        self.texts.append(text)

    async def send_step_result(self, chat_id: str, step: StepResult) -> None:
        self.steps.append(step)

    async def send_error(self, chat_id: str, error: str) -> None:
        self.errors.append(error)


class QueryInput(BaseModel):
    query: str


class ScriptedTool(AgentTool):
    """Tool returning scripted results; the last result repeats."""

    def __init__(
        self,
        name: ToolName,
        results: list[ToolResult] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        args_schema: type[BaseModel] = QueryInput,
    ):
        self.name = name  # type: ignore[misc]
        self.description = f"Scripted {name.value}"  # type: ignore[misc]
        self.args_schema = args_schema  # type: ignore[misc]
        self.results = list(results or [ToolResult(data="ok")])
        self.delay = delay
        self.error = error
        self.calls: list[BaseModel] = []

    async def execute(self, args: BaseModel, context: AgentContextState) -> ToolResult:
        self.calls.append(args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def media_success(url: str, provider: str) -> dict[str, Any]:
    return {"success": True, "url": url, "caption": "", "provider": provider}


def media_failure(error: str, provider: str) -> dict[str, Any]:
    return {"success": False, "error": error, "provider": provider}


@pytest.fixture
def mock_media() -> AsyncMock:
    """Media client whose calls succeed unless a test overrides them."""
    media = AsyncMock(spec=MediaGenerationClient)
    media.generate_image.return_value = media_success("https://cdn.test/image.png", "gemini")
    media.edit_image.return_value = media_success("https://cdn.test/edited.png", "gemini")
    media.generate_video.return_value = media_success("https://cdn.test/video.mp4", "veo3")
    media.synthesize_speech.return_value = media_success("https://cdn.test/speech.mp3", "tts")
    return media


@pytest.fixture
def mock_search() -> AsyncMock:
    """Web search client with one canned result."""
    search = AsyncMock(spec=WebSearchClient)
    search.search.return_value = [
        {"title": "Result", "url": "https://example.com", "snippet": "Snippet"}
    ]
    return search


@pytest.fixture
def agent_stores() -> AgentStores:
    """In-memory stores."""
    return AgentStores()


@pytest.fixture
def default_registry(
    mock_media: AsyncMock, mock_search: AsyncMock, agent_stores: AgentStores
) -> ToolRegistry:
    """Frozen registry with every tool, backed by mock clients."""
    return create_default_registry(
        mock_media,
        mock_search,
        agent_stores.messages,
        agent_stores.preferences,
        agent_stores.commands,
    )


@pytest.fixture
def output_channel() -> RecordingOutputChannel:
    return RecordingOutputChannel()
