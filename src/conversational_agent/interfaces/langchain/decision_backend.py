"""Decision backend: a tool-calling chat model driven one round at a time."""

import json
import logging
from typing import Any, Protocol
from uuid import uuid4

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, SecretStr

from conversational_agent.errors import DecisionBackendError
from conversational_agent.interfaces.langchain.agent_state import HistoryTurn


class ToolRequest(BaseModel):
    """A tool invocation requested by the decision backend."""

    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:12]}")
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """A tool result fed back to the decision backend."""

    id: str
    name: str
    result: dict[str, Any]


class Decision(BaseModel):
    """One decision round: tool requests, or a final answer when there are none.

    ``final_text`` may also carry interim text sent alongside tool requests.
    """

    final_text: str | None = None
    tool_requests: list[ToolRequest] = Field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return not self.tool_requests


class DecisionSession(Protocol):
    async def send(self, message: str | list[ToolResponse]) -> Decision: ...


class DecisionBackend(Protocol):
    def start_session(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
    ) -> DecisionSession: ...

    async def converse(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
        user_turn: str,
    ) -> Decision: ...


def _message_text(content: Any) -> str:
    """Flatten string or content-block message content into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


def history_to_messages(history: list[HistoryTurn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.speaker == "user":
            messages.append(HumanMessage(content=turn.text))
        else:
            messages.append(AIMessage(content=turn.text))
    return messages


def declarations_to_tools(declarations: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert registry declarations into OpenAI function tool specs."""
    return [
        {
            "type": "function",
            "function": {
                "name": declaration["name"],
                "description": declaration.get("description", ""),
                "parameters": declaration.get(
                    "parameters", {"type": "object", "properties": {}}
                ),
            },
        }
        for declaration in declarations
    ]


class LangChainDecisionSession:
    """Running exchange with a tool-bound chat model."""

    def __init__(self, runnable: Any, messages: list[BaseMessage]):
        self.runnable = runnable
        self.messages = messages
        self.logger = logging.getLogger(__name__)

    async def send(self, message: str | list[ToolResponse]) -> Decision:
        """Append a user turn or tool results and ask for the next decision."""
        if isinstance(message, str):
            self.messages.append(HumanMessage(content=message))
        else:
            for response in message:
                self.messages.append(
                    ToolMessage(
                        content=json.dumps(response.result, ensure_ascii=False),
                        tool_call_id=response.id,
                        name=response.name,
                    )
                )

        try:
            ai_message = await self.runnable.ainvoke(self.messages)
        except Exception as e:
            self.logger.error(f"[Agent] Decision backend call failed: {e}")
            raise DecisionBackendError(f"Decision backend call failed: {e}") from e

        if not isinstance(ai_message, AIMessage):
            raise DecisionBackendError(
                f"Expected AIMessage, got {type(ai_message).__name__}"
            )

        self.messages.append(ai_message)

        if ai_message.tool_calls:
            return Decision(
                final_text=_message_text(ai_message.content) or None,
                tool_requests=[
                    ToolRequest(
                        id=call.get("id") or f"call_{uuid4().hex[:12]}",
                        name=call["name"],
                        args=call.get("args") or {},
                    )
                    for call in ai_message.tool_calls
                ],
            )

        return Decision(final_text=_message_text(ai_message.content))


class LangChainDecisionBackend:
    """Decision backend over ``ChatOpenAI.bind_tools``."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", temperature: float = 0):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature

    def start_session(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
    ) -> LangChainDecisionSession:
        llm = ChatOpenAI(
            api_key=SecretStr(self.api_key),
            model=self.model,
            temperature=self.temperature,
        )
        runnable: Any = llm
        if declarations:
            runnable = llm.bind_tools(declarations_to_tools(declarations))

        messages: list[BaseMessage] = [SystemMessage(content=system_instruction)]
        messages.extend(history_to_messages(history))
        return LangChainDecisionSession(runnable, messages)

    async def converse(
        self,
        history: list[HistoryTurn],
        system_instruction: str,
        declarations: list[dict[str, Any]],
        user_turn: str,
    ) -> Decision:
        """Single-round convenience: open a session and send ``user_turn``."""
        session = self.start_session(history, system_instruction, declarations)
        return await session.send(user_turn)
