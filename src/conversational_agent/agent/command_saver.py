"""Persists the last retryable command of a request."""

import logging

from conversational_agent.interfaces.langchain.agent_state import (
    AgentResult,
    RequestInput,
    SavedCommand,
    ToolCallRecord,
)
from conversational_agent.storage.base import CommandStore
from conversational_agent.tools.registry import ToolName
from conversational_agent.utils.constants import NON_PERSISTED_TOOLS
from conversational_agent.utils.text import sanitize_tool_result


def last_retryable_call(tool_calls: list[ToolCallRecord]) -> ToolCallRecord | None:
    """Most recent call that can be repeated, successful or not.

    Provider retries are skipped. Each of their attempts is recorded as a call
    of the creation tool it retried, which is what a later retry repeats.
    """
    for call in reversed(tool_calls):
        if call.tool in NON_PERSISTED_TOOLS:
            continue
        if call.tool == ToolName.RETRY_WITH_DIFFERENT_PROVIDER:
            continue
        return call
    return None


class CommandSaver:
    def __init__(self, command_store: CommandStore):
        self.command_store = command_store
        self.logger = logging.getLogger(__name__)

    async def save_last_command(
        self,
        agent_result: AgentResult,
        chat_id: str,
        original_text: str,
        normalized_input: RequestInput,
    ) -> None:
        """Save a retry record keyed by the request's message id.

        Requests without a message id are not saved. Failures are logged.
        """
        message_id = agent_result.original_message_id or normalized_input.original_message_id
        if not message_id:
            return

        try:
            record = self._build_record(agent_result, original_text, normalized_input)
            if record is None:
                return
            await self.command_store.put(chat_id, message_id, record)
            self.logger.info(
                f"[CommandSaver] Saved last command for retry: {record.tool} "
                f"(message {message_id})"
            )
        except Exception as e:
            self.logger.error(f"[CommandSaver] Failed to save last command: {e}")

    async def get_last_command(self, chat_id: str) -> SavedCommand | None:
        try:
            return await self.command_store.get_last(chat_id)
        except Exception as e:
            self.logger.warning(f"[CommandSaver] Failed to load last command: {e}")
            return None

    def _build_record(
        self,
        agent_result: AgentResult,
        original_text: str,
        normalized_input: RequestInput,
    ) -> SavedCommand | None:
        common = {
            "prompt": original_text,
            "normalized": normalized_input.model_copy(deep=True),
            "image_url": agent_result.image_url,
            "video_url": agent_result.video_url,
            "audio_url": agent_result.audio_url,
            "failed": not agent_result.success,
        }

        if agent_result.multi_step:
            plan = agent_result.plan
            if plan is None or not plan.steps:
                self.logger.debug("[CommandSaver] Multi-step result without steps, not saving")
                return None
            return SavedCommand(
                tool="multi_step",
                is_multi_step=True,
                plan=plan.model_copy(deep=True),
                steps_completed=agent_result.steps_completed or 0,
                total_steps=agent_result.total_steps or len(plan.steps),
                **common,
            )

        call = last_retryable_call(agent_result.tool_calls)
        if call is None:
            return None

        tool_result = agent_result.tool_results.get(call.tool)
        return SavedCommand(
            tool=call.tool,
            tool_args=dict(call.args),
            result=sanitize_tool_result(tool_result.as_payload()) if tool_result else None,
            **{**common, "failed": not call.success},
        )
