"""Routes normalized messages to the orchestrator and runs the post-completion pipeline."""

import logging
from typing import Any

from conversational_agent.agent.command_saver import CommandSaver
from conversational_agent.agent.history_strategy import is_self_contained_request
from conversational_agent.agent.orchestrator import AgentOrchestrator
from conversational_agent.interfaces.langchain.agent_state import (
    AgentOptions,
    AgentResult,
    RequestInput,
    SavedCommand,
)
from conversational_agent.prompts import MEDIA_MARKERS
from conversational_agent.utils.text import truncate


def should_skip_history(request_input: RequestInput) -> bool:
    """Attached media and standalone creation commands need no earlier turns."""
    if request_input.has_media:
        return True
    return is_self_contained_request(request_input.user_text)


def summarize_last_command(command: SavedCommand) -> str:
    if command.is_multi_step and command.plan:
        actions = "; ".join(step.action for step in command.plan.steps)
        progress = f"{command.steps_completed}/{command.total_steps}"
        summary = f"multi-step plan ({progress} steps): {actions}"
    else:
        prompt = command.tool_args.get("prompt") or command.tool_args.get("text") or command.prompt
        summary = f"{command.tool}"
        if prompt:
            summary += f' (prompt: "{truncate(prompt)}")'
        provider = command.tool_args.get("provider") or (command.result or {}).get("provider")
        if provider:
            summary += f" with {provider}"
    if command.failed:
        summary += " - failed"
    return summary


def build_contextual_prompt(
    request_input: RequestInput, last_command: SavedCommand | None = None
) -> str:
    """User text followed by bracketed metadata for media, quotes and the last command."""
    prompt = request_input.user_text or ""

    for kind, url in (
        ("image", request_input.image_url),
        ("video", request_input.video_url),
        ("audio", request_input.audio_url),
    ):
        if url:
            prompt += f"\n\n{MEDIA_MARKERS[kind]} {kind}_url: {url}"

    quoted = request_input.quoted_context
    if quoted:
        prompt += f"\n\n[Quoted message: {quoted.get('text') or quoted.get('type') or ''}]"
        for kind in ("image", "video", "audio"):
            url = quoted.get(f"{kind}_url")
            if url:
                prompt += f"\n[Quoted {kind}] {kind}_url: {url}"

    if last_command is not None:
        prompt += f"\n\n[Previous command]: {summarize_last_command(last_command)}"
    return prompt


class AgentRouter:
    def __init__(self, orchestrator: AgentOrchestrator, command_saver: CommandSaver):
        self.orchestrator = orchestrator
        self.command_saver = command_saver
        self.logger = logging.getLogger(__name__)

    async def route_to_agent(
        self,
        request_input: RequestInput,
        chat_id: str,
        use_conversation_history: bool | None = None,
    ) -> AgentResult:
        """Build the contextual prompt, execute and run the post-completion steps.

        Args:
            request_input: Normalized inbound message
            chat_id: Chat the message belongs to
            use_conversation_history: Explicit history flag; derived from the
                request when omitted

        Returns:
            AgentResult from the orchestrator
        """
        if use_conversation_history is None:
            use_conversation_history = not should_skip_history(request_input)

        last_command = await self.command_saver.get_last_command(chat_id)
        prompt = build_contextual_prompt(request_input, last_command)

        options = AgentOptions(
            use_conversation_history=use_conversation_history,
            input=request_input,
            last_command=last_command.model_dump(mode="json") if last_command else None,
        )

        self.logger.info(
            f"[Agent] Routing request for {chat_id} (history: {use_conversation_history})"
        )
        result = await self.orchestrator.execute(prompt, chat_id, options)
        await self._post_completion(result, chat_id, request_input)
        return result

    async def _post_completion(
        self, result: AgentResult, chat_id: str, request_input: RequestInput
    ) -> None:
        """Ordered steps after a request; none of them can fail the request."""
        if result.is_retry_execution:
            self.logger.debug("[CommandSaver] Retry execution, keeping the previous command")
        else:
            try:
                await self.command_saver.save_last_command(
                    result, chat_id, request_input.user_text, request_input
                )
            except Exception as e:
                self.logger.error(f"[CommandSaver] Post-completion save failed: {e}")

        try:
            self.logger.info(self._telemetry_line(result, chat_id))
        except Exception as e:
            self.logger.warning(f"[Agent] Failed to emit telemetry: {e}")

    @staticmethod
    def _telemetry_line(result: AgentResult, chat_id: str) -> str:
        fields: dict[str, Any] = {
            "chat": chat_id,
            "success": result.success,
            "multi_step": result.multi_step,
            "iterations": result.iterations,
            "tools": ",".join(result.tools_used) or "-",
            "timeout": result.timeout,
            "iteration_limit": result.iteration_limit_reached,
        }
        if result.multi_step:
            fields["steps"] = f"{result.steps_completed}/{result.total_steps}"
        return "[Telemetry] " + " ".join(f"{key}={value}" for key, value in fields.items())
