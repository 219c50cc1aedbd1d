"""Builds the AgentResult for a finished single-step loop."""

import logging

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentResult,
    ToolResult,
)
from conversational_agent.tools.registry import ToolName
from conversational_agent.utils.constants import EMPTY_ANSWER_MESSAGE, ITERATION_LIMIT_MESSAGE
from conversational_agent.utils.text import clean_json_wrapper, clean_thinking_patterns


def tools_used(context: AgentContextState) -> list[str]:
    """Distinct tool names called by the current request, in call order."""
    names: list[str] = []
    for call in context.current_calls():
        if call.tool not in names:
            names.append(call.tool)
    return names


def current_tool_results(context: AgentContextState) -> dict[str, ToolResult]:
    used = set(tools_used(context))
    return {
        name: result.model_copy(deep=True)
        for name, result in context.previous_tool_results.items()
        if name in used
    }


class ResultProcessor:
    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

    def process_result(
        self, raw_text: str | None, context: AgentContextState, iterations: int
    ) -> AgentResult:
        """Clean the final answer and attach the media this request produced."""
        text = clean_thinking_patterns(raw_text)

        assets = context.generated_assets
        image = assets.latest_since("images", context.started_at)
        video = assets.latest_since("videos", context.started_at)
        audio = assets.latest_since("audio", context.started_at)
        poll = assets.latest_since("polls", context.started_at)

        results = current_tool_results(context)
        location = next(
            (result for result in results.values() if result.latitude is not None),
            None,
        )
        location_info = None
        if location is not None:
            location_info = clean_json_wrapper(location.location_info or location.data or "")

        final_text = "" if context.suppress_final_response else clean_json_wrapper(text)

        has_output = any([image, video, audio, poll, location])
        if not final_text and not has_output and not context.suppress_final_response:
            if context.current_calls():
                self.logger.debug(
                    "[Agent] Final response empty but tools were used. Suppressing fallback."
                )
            else:
                self.logger.warning("[Agent] Final response is empty. Using fallback.")
                final_text = EMPTY_ANSWER_MESSAGE

        used = tools_used(context)
        return AgentResult(
            success=True,
            text=final_text,
            image_url=image.url if image else None,
            image_caption=image.caption if image else "",
            video_url=video.url if video else None,
            video_caption=video.caption if video else "",
            audio_url=audio.url if audio else None,
            poll=poll.poll if poll else None,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            location_info=location_info or None,
            tool_calls=[call.model_copy() for call in context.current_calls()],
            tool_results=results,
            tools_used=used,
            iterations=iterations,
            suppressed_final_response=context.suppress_final_response,
            original_message_id=(
                context.original_input.original_message_id if context.original_input else None
            ),
            is_retry_execution=ToolName.RETRY_LAST_COMMAND.value in used,
        )

    def iteration_limit_result(
        self, partial_text: str | None, context: AgentContextState, iterations: int
    ) -> AgentResult:
        """Result for a loop that ran out of iterations without a final answer."""
        used = tools_used(context)
        return AgentResult(
            success=False,
            text=clean_json_wrapper(clean_thinking_patterns(partial_text)),
            error=ITERATION_LIMIT_MESSAGE,
            iteration_limit_reached=True,
            timeout=False,
            tool_calls=[call.model_copy() for call in context.current_calls()],
            tool_results=current_tool_results(context),
            tools_used=used,
            iterations=iterations,
            original_message_id=(
                context.original_input.original_message_id if context.original_input else None
            ),
            is_retry_execution=ToolName.RETRY_LAST_COMMAND.value in used,
        )
