"""Executes tool requests: acknowledgements, duplicate blocking, recording and asset tracking."""

import asyncio
import json
import logging
from typing import Any

from conversational_agent.agent.output import OutputChannel
from conversational_agent.errors import ToolNotFoundError
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AssetRecord,
    ToolCallRecord,
    ToolResult,
)
from conversational_agent.interfaces.langchain.decision_backend import (
    ToolRequest,
    ToolResponse,
)
from conversational_agent.tools.registry import ToolRegistry
from conversational_agent.utils.constants import (
    CREATION_TOOLS,
    DEFAULT_ACK_MESSAGE,
    IMAGE_EDIT_PROVIDERS,
    IMAGE_PROVIDERS,
    PROVIDER_DISPLAY_NAMES,
    STOCHASTIC_TOOLS,
    TOOL_ACK_MESSAGES,
    VIDEO_PROVIDERS,
)

DUPLICATE_CALL_ERROR = (
    "Duplicate tool call blocked. You already executed this tool with these exact "
    "arguments. Do not repeat yourself."
)

_DEFAULT_PROVIDERS = {
    "create_image": IMAGE_PROVIDERS[0],
    "edit_image": IMAGE_EDIT_PROVIDERS[0],
    "create_video": VIDEO_PROVIDERS[0],
    "image_to_video": VIDEO_PROVIDERS[0],
}


def _args_key(args: dict[str, Any]) -> str:
    return json.dumps(args, sort_keys=True, ensure_ascii=False, default=str)


def build_ack_message(request: ToolRequest) -> str:
    """Acknowledgement text for one tool request."""
    template = TOOL_ACK_MESSAGES.get(request.name, DEFAULT_ACK_MESSAGE)
    if "__PROVIDER__" in template:
        provider = request.args.get("provider") or _DEFAULT_PROVIDERS.get(request.name, "")
        display = PROVIDER_DISPLAY_NAMES.get(provider, provider or "AI")
        template = template.replace("__PROVIDER__", display)
    return template


class ToolExecutionState:
    """Per-request bookkeeping shared by every batch of one loop."""

    def __init__(self) -> None:
        self.acked_tools: set[str] = set()
        self.succeeded_creation_tools: set[str] = set()


class ToolHandler:
    def __init__(self, registry: ToolRegistry, output: OutputChannel):
        self.registry = registry
        self.output = output
        self.logger = logging.getLogger(__name__)

    async def execute_batch(
        self,
        requests: list[ToolRequest],
        context: AgentContextState,
        state: ToolExecutionState,
        allowed_tools: set[str] | None = None,
    ) -> list[ToolResponse]:
        """Run one round of tool requests concurrently.

        Returns one response per request, in request order. All tools finish
        before this returns.
        """
        self.logger.debug(f"[ToolHandler] Processing {len(requests)} tool call(s)")

        blocked: dict[str, str] = {}
        runnable: list[ToolRequest] = []
        for request in requests:
            reason = self._block_reason(request, context, state, allowed_tools)
            if reason:
                self.logger.warning(f"[ToolHandler] Blocking {request.name}: {reason}")
                blocked[request.id] = reason
            else:
                runnable.append(request)

        await self._send_acks(runnable, context, state)

        results = await asyncio.gather(
            *(self._execute_tool(request, context, state) for request in runnable)
        )
        results_by_id = {request.id: result for request, result in zip(runnable, results)}

        responses = []
        for request in requests:
            if request.id in blocked:
                payload = ToolResult.failure(blocked[request.id]).as_payload()
            else:
                payload = results_by_id[request.id].as_payload()
            responses.append(ToolResponse(id=request.id, name=request.name, result=payload))

        if runnable:
            succeeded = sum(1 for result in results if result.success)
            self.logger.debug(
                f"[ToolHandler] Batch execution: {succeeded} succeeded, "
                f"{len(results) - succeeded} failed"
            )
        return responses

    def _block_reason(
        self,
        request: ToolRequest,
        context: AgentContextState,
        state: ToolExecutionState,
        allowed_tools: set[str] | None,
    ) -> str | None:
        if allowed_tools is not None and request.name not in allowed_tools:
            return (
                f"Tool {request.name} is not part of this step. "
                f"Use only: {', '.join(sorted(allowed_tools))}"
            )

        if request.name in CREATION_TOOLS and request.name in state.succeeded_creation_tools:
            return DUPLICATE_CALL_ERROR

        if request.name not in STOCHASTIC_TOOLS:
            key = _args_key(request.args)
            for previous in context.current_calls():
                if previous.tool == request.name and _args_key(previous.args) == key:
                    return DUPLICATE_CALL_ERROR
        return None

    async def _send_acks(
        self,
        requests: list[ToolRequest],
        context: AgentContextState,
        state: ToolExecutionState,
    ) -> None:
        skip = set()
        if context.original_input and context.original_input.audio_already_transcribed:
            skip.add("transcribe_audio")

        messages = []
        for request in requests:
            if request.name in state.acked_tools or request.name in skip:
                continue
            state.acked_tools.add(request.name)
            message = build_ack_message(request)
            if message not in messages:
                messages.append(message)

        if not messages:
            return
        try:
            await self.output.send_ack(context.chat_id, "\n".join(messages))
        except Exception as e:
            self.logger.warning(f"[ToolHandler] Failed to send acknowledgement: {e}")

    async def _execute_tool(
        self,
        request: ToolRequest,
        context: AgentContextState,
        state: ToolExecutionState,
    ) -> ToolResult:
        self.logger.debug(f"[ToolHandler] Calling tool: {request.name} with args: {request.args}")

        try:
            result = await self.registry.invoke(request.name, request.args, context)
        except ToolNotFoundError:
            self.logger.error(f"[ToolHandler] Unknown tool: {request.name}")
            return ToolResult.failure(f"Unknown tool: {request.name}")
        except Exception as e:
            self.logger.error(f"[ToolHandler] Error executing tool {request.name}: {e}")
            context.tool_calls.append(
                ToolCallRecord(
                    tool=request.name,
                    args=request.args,
                    success=False,
                    error=str(e),
                    provider=request.args.get("provider"),
                )
            )
            result = ToolResult.failure(f"Tool execution failed: {e}")
            await self._notify_error(result, context)
            return result

        context.previous_tool_results[request.name] = result
        if result.suppress_final_response:
            context.suppress_final_response = True

        context.tool_calls.append(
            ToolCallRecord(
                tool=request.name,
                args=request.args,
                success=result.success,
                error=result.error if not result.success else None,
                provider=result.provider or request.args.get("provider"),
            )
        )

        if result.success and request.name in CREATION_TOOLS:
            state.succeeded_creation_tools.add(request.name)

        if result.success:
            self._track_generated_assets(context, request, result)
        else:
            await self._notify_error(result, context)
        return result

    async def _notify_error(self, result: ToolResult, context: AgentContextState) -> None:
        if not result.error or result.errors_already_sent or result.suppress_final_response:
            return
        message = result.error if result.error.startswith("❌") else f"❌ {result.error}"
        try:
            await self.output.send_error(context.chat_id, message)
        except Exception as e:
            self.logger.error(f"[ToolHandler] Failed to notify user about error: {e}")

    def _track_generated_assets(
        self, context: AgentContextState, request: ToolRequest, result: ToolResult
    ) -> None:
        prompt = request.args.get("prompt") or request.args.get("text")
        assets = context.generated_assets
        if result.image_url:
            assets.add(
                "images",
                AssetRecord(
                    url=result.image_url,
                    caption=result.image_caption or "",
                    prompt=prompt,
                    provider=result.provider,
                ),
            )
        if result.video_url:
            assets.add(
                "videos",
                AssetRecord(
                    url=result.video_url,
                    caption=result.video_caption or "",
                    prompt=prompt,
                    provider=result.provider,
                ),
            )
        if result.audio_url:
            assets.add("audio", AssetRecord(url=result.audio_url, prompt=prompt))
        if result.poll:
            assets.add("polls", AssetRecord(poll=result.poll, caption=result.poll.question))
