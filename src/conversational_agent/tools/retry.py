"""Retry tools: provider fallback for failed creations and repeating the last command."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentResult,
    Plan,
    PlanStep,
    SavedCommand,
    ToolCallRecord,
    ToolResult,
)
from conversational_agent.interfaces.langchain.models import (
    RetryLastCommandInput,
    RetryWithDifferentProviderInput,
)
from conversational_agent.storage.base import CommandStore
from conversational_agent.tools.registry import AgentTool, ToolName, ToolRegistry
from conversational_agent.utils.constants import (
    IMAGE_EDIT_PROVIDERS,
    IMAGE_PROVIDERS,
    PROVIDER_DISPLAY_NAMES,
    VIDEO_PROVIDERS,
)

PROVIDERS_BY_TOOL: dict[str, list[str]] = {
    ToolName.CREATE_IMAGE.value: IMAGE_PROVIDERS,
    ToolName.EDIT_IMAGE.value: IMAGE_EDIT_PROVIDERS,
    ToolName.CREATE_VIDEO.value: VIDEO_PROVIDERS,
    ToolName.IMAGE_TO_VIDEO.value: VIDEO_PROVIDERS,
}

TOOLS_BY_TASK_TYPE: dict[str, frozenset[str]] = {
    "image": frozenset([ToolName.CREATE_IMAGE.value]),
    "image_edit": frozenset([ToolName.EDIT_IMAGE.value]),
    "video": frozenset([ToolName.CREATE_VIDEO.value, ToolName.IMAGE_TO_VIDEO.value]),
}

PlanRunner = Callable[[Plan, AgentContextState], Awaitable[AgentResult]]


def next_providers(tool: str, tried: set[str]) -> list[str]:
    """Providers for ``tool`` in preference order, minus the ones already tried."""
    return [provider for provider in PROVIDERS_BY_TOOL.get(tool, []) if provider not in tried]


class RetryWithDifferentProviderTool(AgentTool):
    name = ToolName.RETRY_WITH_DIFFERENT_PROVIDER
    description = (
        "Retry the most recent failed image/video creation or image edit with a "
        "different provider."
    )
    args_schema = RetryWithDifferentProviderInput

    def __init__(self, registry: ToolRegistry):
        self.registry = registry
        self.logger = logging.getLogger(__name__)

    async def execute(
        self, args: RetryWithDifferentProviderInput, context: AgentContextState
    ) -> ToolResult:
        tools = TOOLS_BY_TASK_TYPE.get(args.task_type) if args.task_type else None
        failed = context.last_failed_call(tools or frozenset(PROVIDERS_BY_TOOL))
        if failed is None:
            return ToolResult.failure("There is no failed creation to retry.")

        order = PROVIDERS_BY_TOOL[failed.tool]
        tried = {
            call.provider or call.args.get("provider") or order[0]
            for call in context.current_calls()
            if call.tool == failed.tool and not call.success
        }
        if args.avoid_provider:
            tried.add(args.avoid_provider)

        candidates = next_providers(failed.tool, tried)
        if not candidates:
            return ToolResult.failure(
                f"All providers for {failed.tool} already failed: {', '.join(sorted(tried))}"
            )

        retry_args: dict[str, Any] = dict(failed.args)
        if args.prompt:
            retry_args["prompt"] = args.prompt

        errors = []
        for provider in candidates:
            display = PROVIDER_DISPLAY_NAMES.get(provider, provider)
            self.logger.info(f"[Agent] Retrying {failed.tool} with {display}")
            attempt_args = {**retry_args, "provider": provider}
            result = await self.registry.invoke(failed.tool, attempt_args, context)
            # Attempts are recorded as calls of the creation tool itself
            context.previous_tool_results[failed.tool] = result
            context.tool_calls.append(
                ToolCallRecord(
                    tool=failed.tool,
                    args=attempt_args,
                    success=result.success,
                    error=None if result.success else result.error,
                    provider=provider,
                )
            )
            if result.success:
                return result
            errors.append(f"{display}: {result.error}")

        return ToolResult.failure(
            "Retry failed with every provider. " + "; ".join(errors),
            provider=candidates[-1],
        )


class RetryLastCommandTool(AgentTool):
    name = ToolName.RETRY_LAST_COMMAND
    description = (
        'Repeat the previous command of this chat. Use ONLY when the user asks to '
        '"retry", "try again" or "do it again".'
    )
    args_schema = RetryLastCommandInput

    def __init__(self, registry: ToolRegistry, command_store: CommandStore):
        self.registry = registry
        self.command_store = command_store
        self.plan_runner: PlanRunner | None = None
        self.logger = logging.getLogger(__name__)

    def bind_plan_runner(self, plan_runner: PlanRunner) -> None:
        """Set the callable that re-executes multi-step plans."""
        self.plan_runner = plan_runner

    async def execute(
        self, args: RetryLastCommandInput, context: AgentContextState
    ) -> ToolResult:
        last_command = await self.command_store.get_last(context.chat_id)
        if last_command is None:
            return ToolResult.failure("There is no previous command to repeat.")

        self.logger.info(
            f"[Agent] Repeating last command: {last_command.tool} "
            f"(multi-step={last_command.is_multi_step})"
        )
        if last_command.is_multi_step:
            return await self._retry_plan(args, context, last_command)
        return await self._retry_single(args, context, last_command)

    async def _retry_single(
        self,
        args: RetryLastCommandInput,
        context: AgentContextState,
        last_command: SavedCommand,
    ) -> ToolResult:
        if not self.registry.has(last_command.tool):
            return ToolResult.failure(
                f"The last command ({last_command.tool}) cannot be repeated automatically."
            )

        tool_args = dict(last_command.tool_args)
        if args.modifications and args.modifications.strip():
            for key in ("prompt", "text"):
                if key in tool_args:
                    tool_args[key] = f"{tool_args[key]} {args.modifications.strip()}".strip()
                    break
            else:
                tool_args["prompt"] = args.modifications.strip()

        stored_provider = (last_command.result or {}).get("provider")
        provider = args.provider_override or tool_args.get("provider") or stored_provider
        schema_fields = self.registry.get(last_command.tool).args_schema.model_fields
        if provider and "provider" in schema_fields:
            tool_args["provider"] = provider

        return await self.registry.invoke(last_command.tool, tool_args, context)

    async def _retry_plan(
        self,
        args: RetryLastCommandInput,
        context: AgentContextState,
        last_command: SavedCommand,
    ) -> ToolResult:
        plan = last_command.plan
        if plan is None or not plan.steps:
            return ToolResult.failure("The previous multi-step plan could not be restored.")
        if self.plan_runner is None:
            return ToolResult.failure("Repeating multi-step commands is not available.")

        steps = plan.steps
        if args.step_numbers:
            steps = [step for step in plan.steps if step.step_number in args.step_numbers]
            if not steps:
                available = ", ".join(
                    f"{step.step_number}. {step.tool or step.action[:30]}" for step in plan.steps
                )
                return ToolResult.failure(f"No matching steps. Available steps: {available}")

        retried_steps = []
        for index, step in enumerate(steps):
            parameters = dict(step.parameters)
            if args.provider_override and step.tool in PROVIDERS_BY_TOOL:
                parameters["provider"] = args.provider_override
            action = step.action
            if index == 0 and args.modifications and args.modifications.strip():
                action = f"{action} {args.modifications.strip()}"
            retried_steps.append(
                PlanStep(
                    step_number=index + 1,
                    tool=step.tool,
                    action=action,
                    parameters=parameters,
                )
            )

        retry_plan = Plan(is_multi_step=True, steps=retried_steps, reasoning=plan.reasoning)
        result = await self.plan_runner(retry_plan, context)

        completed = result.steps_completed or 0
        total = result.total_steps or len(retried_steps)
        # Steps were already delivered to the user one by one
        return ToolResult(
            success=result.success,
            data=f"Repeated {completed}/{total} steps",
            error=result.error,
            image_url=result.image_url,
            video_url=result.video_url,
            audio_url=result.audio_url,
            suppress_final_response=True,
            errors_already_sent=not result.success,
        )
