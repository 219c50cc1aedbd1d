"""Sequential execution of multi-step plans."""

import logging
import time
from typing import Any

from langgraph.graph import END, StateGraph
from pydantic import ValidationError

from conversational_agent.agent.agent_loop import AgentLoop
from conversational_agent.agent.context import new_request_context
from conversational_agent.agent.output import OutputChannel
from conversational_agent.agent.tool_handler import ToolExecutionState, build_ack_message
from conversational_agent.config import AgentSettings
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentOptions,
    AgentResult,
    Plan,
    PlanExecutionState,
    PlanStep,
    StepResult,
    ToolResult,
)
from conversational_agent.interfaces.langchain.decision_backend import (
    DecisionBackend,
    ToolRequest,
)
from conversational_agent.prompts import AGENT_SYSTEM_PROMPT, MULTI_STEP_STEP_PROMPT
from conversational_agent.tools.registry import ToolRegistry
from conversational_agent.tools.retry import PROVIDERS_BY_TOOL, next_providers
from conversational_agent.utils.constants import (
    ITERATION_LIMIT_MESSAGE,
    MULTI_STEP_DONE_MESSAGE,
)
from conversational_agent.utils.text import (
    detect_language,
    get_language_instruction,
    truncate,
)

# Media produced by one step that later steps may consume
ARTIFACT_FIELDS = ("image_url", "video_url", "audio_url")


def thread_artifacts(
    schema_fields: dict[str, Any],
    parameters: dict[str, Any],
    previous_steps: list[StepResult],
) -> dict[str, Any]:
    """Fill missing media inputs of a step from the most recent earlier step."""
    args = dict(parameters)
    for field in ARTIFACT_FIELDS:
        if field not in schema_fields or args.get(field):
            continue
        for previous in reversed(previous_steps):
            url = getattr(previous, field)
            if url:
                args[field] = url
                break
    return args


def summarize_previous_steps(previous_steps: list[StepResult]) -> str:
    if not previous_steps:
        return ""
    lines = ["Previous steps:"]
    for step in previous_steps:
        line = f"{step.step_number}. {step.action}: {truncate(step.text) or 'done'}"
        for field in ARTIFACT_FIELDS:
            url = getattr(step, field)
            if url:
                line += f" [{field}: {url}]"
        lines.append(line)
    return "\n".join(lines) + "\n\n"


class MultiStepExecutor:
    """Runs the steps of a plan one after another.

    A step whose tool arguments are already known is invoked directly.
    Anything else goes through a short agent loop restricted to the step's
    tool. Every completed step is delivered to the chat before the next one
    starts; the first failing step ends the plan.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        decision_backend: DecisionBackend,
        agent_loop: AgentLoop,
        output: OutputChannel,
        settings: AgentSettings,
    ):
        self.registry = registry
        self.decision_backend = decision_backend
        self.agent_loop = agent_loop
        self.tool_handler = agent_loop.tool_handler
        self.output = output
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    async def execute(
        self,
        plan: Plan,
        chat_id: str,
        options: AgentOptions,
        language_instruction: str,
        settings: AgentSettings | None = None,
    ) -> AgentResult:
        settings = settings or self.settings
        budget = max(
            options.max_iterations or settings.max_iterations,
            settings.multi_step_min_iterations,
        )
        total_steps = len(plan.steps)
        self.logger.info(
            f"[Multi-step] Executing {total_steps} steps for {chat_id} (budget {budget})"
        )

        context = new_request_context(chat_id, options)
        if not plan.steps:
            return self._build_result(plan, context, [], None, 0)

        graph = self._create_graph(
            plan,
            chat_id,
            context,
            f"{AGENT_SYSTEM_PROMPT}\n\n{language_instruction}",
            budget,
            settings,
        )
        initial: PlanExecutionState = {
            "current_step_index": 0,
            "past_steps": [],
            "failure": None,
            "iterations_used": 0,
        }
        final_state = await graph.ainvoke(
            initial, config={"recursion_limit": total_steps + 5}
        )

        return self._build_result(
            plan,
            context,
            final_state["past_steps"],
            final_state["failure"],
            final_state["iterations_used"],
        )

    def _create_graph(
        self,
        plan: Plan,
        chat_id: str,
        context: AgentContextState,
        system_instruction: str,
        budget: int,
        settings: AgentSettings,
    ) -> Any:
        graph = StateGraph(PlanExecutionState)
        total_steps = len(plan.steps)

        # --- Node Functions ---

        async def execute_node(state: PlanExecutionState) -> PlanExecutionState:
            """Run the current step and deliver it, or record why the plan stops."""
            step = plan.steps[state["current_step_index"]]
            remaining = budget - state["iterations_used"]
            if remaining <= 0:
                self.logger.warning(
                    f"[Multi-step] Iteration budget exhausted at step {step.step_number}"
                )
                failure = StepResult(
                    step_number=step.step_number,
                    action=step.action,
                    tool=step.tool,
                    success=False,
                    error=ITERATION_LIMIT_MESSAGE,
                )
                await self._send_error(chat_id, failure)
                return {**state, "failure": failure}

            step_result = await self._execute_step(
                step,
                total_steps,
                context,
                state["past_steps"],
                system_instruction,
                min(settings.step_max_iterations, remaining),
                settings,
            )
            iterations_used = state["iterations_used"] + step_result.iterations

            if not step_result.success:
                if not self._error_already_notified(context, step):
                    await self._send_error(chat_id, step_result)
                self.logger.warning(
                    f"[Multi-step] Step {step.step_number} failed: {step_result.error}"
                )
                return {**state, "failure": step_result, "iterations_used": iterations_used}

            await self._send_step(chat_id, step_result)
            return {
                **state,
                "current_step_index": state["current_step_index"] + 1,
                "past_steps": state["past_steps"] + [step_result],
                "iterations_used": iterations_used,
            }

        # --- Routing Functions ---

        def route_after_execute(state: PlanExecutionState) -> str:
            if state["failure"] is not None:
                return "error"
            if state["current_step_index"] < total_steps:
                return "continue"
            return "finish"

        # --- Build Graph ---

        graph.add_node("execute", execute_node)
        graph.set_entry_point("execute")

        graph.add_conditional_edges(
            "execute",
            route_after_execute,
            {"continue": "execute", "finish": END, "error": END},
        )

        return graph.compile()

    async def run_plan(self, plan: Plan, context: AgentContextState) -> AgentResult:
        """Run ``plan`` on behalf of a tool that repeats a saved multi-step command."""
        request_input = context.original_input
        options = AgentOptions()
        if request_input is not None:
            options = AgentOptions(input=request_input.model_copy(deep=True))
        language = detect_language(request_input.user_text if request_input else "")
        return await self.execute(
            plan, context.chat_id, options, get_language_instruction(language)
        )

    async def _execute_step(
        self,
        step: PlanStep,
        total_steps: int,
        context: AgentContextState,
        previous_steps: list[StepResult],
        system_instruction: str,
        max_iterations: int,
        settings: AgentSettings,
    ) -> StepResult:
        started = time.time()
        # Each step is judged on its own calls and media
        context.started_at = started
        context.request_call_offset = len(context.tool_calls)
        context.suppress_final_response = False

        state = ToolExecutionState()
        args = dict(step.parameters)
        tool_known = bool(step.tool) and self.registry.has(step.tool)
        if tool_known:
            schema_fields = self.registry.get(step.tool).args_schema.model_fields
            args = thread_artifacts(schema_fields, step.parameters, previous_steps)
            await self._send_ack(context.chat_id, ToolRequest(name=step.tool, args=args))
            state.acked_tools.add(step.tool)

        self.logger.info(
            f"[Multi-step] Step {step.step_number}/{total_steps}: {step.action} "
            f"(tool: {step.tool or 'none'})"
        )

        if tool_known and self._validates(step.tool, args):
            result = await self._invoke_directly(step.tool, args, context, state)
            step_result = self._step_from_tool_result(step, result, started, iterations=1)
        else:
            step_result = await self._run_step_loop(
                step,
                total_steps,
                context,
                previous_steps,
                system_instruction,
                max_iterations,
                settings,
                state,
                started,
            )

        user_named_provider = step.tool in PROVIDERS_BY_TOOL and step.parameters.get("provider")
        if not step_result.success and user_named_provider:
            step_result = await self._provider_fallback(step, args, context, step_result, started)
        return step_result

    def _validates(self, tool: str, args: dict[str, Any]) -> bool:
        try:
            self.registry.validate_args(tool, args)
        except ValidationError:
            return False
        return True

    async def _invoke_directly(
        self,
        tool: str,
        args: dict[str, Any],
        context: AgentContextState,
        state: ToolExecutionState,
    ) -> ToolResult:
        responses = await self.tool_handler.execute_batch(
            [ToolRequest(name=tool, args=args)], context, state
        )
        return ToolResult.model_validate(responses[0].result)

    async def _run_step_loop(
        self,
        step: PlanStep,
        total_steps: int,
        context: AgentContextState,
        previous_steps: list[StepResult],
        system_instruction: str,
        max_iterations: int,
        settings: AgentSettings,
        state: ToolExecutionState,
        started: float,
    ) -> StepResult:
        declarations = self.registry.list_declarations(only=[step.tool]) if step.tool else []
        session = self.decision_backend.start_session([], system_instruction, declarations)

        if step.tool:
            tool_instruction = f"Use the {step.tool} tool for this step."
            inputs = thread_artifacts(
                {field: None for field in ARTIFACT_FIELDS}, {}, previous_steps
            )
            for field, url in inputs.items():
                tool_instruction += f"\nUse this {field}: {url}"
        else:
            tool_instruction = "This step needs no tool. Answer with text only."

        prompt = MULTI_STEP_STEP_PROMPT.format(
            step_number=step.step_number,
            total_steps=total_steps,
            previous_steps=summarize_previous_steps(previous_steps),
            action=step.action,
            tool_instruction=tool_instruction,
        )

        result = await self.agent_loop.execute(
            session,
            prompt,
            context.chat_id,
            context,
            max_iterations,
            settings,
            expected_tool=step.tool,
            tool_state=state,
        )

        success = result.success
        error = result.error
        if step.tool:
            step_calls = [call for call in context.current_calls() if call.tool == step.tool]
            if step_calls:
                success = step_calls[-1].success
                error = None if success else step_calls[-1].error
            elif success:
                success = False
                error = f"Step {step.step_number} did not run {step.tool}"

        return StepResult(
            step_number=step.step_number,
            action=step.action,
            tool=step.tool,
            success=success,
            text=result.text,
            image_url=result.image_url,
            image_caption=result.image_caption,
            video_url=result.video_url,
            video_caption=result.video_caption,
            audio_url=result.audio_url,
            poll=result.poll,
            latitude=result.latitude,
            longitude=result.longitude,
            location_info=result.location_info,
            error=error,
            tools_used=result.tools_used,
            iterations=result.iterations,
            duration=time.time() - started,
        )

    async def _provider_fallback(
        self,
        step: PlanStep,
        args: dict[str, Any],
        context: AgentContextState,
        failed: StepResult,
        started: float,
    ) -> StepResult:
        """One more attempt with the next provider after the one the user named."""
        candidates = next_providers(step.tool, {step.parameters["provider"]})
        if not candidates:
            return failed

        fallback_args = {**args, "provider": candidates[0]}
        if not self._validates(step.tool, fallback_args):
            return failed

        self.logger.info(
            f"[Multi-step] Step {step.step_number} failed with {step.parameters['provider']}, "
            f"trying {candidates[0]}"
        )
        result = await self._invoke_directly(
            step.tool, fallback_args, context, ToolExecutionState()
        )
        fallback = self._step_from_tool_result(
            step, result, started, iterations=failed.iterations + 1
        )
        if fallback.success:
            return fallback
        return failed.model_copy(
            update={"iterations": fallback.iterations, "duration": fallback.duration}
        )

    @staticmethod
    def _step_from_tool_result(
        step: PlanStep, result: ToolResult, started: float, iterations: int
    ) -> StepResult:
        has_media = any([result.image_url, result.video_url, result.audio_url, result.poll])
        return StepResult(
            step_number=step.step_number,
            action=step.action,
            tool=step.tool,
            success=result.success,
            text="" if has_media or not result.success else (result.data or ""),
            image_url=result.image_url,
            image_caption=result.image_caption or "",
            video_url=result.video_url,
            video_caption=result.video_caption or "",
            audio_url=result.audio_url,
            poll=result.poll,
            latitude=result.latitude,
            longitude=result.longitude,
            location_info=result.location_info,
            error=result.error,
            tools_used=[step.tool] if step.tool else [],
            iterations=iterations,
            duration=time.time() - started,
        )

    @staticmethod
    def _error_already_notified(context: AgentContextState, step: PlanStep) -> bool:
        # Failed tool calls are reported by the tool handler as they happen
        if step.tool is None:
            return False
        return context.last_failed_call(frozenset([step.tool])) is not None

    def _build_result(
        self,
        plan: Plan,
        context: AgentContextState,
        completed: list[StepResult],
        failure: StepResult | None,
        iterations: int,
    ) -> AgentResult:
        texts = [f"Step {step.step_number}: {step.text}" for step in completed if step.text]

        def latest(field: str) -> Any:
            for step in reversed(completed):
                value = getattr(step, field)
                if value:
                    return value
            return None

        image_step = next((step for step in reversed(completed) if step.image_url), None)
        video_step = next((step for step in reversed(completed) if step.video_url), None)
        location_step = next(
            (step for step in reversed(completed) if step.latitude is not None), None
        )

        tools_used: list[str] = []
        for call in context.tool_calls:
            if call.tool not in tools_used:
                tools_used.append(call.tool)

        request_input = context.original_input
        self.logger.info(
            f"[Multi-step] Completed {len(completed)}/{len(plan.steps)} steps for {context.chat_id}"
        )
        return AgentResult(
            success=failure is None,
            text="\n\n".join(texts) or MULTI_STEP_DONE_MESSAGE,
            image_url=image_step.image_url if image_step else None,
            image_caption=image_step.image_caption if image_step else "",
            video_url=video_step.video_url if video_step else None,
            video_caption=video_step.video_caption if video_step else "",
            audio_url=latest("audio_url"),
            poll=latest("poll"),
            latitude=location_step.latitude if location_step else None,
            longitude=location_step.longitude if location_step else None,
            location_info=location_step.location_info if location_step else None,
            tool_calls=[call.model_copy() for call in context.tool_calls],
            tool_results={
                name: result.model_copy(deep=True)
                for name, result in context.previous_tool_results.items()
            },
            tools_used=tools_used,
            multi_step=True,
            already_sent=True,
            iterations=iterations,
            error=failure.error if failure else None,
            plan=plan.model_copy(deep=True),
            steps_completed=len(completed),
            total_steps=len(plan.steps),
            original_message_id=request_input.original_message_id if request_input else None,
        )

    async def _send_ack(self, chat_id: str, request: ToolRequest) -> None:
        try:
            await self.output.send_ack(chat_id, build_ack_message(request))
        except Exception as e:
            self.logger.warning(f"[Multi-step] Failed to send acknowledgement: {e}")

    async def _send_step(self, chat_id: str, step_result: StepResult) -> None:
        try:
            await self.output.send_step_result(chat_id, step_result)
        except Exception as e:
            self.logger.error(f"[Multi-step] Failed to send step {step_result.step_number}: {e}")

    async def _send_error(self, chat_id: str, step_result: StepResult) -> None:
        error = step_result.error or "Unknown error"
        message = error
        if not error.startswith("❌"):
            message = f"❌ Step {step_result.step_number} failed: {error}"
        try:
            await self.output.send_error(chat_id, message)
        except Exception as e:
            self.logger.error(f"[Multi-step] Failed to notify user about error: {e}")
