"""Request orchestration: planning, bootstrap fan-out and the timed single-step run."""

import asyncio
import logging

from conversational_agent.agent.agent_loop import AgentLoop
from conversational_agent.agent.context import AgentContextManager
from conversational_agent.agent.history_strategy import HistoryStrategy
from conversational_agent.agent.multi_step import MultiStepExecutor
from conversational_agent.agent.result_processor import current_tool_results, tools_used
from conversational_agent.config import AgentSettings
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentOptions,
    AgentResult,
    Plan,
    RequestInput,
)
from conversational_agent.interfaces.langchain.decision_backend import DecisionBackend
from conversational_agent.interfaces.langchain.planner import Planner
from conversational_agent.prompts import AGENT_SYSTEM_PROMPT, MEDIA_MARKERS
from conversational_agent.storage.base import PreferenceStore
from conversational_agent.tools.registry import ToolRegistry
from conversational_agent.utils.constants import TIMEOUT_MESSAGE
from conversational_agent.utils.text import (
    detect_language,
    extract_detection_text,
    get_language_instruction,
    is_simple_request,
)


def build_planner_text(detection_text: str, request_input: RequestInput) -> str:
    """Detection text prefixed with markers for attached media."""
    markers = []
    if request_input.image_url:
        markers.append(MEDIA_MARKERS["image"])
    if request_input.video_url:
        markers.append(MEDIA_MARKERS["video"])
    if request_input.audio_url:
        markers.append(MEDIA_MARKERS["audio"])
    return " ".join([*markers, detection_text]).strip()


def build_system_instruction(
    language_instruction: str,
    preferences: dict[str, str],
    system_context_addition: str = "",
) -> str:
    parts = [AGENT_SYSTEM_PROMPT, language_instruction]
    if preferences:
        lines = "\n".join(f"- {key}: {value}" for key, value in preferences.items())
        parts.append(f"User preferences:\n{lines}")
    instruction = "\n\n".join(part for part in parts if part)
    return instruction + system_context_addition


class AgentOrchestrator:
    """Entry point for one request.

    Planning, context load, history load and preference load start together.
    A multi-step plan goes to the MultiStepExecutor and the rest of the
    bootstrap is abandoned. Otherwise the agent loop runs against the
    configured timeout.
    """

    def __init__(
        self,
        planner: Planner,
        decision_backend: DecisionBackend,
        registry: ToolRegistry,
        agent_loop: AgentLoop,
        multi_step_executor: MultiStepExecutor,
        context_manager: AgentContextManager,
        history_strategy: HistoryStrategy,
        preference_store: PreferenceStore,
        settings: AgentSettings,
    ):
        self.planner = planner
        self.decision_backend = decision_backend
        self.registry = registry
        self.agent_loop = agent_loop
        self.multi_step_executor = multi_step_executor
        self.context_manager = context_manager
        self.history_strategy = history_strategy
        self.preference_store = preference_store
        self.settings = settings
        # Abandoned bootstrap tasks and loops detached on timeout
        self._background: set[asyncio.Task] = set()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self, request_text: str, chat_id: str, options: AgentOptions | None = None
    ) -> AgentResult:
        """Handle one request.

        Args:
            request_text: Contextual prompt built for the request
            chat_id: Chat the request belongs to
            options: Per-request options

        Returns:
            AgentResult of the single-step or multi-step run

        Raises:
            DecisionBackendError: If the decision backend cannot be reached
        """
        options = options or AgentOptions()
        settings = self.settings
        memory_enabled = settings.context_memory_enabled
        max_iterations = options.max_iterations or settings.max_iterations

        detection_text = extract_detection_text(request_text)
        language_instruction = get_language_instruction(detect_language(detection_text))

        base_context = self.context_manager.create_initial_context(chat_id, options)
        planning_task = asyncio.create_task(self._plan(detection_text, options.input))
        context_task = asyncio.create_task(
            self.context_manager.load_previous_context(chat_id, base_context, memory_enabled)
        )
        history_task = asyncio.create_task(
            self.history_strategy.process_history(
                chat_id, request_text, options.use_conversation_history
            )
        )
        preferences_task = asyncio.create_task(self._load_preferences(chat_id, memory_enabled))

        plan = await planning_task
        if plan.is_executable_multi_step:
            self.logger.info(
                f"[Agent] Multi-step plan detected with {len(plan.steps)} steps ({chat_id})"
            )
            self._abandon(context_task, history_task, preferences_task)
            return await self.multi_step_executor.execute(
                plan, chat_id, options, language_instruction, settings
            )
        if plan.is_multi_step:
            self.logger.warning(
                f"[Agent] Plan with {len(plan.steps)} step(s) coerced to single-step"
            )

        context, history_result, preferences = await asyncio.gather(
            context_task, history_task, preferences_task
        )

        system_instruction = build_system_instruction(
            language_instruction, preferences, history_result.system_context_addition
        )
        session = self.decision_backend.start_session(
            history_result.history, system_instruction, self.registry.list_declarations()
        )

        loop_task = asyncio.create_task(
            self.agent_loop.execute(
                session, request_text, chat_id, context, max_iterations, settings
            )
        )
        done, _ = await asyncio.wait({loop_task}, timeout=settings.timeout_seconds)

        if loop_task not in done:
            self.logger.warning(
                f"[Agent] Timeout after {settings.timeout_seconds}s ({chat_id})"
            )
            self._detach(loop_task)
            return self._timeout_result(context)

        result = loop_task.result()
        if result.success:
            await self.context_manager.save_context(chat_id, context, memory_enabled)
        return result

    async def shutdown(self) -> None:
        """Cancel and await detached work."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    async def _plan(self, detection_text: str, request_input: RequestInput) -> Plan:
        if is_simple_request(detection_text, request_input.has_media):
            self.logger.debug("[Agent] Simple request, skipping planner")
            return Plan.single_step()

        try:
            return await self.planner.classify(build_planner_text(detection_text, request_input))
        except Exception as e:
            self.logger.warning(f"[Agent] Planner failed, using single-step: {e}")
            return Plan.single_step(fallback=True)

    async def _load_preferences(self, chat_id: str, memory_enabled: bool) -> dict[str, str]:
        if not memory_enabled:
            return {}
        try:
            return await self.preference_store.get(chat_id)
        except Exception as e:
            self.logger.warning(f"[Agent] Failed to load preferences for {chat_id}: {e}")
            return {}

    def _abandon(self, *tasks: asyncio.Task) -> None:
        for task in tasks:
            self._detach(task)

    def _detach(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._consume_background)

    def _consume_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning(f"[Agent] Background task failed: {error}")
        else:
            self.logger.debug("[Agent] Background task finished, result discarded")

    @staticmethod
    def _timeout_result(context: AgentContextState) -> AgentResult:
        request_input = context.original_input
        return AgentResult(
            success=False,
            timeout=True,
            error=TIMEOUT_MESSAGE,
            tool_calls=[call.model_copy() for call in context.current_calls()],
            tool_results=current_tool_results(context),
            tools_used=tools_used(context),
            original_message_id=request_input.original_message_id if request_input else None,
        )
