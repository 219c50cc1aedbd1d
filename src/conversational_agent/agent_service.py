"""Assembles the agent engine from settings, credentials and stores."""

import logging

from conversational_agent.agent.agent_loop import AgentLoop
from conversational_agent.agent.command_saver import CommandSaver
from conversational_agent.agent.context import AgentContextManager
from conversational_agent.agent.history_strategy import HistoryStrategy
from conversational_agent.agent.multi_step import MultiStepExecutor
from conversational_agent.agent.orchestrator import AgentOrchestrator
from conversational_agent.agent.output import LoggingOutputChannel, OutputChannel
from conversational_agent.agent.router import AgentRouter
from conversational_agent.agent.tool_handler import ToolHandler
from conversational_agent.config import AgentSettings
from conversational_agent.core import MediaGenerationClient, WebSearchClient
from conversational_agent.interfaces.langchain.agent_state import (
    AgentResult,
    HistoryTurn,
    RequestInput,
)
from conversational_agent.interfaces.langchain.decision_backend import (
    DecisionBackend,
    LangChainDecisionBackend,
)
from conversational_agent.interfaces.langchain.planner import LangChainPlanner, Planner
from conversational_agent.key_storage.key_manager import APIKeyManager
from conversational_agent.storage import (
    AgentStores,
    JSONFileCommandStore,
    JSONFileContextStore,
)
from conversational_agent.tools import create_default_registry
from conversational_agent.tools.registry import ToolName
from conversational_agent.tools.retry import RetryLastCommandTool


def build_stores(settings: AgentSettings) -> AgentStores:
    if settings.store_backend == "file":
        return AgentStores(contexts=JSONFileContextStore(), commands=JSONFileCommandStore())
    return AgentStores()


class AgentService:
    """Owns one engine instance and its lifecycle.

    Collaborators can be injected; whatever is missing is built from the
    settings. The OpenAI key is only required when the planner or the
    decision backend has to be built here.
    """

    def __init__(
        self,
        settings: AgentSettings | None = None,
        stores: AgentStores | None = None,
        output: OutputChannel | None = None,
        planner: Planner | None = None,
        decision_backend: DecisionBackend | None = None,
        media: MediaGenerationClient | None = None,
        search_client: WebSearchClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or AgentSettings.from_env()
        self.stores = stores or build_stores(self.settings)
        self.output: OutputChannel = output or LoggingOutputChannel()

        media = media or MediaGenerationClient(
            self.settings.media_api_base,
            api_key=self.settings.media_api_key,
            timeout=self.settings.media_request_timeout,
        )
        search_client = search_client or WebSearchClient(
            self.settings.search_api_base, api_key=self.settings.search_api_key
        )
        self.registry = create_default_registry(
            media,
            search_client,
            self.stores.messages,
            self.stores.preferences,
            self.stores.commands,
        )

        if planner is None or decision_backend is None:
            api_key = APIKeyManager().require_api_key()
            planner = planner or LangChainPlanner(
                api_key, self.registry.list_declarations(), model=self.settings.planner_model
            )
            decision_backend = decision_backend or LangChainDecisionBackend(
                api_key, model=self.settings.model
            )

        tool_handler = ToolHandler(self.registry, self.output)
        agent_loop = AgentLoop(tool_handler)
        self.multi_step_executor = MultiStepExecutor(
            self.registry, decision_backend, agent_loop, self.output, self.settings
        )

        retry_tool = self.registry.get(ToolName.RETRY_LAST_COMMAND)
        if isinstance(retry_tool, RetryLastCommandTool):
            retry_tool.bind_plan_runner(self.multi_step_executor.run_plan)

        self.orchestrator = AgentOrchestrator(
            planner=planner,
            decision_backend=decision_backend,
            registry=self.registry,
            agent_loop=agent_loop,
            multi_step_executor=self.multi_step_executor,
            context_manager=AgentContextManager(self.stores.contexts),
            history_strategy=HistoryStrategy(self.stores.messages, self.settings.history_window),
            preference_store=self.stores.preferences,
            settings=self.settings,
        )
        self.command_saver = CommandSaver(self.stores.commands)
        self.router = AgentRouter(self.orchestrator, self.command_saver)

    def start(self) -> None:
        """Start store maintenance tasks. Call from inside the event loop."""
        self.stores.start()

    async def handle_message(
        self,
        chat_id: str,
        request_input: RequestInput,
        use_conversation_history: bool | None = None,
    ) -> AgentResult:
        """Run one inbound message through the engine and record the exchange."""
        result = await self.router.route_to_agent(
            request_input, chat_id, use_conversation_history
        )
        await self._record_turns(chat_id, request_input, result)
        return result

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()
        await self.stores.shutdown()
        self.logger.info("Agent service shut down")

    async def _record_turns(
        self, chat_id: str, request_input: RequestInput, result: AgentResult
    ) -> None:
        try:
            if request_input.user_text:
                await self.stores.messages.append(
                    chat_id, HistoryTurn(speaker="user", text=request_input.user_text)
                )
            if result.text and not result.already_sent:
                await self.stores.messages.append(
                    chat_id, HistoryTurn(speaker="assistant", text=result.text)
                )
        except Exception as e:
            self.logger.warning(f"Failed to record conversation turns for {chat_id}: {e}")
