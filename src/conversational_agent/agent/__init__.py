"""Agent execution engine: orchestration, loops, multi-step plans and retry records."""

from conversational_agent.agent.agent_loop import AgentLoop, LoopState
from conversational_agent.agent.command_saver import CommandSaver
from conversational_agent.agent.context import AgentContextManager
from conversational_agent.agent.history_strategy import HistoryStrategy
from conversational_agent.agent.multi_step import MultiStepExecutor
from conversational_agent.agent.orchestrator import AgentOrchestrator
from conversational_agent.agent.output import LoggingOutputChannel, OutputChannel
from conversational_agent.agent.result_processor import ResultProcessor
from conversational_agent.agent.router import AgentRouter
from conversational_agent.agent.tool_handler import ToolHandler

__all__ = [
    "AgentOrchestrator",
    "AgentRouter",
    "AgentLoop",
    "LoopState",
    "MultiStepExecutor",
    "CommandSaver",
    "AgentContextManager",
    "HistoryStrategy",
    "ToolHandler",
    "ResultProcessor",
    # Output
    "OutputChannel",
    "LoggingOutputChannel",
]
