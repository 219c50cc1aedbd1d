"""Single-step execution loop: decide, run tools, feed results back, repeat."""

import logging
from typing import Any, Literal, TypedDict

from langgraph.graph import END, StateGraph

from conversational_agent.agent.result_processor import ResultProcessor
from conversational_agent.agent.tool_handler import ToolExecutionState, ToolHandler
from conversational_agent.config import AgentSettings
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    AgentResult,
)
from conversational_agent.interfaces.langchain.decision_backend import (
    Decision,
    DecisionSession,
    ToolResponse,
)


class LoopState(TypedDict):
    """State managed by LangGraph while one decision session runs."""

    decision: Decision | None  # Latest decision of the session
    responses: list[ToolResponse] | None  # Results of the last tool round
    iterations: int  # Decisions counted against the budget
    partial_text: str | None  # Latest text the session produced
    expected_tool_ran: bool  # Plan step mode: the step's tool has run
    status: Literal["tools", "final", "limit"]


class AgentLoop:
    """Drives one decision session until a final answer or the iteration cap.

    Each round the session returns either a final answer or tool requests.
    Requested tools run concurrently and all finish before the next round.
    Reaching the cap returns ``iteration_limit_reached`` and never raises.
    """

    def __init__(self, tool_handler: ToolHandler, result_processor: ResultProcessor | None = None):
        self.tool_handler = tool_handler
        self.result_processor = result_processor or ResultProcessor()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self,
        session: DecisionSession,
        contextual_prompt: str,
        chat_id: str,
        context: AgentContextState,
        max_iterations: int,
        settings: AgentSettings,
        expected_tool: str | None = None,
        tool_state: ToolExecutionState | None = None,
    ) -> AgentResult:
        """Run the loop.

        Args:
            session: Decision session holding the running exchange
            contextual_prompt: User turn, including media and quote markers
            chat_id: Chat the request belongs to
            context: Request context, mutated as tools run
            max_iterations: Maximum number of decision rounds
            settings: Engine settings
            expected_tool: Restrict tool calls to this tool and end the loop
                one round after it ran (plan step mode)
            tool_state: Bookkeeping shared with earlier work of the same request

        Returns:
            AgentResult for the final answer or the exhausted budget
        """
        graph = self._create_graph(
            session,
            contextual_prompt,
            chat_id,
            context,
            max_iterations,
            expected_tool,
            tool_state or ToolExecutionState(),
        )
        initial: LoopState = {
            "decision": None,
            "responses": None,
            "iterations": 0,
            "partial_text": None,
            "expected_tool_ran": False,
            "status": "tools",
        }
        # decide and tools alternate, plus the closing decision
        final_state = await graph.ainvoke(
            initial, config={"recursion_limit": 2 * max_iterations + 5}
        )

        decision = final_state["decision"]
        iterations = final_state["iterations"]
        if final_state["status"] == "final":
            text = decision.final_text if decision.is_final else final_state["partial_text"]
            self.logger.info(f"[Agent] Completed in {iterations} iterations ({chat_id})")
            return self.result_processor.process_result(text, context, iterations)

        self.logger.warning(f"[Agent] Max iterations ({max_iterations}) reached ({chat_id})")
        return self.result_processor.iteration_limit_result(
            final_state["partial_text"], context, iterations
        )

    def _create_graph(
        self,
        session: DecisionSession,
        contextual_prompt: str,
        chat_id: str,
        context: AgentContextState,
        max_iterations: int,
        expected_tool: str | None,
        tool_state: ToolExecutionState,
    ) -> Any:
        graph = StateGraph(LoopState)
        allowed_tools = {expected_tool} if expected_tool else None

        # --- Node Functions ---

        async def decide_node(state: LoopState) -> LoopState:
            """Send the prompt or the last tool results and classify the answer."""
            responses = state["responses"]
            decision = await session.send(contextual_prompt if responses is None else responses)

            counted = state["iterations"] < max_iterations
            iterations = state["iterations"] + 1 if counted else state["iterations"]
            finished = decision.is_final or state["expected_tool_ran"]

            partial_text = state["partial_text"]
            if (counted or finished) and decision.final_text:
                partial_text = decision.final_text

            if finished:
                status: Literal["tools", "final", "limit"] = "final"
            elif counted:
                status = "tools"
                self.logger.debug(
                    f"[Agent] Iteration {iterations}/{max_iterations} ({chat_id})"
                )
            else:
                status = "limit"

            return {
                **state,
                "decision": decision,
                "iterations": iterations,
                "partial_text": partial_text,
                "status": status,
            }

        async def tools_node(state: LoopState) -> LoopState:
            """Run every requested tool of the round."""
            decision = state["decision"]
            assert decision is not None
            responses = await self.tool_handler.execute_batch(
                decision.tool_requests, context, tool_state, allowed_tools
            )
            expected_tool_ran = state["expected_tool_ran"] or bool(
                expected_tool
                and any(call.tool == expected_tool for call in context.current_calls())
            )
            return {**state, "responses": responses, "expected_tool_ran": expected_tool_ran}

        # --- Routing Functions ---

        def route_after_decide(state: LoopState) -> str:
            return state["status"]

        # --- Build Graph ---

        graph.add_node("decide", decide_node)
        graph.add_node("tools", tools_node)
        graph.set_entry_point("decide")

        graph.add_conditional_edges(
            "decide",
            route_after_decide,
            {"tools": "tools", "final": END, "limit": END},
        )
        graph.add_edge("tools", "decide")

        return graph.compile()
