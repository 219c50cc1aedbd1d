"""Planner module for classifying requests as single-step or multi-step."""

import logging
from typing import Any, Protocol

from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, SecretStr

from conversational_agent.interfaces.langchain.agent_state import Plan, PlanStep
from conversational_agent.prompts import PLANNER_PROMPT


class PlanStepOutput(BaseModel):
    """Structured output schema for one planned step."""

    step_number: int | None = None
    tool: str | None = None
    action: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class PlanOutput(BaseModel):
    """Structured output schema for plan classification."""

    is_multi_step: bool
    steps: list[PlanStepOutput] = Field(default_factory=list)
    reasoning: str | None = None


def normalize_plan_output(plan_output: PlanOutput) -> Plan:
    """Turn raw planner output into a Plan.

    Fewer than two steps is a single-step plan. Missing step numbers and
    actions are filled in from the step position.
    """
    if not plan_output.is_multi_step or len(plan_output.steps) < 2:
        return Plan(is_multi_step=False, reasoning=plan_output.reasoning)

    steps = [
        PlanStep(
            step_number=step.step_number or index + 1,
            tool=step.tool or None,
            action=step.action or f"Step {index + 1}",
            parameters=step.parameters or {},
        )
        for index, step in enumerate(plan_output.steps)
    ]
    return Plan(is_multi_step=True, steps=steps, reasoning=plan_output.reasoning)


class Planner(Protocol):
    async def classify(self, text: str) -> Plan: ...


class LangChainPlanner:
    """Classifies a request with a structured-output chat model."""

    def __init__(
        self,
        api_key: str,
        available_tools: list[dict[str, Any]],
        model: str = "gpt-4o",
    ):
        self.api_key = api_key
        self.available_tools = available_tools
        self.model = model
        self.logger = logging.getLogger(__name__)

    async def classify(self, text: str) -> Plan:
        """Classify ``text``. Any failure yields ``Plan(fallback=True)``.

        Args:
            text: Detection text, optionally prefixed with media markers

        Returns:
            Plan with is_multi_step and the normalized steps
        """
        try:
            llm = ChatOpenAI(
                api_key=SecretStr(self.api_key), model=self.model, temperature=0
            )
            structured_llm = llm.with_structured_output(PlanOutput)

            prompt = ChatPromptTemplate.from_messages(
                [
                    ("system", PLANNER_PROMPT),
                    ("user", "{task}"),
                ]
            )

            tools_description = "\n".join(
                f"- {tool['name']}: {tool['description']}"
                for tool in self.available_tools
            )

            chain = prompt | structured_llm
            plan_output = await chain.ainvoke(
                {"task": text, "tools_description": tools_description}
            )

            if not isinstance(plan_output, PlanOutput):
                raise TypeError(f"Expected PlanOutput, got {type(plan_output)}")
        except Exception as e:
            self.logger.warning(f"[Planner] Failed, falling back to single-step: {e}")
            return Plan.single_step(fallback=True)

        plan = normalize_plan_output(plan_output)
        if plan.is_multi_step:
            self.logger.info(f"[Planner] Multi-step plan with {len(plan.steps)} steps")
        return plan
