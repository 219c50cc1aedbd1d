"""Data models for agent state management."""

import time
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field

from conversational_agent.utils.constants import MAX_TRACKED_ASSETS

AssetKind = Literal["images", "videos", "audio", "polls"]


class Poll(BaseModel):
    """Poll payload produced by the poll tool."""

    question: str
    options: list[str]


class ToolResult(BaseModel):
    """Structured outcome of a single tool invocation."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    data: str | None = None
    error: str | None = None
    image_url: str | None = None
    image_caption: str | None = None
    video_url: str | None = None
    video_caption: str | None = None
    audio_url: str | None = None
    poll: Poll | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_info: str | None = None
    provider: str | None = None
    suppress_final_response: bool = False
    errors_already_sent: bool = False

    @classmethod
    def failure(cls, error: str, **extra: Any) -> "ToolResult":
        return cls(success=False, error=error, **extra)

    def as_payload(self) -> dict[str, Any]:
        """Compact JSON-safe payload fed back to the decision backend."""
        return self.model_dump(mode="json", exclude_none=True, exclude_defaults=False)


class ToolCallRecord(BaseModel):
    """One tool invocation issued while handling a request."""

    tool: str
    args: dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    error: str | None = None
    provider: str | None = None
    timestamp: float = Field(default_factory=time.time)


class AssetRecord(BaseModel):
    """A generated asset (image, video, audio clip or poll)."""

    url: str | None = None
    caption: str = ""
    prompt: str | None = None
    provider: str | None = None
    poll: Poll | None = None
    timestamp: float = Field(default_factory=time.time)


class GeneratedAssets(BaseModel):
    """Assets produced for a chat, most recent last."""

    images: list[AssetRecord] = Field(default_factory=list)
    videos: list[AssetRecord] = Field(default_factory=list)
    audio: list[AssetRecord] = Field(default_factory=list)
    polls: list[AssetRecord] = Field(default_factory=list)

    def add(self, kind: AssetKind, record: AssetRecord) -> None:
        records: list[AssetRecord] = getattr(self, kind)
        records.append(record)
        if len(records) > MAX_TRACKED_ASSETS:
            del records[: len(records) - MAX_TRACKED_ASSETS]

    def latest(self, kind: AssetKind) -> AssetRecord | None:
        records: list[AssetRecord] = getattr(self, kind)
        return records[-1] if records else None

    def latest_since(self, kind: AssetKind, since: float) -> AssetRecord | None:
        """Most recent asset of ``kind`` created at or after ``since``."""
        record = self.latest(kind)
        return record if record and record.timestamp >= since else None

    def latest_url(self, kind: AssetKind) -> str | None:
        record = self.latest(kind)
        return record.url if record else None

    def is_empty(self) -> bool:
        return not (self.images or self.videos or self.audio or self.polls)


class RequestInput(BaseModel):
    """Normalized inbound message, as produced by the message handler."""

    model_config = ConfigDict(extra="allow")

    user_text: str = ""
    image_url: str | None = None
    video_url: str | None = None
    audio_url: str | None = None
    quoted_context: dict[str, Any] | None = None
    original_message_id: str | None = None
    audio_already_transcribed: bool = False

    @property
    def has_media(self) -> bool:
        return bool(self.image_url or self.video_url or self.audio_url)


class AgentOptions(BaseModel):
    """Per-request options recognized by the orchestrator."""

    use_conversation_history: bool = True
    max_iterations: int | None = None
    input: RequestInput = Field(default_factory=RequestInput)
    last_command: dict[str, Any] | None = None


class AgentContextState(BaseModel):
    """Per-chat working memory for one request."""

    chat_id: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    previous_tool_results: dict[str, ToolResult] = Field(default_factory=dict)
    generated_assets: GeneratedAssets = Field(default_factory=GeneratedAssets)
    original_input: RequestInput | None = None
    quoted_context: dict[str, Any] | None = None
    last_command: dict[str, Any] | None = None
    suppress_final_response: bool = False
    started_at: float = Field(default_factory=time.time)
    # Index of the first tool call issued by the current request
    request_call_offset: int = 0

    def current_calls(self) -> list[ToolCallRecord]:
        """Tool calls issued by the current request, oldest first."""
        return self.tool_calls[self.request_call_offset :]

    def last_failed_call(self, tools: frozenset[str] | None = None) -> ToolCallRecord | None:
        """Most recent failed call of this request, optionally restricted to ``tools``."""
        for call in reversed(self.current_calls()):
            if call.success:
                continue
            if tools is None or call.tool in tools:
                return call
        return None


class PlanStep(BaseModel):
    """One step of a multi-step plan."""

    step_number: int
    tool: str | None = None
    action: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class Plan(BaseModel):
    """Planner classification of a request."""

    is_multi_step: bool = False
    steps: list[PlanStep] = Field(default_factory=list)
    fallback: bool = False
    reasoning: str | None = None

    @property
    def is_executable_multi_step(self) -> bool:
        """Multi-step only with at least two steps and a confident planner."""
        return self.is_multi_step and not self.fallback and len(self.steps) >= 2

    @classmethod
    def single_step(cls, fallback: bool = False) -> "Plan":
        return cls(is_multi_step=False, fallback=fallback)


class HistoryTurn(BaseModel):
    """A stored conversation turn."""

    speaker: Literal["user", "assistant"]
    text: str


class HistoryStrategyResult(BaseModel):
    """History prepared for the decision backend."""

    should_load_history: bool = True
    history: list[HistoryTurn] = Field(default_factory=list)
    system_context_addition: str = ""


class AgentResult(BaseModel):
    """Terminal output of single-step or multi-step execution."""

    success: bool
    text: str = ""
    image_url: str | None = None
    image_caption: str = ""
    video_url: str | None = None
    video_caption: str = ""
    audio_url: str | None = None
    poll: Poll | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_info: str | None = None
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    tool_results: dict[str, ToolResult] = Field(default_factory=dict)
    tools_used: list[str] = Field(default_factory=list)
    multi_step: bool = False
    already_sent: bool = False
    iterations: int = 0
    timeout: bool = False
    iteration_limit_reached: bool = False
    error: str | None = None
    plan: Plan | None = None
    steps_completed: int | None = None
    total_steps: int | None = None
    original_message_id: str | None = None
    suppressed_final_response: bool = False
    is_retry_execution: bool = False


class StepResult(BaseModel):
    """Result of executing a single plan step."""

    step_number: int
    action: str
    tool: str | None = None
    success: bool
    text: str = ""
    image_url: str | None = None
    image_caption: str = ""
    video_url: str | None = None
    video_caption: str = ""
    audio_url: str | None = None
    poll: Poll | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_info: str | None = None
    error: str | None = None
    tools_used: list[str] = Field(default_factory=list)
    iterations: int = 0
    duration: float = 0.0  # Execution time in seconds


class PlanExecutionState(TypedDict):
    """State managed by LangGraph while the steps of a plan run."""

    current_step_index: int  # Index of the next step to execute
    past_steps: list[StepResult]  # Completed steps, in order
    failure: StepResult | None  # Step that ended the plan early
    iterations_used: int  # Decision rounds spent across all steps


class SavedCommand(BaseModel):
    """Retry record for the last retryable action of a chat."""

    tool: str
    is_multi_step: bool = False
    tool_args: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    plan: Plan | None = None
    steps_completed: int = 0
    total_steps: int = 0
    prompt: str = ""
    failed: bool = False
    normalized: RequestInput = Field(default_factory=RequestInput)
    image_url: str | None = None
    video_url: str | None = None
    audio_url: str | None = None
    saved_at: float = Field(default_factory=time.time)
