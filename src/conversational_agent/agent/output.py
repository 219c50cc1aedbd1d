"""Output channel: where acknowledgements and incremental results are delivered."""

import logging
from typing import Protocol

from conversational_agent.interfaces.langchain.agent_state import StepResult
from conversational_agent.utils.text import truncate


class OutputChannel(Protocol):
    async def send_ack(self, chat_id: str, text: str) -> None: ...

    async def send_text(self, chat_id: str, text: str) -> None: ...

    async def send_step_result(self, chat_id: str, step: StepResult) -> None: ...

    async def send_error(self, chat_id: str, error: str) -> None: ...


class LoggingOutputChannel:
    """Output channel that only logs. Used when no transport is wired in."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

    async def send_ack(self, chat_id: str, text: str) -> None:
        self.logger.info(f"[Output] {chat_id} ack: {text}")

    async def send_text(self, chat_id: str, text: str) -> None:
        self.logger.info(f"[Output] {chat_id} text: {truncate(text, 200)}")

    async def send_step_result(self, chat_id: str, step: StepResult) -> None:
        media = step.image_url or step.video_url or step.audio_url or ""
        status = "ok" if step.success else f"failed ({step.error})"
        self.logger.info(
            f"[Output] {chat_id} step {step.step_number} {status}: "
            f"{truncate(step.text, 120)} {media}".rstrip()
        )

    async def send_error(self, chat_id: str, error: str) -> None:
        self.logger.warning(f"[Output] {chat_id} error: {error}")
