"""Conversation history loading for the decision backend."""

import logging
import re

from conversational_agent.interfaces.langchain.agent_state import (
    HistoryStrategyResult,
    HistoryTurn,
)
from conversational_agent.storage.base import MessageStore
from conversational_agent.utils.constants import ACK_MAX_LENGTH, ACK_PREFIXES, ACK_SUFFIXES

DEFAULT_HISTORY_WINDOW = 20

# Requests that carry everything they need
_SELF_CONTAINED_PATTERNS = (
    re.compile(
        r"^#?\s*(create|generate|draw|make|צור|תצור|צייר)\s+(an?\s+)?"
        r"(image|picture|video|song|music|poll|drawing|תמונה|וידאו|סרטון|שיר|סקר|ציור)",
        re.IGNORECASE,
    ),
    re.compile(r"^#?\s*(image|picture|video|song|תמונה|וידאו|שיר)\s+(of|about|של|על)\s+", re.IGNORECASE),
    re.compile(r"^#?\s*(send|שלח|תשלח)\s+(an?\s+)?(image|video|link|location|תמונה|וידאו|קישור|מיקום)", re.IGNORECASE),
    re.compile(r"^#?\s*(what time|what date|what day|מה השעה|מה התאריך)", re.IGNORECASE),
    re.compile(r"^#?\s*(schedule|remind|set reminder|תזמן|הזכר|תזכיר)\s+", re.IGNORECASE),
)

# Continuations and references that only make sense with history
_NEEDS_HISTORY_PATTERNS = (
    re.compile(r"^#?\s*(yes|no|ok|okay|sure|right|exactly|כן|לא|אוקי|סבבה|בדיוק)\.?$", re.IGNORECASE),
    re.compile(r"^#?\s*(more|another|continue|give me more|עוד|תמשיך|עוד אחד)$", re.IGNORECASE),
    re.compile(r"^#?\s*(again|try again|repeat|שוב|נסה שוב|חזור)\s*[.!]?$", re.IGNORECASE),
    re.compile(r"(what i said|earlier|before|previous|this one|the same|like the|similar to)", re.IGNORECASE),
    re.compile(r"(מה שאמרתי|קודם|הקודם|אותו דבר|כמו ה)"),
)


def is_acknowledgement(text: str) -> bool:
    """True for formulaic "working on it" assistant messages."""
    stripped = text.strip()
    if not stripped:
        return False
    if any(suffix in stripped for suffix in ACK_SUFFIXES):
        return True
    return len(stripped) <= ACK_MAX_LENGTH and stripped.startswith(ACK_PREFIXES)


def filter_acknowledgements(turns: list[HistoryTurn]) -> list[HistoryTurn]:
    """Drop assistant acknowledgement turns. Idempotent."""
    return [
        turn
        for turn in turns
        if not (turn.speaker == "assistant" and is_acknowledgement(turn.text))
    ]


def is_self_contained_request(text: str) -> bool:
    """Heuristic: the request needs no earlier conversation to be understood."""
    stripped = (text or "").strip()
    if not stripped:
        return False
    if any(pattern.search(stripped) for pattern in _NEEDS_HISTORY_PATTERNS):
        return False
    return any(pattern.search(stripped) for pattern in _SELF_CONTAINED_PATTERNS)


class HistoryStrategy:
    """Loads recent turns, drops acknowledgements and repairs the leading turn."""

    def __init__(self, message_store: MessageStore, window: int = DEFAULT_HISTORY_WINDOW):
        self.message_store = message_store
        self.window = window
        self.logger = logging.getLogger(__name__)

    async def process_history(
        self, chat_id: str, request_text: str, should_use_history: bool
    ) -> HistoryStrategyResult:
        """Prepare history for the decision backend.

        The returned history is oldest first and starts with a user turn (or
        is empty). Leading assistant turns go to ``system_context_addition``.
        A failed fetch yields an empty history with ``should_load_history`` set.
        """
        if not should_use_history:
            self.logger.info("[HistoryStrategy] Conversation history disabled for this request")
            return HistoryStrategyResult(should_load_history=False)

        try:
            turns = await self.message_store.get_recent(chat_id, self.window)
        except Exception as e:
            self.logger.warning(f"[HistoryStrategy] Failed to load history: {e}")
            return HistoryStrategyResult(should_load_history=True)

        if not turns:
            self.logger.debug("[HistoryStrategy] No previous messages found")
            return HistoryStrategyResult(should_load_history=True)

        history = filter_acknowledgements(turns)
        filtered = len(turns) - len(history)
        if filtered:
            self.logger.debug(f"[HistoryStrategy] Filtered {filtered} acknowledgement messages")

        orphaned = []
        while history and history[0].speaker == "assistant":
            orphaned.append(history.pop(0).text)

        system_context_addition = ""
        if orphaned:
            self.logger.info("[HistoryStrategy] Moved leading assistant messages to system context")
            bullets = "".join(f'\n- "{text}"' for text in orphaned)
            system_context_addition = (
                "\n\nIMPORTANT CONTEXT: The last thing(s) you said to the user were:"
                f"{bullets}\nThe user is responding to this."
            )

        self.logger.info(f"[HistoryStrategy] Using {len(history)} previous messages")
        return HistoryStrategyResult(
            should_load_history=True,
            history=history,
            system_context_addition=system_context_addition,
        )
