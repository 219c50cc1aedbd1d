"""Pure text helpers: language detection, fast-path classification and cleanup."""

import json
import re
from typing import Any, Literal

from conversational_agent.utils.constants import SAVED_RESULT_KEYS

LanguageCode = Literal["he", "en", "ar", "ru"]

_HEBREW = re.compile(r"[\u0590-\u05FF]")
_ENGLISH = re.compile(r"[a-zA-Z]")
_ARABIC = re.compile(r"[\u0600-\u06FF]")
_RUSSIAN = re.compile(r"[\u0400-\u04FF]")

LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "he": "Always answer in Hebrew.",
    "en": "Always answer in English.",
    "ar": "Always answer in Arabic.",
    "ru": "Always answer in Russian.",
}

# Fast-path classification
SIMPLE_REQUEST_MAX_LENGTH = 80

_CREATION_VERBS = re.compile(
    r"\b(create|generate|draw|make|paint|animate|render|compose|imagine|design|"
    r"edit|convert|turn|transform|speak|say|sing|record|search|find|look\s+up|"
    r"translate|send|schedule|remind|retry|again)\b"
    r"|(צור|תצור|ליצור|צייר|תצייר|הפוך|תהפוך|שלח|תשלח|חפש|תחפש|תרגם|ערוך)",
    re.IGNORECASE,
)
_MEDIA_REFERENCES = re.compile(
    r"\b(image|images|picture|pic|photo|video|clip|movie|song|music|audio|voice|"
    r"gif|poll|sticker|drawing|location|link)\b"
    r"|(תמונה|תמונות|וידאו|סרטון|שיר|מוזיקה|אודיו|הקלטה|סקר|מיקום|קישור)",
    re.IGNORECASE,
)
_SEQUENCING = re.compile(
    r"\b(then|after\s+that|afterwards|followed\s+by|and\s+also|next)\b|(אחר\s+כך|ואז|ולאחר\s+מכן)",
    re.IGNORECASE,
)

_STEP_MARKERS = (
    re.compile(r"✅\s*Step\s+\d+/\d+\s+completed[.!]?\s*", re.IGNORECASE),
    re.compile(r"Now proceeding to Step \d+/\d+\.{3,}", re.IGNORECASE),
)
_JSON_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


def detect_language(text: str | None) -> LanguageCode:
    """Detect the dominant script of ``text``.

    Ties resolve in the order Hebrew, English, Arabic, Russian. Empty input or
    input without letters defaults to Hebrew.
    """
    if not text:
        return "he"

    counts: dict[LanguageCode, int] = {
        "he": len(_HEBREW.findall(text)),
        "en": len(_ENGLISH.findall(text)),
        "ar": len(_ARABIC.findall(text)),
        "ru": len(_RUSSIAN.findall(text)),
    }
    if sum(counts.values()) == 0:
        return "he"

    best = max(counts.values())
    for code in ("he", "en", "ar", "ru"):
        if counts[code] == best:
            return code
    return "he"


def get_language_instruction(language: str) -> str:
    """Instruction appended to the system prompt for the detected language."""
    return LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["he"])


def extract_detection_text(prompt: str | None) -> str:
    """Return the user-authored part of a contextual prompt.

    Everything after the first metadata bracket is dropped; when the prompt
    starts with a bracket (or has none) only the first line is kept.
    """
    if not prompt:
        return ""

    bracket_index = prompt.find("[")
    if bracket_index > 0:
        return prompt[:bracket_index].strip()

    lines = prompt.split("\n")
    return lines[0].strip() if lines else ""


def is_simple_request(text: str | None, has_media: bool = False) -> bool:
    """Decide whether a request can skip the planner.

    Contract: returns True only when ``text`` is at most
    ``SIMPLE_REQUEST_MAX_LENGTH`` characters, is a single line, contains no
    creation verb, no media reference and no sequencing word, and no media
    is attached. Blank text is simple. Anything else returns False.
    """
    if has_media:
        return False

    stripped = (text or "").strip()
    if not stripped:
        return True
    if len(stripped) > SIMPLE_REQUEST_MAX_LENGTH or "\n" in stripped:
        return False
    if _CREATION_VERBS.search(stripped):
        return False
    if _MEDIA_REFERENCES.search(stripped):
        return False
    if _SEQUENCING.search(stripped):
        return False
    return True


def clean_thinking_patterns(text: str | None) -> str:
    """Remove step markers and stray English paragraphs from a Hebrew answer."""
    if not text:
        return ""

    cleaned = text
    for pattern in _STEP_MARKERS:
        cleaned = pattern.sub("", cleaned)

    hebrew = len(_HEBREW.findall(cleaned))
    english = len(_ENGLISH.findall(cleaned))
    if hebrew > english:
        kept = []
        for paragraph in cleaned.split("\n\n"):
            para_hebrew = len(_HEBREW.findall(paragraph))
            para_english = len(_ENGLISH.findall(paragraph))
            if para_hebrew >= para_english or para_english < 20:
                kept.append(paragraph)
        cleaned = "\n\n".join(kept)

    return cleaned.strip()


def clean_json_wrapper(text: str | None) -> str:
    """Unwrap answers the model returned as fenced JSON or ``{"text": ...}``."""
    if not text:
        return ""

    cleaned = text.strip()
    fence = _JSON_FENCE.match(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    if cleaned.startswith("{") and cleaned.endswith("}"):
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError:
            return cleaned
        if isinstance(payload, dict):
            for key in ("text", "answer", "response", "message"):
                value = payload.get(key)
                if isinstance(value, str):
                    return value.strip()
    return cleaned


def truncate(text: Any, max_length: int = 90) -> str:
    if not text or not isinstance(text, str):
        return ""
    return f"{text[:max_length]}…" if len(text) > max_length else text


def sanitize_tool_result(result: dict[str, Any] | None) -> dict[str, Any] | None:
    """Keep only the allow-listed keys of a tool result for persistence."""
    if not result:
        return None
    return {
        key: result[key]
        for key in SAVED_RESULT_KEYS
        if key in result and result[key] is not None
    }
