"""
Configuration for the conversational agent engine.

Module-level defaults are read from the environment (after ``.env`` loading) and
collected into :class:`AgentSettings`, which is what the engine components take.
"""

import os
from typing import Literal

from pydantic import BaseModel, Field

from conversational_agent.utils.env import load_env

load_env()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


AGENT_MODEL = os.getenv("AGENT_MODEL", "gpt-4o-mini")
AGENT_PLANNER_MODEL = os.getenv("AGENT_PLANNER_MODEL", "gpt-4o")
AGENT_MAX_ITERATIONS = int(os.getenv("AGENT_MAX_ITERATIONS", "8"))
AGENT_TIMEOUT_MS = int(os.getenv("AGENT_TIMEOUT_MS", "240000"))  # 4 minutes
AGENT_CONTEXT_MEMORY_ENABLED = _env_bool("AGENT_CONTEXT_MEMORY_ENABLED")

MEDIA_API_BASE = os.getenv("MEDIA_API_BASE", "http://127.0.0.1:8090/v1")
SEARCH_API_BASE = os.getenv("SEARCH_API_BASE", "http://127.0.0.1:8091/v1")
MEDIA_REQUEST_TIMEOUT = float(os.getenv("MEDIA_REQUEST_TIMEOUT", "180"))
MEDIA_API_KEY = os.getenv("MEDIA_API_KEY")
SEARCH_API_KEY = os.getenv("SEARCH_API_KEY")
AGENT_STORE_BACKEND = os.getenv("AGENT_STORE_BACKEND", "memory")  # memory | file


class AgentSettings(BaseModel):
    """Runtime settings shared by the orchestrator, loop and executors."""

    model: str = AGENT_MODEL
    planner_model: str = AGENT_PLANNER_MODEL
    max_iterations: int = Field(default=AGENT_MAX_ITERATIONS, ge=1)
    timeout_seconds: float = Field(default=AGENT_TIMEOUT_MS / 1000, gt=0)
    context_memory_enabled: bool = AGENT_CONTEXT_MEMORY_ENABLED
    multi_step_min_iterations: int = 15
    step_max_iterations: int = 5
    history_window: int = 20
    media_api_base: str = MEDIA_API_BASE
    search_api_base: str = SEARCH_API_BASE
    media_request_timeout: float = MEDIA_REQUEST_TIMEOUT
    media_api_key: str | None = MEDIA_API_KEY
    search_api_key: str | None = SEARCH_API_KEY
    store_backend: Literal["memory", "file"] = AGENT_STORE_BACKEND  # type: ignore[assignment]

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Build settings from the current process environment."""
        return cls(
            model=os.getenv("AGENT_MODEL", AGENT_MODEL),
            planner_model=os.getenv("AGENT_PLANNER_MODEL", AGENT_PLANNER_MODEL),
            max_iterations=int(
                os.getenv("AGENT_MAX_ITERATIONS", str(AGENT_MAX_ITERATIONS))
            ),
            timeout_seconds=int(os.getenv("AGENT_TIMEOUT_MS", str(AGENT_TIMEOUT_MS)))
            / 1000,
            context_memory_enabled=_env_bool(
                "AGENT_CONTEXT_MEMORY_ENABLED",
                "true" if AGENT_CONTEXT_MEMORY_ENABLED else "false",
            ),
            media_api_base=os.getenv("MEDIA_API_BASE", MEDIA_API_BASE),
            search_api_base=os.getenv("SEARCH_API_BASE", SEARCH_API_BASE),
            media_request_timeout=float(
                os.getenv("MEDIA_REQUEST_TIMEOUT", str(MEDIA_REQUEST_TIMEOUT))
            ),
            media_api_key=os.getenv("MEDIA_API_KEY", MEDIA_API_KEY),
            search_api_key=os.getenv("SEARCH_API_KEY", SEARCH_API_KEY),
            store_backend=os.getenv("AGENT_STORE_BACKEND", AGENT_STORE_BACKEND),
        )
