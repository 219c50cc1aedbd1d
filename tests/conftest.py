"""Global pytest configuration and fixtures."""

from collections.abc import Generator
from typing import Any

import pytest
import respx

from tests.fixtures.env_helpers import (
    agent_settings,
    empty_env,
    mock_env_vars,
    openai_api_key,
)
from tests.fixtures.fakes import (
    agent_stores,
    default_registry,
    mock_media,
    mock_search,
    output_channel,
)
from tests.fixtures.http_helpers import (
    common_http_errors,
    http_mock_helpers,
)


@pytest.fixture
def respx_mock() -> Generator[Any, None, None]:
    """Provide respx mock for testing HTTP requests."""
    with respx.mock as mock:
        yield mock


@pytest.fixture
def chat_id() -> str:
    """Chat identifier used across engine tests."""
    return "972500000000@c.us"


__all__ = [
    # Environment
    "agent_settings",
    "empty_env",
    "mock_env_vars",
    "openai_api_key",
    # Collaborators
    "agent_stores",
    "default_registry",
    "mock_media",
    "mock_search",
    "output_channel",
    # HTTP
    "common_http_errors",
    "http_mock_helpers",
]
