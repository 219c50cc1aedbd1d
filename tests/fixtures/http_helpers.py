"""Shared HTTP mocking helpers for testing."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest


class HttpMockHelpers:
    """Helper class for HTTP mocking patterns."""

    @staticmethod
    def create_mock_http_response(
        response_data: Any | None,
        status_code: int = 200,
    ) -> MagicMock:
        """Helper method to create mock HTTP response."""
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.json = lambda: response_data
        mock_response.raise_for_status = MagicMock()
        return mock_response

    @staticmethod
    def setup_httpx_mock(
        mock_client_cls: Any,
        response_data: Any,
        side_effect: Any | None = None,
        method: str = "post",
    ) -> AsyncMock:
        """Helper method to set up httpx client mocking."""
        mock_async_client = AsyncMock()
        target = mock_async_client.post if method.lower() == "post" else mock_async_client.get

        if side_effect:
            target.side_effect = side_effect
        else:
            target.return_value = HttpMockHelpers.create_mock_http_response(response_data)

        mock_client_cls.return_value.__aenter__.return_value = mock_async_client
        return mock_async_client


@pytest.fixture
def http_mock_helpers() -> type[HttpMockHelpers]:
    """Provide HTTP mocking helper methods."""
    return HttpMockHelpers


@pytest.fixture
def common_http_errors() -> dict[
    str, httpx.HTTPStatusError | httpx.TimeoutException | httpx.ConnectError
]:
    """Common HTTP error scenarios for testing."""
    return {
        "not_found": httpx.HTTPStatusError(
            "Not found", request=MagicMock(), response=MagicMock(status_code=404)
        ),
        "timeout": httpx.TimeoutException("Request timeout"),
        "connection_error": httpx.ConnectError("Connection failed"),
    }
