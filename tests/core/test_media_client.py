from typing import Any
from unittest.mock import patch

import httpx
import pytest

from conversational_agent.core.media import MediaGenerationClient


class TestMediaGenerationClient:
    """Test suite for MediaGenerationClient."""

    @pytest.fixture
    def client(self) -> MediaGenerationClient:
        """Create a MediaGenerationClient instance."""
        return MediaGenerationClient("https://media.test/v1/", api_key="media-key", timeout=30)

    @pytest.mark.unit
    @patch("conversational_agent.core.media.post_json")
    async def test_generate_image_success(
        self, mock_post: Any, client: MediaGenerationClient
    ) -> None:
        """Test successful image generation."""
        mock_post.return_value = {
            "image_url": "https://cdn.test/a.png",
            "caption": "A cat",
            "provider": "gemini",
        }

        result = await client.generate_image("a cat", "gemini")

        assert result == {
            "success": True,
            "url": "https://cdn.test/a.png",
            "caption": "A cat",
            "provider": "gemini",
        }
        mock_post.assert_called_once_with(
            "https://media.test/v1/images/generations",
            {"prompt": "a cat", "provider": "gemini"},
            api_key="media-key",
            timeout=30,
        )

    @pytest.mark.unit
    @patch("conversational_agent.core.media.post_json")
    async def test_no_response_is_failure(
        self, mock_post: Any, client: MediaGenerationClient
    ) -> None:
        """Test transport failure normalization."""
        mock_post.return_value = None

        result = await client.generate_video("waves", "sora")

        assert result == {
            "success": False,
            "error": "Video generation with Sora 2 failed",
            "provider": "sora",
        }

    @pytest.mark.unit
    @patch("conversational_agent.core.media.post_json")
    async def test_backend_error_is_failure(
        self, mock_post: Any, client: MediaGenerationClient
    ) -> None:
        mock_post.return_value = {"error": "Quota exceeded"}

        result = await client.edit_image("add a hat", "https://cdn.test/a.png", "openai")

        assert result["success"] is False
        assert result["error"] == "Quota exceeded"
        assert result["provider"] == "openai"

    @pytest.mark.unit
    @patch("conversational_agent.core.media.post_json")
    async def test_missing_media_is_failure(
        self, mock_post: Any, client: MediaGenerationClient
    ) -> None:
        mock_post.return_value = {"status": "done"}

        result = await client.generate_image("a cat", "grok")

        assert result["success"] is False
        assert result["error"] == "Image generation with Grok returned no media"

    @pytest.mark.unit
    @patch("conversational_agent.core.media.post_json")
    async def test_video_payload_includes_optional_fields(
        self, mock_post: Any, client: MediaGenerationClient
    ) -> None:
        mock_post.return_value = {"video_url": "https://cdn.test/v.mp4"}

        result = await client.generate_video(
            "jump", "kling", image_url="https://cdn.test/a.png", duration=5
        )

        assert result["url"] == "https://cdn.test/v.mp4"
        assert result["provider"] == "kling"
        payload = mock_post.call_args[0][1]
        assert payload == {
            "prompt": "jump",
            "provider": "kling",
            "image_url": "https://cdn.test/a.png",
            "duration": 5,
        }

    @pytest.mark.unit
    async def test_speech_over_http(
        self, client: MediaGenerationClient, respx_mock: Any
    ) -> None:
        """Test the full request path against a mocked backend."""
        route = respx_mock.post("https://media.test/v1/audio/speech").mock(
            return_value=httpx.Response(200, json={"audio_url": "https://cdn.test/s.mp3"})
        )

        result = await client.synthesize_speech("shalom", "he")

        assert route.called
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer media-key"
        assert result["success"] is True
        assert result["url"] == "https://cdn.test/s.mp3"

    @pytest.mark.unit
    async def test_http_error_over_http(
        self, client: MediaGenerationClient, respx_mock: Any
    ) -> None:
        respx_mock.post("https://media.test/v1/images/generations").mock(
            return_value=httpx.Response(503)
        )

        result = await client.generate_image("a cat", "gemini")

        assert result["success"] is False
        assert result["error"] == "Image generation with Gemini failed"
