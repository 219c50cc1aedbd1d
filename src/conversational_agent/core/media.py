import logging
from typing import Any

from conversational_agent.utils.constants import PROVIDER_DISPLAY_NAMES
from conversational_agent.utils.http_client import post_json


class MediaGenerationClient:
    """Client for the media generation backend (images, videos, speech)."""

    def __init__(
        self, base_url: str, api_key: str | None = None, timeout: float = 180.0
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    async def _generate(
        self, endpoint: str, payload: dict[str, Any], url_key: str, label: str
    ) -> dict[str, Any]:
        """POST to ``endpoint`` and normalize the answer.

        Returns:
            ``{"success": True, "url", "caption", "provider"}`` or
            ``{"success": False, "error", "provider"}``
        """
        provider = payload.get("provider")
        display = PROVIDER_DISPLAY_NAMES.get(provider or "", provider or "backend")

        data = await post_json(
            f"{self.base_url}/{endpoint}",
            payload,
            api_key=self.api_key,
            timeout=self.timeout,
        )
        if data is None:
            self.logger.warning(f"{label} with {display} returned no data")
            return {
                "success": False,
                "error": f"{label} with {display} failed",
                "provider": provider,
            }

        if data.get("error"):
            return {"success": False, "error": str(data["error"]), "provider": provider}

        url = data.get(url_key) or data.get("url")
        if not url:
            return {
                "success": False,
                "error": f"{label} with {display} returned no media",
                "provider": provider,
            }

        return {
            "success": True,
            "url": url,
            "caption": data.get("caption", ""),
            "provider": data.get("provider", provider),
        }

    async def generate_image(self, prompt: str, provider: str) -> dict[str, Any]:
        return await self._generate(
            "images/generations",
            {"prompt": prompt, "provider": provider},
            "image_url",
            "Image generation",
        )

    async def edit_image(
        self, prompt: str, image_url: str, provider: str
    ) -> dict[str, Any]:
        return await self._generate(
            "images/edits",
            {"prompt": prompt, "image_url": image_url, "provider": provider},
            "image_url",
            "Image edit",
        )

    async def generate_video(
        self,
        prompt: str,
        provider: str,
        image_url: str | None = None,
        duration: int | None = None,
    ) -> dict[str, Any]:
        """Generate a video from text, or animate ``image_url`` when given."""
        payload: dict[str, Any] = {"prompt": prompt, "provider": provider}
        if image_url:
            payload["image_url"] = image_url
        if duration:
            payload["duration"] = duration
        return await self._generate(
            "videos/generations", payload, "video_url", "Video generation"
        )

    async def synthesize_speech(
        self, text: str, language: str | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": text}
        if language:
            payload["language"] = language
        return await self._generate(
            "audio/speech", payload, "audio_url", "Speech synthesis"
        )
