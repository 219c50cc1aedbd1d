"""Media creation tools backed by the media generation client."""

from typing import Any

from conversational_agent.core.media import MediaGenerationClient
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    Poll,
    ToolResult,
)
from conversational_agent.interfaces.langchain.models import (
    CreateImageInput,
    CreatePollInput,
    CreateVideoInput,
    EditImageInput,
    ImageToVideoInput,
    TextToSpeechInput,
)
from conversational_agent.tools.registry import AgentTool, ToolName
from conversational_agent.utils.constants import (
    IMAGE_EDIT_PROVIDERS,
    IMAGE_PROVIDERS,
    PROVIDER_DISPLAY_NAMES,
    VIDEO_PROVIDERS,
)


def resolve_source_image(image_url: str | None, context: AgentContextState) -> str | None:
    """Explicit URL, else the attached image, else the most recent generated image."""
    if image_url:
        return image_url
    if context.original_input and context.original_input.image_url:
        return context.original_input.image_url
    return context.generated_assets.latest_url("images")


def _display(provider: str) -> str:
    return PROVIDER_DISPLAY_NAMES.get(provider, provider)


def _media_failure(response: dict[str, Any], provider: str | None) -> ToolResult:
    return ToolResult.failure(
        response.get("error") or "Generation failed",
        provider=response.get("provider") or provider,
    )


class CreateImageTool(AgentTool):
    name = ToolName.CREATE_IMAGE
    description = "Create an image from a text description."
    args_schema = CreateImageInput

    def __init__(self, media: MediaGenerationClient):
        self.media = media

    async def execute(self, args: CreateImageInput, context: AgentContextState) -> ToolResult:
        provider = args.provider or IMAGE_PROVIDERS[0]
        response = await self.media.generate_image(args.prompt, provider)
        if not response.get("success"):
            return _media_failure(response, provider)

        return ToolResult(
            data=f"Image created with {_display(provider)}",
            image_url=response["url"],
            image_caption=response.get("caption", ""),
            provider=response.get("provider") or provider,
        )


class EditImageTool(AgentTool):
    name = ToolName.EDIT_IMAGE
    description = "Edit an existing image (attached, linked or previously created)."
    args_schema = EditImageInput

    def __init__(self, media: MediaGenerationClient):
        self.media = media

    async def execute(self, args: EditImageInput, context: AgentContextState) -> ToolResult:
        image_url = resolve_source_image(args.image_url, context)
        if not image_url:
            return ToolResult.failure("No image to edit. Attach an image or create one first.")

        provider = args.provider or IMAGE_EDIT_PROVIDERS[0]
        response = await self.media.edit_image(args.prompt, image_url, provider)
        if not response.get("success"):
            return _media_failure(response, provider)

        return ToolResult(
            data=f"Image edited with {_display(provider)}",
            image_url=response["url"],
            image_caption=response.get("caption", ""),
            provider=response.get("provider") or provider,
        )


class CreateVideoTool(AgentTool):
    name = ToolName.CREATE_VIDEO
    description = "Create a video from a text description."
    args_schema = CreateVideoInput

    def __init__(self, media: MediaGenerationClient):
        self.media = media

    async def execute(self, args: CreateVideoInput, context: AgentContextState) -> ToolResult:
        provider = args.provider or VIDEO_PROVIDERS[0]
        response = await self.media.generate_video(
            args.prompt, provider, duration=args.duration
        )
        if not response.get("success"):
            return _media_failure(response, provider)

        return ToolResult(
            data=f"Video created with {_display(provider)}",
            video_url=response["url"],
            video_caption=response.get("caption", ""),
            provider=response.get("provider") or provider,
        )


class ImageToVideoTool(AgentTool):
    name = ToolName.IMAGE_TO_VIDEO
    description = "Animate an image (attached or previously created) into a video."
    args_schema = ImageToVideoInput

    def __init__(self, media: MediaGenerationClient):
        self.media = media

    async def execute(self, args: ImageToVideoInput, context: AgentContextState) -> ToolResult:
        image_url = resolve_source_image(args.image_url, context)
        if not image_url:
            return ToolResult.failure("No image to animate. Attach an image or create one first.")

        provider = args.provider or VIDEO_PROVIDERS[0]
        response = await self.media.generate_video(
            args.prompt, provider, image_url=image_url, duration=args.duration
        )
        if not response.get("success"):
            return _media_failure(response, provider)

        return ToolResult(
            data=f"Image animated with {_display(provider)}",
            video_url=response["url"],
            video_caption=response.get("caption", ""),
            provider=response.get("provider") or provider,
        )


class TextToSpeechTool(AgentTool):
    name = ToolName.TEXT_TO_SPEECH
    description = "Read text aloud and return a voice recording."
    args_schema = TextToSpeechInput

    def __init__(self, media: MediaGenerationClient):
        self.media = media

    async def execute(self, args: TextToSpeechInput, context: AgentContextState) -> ToolResult:
        response = await self.media.synthesize_speech(args.text, args.language)
        if not response.get("success"):
            return _media_failure(response, None)
        return ToolResult(data="Speech created", audio_url=response["url"])


class CreatePollTool(AgentTool):
    name = ToolName.CREATE_POLL
    description = "Create a poll with a question and 2-12 answer options."
    args_schema = CreatePollInput

    async def execute(self, args: CreatePollInput, context: AgentContextState) -> ToolResult:
        options = [option.strip() for option in args.options if option.strip()]
        if len(options) < 2:
            return ToolResult.failure("A poll needs at least two non-empty options")
        return ToolResult(
            data=f"Poll created: {args.question}",
            poll=Poll(question=args.question.strip(), options=options),
        )
