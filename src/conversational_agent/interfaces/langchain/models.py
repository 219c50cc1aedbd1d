from typing import Literal

from pydantic import BaseModel, Field


class CreateImageInput(BaseModel):
    """Input schema for image generation."""

    prompt: str = Field(description="Description of the image to create")
    provider: Literal["gemini", "openai", "grok"] | None = Field(
        default=None,
        description="Image provider. Only set when the user names one explicitly",
    )


class EditImageInput(BaseModel):
    """Input schema for editing an existing image."""

    prompt: str = Field(description="The edit to apply (e.g., 'add a red hat')")
    image_url: str | None = Field(
        default=None,
        description="URL of the image to edit. Defaults to the most recent image",
    )
    provider: Literal["gemini", "openai"] | None = Field(
        default=None, description="Image edit provider"
    )


class CreateVideoInput(BaseModel):
    """Input schema for text-to-video generation."""

    prompt: str = Field(description="Description of the video to create")
    provider: Literal["veo3", "sora", "kling"] | None = Field(
        default=None,
        description="Video provider. Only set when the user names one explicitly",
    )
    duration: int | None = Field(
        default=None, ge=1, le=20, description="Video length in seconds"
    )


class ImageToVideoInput(BaseModel):
    """Input schema for animating an image into a video."""

    prompt: str = Field(description="How the image should move or be animated")
    image_url: str | None = Field(
        default=None,
        description="URL of the source image. Defaults to the most recent image",
    )
    provider: Literal["veo3", "sora", "kling"] | None = Field(
        default=None, description="Video provider"
    )
    duration: int | None = Field(
        default=None, ge=1, le=20, description="Video length in seconds"
    )


class TextToSpeechInput(BaseModel):
    """Input schema for speech synthesis."""

    text: str = Field(description="Text to read aloud")
    language: str | None = Field(
        default=None, description="Language code (e.g., 'he', 'en')"
    )


class CreatePollInput(BaseModel):
    """Input schema for poll creation."""

    question: str = Field(description="The poll question")
    options: list[str] = Field(
        min_length=2, max_length=12, description="Between 2 and 12 answer options"
    )


class SearchWebInput(BaseModel):
    """Input schema for web search."""

    query: str = Field(description="Search query (e.g., 'weather in Tel Aviv today')")


class ChatHistoryInput(BaseModel):
    """Input schema for reading earlier messages of the chat."""

    limit: int = Field(
        default=20, ge=1, le=100, description="How many recent messages to fetch"
    )


class LongTermMemoryInput(BaseModel):
    """Input schema for reading stored user preferences."""

    key: str | None = Field(
        default=None, description="Preference to read. Omit to read all preferences"
    )


class SaveUserPreferenceInput(BaseModel):
    """Input schema for storing a user preference."""

    key: str = Field(description="Preference name (e.g., 'image_style')")
    value: str = Field(description="Preference value (e.g., 'watercolor')")


class RetryWithDifferentProviderInput(BaseModel):
    """Input schema for retrying a failed creation with another provider."""

    task_type: Literal["image", "video", "image_edit"] | None = Field(
        default=None,
        description="Kind of creation to retry. Defaults to the last failed creation",
    )
    avoid_provider: str | None = Field(
        default=None, description="Provider that failed and should be skipped"
    )
    prompt: str | None = Field(
        default=None, description="Prompt to use. Defaults to the failed call's prompt"
    )


class RetryLastCommandInput(BaseModel):
    """Input schema for repeating the previous command of the chat."""

    provider_override: str | None = Field(
        default=None, description="Provider to use instead of the original one"
    )
    modifications: str | None = Field(
        default=None,
        description="Changes to apply to the original prompt (e.g., 'make it blue')",
    )
    step_numbers: list[int] | None = Field(
        default=None,
        description="Plan steps to repeat (1-based). Omit to repeat every step",
    )
