from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from framegen.config import Settings
from framegen.models.pipeline import IMAGE_SOURCE_PRIORITY, ImageSource


class Revision(BaseModel):
    instruction: str = Field(min_length=1)
    base_html: str = Field(min_length=1)


class DesignRequest(BaseModel):
    """One frame's worth of input to the stage sequencer."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    style_directive: str = ""
    frame_index: int = Field(default=0, ge=0)
    custom_instructions: str | None = None
    critique_feedback: str | None = None
    revision: Revision | None = None

    @property
    def is_revision(self) -> bool:
        return self.revision is not None


class Credentials(BaseModel):
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    unsplash_access_key: str | None = None

    def with_defaults(self, defaults: Settings) -> "Credentials":
        """Fill unset fields from the server-side settings."""
        return Credentials(
            anthropic_api_key=self.anthropic_api_key or defaults.anthropic_api_key or None,
            openai_api_key=self.openai_api_key or defaults.openai_api_key or None,
            gemini_api_key=self.gemini_api_key or defaults.gemini_api_key or None,
            unsplash_access_key=self.unsplash_access_key or defaults.unsplash_access_key or None,
        )

    def for_source(self, source: ImageSource) -> str | None:
        match source:
            case "unsplash":
                return self.unsplash_access_key or None
            case "dalle":
                return self.openai_api_key or None
            case "gemini":
                return self.gemini_api_key or None
        return None

    def available_sources(self) -> list[ImageSource]:
        """Image sources with a configured credential, in fallback-chain order."""
        return [s for s in IMAGE_SOURCE_PRIORITY if self.for_source(s)]


class PipelineOptions(BaseModel):
    model: str | None = None
    enable_images: bool = True
    # None = review every non-revision frame
    enable_review: bool | None = None

    def should_review(self, request: DesignRequest) -> bool:
        if self.enable_review is None:
            return not request.is_revision
        return self.enable_review


class PipelineRequest(BaseModel):
    """Body of POST /api/pipeline (single frame)."""

    prompt: str = Field(min_length=1)
    style: str = ""
    index: int = Field(default=0, ge=0)
    model: str | None = None
    credentials: Credentials = Field(default_factory=Credentials)
    custom_instructions: str | None = None
    critique: str | None = None
    revision: str | None = None
    existing_html: str | None = None
    enable_images: bool = True
    enable_review: bool | None = None


class GenerateRequest(BaseModel):
    """Body of POST /api/generate (multi-frame run)."""

    prompt: str = Field(min_length=1)
    count: int = Field(default=4, ge=1, le=6)
    mode: Literal["quick", "sequential"] = "sequential"
    concepts: list[str] | None = None
    model: str | None = None
    credentials: Credentials = Field(default_factory=Credentials)
    custom_instructions: str | None = None
    enable_images: bool = True
    enable_review: bool | None = None


class PlanRequest(BaseModel):
    prompt: str = Field(min_length=1)
    model: str | None = None
    credentials: Credentials = Field(default_factory=Credentials)
