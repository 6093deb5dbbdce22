from typing import Literal

from pydantic import BaseModel, Field

Stage = Literal["queued", "layout", "images", "compositing", "review", "refining", "done", "error"]

ImageSource = Literal["unsplash", "dalle", "gemini"]

# Default-source priority and fallback-chain order.
IMAGE_SOURCE_PRIORITY: tuple[ImageSource, ...] = ("unsplash", "dalle", "gemini")

STAGE_PROGRESS: dict[str, float] = {
    "queued": 0.0,
    "layout": 0.2,
    "images": 0.45,
    "compositing": 0.65,
    "review": 0.8,
    "refining": 0.9,
    "done": 1.0,
    "error": 0.0,
}

TERMINAL_STAGES = frozenset({"done", "error"})


class PipelineStatus(BaseModel):
    stage: Stage
    progress: float = Field(ge=0, le=1)
    skipped: bool = False
    reason: str | None = None


class Placeholder(BaseModel):
    id: str
    description: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    preferred_source: ImageSource
    search_query: str | None = None


class LayoutResult(BaseModel):
    html: str
    width: int | None = None
    height: int | None = None


class ResolveResult(BaseModel):
    html: str
    image_count: int = 0
    skipped: bool = False
    reason: str | None = None


class Frame(BaseModel):
    html: str
    label: str
    width: int | None = None
    height: int | None = None
    critique: str | None = None
