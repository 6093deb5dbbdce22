from typing import Annotated, Literal

from pydantic import BaseModel, Field

from framegen.models.pipeline import Stage


class StageEvent(BaseModel):
    type: Literal["stage"] = "stage"
    frame_index: int
    stage: Stage
    progress: float = Field(ge=0, le=1)
    skipped: bool = False
    reason: str | None = None


class PreviewEvent(BaseModel):
    type: Literal["preview"] = "preview"
    frame_index: int
    html: str
    width: int | None = None
    height: int | None = None


class ResultEvent(BaseModel):
    type: Literal["result"] = "result"
    frame_index: int
    html: str
    label: str
    width: int | None = None
    height: int | None = None


class CritiqueEvent(BaseModel):
    type: Literal["critique"] = "critique"
    frame_index: int
    critique: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    frame_index: int
    message: str
    # Inline error artifact so the frame slot stays visible
    html: str | None = None


PipelineEvent = Annotated[
    StageEvent | PreviewEvent | ResultEvent | CritiqueEvent | ErrorEvent,
    Field(discriminator="type"),
]


class PlanResponse(BaseModel):
    count: int = Field(ge=2, le=6)
    concepts: list[str] = []
