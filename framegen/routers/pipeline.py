from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from loguru import logger

from framegen.config import settings
from framegen.models.request import (
    DesignRequest,
    GenerateRequest,
    PipelineOptions,
    PipelineRequest,
    PlanRequest,
    Revision,
)
from framegen.models.response import (
    CritiqueEvent,
    ErrorEvent,
    PipelineEvent,
    PlanResponse,
    ResultEvent,
    StageEvent,
)
from framegen.pipeline.coordinator import RunCoordinator
from framegen.pipeline.planner import plan_concepts
from framegen.pipeline.sequencer import StageSequencer

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


async def _sse(events: AsyncIterator[PipelineEvent]) -> AsyncIterator[str]:
    async for event in events:
        match event:
            case StageEvent(stage=stage, frame_index=idx, skipped=True):
                logger.debug("SSE: frame {idx} skipped {stage}", idx=idx, stage=stage)
            case ResultEvent(frame_index=idx):
                logger.debug("SSE: frame {idx} result", idx=idx)
            case CritiqueEvent(frame_index=idx):
                logger.debug("SSE: frame {idx} critique", idx=idx)
            case ErrorEvent(frame_index=idx, message=message):
                logger.warning("SSE: frame {idx} error: {message}", idx=idx, message=message)
        yield f"data: {event.model_dump_json()}\n\n"
    logger.debug("SSE: done event sent")
    yield "event: done\ndata: {}\n\n"


def _revision(request: PipelineRequest) -> Revision | None:
    """Revision needs both the instruction and the HTML it applies to."""
    if bool(request.revision) != bool(request.existing_html):
        raise HTTPException(status_code=400, detail="Provide both 'revision' and 'existing_html', or neither")
    if not request.revision:
        return None
    return Revision(instruction=request.revision, base_html=request.existing_html)


@router.post("/api/plan", response_model=PlanResponse)
async def plan(request: PlanRequest) -> PlanResponse:
    logger.info("Plan request")
    return await plan_concepts(
        request.prompt,
        request.credentials.with_defaults(settings),
        model=request.model,
    )


@router.post("/api/pipeline")
async def run_pipeline(request: PipelineRequest) -> StreamingResponse:
    revision = _revision(request)
    logger.info(
        "Pipeline request: frame {idx}, revision={is_revision}",
        idx=request.index,
        is_revision=revision is not None,
    )
    design = DesignRequest(
        prompt=request.prompt,
        style_directive=request.style,
        frame_index=request.index,
        custom_instructions=request.custom_instructions,
        critique_feedback=request.critique,
        revision=revision,
    )
    sequencer = StageSequencer(
        request.credentials.with_defaults(settings),
        PipelineOptions(
            model=request.model,
            enable_images=request.enable_images,
            enable_review=request.enable_review,
        ),
    )
    return StreamingResponse(_sse(sequencer.run(design)), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/api/generate")
async def generate(request: GenerateRequest) -> StreamingResponse:
    logger.info(
        "Generate request: {count} frames, mode={mode}, concepts={concepts}",
        count=request.count,
        mode=request.mode,
        concepts=len(request.concepts or []),
    )
    coordinator = RunCoordinator(
        request.prompt,
        request.count,
        request.credentials.with_defaults(settings),
        mode=request.mode,
        concepts=request.concepts,
        custom_instructions=request.custom_instructions,
        options=PipelineOptions(
            model=request.model,
            enable_images=request.enable_images,
            enable_review=request.enable_review,
        ),
    )
    return StreamingResponse(_sse(coordinator.run()), media_type="text/event-stream", headers=SSE_HEADERS)
