"""Run coordinator: drives N frames in quick (parallel) or sequential (critique-chained) mode."""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from framegen.logging import frame_context
from framegen.models.pipeline import STAGE_PROGRESS, TERMINAL_STAGES, Frame, PipelineStatus
from framegen.models.request import Credentials, DesignRequest, PipelineOptions
from framegen.models.response import (
    CritiqueEvent,
    ErrorEvent,
    PipelineEvent,
    ResultEvent,
    StageEvent,
)
from framegen.pipeline.prompts import style_for_index
from framegen.pipeline.sequencer import StageSequencer, error_artifact

RunMode = Literal["quick", "sequential"]


@dataclass
class _Settled:
    frame_index: int


class RunState:
    """Per-frame status owned by one run. Read it through ``snapshot()``."""

    def __init__(self, count: int):
        self._statuses: dict[int, PipelineStatus] = {
            i: PipelineStatus(stage="queued", progress=STAGE_PROGRESS["queued"]) for i in range(count)
        }

    def apply(self, event: StageEvent) -> bool:
        """Record a stage transition. Returns False if it was ignored.

        Terminal frames accept nothing further; progress never goes backwards
        except into ``error``.
        """
        current = self._statuses.get(event.frame_index)
        if current is None or current.stage in TERMINAL_STAGES:
            return False
        if event.stage != "error" and event.progress < current.progress:
            return False
        self._statuses[event.frame_index] = PipelineStatus(
            stage=event.stage, progress=event.progress, skipped=event.skipped, reason=event.reason
        )
        return True

    def fail(self, index: int, reason: str) -> None:
        if index in self._statuses and self._statuses[index].stage not in TERMINAL_STAGES:
            self._statuses[index] = PipelineStatus(stage="error", progress=STAGE_PROGRESS["error"], reason=reason)

    def discard_unfinished(self) -> list[int]:
        dropped = [i for i, s in self._statuses.items() if s.stage not in TERMINAL_STAGES]
        for i in dropped:
            del self._statuses[i]
        return dropped

    def snapshot(self) -> dict[int, PipelineStatus]:
        return {i: s.model_copy() for i, s in self._statuses.items()}


class RunCoordinator:
    def __init__(
        self,
        prompt: str,
        count: int,
        credentials: Credentials,
        *,
        mode: RunMode = "sequential",
        concepts: list[str] | None = None,
        custom_instructions: str | None = None,
        options: PipelineOptions | None = None,
        sequencer_factory: Callable[[], StageSequencer] | None = None,
    ):
        if count < 1:
            raise ValueError("A run needs at least one frame")
        self.prompt = prompt
        self.count = count
        self.mode = mode
        self.concepts = concepts
        self.custom_instructions = custom_instructions
        self.credentials = credentials
        self.options = options or PipelineOptions()
        self._make_sequencer = sequencer_factory or (lambda: StageSequencer(self.credentials, self.options))

        self.state = RunState(count)
        self.frames: dict[int, Frame] = {}
        self.errors: dict[int, str] = {}
        self._cancelled = asyncio.Event()
        self._tasks: dict[int, asyncio.Task] = {}

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop the run: no new frames start and in-flight calls are cancelled."""
        if not self._cancelled.is_set():
            logger.info("Run cancelled ({done}/{count} frames done)", done=len(self.frames), count=self.count)
        self._cancelled.set()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()

    def design_request(self, index: int, critique: str | None = None) -> DesignRequest:
        return DesignRequest(
            prompt=self.prompt,
            style_directive=style_for_index(index, self.concepts),
            frame_index=index,
            custom_instructions=self.custom_instructions,
            critique_feedback=critique,
        )

    def completed_frames(self) -> list[Frame]:
        return [self.frames[i] for i in sorted(self.frames)]

    async def _pump(self, request: DesignRequest, queue: asyncio.Queue) -> None:
        idx = request.frame_index
        try:
            with frame_context(idx):
                async for event in self._make_sequencer().run(request):
                    queue.put_nowait(event)
        except Exception as e:
            logger.bind(frame=idx).exception("Frame {idx}: sequencer crashed", idx=idx)
            queue.put_nowait(ErrorEvent(frame_index=idx, message=str(e), html=error_artifact(str(e))))
        finally:
            queue.put_nowait(_Settled(idx))

    def _start(self, request: DesignRequest, queue: asyncio.Queue) -> None:
        self._tasks[request.frame_index] = asyncio.create_task(self._pump(request, queue))

    def _record(self, event: PipelineEvent) -> None:
        match event:
            case StageEvent():
                self.state.apply(event)
            case ResultEvent():
                self.frames[event.frame_index] = Frame(
                    html=event.html, label=event.label, width=event.width, height=event.height
                )
            case CritiqueEvent():
                frame = self.frames.get(event.frame_index)
                if frame is not None:
                    self.frames[event.frame_index] = frame.model_copy(update={"critique": event.critique})
            case ErrorEvent():
                self.errors[event.frame_index] = event.message
                self.state.fail(event.frame_index, event.message)

    async def _drain(self, queue: asyncio.Queue, pending: int) -> AsyncIterator[PipelineEvent]:
        while pending:
            item = await queue.get()
            if isinstance(item, _Settled):
                pending -= 1
                continue
            # Once cancelled, frames that have not finished are discarded, not reported as failed
            if self.cancelled and isinstance(item, ErrorEvent):
                continue
            self._record(item)
            yield item

    async def _run_quick(self, queue: asyncio.Queue) -> AsyncIterator[PipelineEvent]:
        for i in range(self.count):
            self._start(self.design_request(i), queue)
        async for event in self._drain(queue, self.count):
            yield event

    async def _run_sequential(self, queue: asyncio.Queue) -> AsyncIterator[PipelineEvent]:
        critique: str | None = None
        for i in range(self.count):
            if self.cancelled:
                logger.info("Skipping frames {start}..{end} after cancellation", start=i, end=self.count - 1)
                break
            self._start(self.design_request(i, critique), queue)
            async for event in self._drain(queue, 1):
                yield event
            frame = self.frames.get(i)
            critique = frame.critique if frame is not None else None
            if frame is not None and critique is None:
                logger.info("Frame {idx}: no critique, next frame runs without feedback", idx=i)

    async def run(self) -> AsyncIterator[PipelineEvent]:
        """Yield every frame's events. Frames start as queued slots."""
        logger.info("Starting {mode} run: {count} frames", mode=self.mode, count=self.count)
        queue: asyncio.Queue = asyncio.Queue()
        try:
            for i in range(self.count):
                yield StageEvent(frame_index=i, stage="queued", progress=STAGE_PROGRESS["queued"])
            runner = self._run_quick if self.mode == "quick" else self._run_sequential
            async for event in runner(queue):
                yield event
        finally:
            # Also reached when the consumer goes away mid-run
            if any(not t.done() for t in self._tasks.values()):
                self.cancel()
            if self.cancelled:
                self.state.discard_unfinished()
            logger.info(
                "Run finished: {done} done, {failed} failed", done=len(self.frames), failed=len(self.errors)
            )
