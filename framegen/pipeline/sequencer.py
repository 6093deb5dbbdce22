"""Stage sequencer: runs one frame through layout, images, compositing, review and critique.

Only a layout failure ends the frame in ``error``. Image and review failures
fall back to the last good HTML; critique failures are dropped.
"""

import html as html_lib
from collections.abc import AsyncIterator, Awaitable, Callable

from framegen.config import settings
from framegen.gateway.images import generate_image
from framegen.gateway.text import generate_text
from framegen.logging import frame_logger
from framegen.models.pipeline import STAGE_PROGRESS, LayoutResult, Stage
from framegen.models.request import Credentials, DesignRequest, PipelineOptions
from framegen.models.response import (
    CritiqueEvent,
    ErrorEvent,
    PipelineEvent,
    PreviewEvent,
    ResultEvent,
    StageEvent,
)
from framegen.pipeline import prompts
from framegen.pipeline.envelope import cap_frame_height, parse_html_with_size, substitute_images
from framegen.pipeline.placeholders import (
    NO_KEYS_REASON,
    NO_PLACEHOLDERS_REASON,
    ImageFetcher,
    parse_placeholders,
    resolve_placeholders,
)

TextGenerator = Callable[..., Awaitable[str]]

IMAGES_DISABLED_REASON = "Image generation disabled for this request"


def error_artifact(message: str) -> str:
    """Inline HTML shown in place of a failed frame."""
    return (
        '<div style="padding:32px;color:#666;font-family:system-ui">'
        '<p style="font-size:14px">⚠ Failed to generate design</p>'
        f'<p style="font-size:12px;margin-top:8px;color:#999">{html_lib.escape(message)}</p>'
        "</div>"
    )


def frame_label(request: DesignRequest) -> str:
    return "Revised" if request.is_revision else f"Variation {request.frame_index + 1}"


class StageSequencer:
    def __init__(
        self,
        credentials: Credentials,
        options: PipelineOptions | None = None,
        *,
        text_fn: TextGenerator = generate_text,
        image_fn: ImageFetcher = generate_image,
    ):
        self.credentials = credentials
        self.options = options or PipelineOptions()
        self._text = text_fn
        self._image = image_fn

    @property
    def model(self) -> str:
        return self.options.model or settings.model_name

    async def _generate(self, system_prompt: str, user_content: str, max_tokens: int) -> str:
        return await self._text(
            system_prompt,
            user_content,
            self.model,
            max_tokens,
            self.credentials.anthropic_api_key,
        )

    async def layout(self, request: DesignRequest) -> LayoutResult:
        revision = request.revision
        if revision is not None:
            stripped, restore = substitute_images(revision.base_html)
            raw = await self._generate(
                prompts.DESIGNER_SYSTEM,
                prompts.revision_prompt(request, revision, stripped),
                settings.layout_max_tokens,
            )
            result = parse_html_with_size(raw)
            return result.model_copy(update={"html": restore(result.html)})

        raw = await self._generate(
            prompts.DESIGNER_SYSTEM,
            prompts.layout_prompt(request, self.credentials.available_sources()),
            settings.layout_max_tokens,
        )
        return parse_html_with_size(raw)

    async def review(self, request: DesignRequest, current: LayoutResult) -> LayoutResult:
        stripped, restore = substitute_images(current.html)
        raw = await self._generate(
            prompts.REVIEWER_SYSTEM,
            prompts.review_prompt(request.prompt, stripped, current.width, current.height),
            settings.review_max_tokens,
        )
        reviewed = parse_html_with_size(raw)
        return LayoutResult(
            html=restore(reviewed.html),
            width=reviewed.width or current.width,
            height=reviewed.height or current.height,
        )

    async def critique(self, request: DesignRequest, html: str) -> str:
        stripped, _ = substitute_images(html)
        text = await self._generate(
            prompts.CRITIC_SYSTEM,
            prompts.critique_prompt(request.prompt, stripped),
            settings.critique_max_tokens,
        )
        return text.strip()

    def _images_skip_reason(self, html: str) -> str | None:
        if not self.options.enable_images:
            return IMAGES_DISABLED_REASON
        available = self.credentials.available_sources()
        if not available:
            return NO_KEYS_REASON
        if not parse_placeholders(html, available):
            return NO_PLACEHOLDERS_REASON
        return None

    async def run(self, request: DesignRequest) -> AsyncIterator[PipelineEvent]:
        """Yield progress events for one frame; ends with exactly one result or error.

        A critique event may follow the result.
        """
        idx = request.frame_index
        log = frame_logger(idx)

        def stage(name: Stage, skipped: bool = False, reason: str | None = None) -> StageEvent:
            return StageEvent(
                frame_index=idx, stage=name, progress=STAGE_PROGRESS[name], skipped=skipped, reason=reason
            )

        yield stage("layout")
        try:
            current = await self.layout(request)
        except Exception as e:
            log.error("Frame {idx}: layout failed: {err}", idx=idx, err=e)
            yield stage("error")
            yield ErrorEvent(frame_index=idx, message=str(e) or type(e).__name__, html=error_artifact(str(e)))
            return

        yield PreviewEvent(
            frame_index=idx, html=cap_frame_height(current.html), width=current.width, height=current.height
        )

        skip_reason = self._images_skip_reason(current.html)
        if skip_reason:
            log.info("Frame {idx}: skipping images ({reason})", idx=idx, reason=skip_reason)
            yield stage("images", skipped=True, reason=skip_reason)
        else:
            yield stage("images")
            try:
                resolved = await resolve_placeholders(current.html, self.credentials, fetch=self._image)
            except Exception as e:
                log.warning("Frame {idx}: image pipeline failed, keeping placeholders: {err}", idx=idx, err=e)
            else:
                if resolved.image_count > 0:
                    yield stage("compositing")
                    current = current.model_copy(update={"html": resolved.html})
                    yield PreviewEvent(
                        frame_index=idx,
                        html=cap_frame_height(current.html),
                        width=current.width,
                        height=current.height,
                    )

        if self.options.should_review(request):
            yield stage("review")
            try:
                current = await self.review(request, current)
            except Exception as e:
                log.warning("Frame {idx}: visual review failed, using unreviewed version: {err}", idx=idx, err=e)

        final_html = cap_frame_height(current.html)
        yield stage("done")
        yield ResultEvent(
            frame_index=idx,
            html=final_html,
            label=frame_label(request),
            width=current.width,
            height=current.height,
        )

        try:
            text = await self.critique(request, final_html)
        except Exception as e:
            log.warning("Frame {idx}: critique failed: {err}", idx=idx, err=e)
            return
        if text:
            yield CritiqueEvent(frame_index=idx, critique=text)
