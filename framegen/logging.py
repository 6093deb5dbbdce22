import logging
import sys
import time
import uuid
from collections.abc import AsyncIterator

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Every record carries the request it belongs to and, inside the pipeline, the frame index.
_LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra[request_id]} | frame={extra[frame]} | <level>{message}</level>"
)

_NOISY_LOGGERS = ("httpcore", "httpx", "openai", "google_genai", "claude_agent_sdk", "PIL")


class _InterceptHandler(logging.Handler):
    """Send stdlib records (gateway modules, SDKs) to loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(log_level: str = "DEBUG") -> None:
    logger.remove()
    logger.configure(extra={"request_id": "-", "frame": "-"})
    logger.add(sys.stderr, format=_LOG_FORMAT, level=log_level.upper(), colorize=True)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def frame_logger(frame_index: int):
    """Logger tagged with one frame, for code that yields between log calls.

    Async generators can be closed from another context, so they bind instead
    of using ``logger.contextualize``.
    """
    return logger.bind(frame=frame_index)


def frame_context(frame_index: int):
    """Tag every record emitted inside the block (gateway and SDK logs included) with a frame."""
    return logger.contextualize(frame=frame_index)


def _is_event_stream(response: Response) -> bool:
    return response.headers.get("content-type", "").startswith("text/event-stream")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with an 8-hex request id.

    Plain responses are logged on completion. Event streams are logged once when
    headers go out and again when the stream closes, with the number of events
    sent and the full stream duration.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = uuid.uuid4().hex[:8]
        method = request.method
        path = request.url.path

        with logger.contextualize(request_id=rid):
            logger.info("{method} {path}", method=method, path=path)
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "{method} {path} -> UNHANDLED ({duration_ms:.0f}ms)",
                    method=method,
                    path=path,
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
                raise
            logger.info(
                "{method} {path} -> {status} ({duration_ms:.0f}ms)",
                method=method,
                path=path,
                status=response.status_code,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        if _is_event_stream(response):
            response.body_iterator = self._track_stream(
                response.body_iterator, logger.bind(request_id=rid), f"{method} {path}", start
            )
        return response

    @staticmethod
    async def _track_stream(
        body: AsyncIterator[bytes | str], log, route: str, start: float
    ) -> AsyncIterator[bytes | str]:
        events = 0
        completed = False
        try:
            async for chunk in body:
                text = chunk.decode() if isinstance(chunk, bytes) else chunk
                if text.startswith("data: "):
                    events += 1
                yield chunk
            completed = True
        finally:
            log.info(
                "{route} stream {state}: {events} events ({duration_ms:.0f}ms)",
                route=route,
                state="closed" if completed else "aborted",
                events=events,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
