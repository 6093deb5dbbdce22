"""Placeholder resolver: find image slots in layout HTML, fill them, composite.

Placeholders are positional. The parse pass and the composite pass both go
through ``scan_placeholder_blocks`` so the n-th parsed placeholder is always
the n-th block replaced.
"""

import asyncio
import html as html_lib
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from html.parser import HTMLParser

from loguru import logger

from framegen.gateway.images import generate_image, to_data_uri
from framegen.models.pipeline import IMAGE_SOURCE_PRIORITY, ImageSource, Placeholder, ResolveResult
from framegen.models.request import Credentials

BATCH_SIZE = 3

NO_KEYS_REASON = "No image API keys — add Unsplash, DALL·E, or Gemini key in Settings"
NO_PLACEHOLDERS_REASON = "No image placeholders found in layout"

VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}
)

ImageFetcher = Callable[..., Awaitable[bytes | None]]


@dataclass
class PlaceholderBlock:
    """Span of one placeholder element in the source HTML, [start, end)."""

    start: int
    end: int
    attrs: dict[str, str | None]


def _positive_int(value: str | None) -> int | None:
    if value is None or not value.strip().isdigit():
        return None
    number = int(value.strip())
    return number if number > 0 else None


def _is_placeholder(attrs: dict[str, str | None]) -> bool:
    return (
        bool(attrs.get("data-placeholder"))
        and _positive_int(attrs.get("data-ph-w")) is not None
        and _positive_int(attrs.get("data-ph-h")) is not None
    )


class _PlaceholderScanner(HTMLParser):
    """Collects top-level placeholder elements with their source offsets.

    Nested placeholders belong to the enclosing block. An element left open at
    the end of input is treated as its start tag alone.
    """

    def __init__(self, source: str):
        super().__init__(convert_charrefs=True)
        self._source = source
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]
        self.blocks: list[PlaceholderBlock] = []
        self._open_tag: str | None = None
        self._open_start = 0
        self._open_head_end = 0
        self._open_attrs: dict[str, str | None] = {}
        self._depth = 0

    def _offset(self) -> int:
        line, col = self.getpos()
        return self._line_starts[line - 1] + col

    def handle_starttag(self, tag, attrs):
        if self._open_tag is not None:
            if tag == self._open_tag:
                self._depth += 1
            return
        attr_map = dict(attrs)
        if not _is_placeholder(attr_map):
            return
        start = self._offset()
        head_end = start + len(self.get_starttag_text() or "")
        if tag in VOID_ELEMENTS:
            self.blocks.append(PlaceholderBlock(start, head_end, attr_map))
            return
        self._open_tag, self._open_start, self._open_head_end = tag, start, head_end
        self._open_attrs, self._depth = attr_map, 1

    def handle_startendtag(self, tag, attrs):
        if self._open_tag is not None:
            return
        attr_map = dict(attrs)
        if _is_placeholder(attr_map):
            start = self._offset()
            self.blocks.append(PlaceholderBlock(start, start + len(self.get_starttag_text() or ""), attr_map))

    def handle_endtag(self, tag):
        if tag != self._open_tag:
            return
        self._depth -= 1
        if self._depth > 0:
            return
        close = self._source.find(">", self._offset())
        end = len(self._source) if close == -1 else close + 1
        self.blocks.append(PlaceholderBlock(self._open_start, end, self._open_attrs))
        self._open_tag = None

    def finish(self) -> list[PlaceholderBlock]:
        self.close()
        if self._open_tag is not None:
            self.blocks.append(PlaceholderBlock(self._open_start, self._open_head_end, self._open_attrs))
            self._open_tag = None
        return self.blocks


def scan_placeholder_blocks(html: str) -> list[PlaceholderBlock]:
    scanner = _PlaceholderScanner(html)
    scanner.feed(html)
    return scanner.finish()


def default_source(available: list[ImageSource]) -> ImageSource:
    for source in IMAGE_SOURCE_PRIORITY:
        if source in available:
            return source
    return "gemini"


def parse_placeholders(html: str, available: list[ImageSource]) -> list[Placeholder]:
    fallback = default_source(available)
    placeholders = []
    for idx, block in enumerate(scan_placeholder_blocks(html)):
        declared = (block.attrs.get("data-img-source") or "").strip().lower()
        source: ImageSource = declared if declared in available else fallback  # ty: ignore[invalid-assignment]
        placeholders.append(
            Placeholder(
                id=f"ph-{idx}",
                description=block.attrs["data-placeholder"] or "",
                width=_positive_int(block.attrs.get("data-ph-w")),
                height=_positive_int(block.attrs.get("data-ph-h")),
                preferred_source=source,
                search_query=(block.attrs.get("data-img-query") or "").strip() or None,
            )
        )
    return placeholders


async def _resolve_one(
    index: int,
    ph: Placeholder,
    credentials: Credentials,
    chain: list[ImageSource],
    fetch: ImageFetcher,
) -> str | None:
    candidates = [ph.preferred_source, *(s for s in chain if s != ph.preferred_source)]
    for source in candidates:
        try:
            image_bytes = await fetch(
                source, ph.description, ph.width, ph.height, credentials, query=ph.search_query
            )
            if image_bytes:
                logger.info("Image {idx}: {source} ok", idx=index, source=source)
                return to_data_uri(image_bytes, ph.width, ph.height)
            logger.warning("Image {idx}: {source} returned nothing, trying next", idx=index, source=source)
        except Exception as e:
            logger.warning("Image {idx}: {source} failed: {err}", idx=index, source=source, err=e)
    logger.warning("Image {idx}: all sources exhausted, keeping placeholder", idx=index)
    return None


async def generate_images(
    placeholders: list[Placeholder],
    credentials: Credentials,
    fetch: ImageFetcher = generate_image,
) -> dict[int, str]:
    """Resolve placeholders in batches of ``BATCH_SIZE``; returns index -> data URI.

    Each batch fully settles before the next starts. Exhausted placeholders
    have no entry.
    """
    chain = credentials.available_sources()
    image_map: dict[int, str] = {}
    if not placeholders or not chain:
        return image_map

    logger.info(
        "Generating {count} images, available sources: {chain}", count=len(placeholders), chain=", ".join(chain)
    )
    for offset in range(0, len(placeholders), BATCH_SIZE):
        batch = placeholders[offset : offset + BATCH_SIZE]
        results = await asyncio.gather(
            *(_resolve_one(offset + i, ph, credentials, chain, fetch) for i, ph in enumerate(batch))
        )
        for i, data_uri in enumerate(results):
            if data_uri:
                image_map[offset + i] = data_uri
    return image_map


def image_tag(src: str, ph: Placeholder) -> str:
    alt = html_lib.escape(ph.description, quote=True)
    return (
        f'<img src="{src}" alt="{alt}" '
        f'style="width:{ph.width}px;height:{ph.height}px;object-fit:cover;border-radius:8px;display:block;" />'
    )


def composite_images(html: str, placeholders: list[Placeholder], image_map: dict[int, str]) -> str:
    """Swap the n-th placeholder block for an <img> when ``image_map`` has entry n.

    Blocks without an image are left byte-identical.
    """
    pieces: list[str] = []
    cursor = 0
    for n, block in enumerate(scan_placeholder_blocks(html)):
        src = image_map.get(n)
        if src is None or n >= len(placeholders):
            continue
        pieces.append(html[cursor : block.start])
        pieces.append(image_tag(src, placeholders[n]))
        cursor = block.end
    pieces.append(html[cursor:])
    return "".join(pieces)


async def resolve_placeholders(
    html: str,
    credentials: Credentials,
    fetch: ImageFetcher = generate_image,
) -> ResolveResult:
    available = credentials.available_sources()
    if not available:
        return ResolveResult(html=html, image_count=0, skipped=True, reason=NO_KEYS_REASON)

    placeholders = parse_placeholders(html, available)
    if not placeholders:
        return ResolveResult(html=html, image_count=0, skipped=True, reason=NO_PLACEHOLDERS_REASON)

    image_map = await generate_images(placeholders, credentials, fetch)
    logger.info("Generated {n} images out of {total} placeholders", n=len(image_map), total=len(placeholders))
    return ResolveResult(
        html=composite_images(html, placeholders, image_map) if image_map else html,
        image_count=len(image_map),
    )
