"""Envelope codec for raw model HTML output, plus the frame-size post-process.

Two independent transforms:

- ``parse_html_with_size`` strips markdown fences, pulls out the
  ``<!--size:WIDTHxHEIGHT-->`` sentinel and trims prose around the markup.
- ``substitute_images`` swaps embedded base64 ``src`` payloads for numbered
  tokens before HTML is sent to a text model; the returned restore function
  puts them back byte-for-byte.
"""

import re
from collections.abc import Callable

from framegen.errors import ParseError
from framegen.models.pipeline import LayoutResult

_LEADING_FENCE = re.compile(r"^```(?:html)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```\s*$")
_INNER_FENCE = re.compile(r"```(?:html)?[ \t]*\n?([\s\S]*?)\n?```", re.IGNORECASE)

_SIZE_SENTINEL = re.compile(r"<!--size:(\d+)x(\d+)-->\n?")

_FIRST_TAG = re.compile(r"<(?:!DOCTYPE|html|head|style|div|section|main|body|meta|link)[>\s]", re.IGNORECASE)
_LAST_CLOSING_TAG = re.compile(r"[\s\S]*</(?:html|div|section|main|body)>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[A-Za-z!/]")

_DATA_URI_SRC = re.compile(r'src="(data:image/[^"]+)"')
_IMAGE_TOKEN = re.compile(r"\[IMAGE_PLACEHOLDER_(\d+)\]")

MAX_FRAME_HEIGHT = 800

_STYLE_ATTR = re.compile(r'(?<![\w-])(style\s*=\s*)(["\'])(.*?)\2', re.IGNORECASE | re.DOTALL)
_HEIGHT_DECL = re.compile(r"(?<![\w-])(min-height|height)\s*:\s*([^;]+?)\s*(?=;|$)", re.IGNORECASE)
_PX_VALUE = re.compile(r"^(\d+(?:\.\d+)?)px(\s*!important)?$", re.IGNORECASE)


def strip_fences(raw: str) -> str:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", cleaned, count=1), count=1)
    # Prose followed by a fenced block; a fence inside markup (e.g. in <pre>) is content
    inner = _INNER_FENCE.search(cleaned)
    if inner and not _ANY_TAG.search(cleaned[: inner.start()]):
        cleaned = inner.group(1)
    return cleaned.strip()


def extract_size(html: str) -> tuple[str, int | None, int | None]:
    """Remove the first size sentinel and return (body, width, height).

    A missing sentinel means the size is unspecified, not an error.
    """
    match = _SIZE_SENTINEL.search(html)
    if not match:
        return html, None, None
    width, height = int(match.group(1)), int(match.group(2))
    body = (html[: match.start()] + html[match.end():]).strip()
    if width <= 0 or height <= 0:
        return body, None, None
    return body, width, height


def trim_to_markup(html: str) -> str:
    """Drop any preamble before the first structural tag and anything after the last closing one."""
    first = _FIRST_TAG.search(html)
    if first and first.start() > 0:
        html = html[first.start():]
    last = _LAST_CLOSING_TAG.match(html)
    if last:
        html = last.group(0)
    return html.strip()


def parse_html_with_size(raw: str) -> LayoutResult:
    """Reduce raw model output to a ``LayoutResult``.

    Raises ParseError when nothing resembling markup is left.
    """
    body, width, height = extract_size(strip_fences(raw))
    html = trim_to_markup(body)
    if "<" not in html:
        raise ParseError("Model output contained no HTML")
    return LayoutResult(html=html, width=width, height=height)


def substitute_images(html: str) -> tuple[str, Callable[[str], str]]:
    """Replace each base64 image ``src`` with ``[IMAGE_PLACEHOLDER_n]`` (first occurrence = 0).

    Returns the substituted text and a function restoring the tokens in any
    later text, e.g. a model's rewrite of it. Unknown token numbers are left alone.
    """
    images: list[str] = []

    def _stash(match: re.Match[str]) -> str:
        images.append(match.group(1))
        return f'src="[IMAGE_PLACEHOLDER_{len(images) - 1}]"'

    stripped = _DATA_URI_SRC.sub(_stash, html)

    def restore(output: str) -> str:
        def _unstash(match: re.Match[str]) -> str:
            idx = int(match.group(1))
            return images[idx] if idx < len(images) else match.group(0)

        return _IMAGE_TOKEN.sub(_unstash, output)

    return stripped, restore


def _cap_declaration(match: re.Match[str]) -> str:
    prop, value = match.group(1), match.group(2)
    if value.strip().lower().startswith("100vh"):
        return f"{prop}:auto; max-height:{MAX_FRAME_HEIGHT}px; overflow:hidden"
    px = _PX_VALUE.match(value.strip())
    if px and float(px.group(1)) > MAX_FRAME_HEIGHT:
        return f"max-height:{MAX_FRAME_HEIGHT}px; overflow:hidden"
    return match.group(0)


def cap_frame_height(html: str) -> str:
    """Cap oversized or viewport-relative inline heights at 800px.

    Only ``style`` attributes are touched; ``<style>`` blocks are left as written.
    """

    def _rewrite_style(match: re.Match[str]) -> str:
        prefix, quote, body = match.group(1), match.group(2), match.group(3)
        return f"{prefix}{quote}{_HEIGHT_DECL.sub(_cap_declaration, body)}{quote}"

    return _STYLE_ATTR.sub(_rewrite_style, html)
