"""Image half of the model gateway: Unsplash search, DALL-E and Gemini.

Each provider returns raw image bytes, or None when it answered successfully
but had nothing to offer. No retries here; the placeholder resolver owns the
fallback chain.
"""

import base64
import io
import logging
import re
from typing import Literal

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from PIL import Image, UnidentifiedImageError

from framegen.config import settings
from framegen.errors import AuthError, NotAvailable, UpstreamError
from framegen.models.pipeline import ImageSource
from framegen.models.request import Credentials

logger = logging.getLogger(__name__)

Orientation = Literal["landscape", "portrait", "square"]

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"

# DALL-E 3 only accepts these three sizes.
DALLE_SIZES: dict[Orientation, str] = {
    "landscape": "1792x1024",
    "portrait": "1024x1792",
    "square": "1024x1024",
}

UNSPLASH_ORIENTATIONS: dict[Orientation, str] = {
    "landscape": "landscape",
    "portrait": "portrait",
    "square": "squarish",
}

GEMINI_ASPECT_RATIOS: dict[Orientation, str] = {
    "landscape": "16:9",
    "portrait": "9:16",
    "square": "1:1",
}

_ASSET_SUFFIX = "Clean, professional design asset suitable for web/marketing. No text unless specifically requested."


def orientation(width: int, height: int, threshold: float = 1.3) -> Orientation:
    if width > height * threshold:
        return "landscape"
    if height > width * threshold:
        return "portrait"
    return "square"


def unsplash_query(description: str, query: str | None = None) -> str:
    """Short keyword query: the explicit query, else the description's first clause, max five words."""
    raw = query or description
    first_clause = re.split(r"[,.]", raw, maxsplit=1)[0]
    return " ".join(first_clause.split()[:5])


async def fetch_unsplash(
    description: str, width: int, height: int, access_key: str, query: str | None = None
) -> bytes | None:
    params = {
        "query": unsplash_query(description, query),
        "per_page": 1,
        "orientation": UNSPLASH_ORIENTATIONS[orientation(width, height)],
    }
    headers = {"Authorization": f"Client-ID {access_key}"}
    try:
        async with httpx.AsyncClient(timeout=settings.image_timeout) as client:
            resp = await client.get(UNSPLASH_SEARCH_URL, params=params, headers=headers)
            if resp.status_code in (401, 403):
                raise AuthError(f"Unsplash rejected the access key ({resp.status_code})")
            if resp.status_code != 200:
                raise UpstreamError(f"Unsplash search failed: {resp.status_code} {resp.reason_phrase}")

            results = resp.json().get("results") or []
            if not results:
                logger.warning("Unsplash: no results for %r", params["query"])
                return None

            # raw URLs already carry an ixid query; crop params are merged onto it
            image_url = httpx.URL(results[0]["urls"]["raw"]).copy_merge_params(
                {"w": width, "h": height, "fit": "crop", "fm": "jpg", "q": 80}
            )
            image_resp = await client.get(image_url)
            if image_resp.status_code != 200:
                raise UpstreamError(f"Unsplash download failed: {image_resp.status_code}")
            return image_resp.content or None
    except httpx.HTTPError as e:
        raise UpstreamError(f"Unsplash request failed: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(f"Unsplash returned a malformed response: {e}") from e


async def fetch_dalle(description: str, width: int, height: int, api_key: str) -> bytes | None:
    client = openai.AsyncOpenAI(api_key=api_key, max_retries=0, timeout=settings.image_timeout)
    try:
        resp = await client.images.generate(
            model=settings.dalle_model,
            prompt=f"{description}. {_ASSET_SUFFIX}",
            n=1,
            size=DALLE_SIZES[orientation(width, height)],
            response_format="b64_json",
        )
    except openai.AuthenticationError as e:
        raise AuthError(f"OpenAI rejected the API key: {e}") from e
    except openai.OpenAIError as e:
        raise UpstreamError(f"DALL-E request failed: {e}") from e

    if not resp.data or not resp.data[0].b64_json:
        return None
    return base64.b64decode(resp.data[0].b64_json)


async def fetch_gemini(description: str, width: int, height: int, api_key: str) -> bytes | None:
    client = genai.Client(api_key=api_key)
    config = genai_types.GenerateContentConfig(
        response_modalities=["TEXT", "IMAGE"],
        image_config=genai_types.ImageConfig(aspect_ratio=GEMINI_ASPECT_RATIOS[orientation(width, height)]),
    )
    try:
        response = await client.aio.models.generate_content(
            model=settings.gemini_image_model,
            contents=f"Generate a high quality design asset image: {description}. {_ASSET_SUFFIX} Output only the image.",
            config=config,
        )
    except genai_errors.ClientError as e:
        if e.code in (401, 403) or "api key" in str(e).lower():
            raise AuthError(f"Gemini rejected the API key: {e}") from e
        raise UpstreamError(f"Gemini request failed: {e}") from e
    except genai_errors.APIError as e:
        raise UpstreamError(f"Gemini request failed: {e}") from e

    for candidate in response.candidates or []:
        parts = candidate.content.parts if candidate.content else None
        for part in parts or []:
            inline = part.inline_data
            if inline and inline.data and (inline.mime_type or "").startswith("image/"):
                return inline.data
    return None


async def generate_image(
    source: ImageSource,
    description: str,
    width: int,
    height: int,
    credentials: Credentials,
    query: str | None = None,
) -> bytes | None:
    """Fetch one image from ``source``.

    Raises NotAvailable when the source has no credential, AuthError when the
    credential is rejected and UpstreamError for anything else.
    """
    key = credentials.for_source(source)
    if not key:
        raise NotAvailable(f"No credential configured for image source '{source}'")

    match source:
        case "unsplash":
            return await fetch_unsplash(description, width, height, key, query)
        case "dalle":
            return await fetch_dalle(description, width, height, key)
        case "gemini":
            return await fetch_gemini(description, width, height, key)
    raise NotAvailable(f"Unknown image source '{source}'")


def to_data_uri(image_bytes: bytes, width: int, height: int) -> str:
    """Downscale to at most 2x the slot size and embed as a base64 data URI.

    Unreadable bytes are an upstream failure so the caller moves on to the next source.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UpstreamError(f"Provider returned unreadable image data: {e}") from e

    img.thumbnail((width * 2, height * 2), Image.LANCZOS)

    has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)
    buf = io.BytesIO()
    if has_alpha:
        img.save(buf, format="PNG", optimize=True)
        mime = "image/png"
    else:
        if img.mode != "RGB":
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=85)
        mime = "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(buf.getvalue()).decode('ascii')}"
