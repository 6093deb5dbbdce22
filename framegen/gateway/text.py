"""Text half of the model gateway.

One call = one single-turn Claude query with no tools. Request construction
and response extraction live here; retry policy does not.
"""

import logging

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKError,
    ResultMessage,
    TextBlock,
    query,
)

from framegen.errors import AuthError, UpstreamError

logger = logging.getLogger(__name__)

# Substrings the CLI reports when the key is rejected.
_AUTH_MARKERS = ("invalid api key", "authentication_error", "authentication_failed", "401")


def build_options(system_prompt: str, model_id: str, max_tokens: int, api_key: str) -> ClaudeAgentOptions:
    """Single-turn, tool-less options scoped to the caller's credential."""
    return ClaudeAgentOptions(
        system_prompt=system_prompt,
        model=model_id,
        tools=[],
        allowed_tools=[],
        max_turns=1,
        env={
            "ANTHROPIC_API_KEY": api_key,
            "CLAUDE_CODE_MAX_OUTPUT_TOKENS": str(max_tokens),
        },
    )


def _looks_like_auth_failure(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)


async def generate_text(
    system_prompt: str,
    user_content: str,
    model_id: str,
    max_tokens: int,
    api_key: str | None,
) -> str:
    """Return the model's text reply.

    Raises AuthError for a missing or rejected key and UpstreamError for any
    other failure, including an empty reply.
    """
    if not api_key:
        raise AuthError("No Anthropic API key configured")

    options = build_options(system_prompt, model_id, max_tokens, api_key)

    chunks: list[str] = []
    result: ResultMessage | None = None
    try:
        async for message in query(prompt=user_content, options=options):
            if isinstance(message, AssistantMessage):
                if getattr(message, "error", None) == "authentication_failed":
                    raise AuthError("Anthropic rejected the API key")
                chunks.extend(block.text for block in message.content if isinstance(block, TextBlock))
            elif isinstance(message, ResultMessage):
                result = message
    except ClaudeSDKError as e:
        if _looks_like_auth_failure(str(e)):
            raise AuthError(f"Anthropic rejected the API key: {e}") from e
        raise UpstreamError(f"Text generation failed: {e}") from e

    if result is not None and result.is_error:
        if _looks_like_auth_failure(result.result):
            raise AuthError(f"Anthropic rejected the API key: {result.result}")
        raise UpstreamError(f"Text generation failed: {result.result or result.subtype}")

    text = (result.result if result is not None and result.result else "") or "".join(chunks)
    if not text.strip():
        raise UpstreamError(f"Model '{model_id}' returned an empty response")

    logger.debug("Model %s returned %d chars", model_id, len(text))
    return text
