import base64
import re

import pytest

from framegen.models.request import Credentials
from framegen.pipeline import prompts

# Minimal valid 1x1 PNG as base64
TINY_PNG = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
TINY_PNG_BYTES = base64.b64decode(TINY_PNG)

PLACEHOLDER_DIV = (
    '<div data-placeholder="{desc}" data-ph-w="{w}" data-ph-h="{h}"{extra} '
    'style="width:{w}px;height:{h}px;background:#e5e7eb;">'
    '<span style="color:#9ca3af;">{desc}</span></div>'
)


def placeholder(desc: str, w: int = 400, h: int = 300, source: str | None = None, query: str | None = None) -> str:
    extra = ""
    if source:
        extra += f' data-img-source="{source}"'
    if query:
        extra += f' data-img-query="{query}"'
    return PLACEHOLDER_DIV.format(desc=desc, w=w, h=h, extra=extra)


LAYOUT_HTML = (
    "<style>.card{padding:24px}</style>"
    '<div class="card"><h1>Pro plan</h1>'
    + placeholder("Team working in a bright office", 400, 240, "unsplash", "office team")
    + "<p>$29 per month</p></div>"
)

LAYOUT_REPLY = f"<!--size:480x640-->\n{LAYOUT_HTML}"

CRITIQUE_TEXT = "- Headline hierarchy works\n- Tighten card padding\n- Try a dark palette next"


class FakeText:
    """Stands in for gateway.text.generate_text, answering by system prompt."""

    def __init__(self, layout=LAYOUT_REPLY, review=None, critique=CRITIQUE_TEXT, plan='{"count":3,"concepts":["a","b","c"]}'):
        self.replies = {
            prompts.DESIGNER_SYSTEM: layout,
            prompts.REVIEWER_SYSTEM: review,
            prompts.CRITIC_SYSTEM: critique,
            prompts.PLANNER_SYSTEM: plan,
        }
        self.calls: list[dict] = []

    def calls_for(self, system_prompt: str) -> list[dict]:
        return [c for c in self.calls if c["system_prompt"] == system_prompt]

    async def __call__(self, system_prompt, user_content, model_id, max_tokens, api_key):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_content": user_content,
                "model": model_id,
                "max_tokens": max_tokens,
                "api_key": api_key,
            }
        )
        reply = self.replies[system_prompt]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(user_content)
        if reply is None and system_prompt == prompts.REVIEWER_SYSTEM:
            # Echo the HTML under review back unchanged
            match = re.search(r"Current HTML:\n(.*?)\n\nNote:", user_content, re.DOTALL)
            return match.group(1) if match else ""
        return reply


@pytest.fixture
def fake_text():
    return FakeText()


@pytest.fixture
def no_image_credentials():
    return Credentials(anthropic_api_key="sk-ant-test")


@pytest.fixture
def all_credentials():
    return Credentials(
        anthropic_api_key="sk-ant-test",
        openai_api_key="sk-openai",
        gemini_api_key="gemini-key",
        unsplash_access_key="unsplash-key",
    )


@pytest.fixture(autouse=True)
def _clear_server_credentials(monkeypatch):
    """Keep server-side keys from the environment out of every test."""
    from framegen.config import settings

    for field in ("anthropic_api_key", "openai_api_key", "gemini_api_key", "unsplash_access_key"):
        monkeypatch.setattr(settings, field, "")
