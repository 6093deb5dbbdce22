import json

import pytest

from framegen.errors import AuthError
from framegen.models.request import Credentials
from framegen.pipeline import prompts
from framegen.pipeline.planner import DEFAULT_PLAN, parse_plan, plan_concepts

from .conftest import FakeText


def test_parse_plan_reads_json_from_prose():
    reply = 'Here is my plan:\n{"count": 3, "concepts": ["Brutalist", "Pastel", "Editorial"]}\nEnjoy!'
    plan = parse_plan(reply)
    assert plan.count == 3
    assert plan.concepts == ["Brutalist", "Pastel", "Editorial"]


@pytest.mark.parametrize(("raw_count", "expected"), [(1, 2), (9, 6), ("5", 5), ("lots", 4), (None, 4)])
def test_parse_plan_clamps_count(raw_count, expected):
    assert parse_plan(json.dumps({"count": raw_count, "concepts": []})).count == expected


def test_parse_plan_trims_concepts_to_count():
    plan = parse_plan('{"count": 2, "concepts": ["a", "  ", "b", "c"]}')
    assert plan.concepts == ["a", "b"]


@pytest.mark.parametrize("reply", ["no json here", "{not json}", '["a", "b"]'])
def test_parse_plan_falls_back_to_default(reply):
    assert parse_plan(reply) == DEFAULT_PLAN


def test_parse_plan_ignores_non_list_concepts():
    plan = parse_plan('{"count": 3, "concepts": "abc"}')
    assert plan.count == 3
    assert plan.concepts == []


@pytest.mark.asyncio
async def test_plan_concepts_uses_planner_prompt():
    fake = FakeText()
    plan = await plan_concepts("Onboarding flow", Credentials(anthropic_api_key="sk"), text_fn=fake)

    assert plan.count == 3
    (call,) = fake.calls_for(prompts.PLANNER_SYSTEM)
    assert "Onboarding flow" in call["user_content"]
    assert call["api_key"] == "sk"


@pytest.mark.asyncio
async def test_plan_concepts_never_raises():
    fake = FakeText(plan=AuthError("No Anthropic API key configured"))
    assert await plan_concepts("x", Credentials(), text_fn=fake) == DEFAULT_PLAN
