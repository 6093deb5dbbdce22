import json
import re

from loguru import logger

from framegen.config import settings
from framegen.gateway.text import generate_text
from framegen.models.request import Credentials
from framegen.models.response import PlanResponse
from framegen.pipeline import prompts
from framegen.pipeline.sequencer import TextGenerator

DEFAULT_PLAN = PlanResponse(count=4, concepts=[])

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_plan(text: str) -> PlanResponse:
    """Pull the plan JSON out of a model reply; anything unusable gives the default plan."""
    match = _JSON_OBJECT.search(text)
    if not match:
        return DEFAULT_PLAN
    try:
        plan = json.loads(match.group(0))
    except json.JSONDecodeError:
        return DEFAULT_PLAN
    if not isinstance(plan, dict):
        return DEFAULT_PLAN

    try:
        count = int(plan.get("count") or 4)
    except (TypeError, ValueError):
        count = 4
    count = min(max(count, 2), 6)
    raw_concepts = plan.get("concepts")
    if not isinstance(raw_concepts, list):
        raw_concepts = []
    concepts = [str(c).strip() for c in raw_concepts if str(c).strip()]
    return PlanResponse(count=count, concepts=concepts[:count])


async def plan_concepts(
    prompt: str,
    credentials: Credentials,
    model: str | None = None,
    text_fn: TextGenerator = generate_text,
) -> PlanResponse:
    """Decide how many style directions to generate for ``prompt``. Never raises."""
    try:
        reply = await text_fn(
            prompts.PLANNER_SYSTEM,
            prompts.plan_prompt(prompt),
            model or settings.model_name,
            settings.plan_max_tokens,
            credentials.anthropic_api_key,
        )
    except Exception as e:
        logger.warning("Planning failed, using default plan: {err}", err=e)
        return DEFAULT_PLAN
    plan = parse_plan(reply)
    logger.info("Planned {count} concepts ({named} named)", count=plan.count, named=len(plan.concepts))
    return plan
