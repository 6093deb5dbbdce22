"""Prompt text for every model call the pipeline makes."""

from framegen.models.pipeline import ImageSource
from framegen.models.request import DesignRequest, Revision

STYLE_DIRECTIVES = (
    "Clean and minimal — lots of whitespace, simple typography, subtle colors",
    "Bold and modern — strong colors, large typography, high contrast",
    "Soft and rounded — rounded corners, pastel colors, friendly feel",
    "Sharp and professional — crisp edges, corporate palette, structured layout",
    "Creative and expressive — unique layout, gradients, interesting visual hierarchy",
)

DESIGNER_SYSTEM = "You are a world-class visual designer who writes self-contained HTML/CSS."
REVIEWER_SYSTEM = "You are a design quality reviewer."
CRITIC_SYSTEM = "You are a design critic."
PLANNER_SYSTEM = "You are a creative director planning visual style variations for a design."

IMAGE_TOKEN_NOTE = (
    "Note: [IMAGE_PLACEHOLDER_N] references are real images — keep all <img> tags "
    "and their src attributes exactly as-is."
)

_SOURCE_HINTS: dict[str, str] = {
    "unsplash": '- "unsplash" — BEST for real photographs: landscapes, people, food, architecture, objects',
    "dalle": '- "dalle" — BEST for custom illustrations, abstract art, conceptual imagery',
    "gemini": '- "gemini" — BEST for design assets, UI elements, icons, patterns, textures',
}

_PLACEHOLDER_MARKUP = (
    '<div data-placeholder="DESCRIPTION" data-ph-w="WIDTH" data-ph-h="HEIGHT" '
    'data-img-source="SOURCE" data-img-query="SEARCH_TERMS" '
    'style="width:WIDTHpx;height:HEIGHTpx;background:#e5e7eb;display:flex;align-items:center;'
    'justify-content:center;border-radius:8px;overflow:hidden;">\n'
    '  <span style="color:#9ca3af;font-size:12px;text-align:center;padding:8px;">DESCRIPTION</span>\n'
    "</div>"
)

_NO_MOTION = "ABSOLUTELY NO MOTION — no CSS animations, transitions, @keyframes, hover effects."

_SIZE_RULE = "SIZE — output a size comment on the FIRST line:\n<!--size:WIDTHxHEIGHT-->"


def style_for_index(index: int, concepts: list[str] | None = None) -> str:
    """Concept for this frame if one was planned, else the built-in rotation."""
    if concepts and index < len(concepts) and concepts[index].strip():
        return concepts[index]
    return STYLE_DIRECTIVES[index % len(STYLE_DIRECTIVES)]


def _custom_block(request: DesignRequest) -> str:
    if not request.custom_instructions:
        return ""
    return f"\n\nADDITIONAL INSTRUCTIONS FROM USER:\n{request.custom_instructions}\n"


def _sources_block(available: list[ImageSource]) -> str:
    if not available:
        return 'Set data-img-source="gemini" for all placeholders (only source available).'
    hints = "\n".join(_SOURCE_HINTS[s] for s in available)
    return (
        "AVAILABLE IMAGE SOURCES (choose the best one for each placeholder):\n"
        f"{hints}\n"
        "Choose the source that best matches what each placeholder needs. If the user names a "
        "source in their prompt, use that source."
    )


def layout_prompt(request: DesignRequest, available: list[ImageSource]) -> str:
    critique_block = ""
    if request.critique_feedback:
        critique_block = (
            "\n\nIMPROVEMENT FEEDBACK from previous variation (apply these learnings):\n"
            f"{request.critique_feedback}\n"
        )
    return f"""Generate a stunning, self-contained HTML/CSS design.{_custom_block(request)}{critique_block}

Design request: "{request.prompt}"
Style direction: {request.style_directive}

MANDATORY IMAGE PLACEHOLDERS:
Every design MUST contain 1-6 image placeholder elements. Do NOT use <img> tags with URLs,
colored boxes or CSS gradients as substitutes for real imagery. Use ONLY this exact format:

{_PLACEHOLDER_MARKUP}

REQUIRED ATTRIBUTES on every placeholder:
- data-placeholder = detailed image description/prompt
- data-ph-w / data-ph-h = pixel dimensions that fit the layout
- data-img-source = which image API to use: "unsplash", "dalle", or "gemini"
- data-img-query = SHORT search keywords for photo search (3-5 words max)

{_sources_block(available)}

{_SIZE_RULE}

DESIGN QUALITY RULES:
- Rich color palettes, gradients, accent colors
- Strong typography hierarchy (48-72px headlines, 14-16px body)
- Visual texture: layered shadows, glassmorphism, patterns
- System font stack: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif

{_NO_MOTION}

OUTPUT:
- First line: <!--size:WIDTHxHEIGHT-->
- Then HTML only — no explanation, no markdown, no code fences
- ALL CSS in a <style> tag at the top
- Self-contained, no external dependencies
- Generate exactly ONE design"""


def revision_prompt(request: DesignRequest, revision: Revision, stripped_html: str) -> str:
    return f"""You are EDITING an existing design — not creating a new one.{_custom_block(request)}

Here is the EXISTING HTML design:

{stripped_html}

{IMAGE_TOKEN_NOTE}

The original request was: "{request.prompt}"

The user wants this specific change: "{revision.instruction}"

CRITICAL RULES:
- Return exactly ONE design — the existing design with ONLY the requested change applied
- Do NOT generate multiple variations, alternatives, or options
- PRESERVE the existing layout, structure, and content
- ONLY modify what was specifically requested — change nothing else

If the change needs NEW imagery, add placeholders in this format:
{_PLACEHOLDER_MARKUP}

{_NO_MOTION}

{_SIZE_RULE}

OUTPUT: HTML only — no explanation, no markdown, no code fences. ALL CSS in a <style> tag."""


def review_prompt(prompt: str, stripped_html: str, width: int | None, height: int | None) -> str:
    return f"""Review this HTML/CSS design and fix any issues.

Original request: "{prompt}"
Target size: {width or "auto"}x{height or "auto"}

Current HTML:
{stripped_html}

{IMAGE_TOKEN_NOTE}

REVIEW CHECKLIST:
1. Typography — proper hierarchy, readable sizes, good line-height
2. Spacing — consistent padding/margins, nothing cramped
3. Colors — harmonious palette, sufficient contrast
4. Layout — proper alignment, no overflow issues
5. Images — properly sized, good aspect ratios, rounded corners match design
6. Overall polish — does it look professional and intentional?

If the design is good, return it unchanged.
If there are issues, fix them and return the corrected version.

RULES:
- Return ONLY the HTML — no explanation, no markdown, no code fences
- Start with <!--size:WIDTHxHEIGHT--> on the first line
- Keep the same structure and images (don't remove <img> tags)
- {_NO_MOTION}
- Self-contained, no external dependencies"""


def critique_prompt(prompt: str, stripped_html: str) -> str:
    return f"""Analyze this HTML/CSS design and give specific, actionable feedback for improving the NEXT variation.

Original request: "{prompt}"

HTML:
{stripped_html}

Provide 3-5 bullet points. Focus on:
- What works well (keep this in the next variation)
- What could be better (typography, spacing, color, layout)
- A different creative direction to try

Be specific and concise. This feedback will be injected into the next generation prompt."""


def plan_prompt(prompt: str) -> str:
    return f"""Given this design request, decide how many distinct visual directions to create (between 2 and 6) and describe each one.

Design request: "{prompt}"

Each concept must be a VISUAL STYLE DIRECTION (colors, typography, layout style, mood), not a
different product, brand, or content idea. Every concept is a different visual take on the SAME request.

Consider:
- Simple components (buttons, inputs) → 2-3 concepts
- Cards, modals, forms → 3-4 concepts
- Marketing assets (social cards, banners) → 4-5 concepts
- Full pages (landing, dashboard) → 2-3 concepts

Respond in EXACTLY this JSON format, nothing else:
{{"count":N,"concepts":["visual style direction 1","visual style direction 2"]}}"""
