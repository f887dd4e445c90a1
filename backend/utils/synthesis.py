"""
Content synthesis — turns ranked questions into structured content via Claude.

One JSON-producing call per content type:
  generate_faq()              FAQ items
  generate_comparison()       brand vs competitor feature table
  generate_blog()             title, meta description, ordered sections
  generate_troubleshooting()  issue / solution items with confidence + sources

Every generator raises SynthesisError when the model output is empty, is
not a JSON object, or does not fit the content shape. There is no retry.

validate_troubleshooting_items() backs the VALIDATE stage: it never raises
an item's confidence, it only fills in "missing" where none was given.

troubleshooting_assistant() is a chat turn for reviewers editing troubleshooting
items; extract_solution() pulls the SOLUTION_START / STEPS_START summary out
of its reply.

Env vars:
    SYNTHESIS_MODEL   Claude model id (default: claude-sonnet-4-5)
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

import anthropic
import pydantic

from utils.errors import SynthesisError, ValidationError
from utils.models import (
    AssistantReply,
    BlogContent,
    BlogSection,
    Breadcrumb,
    ChatMessage,
    ComparisonContent,
    ComparisonItem,
    ContentType,
    FactualConfidence,
    FAQContent,
    FAQItem,
    RankedQuestion,
    TroubleshootingContent,
    TroubleshootingItem,
    TroubleshootingSource,
)
from utils.templating import blog_schema, comparison_schema, faq_schema, troubleshooting_schema

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.environ.get("SYNTHESIS_MODEL", "claude-sonnet-4-5")
MAX_TOKENS = 4096

TEMPLATE_INSTRUCTIONS = """This content is a TEMPLATE that will be reused for many locations of the same business.
Wherever you would mention a location-specific fact, write the placeholder token instead:
  {{entityName}} — the location's name
  {{city}} — the city
  {{state}} — the state or province
  {{region}} — the region or province code
  {{address}} — the street address
  {{phone}} — the phone number
Never invent a concrete city, address or phone number."""


@dataclass
class SynthesisContext:
    """Everything a generator needs to build its prompt."""
    vertical: str
    questions: list[RankedQuestion] = field(default_factory=list)
    brand: Optional[str] = None
    region: Optional[str] = None
    custom_instructions: Optional[str] = None
    template_mode: bool = False

    @property
    def display_brand(self) -> str:
        return self.brand or f"a local {self.vertical} business"

    @property
    def display_region(self) -> str:
        if self.template_mode:
            return "{{city}}"
        return self.region or ""


# ── Helpers ──────────────────────────────────────────────────────────────────

def strip_json_fences(text: str) -> str:
    """Remove ```json ... ``` fences the model sometimes wraps around JSON."""
    text = text.strip()
    match = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.S)
    return match.group(1) if match else text


def parse_json_object(text: Optional[str]) -> dict:
    """Parse model output into a dict or raise SynthesisError."""
    if not text or not text.strip():
        raise SynthesisError("No response from model")
    try:
        data = json.loads(strip_json_fences(text))
    except json.JSONDecodeError as e:
        raise SynthesisError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SynthesisError("Model returned JSON that is not an object")
    return data


def _string_field(data: dict, key: str) -> Optional[str]:
    """A top-level string field from model output, or None when absent."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SynthesisError(f"Model returned a non-string {key!r}")
    return value.strip() or None


def _question_list(questions: list[RankedQuestion], limit: Optional[int] = None, with_context: bool = False) -> str:
    lines = []
    for i, q in enumerate(questions[:limit] if limit else questions, 1):
        line = f"{i}. {q.question}"
        if with_context and q.snippet:
            line += f" (Context: {q.snippet})"
        lines.append(line)
    return "\n".join(lines)


def _finish_prompt(prompt: str, ctx: SynthesisContext) -> str:
    if ctx.template_mode:
        prompt += f"\n\n{TEMPLATE_INSTRUCTIONS}"
    if ctx.custom_instructions:
        prompt += f"\n\nAdditional instructions:\n{ctx.custom_instructions}"
    return prompt


async def _complete_json(client: anthropic.AsyncAnthropic, prompt: str, model: Optional[str] = None) -> dict:
    """Single Claude call that must return one JSON object."""
    response = await client.messages.create(
        model=model or DEFAULT_MODEL,
        max_tokens=MAX_TOKENS,
        system="You produce structured website content. Respond with a single JSON object and nothing else.",
        messages=[{"role": "user", "content": prompt}],
    )
    text = "".join(
        block.text for block in response.content if getattr(block, "type", "text") == "text"
    )
    return parse_json_object(text)


# ── FAQ ──────────────────────────────────────────────────────────────────────

async def generate_faq(client: anthropic.AsyncAnthropic, ctx: SynthesisContext) -> FAQContent:
    logger.info("Generating FAQ for %d questions", len(ctx.questions))
    where = f" in {ctx.display_region}" if ctx.display_region else ""

    prompt = f"""You are a content writer for {ctx.display_brand}{where}.

Generate a concise, factual FAQ based on these questions:
{_question_list(ctx.questions)}

Requirements:
- Answer 5-8 of the best questions (prioritize commercial intent and local relevance)
- Each answer should be 2-3 sentences maximum
- Be factual, helpful, and specific to {ctx.display_brand}{where}
- Tone should be friendly and professional"""
    prompt = _finish_prompt(prompt, ctx)
    prompt += """

Return ONLY a JSON object with this exact structure:
{
  "items": [
    {"question": "The question text", "answer": "The answer text"}
  ]
}"""

    generated = await _complete_json(client, prompt)
    try:
        items = [FAQItem.model_validate(item) for item in generated.get("items") or []]
    except pydantic.ValidationError as e:
        raise SynthesisError(f"FAQ items did not match the expected shape: {e}") from e
    if not items:
        raise SynthesisError("Model returned no FAQ items")

    logger.info("Generated FAQ with %d items", len(items))
    return FAQContent(
        brand=ctx.brand,
        region=ctx.region or "",
        items=items,
        schema_org=faq_schema(items),
        is_template=ctx.template_mode,
    )


# ── Comparison ───────────────────────────────────────────────────────────────

async def generate_comparison(client: anthropic.AsyncAnthropic, ctx: SynthesisContext) -> ComparisonContent:
    logger.info("Generating comparison for %d questions", len(ctx.questions))

    prompt = f"""You are a content writer for {ctx.display_brand} in {ctx.vertical}.

Analyze these questions and generate a product/service comparison:
{_question_list(ctx.questions, limit=5)}

Requirements:
- Create a comparison table format
- Identify the main competitor or alternative
- Compare 5-7 key factors (price, features, quality, convenience, etc.)
- Each comparison should have: feature name, your brand's value, competitor's value
- Be factual and specific"""
    prompt = _finish_prompt(prompt, ctx)
    prompt += """

Return ONLY a JSON object with this exact structure:
{
  "competitor": "Competitor name or alternative",
  "items": [
    {"feature": "Feature name", "brandValue": "Value for your brand", "competitorValue": "Value for competitor"}
  ]
}"""

    generated = await _complete_json(client, prompt)
    try:
        items = [ComparisonItem.model_validate(item) for item in generated.get("items") or []]
    except pydantic.ValidationError as e:
        raise SynthesisError(f"Comparison items did not match the expected shape: {e}") from e
    if not items:
        raise SynthesisError("Model returned no comparison items")

    competitor = _string_field(generated, "competitor")
    logger.info("Generated comparison with %d features", len(items))
    return ComparisonContent(
        brand=ctx.brand,
        competitor=competitor,
        category=ctx.vertical,
        region=ctx.region or None,
        items=items,
        schema_org=comparison_schema(ctx.brand or ctx.vertical, competitor, ctx.vertical),
        is_template=ctx.template_mode,
    )


# ── Blog ─────────────────────────────────────────────────────────────────────

async def generate_blog(client: anthropic.AsyncAnthropic, ctx: SynthesisContext) -> BlogContent:
    logger.info("Generating blog for %d questions", len(ctx.questions))
    where = f" ({ctx.display_region})" if ctx.display_region else ""

    prompt = f"""You are a content writer. Create a detailed blog article about {ctx.display_brand} in {ctx.vertical}{where}.

Questions to address:
{_question_list(ctx.questions, limit=8)}

Requirements:
- Write a compelling title
- Create 4-6 sections with headings and content
- Each section should have a heading (H2) and 2-3 paragraphs
- Write in a friendly, informative tone
- Include a meta description (150 characters)"""
    prompt = _finish_prompt(prompt, ctx)
    prompt += """

Return ONLY a JSON object with this structure:
{
  "title": "Article title",
  "metaDescription": "SEO meta description",
  "sections": [
    {"heading": "Section heading", "content": "Section content (2-3 paragraphs)", "order": 1}
  ]
}"""

    generated = await _complete_json(client, prompt)
    raw_sections = generated.get("sections") or []
    try:
        sections = [
            BlogSection.model_validate({**s, "order": s.get("order") or i})
            for i, s in enumerate(raw_sections, 1)
        ]
    except (pydantic.ValidationError, AttributeError, TypeError) as e:
        raise SynthesisError(f"Blog sections did not match the expected shape: {e}") from e
    if not sections:
        raise SynthesisError("Model returned no blog sections")

    title = _string_field(generated, "title") or (
        f"{ctx.display_brand} in {ctx.display_region}: Everything You Need to Know"
    )
    logger.info("Generated blog with %d sections", len(sections))
    return BlogContent(
        title=title,
        brand=ctx.brand,
        vertical=ctx.vertical,
        region=ctx.region or None,
        meta_description=_string_field(generated, "metaDescription") or title,
        sections=sections,
        schema_org=blog_schema(title, ctx.brand or ctx.vertical),
        is_template=ctx.template_mode,
    )


# ── Troubleshooting ──────────────────────────────────────────────────────────

def _coerce_confidence(value) -> Optional[FactualConfidence]:
    try:
        return FactualConfidence(str(value).lower()) if value else None
    except ValueError:
        return None


def _coerce_steps(raw) -> list[str]:
    if not isinstance(raw, list):
        return []
    steps = []
    for step in raw:
        if isinstance(step, dict):
            step = step.get("step") or step.get("text") or ""
        step = str(step).strip()
        if step:
            steps.append(step)
    return steps


def _coerce_item(raw: dict) -> TroubleshootingItem:
    sources = [
        TroubleshootingSource.model_validate(s)
        for s in raw.get("sources") or []
        if isinstance(s, dict) and s.get("url")
    ]
    return TroubleshootingItem(
        issue=raw.get("issue") or "",
        solution=raw.get("solution") or "",
        steps=_coerce_steps(raw.get("steps")),
        sources=sources,
        factual_confidence=_coerce_confidence(raw.get("factualConfidence")),
    )


async def generate_troubleshooting(client: anthropic.AsyncAnthropic, ctx: SynthesisContext) -> TroubleshootingContent:
    logger.info("Generating troubleshooting article for %d issues", len(ctx.questions))
    where = f" ({ctx.display_region})" if ctx.display_region else ""

    prompt = f"""You are a technical support writer creating a troubleshooting article for {ctx.display_brand} in {ctx.vertical}{where}.

Analyze these common issues from search results:
{_question_list(ctx.questions, with_context=True)}

Requirements:
- Generate 8-12 troubleshooting items (problem-solution pairs)
- Each item should have a clear issue description, a concise solution overview,
  and step-by-step instructions (2-4 steps) when applicable
- Be factual and specific - only provide information that can be verified
- Assign confidence levels: "high" (verifiable from sources), "medium" (likely but uncertain),
  "low" (speculative), "missing" (cannot verify)
- Include source citations when available (URLs from search results)
- Support category should be relevant to the issues (e.g. "Technical Support", "Account Issues")
- Generate a clear, descriptive title"""
    prompt = _finish_prompt(prompt, ctx)
    prompt += """

Return ONLY a JSON object with this exact structure:
{
  "title": "Troubleshooting article title",
  "supportCategory": "Category name",
  "items": [
    {
      "issue": "Issue description",
      "solution": "Solution overview",
      "steps": ["Step 1", "Step 2"],
      "factualConfidence": "high|medium|low|missing",
      "sources": [{"url": "Source URL", "snippet": "Relevant snippet"}]
    }
  ]
}"""

    generated = await _complete_json(client, prompt)
    try:
        items = [_coerce_item(raw) for raw in generated.get("items") or [] if isinstance(raw, dict)]
    except pydantic.ValidationError as e:
        raise SynthesisError(f"Troubleshooting items did not match the expected shape: {e}") from e
    items = [item for item in items if item.issue]
    if not items:
        raise SynthesisError("Model returned no troubleshooting items")

    brand_label = ctx.brand or ctx.vertical
    title = _string_field(generated, "title") or f"Troubleshooting {brand_label} Issues"
    category = _string_field(generated, "supportCategory") or "Technical Support"

    logger.info("Generated troubleshooting article with %d items", len(items))
    return TroubleshootingContent(
        title=title,
        brand=ctx.brand,
        vertical=ctx.vertical,
        region=ctx.region or None,
        support_category=category,
        breadcrumbs=[
            Breadcrumb(label="Home", url="/"),
            Breadcrumb(label="Support", url="/support"),
            Breadcrumb(label=category),
            Breadcrumb(label=brand_label),
        ],
        items=items,
        schema_org=troubleshooting_schema(title, brand_label),
        is_template=ctx.template_mode,
    )


def validate_troubleshooting_items(items: list[TroubleshootingItem]) -> list[TroubleshootingItem]:
    """
    Classify factual confidence. High-confidence sourced items pass untouched;
    everything else passes unchanged except a missing confidence becomes
    "missing". Confidence is never raised.
    """
    validated = []
    for item in items:
        if item.factual_confidence is None:
            item = item.model_copy(update={"factual_confidence": FactualConfidence.MISSING})
        validated.append(item)

    needs_review = sum(1 for i in validated if i.factual_confidence == FactualConfidence.MISSING)
    logger.info("Validated %d items, %d need manual review", len(validated), needs_review)
    return validated


# ── Troubleshooting assistant ────────────────────────────────────────────────

ASSISTANT_MAX_TOKENS = 1024
SOLUTION_PATTERN = re.compile(r"SOLUTION_START\s*(.*?)\s*STEPS_START", re.S)
STEPS_PATTERN = re.compile(r"STEPS_START\s*(.*?)\s*STEPS_END", re.S)
STEP_PREFIX = re.compile(r"^(?:\d+[.)]|[-*])\s*")


@dataclass
class AssistantContext:
    issue: str
    brand: str
    vertical: Optional[str] = None
    region: Optional[str] = None


def _assistant_system_prompt(ctx: AssistantContext) -> str:
    lines = [f"- Issue: {ctx.issue}", f"- Brand: {ctx.brand}"]
    if ctx.vertical:
        lines.append(f"- Vertical: {ctx.vertical}")
    if ctx.region:
        lines.append(f"- Region: {ctx.region}")
    context = "\n".join(lines)

    return f"""You are a helpful technical support assistant helping to create troubleshooting solutions.

Context:
{context}

Your goal is to help create a clear, actionable troubleshooting solution. When the user provides enough information, generate a complete solution with:
1. A concise solution overview (2-3 sentences)
2. Step-by-step instructions (2-4 steps) when applicable

Answer conversationally. If the user asks for a complete solution, provide it in this format:
SOLUTION_START
[Solution overview text]
STEPS_START
[Step 1]
[Step 2]
...
STEPS_END
SOLUTION_END"""


def extract_solution(text: str) -> tuple[Optional[str], list[str]]:
    """
    Pull the solution overview and steps out of an assistant reply.

    Without markers, a reply longer than 50 characters falls back to its first
    substantial paragraph as the solution, with no steps.
    """
    solution = None
    steps: list[str] = []

    match = SOLUTION_PATTERN.search(text)
    if match:
        solution = match.group(1).strip() or None

    match = STEPS_PATTERN.search(text)
    if match:
        for line in match.group(1).splitlines():
            step = STEP_PREFIX.sub("", line.strip()).strip()
            if step:
                steps.append(step)

    if solution is None and len(text) > 50:
        paragraphs = [p.strip() for p in text.split("\n\n") if len(p.strip()) > 20]
        if paragraphs:
            solution = paragraphs[0]

    return solution, steps


async def troubleshooting_assistant(
    client: anthropic.AsyncAnthropic,
    messages: list[ChatMessage],
    ctx: AssistantContext,
    model: Optional[str] = None,
) -> AssistantReply:
    """One chat turn helping a reviewer write a troubleshooting solution."""
    turns = [
        {"role": "user" if m.role == "user" else "assistant", "content": m.content}
        for m in messages
    ]
    # Claude conversations must open with a user turn
    while turns and turns[0]["role"] != "user":
        turns.pop(0)
    if not turns:
        raise ValidationError("At least one user message is required")

    response = await client.messages.create(
        model=model or DEFAULT_MODEL,
        max_tokens=ASSISTANT_MAX_TOKENS,
        system=_assistant_system_prompt(ctx),
        messages=turns,
    )
    text = "".join(
        block.text for block in response.content if getattr(block, "type", "text") == "text"
    )
    solution, steps = extract_solution(text)
    logger.info("Assistant reply for %r: solution=%s, %d steps", ctx.issue, solution is not None, len(steps))
    return AssistantReply(response=text, solution=solution, steps=steps)


# ── Dispatch ─────────────────────────────────────────────────────────────────

_GENERATORS = {
    ContentType.FAQ: generate_faq,
    ContentType.COMPARISON: generate_comparison,
    ContentType.BLOG: generate_blog,
    ContentType.TROUBLESHOOTING: generate_troubleshooting,
}


async def synthesize_content(
    client: anthropic.AsyncAnthropic,
    content_type: ContentType,
    ctx: SynthesisContext,
):
    """Generate the content document for a content type."""
    return await _GENERATORS[ContentType(content_type)](client, ctx)
