"""
Question / issue ranking — deterministic opportunity scoring for PAA rows.

The weights and patterns below are a fixed product heuristic. Keep them
verbatim; any change is a product decision, not a bug fix.

Question mode (FAQ, comparison, blog):
  +20  non-branded question (brand given, not mentioned)
  +10  generic question (no brand given)
  +15  local intent
  +10  commercial intent
  +5   snippet longer than 50 chars

Issue mode (troubleshooting):
  +30  problem / solution intent
  +20  brand mentioned (presence scores here, absence scores in question mode)
  +15  technical issue          → issue_type "technical"
  +15  service / billing issue  → issue_type "billing" unless already typed
  +10  snippet longer than 50 chars
  +10  solution-oriented snippet
"""

import logging
import re
from typing import Iterable, Literal, Optional

from utils.models import ContentType, DiscoveredQuestion, RankedQuestion

logger = logging.getLogger(__name__)

RankMode = Literal["question", "issue"]

TOP_N = {"question": 10, "issue": 15}

LOCAL_INTENT = re.compile(r"\b(near|in|local|find|where|location)\b", re.I)
COMMERCIAL_INTENT = re.compile(r"\b(best|order|buy|hours|delivery|delicious|menu|price)\b", re.I)
PROBLEM_INTENT = re.compile(
    r"\b(problem|issue|error|broken|not working|won't|fix|troubleshoot|support|help)\b", re.I
)
TECHNICAL_ISSUE = re.compile(r"\b(error|crash|bug|glitch|defect|malfunction)\b", re.I)
BILLING_ISSUE = re.compile(r"\b(billing|payment|charge|refund|cancel|account)\b", re.I)
SOLUTION_SNIPPET = re.compile(r"\b(fix|solution|resolve|repair|troubleshoot|step)\b", re.I)

SNIPPET_MIN_CHARS = 50

_ROW_FIELDS = {"question", "snippet", "title", "link"}


def _dedupe(items: Iterable[DiscoveredQuestion]) -> list[DiscoveredQuestion]:
    """Drop case-insensitive duplicate questions, first occurrence wins."""
    unique: dict[str, DiscoveredQuestion] = {}
    for item in items:
        key = item.question.lower()
        if key not in unique:
            unique[key] = item
    return list(unique.values())


def _mentions(brand: str, text: str) -> bool:
    return brand.lower() in text.lower()


def _score_question(brand: Optional[str], item: DiscoveredQuestion) -> RankedQuestion:
    score = 0
    reasons: list[str] = []

    if brand:
        if not _mentions(brand, item.question):
            score += 20
            reasons.append("Non-branded question")
    else:
        score += 10
        reasons.append("Generic question")

    if LOCAL_INTENT.search(item.question):
        score += 15
        reasons.append("Local intent")

    if COMMERCIAL_INTENT.search(item.question):
        score += 10
        reasons.append("Commercial intent")

    if len(item.snippet or "") > SNIPPET_MIN_CHARS:
        score += 5
        reasons.append("Quality snippet")

    return RankedQuestion(
        **item.model_dump(include=_ROW_FIELDS),
        score=score,
        reasoning=", ".join(reasons),
    )


def _score_issue(brand: Optional[str], item: DiscoveredQuestion) -> RankedQuestion:
    score = 0
    reasons: list[str] = []
    issue_type: Optional[str] = None
    snippet = item.snippet or ""

    if PROBLEM_INTENT.search(item.question):
        score += 30
        reasons.append("Problem/solution intent")

    if brand and _mentions(brand, item.question):
        score += 20
        reasons.append("Brand-specific issue")

    if TECHNICAL_ISSUE.search(item.question):
        score += 15
        reasons.append("Technical issue")
        issue_type = "technical"

    if BILLING_ISSUE.search(item.question):
        score += 15
        reasons.append("Service/billing issue")
        issue_type = issue_type or "billing"

    if len(snippet) > SNIPPET_MIN_CHARS:
        score += 10
        reasons.append("Clear snippet available")

    if snippet and SOLUTION_SNIPPET.search(snippet):
        score += 10
        reasons.append("Solution-oriented snippet")

    return RankedQuestion(
        **item.model_dump(include=_ROW_FIELDS),
        score=score,
        reasoning=", ".join(reasons),
        issue_type=issue_type or "general",
    )


def rank_questions(
    brand: Optional[str],
    items: Iterable[DiscoveredQuestion],
    mode: RankMode = "question",
) -> list[RankedQuestion]:
    """
    Deduplicate, score and return the top questions (mode="question")
    or troubleshooting issues (mode="issue"), best first.

    Ties keep input encounter order (sorted() is stable).
    """
    if mode not in TOP_N:
        raise ValueError(f"Unknown rank mode: {mode}")

    brand = (brand or "").strip() or None
    unique = _dedupe(items)
    scorer = _score_issue if mode == "issue" else _score_question
    ranked = sorted((scorer(brand, item) for item in unique), key=lambda r: r.score, reverse=True)
    top = ranked[: TOP_N[mode]]

    logger.info("Ranked %d unique %ss, kept top %d", len(unique), mode, len(top))
    return top


# ── Content type recommendation ──────────────────────────────────────────────

FAQ_KEYWORDS = ["what", "when", "where", "how", "why", "who", "can i", "do they", "does", "is there"]
COMPARISON_KEYWORDS = ["vs", "versus", "or", "better", "which", "difference", "compare", "verses"]
BLOG_KEYWORDS = ["how to", "guide", "tips", "tutorial", "steps", "ways to", "how do"]

_REASONING = {
    ContentType.COMPARISON: 'Questions show strong comparison intent with keywords like "vs", "better", "which"',
    ContentType.BLOG: "Questions show tutorial/how-to intent with actionable keywords",
    ContentType.FAQ: "Questions are primarily informational and best suited for FAQ format",
}


def recommend_content_type(items: list[DiscoveredQuestion]) -> dict:
    """
    Suggest which content type best serves a set of discovered questions.

    Substring keyword matching, comparison hits weighted 3, FAQ and blog
    hits weighted 2. A secondary type is suggested when it scores within
    30% of the primary.
    """
    questions = [item.question.lower() for item in items]

    scores = {ContentType.FAQ: 0, ContentType.COMPARISON: 0, ContentType.BLOG: 0}
    for q in questions:
        if any(k in q for k in FAQ_KEYWORDS):
            scores[ContentType.FAQ] += 2
        if any(k in q for k in COMPARISON_KEYWORDS):
            scores[ContentType.COMPARISON] += 3
        if any(k in q for k in BLOG_KEYWORDS):
            scores[ContentType.BLOG] += 2

    ordered = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
    (primary, primary_score), (secondary, secondary_score) = ordered[0], ordered[1]

    denominator = len(questions) * 2
    relevance = (primary_score / denominator) if denominator else 0.0
    confidence = min(0.95, relevance)

    secondary_types: list[ContentType] = []
    reasoning = _REASONING[primary]
    if primary_score > 0 and secondary_score > 0 and secondary_score >= primary_score * 0.7:
        secondary_types.append(secondary)
        reasoning += f". Also detected {secondary.value.lower()} patterns for supplementary content."

    insights = [
        f"Discovered {len(questions)} distinct questions",
        f"Primary: {primary.value} ({round(relevance * 100)}% relevance)",
    ]
    if secondary_types:
        secondary_relevance = secondary_score / denominator
        insights.append(
            f"Secondary: {', '.join(t.value for t in secondary_types)} "
            f"({round(secondary_relevance * 100)}% relevance)"
        )
    else:
        insights.append("Single content type recommended")

    logger.info("Recommended content type %s", primary.value)
    return {
        "primaryType": primary.value,
        "secondaryTypes": [t.value for t in secondary_types] or None,
        "confidence": confidence,
        "reasoning": reasoning,
        "keyInsights": insights,
    }
