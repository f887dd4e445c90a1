"""
Location templating — fans one generically authored piece of content out
into per-location variants.

Generic content carries {{tokens}} in its text fields. For each CMS entity
we derive Placeholders (with fixed fallbacks for sparse entities), replace
the tokens literally, and rebuild the schema.org mirror from the
substituted text so markup and prose never diverge.

Tokens: {{entityName}} {{city}} {{region}} {{state}} {{address}} {{phone}}
"""

import re

from utils.models import (
    BlogContent,
    ComparisonContent,
    EntityRef,
    FAQContent,
    FAQItem,
    Placeholders,
    TroubleshootingContent,
)

DEFAULT_ENTITY_NAME = "our location"
DEFAULT_CITY = "your area"

TOKENS = {
    "{{entityName}}": "entity_name",
    "{{city}}": "city",
    "{{region}}": "region",
    "{{state}}": "state",
    "{{address}}": "address",
    "{{phone}}": "phone",
}
TOKEN_PATTERN = re.compile(r"\{\{\w+\}\}")


def _compose_address(entity: EntityRef, city: str) -> str:
    """'line1[, line2], city[, region][ postalCode]', or the city when unstructured."""
    addr = entity.address
    if addr is None:
        return city

    text = ", ".join(part for part in (addr.line1, addr.line2, city) if part)
    if addr.region:
        text = f"{text}, {addr.region}" if text else addr.region
    if addr.postal_code:
        text = f"{text} {addr.postal_code}"
    return text.strip() or city


def derive_placeholders(entity: EntityRef) -> Placeholders:
    """Resolve token values for an entity. Never fails for a sparse entity."""
    addr = entity.address
    city = (addr.city if addr else None) or entity.geomodifier or DEFAULT_CITY
    region = (addr.region if addr else None) or ""

    return Placeholders(
        entity_name=entity.name or DEFAULT_ENTITY_NAME,
        city=city,
        region=region,
        state=region,
        address=_compose_address(entity, city),
        phone=entity.local_phone or entity.main_phone or "",
    )


def substitute(text: str, placeholders: Placeholders) -> str:
    """Literal, case-sensitive, single pass. Unknown tokens are left as-is."""
    if not text:
        return text

    def _value(match: re.Match) -> str:
        field = TOKENS.get(match.group(0))
        return getattr(placeholders, field) if field else match.group(0)

    return TOKEN_PATTERN.sub(_value, text)


# ── schema.org mirrors ───────────────────────────────────────────────────────

def faq_schema(items: list[FAQItem]) -> dict:
    return {
        "@context": "https://schema.org",
        "@type": "FAQPage",
        "mainEntity": [
            {
                "@type": "Question",
                "name": item.question,
                "acceptedAnswer": {"@type": "Answer", "text": item.answer},
            }
            for item in items
        ],
    }


def comparison_schema(brand: str, competitor: str, category: str) -> dict:
    return {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": f"{brand} vs {competitor or 'Competitor'}",
        "category": category,
    }


def blog_schema(title: str, brand: str) -> dict:
    return {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": title,
        "author": {"@type": "Organization", "name": brand},
    }


def troubleshooting_schema(title: str, brand: str) -> dict:
    return {
        "@context": "https://schema.org",
        "@type": "TechArticle",
        "headline": title,
        "about": {"@type": "Thing", "name": f"{brand} Troubleshooting"},
        "provider": {"@type": "Organization", "name": brand},
    }


# ── Document customization ───────────────────────────────────────────────────

def _customize_faq(doc: FAQContent, p: Placeholders) -> FAQContent:
    for item in doc.items:
        item.question = substitute(item.question, p)
        item.answer = substitute(item.answer, p)
    doc.schema_org = faq_schema(doc.items)
    return doc


def _customize_comparison(doc: ComparisonContent, p: Placeholders) -> ComparisonContent:
    for item in doc.items:
        item.feature = substitute(item.feature, p)
        item.brand_value = substitute(item.brand_value, p)
        if item.competitor_value is not None:
            item.competitor_value = substitute(item.competitor_value, p)
    doc.schema_org = comparison_schema(doc.brand or p.entity_name, doc.competitor, doc.category)
    return doc


def _customize_blog(doc: BlogContent, p: Placeholders) -> BlogContent:
    doc.title = substitute(doc.title, p)
    doc.meta_description = substitute(doc.meta_description, p)
    for section in doc.sections:
        section.heading = substitute(section.heading, p)
        section.content = substitute(section.content, p)
    doc.schema_org = blog_schema(doc.title, doc.brand or p.entity_name)
    return doc


def _customize_troubleshooting(doc: TroubleshootingContent, p: Placeholders) -> TroubleshootingContent:
    doc.title = substitute(doc.title, p)
    for item in doc.items:
        item.issue = substitute(item.issue, p)
        item.solution = substitute(item.solution, p)
        item.steps = [substitute(step, p) for step in item.steps]
    doc.schema_org = troubleshooting_schema(doc.title, doc.brand or p.entity_name)
    return doc


_CUSTOMIZERS = {
    FAQContent: _customize_faq,
    ComparisonContent: _customize_comparison,
    BlogContent: _customize_blog,
    TroubleshootingContent: _customize_troubleshooting,
}


def customize(doc, entity: EntityRef):
    """
    Return a per-entity copy of a template document.

    The input is never mutated. The copy has every text field substituted,
    its schema.org block rebuilt, region set to the entity's resolved city,
    and is_template cleared.
    """
    placeholders = derive_placeholders(entity)
    copy = doc.model_copy(deep=True)
    copy = _CUSTOMIZERS[type(copy)](copy, placeholders)
    copy.region = placeholders.city
    copy.is_template = False
    return copy
