"""
Shared records for the content pipeline.

Attributes are snake_case; every model serialises with camelCase aliases
(draftId, isTemplate, metaDescription, ...) so SSE payloads, stored drafts
and CMS-bound JSON keep the field names the editor and review UI expect.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from utils.errors import ValidationError


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ContentType(str, Enum):
    FAQ = "FAQ"
    COMPARISON = "COMPARISON"
    BLOG = "BLOG"
    TROUBLESHOOTING = "TROUBLESHOOTING"


class FactualConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MISSING = "missing"


# ── Discovery / ranking ──────────────────────────────────────────────────────

class DiscoveredQuestion(WireModel):
    question: str
    snippet: str = ""
    title: str = ""
    link: Optional[str] = None


class RankedQuestion(DiscoveredQuestion):
    score: int = 0
    reasoning: str = ""
    issue_type: Optional[str] = None


# ── CMS entities ─────────────────────────────────────────────────────────────

class Address(WireModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None


class EntityRef(WireModel):
    id: str
    name: Optional[str] = None
    address: Optional[Address] = None
    geomodifier: Optional[str] = None
    main_phone: Optional[str] = None
    local_phone: Optional[str] = None

    @classmethod
    def from_yext(cls, raw: dict) -> "EntityRef":
        """Build from a Yext Knowledge Graph entity payload."""
        meta = raw.get("meta") or {}
        return cls(
            id=str(meta.get("id") or raw.get("id") or ""),
            name=raw.get("name"),
            address=raw.get("address") or None,
            geomodifier=raw.get("geomodifier"),
            main_phone=raw.get("mainPhone"),
            local_phone=raw.get("localPhone"),
        )


class Placeholders(WireModel):
    entity_name: str
    city: str
    region: str
    state: str
    address: str
    phone: str


# ── Content documents ────────────────────────────────────────────────────────

class FAQItem(WireModel):
    question: str
    answer: str


class FAQContent(WireModel):
    kind: Literal["FAQ"] = "FAQ"
    brand: Optional[str] = None
    region: str = ""
    items: list[FAQItem] = Field(default_factory=list)
    schema_org: dict[str, Any] = Field(default_factory=dict)
    is_template: bool = False


class ComparisonItem(WireModel):
    feature: str
    brand_value: str = ""
    competitor_value: Optional[str] = None


class ComparisonContent(WireModel):
    kind: Literal["COMPARISON"] = "COMPARISON"
    brand: Optional[str] = None
    competitor: Optional[str] = None
    category: str = ""
    region: Optional[str] = None
    items: list[ComparisonItem] = Field(default_factory=list)
    schema_org: dict[str, Any] = Field(default_factory=dict)
    is_template: bool = False


class BlogSection(WireModel):
    heading: str = ""
    content: str = ""
    order: int = 0


class BlogContent(WireModel):
    kind: Literal["BLOG"] = "BLOG"
    title: str
    brand: Optional[str] = None
    vertical: str = ""
    region: Optional[str] = None
    meta_description: str = ""
    sections: list[BlogSection] = Field(default_factory=list)
    schema_org: dict[str, Any] = Field(default_factory=dict)
    is_template: bool = False


class TroubleshootingSource(WireModel):
    url: str = ""
    snippet: str = ""
    title: Optional[str] = None


class Breadcrumb(WireModel):
    label: str
    url: Optional[str] = None


class TroubleshootingItem(WireModel):
    issue: str
    solution: str = ""
    steps: list[str] = Field(default_factory=list)
    sources: list[TroubleshootingSource] = Field(default_factory=list)
    factual_confidence: Optional[FactualConfidence] = None
    user_generated: bool = False


class TroubleshootingContent(WireModel):
    kind: Literal["TROUBLESHOOTING"] = "TROUBLESHOOTING"
    title: str
    brand: Optional[str] = None
    vertical: str = ""
    region: Optional[str] = None
    support_category: str = "Technical Support"
    parent_category: Optional[str] = None
    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)
    sitemap_priority: float = 0.7
    items: list[TroubleshootingItem] = Field(default_factory=list)
    schema_org: dict[str, Any] = Field(default_factory=dict)
    is_template: bool = False


class ChatMessage(WireModel):
    role: str
    content: str


class AssistantReply(WireModel):
    """One troubleshooting assistant turn; solution/steps set when the reply carries a summary."""
    response: str
    solution: Optional[str] = None
    steps: list[str] = Field(default_factory=list)


ContentDocument = Annotated[
    Union[FAQContent, ComparisonContent, BlogContent, TroubleshootingContent],
    Field(discriminator="kind"),
]


# ── Requests / drafts / events ───────────────────────────────────────────────

class GenerationRequest(WireModel):
    brand: Optional[str] = None
    vertical: str = ""
    region: Optional[str] = None
    content_type: ContentType
    custom_instructions: Optional[str] = None
    generic_content: bool = False
    entity_selection: list[EntityRef] = Field(default_factory=list)

    def validate_for_pipeline(self) -> None:
        """Raise ValidationError if the request cannot start a run."""
        if not self.vertical.strip():
            raise ValidationError("Missing required field: vertical")
        if not self.generic_content and not (self.region or "").strip():
            raise ValidationError(
                "Missing required field: region (required unless genericContent is set)"
            )

    @property
    def fans_out(self) -> bool:
        return (
            self.content_type == ContentType.FAQ
            and self.generic_content
            and bool(self.entity_selection)
        )


class DraftInput(WireModel):
    brand: Optional[str] = None
    vertical: str
    region: str = ""
    content_type: ContentType
    content: ContentDocument
    entity_id: Optional[str] = None


class Draft(DraftInput):
    id: str
    created_at: datetime
    approved: bool = False
    approved_at: Optional[datetime] = None


EventType = Literal["start", "step", "data", "complete", "error"]


class ProgressEvent(BaseModel):
    type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Render as a server-sent-events frame."""
        return f"data: {json.dumps({'type': self.type, 'data': self.payload})}\n\n"
