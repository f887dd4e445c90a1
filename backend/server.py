"""
Local Content Pipeline — API Backend
FastAPI + SSE streaming → DataForSEO PAA discovery → Claude → draft review → Yext

Env vars:
    ANTHROPIC_API_KEY                       required for /api/run-pipeline and /api/conversational-ai
    DATAFORSEO_LOGIN / DATAFORSEO_PASSWORD  question discovery
    YEXT_API_KEY / YEXT_ACCOUNT_ID          entity lookup + publishing
    DRAFT_STORE / DATABASE_PATH             draft persistence (see utils/db.py)
    LOG_LEVEL                               default INFO
"""

import asyncio
import logging
import os
from functools import partial
from typing import Optional

import anthropic
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import Field

from utils.dataforseo import fetch_people_also_ask
from utils.db import get_draft_store
from utils.errors import DraftNotFoundError, EntityFetchError, SynthesisError, ValidationError
from utils.models import ChatMessage, ContentType, DiscoveredQuestion, GenerationRequest, WireModel
from utils.ranking import recommend_content_type
from utils.synthesis import AssistantContext, SynthesisContext, synthesize_content, troubleshooting_assistant
from utils.yext import get_entity, list_entities, publish_faq
from workflows.bulk_publish import publish_drafts
from workflows.content_pipeline import PipelineServices, run_content_pipeline

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ── App setup ─────────────────────────────────────────────
app = FastAPI(title="Local Content Pipeline API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",   # prevents nginx from buffering SSE
    "Connection": "keep-alive",
}


# ── Request schemas ────────────────────────────────────────
class BulkPublishRequest(WireModel):
    draft_ids: list[str] = Field(default_factory=list)
    field_id: Optional[str] = None


class RecommendRequest(WireModel):
    questions: list[DiscoveredQuestion] = Field(default_factory=list)


class IssueContext(WireModel):
    issue: str
    brand: str
    vertical: Optional[str] = None
    region: Optional[str] = None


class ConversationRequest(WireModel):
    messages: list[ChatMessage] = Field(default_factory=list)
    context: IssueContext


# ── Service wiring ─────────────────────────────────────────
def _anthropic_client() -> anthropic.AsyncAnthropic:
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise HTTPException(status_code=500, detail="ANTHROPIC_API_KEY not configured")
    return anthropic.AsyncAnthropic(api_key=api_key)


async def _synthesize(client: anthropic.AsyncAnthropic, content_type: ContentType, context: SynthesisContext):
    """Claude call with auth / rate-limit failures turned into readable messages."""
    try:
        return await synthesize_content(client, content_type, context)
    except anthropic.AuthenticationError as e:
        raise SynthesisError("Invalid Anthropic API key.") from e
    except anthropic.RateLimitError as e:
        raise SynthesisError("Rate limited — please wait a moment and try again.") from e


def build_services(client: anthropic.AsyncAnthropic) -> PipelineServices:
    return PipelineServices(
        discover=fetch_people_also_ask,
        synthesize=partial(_synthesize, client),
        get_entity=get_entity,
        store=get_draft_store(),
    )


# ── Routes ────────────────────────────────────────────────
@app.get("/health")
def health():
    return {"status": "ok", "service": "Local Content Pipeline API"}


@app.post("/api/run-pipeline")
async def run_pipeline(req: GenerationRequest):
    services = build_services(_anthropic_client())

    async def event_stream():
        async for event in run_content_pipeline(req, services):
            yield event.to_sse()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/recommend-content-type")
def recommend(req: RecommendRequest):
    if not req.questions:
        raise HTTPException(status_code=400, detail="questions must not be empty")
    return recommend_content_type(req.questions)


@app.post("/api/conversational-ai")
async def conversational_ai(req: ConversationRequest):
    """Troubleshooting assistant chat turn, with any extracted solution and steps."""
    if not req.messages:
        raise HTTPException(status_code=400, detail="Messages array is required")
    client = _anthropic_client()

    try:
        reply = await troubleshooting_assistant(
            client, req.messages, AssistantContext(**req.context.model_dump())
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except anthropic.AuthenticationError:
        raise HTTPException(status_code=500, detail="Invalid Anthropic API key.")
    except anthropic.RateLimitError:
        raise HTTPException(status_code=429, detail="Rate limited — please wait a moment and try again.")
    return reply.to_wire()


# ── Draft review routes ────────────────────────────────────

@app.get("/api/drafts")
async def list_drafts():
    """All drafts, newest first, without their content bodies."""
    drafts = await asyncio.to_thread(get_draft_store().list_drafts)
    return {
        "drafts": [
            d.model_dump(mode="json", by_alias=True, exclude={"content"})
            for d in drafts
        ]
    }


@app.get("/api/drafts/{draft_id}")
async def get_draft(draft_id: str):
    try:
        draft = await asyncio.to_thread(get_draft_store().get, draft_id)
    except DraftNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"draft": draft.to_wire()}


@app.post("/api/drafts/{draft_id}/approve")
async def approve_draft(draft_id: str):
    ok = await asyncio.to_thread(get_draft_store().approve, draft_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Draft not found")
    return {"approved": True}


@app.delete("/api/drafts/{draft_id}/approve")
async def unapprove_draft(draft_id: str):
    ok = await asyncio.to_thread(get_draft_store().unapprove, draft_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Draft not found")
    return {"approved": False}


# ── Yext routes ────────────────────────────────────────────

def _require_yext() -> None:
    if not os.environ.get("YEXT_API_KEY") or not os.environ.get("YEXT_ACCOUNT_ID"):
        raise HTTPException(status_code=400, detail="YEXT_API_KEY and YEXT_ACCOUNT_ID are not configured")


@app.get("/api/entities")
async def entities(entity_type: Optional[str] = "location", limit: int = 50):
    _require_yext()
    try:
        found = await list_entities(entity_type, limit)
    except EntityFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"entities": [e.to_wire() for e in found]}


@app.get("/api/entities/{entity_id}")
async def entity(entity_id: str):
    _require_yext()
    try:
        found = await get_entity(entity_id)
    except EntityFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if found is None:
        raise HTTPException(status_code=404, detail=f"Entity {entity_id} not found")
    return {"entity": found.to_wire()}


@app.post("/api/bulk-publish")
async def bulk_publish(req: BulkPublishRequest):
    if not req.draft_ids:
        raise HTTPException(status_code=400, detail="Missing or empty draftIds array")
    _require_yext()

    outcome = await publish_drafts(req.draft_ids, get_draft_store(), publish_faq, req.field_id)
    summary = outcome["summary"]
    return {
        "success": True,
        "message": (
            f"Processed {summary['total']} drafts: "
            f"{summary['succeeded']} succeeded, {summary['failed']} failed"
        ),
        **outcome,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
