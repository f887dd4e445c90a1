"""
Content Pipeline Workflow — seeds → PAA discovery → ranking → Claude synthesis → drafts

Stages run strictly in order, each announced with a running / completed
step event pair followed by data events carrying its output:

  1. expand seeds            (troubleshooting uses issue-oriented templates)
  2. discover PAA questions  (troubleshooting asks for richer metadata)
  3. rank                    (question mode, or issue mode for troubleshooting)
  4. synthesize content
  5. validate                troubleshooting only
  6. customize per location  generic FAQ with selected entities only
  7. store draft(s)

Exactly one terminal event ends the stream: complete, or error with a
message. A location that cannot be fetched is reported as an entityFailure
data event and skipped; the run still completes.

request: GenerationRequest
    brand               optional
    vertical            required
    region              required unless generic_content
    content_type        FAQ | COMPARISON | BLOG | TROUBLESHOOTING
    custom_instructions optional
    generic_content     write with {{tokens}} instead of a concrete location
    entity_selection    EntityRefs to fan a generic FAQ out to
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Awaitable, Callable, Optional

from utils.db import DraftStore
from utils.errors import EntityFetchError, EntityNotFoundError, ValidationError
from utils.models import (
    ContentType,
    DiscoveredQuestion,
    DraftInput,
    EntityRef,
    FactualConfidence,
    GenerationRequest,
    ProgressEvent,
)
from utils.ranking import rank_questions
from utils.seeds import expand_seeds, expand_troubleshooting_seeds
from utils.synthesis import SynthesisContext, validate_troubleshooting_items
from utils.templating import customize

logger = logging.getLogger(__name__)

COMPONENT_KEYS = {
    ContentType.FAQ: "faqComponent",
    ContentType.COMPARISON: "comparisonComponent",
    ContentType.BLOG: "blogComponent",
    ContentType.TROUBLESHOOTING: "troubleshootingComponent",
}


@dataclass
class PipelineServices:
    """
    External collaborators, injected so the workflow never reaches for globals.

    discover(seeds, region, language, rich_metadata) -> list[DiscoveredQuestion]
    synthesize(content_type, SynthesisContext)       -> content document
    get_entity(entity_id)                            -> EntityRef | None
    store                                            DraftStore (sync, run in a thread)
    """
    discover: Callable[..., Awaitable[list[DiscoveredQuestion]]]
    synthesize: Callable[..., Awaitable[object]]
    get_entity: Callable[[str], Awaitable[Optional[EntityRef]]]
    store: DraftStore
    discovery_language: str = "en"


# ── Event helpers ────────────────────────────────────────────────────────────

def _event(type_: str, **payload) -> ProgressEvent:
    return ProgressEvent(type=type_, payload=payload)


def _running(step: int, name: str) -> ProgressEvent:
    return _event("step", step=step, name=name, status="running")


def _completed(step: int, name: str, data: dict) -> ProgressEvent:
    return _event("step", step=step, name=name, status="completed", data=data)


def _validation_summary(items) -> dict:
    counts = {c.value: 0 for c in FactualConfidence}
    for item in items:
        counts[item.factual_confidence.value] += 1
    return {
        "total": len(items),
        **counts,
        "needsReview": counts[FactualConfidence.MISSING.value],
    }


# ── Fan-out ──────────────────────────────────────────────────────────────────

async def _customize_for_entity(services: PipelineServices, ref: EntityRef, template):
    """Fetch one entity and build its variant. Raises EntityFetchError on any failure."""
    try:
        entity = await services.get_entity(ref.id)
    except EntityFetchError:
        raise
    except Exception as e:
        raise EntityFetchError(ref.id, f"Failed to fetch entity {ref.id}: {e}") from e
    if entity is None:
        raise EntityNotFoundError(ref.id)
    return entity, customize(template, entity)


# ── Main workflow ────────────────────────────────────────────────────────────

async def run_content_pipeline(
    request: GenerationRequest,
    services: PipelineServices,
) -> AsyncGenerator[ProgressEvent, None]:
    """
    Run the full generation pipeline for one request, yielding ProgressEvents.
    Consumers stop the run by closing the generator.
    """
    try:
        request.validate_for_pipeline()
    except ValidationError as e:
        logger.info("Rejected pipeline request: %s", e)
        yield _event("error", message=str(e))
        return

    content_type = request.content_type
    troubleshooting = content_type == ContentType.TROUBLESHOOTING
    fan_out = request.fans_out

    yield _event(
        "start",
        message="Starting content pipeline",
        contentType=content_type.value,
        genericContent=request.generic_content,
        entityCount=len(request.entity_selection) if fan_out else 0,
    )
    logger.info(
        "Pipeline started: %s for %s / %s%s",
        content_type.value, request.brand or "(no brand)", request.vertical,
        f" across {len(request.entity_selection)} entities" if fan_out else "",
    )

    step = 0
    try:
        # ── Expand seeds ──────────────────────────────────────────────────
        step += 1
        name = "Expanding troubleshooting seed keywords" if troubleshooting else "Expanding seed keywords"
        yield _running(step, name)
        expand = expand_troubleshooting_seeds if troubleshooting else expand_seeds
        seeds = expand(request.brand, request.vertical, request.region)
        yield _completed(step, name, {"count": len(seeds)})
        yield _event("data", seeds=seeds)

        # ── Discover ──────────────────────────────────────────────────────
        step += 1
        name = "Fetching People Also Ask (troubleshooting mode)" if troubleshooting else "Fetching People Also Ask"
        yield _running(step, name)
        rows = await services.discover(
            seeds, request.region, services.discovery_language, troubleshooting
        )
        yield _completed(step, name, {"count": len(rows)})
        yield _event("data", paaRows=[r.to_wire() for r in rows])

        # ── Rank ──────────────────────────────────────────────────────────
        step += 1
        name = "Ranking issues by relevance" if troubleshooting else "Ranking questions by opportunity"
        yield _running(step, name)
        ranked = rank_questions(request.brand, rows, mode="issue" if troubleshooting else "question")
        yield _completed(step, name, {"count": len(ranked)})
        ranked_key = "rankedIssues" if troubleshooting else "rankedQuestions"
        yield _event("data", **{ranked_key: [r.to_wire() for r in ranked]})

        # ── Synthesize ────────────────────────────────────────────────────
        step += 1
        name = f"Generating {content_type.value} content with AI"
        yield _running(step, name)
        context = SynthesisContext(
            vertical=request.vertical,
            questions=ranked,
            brand=request.brand,
            region=request.region,
            custom_instructions=request.custom_instructions,
            template_mode=request.generic_content,
        )
        document = await services.synthesize(content_type, context)
        yield _completed(step, name, {"kind": document.kind, "isTemplate": document.is_template})

        # ── Validate (troubleshooting) ────────────────────────────────────
        if troubleshooting:
            yield _event("data", **{COMPONENT_KEYS[content_type]: document.to_wire()})
            step += 1
            name = "Validating factual accuracy"
            yield _running(step, name)
            document = document.model_copy(
                update={"items": validate_troubleshooting_items(document.items)}
            )
            summary = _validation_summary(document.items)
            yield _completed(step, name, summary)
            yield _event("data", validation=summary)

        yield _event("data", **{COMPONENT_KEYS[content_type]: document.to_wire()})

        # ── Single draft ──────────────────────────────────────────────────
        if not fan_out:
            step += 1
            name = "Storing draft"
            yield _running(step, name)
            draft_id = await asyncio.to_thread(
                services.store.put,
                DraftInput(
                    brand=request.brand,
                    vertical=request.vertical,
                    region=request.region or "",
                    content_type=content_type,
                    content=document,
                ),
            )
            yield _completed(step, name, {"draftId": draft_id})
            yield _event("data", draftId=draft_id)
            logger.info("Pipeline complete: draft %s", draft_id)
            yield _event("complete", draftId=draft_id)
            return

        # ── Customize per entity ──────────────────────────────────────────
        step += 1
        entities = request.entity_selection
        name = f"Customizing content for {len(entities)} locations"
        yield _running(step, name)
        variants = []
        outcomes = []
        for ref in entities:
            try:
                entity, variant = await _customize_for_entity(services, ref, document)
            except EntityFetchError as e:
                logger.warning("Skipping entity %s: %s", ref.id, e)
                failure = {"entityId": ref.id, "entityName": ref.name, "error": str(e)}
                outcomes.append({"entityFailure": failure})
                continue
            variants.append((ref.id, entity, variant))
            outcomes.append({"entityDraft": {
                "entityId": ref.id,
                "entityName": entity.name or ref.name,
                "region": variant.region,
                "content": variant.to_wire(),
            }})
        failures = [o["entityFailure"] for o in outcomes if "entityFailure" in o]
        yield _completed(step, name, {"succeeded": len(variants), "failed": len(failures)})
        for outcome in outcomes:
            yield _event("data", **outcome)

        # ── Store drafts ──────────────────────────────────────────────────
        step += 1
        name = f"Storing {len(variants)} drafts"
        yield _running(step, name)
        entity_drafts = []
        for entity_id, entity, variant in variants:
            draft_id = await asyncio.to_thread(
                services.store.put,
                DraftInput(
                    brand=request.brand,
                    vertical=request.vertical,
                    region=variant.region,
                    content_type=content_type,
                    content=variant,
                    entity_id=entity_id,
                ),
            )
            entity_drafts.append({
                "draftId": draft_id,
                "entityId": entity_id,
                "entityName": entity.name,
                "region": variant.region,
            })
        draft_ids = [d["draftId"] for d in entity_drafts]
        yield _completed(step, name, {"draftIds": draft_ids})
        yield _event("data", draftIds=draft_ids)

    except Exception as e:
        logger.exception("Pipeline failed at step %d", step)
        yield _event("error", message=str(e) or type(e).__name__, step=step)
        return

    logger.info("Pipeline complete: %d drafts, %d entity failures", len(draft_ids), len(failures))
    yield _event(
        "complete",
        draftIds=draft_ids,
        entityDrafts=entity_drafts,
        multiEntity=True,
        failures=failures,
    )
