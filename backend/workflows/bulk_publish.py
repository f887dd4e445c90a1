"""
Bulk publish — push reviewed FAQ drafts to their CMS entities.

Each draft is handled on its own: a draft that is not an FAQ, has no
entity id, has no items, or is rejected by the CMS is reported in the
results and the batch moves on. Drafts that publish successfully are
marked approved in the draft store.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from utils.db import DraftStore
from utils.errors import PipelineError, PublishError
from utils.models import ContentType, FAQContent

logger = logging.getLogger(__name__)

PublishFn = Callable[[str, FAQContent, Optional[str]], Awaitable[dict]]


async def _publish_one(draft_id: str, store: DraftStore, publish: PublishFn, field_id: Optional[str]) -> dict:
    draft = await asyncio.to_thread(store.get, draft_id)
    entity_id = draft.entity_id

    def failed(error: str) -> dict:
        return {"draftId": draft_id, "entityId": entity_id or "unknown", "success": False, "error": error}

    if draft.content_type != ContentType.FAQ or not isinstance(draft.content, FAQContent):
        return failed(f"Content type {draft.content_type.value} is not supported")
    if not entity_id:
        return failed("Missing entityId in draft")
    if not draft.content.items:
        return failed("FAQ content has no items")

    logger.info("Publishing draft %s to entity %s", draft_id, entity_id)
    try:
        await publish(entity_id, draft.content, field_id)
    except PublishError as e:
        logger.warning("Draft %s rejected by CMS: %s", draft_id, e)
        return failed(str(e))
    await asyncio.to_thread(store.approve, draft_id)
    return {"draftId": draft_id, "entityId": entity_id, "success": True}


async def publish_drafts(
    draft_ids: list[str],
    store: DraftStore,
    publish: PublishFn,
    field_id: Optional[str] = None,
) -> dict:
    """
    Publish each draft in order.

    Returns:
        {"results": [{draftId, entityId, success, error?}, ...],
         "summary": {"total", "succeeded", "failed"}}
    """
    logger.info("Bulk publishing %d drafts", len(draft_ids))
    results = []
    for draft_id in draft_ids:
        try:
            result = await _publish_one(draft_id, store, publish, field_id)
        except PipelineError as e:
            logger.warning("Draft %s not published: %s", draft_id, e)
            result = {"draftId": draft_id, "entityId": "unknown", "success": False, "error": str(e)}
        results.append(result)

    succeeded = sum(1 for r in results if r["success"])
    return {
        "results": results,
        "summary": {
            "total": len(draft_ids),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        },
    }
