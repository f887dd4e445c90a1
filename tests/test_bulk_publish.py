"""Tests for bulk publishing reviewed drafts to the CMS."""

import asyncio
from unittest.mock import AsyncMock

from utils.db import InMemoryDraftStore
from utils.errors import PublishError
from utils.models import BlogContent, ContentType, DraftInput, FAQContent, FAQItem
from workflows.bulk_publish import publish_drafts


def faq_draft(store, entity_id="loc-1", items=1) -> str:
    content = FAQContent(items=[FAQItem(question=f"Q{i}?", answer=f"A{i}.") for i in range(items)])
    return store.put(DraftInput(vertical="Coffee", content_type=ContentType.FAQ, content=content, entity_id=entity_id))


class TestPublishDrafts:
    def test_publishes_and_approves(self):
        store = InMemoryDraftStore()
        draft_id = faq_draft(store)
        publish = AsyncMock(return_value={"meta": {}})

        outcome = asyncio.run(publish_drafts([draft_id], store, publish, "c_faqs"))

        assert outcome["summary"] == {"total": 1, "succeeded": 1, "failed": 0}
        assert outcome["results"] == [{"draftId": draft_id, "entityId": "loc-1", "success": True}]
        entity_id, content, field_id = publish.await_args.args
        assert entity_id == "loc-1"
        assert content.items[0].question == "Q0?"
        assert field_id == "c_faqs"
        assert store.get(draft_id).approved is True

    def test_per_draft_failures_do_not_abort(self):
        store = InMemoryDraftStore()
        blog_id = store.put(DraftInput(
            vertical="Coffee", content_type=ContentType.BLOG, content=BlogContent(title="Beans"), entity_id="loc-1"
        ))
        no_entity = faq_draft(store, entity_id=None)
        empty = faq_draft(store, items=0)
        rejected = faq_draft(store, entity_id="loc-9")
        good = faq_draft(store, entity_id="loc-2")

        async def publish(entity_id, content, field_id):
            if entity_id == "loc-9":
                raise PublishError("Yext API error: Field does not exist")
            return {}

        ids = [blog_id, no_entity, "draft-missing", empty, rejected, good]
        outcome = asyncio.run(publish_drafts(ids, store, publish))

        results = outcome["results"]
        assert [r["draftId"] for r in results] == ids
        assert [r["success"] for r in results] == [False, False, False, False, False, True]
        assert results[0]["error"] == "Content type BLOG is not supported"
        assert results[1]["error"] == "Missing entityId in draft"
        assert results[2]["error"] == "Draft draft-missing not found"
        assert results[3]["error"] == "FAQ content has no items"
        assert results[4]["entityId"] == "loc-9"
        assert "Field does not exist" in results[4]["error"]
        assert outcome["summary"] == {"total": 6, "succeeded": 1, "failed": 5}

        assert store.get(rejected).approved is False
        assert store.get(good).approved is True

    def test_empty_batch(self):
        outcome = asyncio.run(publish_drafts([], InMemoryDraftStore(), AsyncMock()))
        assert outcome == {"results": [], "summary": {"total": 0, "succeeded": 0, "failed": 0}}
