"""Tests for the Yext Knowledge Graph client."""

import asyncio
import json

import httpx
import pytest

from utils.errors import EntityFetchError, PublishError
from utils.models import FAQContent, FAQItem
from utils.yext import DEFAULT_FAQ_FIELD_ID, get_entity, list_entities, publish_faq

ENTITY = {
    "meta": {"id": "loc-1", "entityType": "location"},
    "name": "Joe's Coffee Reno",
    "address": {"line1": "1 Main St", "city": "Reno", "region": "NV", "postalCode": "89501"},
    "mainPhone": "+17755550100",
}


@pytest.fixture(autouse=True)
def credentials(monkeypatch):
    monkeypatch.setenv("YEXT_API_KEY", "key-123")
    monkeypatch.setenv("YEXT_ACCOUNT_ID", "acct-9")
    monkeypatch.delenv("YEXT_FAQ_FIELD_ID", raising=False)


def call(handler, fn, *args, **kwargs):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fn(*args, client=client, **kwargs)
    return asyncio.run(go())


class TestGetEntity:
    def test_found(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={"meta": {"errors": []}, "response": ENTITY})

        entity = call(handler, get_entity, "loc-1")

        assert entity.id == "loc-1"
        assert entity.address.city == "Reno"
        assert entity.address.postal_code == "89501"
        assert entity.main_phone == "+17755550100"
        request = seen["request"]
        assert request.url.path == "/v2/accounts/acct-9/entities/loc-1"
        assert request.url.params["api_key"] == "key-123"
        assert len(request.url.params["v"]) == 8

    def test_404_is_none(self):
        entity = call(lambda r: httpx.Response(404, json={}), get_entity, "gone")
        assert entity is None

    def test_server_error(self):
        with pytest.raises(EntityFetchError) as exc:
            call(lambda r: httpx.Response(500, text="down"), get_entity, "loc-1")
        assert exc.value.entity_id == "loc-1"

    def test_api_errors_in_body(self):
        body = {"meta": {"errors": [{"message": "bad key"}]}, "response": {}}
        with pytest.raises(EntityFetchError, match="bad key"):
            call(lambda r: httpx.Response(200, json=body), get_entity, "loc-1")

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EntityFetchError):
            call(handler, get_entity, "loc-1")

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("YEXT_API_KEY")
        with pytest.raises(ValueError):
            asyncio.run(get_entity("loc-1"))


class TestListEntities:
    def test_lists_with_filters(self):
        seen = {}

        def handler(request):
            seen["params"] = request.url.params
            return httpx.Response(200, json={"meta": {}, "response": {"entities": [ENTITY, {"meta": {"id": "loc-2"}}]}})

        found = call(handler, list_entities, "location", 10)

        assert [e.id for e in found] == ["loc-1", "loc-2"]
        assert seen["params"]["entityTypes"] == "location"
        assert seen["params"]["limit"] == "10"


class TestPublishFaq:
    def content(self):
        return FAQContent(items=[FAQItem(question="Open late?", answer="Until 9pm.")])

    def test_puts_lexical_answers(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"meta": {"errors": []}, "response": {"id": "loc-1"}})

        call(handler, publish_faq, "loc-1", self.content())

        assert seen["method"] == "PUT"
        [faq] = seen["body"][DEFAULT_FAQ_FIELD_ID]["faqs"]
        assert faq["question"] == "Open late?"
        paragraph = faq["answer"]["json"]["root"]["children"][0]
        assert paragraph["children"][0]["text"] == "Until 9pm."

    def test_field_id_from_env(self, monkeypatch):
        monkeypatch.setenv("YEXT_FAQ_FIELD_ID", "c_faqs")
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"meta": {}})

        call(handler, publish_faq, "loc-1", self.content())
        assert list(seen["body"]) == ["c_faqs"]

    def test_rejected(self):
        body = {"meta": {"errors": [{"message": "Field does not exist"}]}}
        with pytest.raises(PublishError, match="Field does not exist"):
            call(lambda r: httpx.Response(400, json=body), publish_faq, "loc-1", self.content())

    def test_non_json_response(self):
        with pytest.raises(PublishError, match="Invalid JSON"):
            call(lambda r: httpx.Response(502, text="<html>"), publish_faq, "loc-1", self.content())
