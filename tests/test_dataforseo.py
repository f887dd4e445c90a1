"""Tests for DataForSEO People Also Ask discovery."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from utils.dataforseo import (
    _dfs_post,
    build_location_name,
    fetch_people_also_ask,
    parse_people_also_ask,
)
from utils.errors import DiscoveryError


def serp_response(*questions: str) -> dict:
    return {
        "status_code": 20000,
        "tasks": [{
            "status_code": 20000,
            "result": [{
                "items": [
                    {"type": "organic", "title": "Not a question"},
                    {
                        "type": "people_also_ask",
                        "items": [
                            {
                                "type": "people_also_ask_element",
                                "title": text,
                                "expanded_element": [{
                                    "description": f"Answer to {text}",
                                    "title": "Source page",
                                    "url": "https://example.com/a",
                                }],
                            }
                            for text in questions
                        ],
                    },
                ],
            }],
        }],
    }


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("DATAFORSEO_LOGIN", "me@example.com")
    monkeypatch.setenv("DATAFORSEO_PASSWORD", "secret")


class TestBuildLocationName:
    def test_city_and_state_abbreviation(self):
        assert build_location_name("Chandler, AZ") == "Chandler,Arizona,United States"

    def test_full_state_name_kept(self):
        assert build_location_name("Reno, Nevada") == "Reno,Nevada,United States"

    def test_bare_city_falls_back_to_country(self):
        assert build_location_name("Vancouver") == "United States"
        assert build_location_name(None) == "United States"


class TestParsePeopleAlsoAsk:
    def test_extracts_elements(self):
        rows = parse_people_also_ask(serp_response("Is it open?", "Do they deliver?"))
        assert [r.question for r in rows] == ["Is it open?", "Do they deliver?"]
        assert rows[0].snippet == "Answer to Is it open?"
        assert rows[0].title == "Source page"
        assert rows[0].link == "https://example.com/a"

    def test_element_without_expansion(self):
        data = serp_response("Bare?")
        del data["tasks"][0]["result"][0]["items"][1]["items"][0]["expanded_element"]
        [row] = parse_people_also_ask(data)
        assert row.snippet == ""
        assert row.link is None

    def test_malformed_response(self):
        assert parse_people_also_ask({}) == []
        assert parse_people_also_ask({"tasks": [{"result": None}]}) == []

    def test_non_dict_items_and_elements_are_skipped(self):
        data = serp_response("Kept?")
        items = data["tasks"][0]["result"][0]["items"]
        items.insert(0, None)
        items[-1]["items"][:0] = [None, "stray", {"title": 42}]
        items[-1]["items"][-1]["expanded_element"] = [{"description": 7, "url": None}]

        [row] = parse_people_also_ask(data)
        assert row.question == "Kept?"
        assert row.snippet == ""
        assert row.link is None


class TestFetchPeopleAlsoAsk:
    def test_collects_rows_in_seed_order(self, credentials):
        mock = AsyncMock(side_effect=[serp_response("one?"), serp_response("two?", "one?")])
        with patch("utils.dataforseo._dfs_post", mock):
            rows = asyncio.run(fetch_people_also_ask(["a", "b"], region="Reno, NV", delay=0))

        assert [r.question for r in rows] == ["one?", "two?", "one?"]
        payload = mock.call_args_list[0].args[1][0]
        assert payload["keyword"] == "a"
        assert payload["location_name"] == "Reno,Nevada,United States"
        assert payload["people_also_ask_click_depth"] == 1

    def test_failed_seed_is_skipped(self, credentials):
        mock = AsyncMock(side_effect=[
            serp_response("one?"),
            DiscoveryError("boom"),
            httpx.ConnectError("down"),
            serp_response("four?"),
        ])
        with patch("utils.dataforseo._dfs_post", mock):
            rows = asyncio.run(fetch_people_also_ask(["a", "b", "c", "d"], delay=0))

        assert [r.question for r in rows] == ["one?", "four?"]
        assert mock.await_count == 4

    def test_malformed_seed_response_is_skipped(self, credentials):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(200, text="<html>gateway hiccup</html>")
            if len(calls) == 2:
                return httpx.Response(200, json={"status_code": 20000, "tasks": [{"result": [{"items": [None]}]}]})
            return httpx.Response(200, json=serp_response("Q1?"))

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await fetch_people_also_ask(["a", "b", "c"], client=client, delay=0)

        rows = asyncio.run(go())
        assert [r.question for r in rows] == ["Q1?"]
        assert len(calls) == 3

    def test_pauses_between_calls_only(self, credentials):
        mock = AsyncMock(return_value=serp_response())
        sleep = AsyncMock()
        with patch("utils.dataforseo._dfs_post", mock), patch("utils.dataforseo.asyncio.sleep", sleep):
            asyncio.run(fetch_people_also_ask(["a", "b", "c"]))

        assert mock.await_count == 3
        assert sleep.await_count == 2
        assert [c.args for c in sleep.await_args_list] == [(0.5,), (0.5,)]

    def test_only_first_five_seeds_queried(self, credentials):
        mock = AsyncMock(return_value=serp_response())
        with patch("utils.dataforseo._dfs_post", mock):
            asyncio.run(fetch_people_also_ask([f"seed {i}" for i in range(12)], delay=0))
        assert mock.await_count == 5

    def test_rich_metadata_deepens_click_depth(self, credentials):
        mock = AsyncMock(return_value=serp_response())
        with patch("utils.dataforseo._dfs_post", mock):
            asyncio.run(fetch_people_also_ask(["a"], rich_metadata=True, delay=0))
        assert mock.call_args.args[1][0]["people_also_ask_click_depth"] == 2

    def test_missing_credentials_fail_fast(self, monkeypatch):
        monkeypatch.delenv("DATAFORSEO_LOGIN", raising=False)
        monkeypatch.delenv("DATAFORSEO_PASSWORD", raising=False)
        mock = AsyncMock()
        with patch("utils.dataforseo._dfs_post", mock):
            with pytest.raises(ValueError):
                asyncio.run(fetch_people_also_ask(["a"], delay=0))
        mock.assert_not_awaited()


class TestDfsPost:
    def run_with(self, handler):
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await _dfs_post("serp/x", [{}], client=client)
        return asyncio.run(go())

    def test_sends_basic_auth(self, credentials):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=serp_response("q?"))

        data = self.run_with(handler)
        assert seen["auth"].startswith("Basic ")
        assert data["tasks"][0]["status_code"] == 20000

    def test_api_error_status(self, credentials):
        def handler(request):
            return httpx.Response(200, json={"status_code": 40100, "status_message": "Unauthorized"})

        with pytest.raises(DiscoveryError, match="40100"):
            self.run_with(handler)

    def test_task_error_status(self, credentials):
        def handler(request):
            return httpx.Response(200, json={
                "status_code": 20000,
                "tasks": [{"status_code": 40501, "status_message": "Invalid Field"}],
            })

        with pytest.raises(DiscoveryError, match="40501"):
            self.run_with(handler)

    def test_non_json_body(self, credentials):
        def handler(request):
            return httpx.Response(200, text="<html>gateway hiccup</html>")

        with pytest.raises(DiscoveryError, match="non-JSON"):
            self.run_with(handler)

    def test_non_object_body(self, credentials):
        def handler(request):
            return httpx.Response(200, json=["unexpected"])

        with pytest.raises(DiscoveryError, match="structure"):
            self.run_with(handler)

    def test_http_error(self, credentials):
        def handler(request):
            return httpx.Response(500, text="oops")

        with pytest.raises(httpx.HTTPStatusError):
            self.run_with(handler)
