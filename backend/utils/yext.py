"""
Yext Knowledge Graph client — entity lookup and FAQ publishing.

Functions:
  list_entities()   locations (or any entity type) in the account
  get_entity()      one entity as an EntityRef, None when Yext returns 404
  publish_faq()     write an FAQ document into an entity's custom FAQ field

Answers are sent as Lexical rich-text JSON, which is what Yext's rich-text
custom fields expect.

Required env vars:
    YEXT_API_KEY        Knowledge Graph API key
    YEXT_ACCOUNT_ID     account id (or "me")
Optional:
    YEXT_FAQ_FIELD_ID   custom field receiving FAQs
                        (default: c_minigolfMadness_locations_faqSection)
"""

import logging
import os
from datetime import date
from typing import Optional

import httpx

from utils.errors import EntityFetchError, PublishError
from utils.models import EntityRef, FAQContent

logger = logging.getLogger(__name__)

YEXT_API_BASE = "https://api.yextapis.com/v2"
DEFAULT_FAQ_FIELD_ID = "c_minigolfMadness_locations_faqSection"


def _credentials() -> tuple[str, str]:
    api_key = os.environ.get("YEXT_API_KEY", "")
    account_id = os.environ.get("YEXT_ACCOUNT_ID", "")
    if not api_key or not account_id:
        raise ValueError("YEXT_API_KEY and YEXT_ACCOUNT_ID env vars are required.")
    return api_key, account_id


def _version() -> str:
    """Yext API version pin: today's date as YYYYMMDD."""
    return date.today().strftime("%Y%m%d")


def faq_field_id() -> str:
    return os.environ.get("YEXT_FAQ_FIELD_ID") or DEFAULT_FAQ_FIELD_ID


def _api_errors(data: dict) -> list[str]:
    errors = ((data or {}).get("meta") or {}).get("errors") or []
    return [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]


async def _request(
    method: str,
    path: str,
    *,
    params: Optional[dict] = None,
    json: Optional[dict] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Response:
    api_key, account_id = _credentials()
    url = f"{YEXT_API_BASE}/accounts/{account_id}/{path}"
    query = {"v": _version(), "api_key": api_key, **(params or {})}
    if client is None:
        async with httpx.AsyncClient(timeout=30.0) as own_client:
            return await own_client.request(method, url, params=query, json=json)
    return await client.request(method, url, params=query, json=json)


# ── Entities ─────────────────────────────────────────────────────────────────

async def list_entities(
    entity_type: Optional[str] = None,
    limit: int = 50,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> list[EntityRef]:
    params = {"limit": limit}
    if entity_type:
        params["entityTypes"] = entity_type

    logger.info("Listing Yext entities%s", f" of type {entity_type}" if entity_type else "")
    try:
        resp = await _request("GET", "entities", params=params, client=client)
    except httpx.HTTPError as e:
        raise EntityFetchError("*", f"Yext request failed: {e}") from e
    if resp.status_code >= 400:
        raise EntityFetchError("*", f"Yext API error ({resp.status_code}): {resp.text}")

    data = resp.json()
    errors = _api_errors(data)
    if errors:
        raise EntityFetchError("*", f"Yext API errors: {', '.join(errors)}")

    entities = (data.get("response") or {}).get("entities") or []
    logger.info("Found %d entities", len(entities))
    return [EntityRef.from_yext(raw) for raw in entities]


async def get_entity(
    entity_id: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[EntityRef]:
    """Fetch one entity. Returns None when the entity does not exist."""
    try:
        resp = await _request("GET", f"entities/{entity_id}", client=client)
    except httpx.HTTPError as e:
        raise EntityFetchError(entity_id, f"Yext request failed: {e}") from e

    if resp.status_code == 404:
        return None
    if resp.status_code >= 400:
        raise EntityFetchError(entity_id, f"Yext API error ({resp.status_code}): {resp.text}")

    data = resp.json()
    errors = _api_errors(data)
    if errors:
        raise EntityFetchError(entity_id, f"Yext API errors: {', '.join(errors)}")

    raw = data.get("response")
    if not raw:
        return None
    entity = EntityRef.from_yext(raw)
    if not entity.id:
        entity = entity.model_copy(update={"id": entity_id})
    return entity


# ── Publishing ───────────────────────────────────────────────────────────────

def text_to_lexical(text: str) -> dict:
    """Wrap plain text as a single-paragraph Lexical document."""
    return {
        "json": {
            "root": {
                "type": "root",
                "direction": "ltr",
                "format": "",
                "indent": 0,
                "version": 1,
                "children": [{
                    "type": "paragraph",
                    "direction": "ltr",
                    "format": "",
                    "indent": 0,
                    "version": 1,
                    "children": [{
                        "type": "text",
                        "detail": 0,
                        "format": 0,
                        "mode": "normal",
                        "style": "",
                        "text": text,
                        "version": 1,
                    }],
                }],
            }
        }
    }


def faq_to_yext_fields(content: FAQContent, field_id: str) -> dict:
    return {
        field_id: {
            "faqs": [
                {"question": item.question, "answer": text_to_lexical(item.answer)}
                for item in content.items
            ]
        }
    }


async def publish_faq(
    entity_id: str,
    content: FAQContent,
    field_id: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Overwrite an entity's FAQ field with the given content.
    Returns the Yext response body; raises PublishError on any rejection.
    """
    field_id = field_id or faq_field_id()
    logger.info("Publishing %d FAQ items to entity %s (field %s)", len(content.items), entity_id, field_id)

    try:
        resp = await _request(
            "PUT", f"entities/{entity_id}", json=faq_to_yext_fields(content, field_id), client=client
        )
    except httpx.HTTPError as e:
        raise PublishError(f"Yext request failed for entity {entity_id}: {e}") from e

    try:
        data = resp.json()
    except ValueError:
        raise PublishError(f"Invalid JSON response from Yext API: {resp.text}")

    errors = _api_errors(data)
    if resp.status_code >= 400:
        detail = ", ".join(errors) or f"HTTP {resp.status_code}: {resp.text}"
        raise PublishError(f"Yext API error: {detail}")
    if errors:
        raise PublishError(f"Yext API errors: {', '.join(errors)}")

    logger.info("Updated entity %s", entity_id)
    return data
