"""
DataForSEO client — People Also Ask discovery for the content pipeline.

Core function (live, pay-per-result ~$0.002 each):
  fetch_people_also_ask()   — related questions for a batch of seed queries

One SERP request per seed, sequential, with a fixed pause between calls to
stay under the provider's rate limit. A failing seed is logged and simply
contributes no questions; missing credentials fail the whole call.

Required env vars:
    DATAFORSEO_LOGIN      your DataForSEO account email
    DATAFORSEO_PASSWORD   your DataForSEO account password

Location name format examples:
    "Chandler,Arizona,United States"
    "United States"   (used when the region has no state part)
"""

import asyncio
import base64
import logging
import os
from typing import Optional

import httpx

from utils.errors import DiscoveryError
from utils.models import DiscoveredQuestion

logger = logging.getLogger(__name__)

DFS_BASE = "https://api.dataforseo.com/v3"
SERP_ENDPOINT = "serp/google/organic/live/advanced"
DEFAULT_LOCATION = "United States"

# Pay-per-call: only the first N seeds are queried per run
MAX_SEEDS_PER_RUN = 5
INTER_CALL_DELAY = 0.5


# ── Auth ─────────────────────────────────────────────────────────────────────

def _auth_header() -> str:
    login = os.environ.get("DATAFORSEO_LOGIN", "")
    password = os.environ.get("DATAFORSEO_PASSWORD", "")
    if not login or not password:
        raise ValueError(
            "DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD env vars are required. "
            "Sign up at dataforseo.com and set these in your environment."
        )
    token = base64.b64encode(f"{login}:{password}".encode()).decode()
    return f"Basic {token}"


# ── Core HTTP call ────────────────────────────────────────────────────────────

async def _dfs_post(
    endpoint: str,
    payload: list[dict],
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Make a single DataForSEO API call.
    Raises DiscoveryError on API-level errors, httpx.HTTPError on transport errors.
    """
    headers = {
        "Authorization": _auth_header(),
        "Content-Type": "application/json",
    }
    if client is None:
        async with httpx.AsyncClient(timeout=30.0) as own_client:
            resp = await own_client.post(f"{DFS_BASE}/{endpoint}", headers=headers, json=payload)
    else:
        resp = await client.post(f"{DFS_BASE}/{endpoint}", headers=headers, json=payload)
    resp.raise_for_status()
    try:
        data = resp.json()
    except ValueError:
        raise DiscoveryError("DataForSEO returned a non-JSON response")
    if not isinstance(data, dict):
        raise DiscoveryError("Unexpected DataForSEO response structure")

    # DataForSEO wraps everything in a status code, 20000 = success
    if data.get("status_code", 20000) != 20000:
        raise DiscoveryError(
            f"DataForSEO error {data['status_code']}: {data.get('status_message', 'Unknown')}"
        )

    try:
        task = data["tasks"][0]
    except (KeyError, IndexError, TypeError):
        raise DiscoveryError("Unexpected DataForSEO response structure")
    if not isinstance(task, dict):
        raise DiscoveryError("Unexpected DataForSEO response structure")
    if task.get("status_code", 20000) != 20000:
        raise DiscoveryError(
            f"DataForSEO task error {task['status_code']}: {task.get('status_message', '')}"
        )

    return data


# ── Location helpers ─────────────────────────────────────────────────────────

STATE_ABBREVS = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming", "DC": "District of Columbia",
}


def build_location_name(region: Optional[str]) -> str:
    """
    Convert 'Chandler, AZ' → 'Chandler,Arizona,United States'
    for the DataForSEO location_name parameter. A bare city has no reliable
    mapping, so it falls back to the country; the seed text already names it.
    """
    if not region or "," not in region:
        return DEFAULT_LOCATION

    parts = [p.strip() for p in region.split(",")]
    city = parts[0]
    state_raw = parts[1].upper()
    state_full = STATE_ABBREVS.get(state_raw, parts[1])

    return f"{city},{state_full},{DEFAULT_LOCATION}"


# ── Parsing ──────────────────────────────────────────────────────────────────

def _text(obj: dict, key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def parse_people_also_ask(data: dict) -> list[DiscoveredQuestion]:
    """
    Pull PAA elements out of an advanced SERP response.

    Each people_also_ask element carries the question as its title and the
    answer box (snippet, source title, url) under expanded_element.
    """
    try:
        items = data["tasks"][0]["result"][0]["items"] or []
    except (KeyError, IndexError, TypeError):
        return []

    rows: list[DiscoveredQuestion] = []
    for item in items:
        if not isinstance(item, dict) or item.get("type") != "people_also_ask":
            continue
        for element in item.get("items") or []:
            if not isinstance(element, dict):
                continue
            question = element.get("title")
            if not isinstance(question, str) or not question.strip():
                continue
            question = question.strip()
            expanded = (element.get("expanded_element") or [{}])[0]
            if not isinstance(expanded, dict):
                expanded = {}
            rows.append(DiscoveredQuestion(
                question=question,
                snippet=_text(expanded, "description"),
                title=_text(expanded, "title"),
                link=_text(expanded, "url") or None,
            ))
    return rows


# ── Discovery ────────────────────────────────────────────────────────────────

async def fetch_people_also_ask(
    seeds: list[str],
    region: Optional[str] = None,
    language: str = "en",
    rich_metadata: bool = False,
    *,
    client: Optional[httpx.AsyncClient] = None,
    delay: float = INTER_CALL_DELAY,
    max_seeds: int = MAX_SEEDS_PER_RUN,
) -> list[DiscoveredQuestion]:
    """
    Fetch People Also Ask questions for each seed.

    Args:
        seeds:          search queries from seed expansion
        region:         e.g. "Chandler, AZ" — mapped to a DataForSEO location
        language:       language code, e.g. "en"
        rich_metadata:  request deeper PAA expansion (troubleshooting mode)
        client:         optional shared httpx client
        delay:          pause between successive calls, seconds
        max_seeds:      cap on seeds queried per run

    Returns:
        All discovered rows in seed order (duplicates included — ranking dedupes).
    """
    # Fail the whole call up front on missing credentials
    _auth_header()

    batch = seeds[:max_seeds]
    location_name = build_location_name(region)
    logger.info(
        "Fetching PAA for %d seeds%s", len(batch), " (troubleshooting mode)" if rich_metadata else ""
    )

    rows: list[DiscoveredQuestion] = []
    for i, seed in enumerate(batch):
        if i > 0 and delay:
            await asyncio.sleep(delay)
        payload = [{
            "keyword": seed,
            "location_name": location_name,
            "language_code": language,
            "depth": 20,
            "people_also_ask_click_depth": 2 if rich_metadata else 1,
        }]
        try:
            data = await _dfs_post(SERP_ENDPOINT, payload, client=client)
        except (DiscoveryError, httpx.HTTPError) as e:
            logger.warning("PAA fetch failed for %r: %s", seed, e)
            continue

        found = parse_people_also_ask(data)
        logger.info("Fetched %d questions for %r", len(found), seed)
        rows.extend(found)

    logger.info("Total PAA rows collected: %d", len(rows))
    return rows
