"""
Seed query expansion — turns (brand, vertical, region) into search queries
used to probe the People Also Ask discovery provider.

Pure functions, no I/O. Output order is template order; duplicates are
dropped keeping the first occurrence.
"""

import logging
import re
from typing import Optional

from utils.errors import ValidationError

logger = logging.getLogger(__name__)


GENERAL_TEMPLATES = [
    "{brand} {vertical} {region}",
    "{brand} near me {region}",
    "best {vertical} {region}",
    "{brand} hours {region}",
    "{brand} menu {region}",
    "{vertical} delivery {region}",
    "{brand} location {region}",
    "where to find {brand} {region}",
    "{brand} reviews {region}",
    "order from {brand} {region}",
    "{brand} phone number {region}",
    "{vertical} near {region}",
    "{brand} address {region}",
    "how to find {brand} {region}",
    "{brand} contact {region}",
]

TROUBLESHOOTING_TEMPLATES = [
    "{brand} problems",
    "{brand} issues",
    "{brand} not working",
    "{brand} error",
    "{brand} fix",
    "how to fix {brand}",
    "{brand} troubleshooting",
    "{brand} support",
    "{brand} help",
    "{brand} broken",
    "{brand} not responding",
    "{brand} won't work",
    "{brand} issue {region}",
    "{brand} problem {region}",
    "{brand} fix {region}",
    "how to fix {brand} {region}",
    "{brand} troubleshooting {region}",
    "{brand} support {region}",
]


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _expand(
    templates: list[str],
    brand: Optional[str],
    vertical: str,
    region: Optional[str],
) -> list[str]:
    vertical = (vertical or "").strip()
    if not vertical:
        raise ValidationError("Cannot expand seeds without a vertical")

    brand = (brand or "").strip() or vertical
    region = (region or "").strip()

    base = [
        _clean(t.format(brand=brand, vertical=vertical, region=region))
        for t in templates
    ]

    # "Chandler" → "in Chandler" on the first occurrence only
    variations = [s.replace(region, f"in {region}", 1) for s in base] if region else []

    seen: set[str] = set()
    seeds: list[str] = []
    for seed in base + variations:
        if seed and seed not in seen:
            seen.add(seed)
            seeds.append(seed)
    return seeds


def expand_seeds(brand: Optional[str], vertical: str, region: Optional[str]) -> list[str]:
    """General FAQ / comparison / blog seeds."""
    seeds = _expand(GENERAL_TEMPLATES, brand, vertical, region)
    logger.info("Generated %d seed queries", len(seeds))
    return seeds


def expand_troubleshooting_seeds(
    brand: Optional[str], vertical: str, region: Optional[str]
) -> list[str]:
    """Problem / support oriented seeds for troubleshooting articles."""
    seeds = _expand(TROUBLESHOOTING_TEMPLATES, brand, vertical, region)
    logger.info("Generated %d troubleshooting seed queries", len(seeds))
    return seeds
