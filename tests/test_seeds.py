"""Tests for seed query expansion."""

import pytest

from utils.errors import ValidationError
from utils.seeds import (
    GENERAL_TEMPLATES,
    TROUBLESHOOTING_TEMPLATES,
    expand_seeds,
    expand_troubleshooting_seeds,
)


class TestExpandSeeds:
    def test_brand_vertical_region(self):
        seeds = expand_seeds("Acme", "Pizza", "Reno")
        assert seeds[0] == "Acme Pizza Reno"
        assert "best Pizza Reno" in seeds
        assert "Acme Pizza in Reno" in seeds
        assert len(seeds) == 2 * len(GENERAL_TEMPLATES)

    def test_no_duplicates(self):
        seeds = expand_seeds(None, "Coffee", "Vancouver")
        assert len(seeds) == len(set(seeds))

    def test_missing_brand_falls_back_to_vertical(self):
        seeds = expand_seeds(None, "Coffee", "Vancouver")
        assert seeds[0] == "Coffee Coffee Vancouver"

    def test_missing_region_collapses_whitespace(self):
        seeds = expand_seeds("Acme", "Pizza", None)
        assert "Acme Pizza" in seeds
        assert all(s == s.strip() and "  " not in s for s in seeds)
        assert not any(" in " in f" {s} " for s in seeds)

    def test_empty_vertical_rejected(self):
        with pytest.raises(ValidationError):
            expand_seeds("Acme", "  ", "Reno")


class TestExpandTroubleshootingSeeds:
    def test_issue_oriented_queries(self):
        seeds = expand_troubleshooting_seeds("Acme", "Internet", "Reno")
        assert seeds[0] == "Acme problems"
        assert "Acme not working" in seeds
        assert "how to fix Acme in Reno" in seeds

    def test_regionless_templates_deduplicate(self):
        seeds = expand_troubleshooting_seeds("Acme", "Internet", None)
        # "{brand} fix {region}" collapses onto "{brand} fix"
        assert seeds.count("Acme fix") == 1
        assert len(seeds) < len(TROUBLESHOOTING_TEMPLATES)
