"""Unit tests for system name normalization and variants."""

import pytest

from plansearch.services.parsing.system_names import (
    compact_label,
    generate_system_variants,
    normalize_label,
    same_system,
    split_system_name,
)


class TestNormalize:

    def test_normalize_label(self):
        assert normalize_label("WATER LINE 'A'") == "water line a"
        assert normalize_label("Waterline A") == "water line a"
        assert normalize_label(None) == ""

    def test_compact_label(self):
        assert compact_label("WATER LINE 'A'") == "waterlinea"

    @pytest.mark.parametrize("name,expected", [
        ("WATER LINE 'A'", ("water line", "a")),
        ("waterline a", ("water line", "a")),
        ("WL-A", ("water line", "a")),
        ("SD_12", ("storm drain", "12")),
        ("Storm Drain", ("storm drain", None)),
        ("PAVING", (None, None)),
    ])
    def test_split_system_name(self, name, expected):
        assert split_system_name(name) == expected


class TestVariants:

    def test_variants_cover_common_spellings(self):
        variants = generate_system_variants("waterline a")

        assert variants[0] == "waterline a"
        assert "WATER LINE 'A'" in variants
        assert "WL-A" in variants
        assert "WL A" in variants

    def test_variants_are_unique_ignoring_case(self):
        variants = generate_system_variants("waterline a")

        lowered = [v.lower() for v in variants]
        assert len(lowered) == len(set(lowered))

    def test_empty_name(self):
        assert generate_system_variants("") == []
        assert generate_system_variants(None) == []


class TestSameSystem:

    @pytest.mark.parametrize("a,b", [
        ("WL-A", "Water Line 'A'"),
        ("SS-1", "Sanitary Sewer 1"),
        ("waterline a", "WATER LINE A"),
    ])
    def test_equivalent_names(self, a, b):
        assert same_system(a, b) is True

    def test_different_identifiers(self):
        assert same_system("WL-A", "WL-B") is False
        assert same_system("WL-A", "SD-A") is False
        assert same_system(None, "WL-A") is False
