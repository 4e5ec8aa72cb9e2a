"""Unit tests for utility abbreviations and crossing indicators."""

import pytest

from plansearch.services.parsing.utility_abbreviations import (
    contains_crossing_keywords,
    extract_crossing_indicators,
    format_crossing_table,
    get_utility_category,
    get_utility_full_name,
    is_primary_component_label,
    normalize_size,
    normalize_utility_code,
)


class TestAbbreviations:

    @pytest.mark.parametrize("text,code", [
        ("ELEC", "ELEC"),
        ("electric", "ELEC"),
        ("san sewer", "SS"),
        ("SD", "STM"),
        (" water line ", "W"),
        ("F.M.", "FM"),
    ])
    def test_normalize_utility_code(self, text, code):
        assert normalize_utility_code(text) == code

    def test_unknown_code(self):
        assert normalize_utility_code("XYZ") is None
        assert normalize_utility_code(None) is None

    def test_full_name_and_category(self):
        assert get_utility_full_name("STM") == "Storm Drain"
        assert get_utility_full_name("XYZ") == "XYZ"
        assert get_utility_category("FO") == "telecom"
        assert get_utility_category("XYZ") is None

    @pytest.mark.parametrize("size,expected", [
        ("12 inch", "12-IN"),
        ('12"', "12-IN"),
        ("12-in", "12-IN"),
        ("12x8", "12X8"),
        (None, None),
    ])
    def test_normalize_size(self, size, expected):
        assert normalize_size(size) == expected


class TestCrossingKeywords:

    def test_question_phrase(self):
        assert contains_crossing_keywords("What utilities cross waterline A?") is True

    def test_keyword_with_utility_type(self):
        assert contains_crossing_keywords("Where does the gas line intersect the road?") is True

    def test_quantity_question_is_not_crossing(self):
        assert contains_crossing_keywords("What is the total length of waterline A?") is False
        assert contains_crossing_keywords(None) is False


class TestPrimaryComponentLabels:
    """Test that sized fittings of the primary utility are never crossings."""

    @pytest.mark.parametrize("label", ["12-IN VERT DEFL", "12-IN X 8-IN TEE", "8-IN GATE VALVE"])
    def test_sized_fittings_are_components(self, label):
        assert is_primary_component_label(label) is True

    def test_primary_size_marks_component(self):
        assert is_primary_component_label("12-IN WATER", primary_size='12"') is True

    def test_other_sized_utility_is_not_component(self):
        assert is_primary_component_label("8-IN SS 31.20", primary_size="12-IN") is False


class TestCrossingIndicators:
    """Test crossing indicator extraction from profile text."""

    def test_extracts_elevation_and_existing_flags(self):
        text = "ELEC 35.73±\n12-IN VERT DEFL\nEXIST SS 31.20"

        indicators = extract_crossing_indicators(text)

        by_code = {i.utility_code: i for i in indicators}
        assert set(by_code) == {"ELEC", "SS"}
        assert by_code["ELEC"].elevation == pytest.approx(35.73)
        assert by_code["ELEC"].utility_full_name == "Electrical"
        assert by_code["SS"].is_existing is True
        assert by_code["SS"].elevation == pytest.approx(31.2)

    def test_component_lines_are_skipped(self):
        assert extract_crossing_indicators("12-IN VERT DEFL\n12-IN X 8-IN TEE") == []

    def test_same_line_station_is_attached(self):
        indicators = extract_crossing_indicators("STA 13+00 ELEC 35.73")

        assert len(indicators) == 1
        assert indicators[0].station == "13+00"

    def test_stations_assigned_in_order_when_not_on_line(self):
        text = "ELEC 35.73\nGAS 30.10\nSTA 10+50\nSTA 11+00"

        indicators = extract_crossing_indicators(text)

        assert [i.station for i in indicators] == ["10+50", "11+00"]

    def test_format_table(self):
        table = format_crossing_table(extract_crossing_indicators("STA 13+00 ELEC 35.73"), "WATER LINE 'A'")

        assert table.startswith("## Utility Crossings - WATER LINE 'A'")
        assert "| 13+00 | Electrical (ELEC) | 35.73± ft |" in table
        assert "**Total:** 1 utility crossing(s) identified" in table

    def test_format_empty_table(self):
        assert format_crossing_table([]) == "No utility crossing indicators found in extracted text."
