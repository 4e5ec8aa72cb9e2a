"""Unit tests for station parsing and arithmetic.

Tests:
- Parsing drawing notation with and without prefixes
- Formatting round trips
- Range length ordering
- Station extraction from free text and document-wide maxima
- Open-ended range estimates
"""

import pytest

from plansearch.services.parsing import station_parser
from plansearch.services.parsing.station_parser import Station


class TestParse:
    """Test station text parsing."""

    @pytest.mark.parametrize("text,major,offset", [
        ("13+00", 13, 0.0),
        ("4+38.83", 4, 38.83),
        ("STA 13+00", 13, 0.0),
        ("sta. 32+62.01", 32, 62.01),
        ("0013+50.00", 13, 50.0),
        ("  0+05  ", 0, 5.0),
    ])
    def test_parses_valid_stations(self, text, major, offset):
        station = station_parser.parse(text)

        assert station is not None
        assert station.major_station == major
        assert station.offset == pytest.approx(offset)

    @pytest.mark.parametrize("text", [None, "", "abc", "13-00", "13+100", "O/S 27+10.47 RT"])
    def test_invalid_text_returns_none(self, text):
        assert station_parser.parse(text) is None

    def test_total_length_units(self):
        assert station_parser.parse("13+50.25").total_length_units == pytest.approx(1350.25)

    def test_station_rejects_out_of_range_offset(self):
        with pytest.raises(ValueError):
            Station(major_station=1, offset=100.0)


class TestFormat:
    """Test formatting back to drawing notation."""

    @pytest.mark.parametrize("text", ["13+00", "4+38.83", "STA 0013+50.00", "0+05", "120+99.5"])
    def test_format_parse_round_trip(self, text):
        station = station_parser.parse(text)
        reparsed = station_parser.parse(station_parser.format_station(station))

        assert reparsed.total_length_units == pytest.approx(station.total_length_units)

    def test_formats_whole_offsets_with_two_digits(self):
        assert station_parser.format_station(Station(major_station=13, offset=5.0)) == "13+05"

    def test_normalize(self):
        assert station_parser.normalize("STA 0013+00.00") == "13+00"
        assert station_parser.normalize("nonsense") is None


class TestRangeLength:
    """Test ordered range lengths."""

    def test_positive_when_end_after_start(self):
        start = station_parser.parse("13+00")
        end = station_parser.parse("45+12.34")

        assert station_parser.range_length(start, end) == pytest.approx(3212.34)

    def test_reversed_range_is_none(self):
        start = station_parser.parse("45+12.34")
        end = station_parser.parse("13+00")

        assert station_parser.range_length(start, end) is None

    def test_identical_endpoints_are_none(self):
        station = station_parser.parse("13+00")

        assert station_parser.range_length(station, station) is None

    def test_compare_and_distance(self):
        a = station_parser.parse("10+00")
        b = station_parser.parse("12+50")

        assert station_parser.compare(a, b) == -1
        assert station_parser.compare(b, a) == 1
        assert station_parser.compare(a, a) == 0
        assert station_parser.distance(a, b) == pytest.approx(250.0)
        assert station_parser.distance_between("10+00", "12+50") == pytest.approx(250.0)
        assert station_parser.distance_between("10+00", None) is None


class TestFeetToStation:

    def test_converts_feet(self):
        station = station_parser.feet_to_station(1350.25)

        assert station.major_station == 13
        assert station.offset == pytest.approx(50.25)

    def test_negative_feet_rejected(self):
        with pytest.raises(ValueError):
            station_parser.feet_to_station(-1)


class TestTextExtraction:
    """Test stations found in free text."""

    def test_extracts_distinct_stations_in_order(self):
        text = "BEGIN WATER LINE 'A' STA 13+00\nEND STA 45+12.34\nSEE STA 13+00"

        stations = station_parser.extract_stations_from_text(text)

        assert [station_parser.format_station(s) for s in stations] == ["13+00", "45+12.34"]

    def test_find_max_station_across_texts(self):
        texts = ["STA 10+00 to STA 12+00", None, "MATCH LINE STA 48+75.10", "no stations"]

        best = station_parser.find_max_station(texts)

        assert station_parser.format_station(best) == "48+75.1"

    def test_find_max_station_with_no_stations(self):
        assert station_parser.find_max_station(["nothing here", ""]) is None


class TestOpenRange:
    """Test estimates for ranges with no END."""

    def test_estimate_uses_document_maximum(self):
        estimate = station_parser.estimate_open_range(
            station_parser.parse("13+00"),
            station_parser.parse("40+00"),
        )

        assert estimate.length == pytest.approx(2700.0)
        assert estimate.estimated is True
        assert estimate.confidence < 0.7

    def test_no_estimate_without_maximum(self):
        assert station_parser.estimate_open_range(station_parser.parse("13+00"), None) is None

    def test_no_estimate_when_maximum_precedes_start(self):
        assert station_parser.estimate_open_range(
            station_parser.parse("50+00"),
            station_parser.parse("40+00"),
        ) is None


class TestStrictFormat:

    @pytest.mark.parametrize("text,expected", [
        ("13+00", True),
        ("32+62.01", True),
        ("1234+00", False),
        ("13+00 RT", False),
        ("STA 13+00", False),
        (None, False),
    ])
    def test_is_strict_station(self, text, expected):
        assert station_parser.is_strict_station(text) is expected
