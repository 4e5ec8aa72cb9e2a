"""Unit tests for callout box detection and match-line noise filtering."""

import pytest

from plansearch.services.parsing.callout_detector import (
    callout_confidence,
    detect_callouts,
    extract_callout_metadata,
    has_callout_box_pattern,
    is_match_line_only_chunk,
    match_callout_header,
    parse_component_line,
    split_preserving_callouts,
)


class TestDetectCallouts:
    """Test the two-phase header/component scan."""

    def test_single_callout_with_one_component(self):
        text = "WATER LINE 'A' STA 13+00\n- 1 - 12-IN GATE VALVE AND VALVE BOX"

        callouts = detect_callouts(text)

        assert len(callouts) == 1
        callout = callouts[0]
        assert "WATER LINE" in callout.system_name
        assert callout.station_text == "13+00"
        assert callout.station.total_length_units == 1300
        assert len(callout.components) == 1
        component = callout.components[0]
        assert component.quantity == 1
        assert component.size == "12-IN"
        assert "GATE VALVE" in component.name

    def test_callout_closes_on_non_component_line(self):
        text = (
            "WATER LINE 'A' STA 13+00\n"
            "- 1 - 12-IN GATE VALVE AND VALVE BOX\n"
            "- 1 - 12-IN X 8-IN TEE\n"
            "GENERAL NOTES APPLY\n"
            "- 2 - 8-IN PLUG"
        )

        callouts = detect_callouts(text)

        assert len(callouts) == 1
        assert len(callouts[0].components) == 2

    def test_two_headers_make_two_callouts(self):
        text = (
            "WATER LINE 'A' STA 13+00\n"
            "- 1 - 12-IN GATE VALVE\n"
            "STORM DRAIN 'B' STA 20+50\n"
            "- 1 - 24-IN CAP"
        )

        callouts = detect_callouts(text)

        assert [c.system_name for c in callouts] == ["WATER LINE 'A'", "STORM DRAIN 'B'"]

    def test_code_style_header(self):
        callouts = detect_callouts("WL-A STA 5+23.50\n1 - 12-IN GATE VALVE")

        assert callouts[0].system_name == "WATER LINE 'A'"
        assert callouts[0].components[0].quantity == 1

    def test_confidence_grows_with_components(self):
        one = detect_callouts("WATER LINE 'A' STA 13+00\n- 1 - 12-IN GATE VALVE")[0]
        three = detect_callouts(
            "WATER LINE 'A' STA 13+00\n- 1 - 12-IN GATE VALVE\n- 1 - 12-IN TEE\n- 1 - 12-IN PLUG"
        )[0]

        assert three.confidence > one.confidence
        assert callout_confidence(0) == 0.7
        assert callout_confidence(1) == 0.9
        assert callout_confidence(3) == 0.95

    def test_empty_text(self):
        assert detect_callouts("") == []
        assert detect_callouts(None) == []


class TestComponentLines:

    @pytest.mark.parametrize("line,quantity,size", [
        ("- 1 - 12-IN GATE VALVE AND VALVE BOX", 1, "12-IN"),
        ("2 - 8-IN 45 BEND", 2, "8-IN"),
        ("(3) 6-IN FIRE HYDRANT", 3, "6-IN"),
    ])
    def test_parses_component_formats(self, line, quantity, size):
        component = parse_component_line(line)

        assert component.quantity == quantity
        assert component.size == size

    def test_non_component_line(self):
        assert parse_component_line("GENERAL NOTES APPLY") is None

    def test_header_match(self):
        assert match_callout_header("WATER LINE 'A' STA 13+00") == ("WATER LINE 'A'", "13+00")
        assert match_callout_header("NOTES") is None


class TestMatchLineNoise:
    """Test the navigation-noise classifier."""

    def test_match_line_only_chunk_is_noise(self):
        assert is_match_line_only_chunk("MATCH LINE - WATER LINE 'A' STA 4+38.83 SEE SHEET CU102") is True

    def test_match_line_with_component_data_is_kept(self):
        content = "MATCH LINE - WATER LINE 'A' STA 4+38.83 SEE SHEET CU102\n1 - 12-IN GATE VALVE"

        assert is_match_line_only_chunk(content) is False

    def test_text_without_match_line_is_kept(self):
        assert is_match_line_only_chunk("SEE SHEET CU102 STA 4+38.83") is False
        assert is_match_line_only_chunk(None) is False


class TestChunkHelpers:

    def test_extract_callout_metadata(self):
        metadata = extract_callout_metadata(
            "WATER LINE 'A' STA 13+00\n- 1 - 12-IN GATE VALVE AND VALVE BOX\n- 1 - 12-IN PLUG"
        )

        assert metadata.is_callout_box is True
        assert metadata.contains_components is True
        assert metadata.component_count == 2
        assert metadata.system_name == "WATER LINE 'A'"
        assert metadata.station == "13+00"

    def test_metadata_without_callouts(self):
        metadata = extract_callout_metadata("GENERAL NOTES")

        assert metadata.is_callout_box is False
        assert metadata.component_list == []

    def test_quick_pattern(self):
        assert has_callout_box_pattern("WATER LINE 'A' STA 13+00") is True
        assert has_callout_box_pattern("GENERAL NOTES") is False

    def test_split_keeps_callout_whole(self):
        text = (
            "GENERAL NOTES\n" + "x" * 50 + "\n"
            "WATER LINE 'A' STA 13+00\n"
            "- 1 - 12-IN GATE VALVE\n"
            "- 1 - 12-IN TEE\n"
            "END OF NOTES"
        )

        chunks = split_preserving_callouts(text, max_chunk_size=40)

        callout_chunks = [c for c in chunks if c["has_callout"]]
        assert len(callout_chunks) == 1
        assert "12-IN GATE VALVE" in callout_chunks[0]["text"]
        assert "12-IN TEE" in callout_chunks[0]["text"]
        assert any("END OF NOTES" in c["text"] for c in chunks if not c["has_callout"])
