"""Tests for plan-set query classification.

Tests:
- Rule ordering and query type assignment
- Item, size, sheet, station and system extraction
- Complete-data and aggregation flags
- Degradation to a general classification
"""

import pytest
from unittest.mock import MagicMock

from plansearch.schemas.query import QueryIntent, QueryType
from plansearch.schemas.vision import SheetType
from plansearch.services.retrieval.query_understanding.query_classifier import (
    QueryClassifier,
    build_search_parameters,
    clean_item_name,
    extract_size_filter,
    extract_system_name,
    get_search_strategy,
)


class TestQueryClassifier:
    """Test QueryClassifier.classify."""

    def setup_method(self):
        self.classifier = QueryClassifier()

    def test_total_length_is_quantity(self):
        """Test that a length question is a quantity query needing complete data."""
        result = self.classifier.classify("What is the total length of waterline A?")

        assert result.type == QueryType.QUANTITY
        assert result.intent == QueryIntent.QUANTITATIVE
        assert result.item_name == "waterline a"
        assert result.needs_direct_lookup is True
        assert result.needs_complete_data is True
        assert result.is_aggregation_query is True
        assert result.search_hints.system_name == "Water Line A"
        assert SheetType.PLAN in result.search_hints.preferred_sheet_types
        assert SheetType.SUMMARY in result.search_hints.preferred_sheet_types

    def test_count_question_extracts_filters(self):
        """Test that size and sheet filters are pulled out of a count question."""
        result = self.classifier.classify("How many 12-inch gate valves are on sheet CU107?")

        assert result.type == QueryType.QUANTITY
        assert result.item_name == "12-inch gate valves"
        assert result.size_filter == "12-IN"
        assert result.sheet_number == "CU107"
        assert result.needs_complete_data is True
        assert result.search_hints.keywords == ["12-inch gate valves"]

    def test_location_question_with_station(self):
        result = self.classifier.classify("Where is the fire hydrant near station 15+00?")

        assert result.type == QueryType.LOCATION
        assert result.station == "15+00"
        assert result.stations == ["15+00"]
        assert result.needs_vision is True

    def test_multiple_stations_first_is_anchor(self):
        result = self.classifier.classify("Where are the valves between STA 10+00 and STA 12+50?")

        assert result.stations == ["10+00", "12+50"]
        assert result.station == "10+00"

    def test_crossing_question(self):
        """Test that crossing questions use the system as the item and skip vector search."""
        result = self.classifier.classify("What utilities cross water line A?")

        assert result.type == QueryType.UTILITY_CROSSING
        assert result.item_name == "water line A"
        assert result.needs_vector_search is False
        assert result.needs_vision is True
        assert "ELEC" in result.search_hints.keywords

    def test_project_summary(self):
        result = self.classifier.classify("Give me a project overview")

        assert result.type == QueryType.PROJECT_SUMMARY
        assert result.is_aggregation_query is True
        assert result.needs_complete_data is True
        assert result.needs_vector_search is False

    def test_specification_extracts_material(self):
        result = self.classifier.classify("What are the bedding requirements for ductile iron pipe?")

        assert result.type == QueryType.SPECIFICATION
        assert result.material == "ductile iron"

    def test_detail_number(self):
        result = self.classifier.classify("Show detail 5/C-501")

        assert result.type == QueryType.DETAIL
        assert result.detail_number == "5/C-501"

    def test_unmatched_query_is_general(self):
        result = self.classifier.classify("Tell me something nice")

        assert result.type == QueryType.GENERAL
        assert result.confidence == pytest.approx(0.5)
        assert result.needs_vector_search is True

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty_query(self, query):
        result = self.classifier.classify(query)

        assert result.type == QueryType.GENERAL
        assert result.confidence == 0.0

    def test_failure_degrades_to_general(self):
        """Test that an exception inside a rule never escapes classify."""
        broken_rule = MagicMock()
        broken_rule.matches.side_effect = RuntimeError("bad pattern")
        classifier = QueryClassifier(rules=(broken_rule,))

        result = classifier.classify("How many valves?")

        assert result.type == QueryType.GENERAL
        assert result.confidence == pytest.approx(0.3)
        assert result.original_query == "How many valves?"


class TestExtractionHelpers:

    @pytest.mark.parametrize("query,expected", [
        ("12-inch valves", "12-IN"),
        ("8 in pipe", "8-IN"),
        ('6" tee', "6-IN"),
        ("valves", None),
        (None, None),
    ])
    def test_extract_size_filter(self, query, expected):
        assert extract_size_filter(query) == expected

    def test_extract_system_name(self):
        assert extract_system_name("length of waterline A") == "Water Line A"
        assert extract_system_name("takeoff for SD-2") == "SD-2"
        assert extract_system_name("all sewer fittings") == "SEWER"
        assert extract_system_name("paving area") is None

    def test_clean_item_name(self):
        assert clean_item_name("gate valves are there in total?") == "gate valves"
        assert clean_item_name("fire hydrants on sheet CU102") == "fire hydrants"


class TestSearchParameters:

    def test_quantity_parameters(self):
        classification = QueryClassifier().classify("How many 12-inch gate valves are on sheet CU107?")

        params = build_search_parameters(classification, "project-1")

        assert params["direct_lookup_params"]["search_term"] == "12-inch gate valves"
        vector = params["vector_search_params"]
        assert vector["limit"] == 20
        assert vector["similarity_threshold"] == pytest.approx(0.2)
        assert vector["filters"]["sheet_number"] == "CU107"

    def test_general_parameters(self):
        classification = QueryClassifier().classify("Tell me something nice")

        params = build_search_parameters(classification, "project-1")

        assert "direct_lookup_params" not in params
        assert params["vector_search_params"]["limit"] == 15

    def test_search_strategy_order(self):
        classification = QueryClassifier().classify("What is the total length of waterline A?")

        strategy = get_search_strategy(classification)

        assert strategy["priority_order"] == ["direct_lookup", "complete_data", "vector_search"]
