"""Tests for direct structured lookups.

Tests:
- Lengths from paired BEGIN/END termination points
- Estimated lengths when END is missing
- Quantity matching, source trust order and index-sheet penalty
- Aggregation and project summaries
- Failures returned as error notes
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from plansearch.schemas.query import QueryClassification, QueryType, SearchHints
from plansearch.services.retrieval.lookup.direct_lookup import (
    DirectLookupService,
    match_score,
    singularize,
)
from plansearch.services.retrieval.query_understanding.query_classifier import QueryClassifier


def termination(termination_type, station, sheet_number, confidence=0.95, document_id=None):
    return SimpleNamespace(
        utility_name="WATER LINE 'A'",
        termination_type=termination_type,
        station=station,
        sheet_number=sheet_number,
        confidence=confidence,
        document_id=document_id or uuid4(),
    )


def quantity_row(
    item_name="12-IN GATE VALVE",
    quantity=1.0,
    unit="EA",
    station_from="13+00",
    sheet_number="CU107",
    confidence=0.9,
    source_context="drawing_label",
    size="12-IN",
):
    return SimpleNamespace(
        item_name=item_name,
        description=None,
        quantity=quantity,
        unit=unit,
        size=size,
        station_from=station_from,
        station_to=None,
        sheet_number=sheet_number,
        confidence=confidence,
        source_context=source_context,
    )


@pytest.fixture
def service(mock_session, engine_config):
    service = DirectLookupService(mock_session, engine_config)
    service.termination_repo = MagicMock()
    service.termination_repo.find_for_utility = AsyncMock(return_value=[])
    service.quantity_repo = MagicMock()
    service.quantity_repo.search_candidates = AsyncMock(return_value=[])
    service.quantity_repo.summarize_by_item_type = AsyncMock(return_value=[])
    service.crossing_repo = MagicMock()
    service.crossing_repo.get_for_project = AsyncMock(return_value=[])
    service.chunk_repo = MagicMock()
    service.chunk_repo.get_document_contents = AsyncMock(return_value=[])
    return service


class TestHelpers:

    @pytest.mark.parametrize("term,expected", [
        ("gate valves", "gate valve"),
        ("valve assemblies", "valve assembly"),
        ("valve boxes", "valve box"),
        ("tees", "tee"),
        ("brass", "brass"),
    ])
    def test_singularize(self, term, expected):
        assert singularize(term) == expected

    def test_match_score_ignores_quoting(self):
        assert match_score("waterline a", "WATER LINE 'A'") == 1.0
        assert match_score("gate valve", "12-IN GATE VALVE") == pytest.approx(1.0)
        assert match_score("gate valve", None) == 0.0


class TestTerminationLength:
    """Test lengths from BEGIN/END labels."""

    @pytest.mark.asyncio
    async def test_paired_termination_points(self, service, project_id):
        """Test that a BEGIN/END pair gives the length by station subtraction."""
        service.termination_repo.find_for_utility.return_value = [
            termination("BEGIN", "13+00", "CU102", 0.95),
            termination("END", "45+12.34", "CU109", 0.9),
        ]
        classification = QueryClassifier().classify("What is the total length of waterline A?")

        result = await service.lookup(project_id, classification)

        assert result.found is True
        assert result.method == "termination_points"
        assert result.quantity == pytest.approx(3212.34)
        assert result.unit == "LF"
        assert result.confidence == pytest.approx(0.9)
        assert result.sheet_numbers == ["CU102", "CU109"]
        assert result.answer == "WATER LINE 'A': 3,212.34 LF"
        assert result.estimated is False
        service.quantity_repo.search_candidates.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_end_is_estimated(self, service, project_id):
        """Test that a missing END is estimated to the furthest drawn station."""
        document_id = uuid4()
        service.termination_repo.find_for_utility.return_value = [
            termination("BEGIN", "13+00", "CU102", document_id=document_id),
        ]
        service.chunk_repo.get_document_contents.return_value = [
            "WATER LINE 'A' STA 20+00",
            "MATCH LINE STA 40+00 SEE SHEET CU110",
        ]

        result = await service.get_length_from_terminations(project_id, "waterline a")

        assert result.found is True
        assert result.quantity == pytest.approx(2700.0)
        assert result.estimated is True
        assert "estimated_end" in result.source_flags
        assert result.confidence < 0.7
        service.chunk_repo.get_document_contents.assert_awaited_once_with(document_id)

    @pytest.mark.asyncio
    async def test_reversed_stations_are_rejected(self, service, project_id):
        """Test that END before BEGIN never produces a negative length."""
        service.termination_repo.find_for_utility.return_value = [
            termination("BEGIN", "45+00", "CU109"),
            termination("END", "13+00", "CU102"),
        ]

        result = await service.get_length_from_terminations(project_id, "waterline a")

        assert result.found is False
        assert "partial_termination_data" in result.source_flags

    @pytest.mark.asyncio
    async def test_other_systems_are_ignored(self, service, project_id):
        other = termination("BEGIN", "0+00", "CU101")
        other.utility_name = "WATER LINE 'B'"
        service.termination_repo.find_for_utility.return_value = [other]

        result = await service.get_length_from_terminations(project_id, "waterline a")

        assert result.found is False


class TestQuantityLookup:
    """Test lookups against extracted quantity rows."""

    @pytest.mark.asyncio
    async def test_count_sums_unique_instances(self, service, project_id):
        service.quantity_repo.search_candidates.return_value = [
            quantity_row(station_from="13+00", sheet_number="CU107"),
            quantity_row(station_from="20+50", sheet_number="CU108", confidence=0.85),
            quantity_row(station_from="13+00", sheet_number="CU107", confidence=0.8),
        ]
        classification = QueryClassifier().classify("How many 12-inch gate valves are on sheet CU107?")

        result = await service.lookup(project_id, classification)

        assert result.found is True
        assert result.method == "quantities"
        assert result.quantity == 2.0
        assert result.sheet_numbers == ["CU107", "CU108"]
        assert len(result.records) == 2
        service.quantity_repo.search_candidates.assert_awaited_once()
        terms = service.quantity_repo.search_candidates.call_args.args[1]
        assert terms[0] == "gate valve"

    @pytest.mark.asyncio
    async def test_size_filter_excludes_other_sizes(self, service, project_id):
        service.quantity_repo.search_candidates.return_value = [
            quantity_row(item_name="8-IN GATE VALVE", size="8-IN"),
        ]
        classification = QueryClassifier().classify("How many 12-inch gate valves are on sheet CU107?")

        result = await service.lookup(project_id, classification)

        assert result.found is False

    @pytest.mark.asyncio
    async def test_drawing_label_outranks_index_list(self, service, project_id):
        """Test that a drawing label is preferred over a more confident index row."""
        service.quantity_repo.search_candidates.return_value = [
            quantity_row(quantity=3.0, sheet_number="CU001", confidence=0.95, source_context="index_list"),
            quantity_row(quantity=1.0, sheet_number="CU107", confidence=0.8, source_context="drawing_label"),
        ]
        classification = QueryClassification(type=QueryType.GENERAL, item_name="gate valve")

        result = await service.lookup(project_id, classification)

        assert result.found is True
        assert result.sheet_numbers == ["CU107"]
        assert result.quantity == 1.0
        assert "index_sheet" not in result.source_flags

    @pytest.mark.asyncio
    async def test_index_sourced_value_is_penalized(self, service, project_id):
        service.quantity_repo.search_candidates.return_value = [
            quantity_row(sheet_number="CU001", confidence=0.9, source_context="index_list"),
        ]
        classification = QueryClassification(type=QueryType.GENERAL, item_name="gate valve")

        result = await service.lookup(project_id, classification)

        assert result.found is True
        assert "index_sheet" in result.source_flags
        assert result.confidence == pytest.approx(0.63)

    @pytest.mark.asyncio
    async def test_low_confidence_rows_are_ignored(self, service, project_id):
        service.quantity_repo.search_candidates.return_value = [quantity_row(confidence=0.5)]
        classification = QueryClassification(type=QueryType.GENERAL, item_name="gate valve")

        result = await service.lookup(project_id, classification)

        assert result.found is False

    @pytest.mark.asyncio
    async def test_aggregation_sums_quantities(self, service, project_id):
        service.quantity_repo.search_candidates.return_value = [
            quantity_row(item_name="8-IN PVC PIPE", quantity=100.0, unit="LF", station_from="1+00", size="8-IN"),
            quantity_row(item_name="8-IN PVC PIPE", quantity=250.0, unit="LF", station_from="5+00", size="8-IN"),
        ]

        result = await service.get_aggregated_quantity(project_id, "pvc pipe")

        assert result.found is True
        assert result.method == "aggregation"
        assert result.quantity == pytest.approx(350.0)
        assert result.answer == "Total: 350.00 LF"

    @pytest.mark.asyncio
    async def test_no_item_name(self, service, project_id):
        result = await service.lookup(project_id, QueryClassification())

        assert result.found is False

    @pytest.mark.asyncio
    async def test_store_failure_becomes_error_note(self, service, project_id):
        """Test that a repository exception is returned, not raised."""
        service.quantity_repo.search_candidates.side_effect = RuntimeError("connection lost")
        classification = QueryClassification(type=QueryType.GENERAL, item_name="gate valve")

        result = await service.lookup(project_id, classification)

        assert result.found is False
        assert "connection lost" in result.error


class TestProjectSummary:

    @pytest.mark.asyncio
    async def test_summary_combines_sources(self, service, project_id):
        service.quantity_repo.summarize_by_item_type.return_value = [
            {"item_type": "fitting", "unit": "EA", "count": 3, "total_quantity": 3.0},
        ]
        service.termination_repo.find_for_utility.return_value = [
            termination("BEGIN", "13+00", "CU102"),
            termination("END", "45+12.34", "CU109"),
        ]
        service.crossing_repo.get_for_project.return_value = [MagicMock(), MagicMock()]

        result = await service.get_project_summary(project_id)

        assert result.found is True
        assert result.method == "project_summary"
        assert "- fitting: 3 items, total 3.00 EA" in result.answer
        assert "- WATER LINE 'A': 3,212.34 LF" in result.answer
        assert "- Utility crossings: 2" in result.answer

    @pytest.mark.asyncio
    async def test_empty_project(self, service, project_id):
        result = await service.get_project_summary(project_id)

        assert result.found is False
        assert result.answer is None
