"""Tests for complete-system-data retrieval."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from plansearch.services.retrieval.complete_data.system_data_service import (
    SystemDataService,
    chunk_sort_key,
    sheet_sort_key,
)


def make_chunk(content, sheet_number="CU102", chunk_index=0, chunk_type="text", station=None, stations=None):
    return SimpleNamespace(
        id=uuid4(),
        document_id=uuid4(),
        content=content,
        page_number=1,
        sheet_number=sheet_number,
        sheet_type="plan",
        chunk_type=chunk_type,
        system_name=None,
        station=station,
        stations=stations or [],
        chunk_index=chunk_index,
        component_list=None,
        vision_data=None,
    )


CALLOUT_TEXT = "WATER LINE 'A' STA 13+00\n- 1 - 12-IN GATE VALVE AND VALVE BOX"
MATCH_LINE_TEXT = "MATCH LINE - WATER LINE 'A' STA 4+38.83 SEE SHEET CU102"


@pytest.fixture
def service(mock_session, engine_config):
    service = SystemDataService(mock_session, engine_config)
    service.chunk_repo = MagicMock()
    service.chunk_repo.find_sheets_matching_variants = AsyncMock(return_value=[])
    service.chunk_repo.get_chunks_for_sheets = AsyncMock(return_value=[])
    service.chunk_repo.get_project_chunks = AsyncMock(return_value=[])
    service.chunk_repo.get_system_names = AsyncMock(return_value=[])
    return service


class TestOrdering:

    def test_sheet_sort_is_natural(self):
        sheets = ["CU10", "CU2", None, "CU102", "C-1"]

        assert sorted(sheets, key=sheet_sort_key) == ["C-1", "CU2", "CU10", "CU102", None]

    def test_chunks_sort_by_sheet_then_station_then_index(self):
        a = make_chunk("x", sheet_number="CU2", station="20+00")
        b = make_chunk("x", sheet_number="CU2", station="13+00", chunk_index=5)
        c = make_chunk("x", sheet_number="CU2", station="13+00", chunk_index=1)
        d = make_chunk("x", sheet_number="CU10", station="1+00")

        assert sorted([a, b, c, d], key=chunk_sort_key) == [c, b, a, d]


class TestCompleteSystemData:
    """Test exhaustive retrieval for a named system."""

    @pytest.mark.asyncio
    async def test_fetches_every_matching_sheet(self, service, project_id):
        """Test that chunks come back sheet-ordered with noise filtered."""
        service.chunk_repo.find_sheets_matching_variants.return_value = ["CU103", "CU102"]
        service.chunk_repo.get_chunks_for_sheets.return_value = [
            make_chunk(CALLOUT_TEXT, sheet_number="CU103", chunk_type="callout_box"),
            make_chunk(MATCH_LINE_TEXT, sheet_number="CU102"),
            make_chunk("short", sheet_number="CU102"),
            make_chunk("WATER LINE 'A' 12-IN DI PIPE CONTINUES EAST", sheet_number="CU102"),
        ]

        data = await service.get_complete_system_data(project_id, "waterline a")

        assert data.error is None
        assert data.total_chunks == 2
        assert data.sheets == ["CU102", "CU103"]
        assert [c["sheet_number"] for c in data.chunks] == ["CU102", "CU103"]
        assert data.callout_chunks == 1
        assert data.coverage.sheets_matched == 2
        assert data.coverage.chunks_fetched == 4
        assert data.coverage.noise_chunks_filtered == 1
        assert data.coverage.short_chunks_filtered == 1
        assert "WATER LINE 'A'" in data.coverage.system_variants

        variants = service.chunk_repo.find_sheets_matching_variants.call_args.args[1]
        assert "WL-A" in variants

    @pytest.mark.asyncio
    async def test_truncation_is_flagged(self, service, project_id):
        service.chunk_repo.get_chunks_for_sheets.return_value = [
            make_chunk(CALLOUT_TEXT, chunk_index=i) for i in range(4)
        ]

        data = await service.get_complete_system_data(project_id, "waterline a", max_chunks=3)

        assert data.coverage.truncated is True
        assert data.coverage.chunks_fetched == 3
        assert data.total_chunks == 3
        assert service.chunk_repo.get_chunks_for_sheets.call_args.kwargs["limit"] == 4

    @pytest.mark.asyncio
    async def test_exactly_max_chunks_is_not_truncated(self, service, project_id):
        service.chunk_repo.get_chunks_for_sheets.return_value = [
            make_chunk(CALLOUT_TEXT, chunk_index=i) for i in range(3)
        ]

        data = await service.get_complete_system_data(project_id, "waterline a", max_chunks=3)

        assert data.coverage.truncated is False
        assert data.total_chunks == 3

    @pytest.mark.asyncio
    async def test_no_system_uses_callout_chunks(self, service, project_id):
        service.chunk_repo.get_project_chunks.return_value = [
            make_chunk(CALLOUT_TEXT, chunk_type="callout_box"),
        ]

        data = await service.get_complete_system_data(project_id, None)

        assert data.total_chunks == 1
        assert data.coverage.used_fallback is False
        assert service.chunk_repo.get_project_chunks.call_args.kwargs["chunk_type"] == "callout_box"

    @pytest.mark.asyncio
    async def test_falls_back_to_all_chunks_without_callouts(self, service, project_id):
        service.chunk_repo.get_project_chunks.side_effect = [
            [],
            [make_chunk("WATER LINE 'A' 12-IN DI PIPE CONTINUES EAST")],
        ]

        data = await service.get_complete_system_data(project_id, "")

        assert data.total_chunks == 1
        assert data.coverage.used_fallback is True

    @pytest.mark.asyncio
    async def test_store_failure_sets_error(self, service, project_id):
        service.chunk_repo.find_sheets_matching_variants.side_effect = RuntimeError("db down")

        data = await service.get_complete_system_data(project_id, "waterline a")

        assert data.chunks == []
        assert "db down" in data.error


class TestAutoDetect:
    """Test dominant-system detection."""

    @pytest.mark.asyncio
    async def test_dominant_system_detected(self, service, project_id):
        service.chunk_repo.get_system_names.return_value = ["WATER LINE 'A'"] * 9 + ["WL-A", "STORM DRAIN 'B'"]

        assert await service.auto_detect_system(project_id) == "WATER LINE 'A'"

    @pytest.mark.asyncio
    async def test_no_dominant_system(self, service, project_id):
        service.chunk_repo.get_system_names.return_value = ["WATER LINE 'A'", "STORM DRAIN 'B'"]

        assert await service.auto_detect_system(project_id) is None

    @pytest.mark.asyncio
    async def test_item_hint_fallback(self, service, project_id):
        service.chunk_repo.get_system_names.side_effect = RuntimeError("db down")

        assert await service.auto_detect_system(project_id, "waterline b") == "waterline b"
        assert await service.auto_detect_system(project_id, "gate valves") is None
