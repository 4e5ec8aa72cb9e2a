"""
Complete-System-Data Retrieval

Top-k similarity search under-counts enumerable items, so takeoff and
full-count questions fetch every chunk of every sheet that mentions the
system instead:
1. Generate lexical variants of the system name
2. Find every sheet whose text matches a variant
3. Fetch all chunks on those sheets
4. Drop match-line noise and near-empty chunks
5. Sort by sheet, then station, then chunk order
"""

import re
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.database.models import DocumentChunk
from plansearch.repositories.chunk_repository import ChunkRepository
from plansearch.schemas.query import CompleteSystemData, Coverage
from plansearch.services.parsing import station_parser
from plansearch.services.parsing.callout_detector import is_match_line_only_chunk
from plansearch.services.parsing.system_names import (
    SYSTEM_FAMILIES,
    generate_system_variants,
    normalize_label,
    split_system_name,
)
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

CALLOUT_CHUNK_TYPE = "callout_box"
AUTO_DETECT_SHARE = 0.8

_SHEET_TOKEN = re.compile(r"(\d+)|(\D+)")


def sheet_sort_key(sheet_number: Optional[str]) -> Tuple:
    """Natural ordering so CU2 sorts before CU10; sheetless chunks go last."""
    if not sheet_number:
        return (1, ())
    parts = []
    for digits, text in _SHEET_TOKEN.findall(sheet_number.upper()):
        parts.append((0, int(digits), "") if digits else (1, 0, text))
    return (0, tuple(parts))


def _first_station_feet(chunk: DocumentChunk) -> float:
    candidates = [chunk.station] + list(chunk.stations or [])
    for text in candidates:
        parsed = station_parser.parse(text)
        if parsed:
            return parsed.total_length_units
    found = station_parser.extract_stations_from_text(chunk.content)
    return found[0].total_length_units if found else float("inf")


def chunk_sort_key(chunk: DocumentChunk) -> Tuple:
    return (sheet_sort_key(chunk.sheet_number), _first_station_feet(chunk), chunk.chunk_index or 0)


def _system_key(name: Optional[str]) -> str:
    family, identifier = split_system_name(name)
    if family:
        return f"{SYSTEM_FAMILIES[family]}-{(identifier or '').upper()}"
    return normalize_label(name)


def _chunk_to_dict(chunk: DocumentChunk) -> Dict[str, Any]:
    return {
        "chunk_id": str(chunk.id),
        "document_id": str(chunk.document_id),
        "content": chunk.content,
        "page_number": chunk.page_number,
        "sheet_number": chunk.sheet_number,
        "sheet_type": chunk.sheet_type,
        "chunk_type": chunk.chunk_type,
        "system_name": chunk.system_name,
        "station": chunk.station,
        "component_list": chunk.component_list or [],
        "vision_data": chunk.vision_data,
    }


class SystemDataService:
    """Exhaustive, deterministic retrieval of everything drawn for one system."""

    def __init__(self, session: AsyncSession, config: Optional[EngineConfig] = None):
        self.config = config or settings.engine_config()
        self.chunk_repo = ChunkRepository(session)

    async def get_complete_system_data(
        self,
        project_id: UUID,
        system_name: Optional[str] = None,
        max_chunks: Optional[int] = None,
    ) -> CompleteSystemData:
        """
        Every chunk relevant to a system, sheet-ordered.

        Args:
            project_id: Project scope
            system_name: System label; empty means all callout chunks in the project
            max_chunks: Upper bound on chunks fetched

        Returns:
            CompleteSystemData; on store failure an empty result with ``error`` set
        """
        max_chunks = max_chunks or self.config.search.complete_data_max_chunks
        # One extra row tells a full result apart from a cut-off one
        fetch_limit = max_chunks + 1
        coverage = Coverage()

        try:
            if system_name and system_name.strip():
                coverage.system_variants = generate_system_variants(system_name)
                sheets = await self.chunk_repo.find_sheets_matching_variants(project_id, coverage.system_variants)
                coverage.sheets_matched = len(sheets)
                chunks = await self.chunk_repo.get_chunks_for_sheets(project_id, sheets, limit=fetch_limit)
            else:
                chunks = await self.chunk_repo.get_project_chunks(
                    project_id, chunk_type=CALLOUT_CHUNK_TYPE, limit=fetch_limit
                )
                if not chunks:
                    # Older documents were chunked before callout tagging existed
                    coverage.used_fallback = True
                    chunks = await self.chunk_repo.get_project_chunks(project_id, limit=fetch_limit)
        except Exception as e:
            LOGGER.error(
                "Complete system data retrieval failed",
                extra={"project_id": str(project_id), "system_name": system_name, "error": str(e)},
                exc_info=True,
            )
            return CompleteSystemData(system_name=system_name, coverage=coverage, error=f"complete data retrieval failed: {e}")

        coverage.truncated = len(chunks) > max_chunks
        chunks = chunks[:max_chunks]
        coverage.chunks_fetched = len(chunks)

        kept: List[DocumentChunk] = []
        for chunk in chunks:
            if is_match_line_only_chunk(chunk.content):
                coverage.noise_chunks_filtered += 1
                continue
            if len((chunk.content or "").strip()) < self.config.search.min_chunk_chars:
                coverage.short_chunks_filtered += 1
                continue
            kept.append(chunk)

        kept.sort(key=chunk_sort_key)
        sheets = sorted({c.sheet_number for c in kept if c.sheet_number}, key=sheet_sort_key)
        callout_count = sum(1 for c in kept if c.chunk_type == CALLOUT_CHUNK_TYPE)

        LOGGER.info(
            "Complete system data retrieved",
            extra={
                "system_name": system_name,
                "variants": len(coverage.system_variants),
                "sheets": len(sheets),
                "chunks": len(kept),
                "noise_filtered": coverage.noise_chunks_filtered,
                "short_filtered": coverage.short_chunks_filtered,
                "truncated": coverage.truncated,
            },
        )

        return CompleteSystemData(
            system_name=system_name,
            chunks=[_chunk_to_dict(c) for c in kept],
            sheets=sheets,
            total_chunks=len(kept),
            callout_chunks=callout_count,
            coverage=coverage,
        )

    async def auto_detect_system(
        self,
        project_id: UUID,
        item_hint: Optional[str] = None,
    ) -> Optional[str]:
        """The project's dominant system when one accounts for over 80% of callouts.

        Falls back to ``item_hint`` when it names a system family.
        """
        try:
            names = await self.chunk_repo.get_system_names(project_id)
        except Exception as e:
            LOGGER.warning("System auto-detection failed", extra={"project_id": str(project_id), "error": str(e)})
            names = []

        if names:
            counts = Counter(_system_key(name) for name in names)
            key, count = counts.most_common(1)[0]
            if count / len(names) > AUTO_DETECT_SHARE:
                detected = next(name for name in names if _system_key(name) == key)
                LOGGER.info(
                    "Auto-detected system",
                    extra={"system_name": detected, "share": round(count / len(names), 3)},
                )
                return detected

        family, _ = split_system_name(item_hint)
        if family:
            return item_hint
        return None
