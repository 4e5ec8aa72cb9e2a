"""
Direct Structured Lookup

Answers quantity questions from persisted extraction records before any
text search runs. Sources are tried in trust order:
1. Termination points (paired BEGIN/END labels give an authoritative length)
2. Extracted quantity rows, fuzzy-matched against the item name
3. Aggregation (sum) over matching rows for "total" questions

Failures are caught here and returned as a result with an error note.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from rapidfuzz import fuzz
from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.database.models import ProjectQuantity
from plansearch.repositories.chunk_repository import ChunkRepository
from plansearch.repositories.crossing_repository import CrossingRepository
from plansearch.repositories.quantity_repository import QuantityRepository
from plansearch.repositories.termination_repository import TerminationPointRepository
from plansearch.schemas.query import DirectLookupResult, QueryClassification, QueryType
from plansearch.schemas.vision import SOURCE_CONTEXT_TRUST, SourceContext
from plansearch.services.parsing import station_parser
from plansearch.services.parsing.sheet_classifier import is_likely_index_sheet
from plansearch.services.parsing.system_names import (
    compact_label,
    generate_system_variants,
    normalize_label,
    same_system,
    split_system_name,
)
from plansearch.services.vision.termination_points import calculate_utility_length, group_by_utility
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

MIN_RECORD_CONFIDENCE = 0.7
MIN_AGGREGATION_CONFIDENCE = 0.6
MIN_MATCH_SCORE = 0.6
INDEX_SOURCE_PENALTY = 0.7
COUNT_CANDIDATE_LIMIT = 100

_SIZE_TOKEN = re.compile(r"\b\d+(?:\.\d+)?\s*-?\s*(?:in(?:ch(?:es)?)?|\")(?!\w)", re.I)


def singularize(term: str) -> str:
    """valves -> valve, assemblies -> assembly, boxes -> box, tees -> tee."""
    words = term.split()
    if not words:
        return term
    last = words[-1]
    if last.endswith("ves"):
        last = last[:-3] + "ve"
    elif last.endswith("ies"):
        last = last[:-3] + "y"
    elif last.endswith("xes") or last.endswith("sses"):
        last = last[:-2]
    elif last.endswith("s") and not last.endswith("ss"):
        last = last[:-1]
    return " ".join(words[:-1] + [last])


def match_score(term: str, candidate: Optional[str]) -> float:
    """Fuzzy similarity in [0, 1] tolerant of spacing and quoting differences."""
    if not term or not candidate:
        return 0.0
    a, b = normalize_label(term), normalize_label(candidate)
    if compact_label(a) == compact_label(b):
        return 1.0
    return max(
        fuzz.token_set_ratio(a, b),
        fuzz.ratio(compact_label(a), compact_label(b)),
    ) / 100.0


def _source_context(row: Any) -> SourceContext:
    try:
        return SourceContext(row.source_context)
    except ValueError:
        return SourceContext.DRAWING_LABEL


def _is_index_sourced(row: Any) -> bool:
    return _source_context(row) == SourceContext.INDEX_LIST or is_likely_index_sheet(
        row.sheet_number, None, None
    )


def _row_to_record(row: ProjectQuantity, score: float) -> Dict[str, Any]:
    return {
        "item_name": row.item_name,
        "quantity": row.quantity,
        "unit": row.unit,
        "size": row.size,
        "station_from": row.station_from,
        "station_to": row.station_to,
        "sheet_number": row.sheet_number,
        "confidence": row.confidence,
        "source_context": row.source_context,
        "match_score": round(score, 3),
    }


class DirectLookupService:
    """Structured lookups against termination points and quantity rows."""

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or settings.engine_config()
        self.quantity_repo = QuantityRepository(session)
        self.termination_repo = TerminationPointRepository(session)
        self.crossing_repo = CrossingRepository(session)
        self.chunk_repo = ChunkRepository(session)

    async def lookup(self, project_id: UUID, classification: QueryClassification) -> DirectLookupResult:
        """Smart lookup: termination length first, then quantity rows."""
        item = classification.item_name or classification.search_hints.system_name
        if not item:
            return DirectLookupResult(found=False)

        try:
            family, _ = split_system_name(item)
            if family:
                length = await self.get_length_from_terminations(project_id, item)
                if length.found:
                    return length

            if classification.is_aggregation_query:
                aggregated = await self.get_aggregated_quantity(project_id, item, classification.size_filter)
                if aggregated.found:
                    return aggregated

            return await self.get_quantity(project_id, item, classification)
        except Exception as e:
            LOGGER.error(
                "Direct lookup failed",
                extra={"project_id": str(project_id), "item": item, "error": str(e)},
                exc_info=True,
            )
            return DirectLookupResult(found=False, item_name=item, error=f"direct lookup failed: {e}")

    async def get_length_from_terminations(self, project_id: UUID, utility_name: str) -> DirectLookupResult:
        """Length of a utility from its BEGIN/END labels."""
        variants = generate_system_variants(utility_name)
        points = await self.termination_repo.find_for_utility(project_id, variants)
        points = [p for p in points if same_system(p.utility_name, utility_name)]
        if not points:
            return DirectLookupResult(found=False, item_name=utility_name)

        calculation = calculate_utility_length(points)
        if calculation is None:
            has_begin = any(p.termination_type == "BEGIN" for p in points)
            if has_begin:
                # END label missing: estimate to the furthest station in the documents
                contents: List[str] = []
                for document_id in {p.document_id for p in points}:
                    contents.extend(await self.chunk_repo.get_document_contents(document_id))
                calculation = calculate_utility_length(points, station_parser.find_max_station(contents))

        if calculation is None:
            return DirectLookupResult(
                found=False,
                item_name=utility_name,
                records=[{"utility_name": p.utility_name, "termination_type": p.termination_type, "station": p.station} for p in points],
                source_flags=["partial_termination_data"],
            )

        source = (
            f"BEGIN at {calculation.begin_station} (Sheet {calculation.begin_sheet}) to "
            f"END at {calculation.end_station} (Sheet {calculation.end_sheet or 'estimated'})"
        )
        flags = ["estimated_end"] if calculation.estimated else []
        LOGGER.info(
            "Length from termination points",
            extra={"utility": calculation.utility_name, "length_lf": calculation.length_lf, "estimated": calculation.estimated},
        )
        return DirectLookupResult(
            found=True,
            method="termination_points",
            answer=f"{calculation.utility_name}: {calculation.length_lf:,.2f} LF",
            source=source,
            item_name=calculation.utility_name,
            quantity=calculation.length_lf,
            unit="LF",
            confidence=calculation.confidence,
            sheet_numbers=[s for s in (calculation.begin_sheet, calculation.end_sheet) if s],
            source_flags=flags,
            estimated=calculation.estimated,
        )

    async def _matching_rows(
        self,
        project_id: UUID,
        item_name: str,
        size_filter: Optional[str],
        min_confidence: float,
    ) -> List[Tuple[ProjectQuantity, float]]:
        term = singularize(_SIZE_TOKEN.sub("", item_name).strip() or item_name)
        terms = [term] + [w for w in term.split() if len(w) > 3]
        rows = await self.quantity_repo.search_candidates(project_id, terms, limit=COUNT_CANDIDATE_LIMIT)

        matches: List[Tuple[ProjectQuantity, float]] = []
        for row in rows:
            score = max(match_score(term, row.item_name), match_score(term, row.description) * 0.9)
            if score < MIN_MATCH_SCORE or (row.confidence or 0.0) < min_confidence:
                continue
            if size_filter and not self._size_matches(row, size_filter):
                continue
            matches.append((row, score))

        matches.sort(
            key=lambda pair: (SOURCE_CONTEXT_TRUST[_source_context(pair[0])], pair[0].confidence or 0.0, pair[1]),
            reverse=True,
        )
        return matches

    @staticmethod
    def _size_matches(row: ProjectQuantity, size_filter: str) -> bool:
        target = size_filter.upper().replace(" ", "")
        for text in (row.size, row.item_name, row.description):
            if not text:
                continue
            for token in _SIZE_TOKEN.findall(text):
                digits = re.match(r"\d+(?:\.\d+)?", token).group(0)
                if f"{digits}-IN" == target:
                    return True
        return False

    @staticmethod
    def _unique(matches: Sequence[Tuple[ProjectQuantity, float]]) -> List[Tuple[ProjectQuantity, float]]:
        unique: Dict[Tuple[str, str], Tuple[ProjectQuantity, float]] = {}
        for row, score in matches:
            key = (normalize_label(row.item_name), row.station_from or "unknown")
            unique.setdefault(key, (row, score))
        return list(unique.values())

    async def get_quantity(
        self,
        project_id: UUID,
        item_name: str,
        classification: Optional[QueryClassification] = None,
    ) -> DirectLookupResult:
        """Best matching quantity rows; counts unique instances for quantity questions."""
        size_filter = classification.size_filter if classification else None
        matches = await self._matching_rows(project_id, item_name, size_filter, MIN_RECORD_CONFIDENCE)
        if not matches:
            return DirectLookupResult(found=False, item_name=item_name)

        best, best_score = matches[0]
        flags: List[str] = []
        confidence = min(best.confidence or 0.0, best_score)
        if _is_index_sourced(best):
            flags.append("index_sheet")
            confidence *= INDEX_SOURCE_PENALTY

        is_count = classification is not None and classification.type == QueryType.QUANTITY
        unique = self._unique(matches)
        if is_count and len(unique) > 1:
            total = sum((row.quantity or 1.0) for row, _ in unique)
            sheets = sorted({row.sheet_number for row, _ in unique if row.sheet_number})
            return DirectLookupResult(
                found=True,
                method="quantities",
                answer=f"Found {total:g} x {best.item_name}",
                source=f"Extracted quantities ({len(unique)} instances across {len(sheets)} sheets)",
                item_name=best.item_name,
                quantity=total,
                unit=best.unit or "EA",
                confidence=confidence,
                sheet_numbers=sheets,
                source_flags=flags,
                records=[_row_to_record(row, score) for row, score in unique],
            )

        answer = f"{best.item_name}: {best.quantity:g} {best.unit or ''}".strip() if best.quantity is not None else best.item_name
        return DirectLookupResult(
            found=True,
            method="quantities",
            answer=answer,
            source=f"Sheet {best.sheet_number}" if best.sheet_number else "Extracted quantities",
            item_name=best.item_name,
            quantity=best.quantity,
            unit=best.unit,
            confidence=confidence,
            sheet_numbers=[best.sheet_number] if best.sheet_number else [],
            source_flags=flags,
            records=[_row_to_record(best, best_score)],
        )

    async def get_aggregated_quantity(
        self,
        project_id: UUID,
        item_name: str,
        size_filter: Optional[str] = None,
    ) -> DirectLookupResult:
        """Sum of quantities over unique matching rows."""
        matches = await self._matching_rows(project_id, item_name, size_filter, MIN_AGGREGATION_CONFIDENCE)
        unique = [(row, score) for row, score in self._unique(matches) if row.quantity is not None]
        if not unique:
            return DirectLookupResult(found=False, item_name=item_name)

        total = sum(row.quantity for row, _ in unique)
        unit = next((row.unit for row, _ in unique if row.unit), None)
        flags = ["index_sheet"] if any(_is_index_sourced(row) for row, _ in unique) else []
        confidence = min(row.confidence or 0.0 for row, _ in unique)
        if flags:
            confidence *= INDEX_SOURCE_PENALTY

        return DirectLookupResult(
            found=True,
            method="aggregation",
            answer=f"Total: {total:,.2f} {unit or ''}".strip(),
            source=f"Aggregated from {len(unique)} extracted items",
            item_name=item_name,
            quantity=total,
            unit=unit,
            confidence=confidence,
            sheet_numbers=sorted({row.sheet_number for row, _ in unique if row.sheet_number}),
            source_flags=flags,
            records=[_row_to_record(row, score) for row, score in unique],
        )

    async def get_project_summary(self, project_id: UUID) -> DirectLookupResult:
        """Project overview: quantities by item type, run lengths and crossing count."""
        try:
            categories = await self.quantity_repo.summarize_by_item_type(project_id)
            points = await self.termination_repo.find_for_utility(project_id, [])
            crossings = await self.crossing_repo.get_for_project(project_id)
        except Exception as e:
            LOGGER.error("Project summary failed", extra={"project_id": str(project_id)}, exc_info=True)
            return DirectLookupResult(found=False, method="project_summary", error=f"project summary failed: {e}")

        lengths = []
        for group in group_by_utility(points).values():
            calculation = calculate_utility_length(group)
            if calculation:
                lengths.append({
                    "utility_name": calculation.utility_name,
                    "length_lf": calculation.length_lf,
                    "begin_station": calculation.begin_station,
                    "end_station": calculation.end_station,
                })

        found = bool(categories or lengths or crossings)
        lines = [
            f"- {row['item_type']}: {row['count']} items"
            + (f", total {row['total_quantity']:,.2f} {row['unit'] or ''}".rstrip() if row["total_quantity"] is not None else "")
            for row in categories
        ]
        lines.extend(f"- {entry['utility_name']}: {entry['length_lf']:,.2f} LF" for entry in lengths)
        if crossings:
            lines.append(f"- Utility crossings: {len(crossings)}")

        return DirectLookupResult(
            found=found,
            method="project_summary",
            answer="\n".join(lines) if found else None,
            source="Extracted project records",
            confidence=0.9 if found else 0.0,
            records=categories + [{"utility_length": entry} for entry in lengths],
        )
