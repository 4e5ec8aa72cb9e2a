"""Persists page extraction results.

Within a page the write order is fixed: termination points first, then
utility crossings, then quantities. Reprocessing clears every record for the
(document, source type) pair before new rows are inserted.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.repositories.chunk_repository import ChunkRepository
from plansearch.repositories.crossing_repository import CrossingRepository
from plansearch.repositories.quantity_repository import QuantityRepository
from plansearch.repositories.termination_repository import TerminationPointRepository
from plansearch.schemas.vision import VisionExtractionResult
from plansearch.services.vision.crossings import crossing_rows
from plansearch.services.vision.quantities import ItemKey, dedupe_quantities, quantity_rows
from plansearch.services.vision.termination_points import termination_rows
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

VISION_SOURCE = "vision"


def resolve_sheet_number(sheet_number: Optional[str], result: VisionExtractionResult) -> str:
    """Text-layer sheet number, else the one the model read, else ``Page N``."""
    return sheet_number or result.sheet_metadata.sheet_number or f"Page {result.page_number}"


@dataclass
class PageWriteCounts:
    termination_points: int = 0
    crossings: int = 0
    quantities: int = 0
    chunks_updated: int = 0


class RecordWriter:
    """Writes vision output through the repositories in one transaction per page."""

    def __init__(self, session: AsyncSession, source_type: str = VISION_SOURCE):
        self.session = session
        self.source_type = source_type
        self.quantity_repo = QuantityRepository(session)
        self.termination_repo = TerminationPointRepository(session)
        self.crossing_repo = CrossingRepository(session)
        self.chunk_repo = ChunkRepository(session)

    async def clear_document(self, document_id: UUID) -> int:
        """Remove prior records of this source type for the document."""
        filters = {"document_id": document_id, "source_type": self.source_type}
        return await self._clear(filters)

    async def clear_sheet(self, document_id: UUID, sheet_number: str) -> int:
        filters = {"document_id": document_id, "source_type": self.source_type, "sheet_number": sheet_number}
        return await self._clear(filters)

    async def _clear(self, filters) -> int:
        deleted = 0
        deleted += await self.quantity_repo.delete_where(filters, commit=False)
        deleted += await self.termination_repo.delete_where(filters, commit=False)
        deleted += await self.crossing_repo.delete_where(filters, commit=False)
        await self.session.commit()

        LOGGER.info(
            "Cleared prior extraction records",
            extra={"filters": {key: str(value) for key, value in filters.items()}, "deleted": deleted},
        )
        return deleted

    async def write_page(
        self,
        result: VisionExtractionResult,
        project_id: UUID,
        document_id: UUID,
        sheet_number: Optional[str] = None,
        extract_quantities: bool = True,
        store_vision_data: bool = True,
        seen_quantities: Optional[List[ItemKey]] = None,
    ) -> PageWriteCounts:
        """
        Store one page's termination points, crossings and quantities.

        Args:
            result: Validated extraction result
            project_id: Project scope
            document_id: Source document
            sheet_number: Sheet number from the text layer; falls back to the
                sheet number the model read, then "Page N"
            extract_quantities: Store quantity rows
            store_vision_data: Attach the raw result to the page's chunks
            seen_quantities: Item keys already stored for this document,
                extended with this page's rows

        Returns:
            PageWriteCounts
        """
        sheet_number = resolve_sheet_number(sheet_number, result)
        page_chunks = await self.chunk_repo.get_page_chunks(document_id, result.page_number)
        chunk_id = page_chunks[0].id if page_chunks else None
        counts = PageWriteCounts()

        try:
            counts.termination_points = await self.termination_repo.bulk_create(
                termination_rows(
                    result.termination_points, project_id, document_id, chunk_id, sheet_number, self.source_type
                ),
                commit=False,
            )
            counts.crossings = await self.crossing_repo.bulk_create(
                crossing_rows(
                    result.utility_crossings, project_id, document_id, chunk_id, sheet_number, self.source_type
                ),
                commit=False,
            )

            kept = []
            if extract_quantities:
                kept = dedupe_quantities(result.quantities, seen_quantities)
                counts.quantities = await self.quantity_repo.bulk_create(
                    quantity_rows(kept, result, project_id, document_id, chunk_id, sheet_number, self.source_type),
                    commit=False,
                )

            if store_vision_data:
                counts.chunks_updated = await self.chunk_repo.update_vision_data(
                    document_id=document_id,
                    page_number=result.page_number,
                    vision_data=result.model_dump(mode="json"),
                    sheet_type=result.sheet_type.value,
                    extracted_quantities=[q.model_dump(mode="json") for q in kept],
                    model_version=result.model,
                    is_critical_sheet=True,
                    commit=False,
                )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Stored page extraction",
            extra={
                "document_id": str(document_id),
                "page_number": result.page_number,
                "sheet_number": sheet_number,
                "termination_points": counts.termination_points,
                "crossings": counts.crossings,
                "quantities": counts.quantities,
            },
        )
        return counts
