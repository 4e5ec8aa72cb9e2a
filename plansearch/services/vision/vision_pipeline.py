"""
Vision extraction pipeline.

Renders plan pages, classifies them, sends them to the vision model, validates
the output and persists termination points, crossings and quantities.

Pages within a document are analyzed sequentially with a fixed delay between
model calls. Documents above the large-document threshold take a chunked path:
page ranges are analyzed in bounded waves and written in page order once each
wave finishes. Both paths write through RecordWriter, so the persisted records
have the same shape.

Document status follows pending -> processing -> completed | failed, with
skipped for documents that are not PDFs or are already completed.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.core.exceptions import AppError, DocumentNotFoundError
from plansearch.database.models import Document
from plansearch.repositories.chunk_repository import ChunkRepository
from plansearch.repositories.document_repository import DocumentRepository
from plansearch.repositories.quantity_repository import QuantityRepository
from plansearch.schemas.vision import (
    ProcessingStatus,
    SheetType,
    VisionExtractionResult,
    VisionProcessingOptions,
    VisionProcessingResult,
    VisionStatus,
)
from plansearch.services.parsing.sheet_classifier import classify_sheet_type, identify_critical_pages
from plansearch.services.vision.cost import cost_target, estimate_analysis_cost
from plansearch.services.vision.page_renderer import PageRenderer, load_document_bytes
from plansearch.services.vision.quantities import ItemKey
from plansearch.services.vision.record_writer import RecordWriter, resolve_sheet_number
from plansearch.services.vision.validation import ExtractionValidation, validate_extraction
from plansearch.services.vision.vision_client import VisionClient
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass
class PageOutcome:
    """Analysis of one page; ``error`` is set when the page failed."""

    page_number: int
    sheet_number: Optional[str] = None
    extraction: Optional[VisionExtractionResult] = None
    validation: Optional[ExtractionValidation] = None
    error: Optional[str] = None


def is_vision_available() -> bool:
    """Vision processing needs an API key."""
    return bool(settings.vision.api_key)


def should_auto_process(document: Document) -> bool:
    """PDF, text processing complete and vision still pending."""
    return (
        document.mime_type == PDF_MIME_TYPE
        and document.processing_status == "completed"
        and document.vision_status == VisionStatus.PENDING.value
    )


def chunk_pages(pages: Sequence[int], size: int) -> List[List[int]]:
    size = max(1, size)
    return [list(pages[i:i + size]) for i in range(0, len(pages), size)]


class VisionPipeline:
    """
    Per-document vision processing.

    Example usage:
        pipeline = VisionPipeline(session)
        result = await pipeline.auto_process(document_id, project_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[EngineConfig] = None,
        vision_client: Optional[VisionClient] = None,
        renderer: Optional[PageRenderer] = None,
    ):
        self.session = session
        self.config = config or settings.engine_config()
        self.document_repo = DocumentRepository(session)
        self.chunk_repo = ChunkRepository(session)
        self.quantity_repo = QuantityRepository(session)
        self.writer = RecordWriter(session)
        self.renderer = renderer or PageRenderer(
            scale=self.config.image_scale,
            max_dimension=self.config.max_image_dimension,
        )
        self._vision_client = vision_client

    @property
    def vision_client(self) -> VisionClient:
        """Created on first use so status queries work without an API key."""
        if self._vision_client is None:
            self._vision_client = VisionClient(config=self.config)
        return self._vision_client

    def select_pages(
        self,
        total_pages: int,
        options: VisionProcessingOptions,
        page_sheets: Dict[int, Optional[str]],
    ) -> List[int]:
        if options.process_all_sheets:
            return list(range(1, min(total_pages, options.max_sheets) + 1))
        sheet_names = [page_sheets.get(page) or "" for page in range(1, total_pages + 1)]
        return identify_critical_pages(total_pages, options.max_sheets, sheet_names)

    async def process_document(
        self,
        document_id: UUID,
        project_id: UUID,
        options: Optional[VisionProcessingOptions] = None,
    ) -> VisionProcessingResult:
        """
        Analyze a document's pages and persist the extracted records.

        Prior vision records for the document are removed first. A failed page
        is recorded in ``errors`` and the remaining pages still run. Missing
        documents and download failures abort the run with ``success=False``.

        Args:
            document_id: Document to process
            project_id: Project the records belong to
            options: Page selection and storage options

        Returns:
            VisionProcessingResult with counters, cost and errors
        """
        start_time = time.time()
        options = options or VisionProcessingOptions(
            max_sheets=self.config.default_max_sheets,
            image_scale=self.config.image_scale,
        )
        result = VisionProcessingResult(document_id=document_id, status=VisionStatus.PROCESSING)

        try:
            document = await self.document_repo.get_by_id(document_id)
            if not document:
                raise DocumentNotFoundError(f"Document not found: {document_id}")

            pdf_bytes = await load_document_bytes(document.file_path)
            total_pages = await self.renderer.get_page_count(pdf_bytes)
            page_sheets = await self.chunk_repo.get_page_sheet_numbers(document_id)
            pages = self.select_pages(total_pages, options, page_sheets)

            estimate = estimate_analysis_cost(len(pages), config=self.config)
            target = cost_target(len(pages))
            LOGGER.info(
                "Starting vision processing",
                extra={
                    "document_id": str(document_id),
                    "total_pages": total_pages,
                    "pages_selected": len(pages),
                    "estimated_cost_usd": round(estimate.estimated_cost_usd, 4),
                    "cost_target_usd": target,
                },
            )
            if estimate.estimated_cost_usd > target:
                LOGGER.warning(
                    "Estimated vision cost exceeds target",
                    extra={"document_id": str(document_id), "estimate": estimate.estimated_cost_usd, "target": target},
                )

            await self.writer.clear_document(document_id)
            seen: List[ItemKey] = []

            if total_pages > self.config.large_document_pages:
                await self._process_chunked(pdf_bytes, pages, page_sheets, project_id, document_id, options, result, seen)
            else:
                await self._process_sequential(pdf_bytes, pages, page_sheets, project_id, document_id, options, result, seen)

            result.success = not (pages and result.sheets_processed == 0)
            if not result.success:
                result.errors.append("No pages could be processed")
        except AppError as e:
            LOGGER.error(f"Vision processing failed: {e}", extra={"document_id": str(document_id)})
            result.errors.append(f"Vision processing failed: {e}")
            result.success = False
        except Exception as e:
            LOGGER.error(
                f"Vision processing failed: {e}",
                extra={"document_id": str(document_id), "project_id": str(project_id)},
                exc_info=True,
            )
            result.errors.append(f"Vision processing failed: {e}")
            result.success = False

        result.status = VisionStatus.COMPLETED if result.success else VisionStatus.FAILED
        result.processing_time_ms = int((time.time() - start_time) * 1000)

        LOGGER.info(
            "Vision processing complete",
            extra={
                "document_id": str(document_id),
                "sheets_processed": result.sheets_processed,
                "quantities_extracted": result.quantities_extracted,
                "total_cost_usd": round(result.total_cost, 4),
                "errors": len(result.errors),
                "processing_time_ms": result.processing_time_ms,
            },
        )
        return result

    async def _process_sequential(
        self,
        pdf_bytes: bytes,
        pages: Sequence[int],
        page_sheets: Dict[int, Optional[str]],
        project_id: UUID,
        document_id: UUID,
        options: VisionProcessingOptions,
        result: VisionProcessingResult,
        seen: List[ItemKey],
    ) -> None:
        for index, page_number in enumerate(pages):
            if index:
                await asyncio.sleep(self.config.page_delay_seconds)
            outcome = await self.analyze_page(pdf_bytes, page_number, page_sheets.get(page_number), options)
            await self._record(outcome, project_id, document_id, options, result, seen)

    async def _process_chunked(
        self,
        pdf_bytes: bytes,
        pages: Sequence[int],
        page_sheets: Dict[int, Optional[str]],
        project_id: UUID,
        document_id: UUID,
        options: VisionProcessingOptions,
        result: VisionProcessingResult,
        seen: List[ItemKey],
    ) -> None:
        chunks = chunk_pages(pages, self.config.large_document_chunk_size)
        waves = chunk_pages(list(range(len(chunks))), self.config.batch_wave_size)

        LOGGER.info(
            "Processing large document in chunks",
            extra={"document_id": str(document_id), "chunks": len(chunks), "waves": len(waves)},
        )

        for wave_number, wave in enumerate(waves, start=1):
            outcomes = await asyncio.gather(
                *(self._analyze_chunk(pdf_bytes, chunks[i], page_sheets, options) for i in wave)
            )
            for chunk_outcomes in outcomes:
                for outcome in chunk_outcomes:
                    await self._record(outcome, project_id, document_id, options, result, seen)

            LOGGER.info(
                "Vision wave complete",
                extra={
                    "document_id": str(document_id),
                    "wave": wave_number,
                    "of": len(waves),
                    "sheets_processed": result.sheets_processed,
                },
            )

    async def _analyze_chunk(
        self,
        pdf_bytes: bytes,
        pages: Sequence[int],
        page_sheets: Dict[int, Optional[str]],
        options: VisionProcessingOptions,
    ) -> List[PageOutcome]:
        outcomes = []
        for index, page_number in enumerate(pages):
            if index:
                await asyncio.sleep(self.config.page_delay_seconds)
            outcomes.append(await self.analyze_page(pdf_bytes, page_number, page_sheets.get(page_number), options))
        return outcomes

    async def analyze_page(
        self,
        pdf_bytes: bytes,
        page_number: int,
        sheet_number: Optional[str],
        options: VisionProcessingOptions,
        sheet_type: Optional[SheetType] = None,
    ) -> PageOutcome:
        """Render, classify, analyze and validate one page. Never raises."""
        outcome = PageOutcome(page_number=page_number, sheet_number=sheet_number)
        try:
            page = await self.renderer.render(pdf_bytes, page_number, scale=options.image_scale)
            if sheet_type is None:
                text = await self.renderer.extract_text(pdf_bytes, page_number)
                sheet_type = classify_sheet_type(text, page_number)

            extraction = await self.vision_client.analyze_sheet(
                page,
                sheet_type=sheet_type,
                sheet_number=sheet_number,
                custom_prompt=options.custom_prompt,
            )
            outcome.extraction, outcome.validation = validate_extraction(extraction)
        except Exception as e:
            outcome.error = f"Error processing page {page_number}: {e}"
            LOGGER.error(outcome.error, exc_info=not isinstance(e, AppError))
        return outcome

    async def _record(
        self,
        outcome: PageOutcome,
        project_id: UUID,
        document_id: UUID,
        options: VisionProcessingOptions,
        result: VisionProcessingResult,
        seen: List[ItemKey],
    ) -> None:
        if outcome.error or outcome.extraction is None:
            result.errors.append(outcome.error or f"Error processing page {outcome.page_number}")
            return

        result.total_cost += outcome.extraction.cost_usd
        result.sheets_processed += 1
        try:
            counts = await self.writer.write_page(
                outcome.extraction,
                project_id=project_id,
                document_id=document_id,
                sheet_number=outcome.sheet_number,
                extract_quantities=options.extract_quantities,
                store_vision_data=options.store_vision_data,
                seen_quantities=seen,
            )
        except Exception as e:
            message = f"Error storing page {outcome.page_number}: {e}"
            LOGGER.error(message, exc_info=True)
            result.errors.append(message)
            return

        result.termination_points_extracted += counts.termination_points
        result.crossings_extracted += counts.crossings
        result.quantities_extracted += counts.quantities

    async def process_single_sheet(
        self,
        document_id: UUID,
        project_id: UUID,
        page_number: int,
        sheet_type: Optional[SheetType] = None,
        options: Optional[VisionProcessingOptions] = None,
    ) -> VisionProcessingResult:
        """Re-analyze one page, replacing the records previously stored for its sheet."""
        start_time = time.time()
        options = options or VisionProcessingOptions(image_scale=self.config.image_scale)
        result = VisionProcessingResult(document_id=document_id, status=VisionStatus.PROCESSING)

        try:
            document = await self.document_repo.get_by_id(document_id)
            if not document:
                raise DocumentNotFoundError(f"Document not found: {document_id}")

            pdf_bytes = await load_document_bytes(document.file_path)
            page_sheets = await self.chunk_repo.get_page_sheet_numbers(document_id)
            outcome = await self.analyze_page(
                pdf_bytes, page_number, page_sheets.get(page_number), options, sheet_type=sheet_type
            )

            if outcome.extraction is not None:
                await self.writer.clear_sheet(document_id, resolve_sheet_number(outcome.sheet_number, outcome.extraction))
            await self._record(outcome, project_id, document_id, options, result, [])
            result.success = result.sheets_processed == 1 and not result.errors
        except AppError as e:
            LOGGER.error(f"Single sheet processing failed: {e}", extra={"document_id": str(document_id)})
            result.errors.append(str(e))
            result.success = False
        except Exception as e:
            LOGGER.error(f"Single sheet processing failed: {e}", exc_info=True)
            result.errors.append(str(e))
            result.success = False

        result.status = VisionStatus.COMPLETED if result.success else VisionStatus.FAILED
        result.processing_time_ms = int((time.time() - start_time) * 1000)
        return result

    async def get_processing_status(self, document_id: UUID) -> ProcessingStatus:
        document = await self.document_repo.get_by_id(document_id)
        if not document:
            return ProcessingStatus(
                document_id=document_id,
                processed=False,
                vision_status=VisionStatus.PENDING,
                error="Document not found",
            )

        sheets_with_vision = await self.chunk_repo.count_with_vision(document_id)
        quantities = await self.quantity_repo.count({"document_id": document_id})
        return ProcessingStatus(
            document_id=document_id,
            processed=sheets_with_vision > 0,
            vision_status=VisionStatus(document.vision_status),
            sheets_with_vision=sheets_with_vision,
            quantities_extracted=quantities,
            total_cost=float(document.vision_cost_usd or 0),
            error=document.vision_error,
        )

    async def auto_process(
        self,
        document_id: UUID,
        project_id: UUID,
        max_sheets: Optional[int] = None,
        skip_if_already_processed: bool = True,
    ) -> VisionProcessingResult:
        """
        Process every page of a document and persist the status transitions.

        Args:
            document_id: Document to process
            project_id: Project scope
            max_sheets: Page cap, defaults to the configured maximum
            skip_if_already_processed: Return without work when status is completed

        Returns:
            VisionProcessingResult; ``status`` mirrors what was persisted
        """
        try:
            document = await self.document_repo.get_by_id(document_id)
            if not document:
                return VisionProcessingResult(
                    document_id=document_id,
                    success=False,
                    errors=[f"Document not found: {document_id}"],
                    status=VisionStatus.FAILED,
                )

            if skip_if_already_processed and document.vision_status == VisionStatus.COMPLETED.value:
                LOGGER.info("Document already processed, skipping", extra={"document_id": str(document_id)})
                return VisionProcessingResult(document_id=document_id, status=VisionStatus.SKIPPED)

            if document.mime_type and document.mime_type != PDF_MIME_TYPE:
                await self.document_repo.update_vision_status(document_id, VisionStatus.SKIPPED)
                return VisionProcessingResult(document_id=document_id, status=VisionStatus.SKIPPED)

            await self.document_repo.update_vision_status(document_id, VisionStatus.PROCESSING)

            result = await self.process_document(
                document_id,
                project_id,
                VisionProcessingOptions(
                    max_sheets=max_sheets or self.config.default_max_sheets,
                    process_all_sheets=True,
                    image_scale=self.config.image_scale,
                ),
            )

            await self.document_repo.update_vision_status(
                document_id,
                result.status,
                error=None if result.success else ("; ".join(result.errors) or "Vision processing failed"),
                sheets_processed=result.sheets_processed,
                quantities_extracted=result.quantities_extracted,
                cost_usd=result.total_cost,
            )
            return result

        except Exception as e:
            LOGGER.error(f"Auto vision processing failed: {e}", extra={"document_id": str(document_id)}, exc_info=True)
            try:
                await self.session.rollback()
                await self.document_repo.update_vision_status(document_id, VisionStatus.FAILED, error=str(e))
            except Exception as update_error:
                LOGGER.error(f"Failed to persist vision failure status: {update_error}", exc_info=True)
            return VisionProcessingResult(
                document_id=document_id,
                success=False,
                errors=[str(e)],
                status=VisionStatus.FAILED,
            )
