"""Bounded-concurrency vision processing across documents."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.schemas.vision import VisionProcessingResult, VisionStatus
from plansearch.services.vision.vision_pipeline import VisionPipeline
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class BatchSummary:
    results: List[VisionProcessingResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_cost(self) -> float:
        return sum(r.total_cost for r in self.results)


class VisionBatchProcessor:
    """
    Runs ``VisionPipeline.auto_process`` for many documents in waves.

    A wave holds at most ``wave_size`` documents and must finish, with success
    or a per-document failure, before the next wave starts. Each document gets
    its own session.

    Example usage:
        processor = VisionBatchProcessor()
        summary = await processor.process_documents([(doc_id, project_id), ...])
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        config: Optional[EngineConfig] = None,
        pipeline_factory: Optional[Callable[[AsyncSession, EngineConfig], VisionPipeline]] = None,
    ):
        if session_factory is None:
            from plansearch.core.database import async_session_maker
            session_factory = async_session_maker
        self.session_factory = session_factory
        self.config = config or settings.engine_config()
        self.pipeline_factory = pipeline_factory or (lambda session, config: VisionPipeline(session, config=config))

    async def process_documents(
        self,
        documents: Sequence[Tuple[UUID, UUID]],
        max_sheets: Optional[int] = None,
        skip_if_already_processed: bool = True,
    ) -> BatchSummary:
        """Process (document_id, project_id) pairs; results keep input order."""
        summary = BatchSummary()
        wave_size = max(1, self.config.batch_wave_size)
        total_waves = (len(documents) + wave_size - 1) // wave_size

        for start in range(0, len(documents), wave_size):
            wave = documents[start:start + wave_size]
            results = await asyncio.gather(
                *(self._process_one(doc_id, project_id, max_sheets, skip_if_already_processed)
                  for doc_id, project_id in wave)
            )
            summary.results.extend(results)

            LOGGER.info(
                "Batch wave complete",
                extra={
                    "wave": start // wave_size + 1,
                    "of": total_waves,
                    "succeeded": sum(1 for r in results if r.success),
                    "failed": sum(1 for r in results if not r.success),
                },
            )

        LOGGER.info(
            "Batch vision processing complete",
            extra={
                "documents": len(documents),
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "total_cost_usd": round(summary.total_cost, 4),
            },
        )
        return summary

    async def _process_one(
        self,
        document_id: UUID,
        project_id: UUID,
        max_sheets: Optional[int],
        skip_if_already_processed: bool,
    ) -> VisionProcessingResult:
        try:
            async with self.session_factory() as session:
                pipeline = self.pipeline_factory(session, self.config)
                return await pipeline.auto_process(
                    document_id,
                    project_id,
                    max_sheets=max_sheets,
                    skip_if_already_processed=skip_if_already_processed,
                )
        except Exception as e:
            LOGGER.error(f"Batch item failed: {e}", extra={"document_id": str(document_id)}, exc_info=True)
            return VisionProcessingResult(
                document_id=document_id,
                success=False,
                errors=[str(e)],
                status=VisionStatus.FAILED,
            )
