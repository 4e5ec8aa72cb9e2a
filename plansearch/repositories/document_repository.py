from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.database.models import Document
from plansearch.repositories.base_repository import BaseRepository
from plansearch.schemas.vision import VisionStatus
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Read access to registered plan documents and their vision state.

    Documents are created by the application layer; this engine only reads
    them and moves ``vision_status`` through its state machine.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def update_vision_status(
        self,
        document_id: UUID,
        status: VisionStatus,
        error: Optional[str] = None,
        sheets_processed: Optional[int] = None,
        quantities_extracted: Optional[int] = None,
        cost_usd: Optional[float] = None,
    ) -> bool:
        """Single atomic status write keyed by document id.

        Args:
            document_id: Document ID
            status: New vision status
            error: Error message to persist (cleared when None)
            sheets_processed: Optional counter update
            quantities_extracted: Optional counter update
            cost_usd: Optional total vision cost

        Returns:
            True if updated, False if the document does not exist
        """
        fields = {"vision_status": status.value, "vision_error": error}
        if status in (VisionStatus.COMPLETED, VisionStatus.FAILED):
            fields["vision_processed_at"] = datetime.now(timezone.utc)
        if sheets_processed is not None:
            fields["vision_sheets_processed"] = sheets_processed
        if quantities_extracted is not None:
            fields["vision_quantities_extracted"] = quantities_extracted
        if cost_usd is not None:
            fields["vision_cost_usd"] = round(cost_usd, 4)

        LOGGER.info(
            "Updating document vision status",
            extra={"document_id": str(document_id), "status": status.value},
        )
        return await self.update(document_id, **fields) is not None
