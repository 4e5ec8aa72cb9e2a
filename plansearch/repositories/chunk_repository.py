from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy import distinct, select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from plansearch.database.models import ChunkEmbedding, DocumentChunk
from plansearch.repositories.base_repository import BaseRepository


class ChunkRepository(BaseRepository[DocumentChunk]):
    """Repository for plan text chunks, their embeddings and vision enrichment."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentChunk)

    async def semantic_search(
        self,
        embedding: List[float],
        project_id: UUID,
        limit: int = 20,
        min_similarity: Optional[float] = None,
        sheet_number: Optional[str] = None,
        sheet_types: Optional[Sequence[str]] = None,
        document_id: Optional[UUID] = None,
    ) -> List[Tuple[DocumentChunk, float]]:
        """Cosine-distance search over chunk embeddings.

        Args:
            embedding: Query embedding vector
            project_id: Project scope
            limit: Maximum rows
            min_similarity: Drop rows whose similarity (1 - distance) is lower
            sheet_number: Optional exact sheet filter
            sheet_types: Optional sheet type filter
            document_id: Optional document scope

        Returns:
            (chunk, cosine distance) pairs, nearest first
        """
        try:
            distance_expr = ChunkEmbedding.embedding.cosine_distance(embedding)
            query = (
                select(DocumentChunk, distance_expr.label("distance"))
                .join(ChunkEmbedding, ChunkEmbedding.chunk_id == DocumentChunk.id)
                .where(DocumentChunk.project_id == project_id)
            )
            if document_id:
                query = query.where(DocumentChunk.document_id == document_id)
            if sheet_number:
                query = query.where(func.upper(DocumentChunk.sheet_number) == sheet_number.upper())
            if sheet_types:
                query = query.where(DocumentChunk.sheet_type.in_(list(sheet_types)))
            if min_similarity is not None:
                query = query.where(distance_expr <= 1.0 - min_similarity)

            query = query.order_by(distance_expr).limit(limit)
            result = await self.session.execute(query)
            return [(row[0], float(row[1])) for row in result.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error in chunk semantic search: {str(e)}", exc_info=True)
            raise

    async def find_sheets_matching_variants(
        self,
        project_id: UUID,
        variants: Sequence[str],
    ) -> List[str]:
        """Distinct sheet numbers whose text or system tag matches any variant (ILIKE)."""
        if not variants:
            return []
        try:
            conditions = []
            for variant in variants:
                pattern = f"%{variant}%"
                conditions.append(DocumentChunk.content.ilike(pattern))
                conditions.append(DocumentChunk.system_name.ilike(pattern))

            query = (
                select(DocumentChunk.sheet_number)
                .where(DocumentChunk.project_id == project_id)
                .where(DocumentChunk.sheet_number.is_not(None))
                .where(or_(*conditions))
                .distinct()
            )
            result = await self.session.execute(query)
            return [row[0] for row in result.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error matching system variants: {str(e)}", exc_info=True)
            raise

    async def get_chunks_for_sheets(
        self,
        project_id: UUID,
        sheet_numbers: Sequence[str],
        limit: int = 500,
    ) -> List[DocumentChunk]:
        """Every chunk on the given sheets, not a similarity-ranked subset."""
        if not sheet_numbers:
            return []
        try:
            query = (
                select(DocumentChunk)
                .where(DocumentChunk.project_id == project_id)
                .where(DocumentChunk.sheet_number.in_(list(sheet_numbers)))
                .order_by(DocumentChunk.sheet_number, DocumentChunk.chunk_index)
                .limit(limit)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching sheet chunks: {str(e)}", exc_info=True)
            raise

    async def get_project_chunks(
        self,
        project_id: UUID,
        chunk_type: Optional[str] = None,
        limit: int = 500,
    ) -> List[DocumentChunk]:
        try:
            query = select(DocumentChunk).where(DocumentChunk.project_id == project_id)
            if chunk_type:
                query = query.where(DocumentChunk.chunk_type == chunk_type)
            query = query.order_by(DocumentChunk.sheet_number, DocumentChunk.chunk_index).limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching project chunks: {str(e)}", exc_info=True)
            raise

    async def get_system_names(self, project_id: UUID) -> List[str]:
        """System tags of every callout chunk in the project, one per chunk."""
        try:
            query = (
                select(DocumentChunk.system_name)
                .where(DocumentChunk.project_id == project_id)
                .where(DocumentChunk.chunk_type == "callout_box")
                .where(DocumentChunk.system_name.is_not(None))
            )
            result = await self.session.execute(query)
            return [row[0] for row in result.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching system names: {str(e)}", exc_info=True)
            raise

    async def get_page_chunks(self, document_id: UUID, page_number: int) -> List[DocumentChunk]:
        return await self.get_all(
            limit=500, filters={"document_id": document_id, "page_number": page_number}
        )

    async def get_page_sheet_numbers(self, document_id: UUID) -> Dict[int, Optional[str]]:
        """First known sheet number per page of a document."""
        try:
            query = (
                select(DocumentChunk.page_number, DocumentChunk.sheet_number)
                .where(DocumentChunk.document_id == document_id)
                .where(DocumentChunk.page_number.is_not(None))
                .order_by(DocumentChunk.page_number, DocumentChunk.chunk_index)
            )
            result = await self.session.execute(query)
            sheets: Dict[int, Optional[str]] = {}
            for page_number, sheet_number in result.all():
                if not sheets.get(page_number):
                    sheets[page_number] = sheet_number
            return sheets
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching page sheet numbers: {str(e)}", exc_info=True)
            raise

    async def get_document_contents(self, document_id: UUID) -> List[str]:
        """Raw text of every chunk in a document, used for document-wide station bounds."""
        try:
            query = select(DocumentChunk.content).where(DocumentChunk.document_id == document_id)
            result = await self.session.execute(query)
            return [row[0] for row in result.all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching document contents: {str(e)}", exc_info=True)
            raise

    async def update_vision_data(
        self,
        document_id: UUID,
        page_number: int,
        vision_data: Dict[str, Any],
        sheet_type: Optional[str],
        extracted_quantities: List[Dict[str, Any]],
        model_version: Optional[str],
        is_critical_sheet: bool = True,
        commit: bool = True,
    ) -> int:
        """Attach a page's vision output to all of its chunks.

        Returns:
            Number of chunks updated
        """
        try:
            values: Dict[str, Any] = {
                "vision_data": vision_data,
                "extracted_quantities": extracted_quantities,
                "vision_processed_at": datetime.now(timezone.utc),
                "vision_model_version": model_version,
                "is_critical_sheet": is_critical_sheet,
            }
            if sheet_type:
                values["sheet_type"] = sheet_type

            statement = (
                update(DocumentChunk)
                .where(DocumentChunk.document_id == document_id)
                .where(DocumentChunk.page_number == page_number)
                .values(**values)
            )
            result = await self.session.execute(statement)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating chunk vision data: {str(e)}", exc_info=True)
            raise

    async def count_with_vision(self, document_id: UUID) -> int:
        """Distinct pages of a document carrying vision data."""
        try:
            query = (
                select(func.count(distinct(DocumentChunk.page_number)))
                .where(DocumentChunk.document_id == document_id)
                .where(DocumentChunk.vision_data.is_not(None))
            )
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting vision chunks: {str(e)}", exc_info=True)
            raise
