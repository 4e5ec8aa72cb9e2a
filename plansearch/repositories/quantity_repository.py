from typing import Any, Dict, List, Sequence
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from plansearch.database.models import ProjectQuantity
from plansearch.repositories.base_repository import BaseRepository


class QuantityRepository(BaseRepository[ProjectQuantity]):
    """Extracted quantity rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProjectQuantity)

    async def search_candidates(
        self,
        project_id: UUID,
        terms: Sequence[str],
        limit: int = 100,
    ) -> List[ProjectQuantity]:
        """Rows whose name or description contains any of the terms.

        Fuzzy scoring happens in the lookup service; this only narrows the
        candidate set. With no terms the project's rows are returned.
        """
        try:
            query = select(ProjectQuantity).where(ProjectQuantity.project_id == project_id)
            conditions = []
            for term in terms:
                if not term:
                    continue
                pattern = f"%{term}%"
                conditions.append(ProjectQuantity.item_name.ilike(pattern))
                conditions.append(ProjectQuantity.description.ilike(pattern))
            if conditions:
                query = query.where(or_(*conditions))
            query = query.order_by(ProjectQuantity.confidence.desc()).limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error searching quantities: {str(e)}", exc_info=True)
            raise

    async def summarize_by_item_type(self, project_id: UUID) -> List[Dict[str, Any]]:
        """Row count and quantity total per item type."""
        try:
            query = (
                select(
                    ProjectQuantity.item_type,
                    ProjectQuantity.unit,
                    func.count(ProjectQuantity.id),
                    func.sum(ProjectQuantity.quantity),
                )
                .where(ProjectQuantity.project_id == project_id)
                .group_by(ProjectQuantity.item_type, ProjectQuantity.unit)
                .order_by(ProjectQuantity.item_type)
            )
            result = await self.session.execute(query)
            return [
                {
                    "item_type": row[0] or "other",
                    "unit": row[1],
                    "count": int(row[2]),
                    "total_quantity": float(row[3]) if row[3] is not None else None,
                }
                for row in result.all()
            ]
        except SQLAlchemyError as e:
            self.logger.error(f"Error summarizing quantities: {str(e)}", exc_info=True)
            raise
