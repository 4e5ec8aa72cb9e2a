from typing import List, Sequence
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from plansearch.database.models import UtilityTerminationPoint
from plansearch.repositories.base_repository import BaseRepository


class TerminationPointRepository(BaseRepository[UtilityTerminationPoint]):
    """BEGIN/END/TIE-IN markers; the authoritative source for run lengths."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UtilityTerminationPoint)

    async def find_for_utility(
        self,
        project_id: UUID,
        name_variants: Sequence[str],
    ) -> List[UtilityTerminationPoint]:
        """Termination points whose utility name matches any variant, by station."""
        try:
            query = select(UtilityTerminationPoint).where(UtilityTerminationPoint.project_id == project_id)
            conditions = [
                UtilityTerminationPoint.utility_name.ilike(f"%{variant}%")
                for variant in name_variants
                if variant
            ]
            if conditions:
                query = query.where(or_(*conditions))
            query = query.order_by(UtilityTerminationPoint.station_numeric)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching termination points: {str(e)}", exc_info=True)
            raise
