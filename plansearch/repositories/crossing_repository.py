from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from plansearch.database.models import UtilityCrossing
from plansearch.repositories.base_repository import BaseRepository


class CrossingRepository(BaseRepository[UtilityCrossing]):

    def __init__(self, session: AsyncSession):
        super().__init__(session, UtilityCrossing)

    async def get_for_project(
        self,
        project_id: UUID,
        crossing_utility: Optional[str] = None,
    ) -> List[UtilityCrossing]:
        """Crossings in station order, optionally for one utility code."""
        try:
            query = select(UtilityCrossing).where(UtilityCrossing.project_id == project_id)
            if crossing_utility:
                query = query.where(UtilityCrossing.crossing_utility == crossing_utility)
            query = query.order_by(UtilityCrossing.station_numeric)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error fetching crossings: {str(e)}", exc_info=True)
            raise
