from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.database.models import QueryAnalytics
from plansearch.repositories.base_repository import BaseRepository


class AnalyticsRepository(BaseRepository[QueryAnalytics]):
    """Write-only store for routed-query analytics."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, QueryAnalytics)

    async def log_query(self, **fields) -> QueryAnalytics:
        return await self.create(**fields)
