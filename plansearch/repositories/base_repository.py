from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError

from plansearch.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Common async CRUD for one SQLAlchemy model.

    Writes flush and, unless ``commit=False`` is passed, commit immediately.
    Callers that need several writes in one transaction pass ``commit=False``
    and call ``commit()`` themselves.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _apply_filters(self, query, filters: Optional[Dict[str, Any]]):
        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)
        return query

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        try:
            query = select(self.model).where(self.model.id == id)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 200,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[ModelType]:
        """Get records with equality filters and pagination."""
        try:
            query = self._apply_filters(select(self.model), filters)
            query = query.offset(skip).limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving all {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def create(self, commit: bool = True, **kwargs) -> ModelType:
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def bulk_create(self, rows: Iterable[Dict[str, Any]], commit: bool = True) -> int:
        """Insert many records at once.

        Returns:
            Number of records added
        """
        try:
            instances = [self.model(**row) for row in rows]
            if not instances:
                return 0
            self.session.add_all(instances)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return len(instances)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error bulk creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def update(self, id: UUID, commit: bool = True, **kwargs) -> Optional[ModelType]:
        """Update fields on a record; returns None when it does not exist."""
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return None

            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)

            if hasattr(instance, "updated_at"):
                setattr(instance, "updated_at", datetime.now(timezone.utc))

            await self.session.flush()
            if commit:
                await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error updating {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete(self, id: UUID) -> bool:
        try:
            instance = await self.get_by_id(id)
            if not instance:
                return False

            await self.session.delete(instance)
            await self.session.flush()
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def delete_where(self, filters: Dict[str, Any], commit: bool = True) -> int:
        """Delete every record matching the equality filters.

        Returns:
            Number of deleted rows
        """
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        try:
            statement = delete(self.model)
            for field, value in filters.items():
                statement = statement.where(getattr(self.model, field) == value)
            result = await self.session.execute(statement)
            await self.session.flush()
            if commit:
                await self.session.commit()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} rows: {str(e)}",
                exc_info=True
            )
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        try:
            query = self._apply_filters(select(func.count()).select_from(self.model), filters)
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
