"""Async SQLAlchemy engine and session factory for plan-set storage."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from plansearch.core.config import settings
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(url: str | None = None) -> AsyncEngine:
    """Create the async engine from database settings."""
    return create_async_engine(
        url or settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
        # PgBouncer does not support prepared statement caching
        connect_args={"statement_cache_size": 0},
    )


engine = build_engine()

# Used by the batch processor and analytics logger to open one session per unit of work
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(target: AsyncEngine | None = None) -> None:
    """Enable pgvector and create any missing plan-set tables."""
    # Import registers the models on Base.metadata
    from plansearch.database import models  # noqa: F401

    target = target or engine
    try:
        async with target.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        LOGGER.error("Failed to create plan-set schema", exc_info=True, extra={"error": str(e)})
        raise

    LOGGER.info("Plan-set schema created/verified", extra={"tables": sorted(Base.metadata.tables)})
