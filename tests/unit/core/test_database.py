"""Tests for schema creation on the async engine."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from plansearch.core.database import Base, create_schema


def make_engine(conn: AsyncMock) -> MagicMock:
    engine = MagicMock()
    engine.begin.return_value.__aenter__.return_value = conn
    engine.begin.return_value.__aexit__.return_value = False
    return engine


class TestCreateSchema:

    @pytest.mark.asyncio
    async def test_enables_pgvector_before_creating_tables(self):
        conn = AsyncMock()
        engine = make_engine(conn)

        await create_schema(engine)

        statement = conn.execute.call_args.args[0]
        assert "CREATE EXTENSION IF NOT EXISTS vector" in str(statement)
        conn.run_sync.assert_awaited_once_with(Base.metadata.create_all)

    @pytest.mark.asyncio
    async def test_models_are_registered(self):
        await create_schema(make_engine(AsyncMock()))

        assert {"documents", "document_chunks", "project_quantities"} <= set(Base.metadata.tables)

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        conn = AsyncMock()
        conn.execute.side_effect = RuntimeError("permission denied to create extension")

        with pytest.raises(RuntimeError):
            await create_schema(make_engine(conn))

        conn.run_sync.assert_not_called()
