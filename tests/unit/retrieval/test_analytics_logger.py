"""Tests for fire-and-forget query analytics."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from plansearch.services.retrieval.router.analytics_logger import QueryAnalyticsEvent, QueryAnalyticsLogger


def make_event(query_text="How many valves?"):
    return QueryAnalyticsEvent(
        project_id=None,
        query_text=query_text,
        query_type="quantity",
        response_method="direct_only",
        latency_ms=12,
    )


@pytest.fixture
def session_factory(mock_session):
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=mock_session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session_cm)


class TestQueryAnalyticsLogger:

    @pytest.mark.asyncio
    async def test_emitted_event_is_written(self, session_factory):
        """Test that a queued event reaches the analytics repository."""
        with patch("plansearch.services.retrieval.router.analytics_logger.AnalyticsRepository") as repo_cls:
            repo_cls.return_value.log_query = AsyncMock()
            logger = QueryAnalyticsLogger(session_factory=session_factory)

            logger.emit(make_event())
            await logger.stop()

        repo_cls.return_value.log_query.assert_awaited_once()
        fields = repo_cls.return_value.log_query.call_args.kwargs
        assert fields["query_text"] == "How many valves?"
        assert fields["response_method"] == "direct_only"
        assert fields["latency_ms"] == 12

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, session_factory):
        """Test that a failed write neither raises nor blocks later events."""
        with patch("plansearch.services.retrieval.router.analytics_logger.AnalyticsRepository") as repo_cls:
            repo_cls.return_value.log_query = AsyncMock(side_effect=[RuntimeError("db down"), None])
            logger = QueryAnalyticsLogger(session_factory=session_factory)

            logger.emit(make_event("first"))
            logger.emit(make_event("second"))
            await logger.stop()

        assert repo_cls.return_value.log_query.await_count == 2

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self, session_factory):
        with patch("plansearch.services.retrieval.router.analytics_logger.AnalyticsRepository") as repo_cls:
            repo_cls.return_value.log_query = AsyncMock()
            logger = QueryAnalyticsLogger(session_factory=session_factory, max_queue_size=1)

            logger.emit(make_event("kept"))
            logger.emit(make_event("dropped"))
            await logger.stop()

        repo_cls.return_value.log_query.assert_awaited_once()
        assert repo_cls.return_value.log_query.call_args.kwargs["query_text"] == "kept"

    @pytest.mark.asyncio
    async def test_stop_without_start(self, session_factory):
        logger = QueryAnalyticsLogger(session_factory=session_factory)

        await logger.stop()

        session_factory.assert_not_called()
