"""
Fire-and-forget query analytics.

The router emits one event per routed query onto an in-process queue; a
background task drains the queue into the ``query_analytics`` table. Emitting
never blocks and never raises, and a failed write is logged and dropped.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.repositories.analytics_repository import AnalyticsRepository
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 1000


@dataclass
class QueryAnalyticsEvent:
    """
    One routed query.

    Attributes:
        project_id: Project the query ran against
        query_text: Question as asked
        query_type: Classified query type
        query_classification: Full classification dump
        response_method: Routing method used
        success: False when the router fell back after an unexpected error
        latency_ms: End-to-end routing latency
        vector_search_results: Number of vector hits in the context
        direct_lookup_results: Number of structured records in the context
        vision_calls_made: Visual inspections requested
        extra_metadata: Strategy list, errors and detected system
    """

    project_id: Optional[UUID]
    query_text: str
    query_type: str
    response_method: str
    success: bool = True
    latency_ms: int = 0
    vector_search_results: int = 0
    direct_lookup_results: int = 0
    vision_calls_made: int = 0
    query_classification: Optional[Dict[str, Any]] = None
    extra_metadata: Dict[str, Any] = field(default_factory=dict)


class QueryAnalyticsLogger:
    """Queue-backed analytics writer with a single consumer task."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        if session_factory is None:
            from plansearch.core.database import async_session_maker

            session_factory = async_session_maker
        self.session_factory = session_factory
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._consumer: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())

    def emit(self, event: QueryAnalyticsEvent) -> None:
        """Enqueue without waiting; a full queue drops the event."""
        try:
            self.start()
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            LOGGER.warning("Analytics queue full, dropping event", extra={"query_type": event.query_type})
        except Exception as e:
            LOGGER.warning(f"Failed to emit analytics event: {e}")

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending events, then cancel the consumer."""
        if self._consumer is None:
            return
        try:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Analytics queue not drained before shutdown", extra={"pending": self.queue.qsize()})
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self._write(event)
            except Exception as e:
                LOGGER.warning(
                    "Failed to log query analytics",
                    extra={"query_type": event.query_type, "error": str(e)},
                )
            finally:
                self.queue.task_done()

    async def _write(self, event: QueryAnalyticsEvent) -> None:
        async with self.session_factory() as session:
            await AnalyticsRepository(session).log_query(**asdict(event))
