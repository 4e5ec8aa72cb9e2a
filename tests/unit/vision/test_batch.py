"""Tests for wave-based batch vision processing."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from plansearch.core.config import EngineConfig
from plansearch.schemas.vision import VisionProcessingResult, VisionStatus
from plansearch.services.vision.batch import BatchSummary, VisionBatchProcessor


@pytest.fixture
def session_factory(mock_session):
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=mock_session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session_cm)


class ConcurrencyProbe:
    """Stands in for VisionPipeline and records how many runs overlap."""

    def __init__(self, failing=()):
        self.active = 0
        self.peak = 0
        self.failing = set(failing)
        self.seen = []

    def factory(self, session, config):
        pipeline = MagicMock()
        pipeline.auto_process = AsyncMock(side_effect=self.auto_process)
        return pipeline

    async def auto_process(self, document_id, project_id, max_sheets=None, skip_if_already_processed=True):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.seen.append(document_id)
        await asyncio.sleep(0)
        self.active -= 1
        if document_id in self.failing:
            raise RuntimeError("renderer crashed")
        return VisionProcessingResult(
            document_id=document_id, success=True, total_cost=0.05, status=VisionStatus.COMPLETED,
        )


class TestVisionBatchProcessor:
    """Test VisionBatchProcessor.process_documents."""

    @pytest.mark.asyncio
    async def test_waves_bound_concurrency(self, session_factory):
        """Test that no more than wave_size documents run at once."""
        probe = ConcurrencyProbe()
        processor = VisionBatchProcessor(
            session_factory=session_factory,
            config=EngineConfig(batch_wave_size=2),
            pipeline_factory=probe.factory,
        )
        documents = [(uuid4(), uuid4()) for _ in range(5)]

        summary = await processor.process_documents(documents)

        assert probe.peak == 2
        assert [r.document_id for r in summary.results] == [doc_id for doc_id, _ in documents]
        assert summary.succeeded == 5
        assert summary.total_cost == pytest.approx(0.25)
        assert session_factory.call_count == 5

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, session_factory):
        failing_id = uuid4()
        probe = ConcurrencyProbe(failing=[failing_id])
        processor = VisionBatchProcessor(
            session_factory=session_factory,
            config=EngineConfig(batch_wave_size=3),
            pipeline_factory=probe.factory,
        )
        documents = [(uuid4(), uuid4()), (failing_id, uuid4()), (uuid4(), uuid4())]

        summary = await processor.process_documents(documents, max_sheets=20)

        assert summary.succeeded == 2
        assert summary.failed == 1
        failed = summary.results[1]
        assert failed.document_id == failing_id
        assert failed.status == VisionStatus.FAILED
        assert failed.errors == ["renderer crashed"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, session_factory):
        processor = VisionBatchProcessor(session_factory=session_factory, config=EngineConfig())

        summary = await processor.process_documents([])

        assert summary.results == []
        session_factory.assert_not_called()


class TestBatchSummary:

    def test_counters(self):
        summary = BatchSummary(results=[
            VisionProcessingResult(success=True, total_cost=0.1),
            VisionProcessingResult(success=False, total_cost=0.02),
        ])

        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.total_cost == pytest.approx(0.12)
