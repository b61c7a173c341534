"""Tests for background indexing triggers."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chainlens.daemon.scheduler import IndexScheduler
from chainlens.errors import AcquisitionError, IndexingConflictError, SourceNotFoundError
from chainlens.knowledge_base.models import SourceStatus


class BlockingOrchestrator:
    """Holds every job until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started: list[str] = []

    async def index_source(self, source_id):
        self.started.append(source_id)
        await self.release.wait()


@pytest.mark.asyncio
async def test_request_index_queues_job(store):
    orchestrator = MagicMock()
    orchestrator.index_source = AsyncMock()
    scheduler = IndexScheduler(orchestrator, store)
    source = store.add_source(status=SourceStatus.READY)

    task = await scheduler.request_index(source.id)
    await task

    assert store.sources[source.id].status == SourceStatus.PENDING
    orchestrator.index_source.assert_awaited_once_with(source.id)
    assert not scheduler.in_flight(source.id)


@pytest.mark.asyncio
async def test_unknown_source(store):
    scheduler = IndexScheduler(MagicMock(), store)

    with pytest.raises(SourceNotFoundError):
        await scheduler.request_index("missing")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [SourceStatus.INDEXING, SourceStatus.REFRESHING])
async def test_active_source_is_a_conflict(store, status):
    scheduler = IndexScheduler(MagicMock(), store)
    source = store.add_source(status=status)

    with pytest.raises(IndexingConflictError):
        await scheduler.request_index(source.id)
    assert store.sources[source.id].status == status


@pytest.mark.asyncio
async def test_second_request_while_in_flight_is_a_conflict(store):
    orchestrator = BlockingOrchestrator()
    scheduler = IndexScheduler(orchestrator, store)
    source = store.add_source(status=SourceStatus.ERROR)

    await scheduler.request_index(source.id)
    await asyncio.sleep(0)

    assert scheduler.in_flight(source.id)
    with pytest.raises(IndexingConflictError):
        await scheduler.request_index(source.id)

    orchestrator.release.set()
    await scheduler.wait_idle()
    assert orchestrator.started == [source.id]


@pytest.mark.asyncio
async def test_failed_job_does_not_escape(store):
    orchestrator = MagicMock()
    orchestrator.index_source = AsyncMock(side_effect=AcquisitionError("down"))
    scheduler = IndexScheduler(orchestrator, store)
    source = store.add_source()

    task = await scheduler.request_index(source.id)
    await task

    assert task.exception() is None


@pytest.mark.asyncio
async def test_refresh_loop_runs_until_stopped(store):
    stop = asyncio.Event()
    orchestrator = MagicMock()

    async def sweep():
        if orchestrator.refresh_due_sources.await_count >= 2:
            stop.set()
        return ["source-1"]

    orchestrator.refresh_due_sources = AsyncMock(side_effect=sweep)
    scheduler = IndexScheduler(orchestrator, store)

    await asyncio.wait_for(scheduler.refresh_loop(0.01, stop), timeout=5)

    assert orchestrator.refresh_due_sources.await_count == 2


@pytest.mark.asyncio
async def test_refresh_loop_survives_sweep_errors(store):
    stop = asyncio.Event()
    orchestrator = MagicMock()
    calls = []

    async def sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        stop.set()
        return []

    orchestrator.refresh_due_sources = AsyncMock(side_effect=sweep)
    scheduler = IndexScheduler(orchestrator, store)

    await asyncio.wait_for(scheduler.refresh_loop(0.01, stop), timeout=5)

    assert len(calls) == 2
