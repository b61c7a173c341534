"""Background indexing triggers.

Manual re-index requests and periodic refresh sweeps both run through the
IndexScheduler, which keeps at most one in-flight job per source.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..errors import IndexingConflictError, SourceNotFoundError
from ..knowledge_base.models import SourceStatus

logger = logging.getLogger(__name__)


class IndexScheduler:
    """Starts indexing jobs as background tasks."""

    def __init__(self, orchestrator, store):
        self.orchestrator = orchestrator
        self.store = store
        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()

    def in_flight(self, source_id: str) -> bool:
        task = self._tasks.get(source_id)
        return task is not None and not task.done()

    async def request_index(self, source_id: str) -> asyncio.Task:
        """Queue a (re-)index of one source.

        Raises:
            SourceNotFoundError: No such source
            IndexingConflictError: The source is already being indexed
        """
        source = await self.store.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")
        if source.status.is_active or self.in_flight(source_id):
            raise IndexingConflictError("Source is already being indexed")

        if source.status != SourceStatus.PENDING:
            source.status.check_transition(SourceStatus.PENDING)
            await self.store.update_source_status(source_id, SourceStatus.PENDING, expected=[source.status])

        task = asyncio.create_task(self._run(source_id))
        self._tasks[source_id] = task
        logger.info(f"Queued indexing job for {source.name}")
        return task

    async def _run(self, source_id: str) -> None:
        try:
            await self.orchestrator.index_source(source_id)
        except Exception as e:
            # The orchestrator has already recorded the failure
            logger.warning(f"Indexing job for {source_id} failed: {e}")
        finally:
            self._tasks.pop(source_id, None)

    async def wait_idle(self) -> None:
        """Wait for every in-flight job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def refresh_loop(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run refresh sweeps every interval seconds until stopped."""
        stop_event = stop_event or self._stop_event
        logger.info(f"Refresh loop started (every {interval}s)")

        while not stop_event.is_set():
            try:
                refreshed = await self.orchestrator.refresh_due_sources()
                if refreshed:
                    logger.info(f"Refreshed {len(refreshed)} sources")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Refresh sweep error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Refresh loop stopped")

    def stop(self) -> None:
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Stop the refresh loop and let running jobs finish."""
        self.stop()
        await self.wait_idle()
