"""Indexing orchestration for documentation sources.

One job per source: claim the source, drop its old chunks, acquire content
with the extractor for its kind, chunk, store, embed, and mark it READY.
Any failure after the claim removes partially written chunks and leaves the
source in ERROR with the failure message.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..errors import EmbeddingError, IndexingConflictError, SourceNotFoundError
from ..knowledge_base.chunker import chunk_content
from ..knowledge_base.models import (
    ChunkingConfig,
    IndexResult,
    RawContent,
    Source,
    SourceKind,
    SourceStatus,
)
from .pdf_parser import DocumentParser
from .repo_crawler import RepositoryCrawler
from .web_crawler import WebCrawler

logger = logging.getLogger(__name__)


def is_due(source: Source, now: datetime) -> bool:
    """True if a periodic refresh of source is due at now."""
    interval = source.refresh_interval.seconds
    if interval is None:
        return False
    if source.last_indexed_at is None:
        return True

    last = source.last_indexed_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return (now - last).total_seconds() >= interval


class IndexingOrchestrator:
    """Runs indexing jobs against a DocStore."""

    def __init__(
        self,
        store,
        embedder,
        web_crawler: Optional[WebCrawler] = None,
        repo_crawler: Optional[RepositoryCrawler] = None,
        document_parser: Optional[DocumentParser] = None,
        chunking: Optional[ChunkingConfig] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.web_crawler = web_crawler or WebCrawler()
        self.repo_crawler = repo_crawler or RepositoryCrawler()
        self.document_parser = document_parser or DocumentParser()
        self.chunking = chunking

    async def acquire(self, source: Source) -> list[RawContent]:
        """Fetch and extract content with the acquirer for the source kind."""
        if source.kind == SourceKind.WEB:
            return await self.web_crawler.crawl(
                source.url,
                source.crawl_depth,
                source.include_patterns or None,
                source.exclude_patterns or None,
            )
        if source.kind == SourceKind.REPOSITORY:
            return await self.repo_crawler.crawl(source.url, source.branch, source.index_options)
        return await self.document_parser.parse(source.url)

    async def _claim(self, source: Source, run_status: SourceStatus, expected: list[SourceStatus]) -> None:
        """Move the source into its running status and clear the error log."""
        claimed = await self.store.update_source_status(
            source.id, run_status, error_log=None, expected=expected
        )
        if not claimed:
            raise IndexingConflictError(f"Source {source.id} changed status while starting")

    async def index_source(self, source_id: str) -> IndexResult:
        """Index (or re-index) one source.

        Raises:
            SourceNotFoundError: No such source
            IndexingConflictError: The source is already being indexed or refreshed
            Exception: Any acquisition, embedding or storage failure, after
                the source has been marked ERROR
        """
        source = await self.store.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")
        if source.status.is_active:
            raise IndexingConflictError(f"Source {source.id} is already being indexed")

        source.status.check_transition(SourceStatus.INDEXING)
        await self._claim(source, SourceStatus.INDEXING, expected=[source.status])
        return await self._run(source, SourceStatus.INDEXING)

    async def _run(self, source: Source, run_status: SourceStatus) -> IndexResult:
        """Run a claimed job to READY, or record the failure and re-raise."""
        source_id = source.id
        logger.info(f"Indexing {source.name} ({source.kind.value}) from {source.url}")

        try:
            deleted = await self.store.delete_chunks(source_id)
            await self.store.update_source_status(source_id, run_status, chunk_count=0)
            if deleted:
                logger.info(f"Removed {deleted} existing chunks for {source.name}")

            raw = await self.acquire(source)
            logger.info(f"Acquired {len(raw)} content units for {source.name}")

            chunks = await asyncio.to_thread(chunk_content, raw, self.chunking)
            logger.info(f"Created {len(chunks)} chunks for {source.name}")

            if chunks:
                await self.store.insert_chunks(source_id, chunks)
                stored = await self.store.chunk_ids_in_order(source_id)

                vectors = await self.embedder.embed_batch([content for _, content in stored], "document")
                if len(vectors) != len(stored):
                    raise EmbeddingError(f"Expected {len(stored)} embeddings, got {len(vectors)}")

                for (chunk_id, _), vector in zip(stored, vectors):
                    await self.store.set_chunk_embedding(chunk_id, vector)
                logger.info(f"Embedded {len(stored)} chunks for {source.name}")
            else:
                logger.warning(f"No content extracted for {source.name}")

            await self.store.update_source_status(
                source_id,
                SourceStatus.READY,
                chunk_count=len(chunks),
                last_indexed_at=datetime.now(timezone.utc),
            )

        except Exception as e:
            logger.error(f"Error indexing {source.name}: {e}", exc_info=True)
            await self._record_failure(source_id, e)
            raise

        logger.info(f"Indexed {source.name}: {len(chunks)} chunks")
        return IndexResult(
            source_id=source_id,
            status=SourceStatus.READY,
            chunk_count=len(chunks),
            message=f"Indexed {len(chunks)} chunks",
        )

    async def _record_failure(self, source_id: str, error: Exception) -> None:
        try:
            await self.store.delete_chunks(source_id)
        except Exception as cleanup_error:
            logger.warning(f"Could not remove partial chunks for {source_id}: {cleanup_error}")

        await self.store.update_source_status(
            source_id,
            SourceStatus.ERROR,
            error_log=str(error) or type(error).__name__,
            chunk_count=0,
        )

    async def refresh_due_sources(self, now: Optional[datetime] = None) -> list[str]:
        """Re-index every READY source whose refresh interval has elapsed.

        Due sources are claimed one by one, then refreshed concurrently.

        Returns:
            Ids of the sources that were refreshed (successfully or not)
        """
        now = now or datetime.now(timezone.utc)
        sources = await self.store.list_refreshable_sources()
        due = [s for s in sources if is_due(s, now)]
        logger.info(f"Refresh sweep: {len(due)} of {len(sources)} sources due")

        claimed = []
        for source in due:
            try:
                await self._claim(source, SourceStatus.REFRESHING, expected=[SourceStatus.READY])
            except IndexingConflictError:
                logger.info(f"Skipping refresh of {source.name}: status changed")
                continue
            claimed.append(source)

        results = await asyncio.gather(
            *(self._run(source, SourceStatus.REFRESHING) for source in claimed),
            return_exceptions=True,
        )
        for source, result in zip(claimed, results):
            if isinstance(result, BaseException):
                # Failure already persisted on the source
                logger.warning(f"Refresh of {source.name} failed: {result}")

        return [source.id for source in claimed]
