"""Wiring of the long-lived collaborators shared by the CLI, daemon and web app."""
from __future__ import annotations
import logging
from dataclasses import dataclass

from .config import Settings
from .daemon.scheduler import IndexScheduler
from .db.store import DocStore
from .embeddings.voyage import EmbeddingClient
from .indexer.orchestrator import IndexingOrchestrator
from .indexer.pdf_parser import DocumentParser
from .indexer.repo_crawler import RepositoryCrawler
from .indexer.web_crawler import WebCrawler
from .mcp.server import McpContext

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: DocStore
    embedder: EmbeddingClient
    orchestrator: IndexingOrchestrator
    scheduler: IndexScheduler
    mcp: McpContext

    @classmethod
    def build(cls, settings: Settings, store, embedder=None) -> Services:
        """Assemble services around an existing store."""
        embedder = embedder or EmbeddingClient(settings.embeddings)
        orchestrator = IndexingOrchestrator(
            store,
            embedder,
            web_crawler=WebCrawler(settings.crawler),
            repo_crawler=RepositoryCrawler(settings.crawler),
            document_parser=DocumentParser(settings.crawler),
        )
        return cls(
            settings=settings,
            store=store,
            embedder=embedder,
            orchestrator=orchestrator,
            scheduler=IndexScheduler(orchestrator, store),
            mcp=McpContext(store=store, embedder=embedder, search=settings.search),
        )

    @classmethod
    async def create(cls, settings: Settings) -> Services:
        """Connect to the database and assemble services."""
        store = await DocStore.connect(settings.database)
        logger.info("Connected to database")
        return cls.build(settings, store)

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.store.close()
