"""Shared pytest fixtures for all tests."""
from __future__ import annotations
import itertools
from typing import Optional

import pytest

from chainlens.config import CrawlerConfig, EmbeddingsConfig, SearchSettings, Settings
from chainlens.db.store import UNSET
from chainlens.knowledge_base.models import ChunkCandidate, Source, SourceKind, SourceStatus


class FakeStore:
    """In-memory stand-in for DocStore with the same async surface."""

    def __init__(self):
        self.sources: dict[str, Source] = {}
        self.chunks: dict[str, list[dict]] = {}
        self.subsections: dict[str, list[str]] = {}
        self.sections: dict[str, list[str]] = {}
        self.vector_hits: list[ChunkCandidate] = []
        self.fts_hits: list[ChunkCandidate] = []
        self.search_calls: list[tuple] = []
        self.status_history: list[tuple[str, SourceStatus]] = []
        self.healthy = True
        self.closed = False
        self._ids = itertools.count(1)

    def add_source(self, **fields) -> Source:
        n = next(self._ids)
        fields.setdefault("id", f"source-{n}")
        fields.setdefault("name", f"Source {n}")
        fields.setdefault("kind", SourceKind.WEB)
        fields.setdefault("url", f"https://docs{n}.example.com")
        fields.setdefault("endpoint", f"src-{fields['id']}")
        source = Source(**fields)
        self.sources[source.id] = source
        return source

    def add_chunks(self, source_id: str, count: int) -> None:
        self.chunks[source_id] = [
            {"id": f"{source_id}-old-{i}", "content": f"old {i}", "chunk_index": i, "embedding": None}
            for i in range(count)
        ]

    # Sources

    async def get_source(self, source_id: str) -> Optional[Source]:
        source = self.sources.get(source_id)
        return source.model_copy() if source else None

    async def list_sources(self, source_ids: Optional[list[str]] = None) -> list[Source]:
        sources = [
            s for s in self.sources.values()
            if source_ids is None or s.id in source_ids
        ]
        return sorted(sources, key=lambda s: s.name)

    async def list_refreshable_sources(self) -> list[Source]:
        return [
            s for s in self.sources.values()
            if s.status == SourceStatus.READY and s.refresh_interval.seconds is not None
        ]

    async def source_by_endpoint(self, endpoint: str) -> Optional[Source]:
        for source in self.sources.values():
            if source.endpoint == endpoint:
                return source
        return None

    async def update_source_status(
        self,
        source_id,
        status,
        *,
        error_log=UNSET,
        chunk_count=None,
        last_indexed_at=None,
        expected=None,
    ) -> bool:
        source = self.sources.get(source_id)
        if source is None:
            return False
        if expected and source.status not in expected:
            return False

        updates = {"status": SourceStatus(status)}
        if error_log is not UNSET:
            updates["error_log"] = error_log
        if chunk_count is not None:
            updates["chunk_count"] = chunk_count
        if last_indexed_at is not None:
            updates["last_indexed_at"] = last_indexed_at

        self.sources[source_id] = source.model_copy(update=updates)
        self.status_history.append((source_id, SourceStatus(status)))
        return True

    # Scopes

    def _ready(self, ids: list[str]) -> list[str]:
        return [i for i in ids if i in self.sources and self.sources[i].status == SourceStatus.READY]

    async def subsection_source_ids(self, endpoint: str) -> Optional[list[str]]:
        if endpoint not in self.subsections:
            return None
        return self._ready(self.subsections[endpoint])

    async def section_source_ids(self, endpoint: str) -> Optional[list[str]]:
        if endpoint not in self.sections:
            return None
        return self._ready(self.sections[endpoint])

    # Chunks

    async def delete_chunks(self, source_id: str) -> int:
        return len(self.chunks.pop(source_id, []))

    async def insert_chunks(self, source_id: str, chunks) -> None:
        rows = self.chunks.setdefault(source_id, [])
        for chunk in chunks:
            rows.append({
                "id": f"{source_id}-chunk-{chunk.chunk_index}",
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "embedding": None,
            })

    async def chunk_ids_in_order(self, source_id: str) -> list[tuple[str, str]]:
        rows = sorted(self.chunks.get(source_id, []), key=lambda r: r["chunk_index"])
        return [(r["id"], r["content"]) for r in rows]

    async def set_chunk_embedding(self, chunk_id: str, vector: list[float]) -> None:
        for rows in self.chunks.values():
            for row in rows:
                if row["id"] == chunk_id:
                    row["embedding"] = vector

    # Search

    def _filter(self, hits, source_ids, limit, version):
        return [
            c for c in hits
            if c.source_id in source_ids and (version is None or c.version == version)
        ][:limit]

    async def vector_search(self, query_vector, source_ids, limit, version=None):
        self.search_calls.append(("vector", tuple(source_ids), limit, version))
        return self._filter(self.vector_hits, source_ids, limit, version)

    async def fts_search(self, query, source_ids, limit, version=None):
        self.search_calls.append(("fts", tuple(source_ids), limit, version))
        return self._filter(self.fts_hits, source_ids, limit, version)

    async def ping(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True


class FakeEmbedder:
    """Deterministic embedder recording its calls."""

    def __init__(self, dimension: int = 4, error: Optional[Exception] = None):
        self.dimension = dimension
        self.error = error
        self.calls: list[tuple[str, int]] = []
        self.configured = True

    async def embed_one(self, text, input_type="query"):
        self.calls.append((input_type, 1))
        return [0.1] * self.dimension

    async def embed_batch(self, texts, input_type="document"):
        self.calls.append((input_type, len(texts)))
        if self.error is not None:
            raise self.error
        return [[float(i)] * self.dimension for i in range(len(texts))]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def make_candidate():
    def factory(chunk_id: str, source_id: str = "source-1", source_name: str = "Docs", **fields) -> ChunkCandidate:
        fields.setdefault("content", f"content of {chunk_id}")
        return ChunkCandidate(id=chunk_id, source_id=source_id, source_name=source_name, **fields)
    return factory


@pytest.fixture
def crawler_config():
    """Crawler settings with no pauses and no browser."""
    return CrawlerConfig(page_delay=0, browser_page_delay=0, repo_file_delay=0, browser_enabled=False)


@pytest.fixture
def embeddings_config():
    return EmbeddingsConfig(api_key="test-key", dimension=128, batch_size=2, backoff_seconds=0)


@pytest.fixture
def settings(crawler_config):
    return Settings(crawler=crawler_config, search=SearchSettings())
