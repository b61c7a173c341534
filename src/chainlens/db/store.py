"""Storage gateway for sources, chunks and scope lookups.

All access goes through an asyncpg pool. Each method is a short statement or
a small group of statements; no transaction ever spans network I/O to a
crawler or the embedding provider.
"""
from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..config import DatabaseConfig
from ..embeddings.voyage import to_pgvector
from ..knowledge_base.models import (
    Chunk,
    ChunkCandidate,
    IndexOptions,
    RefreshInterval,
    Source,
    SourceKind,
    SourceStatus,
)
from ..mcp.endpoints import (
    generate_slug,
    generate_source_slug,
    section_endpoint,
    source_endpoint,
    subsection_endpoint,
)

logger = logging.getLogger(__name__)

# Sentinel for "leave error_log unchanged"
UNSET: Any = object()

SOURCE_COLUMNS = """
    id, name, kind, url, version, crawl_depth, branch, include_patterns,
    exclude_patterns, index_options, refresh_interval, status, chunk_count,
    last_indexed_at, error_log, endpoint, subsection_id, section_id
"""

READY_SOURCE_ORDER = "ORDER BY position, created_at, id"


def _to_source(row: asyncpg.Record) -> Source:
    return Source.model_validate(dict(row))


def _to_candidate(row: asyncpg.Record) -> ChunkCandidate:
    return ChunkCandidate(
        id=row["id"],
        content=row["content"],
        heading=row["heading"],
        url=row["url"],
        file_path=row["file_path"],
        source_id=row["source_id"],
        source_name=row["source_name"],
        version=row["version"],
        score=float(row["score"] or 0.0),
    )


class DocStore:
    """Async PostgreSQL store for the knowledge base."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(cls, config: DatabaseConfig) -> DocStore:
        pool = await asyncpg.create_pool(
            dsn=config.database_url,
            min_size=config.pool_min,
            max_size=config.pool_max,
        )
        return cls(pool)

    async def close(self) -> None:
        await self.pool.close()

    async def ping(self) -> bool:
        """True when the database answers SELECT 1."""
        try:
            return await self.pool.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    # ============ Sources ============

    async def get_source(self, source_id: str) -> Optional[Source]:
        row = await self.pool.fetchrow(
            f"SELECT {SOURCE_COLUMNS} FROM doc_source WHERE id = $1", source_id
        )
        return _to_source(row) if row else None

    async def list_sources(self, source_ids: Optional[list[str]] = None) -> list[Source]:
        """List sources, optionally restricted to the given ids."""
        if source_ids is None:
            rows = await self.pool.fetch(f"SELECT {SOURCE_COLUMNS} FROM doc_source ORDER BY name")
        else:
            rows = await self.pool.fetch(
                f"SELECT {SOURCE_COLUMNS} FROM doc_source WHERE id = ANY($1::text[]) ORDER BY name",
                source_ids,
            )
        return [_to_source(r) for r in rows]

    async def list_refreshable_sources(self) -> list[Source]:
        """READY sources with a periodic refresh interval."""
        rows = await self.pool.fetch(
            f"""
            SELECT {SOURCE_COLUMNS} FROM doc_source
            WHERE status = 'READY' AND refresh_interval <> 'none'
            ORDER BY last_indexed_at NULLS FIRST
            """
        )
        return [_to_source(r) for r in rows]

    async def create_source(
        self,
        name: str,
        kind: SourceKind,
        url: str,
        *,
        version: Optional[str] = None,
        crawl_depth: int = 1,
        branch: str = "main",
        include_patterns: Optional[list[str]] = None,
        exclude_patterns: Optional[list[str]] = None,
        index_options: Optional[IndexOptions] = None,
        refresh_interval: RefreshInterval = RefreshInterval.NONE,
        subsection_id: Optional[str] = None,
        section_id: Optional[str] = None,
    ) -> Source:
        """Insert a PENDING source with a fresh src- endpoint token."""
        options = index_options or IndexOptions()
        row = await self.pool.fetchrow(
            f"""
            INSERT INTO doc_source (
                name, kind, url, version, crawl_depth, branch, include_patterns,
                exclude_patterns, index_options, refresh_interval, endpoint,
                subsection_id, section_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, $11, $12, $13)
            RETURNING {SOURCE_COLUMNS}
            """,
            name,
            SourceKind(kind).value,
            url,
            version,
            crawl_depth,
            branch,
            include_patterns or [],
            exclude_patterns or [],
            options.model_dump_json(),
            RefreshInterval(refresh_interval).value,
            source_endpoint(generate_source_slug(name)),
            subsection_id,
            section_id,
        )
        source = _to_source(row)
        logger.info(f"Created source {source.id} ({source.name}) at {source.endpoint}")
        return source

    async def update_source_status(
        self,
        source_id: str,
        status: SourceStatus,
        *,
        error_log: Optional[str] = UNSET,
        chunk_count: Optional[int] = None,
        last_indexed_at: Optional[datetime] = None,
        expected: Optional[list[SourceStatus]] = None,
    ) -> bool:
        """Write a status change and optional bookkeeping fields.

        Args:
            source_id: Source to update
            status: New status
            error_log: New error log (None clears it); omitted leaves it unchanged
            chunk_count: New chunk count
            last_indexed_at: Completion timestamp
            expected: Only update when the current status is one of these

        Returns:
            True if a row was updated
        """
        sets = ["status = $2", "updated_at = now()"]
        params: list[Any] = [source_id, SourceStatus(status).value]

        if error_log is not UNSET:
            params.append(error_log)
            sets.append(f"error_log = ${len(params)}")
        if chunk_count is not None:
            params.append(chunk_count)
            sets.append(f"chunk_count = ${len(params)}")
        if last_indexed_at is not None:
            params.append(last_indexed_at)
            sets.append(f"last_indexed_at = ${len(params)}")

        where = "id = $1"
        if expected:
            params.append([SourceStatus(s).value for s in expected])
            where += f" AND status = ANY(${len(params)}::text[])"

        result = await self.pool.execute(
            f"UPDATE doc_source SET {', '.join(sets)} WHERE {where}", *params
        )
        return result.endswith(" 1")

    async def source_by_endpoint(self, endpoint: str) -> Optional[Source]:
        row = await self.pool.fetchrow(
            f"SELECT {SOURCE_COLUMNS} FROM doc_source WHERE endpoint = $1", endpoint
        )
        return _to_source(row) if row else None

    # ============ Sections ============

    async def create_section(self, name: str) -> dict:
        slug = generate_slug(name)
        row = await self.pool.fetchrow(
            """
            INSERT INTO section (name, slug, endpoint) VALUES ($1, $2, $3)
            RETURNING id, name, slug, endpoint
            """,
            name, slug, section_endpoint(slug),
        )
        return dict(row)

    async def create_subsection(self, section_id: str, name: str) -> dict:
        section_slug = await self.pool.fetchval("SELECT slug FROM section WHERE id = $1", section_id)
        if section_slug is None:
            raise LookupError(f"Section not found: {section_id}")

        slug = generate_slug(name)
        row = await self.pool.fetchrow(
            """
            INSERT INTO subsection (section_id, name, slug, endpoint) VALUES ($1, $2, $3, $4)
            RETURNING id, section_id, name, slug, endpoint
            """,
            section_id, name, slug, subsection_endpoint(section_slug, slug),
        )
        return dict(row)

    async def subsection_source_ids(self, endpoint: str) -> Optional[list[str]]:
        """READY source ids of a subsection; None if the subsection is unknown."""
        subsection_id = await self.pool.fetchval(
            "SELECT id FROM subsection WHERE endpoint = $1", endpoint
        )
        if subsection_id is None:
            return None

        rows = await self.pool.fetch(
            f"""
            SELECT id FROM doc_source
            WHERE subsection_id = $1 AND status = 'READY'
            {READY_SOURCE_ORDER}
            """,
            subsection_id,
        )
        return [r["id"] for r in rows]

    async def section_source_ids(self, endpoint: str) -> Optional[list[str]]:
        """READY source ids attached to a section directly, then via subsections.

        May contain duplicates; the resolver de-duplicates. None if the
        section is unknown.
        """
        section_id = await self.pool.fetchval(
            "SELECT id FROM section WHERE endpoint = $1", endpoint
        )
        if section_id is None:
            return None

        direct = await self.pool.fetch(
            f"""
            SELECT id FROM doc_source
            WHERE section_id = $1 AND status = 'READY'
            {READY_SOURCE_ORDER}
            """,
            section_id,
        )
        nested = await self.pool.fetch(
            """
            SELECT s.id FROM doc_source s
            JOIN subsection ss ON s.subsection_id = ss.id
            WHERE ss.section_id = $1 AND s.status = 'READY'
            ORDER BY ss.position, ss.created_at, s.position, s.created_at, s.id
            """,
            section_id,
        )
        return [r["id"] for r in direct] + [r["id"] for r in nested]

    # ============ Chunks ============

    async def delete_chunks(self, source_id: str) -> int:
        result = await self.pool.execute("DELETE FROM doc_chunk WHERE source_id = $1", source_id)
        return int(result.split()[-1])

    async def insert_chunks(self, source_id: str, chunks: list[Chunk]) -> None:
        if not chunks:
            return
        await self.pool.executemany(
            """
            INSERT INTO doc_chunk (source_id, content, heading, url, file_path, chunk_index, token_count)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            [
                (source_id, c.content, c.heading, c.url, c.file_path, c.chunk_index, c.token_count)
                for c in chunks
            ],
        )

    async def chunk_ids_in_order(self, source_id: str) -> list[tuple[str, str]]:
        """(id, content) pairs ordered by chunk_index."""
        rows = await self.pool.fetch(
            "SELECT id, content FROM doc_chunk WHERE source_id = $1 ORDER BY chunk_index",
            source_id,
        )
        return [(r["id"], r["content"]) for r in rows]

    async def set_chunk_embedding(self, chunk_id: str, vector: list[float]) -> None:
        await self.pool.execute(
            "UPDATE doc_chunk SET embedding = $1::vector WHERE id = $2",
            to_pgvector(vector),
            chunk_id,
        )

    # ============ Search ============

    async def vector_search(
        self,
        query_vector: list[float],
        source_ids: list[str],
        limit: int,
        version: Optional[str] = None,
    ) -> list[ChunkCandidate]:
        """Nearest chunks by cosine distance (score = 1 - distance)."""
        rows = await self.pool.fetch(
            """
            SELECT
                c.id, c.content, c.heading, c.url, c.file_path,
                c.source_id, s.name AS source_name, s.version,
                1 - (c.embedding <=> $1::vector) AS score
            FROM doc_chunk c
            JOIN doc_source s ON c.source_id = s.id
            WHERE c.source_id = ANY($2::text[])
            AND ($3::text IS NULL OR s.version = $3)
            AND c.embedding IS NOT NULL
            ORDER BY c.embedding <=> $1::vector, c.id
            LIMIT $4
            """,
            to_pgvector(query_vector),
            source_ids,
            version,
            limit,
        )
        return [_to_candidate(r) for r in rows]

    async def fts_search(
        self,
        query: str,
        source_ids: list[str],
        limit: int,
        version: Optional[str] = None,
    ) -> list[ChunkCandidate]:
        """Lexical matches ranked by ts_rank."""
        rows = await self.pool.fetch(
            """
            SELECT
                c.id, c.content, c.heading, c.url, c.file_path,
                c.source_id, s.name AS source_name, s.version,
                ts_rank(c.tsv, plainto_tsquery('english', $1)) AS score
            FROM doc_chunk c
            JOIN doc_source s ON c.source_id = s.id
            WHERE c.source_id = ANY($2::text[])
            AND ($3::text IS NULL OR s.version = $3)
            AND c.tsv @@ plainto_tsquery('english', $1)
            ORDER BY score DESC, c.id
            LIMIT $4
            """,
            query,
            source_ids,
            version,
            limit,
        )
        return [_to_candidate(r) for r in rows]
