"""
Knowledge Base module for documentation indexing and retrieval.

This module provides:
- Web, Markdown, Solidity and PDF structural extraction
- Token-budgeted chunking with overlap and code-block integrity
- Source lifecycle models shared by the indexer and the MCP server
"""

from .models import (
    Source,
    SourceKind,
    SourceStatus,
    RefreshInterval,
    IndexOptions,
    RawContent,
    Chunk,
    ChunkingConfig,
    SearchResult,
    SearchResponse,
    SourceSummary,
)
from .chunker import chunk_content, estimate_tokens

__all__ = [
    "Source",
    "SourceKind",
    "SourceStatus",
    "RefreshInterval",
    "IndexOptions",
    "RawContent",
    "Chunk",
    "ChunkingConfig",
    "SearchResult",
    "SearchResponse",
    "SourceSummary",
    "chunk_content",
    "estimate_tokens",
]
