"""
Pydantic models for the documentation knowledge base.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..errors import InvalidTransitionError


class SourceKind(str, Enum):
    """Kinds of documentation origin."""
    WEB = "WEB"
    REPOSITORY = "REPOSITORY"
    DOCUMENT = "DOCUMENT"


class SourceStatus(str, Enum):
    """Lifecycle status of a documentation source."""
    PENDING = "PENDING"
    INDEXING = "INDEXING"
    READY = "READY"
    ERROR = "ERROR"
    REFRESHING = "REFRESHING"

    @property
    def is_active(self) -> bool:
        """True while an indexing job owns the source."""
        return self in (SourceStatus.INDEXING, SourceStatus.REFRESHING)

    def can_transition_to(self, target: "SourceStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    def check_transition(self, target: "SourceStatus") -> "SourceStatus":
        """Return target if the move is legal, else raise InvalidTransitionError."""
        if not self.can_transition_to(target):
            raise InvalidTransitionError(f"Cannot move source from {self.value} to {target.value}")
        return target


ALLOWED_TRANSITIONS: dict[SourceStatus, frozenset[SourceStatus]] = {
    SourceStatus.PENDING: frozenset({SourceStatus.INDEXING}),
    SourceStatus.INDEXING: frozenset({SourceStatus.READY, SourceStatus.ERROR}),
    SourceStatus.READY: frozenset({SourceStatus.REFRESHING, SourceStatus.INDEXING, SourceStatus.PENDING}),
    SourceStatus.REFRESHING: frozenset({SourceStatus.READY, SourceStatus.ERROR}),
    SourceStatus.ERROR: frozenset({SourceStatus.INDEXING, SourceStatus.PENDING}),
}


class RefreshInterval(str, Enum):
    """How often a ready source is re-indexed."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def seconds(self) -> Optional[int]:
        return _INTERVAL_SECONDS[self]


_INTERVAL_SECONDS = {
    RefreshInterval.NONE: None,
    RefreshInterval.DAILY: 86400,
    RefreshInterval.WEEKLY: 604800,
    RefreshInterval.MONTHLY: 2592000,
}


class IndexOptions(BaseModel):
    """File selection toggles for repository sources."""
    index_readme: bool = True
    index_docs: bool = True
    index_sol: bool = True
    index_md: bool = True
    index_mdx: bool = True
    index_tests: bool = False


# ============ Database Models ============

class Source(BaseModel):
    """A documentation origin tracked for indexing."""
    id: str
    name: str
    kind: SourceKind
    url: str
    version: Optional[str] = None
    crawl_depth: int = 1
    branch: str = "main"
    include_patterns: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    index_options: IndexOptions = Field(default_factory=IndexOptions)
    refresh_interval: RefreshInterval = RefreshInterval.NONE
    status: SourceStatus = SourceStatus.PENDING
    chunk_count: int = 0
    last_indexed_at: Optional[datetime] = None
    error_log: Optional[str] = None
    endpoint: Optional[str] = None
    subsection_id: Optional[str] = None
    section_id: Optional[str] = None

    @field_validator("include_patterns", "exclude_patterns", mode="before")
    @classmethod
    def split_patterns(cls, v):
        """Accept comma-separated pattern strings as stored by the dashboard."""
        if v is None:
            return []
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @field_validator("index_options", mode="before")
    @classmethod
    def parse_index_options(cls, v):
        if v is None or v == "":
            return IndexOptions()
        if isinstance(v, str):
            return IndexOptions.model_validate_json(v)
        return v


class RawContent(BaseModel):
    """Extractor output: one span of text with its provenance."""
    content: str
    heading: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None


class Chunk(BaseModel):
    """A bounded, retrievable slice of content."""
    content: str
    heading: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    chunk_index: int
    token_count: int


class ChunkingConfig(BaseModel):
    """Configuration for the chunking algorithm.

    Sizes are in approximate tokens (characters / chars_per_token).
    """
    chars_per_token: int = Field(default=4, description="Characters per estimated token")
    target_tokens: int = Field(default=512, description="Target chunk size")
    overlap_tokens: int = Field(default=50, description="Overlap carried between chunks")
    code_block_max_tokens: int = Field(default=800, description="Largest code block kept intact")
    code_flush_slack_tokens: int = Field(default=100, description="Overshoot allowed before flushing ahead of a code block")

    @property
    def target_chars(self) -> int:
        return self.target_tokens * self.chars_per_token

    @property
    def overlap_chars(self) -> int:
        return self.overlap_tokens * self.chars_per_token


# ============ Search Models ============

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkCandidate(BaseModel):
    """One row from a ranked store query."""
    id: str
    content: str
    heading: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    source_id: str
    source_name: str
    version: Optional[str] = None
    score: float = 0.0


class SearchResult(_CamelModel):
    """A fused search hit."""
    chunk_id: str
    content: str
    heading: Optional[str] = None
    source_name: str
    source_url: Optional[str] = None
    file_path: Optional[str] = None
    version: Optional[str] = None
    relevance_score: float


class SearchResponse(_CamelModel):
    """Result of a hybrid search."""
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    sources_searched: list[str] = Field(default_factory=list)
    query_time_ms: float = 0.0


class SourceSummary(_CamelModel):
    """Source metadata exposed by the get_sources tool."""
    id: str
    name: str
    type: SourceKind
    url: str
    version: Optional[str] = None
    status: SourceStatus
    chunk_count: int
    last_indexed_at: Optional[datetime] = None

    @classmethod
    def from_source(cls, source: Source) -> "SourceSummary":
        return cls(
            id=source.id,
            name=source.name,
            type=source.kind,
            url=source.url,
            version=source.version,
            status=source.status,
            chunk_count=source.chunk_count,
            last_indexed_at=source.last_indexed_at,
        )


class IndexResult(BaseModel):
    """Outcome of one indexing job."""
    source_id: str
    status: SourceStatus
    chunk_count: int
    message: str
