"""Exception types shared across the indexing and retrieval pipeline."""
from __future__ import annotations


class ChainLensError(Exception):
    """Base class for ChainLens errors."""


class AcquisitionError(ChainLensError):
    """Content could not be acquired from a source origin.

    Fatal to the current indexing attempt; the orchestrator records the
    message as the source's error log.
    """


class EmbeddingError(ChainLensError):
    """The embedding provider rejected a request or returned bad data."""


class RateLimitedError(EmbeddingError):
    """The embedding provider answered 429; safe to retry after a pause."""


class IndexingConflictError(ChainLensError):
    """An indexing job is already running for the source."""


class InvalidTransitionError(ChainLensError, ValueError):
    """A source status change is not allowed by the lifecycle."""


class SourceNotFoundError(ChainLensError, LookupError):
    """No source exists with the requested id."""
