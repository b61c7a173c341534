"""Endpoint tokens and source scope resolution.

An endpoint token names the scope an MCP client searches:

    src-<slug>              one source
    sub-<section>-<sub>     every source in a subsection
    sec-<slug>              every source in a section and its subsections

Only READY sources are ever returned.
"""
from __future__ import annotations
import logging
import re
import time
from enum import Enum
from typing import Optional

from ..knowledge_base.models import SourceStatus

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class EndpointScope(str, Enum):
    SOURCE = "src"
    SUBSECTION = "sub"
    SECTION = "sec"


def generate_slug(name: str) -> str:
    """Lower-case, alphanumeric-and-dash slug of a display name."""
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_source_slug(name: str, now_ms: Optional[int] = None) -> str:
    """Slug plus a four character base-36 time suffix."""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    return f"{generate_slug(name)}-{_base36(now_ms)[-4:]}"


def source_endpoint(slug: str) -> str:
    return f"src-{slug}"


def subsection_endpoint(section_slug: str, subsection_slug: str) -> str:
    return f"sub-{section_slug}-{subsection_slug}"


def section_endpoint(slug: str) -> str:
    return f"sec-{slug}"


def parse_endpoint(token: str) -> Optional[tuple[EndpointScope, str]]:
    """Return (scope, token) for a well-formed token, else None."""
    prefix, sep, rest = token.partition("-")
    if not sep or not rest:
        return None
    try:
        return EndpointScope(prefix), token
    except ValueError:
        return None


async def resolve_endpoint_sources(endpoint: str, store) -> list[str]:
    """Resolve an endpoint token to the ids of its READY sources.

    Args:
        endpoint: Endpoint token
        store: DocStore (or compatible) used for lookups

    Returns:
        Ordered, de-duplicated source ids; empty for unknown tokens
    """
    parsed = parse_endpoint(endpoint)
    if parsed is None:
        logger.debug(f"Unrecognized endpoint token: {endpoint}")
        return []

    scope, token = parsed

    if scope is EndpointScope.SOURCE:
        source = await store.source_by_endpoint(token)
        if source is not None and source.status == SourceStatus.READY:
            return [source.id]
        return []

    if scope is EndpointScope.SUBSECTION:
        ids = await store.subsection_source_ids(token)
    else:
        ids = await store.section_source_ids(token)

    return list(dict.fromkeys(ids or []))
