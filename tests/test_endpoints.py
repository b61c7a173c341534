"""Tests for endpoint tokens and scope resolution."""
import pytest

from chainlens.knowledge_base.models import SourceStatus
from chainlens.mcp.endpoints import (
    EndpointScope,
    generate_slug,
    generate_source_slug,
    parse_endpoint,
    resolve_endpoint_sources,
    section_endpoint,
    source_endpoint,
    subsection_endpoint,
)


def test_generate_slug():
    assert generate_slug("Uniswap V3 Docs!") == "uniswap-v3-docs"
    assert generate_slug("  Aave -- Lending  ") == "aave-lending"


def test_source_slug_has_time_suffix():
    assert generate_source_slug("Uniswap", now_ms=36 ** 4 + 35) == "uniswap-000z"
    assert len(generate_source_slug("Uniswap").rsplit("-", 1)[1]) == 4


def test_endpoint_formats():
    assert source_endpoint("uniswap-ab12") == "src-uniswap-ab12"
    assert subsection_endpoint("defi", "dexes") == "sub-defi-dexes"
    assert section_endpoint("defi") == "sec-defi"


def test_parse_endpoint():
    assert parse_endpoint("src-abc") == (EndpointScope.SOURCE, "src-abc")
    assert parse_endpoint("sub-a-b") == (EndpointScope.SUBSECTION, "sub-a-b")
    assert parse_endpoint("sec-defi") == (EndpointScope.SECTION, "sec-defi")
    assert parse_endpoint("xyz-abc") is None
    assert parse_endpoint("src-") is None
    assert parse_endpoint("plain") is None


@pytest.mark.asyncio
async def test_source_endpoint_requires_ready(store):
    ready = store.add_source(status=SourceStatus.READY)
    pending = store.add_source(status=SourceStatus.PENDING)

    assert await resolve_endpoint_sources(ready.endpoint, store) == [ready.id]
    assert await resolve_endpoint_sources(pending.endpoint, store) == []
    assert await resolve_endpoint_sources("src-unknown", store) == []


@pytest.mark.asyncio
async def test_section_is_union_without_duplicates(store):
    direct = store.add_source(status=SourceStatus.READY)
    nested = store.add_source(status=SourceStatus.READY)
    indexing = store.add_source(status=SourceStatus.INDEXING)
    store.sections["sec-defi"] = [direct.id, nested.id, indexing.id, direct.id]

    assert await resolve_endpoint_sources("sec-defi", store) == [direct.id, nested.id]


@pytest.mark.asyncio
async def test_subsection_and_unknown_scopes(store):
    ready = store.add_source(status=SourceStatus.READY)
    store.subsections["sub-defi-dexes"] = [ready.id]

    assert await resolve_endpoint_sources("sub-defi-dexes", store) == [ready.id]
    assert await resolve_endpoint_sources("sub-defi-missing", store) == []
    assert await resolve_endpoint_sources("sec-missing", store) == []
    assert await resolve_endpoint_sources("bogus", store) == []
