# Tool registry for MCP server
from __future__ import annotations

import inspect
from typing import Any, Callable, Awaitable

from ..knowledge_base.models import SourceSummary
from ..retrieval.hybrid_search import hybrid_search

TOOL_REGISTRY: dict[str, Callable[..., Awaitable[Any]]] = {}


class UnknownToolError(LookupError):
    """No tool is registered under the requested name."""


class InvalidParamsError(ValueError):
    """A tool was called with missing or malformed arguments."""


def tool(name: str):
    def deco(fn):
        TOOL_REGISTRY[name] = fn
        return fn
    return deco


async def call_tool(name: str, ctx, source_ids: list[str], arguments: Any) -> Any:
    """Bind arguments to a registered tool and run it.

    Raises:
        UnknownToolError: No tool named name
        InvalidParamsError: Arguments are not an object or do not bind
    """
    handler = TOOL_REGISTRY.get(name)
    if handler is None:
        raise UnknownToolError(f"Unknown tool: {name}")
    if not isinstance(arguments, dict):
        raise InvalidParamsError("Tool arguments must be an object")

    try:
        bound = inspect.signature(handler).bind(ctx, source_ids, **arguments)
    except TypeError as e:
        raise InvalidParamsError(f"Invalid arguments for {name}: {e}") from e
    return await handler(*bound.args, **bound.kwargs)


def coerce_limit(value: Any) -> int | None:
    """Accept ints and numeric strings; anything else means "use the default"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


@tool("search_docs")
async def search_docs(
    ctx,
    source_ids: list[str],
    query: str | None = None,
    limit: Any = None,
    version: str | None = None,
    **_ignored: Any,
) -> dict[str, Any]:
    """Hybrid search over the sources in scope.

    Args:
        ctx: McpContext with store, embedder and search settings
        source_ids: READY sources of the endpoint
        query: Search query string
        limit: Max results (default 8, max 20)
        version: Exact version filter

    Returns:
        SearchResponse as camelCase JSON
    """
    if not isinstance(query, str) or not query.strip():
        raise InvalidParamsError("Missing required parameter: query")

    response = await hybrid_search(
        query=query,
        source_ids=source_ids,
        store=ctx.store,
        embedder=ctx.embedder,
        limit=coerce_limit(limit),
        version=version or None,
        settings=ctx.search,
    )
    return response.model_dump(by_alias=True, mode="json")


@tool("get_sources")
async def get_sources(ctx, source_ids: list[str], **_ignored: Any) -> dict[str, Any]:
    """Metadata of exactly the sources in scope."""
    sources = await ctx.store.list_sources(source_ids)
    return {
        "sources": [
            SourceSummary.from_source(s).model_dump(by_alias=True, mode="json")
            for s in sources
        ]
    }
