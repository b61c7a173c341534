"""MCP over HTTP: one POST route per endpoint token."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...mcp.endpoints import resolve_endpoint_sources
from ...mcp.server import INTERNAL_ERROR, PARSE_ERROR, error_response, handle_mcp_payload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{endpoint}")
async def mcp_post(endpoint: str, request: Request) -> Any:
    """Serve a JSON-RPC request or batch for the endpoint's sources."""
    services = request.app.state.services
    raw = await request.body()

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return JSONResponse(
            error_response(None, PARSE_ERROR, "Parse error", {"error": str(e)}),
            status_code=400,
        )

    try:
        return await handle_mcp_payload(endpoint, payload, services.mcp)
    except Exception as e:
        logger.error(f"MCP endpoint error: {e}", exc_info=True)
        return JSONResponse(
            error_response(None, INTERNAL_ERROR, "Internal server error"),
            status_code=500,
        )


@router.get("/{endpoint}")
async def mcp_info(endpoint: str, request: Request) -> dict[str, Any]:
    """Describe an endpoint and how many READY sources it covers."""
    services = request.app.state.services
    source_ids = await resolve_endpoint_sources(endpoint, services.store)

    return {
        "endpoint": endpoint,
        "sourcesReady": len(source_ids),
        "status": "active" if source_ids else "no_ready_sources",
        "protocol": "MCP",
        "transport": "HTTP POST",
    }
