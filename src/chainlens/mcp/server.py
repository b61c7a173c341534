"""MCP server with JSON-RPC framing.

Implements the Model Context Protocol for documentation search. Every
request is served within the scope of one endpoint token, resolved to its
READY sources before dispatch. The same handlers back the HTTP route and the
stdio transport.
"""
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Optional, TextIO

from .. import __version__
from ..config import SearchSettings
from .endpoints import resolve_endpoint_sources
from .schemas import TOOL_SCHEMAS
from .tools import TOOL_REGISTRY, InvalidParamsError, UnknownToolError, call_tool

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "chainlens"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
NO_READY_SOURCES = -32000

NO_READY_SOURCES_MESSAGE = (
    "No indexed sources are ready in this endpoint. Sources may still be "
    "indexing. Check the ChainLens dashboard."
)


@dataclass
class McpContext:
    """Collaborators shared by all requests."""
    store: Any
    embedder: Any
    search: SearchSettings = field(default_factory=SearchSettings)


# MCP Protocol Implementation


async def handle_initialize(params: dict[str, Any], ctx: McpContext, source_ids: list[str]) -> dict[str, Any]:
    """Handle MCP initialize request."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {
            "tools": {}
        },
        "serverInfo": {
            "name": SERVER_NAME,
            "version": __version__
        }
    }


async def handle_initialized(params: dict[str, Any], ctx: McpContext, source_ids: list[str]) -> dict[str, Any]:
    return {}


async def handle_tools_list(params: dict[str, Any], ctx: McpContext, source_ids: list[str]) -> dict[str, Any]:
    """List all available tools with their schemas."""
    return {"tools": [TOOL_SCHEMAS[name] for name in TOOL_REGISTRY if name in TOOL_SCHEMAS]}


async def handle_tools_call(params: dict[str, Any], ctx: McpContext, source_ids: list[str]) -> dict[str, Any]:
    """Call a tool with given parameters."""
    tool_name = params.get("name")
    tool_args = params.get("arguments") or {}

    result = await call_tool(tool_name, ctx, source_ids, tool_args)

    return {
        "content": [
            {
                "type": "text",
                "text": json.dumps(result, indent=2)
            }
        ]
    }


# JSON-RPC Handler


MCP_METHODS = {
    "initialize": handle_initialize,
    "notifications/initialized": handle_initialized,
    "tools/list": handle_tools_list,
    "tools/call": handle_tools_call,
}


def error_response(req_id: Any, code: int, message: str, data: Optional[dict] = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": req_id, "error": error}


async def handle_mcp_request(request: Any, source_ids: list[str], ctx: McpContext) -> dict[str, Any]:
    """Handle a single JSON-RPC request.

    Returns:
        JSON-RPC response dictionary
    """
    if not isinstance(request, dict) or not isinstance(request.get("method"), str):
        req_id = request.get("id") if isinstance(request, dict) else None
        return error_response(req_id, INVALID_REQUEST, "Invalid Request")

    req_id = request.get("id")
    method = request["method"]
    params = request.get("params") or {}

    if not isinstance(params, dict):
        return error_response(req_id, INVALID_PARAMS, "Invalid params")

    handler = MCP_METHODS.get(method)
    if handler is None:
        return error_response(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    try:
        result = await handler(params, ctx, source_ids)
        return {
            "jsonrpc": "2.0",
            "id": req_id,
            "result": result
        }

    except UnknownToolError as e:
        return error_response(req_id, METHOD_NOT_FOUND, str(e))

    except InvalidParamsError as e:
        return error_response(req_id, INVALID_PARAMS, str(e))

    except Exception as e:
        logger.error(f"MCP {method} failed: {e}", exc_info=True)
        return error_response(req_id, INTERNAL_ERROR, "Internal error", {
            "error": str(e),
            "error_type": type(e).__name__,
        })


async def handle_mcp_payload(endpoint: str, payload: Any, ctx: McpContext) -> Any:
    """Serve a single request or a batch within an endpoint's scope.

    Returns:
        A response object, or a list of responses in request order
    """
    if not isinstance(payload, (dict, list)):
        return error_response(None, INVALID_REQUEST, "Invalid Request")

    source_ids = await resolve_endpoint_sources(endpoint, ctx.store)

    if not source_ids:
        logger.info(f"Endpoint {endpoint} has no ready sources")
        if isinstance(payload, list):
            return [
                error_response(r.get("id") if isinstance(r, dict) else None, NO_READY_SOURCES, NO_READY_SOURCES_MESSAGE)
                for r in payload
            ]
        return error_response(payload.get("id"), NO_READY_SOURCES, NO_READY_SOURCES_MESSAGE)

    if isinstance(payload, list):
        return list(await asyncio.gather(
            *(handle_mcp_request(r, source_ids, ctx) for r in payload)
        ))

    return await handle_mcp_request(payload, source_ids, ctx)


async def run_stdio_server(
    endpoint: str,
    ctx: McpContext,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> None:
    """Run MCP server over stdio with line-delimited JSON-RPC framing.

    Reads JSON-RPC requests from stdin (one per line).
    Writes JSON-RPC responses to stdout (one per line).
    Messages without an id are notifications and get no response.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    logger.info(f"ChainLens MCP server starting on stdio for endpoint {endpoint}")
    loop = asyncio.get_running_loop()

    while True:
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            # EOF - client disconnected
            break

        line = line.strip()
        if not line:
            continue

        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            response: Any = error_response(None, PARSE_ERROR, "Parse error", {"error": str(e)})
        else:
            if isinstance(payload, dict) and "id" not in payload:
                await handle_mcp_payload(endpoint, payload, ctx)
                continue
            response = await handle_mcp_payload(endpoint, payload, ctx)

        stdout.write(json.dumps(response) + "\n")
        stdout.flush()

    logger.info("MCP stdio client disconnected")
