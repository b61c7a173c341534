"""Source maintenance routes: re-index trigger and URL validation."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from ...errors import IndexingConflictError, SourceNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()

VALIDATOR_USER_AGENT = "ChainLens/0.8 URL Validator"
VALIDATE_TIMEOUT = 8.0


@router.post("/sources/{source_id}/reindex")
async def reindex_source(source_id: str, request: Request) -> dict[str, Any]:
    """Queue a re-index of one source."""
    scheduler = request.app.state.services.scheduler

    try:
        await scheduler.request_index(source_id)
    except SourceNotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")
    except IndexingConflictError:
        raise HTTPException(status_code=409, detail="Source is already being indexed")

    return {"success": True, "message": "Reindex job queued"}


@router.post("/validate-url")
async def validate_url(request: Request) -> Any:
    """Check that a URL answers, with HEAD first and a one-byte GET as fallback."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"reachable": False}, status_code=400)

    url = body.get("url") if isinstance(body, dict) else None
    if not url or not isinstance(url, str):
        return JSONResponse({"reachable": False}, status_code=400)

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return {"reachable": False}

    transport = getattr(request.app.state, "http_transport", None)
    headers = {"User-Agent": VALIDATOR_USER_AGENT}

    async with httpx.AsyncClient(transport=transport, timeout=VALIDATE_TIMEOUT, follow_redirects=True) as client:
        try:
            response = await client.head(url, headers=headers)
            return {
                "reachable": response.is_success or response.status_code in (301, 302, 405),
                "status": response.status_code,
            }
        except httpx.HTTPError as e:
            logger.debug(f"HEAD {url} failed, retrying with ranged GET: {e}")

        try:
            response = await client.get(url, headers={**headers, "Range": "bytes=0-0"})
            return {
                "reachable": response.is_success or response.status_code == 206,
                "status": response.status_code,
            }
        except httpx.HTTPError as e:
            logger.debug(f"GET {url} failed: {e}")
            return {"reachable": False}
