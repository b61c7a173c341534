"""Tests for the HTTP surface: MCP route, re-index trigger, URL validation, health."""
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from chainlens.knowledge_base.models import SourceStatus
from chainlens.services import Services
from chainlens.web.app import create_app


def _url_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "ok.example.com":
            return httpx.Response(200)
        if host == "moved.example.com" and request.method == "HEAD":
            return httpx.Response(405)
        if host == "nohead.example.com":
            if request.method == "HEAD":
                raise httpx.ConnectError("connection reset", request=request)
            assert request.headers["Range"] == "bytes=0-0"
            return httpx.Response(206)
        if host == "down.example.com":
            return httpx.Response(503)
        raise httpx.ConnectError("no route", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def services(settings, store, embedder):
    services = Services.build(settings, store, embedder)
    services.orchestrator.index_source = AsyncMock()
    return services


@pytest.fixture
def client(services):
    app = create_app(services=services, http_transport=_url_transport())
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def ready_source(store):
    return store.add_source(id="uni", name="Uniswap", status=SourceStatus.READY)


def test_health(client, store):
    assert client.get("/api/health").json() == {"db": True, "embeddings": True}

    store.healthy = False
    assert client.get("/api/health").json()["db"] is False


def test_mcp_post(client, ready_source):
    response = client.post(f"/api/mcp/{ready_source.endpoint}", json={"jsonrpc": "2.0", "id": 1, "method": "initialize"})

    assert response.status_code == 200
    assert response.json()["result"]["serverInfo"]["name"] == "chainlens"


def test_mcp_post_batch(client, ready_source):
    batch = [
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
        {"jsonrpc": "2.0", "id": 2, "method": "nope"},
    ]
    response = client.post(f"/api/mcp/{ready_source.endpoint}", json=batch)

    body = response.json()
    assert [r["id"] for r in body] == [1, 2]
    assert body[1]["error"]["code"] == -32601


def test_mcp_parse_error(client, ready_source):
    response = client.post(f"/api/mcp/{ready_source.endpoint}", content=b"{not json")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_mcp_unexpected_failure(client, ready_source):
    with patch("chainlens.web.routes.mcp.handle_mcp_payload", AsyncMock(side_effect=RuntimeError("boom"))):
        response = client.post(f"/api/mcp/{ready_source.endpoint}", json={"jsonrpc": "2.0", "id": 1, "method": "initialize"})

    assert response.status_code == 500
    assert response.json()["error"] == {"code": -32603, "message": "Internal server error"}


def test_mcp_no_ready_sources(client, store):
    pending = store.add_source(status=SourceStatus.PENDING)

    response = client.post(f"/api/mcp/{pending.endpoint}", json={"jsonrpc": "2.0", "id": 7, "method": "tools/list"})

    assert response.json()["error"]["code"] == -32000
    assert response.json()["id"] == 7


def test_mcp_info(client, ready_source):
    assert client.get(f"/api/mcp/{ready_source.endpoint}").json() == {
        "endpoint": ready_source.endpoint,
        "sourcesReady": 1,
        "status": "active",
        "protocol": "MCP",
        "transport": "HTTP POST",
    }
    assert client.get("/api/mcp/sec-nothing").json()["status"] == "no_ready_sources"


def test_reindex(client, services, ready_source, store):
    response = client.post(f"/api/sources/{ready_source.id}/reindex")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Reindex job queued"}
    assert store.sources[ready_source.id].status == SourceStatus.PENDING


def test_reindex_missing_source(client):
    response = client.post("/api/sources/missing/reindex")

    assert response.status_code == 404
    assert response.json()["detail"] == "Source not found"


def test_reindex_conflict(client, store):
    busy = store.add_source(status=SourceStatus.INDEXING)

    response = client.post(f"/api/sources/{busy.id}/reindex")

    assert response.status_code == 409
    assert response.json()["detail"] == "Source is already being indexed"


@pytest.mark.parametrize("url,reachable", [
    ("https://ok.example.com/docs", True),
    ("https://moved.example.com/", True),
    ("https://nohead.example.com/file.pdf", True),
    ("https://down.example.com/", False),
    ("https://unknown.example.com/", False),
    ("ftp://files.example.com/x", False),
])
def test_validate_url(client, url, reachable):
    response = client.post("/api/validate-url", json={"url": url})

    assert response.status_code == 200
    assert response.json()["reachable"] is reachable


def test_validate_url_requires_url(client):
    response = client.post("/api/validate-url", json={})

    assert response.status_code == 400
    assert response.json() == {"reachable": False}
