"""Tests for the Voyage embedding client with mocked HTTP responses."""
import json

import httpx
import pytest

from chainlens.embeddings.voyage import EmbeddingClient, to_pgvector
from chainlens.errors import EmbeddingError, RateLimitedError

DIM = 128


def _vector(value: float) -> list[float]:
    return [value] * DIM


def _ok(texts: list[str]) -> httpx.Response:
    # Deliberately out of order; the client must sort by index
    data = [{"index": i, "embedding": _vector(float(i))} for i in range(len(texts))]
    return httpx.Response(200, json={"data": list(reversed(data))})


def _status(code: int, text: str):
    return lambda texts: httpx.Response(code, text=text)


def _client(responses, bodies: list[dict]) -> httpx.AsyncClient:
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        factory = queue.pop(0) if queue else _ok
        return factory(body["input"])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_embed_one_sends_query_request(embeddings_config):
    bodies: list[dict] = []
    client = _client([], bodies)
    embedder = EmbeddingClient(embeddings_config, client=client)

    vector = await embedder.embed_one("how do swaps work")

    assert vector == _vector(0.0)
    assert bodies == [{
        "input": ["how do swaps work"],
        "model": "voyage-code-3",
        "input_type": "query",
        "output_dimension": DIM,
        "output_dtype": "float",
    }]
    await client.aclose()


@pytest.mark.asyncio
async def test_embed_batch_groups_and_preserves_order(embeddings_config):
    bodies: list[dict] = []
    client = _client([], bodies)
    embedder = EmbeddingClient(embeddings_config, client=client)

    vectors = await embedder.embed_batch(["a", "b", "c", "d", "e"])

    assert [b["input"] for b in bodies] == [["a", "b"], ["c", "d"], ["e"]]
    assert all(b["input_type"] == "document" for b in bodies)
    assert [v[0] for v in vectors] == [0.0, 1.0, 0.0, 1.0, 0.0]
    await client.aclose()


@pytest.mark.asyncio
async def test_embed_batch_empty(embeddings_config):
    embedder = EmbeddingClient(embeddings_config)
    assert await embedder.embed_batch([]) == []


@pytest.mark.asyncio
async def test_rate_limited_batch_is_retried(embeddings_config):
    bodies: list[dict] = []
    client = _client([_status(429, "slow down"), _ok], bodies)
    embedder = EmbeddingClient(embeddings_config, client=client)

    vectors = await embedder.embed_batch(["a", "b"])

    assert len(bodies) == 2
    assert bodies[0]["input"] == bodies[1]["input"] == ["a", "b"]
    assert len(vectors) == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_rate_limit_exhausts_attempts(embeddings_config):
    bodies: list[dict] = []
    client = _client([_status(429, "slow down")] * 10, bodies)
    embedder = EmbeddingClient(embeddings_config, client=client)

    with pytest.raises(RateLimitedError):
        await embedder.embed_one("q")

    assert len(bodies) == embeddings_config.max_retries
    await client.aclose()


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(embeddings_config):
    bodies: list[dict] = []
    client = _client([_status(401, "bad key")], bodies)
    embedder = EmbeddingClient(embeddings_config, client=client)

    with pytest.raises(EmbeddingError, match=r"Voyage embed error \(401\): bad key"):
        await embedder.embed_one("q")

    assert len(bodies) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_count_mismatch_is_an_error(embeddings_config):
    short = lambda texts: httpx.Response(200, json={"data": [{"index": 0, "embedding": _vector(1.0)}]})
    client = _client([short], [])
    embedder = EmbeddingClient(embeddings_config, client=client)

    with pytest.raises(EmbeddingError, match="Expected 2 embeddings, got 1"):
        await embedder.embed_batch(["a", "b"])
    await client.aclose()


@pytest.mark.asyncio
async def test_dimension_mismatch_is_an_error(embeddings_config):
    wrong = lambda texts: httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2]}]})
    client = _client([wrong], [])
    embedder = EmbeddingClient(embeddings_config, client=client)

    with pytest.raises(EmbeddingError, match="Expected dimension 128, got 2"):
        await embedder.embed_one("q")
    await client.aclose()


def test_configured_follows_api_key(embeddings_config):
    assert EmbeddingClient(embeddings_config).configured
    assert not EmbeddingClient().configured


def test_to_pgvector():
    assert to_pgvector([1, 0.5]) == "[1.0,0.5]"
