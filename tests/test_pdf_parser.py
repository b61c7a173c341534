"""Tests for PDF document acquisition."""
import asyncio
import time
from unittest.mock import patch

import httpx
import pytest

from chainlens.errors import AcquisitionError
from chainlens.indexer.pdf_parser import DocumentParser


def _client(status: int, body: bytes = b"%PDF-1.4") -> httpx.AsyncClient:
    def handler(request):
        return httpx.Response(status, content=body)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_parse_segments_downloaded_pdf(crawler_config):
    client = _client(200)
    parser = DocumentParser(crawler_config, client=client)

    with patch("chainlens.indexer.pdf_parser.extract_pdf_text", return_value="OVERVIEW\nA bridge.") as extract:
        units = await parser.parse("https://example.com/paper.pdf")

    extract.assert_called_once_with(b"%PDF-1.4")
    assert [(u.heading, u.content, u.url) for u in units] == [
        ("OVERVIEW", "A bridge.", "https://example.com/paper.pdf"),
    ]
    await client.aclose()


@pytest.mark.asyncio
async def test_http_error_is_acquisition_error(crawler_config):
    client = _client(404)
    parser = DocumentParser(crawler_config, client=client)

    with pytest.raises(AcquisitionError, match="Failed to fetch PDF: 404"):
        await parser.parse("https://example.com/missing.pdf")
    await client.aclose()


@pytest.mark.asyncio
async def test_extraction_failure_is_acquisition_error(crawler_config):
    client = _client(200, b"not a pdf")
    parser = DocumentParser(crawler_config, client=client)

    with patch("chainlens.indexer.pdf_parser.extract_pdf_text", side_effect=ValueError("bad xref")):
        with pytest.raises(AcquisitionError, match="Failed to parse PDF from https://example.com/bad.pdf: bad xref"):
            await parser.parse("https://example.com/bad.pdf")
    await client.aclose()


@pytest.mark.asyncio
async def test_extraction_does_not_block_event_loop(crawler_config):
    client = _client(200)
    parser = DocumentParser(crawler_config, client=client)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.01)
            ticks += 1

    def slow_extract(data):
        time.sleep(0.3)
        return "OVERVIEW\nA bridge."

    task = asyncio.create_task(ticker())
    with patch("chainlens.indexer.pdf_parser.extract_pdf_text", side_effect=slow_extract):
        await parser.parse("https://example.com/paper.pdf")
    task.cancel()
    await client.aclose()

    assert ticks > 5
