"""
PDF document acquisition.

Downloads a PDF, extracts its text with pdfplumber, and segments it into
heading-keyed units.
"""

import asyncio
import logging
from typing import Optional

import httpx

from ..config import CrawlerConfig
from ..errors import AcquisitionError
from ..knowledge_base.extractors.pdf import extract_pdf_text, segment_pdf_text
from ..knowledge_base.models import RawContent

logger = logging.getLogger(__name__)


class DocumentParser:
    """Fetches and segments a single PDF document."""

    def __init__(self, config: Optional[CrawlerConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or CrawlerConfig()
        self._client = client

    async def parse(self, url: str) -> list[RawContent]:
        """Download and segment a PDF.

        Raises:
            AcquisitionError: On download, extraction or decoding failure
        """
        try:
            data = await self._download(url)
            text = await asyncio.to_thread(extract_pdf_text, data)
        except Exception as e:
            raise AcquisitionError(f"Failed to parse PDF from {url}: {e}") from e

        units = segment_pdf_text(text, url)
        logger.info(f"Parsed PDF {url}: {len(units)} sections")
        return units

    async def _download(self, url: str) -> bytes:
        headers = {"User-Agent": self.config.user_agent}

        if self._client is not None:
            response = await self._client.get(url, headers=headers, timeout=self.config.pdf_timeout)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url, headers=headers, timeout=self.config.pdf_timeout)

        if not response.is_success:
            raise AcquisitionError(f"Failed to fetch PDF: {response.status_code}")
        return response.content
