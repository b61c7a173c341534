"""
Web documentation crawler.

Fetches a documentation site breadth-limited by link depth and returns
heading-keyed content spans. Client-rendered sites are detected once from
the root page and rendered with a headless Chromium (Playwright); static
sites are fetched with httpx.
"""

import asyncio
import logging
from typing import Optional

import httpx

from ..config import CrawlerConfig
from ..knowledge_base.extractors.html import (
    detect_js_rendered,
    extract_html_content,
    extract_links,
    normalize_url,
    should_include_url,
)
from ..knowledge_base.models import RawContent

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml"


class WebCrawler:
    """Depth-limited same-site crawler."""

    def __init__(self, config: Optional[CrawlerConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or CrawlerConfig()
        self._client = client

    def _headers(self) -> dict:
        return {"User-Agent": self.config.user_agent, "Accept": HTML_ACCEPT}

    async def crawl(
        self,
        url: str,
        depth: int = 1,
        include_patterns: Optional[list[str]] = None,
        exclude_patterns: Optional[list[str]] = None,
    ) -> list[RawContent]:
        """Crawl a site starting at url.

        Args:
            url: Root page
            depth: Link levels to follow below the root (0 = root only)
            include_patterns: Path substrings a followed link must contain
            exclude_patterns: Path substrings that reject a link

        Returns:
            RawContent units from every page, in visit order
        """
        if self._client is not None:
            return await self._crawl(self._client, url, depth, include_patterns, exclude_patterns)

        async with httpx.AsyncClient(headers=self._headers(), follow_redirects=True) as client:
            return await self._crawl(client, url, depth, include_patterns, exclude_patterns)

    async def _crawl(
        self,
        client: httpx.AsyncClient,
        url: str,
        depth: int,
        include_patterns: Optional[list[str]],
        exclude_patterns: Optional[list[str]],
    ) -> list[RawContent]:
        use_browser = await self.probe_js_rendered(client, url)
        logger.info(f"Crawling {url} (depth={depth}, js_rendered={use_browser})")

        delay = self.config.browser_page_delay if use_browser else self.config.page_delay
        visited: set[str] = set()
        results: list[RawContent] = []

        # LIFO worklist; children pushed reversed so pages are visited in
        # the same order as a recursive descent
        worklist: list[tuple[str, int]] = [(url, 0)]
        pages = 0

        while worklist:
            page_url, current_depth = worklist.pop()
            normalized = normalize_url(page_url)
            if normalized in visited:
                continue
            visited.add(normalized)

            if pages:
                await asyncio.sleep(delay)
            pages += 1

            html = await self.fetch_page(client, page_url, use_browser)
            if html is None:
                continue

            try:
                results.extend(extract_html_content(html, page_url))
            except Exception as e:
                logger.warning(f"Failed to extract {page_url}: {e}")
                continue

            if current_depth < depth:
                links = [
                    link for link in extract_links(html, page_url)
                    if should_include_url(link, url, include_patterns, exclude_patterns)
                ]
                links = links[:self.config.max_links_per_page]
                for link in reversed(links):
                    worklist.append((link, current_depth + 1))

        logger.info(f"Crawled {len(visited)} pages from {url}, {len(results)} content units")
        return results

    async def probe_js_rendered(self, client: httpx.AsyncClient, url: str) -> bool:
        """Fetch the root page and guess whether it is client-rendered.

        An unreachable or non-2xx root counts as client-rendered.
        """
        try:
            response = await client.get(url, headers=self._headers(), timeout=self.config.probe_timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Render probe failed for {url}: {e}")
            return True

        if not response.is_success:
            return True
        return detect_js_rendered(response.text)

    async def fetch_page(self, client: httpx.AsyncClient, url: str, use_browser: bool) -> Optional[str]:
        """Return page HTML, or None when the page should be skipped."""
        if use_browser and self.config.browser_enabled:
            html = await self.render_page(url)
            if html:
                return html

        try:
            response = await client.get(url, headers=self._headers(), timeout=self.config.page_timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            return None

        if not response.is_success:
            logger.debug(f"Skipping {url}: HTTP {response.status_code}")
            return None
        if "text/html" not in response.headers.get("content-type", ""):
            logger.debug(f"Skipping {url}: not HTML")
            return None
        return response.text

    async def render_page(self, url: str) -> Optional[str]:
        """Render a page in headless Chromium; None on any failure."""
        try:
            from playwright.async_api import async_playwright

            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )
                try:
                    page = await browser.new_page(user_agent=self.config.user_agent)
                    page.set_default_timeout(self.config.page_timeout * 1000)
                    await page.goto(url, wait_until="domcontentloaded")
                    try:
                        await page.wait_for_load_state("networkidle", timeout=self.config.probe_timeout * 1000)
                    except Exception:
                        logger.debug(f"Network never went idle for {url}")
                    await page.wait_for_timeout(2000)
                    return await page.content()
                finally:
                    await browser.close()
        except Exception as e:
            logger.warning(f"Browser render failed for {url}, falling back to plain fetch: {e}")
            return None
