"""
GitHub repository crawler.

Lists a repository tree through the GitHub REST API, selects documentation
and Solidity files per the source's IndexOptions, and extracts Markdown
sections and Solidity declarations.
"""

import asyncio
import base64
import logging
import re
from typing import Optional

import httpx

from ..config import CrawlerConfig
from ..errors import AcquisitionError
from ..knowledge_base.extractors.markdown import extract_markdown_sections
from ..knowledge_base.extractors.solidity import extract_solidity_units
from ..knowledge_base.models import IndexOptions, RawContent

logger = logging.getLogger(__name__)

GITHUB_URL_RE = re.compile(r"github\.com/([^/]+)/([^/?#]+)")


def parse_github_url(url: str) -> tuple[str, str]:
    """Return (owner, repo) from a GitHub URL.

    Raises:
        AcquisitionError: If the URL does not name a repository
    """
    match = GITHUB_URL_RE.search(url)
    if not match:
        raise AcquisitionError(f"Invalid GitHub URL: {url}")

    repo = match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    return match.group(1), repo


def _is_markdown(path: str, options: IndexOptions) -> bool:
    return path.endswith(".md") or (options.index_mdx and path.endswith(".mdx"))


def should_index_file(path: str, options: Optional[IndexOptions] = None) -> bool:
    """Decide whether a repository file is worth indexing."""
    options = options or IndexOptions()
    lower = path.lower()

    if lower == "readme.md" and options.index_readme:
        return True
    if lower.startswith("docs/") and options.index_docs and _is_markdown(lower, options):
        return True
    if lower.endswith(".sol") and options.index_sol:
        return True
    if options.index_md and _is_markdown(lower, options):
        return True
    if options.index_tests and ("/test/" in lower or "/tests/" in lower):
        return True
    return False


class RepositoryCrawler:
    """Fetches and extracts documentation from a GitHub repository."""

    def __init__(self, config: Optional[CrawlerConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or CrawlerConfig()
        self._client = client

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.github_token:
            headers["Authorization"] = f"Bearer {self.config.github_token}"
        return headers

    async def crawl(
        self,
        repo_url: str,
        branch: str = "main",
        index_options: Optional[IndexOptions] = None,
    ) -> list[RawContent]:
        """Crawl one branch of a repository.

        Raises:
            AcquisitionError: If the URL is invalid or the tree cannot be listed
        """
        owner, repo = parse_github_url(repo_url)
        options = index_options or IndexOptions()

        if self._client is not None:
            return await self._crawl(self._client, owner, repo, branch, options)

        async with httpx.AsyncClient(
            base_url=self.config.github_api_url,
            headers=self._headers(),
            timeout=self.config.page_timeout,
        ) as client:
            return await self._crawl(client, owner, repo, branch, options)

    async def _crawl(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        branch: str,
        options: IndexOptions,
    ) -> list[RawContent]:
        try:
            response = await client.get(
                f"/repos/{owner}/{repo}/git/trees/{branch}",
                params={"recursive": "1"},
                headers=self._headers(),
            )
            response.raise_for_status()
            tree = response.json().get("tree", [])
        except (httpx.HTTPError, ValueError) as e:
            raise AcquisitionError(f"Failed to crawl GitHub repo {owner}/{repo}: {e}") from e

        files = [
            item["path"] for item in tree
            if item.get("type") == "blob" and should_index_file(item.get("path", ""), options)
        ]
        if len(files) > self.config.max_repo_files:
            logger.info(f"{owner}/{repo}: {len(files)} candidate files, keeping first {self.config.max_repo_files}")
            files = files[:self.config.max_repo_files]

        logger.info(f"Indexing {len(files)} files from {owner}/{repo}@{branch}")

        results: list[RawContent] = []
        for path in files:
            try:
                content = await self.fetch_file(client, owner, repo, branch, path)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Skipping {owner}/{repo}/{path}: {e}")
                continue

            if content is not None:
                results.extend(self.extract_file(path, content))

            await asyncio.sleep(self.config.repo_file_delay)

        return results

    async def fetch_file(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        branch: str,
        path: str,
    ) -> Optional[str]:
        """Fetch and decode one file through the contents API."""
        response = await client.get(
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": branch},
            headers=self._headers(),
        )
        response.raise_for_status()
        data = response.json()

        encoded = data.get("content") if isinstance(data, dict) else None
        if not encoded:
            return None
        return base64.b64decode(encoded).decode("utf-8", errors="replace")

    @staticmethod
    def extract_file(path: str, content: str) -> list[RawContent]:
        if path.endswith(".sol"):
            return extract_solidity_units(content, path)
        if path.endswith((".md", ".mdx")):
            return extract_markdown_sections(content, path)
        return []
