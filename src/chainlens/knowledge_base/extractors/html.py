"""
HTML content extraction using BeautifulSoup.

Turns a documentation page into heading-keyed content spans:
- Strips navigation, footers, sidebars, tables of contents and scripts
- Picks the main content region from a prioritized selector list
- Segments by h1-h4 with a breadcrumb heading ("Guide > Install > Linux")
- Renders <pre>/<code> blocks as fenced code

Also provides link discovery and the client-rendering heuristic used by the
web crawler.
"""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from ..models import RawContent

logger = logging.getLogger(__name__)

CONTENT_SELECTORS = [
    "main",
    "article",
    ".content",
    ".docs-content",
    ".prose",
    ".markdown-body",
    '[role="main"]',
    "#content",
    ".documentation",
    "#main-content",
    ".page-content",
    ".doc-content",
    ".rst-content",
    ".md-content",
    "[data-content]",
]

REMOVE_SELECTORS = [
    "nav",
    "footer",
    "header",
    ".sidebar",
    ".toc",
    ".table-of-contents",
    ".breadcrumb",
    ".pagination",
    ".cookie-banner",
    ".edit-on-github",
    ".social-share",
    "script",
    "style",
    "noscript",
    "iframe",
    ".nav-links",
    ".edit-page-link",
    ".github-edit-link",
    ".page-edit",
]

HEADING_TAGS = ["h1", "h2", "h3", "h4"]
APP_ROOT_SELECTOR = '[id="app"], [id="root"], [id="__next"], [id="__nuxt"]'

# Content shorter than this in the probe counts as "thin"
JS_CONTENT_THRESHOLD = 200
JS_SCRIPT_THRESHOLD = 5


def _text_of(element: Tag) -> str:
    """Readable text of an element, one line per block."""
    text = element.get_text("\n")
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def _strip_non_content(soup: BeautifulSoup) -> None:
    for selector in REMOVE_SELECTORS:
        for element in soup.select(selector):
            if not getattr(element, "decomposed", False):
                element.decompose()


def _find_content_region(soup: BeautifulSoup) -> Tag:
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None and len(element.get_text().strip()) > 50:
            return element
    return soup.body or soup


def extract_html_content(html: str, page_url: str) -> list[RawContent]:
    """Extract heading-keyed content spans from an HTML page.

    Args:
        html: Page markup
        page_url: URL the page was fetched from

    Returns:
        RawContent units in page order
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    _strip_non_content(soup)
    content = _find_content_region(soup)

    results: list[RawContent] = []
    headings = content.find_all(HEADING_TAGS)

    if not headings:
        text = _text_of(content)
        if text and len(text) > 20:
            results.append(RawContent(content=text, heading=title or None, url=page_url))
        return results

    breadcrumbs: list[tuple[int, str]] = []

    for heading in headings:
        level = int(heading.name[1])
        heading_text = heading.get_text(" ", strip=True)

        while breadcrumbs and breadcrumbs[-1][0] >= level:
            breadcrumbs.pop()
        breadcrumbs.append((level, heading_text))

        parts: list[str] = []
        sibling = heading.find_next_sibling()
        while sibling is not None and sibling.name not in HEADING_TAGS:
            if sibling.name in ("pre", "code"):
                parts.append("```\n" + sibling.get_text() + "\n```")
            else:
                text = _text_of(sibling)
                if text:
                    parts.append(text)
            sibling = sibling.find_next_sibling()

        section_text = "\n".join(parts).strip()
        if section_text:
            results.append(RawContent(
                content=section_text,
                heading=" > ".join(h for _, h in breadcrumbs),
                url=page_url,
            ))

    return results


def normalize_url(url: str) -> str:
    """Drop fragment and query string."""
    return url.split("#")[0].split("?")[0]


def extract_links(html: str, base_url: str) -> list[str]:
    """Collect absolute, normalized http(s) links in document order."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    seen: set[str] = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "javascript:", "mailto:")):
            continue

        clean = normalize_url(urljoin(base_url, href))
        if urlparse(clean).scheme not in ("http", "https"):
            continue
        if clean not in seen:
            seen.add(clean)
            links.append(clean)

    return links


def should_include_url(
    url: str,
    base_url: str,
    include_patterns: Optional[list[str]] = None,
    exclude_patterns: Optional[list[str]] = None,
) -> bool:
    """Same-hostname check plus path substring include/exclude filters."""
    parsed = urlparse(url)
    base = urlparse(base_url)

    if not parsed.hostname or parsed.hostname != base.hostname:
        return False
    if exclude_patterns and any(p in parsed.path for p in exclude_patterns):
        return False
    if include_patterns and not any(p in parsed.path for p in include_patterns):
        return False
    return True


def detect_js_rendered(html: str) -> bool:
    """Guess whether a page needs a browser to render its content.

    Thin content combined with an SPA root container, a noscript warning, or
    many external scripts. False negatives are accepted: such pages are simply
    indexed from their static HTML.
    """
    soup = BeautifulSoup(html, "html.parser")

    content_len = 0
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            content_len = len(element.get_text().strip())
            break
    if content_len == 0 and soup.body is not None:
        content_len = len(soup.body.get_text().strip())

    has_app_root = bool(soup.select(APP_ROOT_SELECTOR))
    noscript_text = " ".join(n.get_text() for n in soup.find_all("noscript"))
    has_noscript = "javascript" in noscript_text.lower()
    script_count = len(soup.select("script[src]"))

    return content_len < JS_CONTENT_THRESHOLD and (
        has_app_root or has_noscript or script_count > JS_SCRIPT_THRESHOLD
    )
