"""
PDF text extraction and heading segmentation.

Text is pulled with pdfplumber; segmentation works line by line on the
extracted text and is independent of the PDF library.
"""

import io
import logging
import re

from ..models import RawContent

logger = logging.getLogger(__name__)

PAGE_NUMBER_RE = re.compile(r"^\d{1,4}$")
NUMBERED_HEADING_RE = re.compile(r"^\d+\.\s+[A-Z]")

DEFAULT_HEADING = "Document"


def is_page_number(line: str) -> bool:
    return bool(PAGE_NUMBER_RE.match(line))


def is_caps_heading(line: str) -> bool:
    """Short, fully upper-case, no sentence punctuation, not numbered."""
    return (
        line == line.upper()
        and 3 < len(line) < 100
        and "." not in line
        and not line[0].isdigit()
        and any(ch.isalpha() for ch in line)
    )


def is_numbered_heading(line: str) -> bool:
    """Section numbering like "2. Architecture"."""
    return bool(NUMBERED_HEADING_RE.match(line))


def is_heading(line: str) -> bool:
    return is_caps_heading(line) or is_numbered_heading(line)


def segment_pdf_text(text: str, url: str) -> list[RawContent]:
    """Split extracted PDF text into heading-keyed units.

    Args:
        text: Plain text of the whole document
        url: Document URL recorded on every unit

    Returns:
        RawContent units in document order
    """
    results: list[RawContent] = []
    current_heading = DEFAULT_HEADING
    current_lines: list[str] = []

    def flush() -> None:
        content = "\n".join(current_lines).strip()
        if content:
            results.append(RawContent(content=content, heading=current_heading, url=url))

    for line in text.split("\n"):
        stripped = line.strip()

        if not stripped:
            current_lines.append("")
            continue
        if is_page_number(stripped):
            continue

        if is_heading(stripped):
            flush()
            current_heading = stripped
            current_lines = []
        else:
            current_lines.append(stripped)

    flush()
    return results


def extract_pdf_text(data: bytes) -> str:
    """Extract plain text from PDF bytes using pdfplumber."""
    import pdfplumber

    pages = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            pages.append(page.extract_text() or "")

    text = "\n".join(pages).replace("\x00", "")
    logger.debug(f"Extracted {len(text)} chars from {len(pages)} PDF pages")
    return text
