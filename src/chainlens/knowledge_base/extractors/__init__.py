"""Structural extractors turning raw documents into heading-keyed spans."""
from .html import (
    extract_html_content,
    extract_links,
    should_include_url,
    detect_js_rendered,
)
from .markdown import extract_markdown_sections
from .solidity import extract_solidity_units, is_pragma_08_or_above
from .pdf import segment_pdf_text, extract_pdf_text

__all__ = [
    "extract_html_content",
    "extract_links",
    "should_include_url",
    "detect_js_rendered",
    "extract_markdown_sections",
    "extract_solidity_units",
    "is_pragma_08_or_above",
    "segment_pdf_text",
    "extract_pdf_text",
]
