"""Tests for PDF text segmentation."""
from unittest.mock import MagicMock, patch

from chainlens.knowledge_base.extractors.pdf import (
    extract_pdf_text,
    is_caps_heading,
    is_heading,
    is_numbered_heading,
    segment_pdf_text,
)

TEXT = """Intro line
1
ABSTRACT
This paper describes the protocol.

2. Architecture
The system has three parts.
12
More text."""


def test_segments_by_heading():
    units = segment_pdf_text(TEXT, "https://example.com/whitepaper.pdf")

    assert [(u.heading, u.content) for u in units] == [
        ("Document", "Intro line"),
        ("ABSTRACT", "This paper describes the protocol."),
        ("2. Architecture", "The system has three parts.\nMore text."),
    ]
    assert all(u.url == "https://example.com/whitepaper.pdf" for u in units)


def test_heading_rules():
    assert is_caps_heading("RISK FACTORS")
    assert not is_caps_heading("NOTE.")
    assert not is_caps_heading("ABC")
    assert not is_caps_heading("2024 ROADMAP")
    assert not is_caps_heading("123")
    assert is_numbered_heading("3. Governance")
    assert not is_numbered_heading("3. lower case")
    assert not is_heading("A normal sentence.")


def test_extract_pdf_text_joins_pages():
    pages = [MagicMock(), MagicMock()]
    pages[0].extract_text.return_value = "Page one\x00"
    pages[1].extract_text.return_value = None

    pdf = MagicMock()
    pdf.pages = pages
    pdf.__enter__.return_value = pdf

    with patch("pdfplumber.open", return_value=pdf):
        text = extract_pdf_text(b"%PDF-1.4")

    assert text == "Page one\n"
