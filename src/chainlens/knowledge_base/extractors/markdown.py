"""
Markdown section extraction.

Splits a Markdown file on #-#### headings. Each section is headed by its
breadcrumb ("Guide > Install"); text before the first heading is headed by
the file path. Lines inside fenced code blocks are never treated as headings.
"""

import re

from ..models import RawContent

HEADING_RE = re.compile(r"^(#{1,4})\s+(.+)")
FENCE_RE = re.compile(r"^\s*(```|~~~)")


def extract_markdown_sections(content: str, file_path: str) -> list[RawContent]:
    """Extract heading-keyed sections from Markdown text.

    Args:
        content: Markdown source
        file_path: Repository path of the file

    Returns:
        RawContent units in file order
    """
    results: list[RawContent] = []
    breadcrumbs: list[tuple[int, str]] = []
    current_heading = file_path
    current_lines: list[str] = []
    in_fence = False

    def flush() -> None:
        text = "\n".join(current_lines).strip()
        if text:
            results.append(RawContent(content=text, heading=current_heading, file_path=file_path))

    for line in content.split("\n"):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            current_lines.append(line)
            continue

        heading_match = None if in_fence else HEADING_RE.match(line)
        if heading_match:
            flush()
            current_lines = []

            level = len(heading_match.group(1))
            text = heading_match.group(2).strip().rstrip("#").strip()
            while breadcrumbs and breadcrumbs[-1][0] >= level:
                breadcrumbs.pop()
            breadcrumbs.append((level, text))
            current_heading = " > ".join(h for _, h in breadcrumbs)
            continue

        current_lines.append(line)

    flush()
    return results
