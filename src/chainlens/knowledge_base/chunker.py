"""
Token-budgeted document chunker.

Turns extractor output into chunks that:
- Stay near a target size (512 approximate tokens, 1 token ~ 4 chars)
- Carry ~50 tokens of overlap from the previous chunk
- Keep fenced code blocks intact when they fit (up to 800 tokens)
- Split oversized code blocks on line boundaries only
- Keep the heading, URL and file path of the originating content
"""

import logging
import math
import re
from typing import Optional

from .models import Chunk, ChunkingConfig, RawContent

logger = logging.getLogger(__name__)

FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
SENTENCE_END_RE = re.compile(r"[.!?]\s")

DEFAULT_CONFIG = ChunkingConfig()


def estimate_tokens(text: str, chars_per_token: int = DEFAULT_CONFIG.chars_per_token) -> int:
    """Approximate token count: characters divided by four, rounded up."""
    return math.ceil(len(text) / chars_per_token)


def split_at_boundary(text: str, max_chars: int) -> tuple[str, str]:
    """Split text into (head, rest) at the best boundary at or before max_chars.

    Preference order:
    1. Last sentence end (". ", "! ", "? ") past 50% of max_chars
    2. Last line break past 50%
    3. Last space past 30%
    4. Hard cut at max_chars
    """
    if len(text) <= max_chars:
        return text, ""

    cut_region = text[:max_chars + 100]
    last_end = -1
    for match in SENTENCE_END_RE.finditer(cut_region):
        if match.start() <= max_chars:
            last_end = match.start() + 1

    if last_end > max_chars * 0.5:
        return text[:last_end].strip(), text[last_end:].strip()

    line_break = text.rfind("\n", 0, max_chars + 1)
    if line_break > max_chars * 0.5:
        return text[:line_break].strip(), text[line_break:].strip()

    space = text.rfind(" ", 0, max_chars + 1)
    if space > max_chars * 0.3:
        return text[:space].strip(), text[space:].strip()

    return text[:max_chars].strip(), text[max_chars:].strip()


def split_code_blocks(text: str) -> list[tuple[str, str]]:
    """Separate fenced code blocks from surrounding prose.

    Returns:
        List of ("text" | "code", content) parts in document order
    """
    parts: list[tuple[str, str]] = []
    last_index = 0

    for match in FENCED_CODE_RE.finditer(text):
        if match.start() > last_index:
            parts.append(("text", text[last_index:match.start()]))
        parts.append(("code", match.group(0)))
        last_index = match.end()

    if last_index < len(text):
        parts.append(("text", text[last_index:]))

    return parts


class _UnitChunker:
    """Chunking state for a single RawContent unit."""

    def __init__(self, raw: RawContent, config: ChunkingConfig):
        self.raw = raw
        self.config = config
        self.chunks: list[Chunk] = []
        self.buffer = ""

    def tokens(self, text: str) -> int:
        return estimate_tokens(text, self.config.chars_per_token)

    def emit(self, content: str) -> None:
        self.chunks.append(Chunk(
            content=content,
            heading=self.raw.heading or None,
            url=self.raw.url or None,
            file_path=self.raw.file_path or None,
            chunk_index=len(self.chunks),
            token_count=self.tokens(content),
        ))

    def overlap_of(self, content: str) -> str:
        return content[-self.config.overlap_chars:].lstrip()

    def flush(self) -> None:
        """Emit the buffer and keep its tail as overlap."""
        content = self.buffer.strip()
        if content:
            self.emit(content)
            self.buffer = self.overlap_of(content)

    def add_text(self, text: str) -> None:
        self.buffer += text
        while self.tokens(self.buffer) > self.config.target_tokens:
            head, rest = split_at_boundary(self.buffer, self.config.target_chars)
            if not head:
                break
            self.emit(head)
            self.buffer = self.overlap_of(head) + rest

    def add_code(self, block: str) -> None:
        config = self.config

        if self.tokens(block) <= config.code_block_max_tokens:
            if self.tokens(self.buffer + block) > config.target_tokens + config.code_flush_slack_tokens:
                self.flush()
            self.buffer += "\n" + block + "\n"
            # Emit now so later prose splitting never cuts through the block
            if self.tokens(self.buffer) > config.target_tokens:
                self.flush()
            return

        # Oversized block: split on lines, no overlap across the boundary
        self.flush()
        self.buffer = ""

        code_buf = ""
        for line in block.split("\n"):
            if self.tokens(code_buf + line) > config.target_tokens:
                if code_buf.strip():
                    self.emit(code_buf.strip())
                code_buf = line + "\n"
            else:
                code_buf += line + "\n"

        if code_buf.strip():
            self.buffer = code_buf

    def run(self) -> list[Chunk]:
        for kind, content in split_code_blocks(self.raw.content):
            if kind == "code":
                self.add_code(content)
            else:
                self.add_text(content)

        # A short trailing buffer is still a chunk
        if self.buffer.strip():
            self.emit(self.buffer.strip())

        return self.chunks


def chunk_content(
    raw_contents: list[RawContent],
    config: Optional[ChunkingConfig] = None,
) -> list[Chunk]:
    """Chunk extractor output into retrievable pieces.

    Pure and deterministic. Chunk indices are renumbered globally from zero
    so ordering follows unit order, then position within the unit.

    Args:
        raw_contents: Extractor output in document order
        config: Optional size configuration

    Returns:
        List of Chunk objects ready for storage
    """
    config = config or DEFAULT_CONFIG
    all_chunks: list[Chunk] = []

    for raw in raw_contents:
        all_chunks.extend(_UnitChunker(raw, config).run())

    for index, chunk in enumerate(all_chunks):
        chunk.chunk_index = index

    logger.debug(f"Chunked {len(raw_contents)} content units into {len(all_chunks)} chunks")
    return all_chunks
