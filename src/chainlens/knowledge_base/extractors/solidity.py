"""
Solidity source extraction.

Produces one unit per function, modifier, event and error declaration, each
prefixed by its NatSpec documentation and headed "Contract > member".

Parsing works on a masked copy of the source in which comments and string
literals are blanked out (same length, newlines kept). Keyword matching and
brace balancing run on the mask; text is sliced from the original, so offsets
always line up.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..models import RawContent

logger = logging.getLogger(__name__)

PRAGMA_RE = re.compile(r"pragma\s+solidity\s+([^;]+);")
PRAGMA_VERSION_RE = re.compile(r"(\d+)\.(\d+)")
SPDX_RE = re.compile(r"//\s*SPDX-License-Identifier:[^\n]*")
CONTRACT_RE = re.compile(r"\b(abstract\s+contract|contract|interface|library)\s+([A-Za-z_$][\w$]*)")
DECLARATION_RE = re.compile(r"\b(function|modifier|event|error)\s+([A-Za-z_$][\w$]*)")
NATSPEC_TAG_RE = re.compile(r"^@([\w:-]+)\s*(.*)$")

NATSPEC_TAGS = ("title", "author", "notice", "dev", "param", "return", "inheritdoc")
FALLBACK_CHARS = 2000


def is_pragma_08_or_above(source: str) -> bool:
    """Accept sources targeting Solidity 0.8 or later.

    Missing pragma is accepted. Any constraint mentioning 0.8 is accepted,
    otherwise the first major.minor decides.
    """
    match = PRAGMA_RE.search(source)
    if not match:
        return True

    constraint = match.group(1)
    if "0.8" in constraint:
        return True

    version = PRAGMA_VERSION_RE.search(constraint)
    if not version:
        return True

    major, minor = int(version.group(1)), int(version.group(2))
    if major == 0 and minor < 8:
        return False
    return True


def mask_comments_and_strings(source: str) -> str:
    """Blank out comments and string literals, keeping length and newlines."""
    out = list(source)
    i = 0
    n = len(source)

    def blank(start: int, end: int) -> None:
        for j in range(start, min(end, n)):
            if out[j] != "\n":
                out[j] = " "

    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
        elif ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank(i, end)
            i = end
        elif ch in ('"', "'"):
            j = i + 1
            while j < n and source[j] != ch and source[j] != "\n":
                j += 2 if source[j] == "\\" else 1
            end = min(j + 1, n)
            blank(i, end)
            i = end
        else:
            i += 1

    return "".join(out)


def find_matching_brace(masked: str, open_index: int) -> int:
    """Index just past the brace closing the one at open_index (or len)."""
    depth = 0
    for i in range(open_index, len(masked)):
        if masked[i] == "{":
            depth += 1
        elif masked[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return len(masked)


def declaration_end(masked: str, start: int, keyword: str) -> int:
    """End offset of a declaration beginning at start.

    Events and errors end at ";". Functions and modifiers end at ";" when
    bodiless, otherwise at the brace closing their body.
    """
    if keyword in ("event", "error"):
        end = masked.find(";", start)
        return len(masked) if end == -1 else end + 1

    paren_depth = 0
    for i in range(start, len(masked)):
        ch = masked[i]
        if ch == "(":
            paren_depth += 1
        elif ch == ")":
            paren_depth -= 1
        elif paren_depth == 0 and ch == ";":
            return i + 1
        elif paren_depth == 0 and ch == "{":
            return find_matching_brace(masked, i)
    return len(masked)


def preceding_natspec(source: str, start: int) -> Optional[str]:
    """Return the NatSpec comment immediately before offset start, if any."""
    head = source[:start].rstrip()

    if head.endswith("*/"):
        open_index = head.rfind("/*")
        if open_index != -1 and head.startswith("/**", open_index):
            return head[open_index:]
        return None

    lines = head.split("\n")
    doc_lines: list[str] = []
    for line in reversed(lines):
        stripped = line.strip()
        if stripped.startswith("///"):
            doc_lines.append(stripped)
        else:
            break
    if doc_lines:
        return "\n".join(reversed(doc_lines))
    return None


def parse_natspec(comment: str) -> list[tuple[str, str]]:
    """Parse a NatSpec comment into (tag, text) pairs.

    Untagged leading text is treated as @notice. Continuation lines are
    appended to the previous tag.
    """
    body = comment.strip()
    if body.startswith("/**"):
        body = body[3:]
    if body.endswith("*/"):
        body = body[:-2]

    tags: list[list[str]] = []
    for raw_line in body.split("\n"):
        line = raw_line.strip()
        if line.startswith("///"):
            line = line[3:]
        elif line.startswith("*"):
            line = line[1:]
        line = line.strip()
        if not line:
            continue

        tag_match = NATSPEC_TAG_RE.match(line)
        if tag_match:
            tags.append([tag_match.group(1), tag_match.group(2).strip()])
        elif tags:
            tags[-1][1] = f"{tags[-1][1]} {line}".strip()
        else:
            tags.append(["notice", line])

    return [(tag, text) for tag, text in tags]


def render_natspec(pairs: list[tuple[str, str]]) -> str:
    lines = []
    for tag, text in pairs:
        if tag in NATSPEC_TAGS or tag.startswith("custom:"):
            lines.append(f"@{tag} {text}".rstrip())
    return "\n".join(lines)


@dataclass
class _ContractSpan:
    name: str
    start: int
    end: int


def find_contracts(masked: str) -> list[_ContractSpan]:
    """Locate contract/interface/library bodies."""
    spans = []
    for match in CONTRACT_RE.finditer(masked):
        open_index = masked.find("{", match.end())
        if open_index == -1:
            continue
        spans.append(_ContractSpan(match.group(2), match.start(), find_matching_brace(masked, open_index)))
    return spans


def _enclosing_contract(spans: list[_ContractSpan], offset: int, default: str) -> str:
    for span in reversed(spans):
        if span.start <= offset < span.end:
            return span.name
    return default


def _file_stem(file_path: str) -> str:
    name = file_path.rsplit("/", 1)[-1]
    return name[:-4] if name.endswith(".sol") else name


def solidity_header(source: str, masked: str, contract_name: str) -> str:
    """Labelled SPDX, pragma and contract lines for the fallback unit."""
    parts = []
    spdx = SPDX_RE.search(source)
    if spdx:
        parts.append(f"// SPDX: {spdx.group(0).split(':', 1)[1].strip()}")
    pragma = PRAGMA_RE.search(masked)
    if pragma:
        parts.append(f"// pragma: {pragma.group(1).strip()}")
    if contract_name:
        parts.append(f"// Contract: {contract_name}")
    return "\n".join(parts)


def extract_solidity_units(source: str, file_path: str) -> list[RawContent]:
    """Extract documented declarations from a Solidity file.

    Args:
        source: Solidity source text
        file_path: Repository path of the file

    Returns:
        One RawContent per declaration, or a single header-plus-prefix unit
        when no declaration is recognized; empty for pre-0.8 sources
    """
    if not is_pragma_08_or_above(source):
        logger.debug(f"Skipping {file_path}: pragma below 0.8")
        return []

    masked = mask_comments_and_strings(source)
    contracts = find_contracts(masked)
    default_contract = _file_stem(file_path)

    results: list[RawContent] = []
    consumed_until = 0

    for match in DECLARATION_RE.finditer(masked):
        start = match.start()
        if start < consumed_until:
            continue

        keyword, name = match.group(1), match.group(2)
        end = declaration_end(masked, match.end(), keyword)
        consumed_until = end

        declaration = source[start:end].strip()
        natspec = preceding_natspec(source, start)
        doc = render_natspec(parse_natspec(natspec)) if natspec else ""
        content = f"{doc}\n{declaration}" if doc else declaration

        contract = _enclosing_contract(contracts, start, default_contract)
        results.append(RawContent(content=content, heading=f"{contract} > {name}", file_path=file_path))

    if not results:
        contract_name = contracts[0].name if contracts else default_contract
        header = solidity_header(source, masked, contract_name)
        results.append(RawContent(
            content=f"{header}\n\n{source[:FALLBACK_CHARS]}",
            heading=contract_name,
            file_path=file_path,
        ))

    return results
