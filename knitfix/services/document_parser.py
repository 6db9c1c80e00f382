"""
Document parser / segmenter.

Single forward pass over the document lines:

- The metadata header is located first: the first non-blank line must be a
  `---` marker and the next `---` marker closes it. Its extent is fixed before
  any code block scanning begins.
- The remaining lines are classified by a small automaton with three states:
  PROSE, IN_CODE_BLOCK (a chunk in the target language) and IN_OTHER_FENCE
  (any other fenced region, whose lines are carried through as prose and never
  interpreted as chunk openings).

A fence closes only on a bare fence line (same character, at least as long as
the opener), so longer fences can contain shorter fence lines verbatim.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import List, Optional

import yaml

from ..models.document import CodeBlock, MetadataHeader, ParsedDocument, ProseLine, Segment
from .chunk_options import parse_options

logger = logging.getLogger(__name__)

HEADER_MARKER_RE = re.compile(r"^---\s*$")
BOM = "\ufeff"
ANY_FENCE_RE = re.compile(r"^\s*(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
CLOSE_FENCE_RE = re.compile(r"^\s*(?P<fence>`{3,}|~{3,})\s*$")


class DocumentStructureError(ValueError):
    """Raised when a document cannot be segmented (unterminated block, unclosed header)."""


class _State(str, Enum):
    PROSE = "prose"
    IN_CODE_BLOCK = "in_code_block"
    IN_OTHER_FENCE = "in_other_fence"


def open_fence_pattern(language: str) -> re.Pattern:
    """Regex for a chunk opening line in `language`, e.g. ```{python setup, echo=FALSE}."""
    return re.compile(
        r"^(?P<prefix>(?P<indent>\s*)(?P<fence>`{3,})\s*\{\s*(?P<lang>" + re.escape(language) + r"))"
        r"(?=[\s,}])(?P<options>.*)\}(?P<suffix>\s*)$",
        re.IGNORECASE,
    )


def _closes(line: str, fence: str) -> bool:
    m = CLOSE_FENCE_RE.match(line)
    if not m:
        return False
    closing = m.group("fence")
    return closing[0] == fence[0] and len(closing) >= len(fence)


class DocumentParser:
    """Split a document into prose lines and target-language code blocks."""

    def __init__(self, language: str = "python"):
        self.language = language
        self._open_re = open_fence_pattern(language)

    def is_open_line(self, line: str) -> bool:
        return self._open_re.match(line) is not None

    def find_header(self, lines: List[str]) -> Optional[MetadataHeader]:
        """
        Locate the metadata header.

        Returns None when the document does not start with a `---` marker.

        Raises:
            DocumentStructureError: the opening marker is never closed before
                the first code block or the end of the document.
        """
        start = None
        for idx, line in enumerate(lines):
            if idx == 0:
                line = line.lstrip(BOM)
            if not line.strip():
                continue
            if HEADER_MARKER_RE.match(line):
                start = idx
            break
        if start is None:
            return None

        for idx in range(start + 1, len(lines)):
            line = lines[idx]
            if HEADER_MARKER_RE.match(line):
                return MetadataHeader(start=start, end=idx, fields=self._parse_fields(lines[start + 1:idx]))
            if self.is_open_line(line):
                break

        raise DocumentStructureError(f"Metadata header opened at line {start + 1} is never closed")

    def _parse_fields(self, header_lines: List[str]) -> dict:
        try:
            fields = yaml.safe_load("\n".join(header_lines))
        except yaml.YAMLError as e:
            logger.warning(f"Metadata header is not valid YAML: {e}")
            return {}
        return fields if isinstance(fields, dict) else {}

    def parse(self, lines: List[str]) -> ParsedDocument:
        """
        Segment document lines.

        Raises:
            DocumentStructureError: unclosed header or unterminated code block.
        """
        header = self.find_header(lines)
        segments: List[Segment] = []

        body_start = 0
        if header is not None:
            segments.extend(ProseLine(text=line) for line in lines[: header.end + 1])
            body_start = header.end + 1

        state = _State.PROSE
        current: Optional[CodeBlock] = None
        other_fence = ""
        block_count = 0

        for idx in range(body_start, len(lines)):
            line = lines[idx]

            if state == _State.IN_CODE_BLOCK:
                if _closes(line, current.fence):
                    current.close_line = line
                    segments.append(current)
                    current = None
                    state = _State.PROSE
                else:
                    current.body.append(line)
                continue

            if state == _State.IN_OTHER_FENCE:
                segments.append(ProseLine(text=line))
                if _closes(line, other_fence):
                    state = _State.PROSE
                continue

            m = self._open_re.match(line)
            if m:
                block_count += 1
                options = parse_options(m.group("options"))
                current = CodeBlock(
                    index=block_count,
                    prefix=m.group("prefix"),
                    indent=m.group("indent"),
                    fence=m.group("fence"),
                    language=m.group("lang"),
                    options=options,
                    suffix=m.group("suffix"),
                    open_line=line,
                    start_line=idx + 1,
                    preflagged=options.is_disabled,
                )
                state = _State.IN_CODE_BLOCK
                continue

            segments.append(ProseLine(text=line))
            fence_match = ANY_FENCE_RE.match(line)
            if fence_match:
                other_fence = fence_match.group("fence")
                state = _State.IN_OTHER_FENCE

        if current is not None:
            raise DocumentStructureError(
                f"Code block {current.index} opened at line {current.start_line} is never closed"
            )
        if state == _State.IN_OTHER_FENCE:
            logger.warning("Document ends inside a non-executable fenced region")

        return ParsedDocument(lines=list(lines), header=header, segments=segments)

    def parse_text(self, text: str) -> ParsedDocument:
        return self.parse(split_lines(text))


def split_lines(text: str) -> List[str]:
    """Split text into lines without line terminators (a trailing newline adds no empty line)."""
    return text.splitlines()


def join_lines(lines: List[str]) -> str:
    """Inverse of split_lines for output: every line newline-terminated."""
    return "".join(f"{line}\n" for line in lines)
