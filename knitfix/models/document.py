"""
Document models for knitfix.

These Pydantic models describe a parsed literate-programming document: prose
lines, fenced code blocks with their chunk options, and the optional metadata
header. A parsed document is a read-only view of the input lines; repairs build
new output lines from the segments rather than editing the input in place.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .repair import ExecutionOutcome

# Values of the `eval` option that mean "do not execute".
FALSY_OPTION_VALUES = {"FALSE", "F"}

DISABLE_KEY = "eval"
DISABLE_VALUE = "FALSE"


class OptionEntry(BaseModel):
    """
    One comma-separated entry of a chunk option string.

    Bare tokens (the chunk label, flags) carry `value=None`. Offsets are
    relative to the raw option string so a value can be replaced in place.
    """

    key: str
    value: Optional[str] = None
    raw: str = ""
    value_start: Optional[int] = None
    value_end: Optional[int] = None

    @property
    def is_falsy(self) -> bool:
        return self.value is not None and self.value.strip().upper() in FALSY_OPTION_VALUES


class ChunkOptions(BaseModel):
    """Structured form of the text between a chunk's language tag and its closing `}`."""

    raw: str = ""
    entries: List[OptionEntry] = Field(default_factory=list)
    dirty: bool = False

    @property
    def label(self) -> Optional[str]:
        """Chunk label: the leading bare token, or an explicit `label=` entry."""
        for entry in self.entries:
            if entry.key.lower() == "label" and entry.value is not None:
                return entry.value.strip().strip("\"'")
        if self.entries and self.entries[0].value is None:
            return self.entries[0].key
        return None

    def find(self, key: str) -> Optional[OptionEntry]:
        """Return the first `key=value` entry matching `key` (case-insensitive)."""
        wanted = key.lower()
        for entry in self.entries:
            if entry.value is not None and entry.key.lower() == wanted:
                return entry
        return None

    def get(self, key: str) -> Optional[str]:
        entry = self.find(key)
        return entry.value.strip() if entry is not None else None

    def is_false(self, key: str) -> bool:
        entry = self.find(key)
        return entry is not None and entry.is_falsy

    @property
    def is_disabled(self) -> bool:
        return self.is_false(DISABLE_KEY)

    def disable(self) -> bool:
        """
        Mark the chunk as do-not-execute.

        Flips an existing `eval` value to FALSE, or appends `eval=FALSE` when
        the option is absent. Returns False when the chunk was already disabled.
        """
        entry = self.find(DISABLE_KEY)
        if entry is not None and entry.is_falsy:
            return False

        if entry is not None and entry.value_start is not None and entry.value_end is not None:
            self.raw = self.raw[: entry.value_start] + DISABLE_VALUE + self.raw[entry.value_end :]
            delta = len(DISABLE_VALUE) - (entry.value_end - entry.value_start)
            entry.value = DISABLE_VALUE
            entry.value_end = entry.value_start + len(DISABLE_VALUE)
            for other in self.entries:
                if other is not entry and other.value_start is not None and other.value_start > entry.value_start:
                    other.value_start += delta
                    other.value_end = (other.value_end or other.value_start) + delta
        else:
            appended = f"{DISABLE_KEY}={DISABLE_VALUE}"
            base = self.raw.rstrip()
            value_start = len(base) + len(", ") + len(DISABLE_KEY) + 1
            self.raw = f"{base}, {appended}"
            self.entries.append(
                OptionEntry(
                    key=DISABLE_KEY,
                    value=DISABLE_VALUE,
                    raw=appended,
                    value_start=value_start,
                    value_end=value_start + len(DISABLE_VALUE),
                )
            )

        self.dirty = True
        return True


class ProseLine(BaseModel):
    """A verbatim line outside any target-language code block."""

    text: str


class CodeBlock(BaseModel):
    """A fenced code block in the target language."""

    index: int = 0  # 1-based, document order
    prefix: str  # indentation + fence + `{` + language tag, verbatim
    indent: str = ""
    fence: str = "```"
    language: str = "python"
    options: ChunkOptions = Field(default_factory=ChunkOptions)
    suffix: str = ""  # text after the closing `}` of the header
    open_line: str
    body: List[str] = Field(default_factory=list)
    close_line: str = "```"
    start_line: Optional[int] = None  # 1-based line of the open fence; None when synthesized
    preflagged: bool = False

    outcome: Optional[ExecutionOutcome] = None
    annotation: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any(line.strip() for line in self.body)

    @property
    def source(self) -> str:
        return "\n".join(self.body)

    def header_line(self) -> str:
        """The open fence line; verbatim unless the options were mutated."""
        if not self.options.dirty:
            return self.open_line
        return f"{self.prefix}{self.options.raw}}}{self.suffix}"

    def render_lines(self) -> List[str]:
        lines = [self.header_line()]
        if self.annotation:
            lines.append(self.annotation)
        lines.extend(self.body)
        lines.append(self.close_line)
        return lines


Segment = Union[CodeBlock, ProseLine]


class MetadataHeader(BaseModel):
    """Leading metadata block bounded by two `---` marker lines (0-based indices)."""

    start: int
    end: int
    fields: Dict[str, Any] = Field(default_factory=dict)


class ParsedDocument(BaseModel):
    """A document split into prose lines and target-language code blocks."""

    lines: List[str] = Field(default_factory=list)
    header: Optional[MetadataHeader] = None
    segments: List[Segment] = Field(default_factory=list)

    def code_blocks(self) -> List[CodeBlock]:
        return [segment for segment in self.segments if isinstance(segment, CodeBlock)]

    def header_segment_count(self) -> int:
        """Number of leading segments that belong to the metadata header."""
        if self.header is None:
            return 0
        return self.header.end + 1

    def render_lines(self) -> List[str]:
        output: List[str] = []
        for segment in self.segments:
            if isinstance(segment, CodeBlock):
                output.extend(segment.render_lines())
            else:
                output.append(segment.text)
        return output
