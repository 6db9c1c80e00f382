"""
Path rewriter: point data-loading calls at resolved file locations.

Operates on a whole code block body (a call may span several lines):

1. The text is scanned into code, string-literal and comment spans.
2. A masked copy of the text blanks out literals and comments, so call names
   and parentheses are only ever found in code.
3. For every recognized loader call, the argument span is found by counting
   parentheses in the masked text. Unbalanced calls are left alone.
4. Inside the span, plain string literals that look like relative file paths
   are replaced with the mapped absolute location of their bare filename.

Substitution policy: the literal is flattened to the mapped location, whatever
directory components the author wrote. Literals whose filename is not in the
mapping are never touched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

LOADER_CALLS = frozenset({
    # delimited text
    "read_csv",
    "read_table",
    "read_fwf",
    "loadtxt",
    "genfromtxt",
    # spreadsheets
    "read_excel",
    "ExcelFile",
    # structured text
    "read_json",
    "read_xml",
    "read_html",
    # columnar / binary
    "read_parquet",
    "read_feather",
    "read_orc",
    "read_hdf",
    # serialized objects and statistical packages
    "read_pickle",
    "read_stata",
    "read_spss",
    "read_sas",
    "load",
    "read_file",
    "open",
})

PATH_BUILDERS = frozenset({
    "os.path.join",
    "path.join",
    "Path",
    "pathlib.Path",
    "PurePath",
    "pathlib.PurePath",
    "here",
})

_CALL_RE = re.compile(r"(?<![\w.])((?:[A-Za-z_]\w*\s*\.\s*)*([A-Za-z_]\w*))\s*\(")
_CALLEE_BEFORE_RE = re.compile(r"((?:[A-Za-z_]\w*\s*\.\s*)*[A-Za-z_]\w*)\s*$")
_DEF_BEFORE_RE = re.compile(r"\bdef\s+$")
_FILE_LIKE_RE = re.compile(r"\.[A-Za-z0-9]+$")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_DRIVE_RE = re.compile(r"^[A-Za-z]:")

_PREFIX_CHARS = "rRbBuUfF"


@dataclass(frozen=True)
class _Span:
    kind: str  # "code" | "string" | "comment"
    start: int
    end: int
    prefix: str = ""
    quote: str = ""
    triple: bool = False
    terminated: bool = True

    @property
    def content_start(self) -> int:
        return self.start + len(self.prefix) + (3 if self.triple else 1)

    @property
    def content_end(self) -> int:
        if not self.terminated:
            return self.end
        return self.end - (3 if self.triple else 1)


@dataclass
class RewriteResult:
    """Rewritten text plus the (before, after) literal pairs that changed."""

    text: str
    replacements: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.replacements)


def scan(text: str) -> List[_Span]:
    """Split source text into code, string-literal and comment spans."""
    spans: List[_Span] = []
    n = len(text)
    i = 0
    code_start = 0

    def flush(upto: int) -> None:
        if upto > code_start:
            spans.append(_Span("code", code_start, upto))

    while i < n:
        ch = text[i]

        if ch == "#":
            flush(i)
            end = text.find("\n", i)
            if end == -1:
                end = n
            spans.append(_Span("comment", i, end))
            i = end
            code_start = i
            continue

        if ch in ("'", '"'):
            start = i
            while (
                start > code_start
                and i - start < 2
                and text[start - 1] in _PREFIX_CHARS
            ):
                start -= 1
            if start > 0 and start < i and (text[start - 1].isalnum() or text[start - 1] == "_"):
                start = i
            prefix = text[start:i]
            flush(start)

            triple = text.startswith(ch * 3, i)
            j = i + (3 if triple else 1)
            end = None
            while j < n:
                c = text[j]
                if c == "\\":
                    j += 2
                    continue
                if triple:
                    if text.startswith(ch * 3, j):
                        end = j + 3
                        break
                else:
                    if c == ch:
                        end = j + 1
                        break
                    if c == "\n":
                        break
                j += 1

            terminated = end is not None
            if end is None:
                end = min(j, n)
            spans.append(_Span("string", start, end, prefix, ch, triple, terminated))
            i = end
            code_start = i
            continue

        i += 1

    flush(n)
    return spans


def mask(text: str, spans: List[_Span]) -> str:
    """Blank out literals and comments (newlines kept) so only code remains visible."""
    chars = list(text)
    for span in spans:
        if span.kind == "code":
            continue
        for k in range(span.start, span.end):
            if chars[k] != "\n":
                chars[k] = " "
    return "".join(chars)


def find_closing_paren(masked: str, open_index: int) -> Optional[int]:
    """Index of the parenthesis matching `masked[open_index]`, or None if unbalanced."""
    depth = 0
    for k in range(open_index, len(masked)):
        c = masked[k]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return k
    return None


def enclosing_callee(masked: str, position: int, lower_bound: int) -> Optional[str]:
    """Name of the innermost call whose argument list contains `position`."""
    depth = 0
    for k in range(position - 1, lower_bound - 1, -1):
        c = masked[k]
        if c == ")":
            depth += 1
        elif c == "(":
            if depth == 0:
                m = _CALLEE_BEFORE_RE.search(masked[:k])
                if not m:
                    return None
                return re.sub(r"\s+", "", m.group(1))
            depth -= 1
    return None


def is_rewritable_path(value: str) -> bool:
    """True for relative file paths; False for absolute, home, parent, UNC and URI forms."""
    if not value or not _FILE_LIKE_RE.search(value):
        return False
    if value.startswith(("/", "~/", "~\\", "../", "..\\", "\\\\")):
        return False
    if _DRIVE_RE.match(value) or _SCHEME_RE.match(value):
        return False
    return True


def bare_filename(value: str) -> str:
    """Last path component, splitting on both separator styles."""
    parts = [part for part in re.split(r"[/\\]", value) if part]
    return parts[-1] if parts else value


def _format_literal(span: _Span, location: str) -> str:
    if span.quote in location or "\\" in location:
        return repr(location)
    return f"{span.prefix}{span.quote}{location}{span.quote}"


def rewrite_with_report(text: str, mapping: Dict[str, str]) -> RewriteResult:
    """
    Rewrite quoted file paths inside recognized loader calls.

    Args:
        text: Full body of one code block
        mapping: Bare filename -> absolute location

    Returns:
        RewriteResult with the new text and the replaced literal pairs
    """
    if not mapping or not text:
        return RewriteResult(text=text)

    spans = scan(text)
    masked = mask(text, spans)
    literals = [
        span for span in spans
        if span.kind == "string"
        and span.terminated
        and not span.triple
        and not set(span.prefix.lower()) & {"f", "b"}
    ]
    if not literals:
        return RewriteResult(text=text)

    edits: Dict[int, Tuple[int, str, str]] = {}

    for match in _CALL_RE.finditer(masked):
        if match.group(2) not in LOADER_CALLS:
            continue
        if _DEF_BEFORE_RE.search(masked[: match.start()]):
            continue

        open_index = match.end() - 1
        close_index = find_closing_paren(masked, open_index)
        if close_index is None:
            logger.debug(f"Unbalanced call to {match.group(1)} at offset {match.start()}; left unchanged")
            continue

        for span in literals:
            if span.start <= open_index or span.end > close_index or span.start in edits:
                continue

            callee = enclosing_callee(masked, span.start, open_index)
            if callee in PATH_BUILDERS:
                continue

            value = text[span.content_start:span.content_end]
            if not is_rewritable_path(value):
                continue

            location = mapping.get(bare_filename(value))
            if location is None or location == value:
                continue

            original = text[span.start:span.end]
            edits[span.start] = (span.end, original, _format_literal(span, location))

    if not edits:
        return RewriteResult(text=text)

    result = text
    replacements: List[Tuple[str, str]] = []
    for start in sorted(edits, reverse=True):
        end, original, new_literal = edits[start]
        result = result[:start] + new_literal + result[end:]
        replacements.append((original, new_literal))
    replacements.reverse()

    return RewriteResult(text=result, replacements=replacements)


def rewrite(text: str, mapping: Dict[str, str]) -> str:
    """Rewrite quoted file paths inside loader calls; see `rewrite_with_report`."""
    return rewrite_with_report(text, mapping).text
