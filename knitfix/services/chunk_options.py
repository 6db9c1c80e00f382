"""
Chunk option string parsing.

Turns the free-form text after a chunk's language tag, e.g.
`, echo=FALSE, fig.cap="A, B", fig.dim=c(5, 3)`, into an ordered list of
entries. Commas inside quotes or brackets do not split entries. Each entry
keeps the offsets of its value so a mutation can replace exactly that value
and leave the rest of the author's text untouched.
"""

from __future__ import annotations

from typing import List, Tuple

from ..models.document import ChunkOptions, OptionEntry

_OPEN_BRACKETS = "([{"
_CLOSE_BRACKETS = ")]}"


def _split_top_level(raw: str, separator: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of `raw` pieces split on top-level `separator`."""
    pieces: List[Tuple[int, int]] = []
    depth = 0
    quote = ""
    start = 0
    i = 0
    while i < len(raw):
        c = raw[i]
        if quote:
            if c == "\\":
                i += 2
                continue
            if c == quote:
                quote = ""
        elif c in ("'", '"'):
            quote = c
        elif c in _OPEN_BRACKETS:
            depth += 1
        elif c in _CLOSE_BRACKETS:
            depth = max(0, depth - 1)
        elif c == separator and depth == 0:
            pieces.append((start, i))
            start = i + 1
        i += 1
    pieces.append((start, len(raw)))
    return pieces


def _find_assignment(raw: str, start: int, end: int) -> int:
    """Offset of the top-level `=` in raw[start:end] (not `==`, `!=`, `<=`, `>=`), or -1."""
    depth = 0
    quote = ""
    i = start
    while i < end:
        c = raw[i]
        if quote:
            if c == "\\":
                i += 2
                continue
            if c == quote:
                quote = ""
        elif c in ("'", '"'):
            quote = c
        elif c in _OPEN_BRACKETS:
            depth += 1
        elif c in _CLOSE_BRACKETS:
            depth = max(0, depth - 1)
        elif c == "=" and depth == 0:
            if raw[i + 1:i + 2] == "=":
                i += 2
                continue
            if raw[i - 1:i] not in ("!", "<", ">"):
                return i
        i += 1
    return -1


def parse_options(raw: str) -> ChunkOptions:
    """
    Parse a chunk option string.

    The leading separator (`,` or whitespace) after the language tag is
    ignored; empty pieces are dropped.
    """
    entries: List[OptionEntry] = []

    for start, end in _split_top_level(raw, ","):
        piece = raw[start:end]
        if not piece.strip():
            continue

        # Trim surrounding whitespace but remember absolute offsets
        lead = len(piece) - len(piece.lstrip())
        trail = len(piece) - len(piece.rstrip())
        p_start, p_end = start + lead, end - trail

        eq = _find_assignment(raw, p_start, p_end)
        if eq == -1:
            entries.append(OptionEntry(key=raw[p_start:p_end], raw=raw[p_start:p_end]))
            continue

        key = raw[p_start:eq].strip()
        v_start = eq + 1
        while v_start < p_end and raw[v_start].isspace():
            v_start += 1
        entries.append(
            OptionEntry(
                key=key,
                value=raw[v_start:p_end],
                raw=raw[p_start:p_end],
                value_start=v_start,
                value_end=p_end,
            )
        )

    return ChunkOptions(raw=raw, entries=entries)
