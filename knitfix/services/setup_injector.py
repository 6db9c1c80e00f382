"""
Setup-block injection.

Makes sure the document has an initialization chunk carrying output-governance
statements (printed-output limits), so that one huge print does not swamp the
rendered document.

The canonical setup block is the first target-language block whose options
mark it as initialization code: label `setup`, `echo=FALSE` or
`include=FALSE`. A sentinel comment records that the statements were injected,
which makes the operation idempotent. When no candidate exists a new setup
block is created right after the metadata header.

Both operations return a new ParsedDocument with blocks re-indexed in document
order; the input document is left untouched.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..models.document import CodeBlock, ParsedDocument, ProseLine, Segment
from .chunk_options import parse_options

logger = logging.getLogger(__name__)

SETUP_SENTINEL = "# Added automatically by knitfix"
SETUP_LABEL = "setup"
SETUP_OPTIONS = f" {SETUP_LABEL}, include=FALSE"

HEADING_COMMENT = "<!-- Folder name added by knitfix for identification -->"


def generate_setup_code(
    max_rows: int = 50,
    max_columns: int = 20,
    width: int = 80,
    threshold: int = 1000,
) -> List[str]:
    """Governance statements limiting how much a printed object can produce."""
    return [
        "# Limit printed output so large objects do not flood the document",
        "try:",
        "    import pandas as _pd",
        f"    _pd.set_option(\"display.max_rows\", {max_rows})",
        f"    _pd.set_option(\"display.max_columns\", {max_columns})",
        f"    _pd.set_option(\"display.width\", {width})",
        "    del _pd",
        "except ImportError:",
        "    pass",
        "try:",
        "    import numpy as _np",
        f"    _np.set_printoptions(threshold={threshold}, linewidth={width})",
        "    del _np",
        "except ImportError:",
        "    pass",
    ]


def is_setup_candidate(block: CodeBlock) -> bool:
    options = block.options
    if (options.label or "").lower() == SETUP_LABEL:
        return True
    if any(entry.value is None and entry.key.strip().lower() == SETUP_LABEL for entry in options.entries):
        return True
    return options.is_false("echo") or options.is_false("include")


def find_setup_block(document: ParsedDocument) -> Optional[CodeBlock]:
    """First setup candidate in document order, or None."""
    for block in document.code_blocks():
        if is_setup_candidate(block):
            return block
    return None


def has_sentinel(block: Optional[CodeBlock]) -> bool:
    return block is not None and any(line.strip() == SETUP_SENTINEL for line in block.body)


def _copy_segments(segments: List[Segment]) -> List[Segment]:
    return [seg.model_copy(deep=True) if isinstance(seg, CodeBlock) else seg for seg in segments]


def _reindexed(document: ParsedDocument, segments: List[Segment]) -> ParsedDocument:
    index = 0
    for segment in segments:
        if isinstance(segment, CodeBlock):
            index += 1
            segment.index = index
    return ParsedDocument(lines=document.lines, header=document.header, segments=segments)


def new_setup_block(language: str, governance_statements: List[str]) -> CodeBlock:
    prefix = f"```{{{language}"
    return CodeBlock(
        prefix=prefix,
        language=language,
        options=parse_options(SETUP_OPTIONS),
        open_line=f"{prefix}{SETUP_OPTIONS}}}",
        body=[SETUP_SENTINEL, *governance_statements],
        close_line="```",
    )


def ensure_setup(
    document: ParsedDocument,
    governance_statements: List[str],
    language: str = "python",
) -> ParsedDocument:
    """
    Ensure exactly one setup block carries the governance statements.

    Appends them (behind the sentinel) to the canonical setup block unless the
    sentinel is already there; otherwise synthesizes a new setup block after
    the metadata header.
    """
    segments = _copy_segments(document.segments)
    canonical = next(
        (seg for seg in segments if isinstance(seg, CodeBlock) and is_setup_candidate(seg)),
        None,
    )

    if canonical is not None:
        if has_sentinel(canonical):
            logger.debug(f"Setup block {canonical.index} already carries governance statements")
        else:
            canonical.body.extend(["", SETUP_SENTINEL, *governance_statements])
            logger.info(f"🛠️ Added output limits to existing setup block {canonical.index}")
        return _reindexed(document, segments)

    position = document.header_segment_count()
    block = new_setup_block(language, governance_statements)
    if position > 0:
        inserted: List[Segment] = [ProseLine(text=""), block, ProseLine(text="")]
    else:
        inserted = [block, ProseLine(text="")]
    segments[position:position] = inserted
    logger.info("🛠️ Created setup block with output limits")
    return _reindexed(document, segments)


def insert_heading(document: ParsedDocument, heading: str) -> ParsedDocument:
    """Insert `# <heading>` and an explanatory comment right after the metadata header."""
    segments = _copy_segments(document.segments)
    position = document.header_segment_count()
    lines = ["", f"# {heading}", "", HEADING_COMMENT]
    if position == 0:
        lines = lines[1:] + [""]
    segments[position:position] = [ProseLine(text=line) for line in lines]
    return _reindexed(document, segments)
