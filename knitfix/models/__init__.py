"""Data models for knitfix."""

from .document import ChunkOptions, CodeBlock, MetadataHeader, OptionEntry, ParsedDocument, ProseLine
from .repair import BlockReport, ExecutionOutcome, ExecutionStatus, RenderResult, RepairOptions, RepairSummary

__all__ = [
    "ChunkOptions",
    "CodeBlock",
    "MetadataHeader",
    "OptionEntry",
    "ParsedDocument",
    "ProseLine",
    "BlockReport",
    "ExecutionOutcome",
    "ExecutionStatus",
    "RenderResult",
    "RepairOptions",
    "RepairSummary",
]
