"""
Repair models for knitfix.

Execution outcomes, repair options and the summaries returned to callers of the
repair pipeline and the batch layer.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Outcome of submitting one code block."""
    SUCCESS = "success"  # Executed without raising
    ERROR = "error"      # Raised; block gets disabled
    SKIPPED = "skipped"  # Author already marked it do-not-execute
    EMPTY = "empty"      # Nothing to execute


class ExecutionOutcome(BaseModel):
    """Result of running one code block against an execution context."""

    status: ExecutionStatus = ExecutionStatus.SUCCESS
    stdout: str = ""
    stderr: str = ""
    execution_time: float = 0.0

    error_type: Optional[str] = None
    error_message: Optional[str] = None
    short_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != ExecutionStatus.ERROR


class RepairOptions(BaseModel):
    """Knobs for a single document repair."""

    language: str = "python"
    fix_paths: bool = True
    data_folder: str = "auto"
    limit_output: bool = True
    add_heading: bool = False
    backup: bool = True
    chdir: bool = True

    output_suffix: str = "_FIXED"
    backup_suffix: str = ".bak"
    max_message_length: int = 80

    # Governance statements injected into the setup block
    max_rows: int = 50
    max_columns: int = 20
    display_width: int = 80
    print_threshold: int = 1000


class BlockReport(BaseModel):
    """Per-block line of a repair summary."""

    index: int
    start_line: Optional[int] = None
    status: ExecutionStatus
    path_rewrites: int = 0
    message: Optional[str] = None


class RepairSummary(BaseModel):
    """Counts and paths describing one finished document repair."""

    input_path: str
    output_path: str
    backup_path: Optional[str] = None
    finished_at: datetime = Field(default_factory=datetime.now)

    total_blocks: int = 0
    executed_blocks: int = 0
    disabled_blocks: int = 0
    preflagged_blocks: int = 0
    empty_blocks: int = 0

    mapped_files: int = 0
    path_rewrites: int = 0
    setup_injected: bool = False
    heading_added: bool = False

    blocks: List[BlockReport] = Field(default_factory=list)


class RenderResult(BaseModel):
    """Outcome of handing a repaired document to the renderer."""

    document_path: str
    success: bool = False
    output_path: Optional[str] = None
    error: Optional[str] = None
