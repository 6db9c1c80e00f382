"""
Document repair orchestrator.

Composes the pipeline for one document:

    INIT -> PATH_RESOLVED -> SEGMENTED -> SETUP_INJECTED -> EXECUTED -> REASSEMBLED -> WRITTEN

Blocks are keyed by the index assigned after setup injection, never by input
line positions, so inserting the setup block or a heading cannot shift what
the execution stage works on.

Structural problems (missing file, wrong document type, unterminated block,
unclosed header) abort the repair before anything is written. Failing code
blocks are expected: they are disabled one by one and never abort the document.
"""

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..config import config
from ..models.document import ParsedDocument
from ..models.repair import BlockReport, ExecutionStatus, RepairOptions, RepairSummary
from .document_parser import BOM, DocumentParser, join_lines, split_lines
from .execution_service import ExecutionContext, ExecutionService
from .path_resolver import build_mapping, candidate_dirs_for
from .path_rewriter import rewrite_with_report
from .setup_injector import ensure_setup, find_setup_block, generate_setup_code, has_sentinel, insert_heading

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".rmd", ".qmd")

PathLike = Union[str, Path]


class RepairError(Exception):
    """Raised when a document cannot be repaired; nothing is written."""


class DocumentNotFoundError(RepairError):
    """The input document does not exist."""


class DocumentTypeError(RepairError):
    """The input is not an R Markdown / Quarto document."""


class RepairCancelledError(RepairError):
    """The repair was cancelled between two block submissions."""


class RepairStage(str, Enum):
    """Stages of a single document repair, in order."""
    INIT = "init"
    PATH_RESOLVED = "path_resolved"
    SEGMENTED = "segmented"
    SETUP_INJECTED = "setup_injected"
    EXECUTED = "executed"
    REASSEMBLED = "reassembled"
    WRITTEN = "written"


class RepairService:
    """Repair one document at a time; each repair owns its own execution context."""

    def __init__(
        self,
        options: Optional[RepairOptions] = None,
        execution_service: Optional[ExecutionService] = None,
    ):
        self.options = options or config.repair_options()
        self.parser = DocumentParser(language=self.options.language)
        self.execution_service = execution_service or ExecutionService(
            max_message_length=self.options.max_message_length
        )
        self.stage = RepairStage.INIT

    def _enter(self, stage: RepairStage) -> None:
        self.stage = stage
        logger.debug(f"Repair stage: {stage.value}")

    def output_path_for(self, input_path: PathLike) -> Path:
        path = Path(input_path)
        return path.with_name(f"{path.stem}{self.options.output_suffix}{path.suffix}")

    def backup_path_for(self, input_path: PathLike) -> Path:
        path = Path(input_path)
        return path.with_name(f"{path.name}{self.options.backup_suffix}")

    def validate_input(self, input_path: PathLike) -> Path:
        path = Path(input_path)
        if not path.is_file():
            raise DocumentNotFoundError(f"Input file does not exist: {path}")
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise DocumentTypeError(f"Input file must be an R Markdown or Quarto document (.Rmd/.qmd): {path}")
        return path

    def repair_document(
        self,
        input_path: PathLike,
        output_path: Optional[PathLike] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> RepairSummary:
        """
        Repair a document and write `<stem>_FIXED<ext>` (or `output_path`).

        Args:
            input_path: The .Rmd / .qmd document to repair
            output_path: Where to write the repaired document
            should_cancel: Polled before every block submission

        Returns:
            RepairSummary with per-block outcomes and counts

        Raises:
            RepairError: missing file, wrong type, or cancelled
            DocumentStructureError: unterminated block or unclosed header
        """
        self._enter(RepairStage.INIT)
        path = self.validate_input(input_path)
        target = Path(output_path) if output_path is not None else self.output_path_for(path)

        summary = RepairSummary(input_path=str(path), output_path=str(target))

        if self.options.backup:
            backup = self.backup_path_for(path)
            shutil.copyfile(path, backup)
            summary.backup_path = str(backup)
            logger.info(f"💾 Backup created: {backup}")

        text = path.read_text(encoding="utf-8")
        # A byte order mark belongs to the file, not to the first line
        bom = BOM if text.startswith(BOM) else ""
        lines = split_lines(text[len(bom):])
        output_lines = self.repair_lines(lines, path, summary, should_cancel=should_cancel)

        target.write_text(bom + join_lines(output_lines), encoding="utf-8")
        self._enter(RepairStage.WRITTEN)

        logger.info(f"✅ Finished {path.name} -> {target}")
        logger.info(f"   {summary.disabled_blocks} chunk(s) disabled with eval=FALSE")
        if summary.path_rewrites:
            logger.info(f"   {summary.path_rewrites} file path(s) replaced with absolute paths")
        if summary.setup_injected:
            logger.info("   Setup code injected for output management")
        return summary

    def repair_lines(
        self,
        lines: List[str],
        document_path: PathLike,
        summary: RepairSummary,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> List[str]:
        """Run every stage except file I/O; fills `summary` and returns the output lines."""
        document_path = Path(document_path)

        mapping = {}
        if self.options.fix_paths:
            mapping = build_mapping(candidate_dirs_for(document_path, self.options.data_folder))
            if mapping:
                logger.info(f"📁 Found {len(mapping)} data file(s) to map: {', '.join(sorted(mapping))}")
        summary.mapped_files = len(mapping)
        self._enter(RepairStage.PATH_RESOLVED)

        document = self.parser.parse(lines)
        self._enter(RepairStage.SEGMENTED)

        document = self.inject(document, document_path, summary)
        self._enter(RepairStage.SETUP_INJECTED)

        self.execute(document, document_path, mapping, summary, should_cancel)
        self._enter(RepairStage.EXECUTED)

        output_lines = document.render_lines()
        self._enter(RepairStage.REASSEMBLED)
        return output_lines

    def inject(self, document: ParsedDocument, document_path: Path, summary: RepairSummary) -> ParsedDocument:
        if self.options.limit_output:
            already_present = has_sentinel(find_setup_block(document))
            statements = generate_setup_code(
                max_rows=self.options.max_rows,
                max_columns=self.options.max_columns,
                width=self.options.display_width,
                threshold=self.options.print_threshold,
            )
            document = ensure_setup(document, statements, language=self.options.language)
            summary.setup_injected = not already_present

        if self.options.add_heading:
            folder_name = document_path.resolve().parent.name
            if folder_name and folder_name != ".":
                document = insert_heading(document, folder_name)
                summary.heading_added = True

        return document

    def execute(
        self,
        document: ParsedDocument,
        document_path: Path,
        mapping: dict,
        summary: RepairSummary,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> None:
        working_dir = document_path.resolve().parent if self.options.chdir else None
        blocks = document.code_blocks()
        summary.total_blocks = len(blocks)

        with ExecutionContext(working_dir=working_dir, name=document_path.name) as context:
            for block in blocks:
                rewrites = 0
                if mapping:
                    result = rewrite_with_report(block.source, mapping)
                    if result.count:
                        block.body = result.text.split("\n")
                        rewrites = result.count
                        summary.path_rewrites += rewrites

                if should_cancel is not None and should_cancel():
                    raise RepairCancelledError(f"Repair of {document_path.name} cancelled before chunk {block.index}")

                outcome = self.execution_service.run(block, context)
                self._log_block(block.index, block.start_line, outcome.status, outcome.short_message)

                if outcome.status == ExecutionStatus.SUCCESS:
                    summary.executed_blocks += 1
                elif outcome.status == ExecutionStatus.ERROR:
                    summary.executed_blocks += 1
                    summary.disabled_blocks += 1
                elif outcome.status == ExecutionStatus.SKIPPED:
                    summary.preflagged_blocks += 1
                else:
                    summary.empty_blocks += 1

                summary.blocks.append(
                    BlockReport(
                        index=block.index,
                        start_line=block.start_line,
                        status=outcome.status,
                        path_rewrites=rewrites,
                        message=outcome.short_message,
                    )
                )

    def _log_block(self, index: int, start_line: Optional[int], status: ExecutionStatus, message: Optional[str]) -> None:
        where = f"line ~{start_line}" if start_line else "setup"
        if status == ExecutionStatus.ERROR:
            logger.info(f"Chunk {index:2d} ({where}) ... FAILED")
            logger.info(f"   Error: {message}")
            logger.info("   -> marked as eval=FALSE")
        elif status == ExecutionStatus.SUCCESS:
            logger.info(f"Chunk {index:2d} ({where}) ... OK")
        else:
            logger.debug(f"Chunk {index:2d} ({where}) ... {status.value}")


def repair_document(
    input_path: PathLike,
    output_path: Optional[PathLike] = None,
    **option_overrides,
) -> RepairSummary:
    """Repair one document with configured defaults plus keyword overrides."""
    service = RepairService(options=config.repair_options(**option_overrides))
    return service.repair_document(input_path, output_path=output_path)
