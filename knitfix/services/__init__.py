"""Services for knitfix document repair."""

from .batch_service import fix_and_render_folder, fix_folder, render_fixed_files
from .document_parser import DocumentParser, DocumentStructureError
from .execution_service import ExecutionContext, ExecutionService
from .render_service import RenderError, RenderService
from .repair_service import RepairError, RepairService

__all__ = [
    "DocumentParser",
    "DocumentStructureError",
    "ExecutionContext",
    "ExecutionService",
    "RenderError",
    "RenderService",
    "RepairError",
    "RepairService",
    "fix_and_render_folder",
    "fix_folder",
    "render_fixed_files",
]
