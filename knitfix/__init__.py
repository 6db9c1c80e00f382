"""knitfix: repair literate-programming documents that no longer render."""

from ._version import __version__
from .services.repair_service import RepairService, repair_document

__all__ = [
    "__version__",
    "RepairService",
    "repair_document",
]
