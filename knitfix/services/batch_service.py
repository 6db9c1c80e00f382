"""
Batch layer: repair and render every document in a folder.

Each document is repaired independently with its own execution context. A
document that cannot be repaired is recorded as a failed row and the batch
moves on. Results come back as pandas DataFrames, one row per document.

Parallel repairs use worker processes, never threads: executing a document
changes the process working directory.
"""

import logging
import re
from concurrent.futures import ProcessPoolExecutor
from itertools import repeat
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from ..config import config
from ..models.repair import RepairOptions
from .document_parser import DocumentStructureError
from .render_service import RenderService, output_name_for
from .repair_service import RepairError, RepairService

logger = logging.getLogger(__name__)

DOCUMENT_PATTERN = r"\.(Rmd|qmd)$"
FIXED_PATTERN = r"_FIXED\.(Rmd|qmd)$"

FIX_COLUMNS = ["file", "success", "output", "disabled_blocks", "path_rewrites", "error"]
RENDER_COLUMNS = ["file", "output", "success", "error"]

PathLike = Union[str, Path]


def find_documents(path: PathLike, pattern: str = DOCUMENT_PATTERN, recursive: bool = True) -> List[Path]:
    """Files under `path` whose name matches `pattern` (case-insensitive), sorted."""
    folder = Path(path)
    if not folder.is_dir():
        raise NotADirectoryError(f"Directory does not exist: {folder}")

    regex = re.compile(pattern, re.IGNORECASE)
    entries = folder.rglob("*") if recursive else folder.iterdir()
    return sorted(p for p in entries if p.is_file() and regex.search(p.name))


def _repair_one(file_path: Path, options: RepairOptions) -> Dict[str, Any]:
    """Repair a single document and describe the result as one row."""
    try:
        summary = RepairService(options=options).repair_document(file_path)
    except (RepairError, DocumentStructureError, OSError, UnicodeDecodeError) as e:
        logger.error(f"❌ {file_path.name}: {e}")
        return {
            "file": str(file_path),
            "success": False,
            "output": None,
            "disabled_blocks": 0,
            "path_rewrites": 0,
            "error": str(e),
        }

    return {
        "file": str(file_path),
        "success": True,
        "output": summary.output_path,
        "disabled_blocks": summary.disabled_blocks,
        "path_rewrites": summary.path_rewrites,
        "error": None,
    }


def fix_folder(
    path: PathLike,
    pattern: str = DOCUMENT_PATTERN,
    recursive: bool = True,
    options: Optional[RepairOptions] = None,
    workers: int = 1,
) -> pd.DataFrame:
    """
    Repair every matching document in a folder.

    Documents that already carry the `_FIXED` suffix are skipped, so running
    the batch twice does not produce `_FIXED_FIXED` files.

    Args:
        path: Folder to scan
        pattern: Regex matched against file names (case-insensitive)
        recursive: Scan subfolders too
        options: Repair options (configured defaults when None)
        workers: Number of worker processes; 1 repairs sequentially in-process

    Returns:
        DataFrame with columns file, success, output, disabled_blocks,
        path_rewrites, error

    Raises:
        NotADirectoryError: `path` is not a folder
    """
    options = options or config.repair_options()
    suffix = options.output_suffix.upper()
    files = [f for f in find_documents(path, pattern, recursive) if suffix not in f.stem.upper()]

    if not files:
        logger.warning(f"No documents found in: {path}")
        return pd.DataFrame(columns=FIX_COLUMNS)

    logger.info(f"📂 Found {len(files)} document(s) in: {path}")

    if workers > 1 and len(files) > 1:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            rows = list(executor.map(_repair_one, files, repeat(options)))
    else:
        rows = []
        for i, file_path in enumerate(files, 1):
            logger.info(f"Processing [{i}/{len(files)}]: {file_path.name}")
            rows.append(_repair_one(file_path, options))

    results = pd.DataFrame(rows, columns=FIX_COLUMNS)
    success_count = int(results["success"].sum())
    logger.info(f"📊 Repaired {success_count}/{len(results)} document(s), {len(results) - success_count} error(s)")
    return results


def render_fixed_files(
    path: PathLike,
    output_dir: Optional[PathLike] = None,
    recursive: bool = True,
    pattern: str = FIXED_PATTERN,
    render_service: Optional[RenderService] = None,
) -> pd.DataFrame:
    """
    Render every repaired document in a folder.

    Only first-generation repaired files are rendered (`_FIXED_FIXED` files are
    skipped). With `output_dir`, outputs are named `<parent folder>_<base>` so
    same-named documents from different folders do not overwrite each other.

    Raises:
        NotADirectoryError: `path` is not a folder
        RenderError: the renderer cannot be started
    """
    files = [f for f in find_documents(path, pattern, recursive) if "_FIXED_FIXED" not in f.name.upper()]
    if not files:
        logger.warning(f"No repaired documents found matching pattern: {pattern}")
        return pd.DataFrame(columns=RENDER_COLUMNS)

    service = render_service or RenderService()
    logger.info(f"📂 Found {len(files)} repaired document(s) to render")

    rows = []
    for i, file_path in enumerate(files, 1):
        logger.info(f"Rendering [{i}/{len(files)}]: {file_path.name}")
        output_file = output_name_for(file_path) if output_dir is not None else None
        result = service.render(file_path, output_dir=output_dir, output_file=output_file)
        rows.append({
            "file": str(file_path),
            "output": result.output_path,
            "success": result.success,
            "error": result.error,
        })

    results = pd.DataFrame(rows, columns=RENDER_COLUMNS)
    success_count = int(results["success"].sum())
    logger.info(f"📊 Rendered {success_count}/{len(results)} document(s)")
    failed = results.loc[~results["success"].astype(bool), "file"]
    for file_name in failed:
        failed_path = Path(file_name)
        logger.info(f"   - {failed_path.parent.name}/{failed_path.name}")
    return results


def fix_and_render_folder(
    path: PathLike,
    pattern: str = DOCUMENT_PATTERN,
    recursive: bool = True,
    options: Optional[RepairOptions] = None,
    workers: int = 1,
    output_dir: Optional[PathLike] = None,
    render_service: Optional[RenderService] = None,
) -> Dict[str, pd.DataFrame]:
    """Repair a folder, then render the repaired documents."""
    logger.info("PHASE 1: repairing documents")
    fix_results = fix_folder(path, pattern=pattern, recursive=recursive, options=options, workers=workers)

    logger.info("PHASE 2: rendering repaired documents")
    render_results = render_fixed_files(
        path,
        output_dir=output_dir,
        recursive=recursive,
        render_service=render_service,
    )
    return {"fix_results": fix_results, "render_results": render_results}
