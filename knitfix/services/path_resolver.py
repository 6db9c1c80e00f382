"""
Path resolver: map bare data filenames to absolute locations.

The mapping is a pure function of the file-system snapshot and the ordered
candidate directories. Directories are scanned non-recursively and entries are
visited in sorted order so repeated runs produce identical mappings.

Override order is first-found-wins: once a filename is mapped, later candidate
directories never replace it. `candidate_dirs_for()` therefore lists
directories from highest to lowest lookup priority.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Set, Union

logger = logging.getLogger(__name__)

# Case-sensitive allow-list; case variants are listed explicitly.
DATA_EXTENSIONS: Set[str] = {
    "csv", "CSV",
    "tsv", "TSV",
    "txt", "TXT",
    "rds", "RDS",
    "rda", "RData",
    "xlsx", "XLSX",
    "xls", "XLS",
    "json", "JSON",
    "xml",
    "feather",
    "parquet",
    "sav",
    "dta",
    "sas7bdat",
    "qs",
    "pkl",
    "pickle",
    "npy",
    "npz",
    "h5",
    "hdf5",
}

PathLike = Union[str, Path]


def file_extension(filename: str) -> str:
    """Text after the last dot, or "" (case preserved)."""
    name = Path(filename).name
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[1]


def build_mapping(
    candidate_dirs: Iterable[PathLike],
    recognized_extensions: Set[str] = DATA_EXTENSIONS,
) -> Dict[str, str]:
    """
    Build a filename -> absolute path mapping from candidate directories.

    Args:
        candidate_dirs: Directories in lookup-priority order
        recognized_extensions: Extensions (without dot) treated as data files

    Returns:
        Mapping of bare filename to resolved absolute path (POSIX form)
    """
    mapping: Dict[str, str] = {}

    for candidate in candidate_dirs:
        directory = Path(candidate)
        if not directory.is_dir():
            logger.debug(f"Skipping missing data directory: {directory}")
            continue

        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if not entry.is_file():
                continue
            if file_extension(entry.name) not in recognized_extensions:
                continue
            if entry.name in mapping:
                continue
            mapping[entry.name] = entry.resolve().as_posix()

    return mapping


def candidate_dirs_for(document_path: PathLike, data_folder: str = "auto") -> List[Path]:
    """
    Ordered candidate directories for a document and a data folder policy.

    - "auto": document directory, its parent, then `<document dir>/data`
    - ".": document directory only
    - "..": parent directory only
    - anything else: that subfolder of the document directory
    """
    document_dir = Path(document_path).resolve().parent

    if data_folder == "auto":
        return [document_dir, document_dir.parent, document_dir / "data"]
    if data_folder == ".":
        return [document_dir]
    if data_folder == "..":
        return [document_dir.parent]
    return [document_dir / data_folder]
