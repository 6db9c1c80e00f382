"""
Command line entry point.

    knitfix fix PATH      repair one document or every document in a folder
    knitfix render PATH   render repaired documents
    knitfix run PATH      repair, then render
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from ._version import __version__
from .config import config
from .models.repair import RepairOptions
from .services.batch_service import DOCUMENT_PATTERN, fix_and_render_folder, fix_folder, render_fixed_files
from .services.document_parser import DocumentStructureError
from .services.render_service import RenderError, RenderService, output_name_for
from .services.repair_service import RepairError, RepairService

logger = logging.getLogger("knitfix")


def _add_fix_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--data-folder",
        help="Where to look for data files: auto, '.', '..' or a folder name relative to each document (default: auto).",
    )
    parser.add_argument("--no-paths", action="store_true", help="Do not rewrite data file paths.")
    parser.add_argument("--no-setup", action="store_true", help="Do not inject output-limiting setup code.")
    parser.add_argument("--no-backup", action="store_true", help="Do not write <document>.bak backups.")
    parser.add_argument("--no-chdir", action="store_true", help="Execute chunks in the current directory.")
    parser.add_argument("--add-heading", action="store_true", help="Insert the parent folder name as a heading.")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes for folder repairs (default: 1).")


def _add_scan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--pattern", default=None, help="File name regex for folder scans.")
    parser.add_argument(
        "--recursive",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Scan subfolders (default: on).",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="knitfix",
        description="Repair R Markdown / Quarto documents so they render: disable failing chunks, fix data paths, limit output.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors.")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Print debug output.")

    sub = ap.add_subparsers(dest="command", required=True)

    fix = sub.add_parser("fix", help="Repair a document or a folder of documents.")
    fix.add_argument("path", help="Document (.Rmd/.qmd) or folder.")
    fix.add_argument("-o", "--output", help="Output file (single document only).")
    _add_fix_arguments(fix)
    _add_scan_arguments(fix)

    render = sub.add_parser("render", help="Render repaired documents.")
    render.add_argument("path", help="Repaired document or folder.")
    render.add_argument("--output-dir", help="Collect rendered outputs in this folder.")
    _add_scan_arguments(render)

    run = sub.add_parser("run", help="Repair, then render.")
    run.add_argument("path", help="Document (.Rmd/.qmd) or folder.")
    run.add_argument("--output-dir", help="Collect rendered outputs in this folder.")
    _add_fix_arguments(run)
    _add_scan_arguments(run)

    return ap


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(message)s")


def options_from_args(args: argparse.Namespace) -> RepairOptions:
    return config.repair_options(
        data_folder=args.data_folder,
        fix_paths=False if args.no_paths else None,
        limit_output=False if args.no_setup else None,
        backup=False if args.no_backup else None,
        chdir=False if args.no_chdir else None,
        add_heading=True if args.add_heading else None,
    )


def _fix_file(path: Path, output: Optional[str], options: RepairOptions) -> Optional[Path]:
    try:
        summary = RepairService(options=options).repair_document(path, output_path=output)
    except (RepairError, DocumentStructureError, OSError, UnicodeDecodeError) as e:
        logger.error(f"❌ {path}: {e}")
        return None
    return Path(summary.output_path)


def _render_file(path: Path, output_dir: Optional[str]) -> bool:
    output_file = output_name_for(path) if output_dir else None
    result = RenderService().render(path, output_dir=output_dir, output_file=output_file)
    return result.success


def run_fix(args: argparse.Namespace) -> int:
    path = Path(args.path)
    options = options_from_args(args)
    if path.is_dir():
        results = fix_folder(
            path,
            pattern=args.pattern or DOCUMENT_PATTERN,
            recursive=args.recursive,
            options=options,
            workers=args.workers,
        )
        return 0 if bool(results["success"].all()) else 1
    return 0 if _fix_file(path, args.output, options) is not None else 1


def run_render(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if path.is_dir():
        kwargs = {"pattern": args.pattern} if args.pattern else {}
        results = render_fixed_files(path, output_dir=args.output_dir, recursive=args.recursive, **kwargs)
        return 0 if bool(results["success"].all()) else 1
    if not path.is_file():
        logger.error(f"❌ Input file does not exist: {path}")
        return 1
    return 0 if _render_file(path, args.output_dir) else 1


def run_all(args: argparse.Namespace) -> int:
    path = Path(args.path)
    options = options_from_args(args)
    if path.is_dir():
        results = fix_and_render_folder(
            path,
            pattern=args.pattern or DOCUMENT_PATTERN,
            recursive=args.recursive,
            options=options,
            workers=args.workers,
            output_dir=args.output_dir,
        )
        ok = bool(results["fix_results"]["success"].all()) and bool(results["render_results"]["success"].all())
        return 0 if ok else 1
    fixed = _fix_file(path, None, options)
    if fixed is None:
        return 1
    return 0 if _render_file(fixed, args.output_dir) else 1


COMMANDS = {
    "fix": run_fix,
    "render": run_render,
    "run": run_all,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(quiet=args.quiet, verbose=args.verbose)
    try:
        return COMMANDS[args.command](args)
    except (NotADirectoryError, RenderError) as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
