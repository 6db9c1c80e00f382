"""
Pytest configuration for knitfix.

Tests import `knitfix.*` directly from the checkout. Depending on pytest import
mode the repository root may not be on `sys.path`, so it is added here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Ensure the repository root is importable (so `import knitfix...` works).
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def write_document(tmp_path: Path) -> Callable[..., Path]:
    """Write a document under tmp_path and return its path."""

    def _write(text: str, name: str = "report.Rmd", folder: str = "") -> Path:
        directory = tmp_path / folder if folder else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
