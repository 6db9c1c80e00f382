"""
Render Service: hand repaired documents to the external renderer.

The renderer is a command line (`quarto render` by default) run through
subprocess. A document that fails to render is reported in its RenderResult;
a renderer that cannot be started at all raises RenderError, since no other
document will render either.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..config import config
from ..models.repair import RenderResult

logger = logging.getLogger(__name__)

OUTPUT_CREATED_RE = re.compile(r"Output created:\s*(?P<path>\S.*?)\s*$", re.MULTILINE)
MAX_ERROR_LENGTH = 500

PathLike = Union[str, Path]


class RenderError(RuntimeError):
    """Raised when the renderer command cannot be run."""


class RenderService:
    """Run the configured renderer on one document at a time."""

    def __init__(
        self,
        command: Optional[List[str]] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.command = list(command) if command else config.get_render_command()
        self.runner = runner

    def build_command(
        self,
        document_path: Path,
        output_dir: Optional[PathLike] = None,
        output_file: Optional[str] = None,
    ) -> List[str]:
        cmd = [*self.command, str(document_path)]
        if output_file:
            cmd.extend(["-M", f"output-file:{output_file}"])
        if output_dir is not None:
            cmd.extend(["--output-dir", str(output_dir)])
        return cmd

    def render(
        self,
        document_path: PathLike,
        output_dir: Optional[PathLike] = None,
        output_file: Optional[str] = None,
    ) -> RenderResult:
        """
        Render one document.

        Args:
            document_path: Repaired document to render
            output_dir: Directory for the rendered output (renderer default if None)
            output_file: Output file name inside output_dir

        Returns:
            RenderResult; `success` is False when the renderer exits non-zero

        Raises:
            RenderError: the renderer executable could not be started
        """
        path = Path(document_path)
        if output_dir is not None:
            Path(output_dir).mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(path, output_dir=output_dir, output_file=output_file)
        logger.debug(f"Running renderer: {' '.join(cmd)}")

        try:
            proc = self.runner(cmd, cwd=str(path.parent), capture_output=True, text=True, check=False)
        except OSError as e:
            raise RenderError(f"Cannot run renderer '{self.command[0]}': {e}") from e

        if proc.returncode != 0:
            error = self._error_text(proc.stderr or proc.stdout or f"exit code {proc.returncode}")
            logger.error(f"❌ Render failed for {path.name}: {error}")
            return RenderResult(document_path=str(path), success=False, error=error)

        output_path = self._output_path(proc, path, output_dir, output_file)
        logger.info(f"✅ Rendered {path.name}" + (f" -> {output_path}" if output_path else ""))
        return RenderResult(document_path=str(path), success=True, output_path=output_path)

    def _output_path(
        self,
        proc: subprocess.CompletedProcess,
        document_path: Path,
        output_dir: Optional[PathLike],
        output_file: Optional[str],
    ) -> Optional[str]:
        # quarto reports the created file on stderr
        match = OUTPUT_CREATED_RE.search(f"{proc.stdout or ''}\n{proc.stderr or ''}")
        if match:
            created = Path(match.group("path"))
            if not created.is_absolute():
                created = (Path(output_dir) if output_dir is not None else document_path.parent) / created.name
            return str(created)
        if output_file and output_dir is not None:
            return str(Path(output_dir) / output_file)
        return None

    def _error_text(self, text: str) -> str:
        lines = [line for line in text.strip().splitlines() if line.strip()]
        error = " ".join(lines[-3:]) if lines else text.strip()
        return error[:MAX_ERROR_LENGTH]


def output_name_for(document_path: PathLike, fixed_suffix: str = "_FIXED") -> str:
    """`<parent folder>_<base>` for a repaired document, keeping rendered outputs of different folders apart."""
    path = Path(document_path)
    base = path.stem
    if base.upper().endswith(fixed_suffix.upper()):
        base = base[: -len(fixed_suffix)]
    parent = path.resolve().parent.name
    return f"{parent}_{base}" if parent else base
