"""
Execution Service for running code blocks against a per-document namespace.

Blocks are submitted one at a time, in document order, to an explicit
ExecutionContext owned by a single repair. Later blocks see every binding made
by earlier successful blocks. A failing block is never re-raised: the failure
is recorded in an ExecutionOutcome and the block is disabled with a one-line
explanation.

Limitation: a block that raises halfway through keeps whatever it already did
to the namespace (bindings, imports, opened files). The interpreter offers no
rollback and none is attempted here.
"""

import builtins
import io
import logging
import os
import sys
import textwrap
import time
import warnings
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Set, Union

import matplotlib
import matplotlib.pyplot as plt

from ..models.document import CodeBlock
from ..models.repair import ExecutionOutcome, ExecutionStatus

# Configure matplotlib for non-interactive backend
matplotlib.use("Agg")

logger = logging.getLogger(__name__)

ANNOTATION_TAG = "[knitfix]"
ANNOTATION_PREFIX = f"# {ANNOTATION_TAG} Chunk execution disabled due to error: "
DEFAULT_MAX_MESSAGE_LENGTH = 80


@contextmanager
def working_directory(path: Optional[Path]) -> Iterator[None]:
    """Temporarily change the process working directory (no-op for None)."""
    if path is None:
        yield
        return
    previous = os.getcwd()
    os.chdir(str(path))
    try:
        yield
    finally:
        os.chdir(previous)


@contextmanager
def import_path(path: Optional[Path]) -> Iterator[None]:
    """Make modules next to the document importable while a chunk runs."""
    if path is None:
        yield
        return
    entry = str(path)
    sys.path.insert(0, entry)
    try:
        yield
    finally:
        if entry in sys.path:
            sys.path.remove(entry)


@contextmanager
def no_stdin() -> Iterator[None]:
    """Chunks run non-interactively: `input()` sees end of file."""
    previous = sys.stdin
    sys.stdin = io.StringIO()
    try:
        yield
    finally:
        sys.stdin = previous


def chunk_code(block: CodeBlock) -> str:
    """Block source as submitted: the fence indentation is not part of the code."""
    return textwrap.dedent(block.source)


class ExecutionContext:
    """
    Persistent namespace for one document repair.

    Created fresh per document and discarded at the end of the repair; never
    shared between documents. It does not inherit anything from the host
    interpreter beyond the builtins, so a document that forgets an import fails
    here exactly as it would when rendered.
    """

    def __init__(self, working_dir: Optional[Union[str, Path]] = None, name: str = "document"):
        self.name = name
        self.working_dir = Path(working_dir) if working_dir is not None else None
        self.namespace: Dict[str, Any] = {"__name__": "__main__", "__builtins__": builtins}
        self.submissions = 0
        self.closed = False
        self._preloaded: Set[str] = set(sys.modules)

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def local_modules(self) -> Dict[str, Any]:
        """Modules imported since the context opened that live under its working directory."""
        if self.working_dir is None:
            return {}
        root = self.working_dir.resolve()
        found = {}
        for name, module in list(sys.modules.items()):
            if name in self._preloaded:
                continue
            location = getattr(module, "__file__", None)
            if location and root in Path(location).resolve().parents:
                found[name] = module
        return found

    def close(self) -> None:
        """Drop every binding and evict document-local modules; the context cannot be used afterwards."""
        for name in self.local_modules():
            logger.debug(f"Evicting document module {name}")
            sys.modules.pop(name, None)
        self.namespace.clear()
        self.closed = True


class ExecutionService:
    """Submit code blocks to an ExecutionContext and disable the ones that fail."""

    def __init__(self, max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH):
        self.max_message_length = max_message_length

    def submit(self, code: str, context: ExecutionContext, label: str = "<chunk>") -> None:
        """
        The execution oracle: compile and run `code` in the context namespace.

        Raises whatever the code raises.
        """
        if context.closed:
            raise RuntimeError(f"Execution context for {context.name} is closed")
        context.submissions += 1
        compiled = compile(code, label, "exec")
        exec(compiled, context.namespace)

    def run(self, block: CodeBlock, context: ExecutionContext) -> ExecutionOutcome:
        """
        Execute one code block and record its outcome on the block.

        Pre-flagged blocks and empty blocks are never submitted. On failure the
        block is disabled (see disable_block).

        Raises:
            RuntimeError: the block already has an outcome.
        """
        if block.outcome is not None:
            raise RuntimeError(f"Code block {block.index} was already executed")

        if block.preflagged:
            block.outcome = ExecutionOutcome(status=ExecutionStatus.SKIPPED)
            return block.outcome

        if block.is_empty:
            block.outcome = ExecutionOutcome(status=ExecutionStatus.EMPTY)
            return block.outcome

        outcome = ExecutionOutcome()
        stdout_buffer = io.StringIO()
        stderr_buffer = io.StringIO()
        start_time = time.time()

        try:
            with working_directory(context.working_dir), import_path(context.working_dir), warnings.catch_warnings():
                warnings.simplefilter("ignore")
                with no_stdin(), redirect_stdout(stdout_buffer), redirect_stderr(stderr_buffer):
                    self.submit(chunk_code(block), context, label=f"<chunk {block.index}>")
            outcome.status = ExecutionStatus.SUCCESS
        except (Exception, SystemExit) as e:
            outcome.status = ExecutionStatus.ERROR
            outcome.error_type = type(e).__name__
            outcome.error_message = str(e)
            outcome.short_message = self.short_message(e)
            logger.debug(f"Chunk {block.index} raised {outcome.error_type}: {outcome.error_message}")
        finally:
            outcome.execution_time = time.time() - start_time
            outcome.stdout = stdout_buffer.getvalue()
            outcome.stderr = stderr_buffer.getvalue()
            plt.close("all")

        block.outcome = outcome
        if outcome.status == ExecutionStatus.ERROR:
            self.disable_block(block, outcome)
        return outcome

    def short_message(self, error: BaseException) -> str:
        """`Type: message` on one line, capped at max_message_length characters."""
        message = str(error)
        text = f"{type(error).__name__}: {message}" if message else type(error).__name__
        text = " ".join(text.split())
        return text[: self.max_message_length]

    def disable_block(self, block: CodeBlock, outcome: ExecutionOutcome) -> None:
        """Flip the block to do-not-execute and attach the transparency annotation."""
        block.options.disable()
        block.annotation = f"{block.indent}{ANNOTATION_PREFIX}{outcome.short_message or outcome.error_type}"
