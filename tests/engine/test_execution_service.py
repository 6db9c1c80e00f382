from __future__ import annotations

import os
import sys

import pytest

from knitfix.models.repair import ExecutionStatus
from knitfix.services.document_parser import DocumentParser
from knitfix.services.execution_service import (
    ANNOTATION_PREFIX,
    ExecutionContext,
    ExecutionService,
)


def _blocks(text: str):
    return DocumentParser().parse_text(text).code_blocks()


def test_bindings_persist_across_blocks() -> None:
    blocks = _blocks("```{python}\nx = 41\n```\n```{python}\ny = x + 1\nprint(y)\n```\n")
    service = ExecutionService()
    with ExecutionContext() as context:
        first = service.run(blocks[0], context)
        second = service.run(blocks[1], context)
        assert context.namespace["y"] == 42
        assert context.submissions == 2

    assert first.status == ExecutionStatus.SUCCESS
    assert second.stdout == "42\n"


def test_contexts_are_isolated() -> None:
    service = ExecutionService()
    first = ExecutionContext()
    second = ExecutionContext()
    service.submit("shared = 1", first)
    with pytest.raises(NameError):
        service.submit("shared", second)


def test_host_interpreter_state_is_not_inherited() -> None:
    service = ExecutionService()
    with pytest.raises(NameError):
        service.submit("pytest", ExecutionContext())


def test_failure_disables_block_and_annotates() -> None:
    block = _blocks("```{python intro, echo=TRUE}\nraise ValueError('bad   input\\nvalue')\n```\n")[0]
    outcome = ExecutionService().run(block, ExecutionContext())

    assert outcome.status == ExecutionStatus.ERROR
    assert outcome.error_type == "ValueError"
    assert outcome.short_message == "ValueError: bad input value"
    assert block.options.raw == " intro, echo=TRUE, eval=FALSE"
    assert block.annotation == f"{ANNOTATION_PREFIX}ValueError: bad input value"
    assert block.render_lines()[0] == "```{python intro, echo=TRUE, eval=FALSE}"
    assert block.render_lines()[1] == block.annotation


def test_message_is_truncated() -> None:
    block = _blocks("```{python}\nraise RuntimeError('x' * 500)\n```\n")[0]
    outcome = ExecutionService(max_message_length=80).run(block, ExecutionContext())
    assert len(outcome.short_message) == 80
    assert len(outcome.error_message) == 500


def test_syntax_error_is_recorded() -> None:
    block = _blocks("```{python}\nif True print(1)\n```\n")[0]
    outcome = ExecutionService().run(block, ExecutionContext())
    assert outcome.error_type == "SyntaxError"
    assert block.options.is_disabled


def test_system_exit_is_recorded_as_error() -> None:
    block = _blocks("```{python}\nimport sys\nsys.exit(3)\n```\n")[0]
    outcome = ExecutionService().run(block, ExecutionContext())
    assert outcome.status == ExecutionStatus.ERROR
    assert outcome.error_type == "SystemExit"


def test_preflagged_block_is_never_submitted() -> None:
    block = _blocks("```{python, eval=FALSE}\nraise ValueError('nope')\n```\n")[0]
    context = ExecutionContext()
    outcome = ExecutionService().run(block, context)
    assert outcome.status == ExecutionStatus.SKIPPED
    assert context.submissions == 0
    assert block.annotation is None
    assert not block.options.dirty


def test_empty_block_is_never_submitted() -> None:
    block = _blocks("```{python}\n\n```\n")[0]
    context = ExecutionContext()
    outcome = ExecutionService().run(block, context)
    assert outcome.status == ExecutionStatus.EMPTY
    assert context.submissions == 0
    assert block.render_lines() == ["```{python}", "", "```"]


def test_block_cannot_run_twice() -> None:
    block = _blocks("```{python}\nx = 1\n```\n")[0]
    service = ExecutionService()
    context = ExecutionContext()
    service.run(block, context)
    with pytest.raises(RuntimeError):
        service.run(block, context)


def test_closed_context_rejects_submissions() -> None:
    context = ExecutionContext()
    context.close()
    with pytest.raises(RuntimeError):
        ExecutionService().submit("x = 1", context)


def test_runs_in_context_working_directory(tmp_path) -> None:
    (tmp_path / "scores.csv").write_text("a,b\n1,2\n", encoding="utf-8")
    block = _blocks("```{python}\nwith open('scores.csv') as fh:\n    header = fh.readline().strip()\n```\n")[0]
    before = os.getcwd()
    with ExecutionContext(working_dir=tmp_path) as context:
        outcome = ExecutionService().run(block, context)
        assert context.namespace["header"] == "a,b"
    assert outcome.status == ExecutionStatus.SUCCESS
    assert os.getcwd() == before


def test_matplotlib_figures_do_not_leak() -> None:
    import matplotlib.pyplot as plt

    block = _blocks("```{python}\nimport matplotlib.pyplot as plt\nplt.plot([1, 2, 3])\n```\n")[0]
    outcome = ExecutionService().run(block, ExecutionContext())
    assert outcome.status == ExecutionStatus.SUCCESS
    assert plt.get_fignums() == []



def test_input_sees_end_of_file() -> None:
    before = sys.stdin
    block = _blocks("```{python}\nname = input('Name? ')\n```\n")[0]
    outcome = ExecutionService().run(block, ExecutionContext())
    assert outcome.status == ExecutionStatus.ERROR
    assert outcome.error_type == "EOFError"
    assert block.options.is_disabled
    assert sys.stdin is before


def test_indented_block_is_dedented_before_submission() -> None:
    block = _blocks("- step\n\n    ```{python}\n    if True:\n        y = 2\n    ```\n")[0]
    context = ExecutionContext()
    outcome = ExecutionService().run(block, context)
    assert outcome.status == ExecutionStatus.SUCCESS
    assert context.namespace["y"] == 2
    assert block.render_lines()[1] == "    if True:"


def test_close_evicts_modules_imported_from_working_directory(tmp_path) -> None:
    (tmp_path / "knitfix_local_utils.py").write_text("ANSWER = 42\n", encoding="utf-8")
    block = _blocks("```{python}\nfrom knitfix_local_utils import ANSWER\n```\n")[0]

    with ExecutionContext(working_dir=tmp_path) as context:
        outcome = ExecutionService().run(block, context)
        assert context.namespace["ANSWER"] == 42
        assert "knitfix_local_utils" in context.local_modules()
        assert str(tmp_path) not in sys.path

    assert outcome.status == ExecutionStatus.SUCCESS
    assert "knitfix_local_utils" not in sys.modules
    assert context.local_modules() == {}
