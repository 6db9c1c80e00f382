from __future__ import annotations

import subprocess

import pytest

from knitfix.services.render_service import RenderError, RenderService, output_name_for


def _runner(returncode: int = 0, stdout: str = "", stderr: str = ""):
    calls = []

    def run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    run.calls = calls
    return run


def test_render_success_reports_created_output(tmp_path) -> None:
    document = tmp_path / "hw_FIXED.qmd"
    document.write_text("text\n", encoding="utf-8")
    runner = _runner(stderr="processing file: hw_FIXED.qmd\nOutput created: hw_FIXED.html\n")

    result = RenderService(command=["quarto", "render"], runner=runner).render(document)

    assert result.success
    assert result.output_path == str(tmp_path / "hw_FIXED.html")
    cmd, kwargs = runner.calls[0]
    assert cmd == ["quarto", "render", str(document)]
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["check"] is False


def test_render_failure_keeps_last_error_lines(tmp_path) -> None:
    document = tmp_path / "hw_FIXED.Rmd"
    document.write_text("text\n", encoding="utf-8")
    stderr = "line 1\n\nline 2\nline 3\nError: object 'x' not found\n" + "y" * 1000
    runner = _runner(returncode=1, stderr=stderr)

    result = RenderService(command=["quarto", "render"], runner=runner).render(document)

    assert not result.success
    assert result.error.startswith("line 3 Error: object 'x' not found")
    assert len(result.error) == 500


def test_missing_renderer_raises(tmp_path) -> None:
    def runner(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    with pytest.raises(RenderError, match="quarto"):
        RenderService(command=["quarto", "render"], runner=runner).render(tmp_path / "x_FIXED.Rmd")


def test_command_comes_from_config(monkeypatch) -> None:
    monkeypatch.setenv("KNITFIX_RENDER_COMMAND", "Rscript -e render")
    assert RenderService().command == ["Rscript", "-e", "render"]


def test_output_name_for(tmp_path) -> None:
    assert output_name_for(tmp_path / "alice" / "hw_FIXED.Rmd") == "alice_hw"
    assert output_name_for(tmp_path / "bob" / "hw.qmd") == "bob_hw"
