from __future__ import annotations

from pathlib import Path

from knitfix.services.path_resolver import DATA_EXTENSIONS, build_mapping, candidate_dirs_for, file_extension


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x\n", encoding="utf-8")
    return path


def test_file_extension_keeps_case_and_ignores_dotfiles() -> None:
    assert file_extension("scores.csv") == "csv"
    assert file_extension("SCORES.CSV") == "CSV"
    assert file_extension("archive.tar.gz") == "gz"
    assert file_extension(".hidden") == ""
    assert file_extension("README") == ""


def test_build_mapping_only_recognized_files(tmp_path) -> None:
    _touch(tmp_path / "scores.csv")
    _touch(tmp_path / "survey.xlsx")
    _touch(tmp_path / "notes.md")
    (tmp_path / "folder.csv").mkdir()

    mapping = build_mapping([tmp_path])

    assert set(mapping) == {"scores.csv", "survey.xlsx"}
    assert mapping["scores.csv"] == (tmp_path / "scores.csv").resolve().as_posix()


def test_build_mapping_first_found_wins(tmp_path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    _touch(first / "scores.csv")
    _touch(second / "scores.csv")
    _touch(second / "extra.rds")

    mapping = build_mapping([first, second])

    assert mapping["scores.csv"] == (first / "scores.csv").resolve().as_posix()
    assert mapping["extra.rds"] == (second / "extra.rds").resolve().as_posix()


def test_build_mapping_skips_missing_directories(tmp_path) -> None:
    _touch(tmp_path / "scores.csv")
    mapping = build_mapping([tmp_path / "does-not-exist", tmp_path])
    assert list(mapping) == ["scores.csv"]


def test_build_mapping_is_not_recursive(tmp_path) -> None:
    _touch(tmp_path / "nested" / "deep.csv")
    assert build_mapping([tmp_path]) == {}


def test_build_mapping_respects_extension_case(tmp_path) -> None:
    _touch(tmp_path / "data.Csv")
    assert "Csv" not in DATA_EXTENSIONS
    assert build_mapping([tmp_path]) == {}
    assert "data.Csv" in build_mapping([tmp_path], recognized_extensions={"Csv"})


def test_candidate_dirs_auto_order(tmp_path) -> None:
    document = tmp_path / "student" / "report.Rmd"
    dirs = candidate_dirs_for(document)
    doc_dir = (tmp_path / "student").resolve()
    assert dirs == [doc_dir, doc_dir.parent, doc_dir / "data"]


def test_candidate_dirs_explicit_policies(tmp_path) -> None:
    document = tmp_path / "student" / "report.Rmd"
    doc_dir = (tmp_path / "student").resolve()
    assert candidate_dirs_for(document, ".") == [doc_dir]
    assert candidate_dirs_for(document, "..") == [doc_dir.parent]
    assert candidate_dirs_for(document, "inputs") == [doc_dir / "inputs"]
