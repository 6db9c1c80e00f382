from __future__ import annotations

from knitfix.services.chunk_options import parse_options


def test_label_and_keyed_entries() -> None:
    options = parse_options(" load-data, echo=FALSE, fig.width = 6")
    assert options.label == "load-data"
    assert [e.key for e in options.entries] == ["load-data", "echo", "fig.width"]
    assert options.get("fig.width") == "6"
    assert options.is_false("echo")


def test_explicit_label_entry_wins() -> None:
    options = parse_options(', label="plots", echo=TRUE')
    assert options.label == "plots"


def test_commas_inside_quotes_and_brackets_do_not_split() -> None:
    options = parse_options(' fig.cap="A, B", fig.dim=c(5, 3)')
    assert options.get("fig.cap") == '"A, B"'
    assert options.get("fig.dim") == "c(5, 3)"
    assert len(options.entries) == 2


def test_comparison_operators_are_not_assignments() -> None:
    options = parse_options(" eval=x == 1")
    assert options.get("eval") == "x == 1"


def test_lookup_is_case_insensitive() -> None:
    options = parse_options(" EVAL = F")
    assert options.is_disabled
    assert options.find("eval").key == "EVAL"


def test_disable_flips_existing_value_in_place() -> None:
    options = parse_options(" intro, eval=TRUE, echo=FALSE")
    assert options.disable()
    assert options.raw == " intro, eval=FALSE, echo=FALSE"
    assert options.dirty
    assert options.get("echo") == "FALSE"


def test_disable_keeps_author_spacing_and_case() -> None:
    options = parse_options(" EVAL = TRUE, fig.cap='x'")
    options.disable()
    assert options.raw == " EVAL = FALSE, fig.cap='x'"


def test_disable_shifts_later_value_offsets() -> None:
    options = parse_options(" eval=TRUE, echo=TRUE")
    options.disable()
    echo = options.find("echo")
    assert options.raw[echo.value_start:echo.value_end] == "TRUE"


def test_disable_appends_when_absent() -> None:
    options = parse_options(" load-data, echo=FALSE")
    assert options.disable()
    assert options.raw == " load-data, echo=FALSE, eval=FALSE"
    assert options.raw.lower().count("eval") == 1


def test_disable_on_empty_options() -> None:
    options = parse_options("")
    options.disable()
    assert options.raw == ", eval=FALSE"
    assert options.is_disabled


def test_disable_is_noop_when_already_disabled() -> None:
    options = parse_options(" eval = false")
    assert not options.disable()
    assert options.raw == " eval = false"
    assert not options.dirty
