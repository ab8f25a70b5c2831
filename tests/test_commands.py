"""Tests for input discovery, output paths and the per-file loop."""

from pathlib import Path

import pytest

from denigma.commands import ExportCommand, MassageCommand, discover_inputs
from denigma.context import DenigmaContext, DenigmaOptions
from denigma.errors import InputNotFoundError
from scorexml import WHOLE, ScoreXml, rest


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


# ── input discovery ───────────────────────────────────────────────────────────


def test_directory_yields_matching_extensions(tmp_path: Path) -> None:
    a = _touch(tmp_path / "a.musx")
    b = _touch(tmp_path / "b.enigmaxml")
    _touch(tmp_path / "c.txt")
    _touch(tmp_path / "sub" / "d.musx")
    found = list(discover_inputs([str(tmp_path)], ("musx", "enigmaxml")))
    assert found == [a, b]


def test_recursive_search_skips_excluded_folder(tmp_path: Path) -> None:
    a = _touch(tmp_path / "a.musx")
    d = _touch(tmp_path / "sub" / "d.musx")
    _touch(tmp_path / "skip" / "e.musx")
    found = list(discover_inputs([str(tmp_path)], ("musx",), recursive=True, exclude_folder="skip"))
    assert found == [a, d]


def test_glob_pattern(tmp_path: Path) -> None:
    _touch(tmp_path / "song1.musx")
    _touch(tmp_path / "song2.musx")
    _touch(tmp_path / "other.musx")
    found = list(discover_inputs([str(tmp_path / "song*.musx")], ("musx",)))
    assert [path.name for path in found] == ["song1.musx", "song2.musx"]


def test_explicit_file_is_taken_as_given(tmp_path: Path) -> None:
    path = _touch(tmp_path / "notes.txt")
    assert list(discover_inputs([str(path)], ("musx",))) == [path]


def test_missing_input(tmp_path: Path) -> None:
    with pytest.raises(InputNotFoundError):
        list(discover_inputs([str(tmp_path / "nothing.musx")], ("musx",)))


# ── output paths ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("output_arg", "output_format", "expected"),
    [
        (None, "enigmaxml", "scores/song.enigmaxml"),
        ("out/", "mnx", "scores/out/song.mnx"),
        ("exports", "mnx", "scores/exports/song.mnx"),
        ("renamed.json", "mnx", "scores/renamed.mnx"),
        ("renamed.mnx", "mnx", "scores/renamed.mnx"),
    ],
)
def test_compose_export_output_path(tmp_path: Path, output_arg: str | None, output_format: str, expected: str) -> None:
    command = ExportCommand(DenigmaContext())
    input_path = tmp_path / "scores" / "song.musx"
    assert command.compose_output_path(input_path, output_arg, output_format) == tmp_path / expected


def test_absolute_output_path(tmp_path: Path) -> None:
    command = ExportCommand(DenigmaContext())
    target = tmp_path / "elsewhere" / "result.mnx"
    assert command.compose_output_path(tmp_path / "song.musx", str(target), "mnx") == target


def test_massaged_output_name(tmp_path: Path) -> None:
    command = MassageCommand(DenigmaContext())
    assert command.compose_output_path(tmp_path / "song.mxl", None, "mxl") == tmp_path / "song.massaged.mxl"


# ── per-file loop ─────────────────────────────────────────────────────────────


def _enigmaxml(path: Path) -> Path:
    score = ScoreXml()
    score.layer(1, 1, [rest(WHOLE)])
    path.write_bytes(score.render())
    return path


def test_existing_output_needs_force(tmp_path: Path, caplog) -> None:
    source = _enigmaxml(tmp_path / "song.enigmaxml")
    existing = tmp_path / "song.mnx"
    existing.write_text("old")
    ctx = DenigmaContext()
    ExportCommand(ctx).process_file(source, [("mnx", None)])
    assert "exists. Use --force to overwrite it." in caplog.text
    assert existing.read_text() == "old"
    assert not ctx.error_occurred

    ctx = DenigmaContext(DenigmaOptions(overwrite_existing=True))
    ExportCommand(ctx).process_file(source, [("mnx", None)])
    assert existing.read_text().startswith("{")


def test_same_input_and_output_is_skipped(tmp_path: Path) -> None:
    source = _enigmaxml(tmp_path / "song.enigmaxml")
    before = source.read_bytes()
    ctx = DenigmaContext(DenigmaOptions(overwrite_existing=True))
    ExportCommand(ctx).process_file(source, [])
    assert source.read_bytes() == before
    assert not ctx.error_occurred


def test_failure_ends_the_file_and_the_run_continues(tmp_path: Path, caplog) -> None:
    broken = tmp_path / "a.enigmaxml"
    broken.write_bytes(b"<finale>")
    good = _enigmaxml(tmp_path / "b.enigmaxml")
    ctx = DenigmaContext()
    ExportCommand(ctx).run([str(broken), str(good)], [("mnx", None)])
    assert ctx.error_occurred
    assert "[***ERROR***] a.enigmaxml: " in caplog.text
    assert not (tmp_path / "a.mnx").exists()
    assert (tmp_path / "b.mnx").exists()
    assert ctx.input_file_path is None


def test_wrong_input_extension(tmp_path: Path, caplog) -> None:
    path = _touch(tmp_path / "notes.txt")
    ctx = DenigmaContext()
    ExportCommand(ctx).process_file(path, [])
    assert ctx.error_occurred
    assert "notes.txt is not a .musx or .enigmaxml file." in caplog.text


def test_unexpected_error_ends_only_that_file(tmp_path: Path, monkeypatch, caplog) -> None:
    first = _enigmaxml(tmp_path / "a.enigmaxml")
    second = _enigmaxml(tmp_path / "b.enigmaxml")
    original = ExportCommand.write_output

    def write_output(self, payload, input_path, output_path, output_format):
        if input_path == first:
            raise KeyError("missing")
        return original(self, payload, input_path, output_path, output_format)

    monkeypatch.setattr(ExportCommand, "write_output", write_output)
    ctx = DenigmaContext()
    ExportCommand(ctx).run([str(first), str(second)], [("mnx", None)])
    assert ctx.error_occurred
    assert "[***ERROR***] a.enigmaxml: unexpected KeyError" in caplog.text
    assert (tmp_path / "b.mnx").exists()
