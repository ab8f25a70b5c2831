"""Tests for the run context: options, message prefixes and the log file."""

import logging
from pathlib import Path

import pytest

from denigma.context import DenigmaContext, DenigmaOptions, LogSeverity, MassageTarget


@pytest.mark.parametrize(
    ("target", "expected"),
    [
        (MassageTarget.MUSESCORE, (True, True, True, True)),
        (MassageTarget.DORICO, (True, True, True, True)),
        (MassageTarget.LILYPOND, (True, True, False, True)),
    ],
)
def test_target_presets(target: MassageTarget, expected: tuple) -> None:
    options = DenigmaOptions(refloat_rests=False, extend_ottavas_left=False)
    options.apply_target(target)
    switches = (
        options.refloat_rests,
        options.extend_ottavas_left,
        options.extend_ottavas_right,
        options.fermata_whole_rests,
    )
    assert switches == expected


def test_massage_option_values() -> None:
    options = DenigmaOptions(extend_ottavas_right=False)
    assert options.massage_option_values() == [
        ("refloat-rests", "yes"),
        ("extend-ottavas-left", "yes"),
        ("extend-ottavas-right", "no"),
        ("fermata-whole-rests", "yes"),
    ]


def test_prefixes_and_error_flag(caplog) -> None:
    ctx = DenigmaContext()
    ctx.warning("careful")
    assert not ctx.error_occurred
    ctx.begin_file(Path("scores/song.musx"))
    ctx.error("broken")
    ctx.end_file()
    assert ctx.error_occurred
    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["[WARNING] careful", "[***ERROR***] song.musx: broken"]


def test_console_levels(capsys) -> None:
    with DenigmaContext(DenigmaOptions(quiet=True)) as ctx:
        ctx.log("hello")
        ctx.warning("heads up")
    captured = capsys.readouterr()
    assert "hello" not in captured.out + captured.err
    assert "[WARNING] heads up" in captured.err

    with DenigmaContext(DenigmaOptions(verbose=True)) as ctx:
        ctx.verbose("details")
    assert "details" in capsys.readouterr().out


def test_log_file_framing(tmp_path: Path, capsys) -> None:
    log_path = tmp_path / "logs" / "run.log"
    options = DenigmaOptions(log_file_path=log_path)
    with DenigmaContext(options, arguments=["export", "song.musx"]) as ctx:
        ctx.begin_file(Path("song.musx"))
        ctx.error("cannot read")
        ctx.abort_file()
        ctx.end_file()
    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert lines[:3] == [
        "======= START =======",
        "denigma executed with the following arguments:",
        "denigma export song.musx",
    ]
    assert "Processing File: song.musx" in lines
    assert "[***ERROR***] song.musx: cannot read" in lines
    assert "PROCESSING ABORTED" in lines
    assert lines[-2:] == ["denigma processing complete", "======== END ========"]
    console = capsys.readouterr()
    assert "START" not in console.out + console.err
    assert "[***ERROR***] song.musx: cannot read" in console.err


def test_handlers_are_removed_on_exit(tmp_path: Path) -> None:
    ctx = DenigmaContext(DenigmaOptions(log_file_path=tmp_path / "run.log"))
    before = list(ctx.logger.handlers)
    level = ctx.logger.level
    with ctx:
        assert len(ctx.logger.handlers) == len(before) + 2
    assert ctx.logger.handlers == before
    assert ctx.logger.level == level


def test_severity_levels() -> None:
    assert LogSeverity.VERBOSE.value == logging.DEBUG
    assert LogSeverity.ERROR.prefix == "[***ERROR***] "
    assert LogSeverity.INFO.prefix == ""
