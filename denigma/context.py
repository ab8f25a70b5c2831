"""Run-wide options, logging and error bookkeeping shared by every command."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Final

import click

from denigma import PROGRAM_NAME

DEFAULT_INDENT_SPACES: Final[int] = 4
LOGGER_NAME: Final[str] = "denigma"


class LogSeverity(Enum):
    """Message severities, mapped onto :mod:`logging` levels."""

    VERBOSE = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    @property
    def prefix(self) -> str:
        if self is LogSeverity.WARNING:
            return "[WARNING] "
        if self is LogSeverity.ERROR:
            return "[***ERROR***] "
        return ""


class MassageTarget(str, Enum):
    """Notation programs that consume massaged MusicXML."""

    MUSESCORE = "musescore"
    DORICO = "dorico"
    LILYPOND = "lilypond"


# (refloat_rests, extend_ottavas_left, extend_ottavas_right, fermata_whole_rests)
TARGET_PRESETS: Final[dict[MassageTarget, tuple[bool, bool, bool, bool]]] = {
    MassageTarget.MUSESCORE: (True, True, True, True),
    MassageTarget.DORICO: (True, True, True, True),
    MassageTarget.LILYPOND: (True, True, False, True),
}


@dataclass
class DenigmaOptions:
    """Every command-line switch, resolved to its effective value."""

    overwrite_existing: bool = False
    part_name: str | None = None
    all_parts_and_score: bool = False
    recursive_search: bool = False
    exclude_folder: str | None = None
    quiet: bool = False
    verbose: bool = False
    no_validate: bool = False
    log_file_path: Path | None = None
    # massage
    finale_file_path: Path | None = None
    refloat_rests: bool = True
    extend_ottavas_left: bool = True
    extend_ottavas_right: bool = True
    fermata_whole_rests: bool = True
    massage_stop_on_mismatch: bool = False
    # export
    indent_spaces: int = DEFAULT_INDENT_SPACES
    mnx_schema_path: Path | None = None
    include_tempo_tool: bool = False
    # svg (accepted for compatibility; no svg output is produced)
    shape_def: str | None = None
    svg_unit: str = "none"
    svg_scale: float = 1.0
    svg_page_scale: bool = True

    def apply_target(self, target: MassageTarget) -> None:
        """Set the four massage switches from a target preset."""
        (
            self.refloat_rests,
            self.extend_ottavas_left,
            self.extend_ottavas_right,
            self.fermata_whole_rests,
        ) = TARGET_PRESETS[target]

    def massage_option_values(self) -> list[tuple[str, str]]:
        """Option names and values recorded in massaged MusicXML."""
        return [
            ("refloat-rests", _yes_no(self.refloat_rests)),
            ("extend-ottavas-left", _yes_no(self.extend_ottavas_left)),
            ("extend-ottavas-right", _yes_no(self.extend_ottavas_right)),
            ("fermata-whole-rests", _yes_no(self.fermata_whole_rests)),
        ]


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


class _EchoHandler(logging.Handler):
    """Write records through click so that CliRunner captures them."""

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "log_file_only", False):
            return
        try:
            click.echo(self.format(record), err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


class DenigmaContext:
    """
    The single per-run context threaded through every component.

    It holds the resolved options, the current input file, the log sinks and
    the flag that records whether any error-severity message was logged. The
    flag determines the process exit status.

    Use as a context manager to attach the console and log-file sinks for the
    duration of a run::

        with DenigmaContext(options) as ctx:
            ctx.log("hello")
    """

    def __init__(
        self,
        options: DenigmaOptions | None = None,
        logger: logging.Logger | None = None,
        arguments: list[str] | None = None,
    ) -> None:
        self.options = options or DenigmaOptions()
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.arguments = arguments or []
        self.error_occurred = False
        self.input_file_path: Path | None = None
        self._handlers: list[logging.Handler] = []
        self._saved_level: int | None = None
        self._log_file_open = False

    # ------------------------------------------------------------------
    # Sink lifetime
    # ------------------------------------------------------------------

    def __enter__(self) -> DenigmaContext:
        console = _EchoHandler()
        if self.options.quiet:
            console.setLevel(logging.WARNING)
        elif self.options.verbose:
            console.setLevel(logging.DEBUG)
        else:
            console.setLevel(logging.INFO)
        self._attach(console)

        if self.options.log_file_path is not None:
            log_path = Path(self.options.log_file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG if self.options.verbose else logging.INFO)
            self._attach(file_handler)
            self._log_file_open = True

        self._saved_level = self.logger.level
        self.logger.setLevel(logging.DEBUG)
        if self._log_file_open:
            self._file_only("======= START =======")
            self._file_only(f"{PROGRAM_NAME} executed with the following arguments:")
            self._file_only(" ".join([PROGRAM_NAME, *self.arguments]))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._log_file_open:
            self.input_file_path = None
            for line in ("", f"{PROGRAM_NAME} processing complete", "======== END ========"):
                self._file_only(line)
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._log_file_open = False
        if self._saved_level is not None:
            self.logger.setLevel(self._saved_level)
            self._saved_level = None

    def _attach(self, handler: logging.Handler) -> None:
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def _file_only(self, line: str) -> None:
        self.logger.info(line, extra={"log_file_only": True})

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def log(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
        """Log *message*; an error-severity message marks the run as failed."""
        if severity is LogSeverity.ERROR:
            self.error_occurred = True
        text = severity.prefix
        if self.input_file_path is not None:
            text += f"{self.input_file_path.name}: "
        self.logger.log(severity.value, text + message)

    def verbose(self, message: str) -> None:
        self.log(message, LogSeverity.VERBOSE)

    def warning(self, message: str) -> None:
        self.log(message, LogSeverity.WARNING)

    def error(self, message: str) -> None:
        self.log(message, LogSeverity.ERROR)

    def begin_file(self, input_path: Path) -> None:
        """Start processing *input_path*; frames it in the log file when one is open."""
        self.input_file_path = None
        if self._log_file_open:
            header = f"Processing File: {input_path}"
            rule = "=" * len(header)
            for line in ("", rule, header, rule):
                self._file_only(line)
        self.input_file_path = input_path

    def abort_file(self) -> None:
        if self._log_file_open:
            self._file_only("PROCESSING ABORTED")

    def end_file(self) -> None:
        self.input_file_path = None
