"""The export and massage commands: input discovery, output paths and the per-file loop."""

from __future__ import annotations

import fnmatch
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from denigma.context import DenigmaContext
from denigma.errors import DenigmaError, InputNotFoundError, UnsupportedFormatError
from denigma.massage_exporter import MASSAGED_SUFFIX, MUSICXML_EXTENSION, MXL_EXTENSION, MassageExporter
from denigma.mnx_exporter import MnxExporter
from denigma.score_document import ScoreDocument
from denigma.score_loader import ENIGMAXML_EXTENSION, MUSX_EXTENSION, load_score_xml, write_enigmaxml
from denigma.score_reader import read_score_xml

MNX_EXTENSION = "mnx"
JSON_EXTENSION = "json"

_GLOB_CHARACTERS = frozenset("*?[")

# (format, path given on the command line or None)
OutputTarget = tuple[str, "str | None"]


def _extension(path: Path) -> str:
    return path.suffix.lstrip(".").lower()


def _is_pattern(text: str) -> bool:
    return any(char in _GLOB_CHARACTERS for char in text)


# ----------------------------------------------------------------------
# Input discovery
# ----------------------------------------------------------------------


def _walk(base: Path, recursive: bool, exclude_folder: str | None) -> Iterator[Path]:
    if not recursive:
        yield from sorted(p for p in base.iterdir() if p.is_file())
        return
    for root, dirs, files in os.walk(base):
        dirs[:] = sorted(d for d in dirs if d != exclude_folder)
        for name in sorted(files):
            yield Path(root) / name


def discover_inputs(
    patterns: list[str],
    extensions: tuple[str, ...],
    recursive: bool = False,
    exclude_folder: str | None = None,
) -> Iterator[Path]:
    """
    Expand each argument into input files.

    A file is yielded as given. A directory yields every file in it with one
    of *extensions*. Anything else is treated as a glob matched against file
    names in its parent directory.

    Raises:
        InputNotFoundError: If an argument matches nothing that exists.
    """
    for pattern in patterns:
        path = Path(pattern)
        if path.is_file():
            yield path
            continue
        if path.is_dir():
            for candidate in _walk(path, recursive, exclude_folder):
                if _extension(candidate) in extensions:
                    yield candidate
            continue
        if not _is_pattern(path.name) or not path.parent.is_dir():
            raise InputNotFoundError(f"Input path {pattern} does not exist or is not a file or directory.")
        for candidate in _walk(path.parent, recursive, exclude_folder):
            if fnmatch.fnmatch(candidate.name, path.name):
                yield candidate


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


@dataclass
class ExportInput:
    """The decoded scoreXml of one input, with its document built on first use."""

    score_xml: bytes
    _document: ScoreDocument | None = field(default=None, repr=False)

    @property
    def document(self) -> ScoreDocument:
        if self._document is None:
            self._document = read_score_xml(self.score_xml)
        return self._document


class Command(ABC):
    """
    Shared driver for one subcommand.

    Subclasses name the extensions they read and write and implement
    :meth:`load_input` and :meth:`write_output`.
    """

    name: str = ""
    input_extensions: tuple[str, ...] = ()
    output_extensions: tuple[str, ...] = ()
    massaged_output: bool = False

    def __init__(self, ctx: DenigmaContext) -> None:
        self.ctx = ctx
        self.options = ctx.options

    @abstractmethod
    def default_output_format(self, input_path: Path) -> str:
        """Format written when no output option was given."""

    @abstractmethod
    def load_input(self, input_path: Path) -> Any:
        """Read *input_path* once; the result is handed to every output."""

    @abstractmethod
    def write_output(self, payload: Any, input_path: Path, output_path: Path, output_format: str) -> None:
        """Write one output file."""

    # ------------------------------------------------------------------
    # Output paths
    # ------------------------------------------------------------------

    def output_file_name(self, input_path: Path, output_format: str) -> str:
        if self.massaged_output:
            return f"{input_path.stem}.{MASSAGED_SUFFIX}.{output_format}"
        return f"{input_path.stem}.{output_format}"

    def compose_output_path(self, input_path: Path, output_arg: str | None, output_format: str) -> Path:
        """
        Resolve an output option into a file path.

        Relative paths are taken relative to the input's directory. A path
        that is an existing directory, ends with a separator or has no suffix
        names a directory to write into.
        """
        file_name = self.output_file_name(input_path, output_format)
        if not output_arg:
            return input_path.parent / file_name
        path = Path(output_arg)
        if not path.is_absolute():
            path = input_path.parent / path
        if path.is_dir() or output_arg.endswith(("/", os.sep)) or not path.suffix:
            return path / file_name
        if _extension(path) != output_format:
            return path.with_suffix(f".{output_format}")
        return path

    def check_output_path(self, input_path: Path, output_path: Path) -> bool:
        """Apply the overwrite rules; returns ``False`` when nothing should be written."""
        if output_path.resolve() == input_path.resolve():
            self.ctx.log("Input and output are the same. No action taken.")
            return False
        if output_path.exists():
            if not self.options.overwrite_existing:
                self.ctx.warning(f"{output_path} exists. Use --force to overwrite it.")
                return False
            self.ctx.log(f"Overwriting {output_path}")
        else:
            self.ctx.log(f"Output: {output_path}")
        return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_file(self, input_path: Path, targets: list[OutputTarget]) -> None:
        """
        Convert one input into every requested output.

        Failures are logged at error severity and end the file; the caller
        moves on to the next input.
        """
        self.ctx.begin_file(input_path)
        try:
            if _extension(input_path) not in self.input_extensions:
                allowed = " or ".join(f".{ext}" for ext in self.input_extensions)
                raise UnsupportedFormatError(f"{input_path.name} is not a {allowed} file.")
            payload = self.load_input(input_path)
            for output_format, output_arg in targets or [(self.default_output_format(input_path), None)]:
                output_path = self.compose_output_path(input_path, output_arg, output_format)
                if not self.check_output_path(input_path, output_path):
                    continue
                output_path.parent.mkdir(parents=True, exist_ok=True)
                self.write_output(payload, input_path, output_path, output_format)
        except DenigmaError as exc:
            self.ctx.error(str(exc))
            self.ctx.abort_file()
        except OSError as exc:
            self.ctx.error(f"{exc.strerror or exc}: {exc.filename or input_path}")
            self.ctx.abort_file()
        except Exception as exc:
            # a defect in one export ends that file, not the run
            self.ctx.error(f"unexpected {type(exc).__name__}: {exc}")
            self.ctx.abort_file()
        finally:
            self.ctx.end_file()

    def run(self, patterns: list[str], targets: list[OutputTarget]) -> None:
        """Process every input matched by *patterns*."""
        inputs: list[Path] = []
        for pattern in patterns:
            try:
                inputs.extend(
                    discover_inputs(
                        [pattern],
                        self.input_extensions,
                        self.options.recursive_search,
                        self.options.exclude_folder,
                    )
                )
            except InputNotFoundError as exc:
                self.ctx.error(str(exc))
        # outputs are written only after discovery, so they are never picked up as inputs
        for input_path in inputs:
            self.process_file(input_path, targets)


class ExportCommand(Command):
    """``export``: Finale documents to enigmaxml or MNX."""

    name = "export"
    input_extensions = (MUSX_EXTENSION, ENIGMAXML_EXTENSION)
    output_extensions = (ENIGMAXML_EXTENSION, MNX_EXTENSION, JSON_EXTENSION)

    def default_output_format(self, input_path: Path) -> str:
        return ENIGMAXML_EXTENSION

    def load_input(self, input_path: Path) -> ExportInput:
        return ExportInput(load_score_xml(input_path))

    def write_output(self, payload: ExportInput, input_path: Path, output_path: Path, output_format: str) -> None:
        if output_format == ENIGMAXML_EXTENSION:
            write_enigmaxml(output_path, payload.score_xml)
        elif output_format in (MNX_EXTENSION, JSON_EXTENSION):
            MnxExporter(self.ctx).export(payload.document, output_path)
        else:
            raise UnsupportedFormatError(f"export cannot write .{output_format} files")


class MassageCommand(Command):
    """``massage``: repair MusicXML exported by Finale."""

    name = "massage"
    input_extensions = (MUSICXML_EXTENSION, MXL_EXTENSION)
    output_extensions = (MUSICXML_EXTENSION, MXL_EXTENSION)
    massaged_output = True

    def default_output_format(self, input_path: Path) -> str:
        return _extension(input_path)

    def load_input(self, input_path: Path) -> None:
        if not input_path.is_file():
            raise InputNotFoundError(f"{input_path} not found")

    def write_output(self, payload: None, input_path: Path, output_path: Path, output_format: str) -> None:
        MassageExporter(self.ctx).massage(input_path, output_path)


COMMANDS: dict[str, type[Command]] = {
    ExportCommand.name: ExportCommand,
    MassageCommand.name: MassageCommand,
}
