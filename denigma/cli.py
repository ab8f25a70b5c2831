"""denigma CLI entry point."""

from __future__ import annotations

import datetime
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from denigma import PROGRAM_NAME, __version__
from denigma.commands import (
    JSON_EXTENSION,
    MNX_EXTENSION,
    Command,
    ExportCommand,
    MassageCommand,
    OutputTarget,
)
from denigma.context import DenigmaContext, DenigmaOptions, MassageTarget
from denigma.massage_exporter import MUSICXML_EXTENSION, MXL_EXTENSION
from denigma.score_loader import ENIGMAXML_EXTENSION

SVG_UNITS = ("none", "px", "pt", "pc", "cm", "mm", "in")


def _resolve_log_path(log: str | None, no_log: bool, inputs: tuple[str, ...]) -> Path | None:
    """
    Where the log file goes, or ``None`` for no log file.

    ``--log`` without a path logs into ``denigma-logs`` beside the first
    input. A relative path is taken relative to that same directory, and a
    directory gets a time-stamped file name.
    """
    if no_log or log is None:
        return None
    first = Path(inputs[0]) if inputs else Path.cwd()
    base = first if first.is_dir() else first.parent
    path = Path(log) if log else Path(f"{PROGRAM_NAME}-logs")
    if not path.is_absolute():
        path = base / path
    if path.is_dir() or not path.suffix:
        stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        path = path / f"{PROGRAM_NAME}-{stamp}.log"
    return path


def _run(command_class: type[Command], options: DenigmaOptions, inputs: tuple[str, ...], targets: list[OutputTarget]) -> None:
    with DenigmaContext(options, arguments=sys.argv[1:]) as ctx:
        command_class(ctx).run(list(inputs), targets)
    if ctx.error_occurred:
        sys.exit(1)


def _common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every subcommand."""
    decorators = [
        click.argument("inputs", nargs=-1, required=True, metavar="INPUT..."),
        click.option("--force", "overwrite_existing", is_flag=True, help="Overwrite existing output files."),
        click.option(
            "--part",
            "part_name",
            is_flag=False,
            flag_value="",
            default=None,
            metavar="[NAME]",
            help="Process the part whose name starts with NAME, or the first part when NAME is omitted.",
        ),
        click.option("--all-parts", "all_parts_and_score", is_flag=True, help="Process the score and every part."),
        click.option("--recursive", "recursive_search", is_flag=True, help="Search input directories recursively."),
        click.option("--exclude-folder", default=None, metavar="NAME", help="Skip directories called NAME."),
        click.option("--quiet", is_flag=True, help="Only show warnings and errors."),
        click.option("--verbose", is_flag=True, help="Show verbose messages."),
        click.option("--no-validate", is_flag=True, help="Skip validation of generated output."),
        click.option(
            "--log",
            is_flag=False,
            flag_value="",
            default=None,
            metavar="[PATH]",
            help=f"Append messages to a log file (default: {PROGRAM_NAME}-logs beside the first input).",
        ),
        click.option("--no-log", is_flag=True, help="Do not write a log file."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _base_options(**kwargs: Any) -> DenigmaOptions:
    return DenigmaOptions(
        overwrite_existing=kwargs["overwrite_existing"],
        part_name=kwargs["part_name"],
        all_parts_and_score=kwargs["all_parts_and_score"],
        recursive_search=kwargs["recursive_search"],
        exclude_folder=kwargs["exclude_folder"],
        quiet=kwargs["quiet"],
        verbose=kwargs["verbose"],
        no_validate=kwargs["no_validate"],
        log_file_path=_resolve_log_path(kwargs["log"], kwargs["no_log"], kwargs["inputs"]),
    )


def _targets(**paths: str | None) -> list[OutputTarget]:
    return [(output_format, path or None) for output_format, path in paths.items() if path is not None]


def _output_option(output_format: str, help_text: str) -> Callable[..., Any]:
    return click.option(
        f"--{output_format}",
        f"{output_format}_path",
        is_flag=False,
        flag_value="",
        default=None,
        metavar="[PATH]",
        help=help_text,
    )


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name=PROGRAM_NAME)
def main() -> None:
    """denigma: export Finale documents and repair Finale MusicXML."""


# ── export subcommand ──────────────────────────────────────────────────────────

@main.command()
@_common_options
@_output_option(ENIGMAXML_EXTENSION, "Write the decoded score XML (the default output).")
@_output_option(MNX_EXTENSION, "Write an MNX document.")
@_output_option(JSON_EXTENSION, "Write an MNX document with a .json extension.")
@click.option(
    "--pretty-print",
    type=int,
    is_flag=False,
    flag_value=4,
    default=None,
    metavar="[INDENT]",
    help="Indent MNX output by INDENT spaces (default: 4).",
)
@click.option("--no-pretty-print", is_flag=True, help="Write compact MNX output.")
@click.option(
    "--mnx-schema",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Validate MNX output against this JSON schema instead of the built-in one.",
)
@click.option(
    "--include-tempo-tool/--no-include-tempo-tool",
    default=False,
    show_default=True,
    help="Include tempo changes created with the Tempo Tool.",
)
@click.option("--shape-def", default=None, metavar="CSV", help="Shape designer ids to render as SVG (unused).")
@click.option("--svg-unit", type=click.Choice(SVG_UNITS), default="none", show_default=True, help="SVG unit (unused).")
@click.option("--svg-scale", type=float, default=1.0, show_default=True, help="SVG scale (unused).")
@click.option("--svg-page-scale/--no-svg-page-scale", default=True, help="Apply page scaling to SVG (unused).")
def export(**kwargs: Any) -> None:
    """
    Export Finale documents to enigmaxml or MNX.

    INPUT is a .musx or .enigmaxml file, a directory or a glob pattern.

    \b
    Examples:
      denigma export myfile.musx
      denigma export myfile.musx --mnx
      denigma export scores --recursive --mnx exports/mnx --pretty-print 2
    """
    options = _base_options(**kwargs)
    if kwargs["no_pretty_print"]:
        options.indent_spaces = -1
    elif kwargs["pretty_print"] is not None:
        options.indent_spaces = kwargs["pretty_print"]
    options.mnx_schema_path = kwargs["mnx_schema"]
    options.include_tempo_tool = kwargs["include_tempo_tool"]
    options.shape_def = kwargs["shape_def"]
    options.svg_unit = kwargs["svg_unit"]
    options.svg_scale = kwargs["svg_scale"]
    options.svg_page_scale = kwargs["svg_page_scale"]

    targets = _targets(
        **{
            ENIGMAXML_EXTENSION: kwargs["enigmaxml_path"],
            MNX_EXTENSION: kwargs["mnx_path"],
            JSON_EXTENSION: kwargs["json_path"],
        }
    )
    _run(ExportCommand, options, kwargs["inputs"], targets)


# ── massage subcommand ─────────────────────────────────────────────────────────

@main.command()
@_common_options
@_output_option(MUSICXML_EXTENSION, "Write .musicxml output (default for .musicxml input).")
@_output_option(MXL_EXTENSION, "Write .mxl output (default for .mxl input).")
@click.option(
    "--finale-file",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Finale document, or a directory holding it, used to refloat rests.",
)
@click.option(
    "--target",
    type=click.Choice([t.value for t in MassageTarget], case_sensitive=False),
    default=None,
    help="Set the four repair switches for the program that will import the result.",
)
@click.option("--refloat-rests/--no-refloat-rests", default=None, help="Let rests float (default: on).")
@click.option("--extend-ottavas-left/--no-extend-ottavas-left", default=None, help="Start ottavas before grace notes (default: on).")
@click.option("--extend-ottavas-right/--no-extend-ottavas-right", default=None, help="End ottavas after their last note (default: on).")
@click.option("--fermata-whole-rests/--no-fermata-whole-rests", default=None, help="Make fermata whole rests full-measure rests (default: on).")
@click.option(
    "--stop-on-mismatch/--continue-on-mismatch",
    default=False,
    show_default=True,
    help="Stop repairing a measure at its first mismatch with the Finale document.",
)
def massage(**kwargs: Any) -> None:
    """
    Repair MusicXML exported by Finale.

    INPUT is a .musicxml or .mxl file, a directory or a glob pattern.

    \b
    Examples:
      denigma massage myfile.musicxml
      denigma massage myfile.mxl --part Flute --target dorico
      denigma massage exports --recursive --finale-file originals
    """
    options = _base_options(**kwargs)
    options.finale_file_path = kwargs["finale_file"]
    options.massage_stop_on_mismatch = kwargs["stop_on_mismatch"]
    if kwargs["target"] is not None:
        options.apply_target(MassageTarget(kwargs["target"].lower()))
    for name in ("refloat_rests", "extend_ottavas_left", "extend_ottavas_right", "fermata_whole_rests"):
        if kwargs[name] is not None:
            setattr(options, name, kwargs[name])

    targets = _targets(
        **{
            MUSICXML_EXTENSION: kwargs["musicxml_path"],
            MXL_EXTENSION: kwargs["mxl_path"],
        }
    )
    _run(MassageCommand, options, kwargs["inputs"], targets)


if __name__ == "__main__":
    main()
