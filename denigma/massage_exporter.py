"""File-level massage: ``.musicxml`` and ``.mxl`` input, companion discovery and part selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from denigma.context import DenigmaContext
from denigma.errors import ArchiveEntryMissingError, DenigmaError, UnsupportedFormatError
from denigma.musicxml_massager import MusicXmlMassager, parse_musicxml
from denigma.score_document import ScoreDocument
from denigma.score_loader import ENIGMAXML_EXTENSION, MUSX_EXTENSION, load_document
from denigma.zip_archive import ArchiveEntry, VisitResult, read_entry, rewrite

logger = logging.getLogger(__name__)

MUSICXML_EXTENSION: Final[str] = "musicxml"
MXL_EXTENSION: Final[str] = "mxl"
MASSAGED_SUFFIX: Final[str] = "massaged"

CONTAINER_PATH: Final[str] = "META-INF/container.xml"
XLINK_NAMESPACE: Final[str] = "http://www.w3.org/1999/xlink"

# Companion extensions in order of preference.
_COMPANION_EXTENSIONS: Final[tuple[str, ...]] = (MUSX_EXTENSION, ENIGMAXML_EXTENSION)


@dataclass
class PartLink:
    href: str
    title: str


@dataclass
class MxlLayout:
    """Where the score and its linked parts live inside an ``.mxl`` archive."""

    score_path: str
    part_links: list[PartLink] = field(default_factory=list)


# ----------------------------------------------------------------------
# Private helpers
# ----------------------------------------------------------------------


def _extension(path: Path) -> str:
    return path.suffix.lstrip(".").lower()


def _companion_in(directory: Path, stem: str) -> Path | None:
    for extension in _COMPANION_EXTENSIONS:
        candidate = directory / f"{stem}.{extension}"
        if candidate.is_file():
            return candidate
    return None


def _input_stem(input_path: Path) -> str:
    """The input's stem without a ``.massaged`` marker left by an earlier run."""
    stem = input_path.stem
    marker = f".{MASSAGED_SUFFIX}"
    return stem[: -len(marker)] if stem.endswith(marker) else stem


def read_mxl_layout(mxl_path: Path) -> MxlLayout:
    """
    Locate the score in an ``.mxl`` and read its part links.

    Raises:
        ArchiveEntryMissingError: If the container or the score member is missing.
    """
    container = parse_musicxml(read_entry(mxl_path, CONTAINER_PATH))
    rootfile = container.getroot().find(".//rootfile")
    if rootfile is None or not rootfile.get("full-path"):
        raise ArchiveEntryMissingError(f"{CONTAINER_PATH} in {mxl_path.name} names no rootfile")
    layout = MxlLayout(score_path=rootfile.get("full-path"))

    score = parse_musicxml(read_entry(mxl_path, layout.score_path))
    for link in score.getroot().iterfind("part-list/score-part/part-link"):
        href = link.get(f"{{{XLINK_NAMESPACE}}}href")
        if href:
            layout.part_links.append(PartLink(href=href, title=link.get(f"{{{XLINK_NAMESPACE}}}title", "")))
    return layout


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------


class MassageExporter:
    """Massage one MusicXML file, either plain or packaged as ``.mxl``."""

    def __init__(self, ctx: DenigmaContext) -> None:
        self.ctx = ctx
        self.options = ctx.options

    def find_companion(self, input_path: Path) -> Path | None:
        """Find the Finale document *input_path* was exported from, if any."""
        stem = _input_stem(input_path)
        explicit = self.options.finale_file_path
        if explicit is not None:
            explicit = Path(explicit)
            if explicit.is_file():
                return explicit
            if explicit.is_dir():
                return _companion_in(explicit, stem)
            return None
        parent = input_path.parent
        return _companion_in(parent, stem) or _companion_in(parent.parent, stem)

    def load_companion(self, input_path: Path) -> ScoreDocument | None:
        if not self.options.refloat_rests:
            return None
        companion_path = self.find_companion(input_path)
        if companion_path is None:
            self.ctx.warning("no Finale document found; rests will not be refloated")
            return None
        self.ctx.verbose(f"using {companion_path} for companion repairs")
        return load_document(companion_path)

    def select_parts(self, layout: MxlLayout) -> set[str]:
        """Archive members to massage: the score plus the requested part links."""
        selected = {layout.score_path}
        part_name = self.options.part_name
        if part_name is None or self.options.all_parts_and_score:
            selected.update(link.href for link in layout.part_links)
        elif part_name == "":
            if layout.part_links:
                selected.add(layout.part_links[0].href)
        else:
            for link in layout.part_links:
                if link.title.startswith(part_name):
                    selected.add(link.href)
                    break
            else:
                self.ctx.warning(f'No part name starting with "{part_name}" was found')
        return selected

    def massage_musicxml(self, input_path: Path, output_path: Path) -> None:
        massager = MusicXmlMassager(self.ctx, self.load_companion(input_path))
        output_path.write_bytes(massager.massage(input_path.read_bytes()))

    def massage_mxl(self, input_path: Path, output_path: Path) -> None:
        layout = read_mxl_layout(input_path)
        selected = self.select_parts(layout)
        massager = MusicXmlMassager(self.ctx, self.load_companion(input_path))

        def visit(entry: ArchiveEntry, data: bytes) -> VisitResult:
            if entry.filename not in selected:
                return VisitResult()
            self.ctx.verbose(f"massaging {entry.filename}")
            return VisitResult(replacement=massager.massage(data))

        try:
            rewrite(input_path, output_path, visit)
        except DenigmaError:
            output_path.unlink(missing_ok=True)
            raise

    def massage(self, input_path: Path, output_path: Path) -> None:
        """
        Write the massaged form of *input_path* to *output_path*.

        Raises:
            UnsupportedFormatError: If the input is not MusicXML, or if only
                one of the two paths is an ``.mxl``.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        in_ext = _extension(input_path)
        out_ext = _extension(output_path)
        if in_ext not in (MUSICXML_EXTENSION, MXL_EXTENSION):
            raise UnsupportedFormatError(f"{input_path.name} is not a .{MUSICXML_EXTENSION} or .{MXL_EXTENSION} file.")
        if (in_ext == MXL_EXTENSION) != (out_ext == MXL_EXTENSION):
            not_mxl = output_path if in_ext == MXL_EXTENSION else input_path
            raise UnsupportedFormatError(f"{not_mxl.name} is not a .{MXL_EXTENSION} file.")
        if in_ext == MXL_EXTENSION:
            self.massage_mxl(input_path, output_path)
        else:
            self.massage_musicxml(input_path, output_path)
        logger.debug("massaged %s into %s", input_path, output_path)
