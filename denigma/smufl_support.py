"""SMuFL glyph-name lookup for music fonts used in a document."""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Final

from denigma.score_models import FontInfo

logger = logging.getLogger(__name__)


class FontType(str, Enum):
    UNICODE = "unicode"
    LEGACY_MUSIC = "legacyMusic"
    SMUFL = "smufl"


# Standard SMuFL codepoints for the glyphs the exporters recognise.
SMUFL_GLYPH_NAMES: Final[dict[int, str]] = {
    0xE040: "repeatLeft",
    0xE041: "repeatRight",
    0xE045: "dalSegno",
    0xE046: "daCapo",
    0xE047: "segno",
    0xE048: "coda",
    0xE049: "codaSquare",
    0xE04A: "segnoSerpent1",
    0xE04B: "segnoSerpent2",
    0xE050: "gClef",
    0xE051: "gClef15mb",
    0xE052: "gClef8vb",
    0xE053: "gClef8va",
    0xE054: "gClef15ma",
    0xE055: "gClef8vbOld",
    0xE056: "gClef8vbCClef",
    0xE057: "gClef8vbParens",
    0xE05C: "cClef",
    0xE05D: "cClef8vb",
    0xE060: "cClefSquare",
    0xE062: "fClef",
    0xE063: "fClef15mb",
    0xE064: "fClef8vb",
    0xE065: "fClef8va",
    0xE066: "fClef15ma",
    0xE069: "unpitchedPercussionClef1",
    0xE06A: "unpitchedPercussionClef2",
    0xE06D: "6stringTabClef",
    0xE4A0: "articAccentAbove",
    0xE4A2: "articStaccatoAbove",
    0xE4A4: "articTenutoAbove",
    0xE4A6: "articStaccatissimoAbove",
    0xE4A8: "articStaccatissimoWedgeAbove",
    0xE4AA: "articStaccatissimoStrokeAbove",
    0xE4AC: "articMarcatoAbove",
    0xE4B2: "articTenutoStaccatoAbove",
    0xE4B4: "articAccentStaccatoAbove",
    0xE4B6: "articLaissezVibrerAbove",
    0xE4C0: "fermataAbove",
    0xE4CE: "breathMarkComma",
    0xE4CF: "breathMarkTick",
    0xE4D0: "breathMarkTickLike",
    0xE4D4: "breathMarkSalzedo",
    0xE520: "dynamicPiano",
    0xE521: "dynamicMezzo",
    0xE522: "dynamicForte",
    0xE523: "dynamicRinforzando",
    0xE524: "dynamicSforzando",
    0xE525: "dynamicZ",
    0xE526: "dynamicNiente",
    0xE527: "dynamicPPPPPP",
    0xE528: "dynamicPPPPP",
    0xE529: "dynamicPPPP",
    0xE52A: "dynamicPPP",
    0xE52B: "dynamicPP",
    0xE52C: "dynamicMP",
    0xE52D: "dynamicMF",
    0xE52E: "dynamicPF",
    0xE52F: "dynamicFF",
    0xE530: "dynamicFFF",
    0xE531: "dynamicFFFF",
    0xE532: "dynamicFFFFF",
    0xE533: "dynamicFFFFFF",
    0xE534: "dynamicFortePiano",
    0xE535: "dynamicForzando",
    0xE536: "dynamicSforzando1",
    0xE537: "dynamicSforzandoPiano",
    0xE538: "dynamicSforzandoPianissimo",
    0xE539: "dynamicSforzato",
    0xE53A: "dynamicSforzatoPiano",
    0xE53B: "dynamicSforzatoFF",
    0xE53C: "dynamicRinforzando1",
    0xE53D: "dynamicRinforzando2",
    0xE220: "tremolo1",
    0xE221: "tremolo2",
    0xE222: "tremolo3",
    0xE223: "tremolo4",
    0xE224: "tremolo5",
    # Finale's own optional range
    0xF404: "segnoJapanese",
    0xF405: "codaJapanese",
}

# Glyphs of the pre-SMuFL Maestro-style fonts, keyed by their legacy codepoints.
LEGACY_GLYPH_NAMES: Final[dict[int, str]] = {
    0x25: "segno",
    0x26: "gClef",
    0x2F: "unpitchedPercussionClef1",
    0x3E: "articAccentAbove",
    0x3F: "fClef",
    0x42: "cClef",
    0x2E: "articStaccatoAbove",
    0x2D: "articTenutoAbove",
    0x5E: "articMarcatoAbove",
    0x2C: "breathMarkComma",
    0x55: "fermataAbove",
    0x66: "dynamicForte",
    0x6D: "dynamicMezzo",
    0x70: "dynamicPiano",
    0x73: "dynamicSforzando",
    0x7A: "dynamicZ",
    0xA0: "gClef8vb",
    0xB9: "dynamicPP",
    0xC4: "dynamicFF",
    0xC6: "dynamicFFF",
    0xB8: "dynamicPPP",
    0x46: "dynamicMF",
    0x50: "dynamicMP",
    0x9F: "segno",
    0xDE: "coda",
    0xE6: "fClef8vb",
}

LEGACY_MUSIC_FONTS: Final[frozenset[str]] = frozenset(
    {"maestro", "petrucci", "sonata", "engraver font set", "broadway copyist", "jazz", "opus", "kastelruth"}
)
KNOWN_SMUFL_FONTS: Final[frozenset[str]] = frozenset(
    {
        "finale maestro",
        "finale broadway",
        "finale jazz",
        "finale engraver",
        "finale ash",
        "finale legacy",
        "bravura",
        "petaluma",
        "leland",
        "sebastian",
        "leipzig",
        "gootville",
    }
)


def smufl_font_directories() -> list[Path]:
    """Directories where SMuFL font metadata is installed on this platform."""
    home = Path.home()
    if sys.platform == "darwin":
        return [home / "Library/Application Support/SMuFL/Fonts", Path("/Library/Application Support/SMuFL/Fonts")]
    if sys.platform.startswith("win"):
        result = []
        for variable in ("LOCALAPPDATA", "COMMONPROGRAMFILES"):
            value = os.environ.get(variable)
            if value:
                result.append(Path(value) / "SMuFL" / "Fonts")
        return result
    data_home = Path(os.environ.get("XDG_DATA_HOME") or home / ".local/share")
    directories = [data_home / "SMuFL" / "Fonts"]
    for data_dir in (os.environ.get("XDG_DATA_DIRS") or "/usr/local/share:/usr/share").split(":"):
        if data_dir:
            directories.append(Path(data_dir) / "SMuFL" / "Fonts")
    return directories


def metadata_path_for(font_name: str) -> Path | None:
    """Locate ``<Font Name>/<Font Name>.json`` (or its lowercase form) in the SMuFL directories."""
    candidates = (f"{font_name}.json", f"{font_name.lower().replace(' ', '')}.json")
    for directory in smufl_font_directories():
        for filename in candidates:
            path = directory / font_name / filename
            if path.is_file():
                return path
    return None


@lru_cache(maxsize=None)
def _optional_glyph_names(path: Path) -> dict[int, str]:
    try:
        metadata = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("unable to read SMuFL metadata %s: %s", path, exc)
        return {}
    result: dict[int, str] = {}
    for glyph_name, glyph in (metadata.get("optionalGlyphs") or {}).items():
        codepoint = glyph.get("codepoint") if isinstance(glyph, dict) else None
        if isinstance(codepoint, str) and codepoint.upper().startswith("U+"):
            result[int(codepoint[2:], 16)] = glyph_name
    return result


def font_type(font: FontInfo | None) -> FontType:
    if font is None:
        return FontType.UNICODE
    name = font.name.lower()
    if name in KNOWN_SMUFL_FONTS or metadata_path_for(font.name) is not None:
        return FontType.SMUFL
    if name in LEGACY_MUSIC_FONTS:
        return FontType.LEGACY_MUSIC
    return FontType.UNICODE


def glyph_name(font: FontInfo | None, codepoint: int) -> str | None:
    """
    SMuFL name of *codepoint* as drawn in *font*, or ``None`` when unknown.

    SMuFL fonts are checked against the standard table and then the font's
    own optional glyphs. Legacy music fonts use the Maestro layout.
    """
    kind = font_type(font)
    if kind is FontType.SMUFL:
        name = SMUFL_GLYPH_NAMES.get(codepoint)
        if name is not None:
            return name
        path = metadata_path_for(font.name)
        if path is not None:
            return _optional_glyph_names(path).get(codepoint)
        return None
    if kind is FontType.LEGACY_MUSIC:
        return LEGACY_GLYPH_NAMES.get(codepoint)
    return None


def glyph_name_for_text(font: FontInfo | None, text: str) -> str | None:
    """Glyph name for a string holding exactly one character."""
    if len(text) != 1:
        return None
    return glyph_name(font, ord(text))
