"""Plain-text extraction from Enigma-formatted strings.

Finale text carries inline commands such as ``^fontid(3)``, ``^size(14)`` or
``^flat()``. These helpers strip the commands and report the first font that
applies to the visible text.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Final

from denigma.score_models import FontInfo

_COMMAND: Final = re.compile(r"\^(\^|[A-Za-z]+)(?:\(([^)]*)\))?")

_ACCIDENTALS: Final[dict[str, str]] = {
    "flat": "♭",
    "sharp": "♯",
    "natural": "♮",
}


def parse_enigma_text(
    raw: str,
    fonts: Mapping[int, FontInfo] | None = None,
    default_font: FontInfo | None = None,
) -> tuple[str, FontInfo | None]:
    """
    Split *raw* into visible text and the font in effect for it.

    Args:
        raw: The Enigma string as stored in the document.
        fonts: Font table used to resolve ``^fontid`` commands.
        default_font: Font used when the string sets none before its first
            visible character.

    Returns:
        ``(text, font)`` where *font* is the font active at the first visible
        character, or *default_font* when nothing else applies.
    """
    fonts = fonts or {}
    font = default_font
    size = font.size if font else None
    first_font: FontInfo | None = None
    pieces: list[str] = []
    position = 0

    def _note_text(text: str) -> None:
        nonlocal first_font
        if text and first_font is None:
            first_font = font if font is None or size is None else FontInfo(font.name, size, font.font_id)
        pieces.append(text)

    for match in _COMMAND.finditer(raw):
        _note_text(raw[position : match.start()])
        position = match.end()
        command, args = match.group(1), match.group(2) or ""
        if command == "^":
            _note_text("^")
        elif command == "fontid":
            font = fonts.get(_first_int(args), font)
        elif command in ("fontTxt", "fontMus", "fontNum"):
            name = args.split(",")[0].strip()
            if name:
                font = FontInfo(name, size or 12)
        elif command == "size":
            size = _first_int(args) or size
        elif command in _ACCIDENTALS:
            _note_text(_ACCIDENTALS[command])
    _note_text(raw[position:])

    return "".join(pieces), first_font or default_font


def trim_enigma_tags(raw: str) -> str:
    """Return only the visible characters of *raw*."""
    text, _ = parse_enigma_text(raw)
    return text


def _first_int(args: str) -> int:
    try:
        return int(args.split(",")[0].strip())
    except ValueError:
        return 0
