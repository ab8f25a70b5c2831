"""Lookup tables and small conversions from source concepts to MNX values."""

from __future__ import annotations

from enum import Enum
from typing import Any, Final

from denigma import smufl_support
from denigma.score_document import ScoreDocument
from denigma.score_models import (
    BarlineType,
    ClefDef,
    FontInfo,
    TupletAutoBracketStyle,
    TupletBracketStyle,
    TupletDef,
    TupletNumberStyle,
)
from denigma.smufl_support import FontType


class JumpType(str, Enum):
    """Navigation kinds recognised in repeat text."""

    NONE = "none"
    SEGNO = "segno"
    DAL_SEGNO = "dalSegno"
    DS_AL_FINE = "dsAlFine"
    DA_CAPO = "daCapo"
    DC_AL_FINE = "dcAlFine"
    CODA = "coda"
    FINE = "fine"

    @property
    def mnx_jump_type(self) -> str | None:
        """The ``jump.type`` written for this kind, or ``None`` if it is not a jump."""
        return _MNX_JUMP_TYPES.get(self)


_MNX_JUMP_TYPES: Final[dict[JumpType, str]] = {
    JumpType.DAL_SEGNO: "segno",
    JumpType.DS_AL_FINE: "dsalfine",
}

# Checked in order; the first key found anywhere in the lowercased text wins.
_UNICODE_JUMPS: Final[tuple[tuple[str, JumpType], ...]] = (
    ("d.s. al fine", JumpType.DS_AL_FINE),
    ("dal segno al fine", JumpType.DS_AL_FINE),
    ("d.c. al fine", JumpType.DC_AL_FINE),
    ("da capo al fine", JumpType.DC_AL_FINE),
    ("d.s.", JumpType.DAL_SEGNO),
    ("dal segno", JumpType.DAL_SEGNO),
    ("d.c.", JumpType.DA_CAPO),
    ("da capo", JumpType.DA_CAPO),
    ("segno", JumpType.SEGNO),
    ("§", JumpType.SEGNO),
    ("\U0001d10b", JumpType.SEGNO),
    ("coda", JumpType.CODA),
    ("\U0001d10c", JumpType.CODA),
    ("fine", JumpType.FINE),
)
_LEGACY_JUMPS: Final[tuple[tuple[str, JumpType], ...]] = (
    ("%", JumpType.SEGNO),
    ("Þ", JumpType.CODA),
    ("\u009f", JumpType.SEGNO),
)
_SMUFL_JUMPS: Final[tuple[tuple[str, JumpType], ...]] = (
    ("\ue047", JumpType.SEGNO),
    ("\ue04a", JumpType.SEGNO),
    ("\ue04b", JumpType.SEGNO),
    ("\uf404", JumpType.SEGNO),
    ("\ue045", JumpType.DAL_SEGNO),
    ("\ue046", JumpType.DA_CAPO),
    ("\ue048", JumpType.CODA),
    ("\ue049", JumpType.CODA),
    ("\uf405", JumpType.CODA),
)


def _search(text: str, table: tuple[tuple[str, JumpType], ...]) -> JumpType | None:
    for key, jump in table:
        if key in text:
            return jump
    return None


def convert_text_to_jump(text: str, font_type: FontType) -> JumpType:
    """Classify repeat text drawn in a font of *font_type*."""
    lower = text.lower()
    if font_type is FontType.LEGACY_MUSIC:
        return _search(lower, _LEGACY_JUMPS) or JumpType.NONE
    if font_type is FontType.SMUFL:
        found = _search(lower, _SMUFL_JUMPS)
        if found is not None:
            return found
    found = _search(lower, _UNICODE_JUMPS)
    if found is not None:
        return found
    if lower == "ds" or lower.startswith("ds "):
        return JumpType.DAL_SEGNO
    if lower == "dc" or lower.startswith("dc "):
        return JumpType.DA_CAPO
    return JumpType.NONE


# ----------------------------------------------------------------------
# Barlines
# ----------------------------------------------------------------------

BARLINE_TYPES: Final[dict[BarlineType, str]] = {
    BarlineType.NONE: "noBarline",
    BarlineType.NORMAL: "regular",
    BarlineType.DOUBLE: "double",
    BarlineType.FINAL: "final",
    BarlineType.SOLID: "heavy",
    BarlineType.DASHED: "dashed",
    BarlineType.PARTIAL: "short",
    BarlineType.TICK: "tick",
}


# ----------------------------------------------------------------------
# Tuplets
# ----------------------------------------------------------------------


def tuplet_bracket(tuplet: TupletDef) -> str:
    if tuplet.bracket_style is TupletBracketStyle.NOTHING:
        return "no"
    if tuplet.auto_bracket_style is TupletAutoBracketStyle.UNBEAMED_ONLY:
        return "auto"
    # there is no MNX counterpart to "never on the beam side"
    return "yes"


def tuplet_show_number(tuplet: TupletDef) -> str:
    if tuplet.number_style is TupletNumberStyle.NOTHING:
        return "noNumber"
    if tuplet.number_style is TupletNumberStyle.NUMBER:
        return "inner"
    return "both"


def tuplet_show_value(tuplet: TupletDef) -> str:
    if tuplet.number_style is TupletNumberStyle.RATIO_PLUS_BOTH_NOTES:
        return "both"
    return "noNumber"


# ----------------------------------------------------------------------
# Clefs
# ----------------------------------------------------------------------

# Glyphs that are the ordinary drawing of a sign and octave.
_PLAIN_CLEF_GLYPHS: Final[dict[tuple[str, int], str]] = {
    ("G", 0): "gClef",
    ("G", -1): "gClef8vb",
    ("G", 1): "gClef8va",
    ("G", -2): "gClef15mb",
    ("G", 2): "gClef15ma",
    ("F", 0): "fClef",
    ("F", -1): "fClef8vb",
    ("F", 1): "fClef8va",
    ("F", -2): "fClef15mb",
    ("F", 2): "fClef15ma",
    ("C", 0): "cClef",
    ("C", -1): "cClef8vb",
}

# middle C position relative to the clef's own line, modulo 7
_SIGN_BY_OFFSET: Final[dict[int, str]] = {3: "G", 4: "F", 0: "C"}
_EXPECTED_OFFSET: Final[dict[str, int]] = {"G": -4, "F": 4, "C": 0}


def convert_clef(clef: ClefDef, middle_line: int) -> dict[str, Any] | None:
    """
    Build an MNX clef object for *clef* on a staff whose middle line is *middle_line*.

    Returns ``None`` for clefs MNX cannot express, such as percussion and tab clefs.
    """
    glyph = smufl_support.glyph_name(clef.font, clef.clef_char) if clef.font else None
    if glyph is not None and (glyph.startswith("unpitchedPercussion") or "TabClef" in glyph):
        return None
    offset = clef.middle_c_position - clef.staff_position
    sign = None
    if glyph:
        sign = {"g": "G", "f": "F", "c": "C"}.get(glyph[0])
    if sign is None:
        sign = _SIGN_BY_OFFSET.get(offset % 7)
    if sign is None:
        return None
    octave = -(offset - _EXPECTED_OFFSET[sign]) // 7

    result: dict[str, Any] = {"sign": sign, "staffPosition": clef.staff_position - middle_line}
    if octave:
        result["octave"] = octave
        if glyph == _PLAIN_CLEF_GLYPHS[(sign, 0)]:
            result["showOctave"] = False
    if glyph and glyph not in _PLAIN_CLEF_GLYPHS.values():
        result["glyph"] = glyph
    return result


# ----------------------------------------------------------------------
# Articulations
# ----------------------------------------------------------------------

_MARKINGS_BY_GLYPH: Final[dict[str, tuple[str, ...]]] = {
    "articAccent": ("accent",),
    "articStaccato": ("staccato",),
    "articTenuto": ("tenuto",),
    "articStaccatissimo": ("staccatissimo",),
    "articStaccatissimoWedge": ("spiccato",),
    "articStaccatissimoStroke": ("staccatissimo",),
    "articMarcato": ("strongAccent",),
    "articTenutoStaccato": ("tenuto", "staccato"),
    "articAccentStaccato": ("accent", "staccato"),
    "articSoftAccent": ("softAccent",),
    "articStress": ("stress",),
    "articUnstress": ("unstress",),
}
_BREATH_SYMBOLS: Final[dict[str, str]] = {
    "breathMarkComma": "comma",
    "breathMarkTick": "tick",
    "breathMarkTickLike": "tick",
    "breathMarkUpbow": "upbow",
    "breathMarkSalzedo": "salzedo",
}


def convert_articulation(char: int, font: FontInfo | None) -> dict[str, Any]:
    """MNX ``markings`` members for an articulation glyph; empty when unrecognised."""
    glyph = smufl_support.glyph_name(font, char)
    if glyph is None:
        return {}
    if glyph in _BREATH_SYMBOLS:
        return {"breath": {"symbol": _BREATH_SYMBOLS[glyph]}}
    if glyph.startswith("tremolo") and glyph[-1].isdigit():
        return {"tremolo": {"marks": int(glyph[-1])}}
    for suffix in ("Above", "Below"):
        if glyph.endswith(suffix):
            glyph = glyph[: -len(suffix)]
    return {name: {} for name in _MARKINGS_BY_GLYPH.get(glyph, ())}


# ----------------------------------------------------------------------
# Dynamics
# ----------------------------------------------------------------------

_DYNAMIC_LETTERS: Final[dict[str, str]] = {
    "dynamicPiano": "p",
    "dynamicMezzo": "m",
    "dynamicForte": "f",
    "dynamicRinforzando": "r",
    "dynamicSforzando": "s",
    "dynamicZ": "z",
    "dynamicNiente": "n",
    "dynamicPPPPPP": "pppppp",
    "dynamicPPPPP": "ppppp",
    "dynamicPPPP": "pppp",
    "dynamicPPP": "ppp",
    "dynamicPP": "pp",
    "dynamicMP": "mp",
    "dynamicMF": "mf",
    "dynamicPF": "pf",
    "dynamicFF": "ff",
    "dynamicFFF": "fff",
    "dynamicFFFF": "ffff",
    "dynamicFFFFF": "fffff",
    "dynamicFFFFFF": "ffffff",
    "dynamicFortePiano": "fp",
    "dynamicForzando": "fz",
    "dynamicSforzando1": "sf",
    "dynamicSforzandoPiano": "sfp",
    "dynamicSforzandoPianissimo": "sfpp",
    "dynamicSforzato": "sfz",
    "dynamicSforzatoPiano": "sfzp",
    "dynamicSforzatoFF": "sffz",
    "dynamicRinforzando1": "rf",
    "dynamicRinforzando2": "rfz",
}


def convert_dynamic(text: str, font: FontInfo | None) -> tuple[str, str | None]:
    """
    Return the dynamic's plain letters and, for a single SMuFL glyph, its name.

    Characters that are not dynamic glyphs are kept as they are.
    """
    letters = []
    glyphs = []
    for char in text:
        glyph = smufl_support.glyph_name(font, ord(char))
        if glyph in _DYNAMIC_LETTERS:
            letters.append(_DYNAMIC_LETTERS[glyph])
            glyphs.append(glyph)
        else:
            letters.append(char)
    value = "".join(letters).strip()
    glyph_name = None
    if len(text) == 1 and glyphs and smufl_support.font_type(font) is FontType.SMUFL:
        glyph_name = glyphs[0]
    return value, glyph_name


# ----------------------------------------------------------------------
# Percussion
# ----------------------------------------------------------------------

# General MIDI percussion key map, used when a percussion note type has no record.
GM_DRUM_NAMES: Final[dict[int, str]] = {
    35: "Acoustic Bass Drum",
    36: "Bass Drum 1",
    37: "Side Stick",
    38: "Acoustic Snare",
    39: "Hand Clap",
    40: "Electric Snare",
    41: "Low Floor Tom",
    42: "Closed Hi-Hat",
    43: "High Floor Tom",
    44: "Pedal Hi-Hat",
    45: "Low Tom",
    46: "Open Hi-Hat",
    47: "Low-Mid Tom",
    48: "Hi-Mid Tom",
    49: "Crash Cymbal 1",
    50: "High Tom",
    51: "Ride Cymbal 1",
    52: "Chinese Cymbal",
    53: "Ride Bell",
    54: "Tambourine",
    55: "Splash Cymbal",
    56: "Cowbell",
    57: "Crash Cymbal 2",
    58: "Vibraslap",
    59: "Ride Cymbal 2",
    60: "Hi Bongo",
    61: "Low Bongo",
    62: "Mute Hi Conga",
    63: "Open Hi Conga",
    64: "Low Conga",
    65: "High Timbale",
    66: "Low Timbale",
    67: "High Agogo",
    68: "Low Agogo",
    69: "Cabasa",
    70: "Maracas",
    71: "Short Whistle",
    72: "Long Whistle",
    73: "Short Guiro",
    74: "Long Guiro",
    75: "Claves",
    76: "Hi Wood Block",
    77: "Low Wood Block",
    78: "Mute Cuica",
    79: "Open Cuica",
    80: "Mute Triangle",
    81: "Open Triangle",
}


def percussion_sound(document: ScoreDocument, perc_note_type: int) -> tuple[str, int]:
    """Name and General MIDI key (``-1`` if unknown) for a percussion note type."""
    record = document.percussion_note_types.get(perc_note_type)
    if record is not None:
        return record.name, record.general_midi
    if perc_note_type in GM_DRUM_NAMES:
        return GM_DRUM_NAMES[perc_note_type], perc_note_type
    return f"Percussion {perc_note_type}", -1
