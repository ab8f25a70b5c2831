"""Conversions between EDU durations and named note values."""

from __future__ import annotations

from fractions import Fraction
from functools import lru_cache
from typing import Any, Final

from denigma.score_models import EDU_PER_WHOLE, QUARTER_EDU

# music21 spells a few type names differently from MNX and MusicXML.
_MNX_BASE_NAMES: Final[dict[str, str]] = {"duplex-maxima": "duplexMaxima"}
_MUSICXML_TYPE_NAMES: Final[dict[str, str]] = {"longa": "long"}
_FROM_MUSICXML_TYPE_NAMES: Final[dict[str, str]] = {v: k for k, v in _MUSICXML_TYPE_NAMES.items()}

# Longest dotted value used when splitting padding into groups.
MAX_DOTS: Final = 3


@lru_cache(maxsize=512)
def type_and_dots(edu: int) -> tuple[str, int] | None:
    """
    Return the music21 type name and dot count for a notated duration.

    Returns ``None`` when *edu* is not expressible as a single, possibly
    dotted, note value.
    """
    if edu <= 0:
        return None
    from music21 import duration

    conversion = duration.quarterConversion(Fraction(edu, QUARTER_EDU))
    if conversion.tuplet is not None or len(conversion.components) != 1:
        return None
    component = conversion.components[0]
    if component.type in ("zero", "inexpressible", "complex"):
        return None
    return component.type, component.dots


def note_value(edu: int) -> dict[str, Any] | None:
    """MNX ``NoteValue`` (``{"base", "dots"?}``) for *edu*, or ``None``."""
    found = type_and_dots(edu)
    if found is None:
        return None
    type_name, dots = found
    value: dict[str, Any] = {"base": _MNX_BASE_NAMES.get(type_name, type_name)}
    if dots:
        value["dots"] = dots
    return value


def note_value_quantity(multiple: int, edu: int) -> dict[str, Any] | None:
    value = note_value(edu)
    if value is None:
        return None
    return {"multiple": multiple, "duration": value}


def musicxml_type(edu: int) -> tuple[str, int] | None:
    """MusicXML ``<type>`` name and dot count for *edu*."""
    found = type_and_dots(edu)
    if found is None:
        return None
    type_name, dots = found
    return _MUSICXML_TYPE_NAMES.get(type_name, type_name), dots


def edu_for_musicxml_type(type_name: str) -> int | None:
    """Undotted EDU length of a MusicXML ``<type>`` name, or ``None`` if unknown."""
    from music21 import duration

    m21_name = _FROM_MUSICXML_TYPE_NAMES.get(type_name, type_name)
    if m21_name not in duration.typeToDuration:
        return None
    quarters = Fraction(duration.convertTypeToQuarterLength(m21_name))
    edu = quarters * QUARTER_EDU
    return int(edu) if edu.denominator == 1 else None


def binary_groups(edu: int) -> list[int]:
    """
    Split *edu* into dotted-value groups, largest first.

    Each run of adjacent set bits becomes one group, so 768 (a dotted half)
    stays whole while 640 becomes a half plus an eighth. Runs longer than
    a triple-dotted value are split so that every group has a note value.
    """
    groups: list[int] = []
    remaining = edu
    while remaining > 0:
        top = 1 << (remaining.bit_length() - 1)
        group = top
        bit = top >> 1
        dots = 0
        while bit and remaining & bit and dots < MAX_DOTS:
            group |= bit
            bit >>= 1
            dots += 1
        groups.append(group)
        remaining &= ~group
    return groups


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def padding_values(remainder: Fraction) -> list[int]:
    """
    EDU lengths of the spaces that fill *remainder* whole notes.

    Empty when the remainder is not positive or cannot be written with binary
    note values.
    """
    if remainder <= 0 or not is_power_of_two(remainder.denominator):
        return []
    edu = remainder * EDU_PER_WHOLE
    if edu.denominator != 1:
        return []
    return binary_groups(int(edu))
