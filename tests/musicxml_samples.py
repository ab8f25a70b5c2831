"""Builds small partwise MusicXML documents for the massage tests."""

from __future__ import annotations


def musicxml(measure: str, software: str = "Finale v27.4 for Mac", extra_identification: str = "") -> bytes:
    """A one-part, one-measure document whose measure holds *measure*."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<score-partwise version="4.0">'
        "<identification><encoding>"
        f"<software>{software}</software><encoding-date>2023-05-01</encoding-date>"
        f"</encoding>{extra_identification}</identification>"
        '<part-list><score-part id="P1"><part-name>Flute</part-name></score-part></part-list>'
        f'<part id="P1"><measure number="1">{measure}</measure></part>'
        "</score-partwise>"
    ).encode()


def pitched(step: str, octave: int, note_type: str = "quarter", grace: bool = False) -> str:
    return (
        "<note>"
        + ("<grace/>" if grace else "")
        + f"<pitch><step>{step}</step><octave>{octave}</octave></pitch>"
        + ("" if grace else "<duration>1</duration>")
        + f"<type>{note_type}</type></note>"
    )


def octave_shift(shift_type: str, size: int = 8) -> str:
    return f'<direction><direction-type><octave-shift type="{shift_type}" size="{size}"/></direction-type></direction>'
