"""Builds small scoreXml documents for the tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from denigma.context import DenigmaContext
from denigma.mnx_exporter import MnxExporter
from denigma.score_document import ScoreDocument
from denigma.score_reader import read_score_xml

EIGHTH = 128
QUARTER = 256
HALF = 512
DOTTED_HALF = 768
WHOLE = 1024


def note(dura: int, *harm_levs: int, flags: str = "", note_flags: str = "") -> str:
    """An entry with one note per harmonic level (C4 is level 0 in C major)."""
    notes = "".join(
        f'<note id="{index}"><harmLev>{lev}</harmLev>{note_flags}</note>' for index, lev in enumerate(harm_levs, 1)
    )
    return f"<dura>{dura}</dura><isNote/>{flags}{notes}"


def rest(dura: int, flags: str = "") -> str:
    return f"<dura>{dura}</dura>{flags}"


@dataclass
class ScoreXml:
    """
    Collects records section by section and renders a ``<finale>`` document.

    Entries are added per staff, measure and layer with :meth:`layer`, which
    chains them and creates the frame records that point at them.
    """

    measures: int = 1
    staves: tuple[int, ...] = (1,)
    beats: int = 4
    divbeat: int = QUARTER
    options: list[str] = field(default_factory=list)
    others: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)
    measure_extras: dict[int, str] = field(default_factory=dict)
    measure_times: dict[int, tuple[int | str, int]] = field(default_factory=dict)
    hold_extras: dict[tuple[int, int], str] = field(default_factory=dict)
    _entries: list[str] = field(default_factory=list)
    _frames: dict[tuple[int, int], dict[int, int]] = field(default_factory=dict)
    _next_entnum: int = 1
    _next_frame: int = 1

    def layer(self, staff: int, measure: int, entries: list[str], layer: int = 1) -> list[int]:
        """Add a frame of *entries*; returns their entry numbers."""
        entnums = list(range(self._next_entnum, self._next_entnum + len(entries)))
        self._next_entnum += len(entries)
        for position, (entnum, body) in enumerate(zip(entnums, entries)):
            following = entnums[position + 1] if position + 1 < len(entnums) else 0
            self._entries.append(f'<entry entnum="{entnum}" next="{following}">{body}</entry>')
        frame_id = self._next_frame
        self._next_frame += 1
        self.details.append(
            f'<frameSpec cmper="{frame_id}"><startEntry>{entnums[0]}</startEntry>'
            f"<endEntry>{entnums[-1]}</endEntry></frameSpec>"
        )
        self._frames.setdefault((staff, measure), {})[layer] = frame_id
        return entnums

    def render(self) -> bytes:
        others = []
        for cmper in range(1, self.measures + 1):
            beats, divbeat = self.measure_times.get(cmper, (self.beats, self.divbeat))
            extra = self.measure_extras.get(cmper, "")
            others.append(
                f'<measure cmper="{cmper}"><beats>{beats}</beats><divbeat>{divbeat}</divbeat>{extra}</measure>'
            )
        for staff in self.staves:
            if not any(f'<staffSpec cmper="{staff}"' in record for record in self.others):
                others.append(f'<staffSpec cmper="{staff}"><staffLines>5</staffLines></staffSpec>')
        if not any(record.startswith("<instUsed") for record in self.others):
            insts = "".join(f"<inst>{staff}</inst>" for staff in self.staves)
            others.append(f'<instUsed cmper="0">{insts}</instUsed>')
        others.extend(self.others)

        details = list(self.details)
        for (staff, measure), frames in self._frames.items():
            frame_tags = "".join(f"<frame{layer}>{frame}</frame{layer}>" for layer, frame in sorted(frames.items()))
            extra = self.hold_extras.get((staff, measure), "")
            details.append(f'<gfhold cmper1="{staff}" cmper2="{measure}">{frame_tags}{extra}</gfhold>')

        xml = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<finale xmlns="http://www.makemusic.com/2012/finale">'
            "<header/>"
            f"<options>{''.join(self.options)}</options>"
            f"<others>{''.join(others)}</others>"
            f"<details>{''.join(details)}</details>"
            f"<entries>{''.join(self._entries)}</entries>"
            f"<texts>{''.join(self.texts)}</texts>"
            "</finale>"
        )
        return xml.encode("utf-8")

    def document(self) -> ScoreDocument:
        return read_score_xml(self.render())


def build_mnx(score: ScoreXml, ctx: DenigmaContext | None = None) -> dict[str, Any]:
    """Convert *score* to an MNX dict without writing or validating it."""
    return MnxExporter(ctx or DenigmaContext()).build(score.document())
