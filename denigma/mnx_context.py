"""State shared by the MNX export layers while one document is converted."""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Final

from denigma.context import DenigmaContext
from denigma.entry_frames import FrameCache
from denigma.mnx_mapping import JumpType
from denigma.score_document import ScoreDocument
from denigma.score_models import EDU_PER_WHOLE, SmartShape

MNX_VERSION: Final[int] = 1


def position(fraction: Fraction) -> dict[str, Any]:
    """MNX rhythmic position for a fraction of a whole note."""
    return {"fraction": [fraction.numerator, fraction.denominator]}


def event_id(entnum: int) -> str:
    return f"ev{entnum}"


def note_id(entnum: int, note: int) -> str:
    return f"ev{entnum}n{note}"


def voice_id(layer: int, voice: int) -> str:
    return f"layer{layer}" if voice == 1 else f"layer{layer}v2"


@dataclass(frozen=True)
class DeferredJumpTie:
    """A tie across a jump, applied after every note exists."""

    start_note_id: str
    end_note_id: str
    side: str | None = None


@dataclass
class MnxContext:
    """
    The document being built plus the indexes the layers share.

    Later layers look up what earlier layers created through these indexes
    rather than by walking the JSON tree again.
    """

    document: ScoreDocument
    ctx: DenigmaContext
    frames: FrameCache = field(init=False)
    mnx: dict[str, Any] = field(init=False)
    jump_kinds: dict[int, JumpType] = field(default_factory=dict)
    inst_to_part: dict[int, str] = field(default_factory=dict)
    part_to_inst: dict[str, list[int]] = field(default_factory=dict)
    parts_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    events_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    notes_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)
    beamed_entries: set[int] = field(default_factory=set)
    ottavas_by_measure: dict[tuple[int, int], list[SmartShape]] = field(default_factory=dict)
    lyric_lines: dict[str, str] = field(default_factory=dict)
    layout_ids: dict[tuple[int, int], str] = field(default_factory=dict)
    deferred_jump_ties: list[DeferredJumpTie] = field(default_factory=list)
    _deferred_keys: set[str] = field(default_factory=set, repr=False)

    def __post_init__(self) -> None:
        self.frames = FrameCache(self.document)
        self.mnx = {"mnx": {"version": MNX_VERSION}, "global": {"measures": []}, "parts": []}
        self._measure_index = {cmper: index for index, cmper in enumerate(sorted(self.document.measures))}

    def measure_index(self, measure: int) -> int:
        """Position of *measure* in the global measure array."""
        return self._measure_index[measure]

    def part_staff_number(self, part_id: str, staff_id: int) -> int | None:
        """1-based staff number of *staff_id* within an MNX part."""
        staves = self.part_to_inst.get(part_id, [])
        return staves.index(staff_id) + 1 if staff_id in staves else None

    def shape_end_position(self, shape: SmartShape, start: bool) -> Fraction | None:
        """
        Position of one end of *shape* within its measure.

        Returns ``None`` when the end is attached to an entry that cannot be found.
        """
        end_point = shape.start if start else shape.end
        if shape.entry_based and end_point.entry_number:
            located = self.frames.find_entry(end_point.entry_number)
            return located.elapsed if located is not None else None
        if end_point.edu is not None:
            return Fraction(end_point.edu, EDU_PER_WHOLE)
        return Fraction(0) if start else self.document.calc_measure_duration(end_point.measure)

    def defer_jump_tie(self, start_note_id: str, end_note_id: str, side: str | None) -> bool:
        key = f"{start_note_id}->{end_note_id}"
        if key in self._deferred_keys:
            return False
        self._deferred_keys.add(key)
        self.deferred_jump_ties.append(DeferredJumpTie(start_note_id, end_note_id, side))
        return True
