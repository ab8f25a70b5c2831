"""Interpreted entry frames: elapsed positions, tuplets, beams and tie targets.

A frame is the run of entries for one staff, one measure and one layer. The
classes here annotate each raw :class:`~denigma.score_models.Entry` with the
facts the exporters need but the document does not store directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction

from denigma.score_document import ScoreDocument
from denigma.score_models import (
    EDU_PER_WHOLE,
    QUARTER_EDU,
    BeamStubDirection,
    Entry,
    Note,
    Pitch,
    TieAlterStart,
    TupletDef,
)


class TieTargetType(str, Enum):
    NEXT_NOTE = "nextNote"
    CROSS_VOICE = "crossVoice"
    ARPEGGIO = "arpeggio"
    CROSS_JUMP = "crossJump"


def number_of_beams(duration: int) -> int:
    """Beams (or flags) drawn for a notated duration in EDU."""
    if duration <= 0 or duration >= QUARTER_EDU:
        return 0
    base = 1 << (duration.bit_length() - 1)
    return (QUARTER_EDU // base).bit_length() - 1


@dataclass
class TupletInfo:
    """A tuplet definition resolved against the entries of one voice."""

    tuplet: TupletDef
    start_index: int
    end_index: int = -1
    start_elapsed: Fraction = Fraction(0)
    end_elapsed: Fraction = Fraction(0)
    depth: int = 0
    entry_count: int = 0

    @property
    def is_tremolo(self) -> bool:
        """A tuplet used to notate a multi-note tremolo."""
        return (
            self.tuplet.tremolo
            and self.entry_count >= 2
            and self.tuplet.reference_total % self.entry_count == 0
        )

    @property
    def reference_duration_per_entry(self) -> int:
        return self.tuplet.reference_total // max(self.entry_count, 1)


@dataclass
class EntryInfo:
    """An entry plus its interpreted position in the frame."""

    entry: Entry
    frame: EntryFrame = field(repr=False)
    index: int
    elapsed: Fraction
    actual_duration: Fraction
    tuplet_indices: list[int] = field(default_factory=list)

    @property
    def staff_id(self) -> int:
        return self.frame.staff_id

    @property
    def measure(self) -> int:
        return self.frame.measure

    @property
    def layer(self) -> int:
        return self.frame.layer

    @property
    def voice(self) -> int:
        return 2 if self.entry.voice2 else 1

    @property
    def end_elapsed(self) -> Fraction:
        return self.elapsed + self.actual_duration

    @property
    def number_of_beams(self) -> int:
        return number_of_beams(self.entry.duration)

    @property
    def can_be_beamed(self) -> bool:
        return self.number_of_beams > 0

    def calc_hidden(self) -> bool:
        return self.entry.is_hidden

    def voice_entries(self) -> list[EntryInfo]:
        return self.frame.voice_entries(self.voice)

    def next_in_voice(self) -> EntryInfo | None:
        entries = self.voice_entries()
        position = entries.index(self)
        return entries[position + 1] if position + 1 < len(entries) else None

    def previous_in_voice(self) -> EntryInfo | None:
        entries = self.voice_entries()
        position = entries.index(self)
        return entries[position - 1] if position > 0 else None

    def calc_is_beam_start(self) -> bool:
        group = self.frame.beam_group_for(self)
        return group is not None and group[0] is self

    def calc_unbeamed(self) -> bool:
        return self.frame.beam_group_for(self) is None

    def tremolo_tuplet(self) -> TupletInfo | None:
        for index in self.tuplet_indices:
            info = self.frame.tuplets[index]
            if info.is_tremolo:
                return info
        return None


class EntryFrame:
    """
    The interpreted entries of one staff, measure and layer.

    Voice 1 entries advance the measure clock. A run of voice 2 entries starts
    at the position of the voice 1 entry that launches it and keeps its own
    clock, so both voices fill the measure independently.
    """

    def __init__(self, document: ScoreDocument, staff_id: int, measure: int, layer: int) -> None:
        self.document = document
        self.staff_id = staff_id
        self.measure = measure
        self.layer = layer
        self.measure_duration = document.calc_measure_duration(measure, staff_id)
        self.entries: list[EntryInfo] = []
        self.tuplets: list[TupletInfo] = []
        self._voices: dict[int, list[EntryInfo]] = {1: [], 2: []}
        self._beam_groups: dict[int, list[list[EntryInfo]]] = {}
        self._build(document.frame_entries(staff_id, measure, layer))

    def _build(self, raw_entries: list[Entry]) -> None:
        launcher: EntryInfo | None = None
        previous_voice = 1
        launches: dict[int, EntryInfo | None] = {}
        for index, entry in enumerate(raw_entries):
            info = EntryInfo(entry=entry, frame=self, index=index, elapsed=Fraction(0), actual_duration=Fraction(0))
            if entry.voice2 and previous_voice == 1:
                launches[index] = launcher
            elif not entry.voice2 and entry.v2_launch:
                launcher = info
            self.entries.append(info)
            self._voices[info.voice].append(info)
            previous_voice = info.voice
        self._resolve_voice(self._voices[1], {})
        self._resolve_voice(self._voices[2], launches)

    def _resolve_voice(self, entries: list[EntryInfo], launches: dict[int, EntryInfo | None]) -> None:
        """Apply tuplet ratios and compute elapsed positions for one voice."""
        open_tuplets: list[tuple[int, Fraction]] = []
        clock = Fraction(0)
        for info in entries:
            if info.index in launches:
                # a voice 2 run starts where its launching voice 1 entry starts
                launcher = launches[info.index]
                clock = launcher.elapsed if launcher is not None else Fraction(0)
            info.elapsed = clock
            if info.entry.grace:
                info.actual_duration = Fraction(0)
                continue
            for tuplet in self.document.tuplets.get(info.entry.entnum, []):
                self.tuplets.append(
                    TupletInfo(tuplet=tuplet, start_index=info.index, start_elapsed=clock, depth=len(open_tuplets))
                )
                open_tuplets.append((len(self.tuplets) - 1, Fraction(tuplet.display_total)))
            ratio = Fraction(1)
            for tuplet_index, _ in open_tuplets:
                ratio *= self.tuplets[tuplet_index].tuplet.ratio
            info.tuplet_indices = [tuplet_index for tuplet_index, _ in open_tuplets]
            for tuplet_index in info.tuplet_indices:
                self.tuplets[tuplet_index].entry_count += 1
            info.actual_duration = Fraction(info.entry.duration, EDU_PER_WHOLE) * ratio
            clock += info.actual_duration
            consumed = Fraction(info.entry.duration)
            while open_tuplets:
                tuplet_index, remaining = open_tuplets[-1]
                remaining -= consumed
                if remaining > 0:
                    open_tuplets[-1] = (tuplet_index, remaining)
                    break
                open_tuplets.pop()
                closed = self.tuplets[tuplet_index]
                closed.end_index = info.index
                closed.end_elapsed = clock
                consumed = Fraction(closed.tuplet.reference_total)
        for tuplet_index, _ in open_tuplets:
            unterminated = self.tuplets[tuplet_index]
            unterminated.end_index = entries[-1].index
            unterminated.end_elapsed = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def voice_entries(self, voice: int) -> list[EntryInfo]:
        return self._voices.get(voice, [])

    @property
    def has_voice2(self) -> bool:
        return bool(self._voices[2])

    def find_entry(self, entnum: int) -> EntryInfo | None:
        return next((info for info in self.entries if info.entry.entnum == entnum), None)

    def beam_groups(self, voice: int) -> list[list[EntryInfo]]:
        """
        Primary beam groups for *voice* within this frame.

        A group starts at a beamable entry flagged as a beam start, or at the
        first beamable entry after one that cannot be beamed. Grace and
        non-grace entries never share a group. Visible rests at either end are
        not beamed; hidden entries are kept because they may stand in for
        entries beamed over the barline. Groups of one entry are unbeamed.
        """
        if voice in self._beam_groups:
            return self._beam_groups[voice]
        groups: list[list[EntryInfo]] = []
        current: list[EntryInfo] = []
        for info in self.voice_entries(voice):
            if not info.can_be_beamed:
                if current:
                    groups.append(current)
                current = []
                continue
            if current and (info.entry.beam_start or info.entry.grace != current[0].entry.grace):
                groups.append(current)
                current = []
            current.append(info)
        if current:
            groups.append(current)

        result = []
        for group in groups:
            while group and not group[0].entry.is_note and not group[0].calc_hidden():
                group = group[1:]
            while group and not group[-1].entry.is_note and not group[-1].calc_hidden():
                group = group[:-1]
            if len(group) > 1 or (group and group[-1].entry.extend_beam):
                result.append(group)
        self._beam_groups[voice] = result
        return result

    def beam_group_for(self, info: EntryInfo) -> list[EntryInfo] | None:
        for group in self.beam_groups(info.voice):
            if info in group:
                return group if len(group) > 1 else None
        return None


class EntryCursor:
    """
    Explicit cursor over the entries of one voice.

    The cursor is finite and cannot be rewound; callers that need another
    pass capture :attr:`position` first and build a new cursor.
    """

    def __init__(self, entries: list[EntryInfo], start: int = 0) -> None:
        self._entries = entries
        self.position = start

    @property
    def at_end(self) -> bool:
        return self.position >= len(self._entries)

    def current(self) -> EntryInfo | None:
        return None if self.at_end else self._entries[self.position]

    def peek(self, offset: int = 1) -> EntryInfo | None:
        index = self.position + offset
        return self._entries[index] if 0 <= index < len(self._entries) else None

    def next(self) -> EntryInfo | None:
        self.position += 1
        return self.current()

    def calc_elapsed(self) -> Fraction:
        current = self.current()
        return current.elapsed if current else Fraction(0)

    def calc_hidden(self) -> bool:
        current = self.current()
        return current.calc_hidden() if current else False


class FrameCache:
    """Builds each :class:`EntryFrame` once per export."""

    def __init__(self, document: ScoreDocument) -> None:
        self.document = document
        self._frames: dict[tuple[int, int, int], EntryFrame] = {}

    def get(self, staff_id: int, measure: int, layer: int) -> EntryFrame:
        key = (staff_id, measure, layer)
        frame = self._frames.get(key)
        if frame is None:
            frame = EntryFrame(self.document, staff_id, measure, layer)
            self._frames[key] = frame
        return frame

    def find_entry(self, entnum: int) -> EntryInfo | None:
        location = self.document.locate_entry(entnum)
        if location is None:
            return None
        return self.get(location.staff_id, location.measure, location.layer).find_entry(entnum)

    def next_entry_in_voice(self, info: EntryInfo) -> EntryInfo | None:
        """The following non-grace entry in the same voice, looking into the next measure."""
        following = info.next_in_voice()
        while following is not None and following.entry.grace:
            following = following.next_in_voice()
        if following is not None:
            return following
        if info.measure + 1 not in self.document.measures:
            return None
        frame = self.get(info.staff_id, info.measure + 1, info.layer)
        return next((e for e in frame.voice_entries(info.voice) if not e.entry.grace), None)

    # ------------------------------------------------------------------
    # Ties
    # ------------------------------------------------------------------

    def pitch_of(self, info: EntryInfo, note: Note) -> Pitch:
        return self.document.calc_pitch(info.measure, note)

    def _matching_note(self, start: EntryInfo, note: Note, candidate: EntryInfo) -> Note | None:
        if not candidate.entry.is_note:
            return None
        pitch = self.pitch_of(start, note)
        for other in candidate.entry.notes:
            if other.tie_end and self.pitch_of(candidate, other) == pitch:
                return other
        return None

    def calc_tie_target(self, info: EntryInfo, note: Note) -> tuple[EntryInfo, Note, TieTargetType] | None:
        """Where the tie starting on *note* ends, or ``None`` for a dangling tie."""
        following = self.next_entry_in_voice(info)
        if following is not None:
            target = self._matching_note(info, note, following)
            if target is not None:
                return following, target, TieTargetType.NEXT_NOTE

            # arpeggiated ties skip over intervening notes in the same voice
            candidate = following.next_in_voice() if following.measure == info.measure else None
            while candidate is not None and candidate.entry.is_note:
                target = self._matching_note(info, note, candidate)
                if target is not None:
                    return candidate, target, TieTargetType.ARPEGGIO
                candidate = candidate.next_in_voice()

        end_position = info.end_elapsed
        measure = info.measure
        if end_position >= info.frame.measure_duration and measure + 1 in self.document.measures:
            measure += 1
            end_position = Fraction(0)
        for layer in range(1, 5):
            frame = self.get(info.staff_id, measure, layer)
            for candidate in frame.entries:
                if candidate is info or candidate.entry.grace or candidate.elapsed != end_position:
                    continue
                if candidate.layer == info.layer and candidate.voice == info.voice:
                    continue
                target = self._matching_note(info, note, candidate)
                if target is not None:
                    return candidate, target, TieTargetType.CROSS_VOICE
        return None

    def calc_pseudo_lv(self, info: EntryInfo, note: Note) -> TieAlterStart | None:
        """A tie alteration that draws a laissez-vibrer tie on a note with no real tie."""
        alter = self.document.tie_alters.get((info.entry.entnum, note.note_id))
        if alter is not None and alter.active and not note.tie_start:
            return alter
        return None

    def tie_side(self, info: EntryInfo, note: Note) -> str | None:
        alter = self.document.tie_alters.get((info.entry.entnum, note.note_id))
        if alter is None or not alter.freeze_direction:
            return None
        return "up" if alter.up else "down"

    def calc_jump_tie_continuations_from(self, info: EntryInfo, note: Note) -> list[tuple[EntryInfo, Note]]:
        """
        Notes that tie into *note* across a jump or repeat.

        Only the first entry of a measure can receive such a tie. Each measure
        that jumps here (a text repeat targeting this measure, or a backward
        repeat whose section starts here) contributes its last entry in the
        same voice, if that entry has a matching tie start.
        """
        if not note.tie_end or info.entry.grace:
            return []
        first = next((e for e in info.voice_entries() if not e.entry.grace), None)
        if first is not info or info.elapsed != 0:
            return []

        sources: list[int] = []
        for assign in self.document.text_repeat_assigns:
            if assign.target_measure == info.measure and assign.measure != info.measure - 1:
                sources.append(assign.measure)
        for measure in self.document.measure_list():
            if measure.backward_repeat and measure.cmper != info.measure - 1:
                if self._repeat_section_start(measure.cmper) == info.measure:
                    sources.append(measure.cmper)

        found: list[tuple[EntryInfo, Note]] = []
        pitch = self.pitch_of(info, note)
        for source_measure in sources:
            frame = self.get(info.staff_id, source_measure, info.layer)
            candidates = [e for e in frame.voice_entries(info.voice) if not e.entry.grace]
            if not candidates or not candidates[-1].entry.is_note:
                continue
            last = candidates[-1]
            for start_note in last.entry.notes:
                if start_note.tie_start and self.pitch_of(last, start_note) == pitch:
                    found.append((last, start_note))
        return found

    def _repeat_section_start(self, measure: int) -> int:
        for candidate in range(measure, 0, -1):
            found = self.document.get_measure(candidate)
            if found is not None and found.forward_repeat:
                return candidate
        return min(self.document.measures, default=1)


def beam_stub_direction(document: ScoreDocument, group: list[EntryInfo], info: EntryInfo) -> BeamStubDirection:
    """Direction of a beam hook on *info*: the manual setting, or inferred from its place in the group."""
    manual = document.beam_stubs.get(info.entry.entnum)
    if manual is not None:
        return manual
    return BeamStubDirection.RIGHT if group and group[0] is info else BeamStubDirection.LEFT
