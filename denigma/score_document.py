"""The in-memory source document and the accessors the exporters rely on."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from fractions import Fraction

from denigma.score_models import (
    SCORE_PARTID,
    SCROLL_VIEW_IULIST,
    ArticulationAssign,
    ArticulationDef,
    BeamStubDirection,
    ClefChange,
    CrossStaff,
    DocumentOptions,
    Enharmonic,
    Entry,
    ExpressionAssign,
    ExpressionDef,
    FontInfo,
    FrameHold,
    FrameSpec,
    KeySignature,
    LyricAssign,
    LyricSyllable,
    LyricType,
    MarkingCategory,
    Measure,
    MeasureNumberRegion,
    MultimeasureRest,
    MultiStaffGroup,
    Note,
    Page,
    PartDefinition,
    PercussionNoteInfo,
    PercussionNoteType,
    Pitch,
    RepeatEnding,
    SmartShape,
    Staff,
    StaffGroup,
    StaffStyle,
    StaffStyleAssign,
    StaffSystem,
    TempoChange,
    TextRepeatAssign,
    TextRepeatDef,
    TieAlterStart,
    TimeSignature,
    TupletDef,
)


@dataclass(frozen=True)
class EntryLocation:
    """Where an entry lives: staff, measure and 1-based layer."""

    staff_id: int
    measure: int
    layer: int


@dataclass
class ScoreDocument:
    """
    Every record read from a scoreXml file, addressed by cmper.

    Records scoped to a linked part carry a ``part_id``; lookups that take a
    ``part_id`` fall back to the score's records when the part has none of
    its own.
    """

    options: DocumentOptions = field(default_factory=DocumentOptions)
    fonts: dict[int, FontInfo] = field(default_factory=dict)
    measures: dict[int, Measure] = field(default_factory=dict)
    measure_number_regions: list[MeasureNumberRegion] = field(default_factory=list)
    repeat_endings: dict[int, RepeatEnding] = field(default_factory=dict)
    text_repeat_defs: dict[int, TextRepeatDef] = field(default_factory=dict)
    text_repeat_assigns: list[TextRepeatAssign] = field(default_factory=list)
    categories: dict[int, MarkingCategory] = field(default_factory=dict)
    expression_defs: dict[tuple[bool, int], ExpressionDef] = field(default_factory=dict)
    expression_texts: dict[int, str] = field(default_factory=dict)
    expression_assigns: list[ExpressionAssign] = field(default_factory=list)
    tempo_changes: list[TempoChange] = field(default_factory=list)
    staves: dict[int, Staff] = field(default_factory=dict)
    staff_styles: dict[int, StaffStyle] = field(default_factory=dict)
    staff_style_assigns: list[StaffStyleAssign] = field(default_factory=list)
    multi_staff_groups: dict[int, MultiStaffGroup] = field(default_factory=dict)
    instruments_used: dict[tuple[int, int], list[int]] = field(default_factory=dict)
    part_definitions: dict[int, PartDefinition] = field(default_factory=dict)
    staff_systems: list[StaffSystem] = field(default_factory=list)
    pages: list[Page] = field(default_factory=list)
    staff_groups: list[StaffGroup] = field(default_factory=list)
    multimeasure_rests: list[MultimeasureRest] = field(default_factory=list)
    frame_holds: dict[tuple[int, int], FrameHold] = field(default_factory=dict)
    frame_specs: dict[int, FrameSpec] = field(default_factory=dict)
    clef_lists: dict[int, list[ClefChange]] = field(default_factory=dict)
    entries: dict[int, Entry] = field(default_factory=dict)
    tuplets: dict[int, list[TupletDef]] = field(default_factory=lambda: defaultdict(list))
    articulation_defs: dict[int, ArticulationDef] = field(default_factory=dict)
    articulation_assigns: dict[int, list[ArticulationAssign]] = field(default_factory=lambda: defaultdict(list))
    lyric_assigns: dict[int, list[LyricAssign]] = field(default_factory=lambda: defaultdict(list))
    lyric_texts: dict[tuple[LyricType, int], str] = field(default_factory=dict)
    cross_staffs: dict[tuple[int, int], CrossStaff] = field(default_factory=dict)
    beam_stubs: dict[int, BeamStubDirection] = field(default_factory=dict)
    secondary_beam_breaks: dict[int, int] = field(default_factory=dict)
    tie_alters: dict[tuple[int, int], TieAlterStart] = field(default_factory=dict)
    percussion_note_types: dict[int, PercussionNoteType] = field(default_factory=dict)
    percussion_note_infos: dict[tuple[int, int], PercussionNoteInfo] = field(default_factory=dict)
    enharmonics: dict[tuple[int, int], Enharmonic] = field(default_factory=dict)
    smart_shapes: dict[int, SmartShape] = field(default_factory=dict)
    independent_times: dict[tuple[int, int], TimeSignature] = field(default_factory=dict)
    # Non-score members of the .musx container.
    notation_metadata: bytes | None = None
    graphics: dict[str, bytes] = field(default_factory=dict)

    _entry_locations: dict[int, EntryLocation] | None = field(default=None, init=False, repr=False)

    # ------------------------------------------------------------------
    # Measures
    # ------------------------------------------------------------------

    def measure_list(self) -> list[Measure]:
        return [self.measures[cmper] for cmper in sorted(self.measures)]

    def get_measure(self, measure: int) -> Measure | None:
        return self.measures.get(measure)

    @property
    def last_measure(self) -> int:
        return max(self.measures, default=0)

    def calc_display_number(self, measure: int, part_id: int = SCORE_PARTID) -> int:
        regions = [r for r in self.measure_number_regions if r.part_id == part_id] or [
            r for r in self.measure_number_regions if r.part_id == SCORE_PARTID
        ]
        for region in regions:
            if region.contains(measure):
                return region.start_number + (measure - region.start_measure)
        return measure

    def get_time_signature(self, measure: int, staff_id: int | None = None) -> TimeSignature:
        if staff_id is not None:
            independent = self.independent_times.get((staff_id, measure))
            if independent is not None:
                return independent
        return self.measures[measure].time_signature

    def calc_measure_duration(self, measure: int, staff_id: int | None = None) -> Fraction:
        """Length of *measure* on *staff_id*, in whole notes."""
        return self.get_time_signature(measure, staff_id).total_duration

    def get_key_signature(self, measure: int) -> KeySignature:
        found = self.measures.get(measure)
        return found.key_signature if found else KeySignature()

    # ------------------------------------------------------------------
    # Staves and parts
    # ------------------------------------------------------------------

    def get_staff(self, staff_id: int, measure: int | None = None) -> Staff:
        """Return the staff, with any staff style active at *measure* applied."""
        staff = self.staves[staff_id]
        if measure is None:
            return staff
        for assign in self.staff_style_assigns:
            if assign.staff_id != staff_id or not assign.start_measure <= measure <= assign.end_measure:
                continue
            style = self.staff_styles.get(assign.style_id)
            if style is None:
                continue
            overrides = {
                name: getattr(style, name)
                for name in (
                    "default_clef",
                    "full_name",
                    "abbreviated_name",
                    "hide_name",
                    "stem_direction",
                    "transposition",
                )
                if getattr(style, name) is not None
            }
            staff = replace(staff, **overrides)
        return staff

    def staff_style_starts(self, staff_id: int) -> list[StaffStyleAssign]:
        return [assign for assign in self.staff_style_assigns if assign.staff_id == staff_id]

    def multi_staff_group_for(self, staff_id: int) -> MultiStaffGroup | None:
        for group in self.multi_staff_groups.values():
            if staff_id in group.staff_ids:
                return group
        return None

    def scroll_view(self, part_id: int = SCORE_PARTID) -> list[int]:
        return self.system_staves(part_id, SCROLL_VIEW_IULIST)

    def system_staves(self, part_id: int, system_id: int) -> list[int]:
        staves = self.instruments_used.get((part_id, system_id))
        if staves is None and system_id != SCROLL_VIEW_IULIST:
            staves = self.instruments_used.get((part_id, SCROLL_VIEW_IULIST))
        if staves is None and part_id != SCORE_PARTID:
            staves = self.instruments_used.get((SCORE_PARTID, SCROLL_VIEW_IULIST))
        return list(staves or [])

    def linked_parts(self) -> list[PartDefinition]:
        """The score and every linked part, in part order."""
        parts = dict(self.part_definitions)
        parts.setdefault(SCORE_PARTID, PartDefinition(SCORE_PARTID))
        return sorted(parts.values(), key=lambda part: (part.part_order, part.cmper))

    def systems_for(self, part_id: int) -> list[StaffSystem]:
        return sorted((s for s in self.staff_systems if s.part_id == part_id), key=lambda s: s.cmper)

    def pages_for(self, part_id: int) -> list[Page]:
        return sorted((p for p in self.pages if p.part_id == part_id), key=lambda p: p.cmper)

    def staff_groups_at(self, part_id: int, list_id: int, measure: int) -> list[StaffGroup]:
        return [
            group
            for group in self.staff_groups
            if group.part_id == part_id and group.list_id == list_id and group.is_active(measure)
        ]

    def multimeasure_rests_for(self, part_id: int) -> list[MultimeasureRest]:
        return sorted(
            (rest for rest in self.multimeasure_rests if rest.part_id == part_id),
            key=lambda rest: rest.start_measure,
        )

    # ------------------------------------------------------------------
    # Entries and frames
    # ------------------------------------------------------------------

    def frame_entries(self, staff_id: int, measure: int, layer: int) -> list[Entry]:
        """Entries of one layer (1-based) of *staff_id* in *measure*, in order."""
        hold = self.frame_holds.get((staff_id, measure))
        if hold is None:
            return []
        frame_id = hold.frames.get(layer)
        spec = self.frame_specs.get(frame_id) if frame_id else None
        if spec is None:
            return []
        result: list[Entry] = []
        entnum = spec.start_entry
        seen: set[int] = set()
        while entnum and entnum not in seen:
            entry = self.entries.get(entnum)
            if entry is None:
                break
            result.append(entry)
            seen.add(entnum)
            if entnum == spec.end_entry:
                break
            entnum = entry.next_entnum
        return result

    def locate_entry(self, entnum: int) -> EntryLocation | None:
        if self._entry_locations is None:
            locations: dict[int, EntryLocation] = {}
            for (staff_id, measure), hold in self.frame_holds.items():
                for layer in hold.frames:
                    for entry in self.frame_entries(staff_id, measure, layer):
                        locations[entry.entnum] = EntryLocation(staff_id, measure, layer)
            self._entry_locations = locations
        return self._entry_locations.get(entnum)

    def clef_at_measure_start(self, staff_id: int, measure: int) -> int:
        """Clef index in effect at the first beat of *measure*."""
        for meas in range(measure, 0, -1):
            changes = self.clef_changes(staff_id, meas)
            if changes:
                if meas == measure:
                    at_start = [c for c in changes if c.edu_position == 0]
                    if at_start:
                        return at_start[-1].clef_index
                    continue
                return changes[-1].clef_index
        return self.get_staff(staff_id, measure).default_clef

    def clef_changes(self, staff_id: int, measure: int) -> list[ClefChange]:
        hold = self.frame_holds.get((staff_id, measure))
        if hold is None:
            return []
        if hold.clef_list_id is not None:
            return sorted(self.clef_lists.get(hold.clef_list_id, []), key=lambda c: c.edu_position)
        if hold.clef_id is not None:
            return [ClefChange(hold.clef_id, 0)]
        return []

    def calc_pitch(self, entry_measure: int, note: Note) -> Pitch:
        """Concert pitch of *note*, written in *entry_measure*."""
        key = self.get_key_signature(entry_measure)
        absolute = key.tonic_step + note.harm_lev
        step = absolute % 7
        octave = 4 + absolute // 7
        return Pitch(step, octave, key.alteration(step) + note.harm_alt)

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def text_repeats_in(self, measure: int) -> list[tuple[TextRepeatAssign, TextRepeatDef]]:
        found = []
        for assign in self.text_repeat_assigns:
            if assign.measure == measure and assign.repeat_id in self.text_repeat_defs:
                found.append((assign, self.text_repeat_defs[assign.repeat_id]))
        return found

    def expressions_in(self, measure: int) -> list[ExpressionAssign]:
        return sorted(
            (assign for assign in self.expression_assigns if assign.measure == measure),
            key=lambda assign: assign.edu_position,
        )

    def expression_def_for(self, assign: ExpressionAssign) -> ExpressionDef | None:
        if assign.text_expr_id is not None:
            return self.expression_defs.get((False, assign.text_expr_id))
        if assign.shape_expr_id is not None:
            return self.expression_defs.get((True, assign.shape_expr_id))
        return None

    def tempo_changes_in(self, measure: int) -> list[TempoChange]:
        return [change for change in self.tempo_changes if change.measure == measure]

    def articulations_for(self, entnum: int) -> list[tuple[ArticulationAssign, ArticulationDef]]:
        return [
            (assign, self.articulation_defs[assign.artic_def])
            for assign in self.articulation_assigns.get(entnum, [])
            if assign.artic_def in self.articulation_defs
        ]

    def lyric_syllables(self, lyric_type: LyricType, number: int) -> list[LyricSyllable]:
        return split_syllables(self.lyric_texts.get((lyric_type, number), ""))

    def shapes_starting_at_entry(self, entnum: int) -> list[SmartShape]:
        return [
            shape
            for shape in self.smart_shapes.values()
            if shape.entry_based and shape.start.entry_number == entnum
        ]

    def ottavas_in(self, staff_id: int, measure: int) -> list[SmartShape]:
        """Ottava shapes on *staff_id* whose span touches *measure*."""
        return [
            shape
            for shape in self.smart_shapes.values()
            if shape.shape_type.is_ottava
            and shape.start.staff_id == staff_id
            and shape.start.measure <= measure <= shape.end.measure
        ]


def split_syllables(text: str) -> list[LyricSyllable]:
    """
    Break lyric text into syllables.

    Words are separated by whitespace; syllables within a word by hyphens.
    """
    syllables: list[LyricSyllable] = []
    for word in text.split():
        parts = [part for part in word.split("-") if part]
        for index, part in enumerate(parts):
            syllables.append(
                LyricSyllable(
                    text=part,
                    hyphen_before=index > 0,
                    hyphen_after=index < len(parts) - 1,
                )
            )
    return syllables
