"""Data models for the source document read from a Finale scoreXml file."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from fractions import Fraction
from typing import Final

EDU_PER_WHOLE: Final[int] = 1024
QUARTER_EDU: Final[int] = EDU_PER_WHOLE // 4

SCORE_PARTID: Final[int] = 0
SCROLL_VIEW_IULIST: Final[int] = 0
MAX_LAYERS: Final[int] = 4

# Diatonic step names indexed from C.
STEP_NAMES: Final[str] = "CDEFGAB"
# Order in which sharps (forwards) or flats (backwards) are added to a key.
_SHARP_ORDER: Final[tuple[int, ...]] = (3, 0, 4, 1, 5, 2, 6)


class BarlineType(str, Enum):
    NONE = "none"
    OPTIONS_DEFAULT = "optionsDefault"
    NORMAL = "normal"
    DOUBLE = "double"
    FINAL = "final"
    SOLID = "solid"
    DASHED = "dashed"
    PARTIAL = "partial"
    TICK = "tick"
    CUSTOM = "custom"


class Justify(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class CategoryType(str, Enum):
    DYNAMICS = "dynamics"
    TEMPO_MARKS = "tempoMarks"
    TEMPO_ALTERATIONS = "tempoAlts"
    EXPRESSIVE_TEXT = "expressiveText"
    TECHNIQUE_TEXT = "techniqueText"
    REHEARSAL_MARKS = "rehearsalMarks"
    MISC = "misc"


class PlaybackType(str, Enum):
    NONE = "none"
    TEMPO = "tempo"
    MIDI_CONTROLLER = "midiController"
    KEY_VELOCITY = "keyVelocity"


class ShapeType(str, Enum):
    SLUR_AUTO = "slurAuto"
    SLUR_UP = "slurUp"
    SLUR_DOWN = "slurDown"
    DASH_SLUR_AUTO = "dashSlurAuto"
    DASH_SLUR_UP = "dashSlurUp"
    DASH_SLUR_DOWN = "dashSlurDown"
    DOTTED_SLUR_AUTO = "dottedSlurAuto"
    DOTTED_SLUR_UP = "dottedSlurUp"
    DOTTED_SLUR_DOWN = "dottedSlurDown"
    OCTAVE_UP = "octaveUp"
    OCTAVE_DOWN = "octaveDown"
    TWO_OCTAVE_UP = "twoOctaveUp"
    TWO_OCTAVE_DOWN = "twoOctaveDown"
    CRESCENDO = "crescendo"
    DECRESCENDO = "decrescendo"
    TRILL = "trill"
    OTHER = "other"

    @property
    def is_slur(self) -> bool:
        return "lur" in self.value

    @property
    def octave_delta(self) -> int:
        """Octaves a note under this shape is displaced, or 0 for non-ottavas."""
        return _OTTAVA_DELTAS.get(self, 0)

    @property
    def is_ottava(self) -> bool:
        return self in _OTTAVA_DELTAS


_OTTAVA_DELTAS: Final[dict[ShapeType, int]] = {
    ShapeType.OCTAVE_UP: 1,
    ShapeType.OCTAVE_DOWN: -1,
    ShapeType.TWO_OCTAVE_UP: 2,
    ShapeType.TWO_OCTAVE_DOWN: -2,
}


class BracketStyle(IntEnum):
    NONE = 0
    THICK_LINE = 1
    BRACKET_STRAIGHT_HOOKS = 2
    PIANO_BRACE = 3
    BRACKET_CURVED_HOOKS = 4
    DESK_BRACKET = 5


class TupletBracketStyle(str, Enum):
    BRACKET = "bracket"
    SLUR = "slur"
    NOTHING = "nothing"


class TupletNumberStyle(str, Enum):
    NOTHING = "nothing"
    NUMBER = "number"
    USE_RATIO = "ratio"
    RATIO_PLUS_DENOMINATOR_NOTE = "ratioPlusDenominatorNote"
    RATIO_PLUS_BOTH_NOTES = "ratioPlusBothNotes"


class TupletAutoBracketStyle(str, Enum):
    ALWAYS = "always"
    UNBEAMED_ONLY = "unbeamedOnly"
    NEVER_BEAM_SIDE = "neverBeamSide"


class StemDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class NameSource(str, Enum):
    INSTRUMENT = "instrument"
    STAFF = "staff"


class LyricType(str, Enum):
    VERSE = "verse"
    CHORUS = "chorus"
    SECTION = "section"

    @property
    def id_prefix(self) -> str:
        return self.value[0]


class BeamStubDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"


# ----------------------------------------------------------------------
# Options and fonts
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class FontInfo:
    """A font reference resolved from the document's font table."""

    name: str
    size: int = 12
    font_id: int = 0


@dataclass(frozen=True)
class ClefDef:
    """One entry of the document's clef table."""

    clef_char: int
    staff_position: int
    middle_c_position: int
    font: FontInfo | None = None


@dataclass
class DocumentOptions:
    draw_barlines: bool = True
    draw_final_barline_on_last_measure: bool = True
    draw_double_barline_before_key_changes: bool = False
    slash_flagged_grace_notes: bool = True
    clef_defs: list[ClefDef] = field(default_factory=list)
    music_font: FontInfo = field(default_factory=lambda: FontInfo("Finale Maestro", 24))
    text_font: FontInfo = field(default_factory=lambda: FontInfo("Times New Roman", 12))


# ----------------------------------------------------------------------
# Measures and global attachments
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class KeySignature:
    """A linear major key, or a keyless staff."""

    fifths: int = 0
    keyless: bool = False

    @property
    def tonic_step(self) -> int:
        return (self.fifths * 4) % 7

    def alteration(self, step: int) -> int:
        """Chromatic alteration the key applies to diatonic *step* (0 = C)."""
        if self.keyless or self.fifths == 0:
            return 0
        if self.fifths > 0:
            return 1 if step in _SHARP_ORDER[: self.fifths] else 0
        return -1 if step in _SHARP_ORDER[::-1][: -self.fifths] else 0


@dataclass(frozen=True)
class TimeSignature:
    """
    A meter as a count of beats of ``unit`` EDUs each.

    ``count`` may be fractional for composite or irrational meters.
    """

    count: Fraction
    unit: int

    @property
    def total_duration(self) -> Fraction:
        """Measure length in whole notes."""
        return self.count * self.unit / EDU_PER_WHOLE

    def calc_simplified(self) -> TimeSignature:
        """Express the meter with a power-of-two beat unit (e.g. 2 x 384 -> 6 x 128)."""
        if self.unit <= 0:
            return self
        total = self.count * self.unit
        unit = self.unit & -self.unit
        return TimeSignature(Fraction(total, unit), unit)


@dataclass(frozen=True)
class RepeatEnding:
    numbers: tuple[int, ...] = ()
    length: int = 1
    is_open: bool = False


@dataclass
class Measure:
    cmper: int
    time_signature: TimeSignature = field(default_factory=lambda: TimeSignature(Fraction(4), QUARTER_EDU))
    key_signature: KeySignature = field(default_factory=KeySignature)
    barline: BarlineType = BarlineType.NORMAL
    forward_repeat: bool = False
    backward_repeat: bool = False
    has_ending: bool = False
    has_text_repeat: bool = False
    has_expression: bool = False
    show_full_names: bool = False


@dataclass(frozen=True)
class MeasureNumberRegion:
    start_measure: int
    end_measure: int
    start_number: int
    part_id: int = SCORE_PARTID

    def contains(self, measure: int) -> bool:
        return self.start_measure <= measure <= self.end_measure


@dataclass
class TextRepeatDef:
    cmper: int
    font: FontInfo
    justify: Justify = Justify.LEFT
    text: str = ""


@dataclass(frozen=True)
class TextRepeatAssign:
    measure: int
    repeat_id: int
    target_measure: int | None = None
    hidden: bool = False


@dataclass(frozen=True)
class MarkingCategory:
    cmper: int
    category_type: CategoryType
    font_id: int | None = None


@dataclass(frozen=True)
class ExpressionDef:
    """A text or shape expression definition. Shape expressions have no text."""

    cmper: int
    category_id: int
    is_shape: bool = False
    text_id: int | None = None
    playback_type: PlaybackType = PlaybackType.NONE
    value: int = 0
    aux_data: int = 0


@dataclass(frozen=True)
class ExpressionAssign:
    measure: int
    edu_position: int
    staff_id: int
    text_expr_id: int | None = None
    shape_expr_id: int | None = None
    layer: int = 0
    voice2: bool = False
    hidden: bool = False


@dataclass(frozen=True)
class TempoChange:
    """A change entered with the Tempo Tool."""

    measure: int
    edu_position: int
    value: int
    unit: int = QUARTER_EDU
    is_relative: bool = False


# ----------------------------------------------------------------------
# Staves, parts and layout
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Transposition:
    interval: int = 0
    chromatic: int = 0
    key_adjust: int = 0
    set_to_clef: bool = False
    transposed_clef: int = 0


@dataclass
class Staff:
    cmper: int
    default_clef: int = 0
    staff_lines: int = 5
    full_name: str = ""
    abbreviated_name: str = ""
    name_source: NameSource = NameSource.STAFF
    hide_name: bool = False
    stem_direction: StemDirection | None = None
    transposition: Transposition | None = None
    is_percussion: bool = False
    multi_staff_group_id: int | None = None

    @property
    def middle_line_position(self) -> int:
        """Position of the middle line, counted in steps down from the top line."""
        return -(self.staff_lines - 1)


@dataclass(frozen=True)
class StaffStyle:
    """Staff settings that override the staff's own for a range of measures."""

    cmper: int
    default_clef: int | None = None
    full_name: str | None = None
    abbreviated_name: str | None = None
    hide_name: bool | None = None
    stem_direction: StemDirection | None = None
    transposition: Transposition | None = None


@dataclass(frozen=True)
class StaffStyleAssign:
    staff_id: int
    style_id: int
    start_measure: int
    end_measure: int


@dataclass(frozen=True)
class MultiStaffGroup:
    cmper: int
    staff_ids: tuple[int, ...]


@dataclass(frozen=True)
class PartDefinition:
    cmper: int
    name: str = ""
    part_order: int = 0
    show_transposed: bool = False

    @property
    def is_score(self) -> bool:
        return self.cmper == SCORE_PARTID


@dataclass(frozen=True)
class StaffSystem:
    """A system; ``end_measure`` is the last measure it shows."""

    cmper: int
    start_measure: int
    end_measure: int
    part_id: int = SCORE_PARTID


@dataclass(frozen=True)
class Page:
    cmper: int
    first_system: int
    part_id: int = SCORE_PARTID

    @property
    def is_blank(self) -> bool:
        return self.first_system <= 0


@dataclass(frozen=True)
class StaffGroup:
    list_id: int
    start_staff: int
    end_staff: int
    start_measure: int = 1
    end_measure: int = 32767
    bracket_style: BracketStyle = BracketStyle.NONE
    bracket_horz_adj: int = 0
    full_name: str = ""
    abbreviated_name: str = ""
    hide_name: bool = False
    part_id: int = SCORE_PARTID

    def is_active(self, measure: int) -> bool:
        return self.start_measure <= measure <= self.end_measure


@dataclass(frozen=True)
class MultimeasureRest:
    start_measure: int
    next_measure: int
    hide_number: bool = False
    part_id: int = SCORE_PARTID

    @property
    def number_of_measures(self) -> int:
        return self.next_measure - self.start_measure


# ----------------------------------------------------------------------
# Entries
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class FrameHold:
    """The frames, and clef information, for one staff in one measure."""

    staff_id: int
    measure: int
    frames: dict[int, int]
    clef_id: int | None = None
    clef_list_id: int | None = None


@dataclass(frozen=True)
class FrameSpec:
    cmper: int
    start_entry: int
    end_entry: int


@dataclass(frozen=True)
class ClefChange:
    clef_index: int
    edu_position: int


@dataclass
class Note:
    note_id: int
    harm_lev: int = 0
    harm_alt: int = 0
    tie_start: bool = False
    tie_end: bool = False
    show_acci: bool = False
    freeze_acci: bool = False
    paren_acci: bool = False
    cross_staff: bool = False


@dataclass
class Entry:
    entnum: int
    duration: int
    next_entnum: int = 0
    is_note: bool = False
    is_hidden: bool = False
    float_rest: bool = False
    grace: bool = False
    slash_grace: bool = False
    freeze_stem: bool = False
    up_stem: bool = False
    beam_start: bool = False
    extend_beam: bool = False
    voice2: bool = False
    v2_launch: bool = False
    notes: list[Note] = field(default_factory=list)

    def find_note(self, note_id: int) -> Note | None:
        return next((note for note in self.notes if note.note_id == note_id), None)


@dataclass(frozen=True)
class TupletDef:
    entnum: int
    display_number: int
    display_duration: int
    reference_number: int
    reference_duration: int
    bracket_style: TupletBracketStyle = TupletBracketStyle.BRACKET
    number_style: TupletNumberStyle = TupletNumberStyle.NUMBER
    auto_bracket_style: TupletAutoBracketStyle = TupletAutoBracketStyle.UNBEAMED_ONLY
    tremolo: bool = False

    @property
    def display_total(self) -> int:
        return self.display_number * self.display_duration

    @property
    def reference_total(self) -> int:
        return self.reference_number * self.reference_duration

    @property
    def ratio(self) -> Fraction:
        """Actual duration of the tuplet's content relative to its notated duration."""
        return Fraction(self.reference_total, self.display_total)


@dataclass(frozen=True)
class SmartShapeEndPoint:
    staff_id: int
    measure: int
    edu: int | None = None
    entry_number: int | None = None


@dataclass(frozen=True)
class SmartShape:
    cmper: int
    shape_type: ShapeType
    start: SmartShapeEndPoint
    end: SmartShapeEndPoint
    entry_based: bool = False
    hidden: bool = False


@dataclass(frozen=True)
class ArticulationDef:
    cmper: int
    char_main: int
    font: FontInfo | None = None


@dataclass(frozen=True)
class ArticulationAssign:
    entnum: int
    artic_def: int
    hidden: bool = False


@dataclass(frozen=True)
class LyricAssign:
    entnum: int
    lyric_type: LyricType
    lyric_number: int
    syllable: int


@dataclass(frozen=True)
class LyricSyllable:
    text: str
    hyphen_before: bool = False
    hyphen_after: bool = False


@dataclass(frozen=True)
class CrossStaff:
    entnum: int
    note_id: int
    staff_id: int


@dataclass(frozen=True)
class TieAlterStart:
    entnum: int
    note_id: int
    freeze_direction: bool = False
    up: bool = False
    active: bool = False


@dataclass(frozen=True)
class PercussionNoteType:
    cmper: int
    name: str
    general_midi: int = -1


@dataclass(frozen=True)
class PercussionNoteInfo:
    entnum: int
    note_id: int
    perc_note_type: int


@dataclass(frozen=True)
class Enharmonic:
    entnum: int
    note_id: int
    respelled_level: int


@dataclass(frozen=True)
class IndependentTime:
    """A staff-specific meter for one measure."""

    staff_id: int
    measure: int
    time_signature: TimeSignature


@dataclass(frozen=True)
class Pitch:
    """A concert pitch as emitted: diatonic step, octave and alteration."""

    step: int
    octave: int
    alter: int = 0

    @property
    def step_name(self) -> str:
        return STEP_NAMES[self.step]

    def transposed_octaves(self, octaves: int) -> Pitch:
        return Pitch(self.step, self.octave + octaves, self.alter)
