"""Build a :class:`ScoreDocument` from scoreXml with lxml."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from fractions import Fraction
from typing import Final, TypeVar

from lxml import etree

from denigma.enigma_text import trim_enigma_tags
from denigma.errors import SourceDocumentInvalidError, XmlParseError
from denigma.score_document import ScoreDocument
from denigma.score_models import (
    QUARTER_EDU,
    ArticulationAssign,
    ArticulationDef,
    BarlineType,
    BeamStubDirection,
    BracketStyle,
    CategoryType,
    ClefChange,
    ClefDef,
    CrossStaff,
    Enharmonic,
    Entry,
    ExpressionAssign,
    ExpressionDef,
    FontInfo,
    FrameHold,
    FrameSpec,
    Justify,
    KeySignature,
    LyricAssign,
    LyricType,
    MarkingCategory,
    Measure,
    MeasureNumberRegion,
    MultimeasureRest,
    MultiStaffGroup,
    NameSource,
    Note,
    Page,
    PartDefinition,
    PercussionNoteInfo,
    PercussionNoteType,
    PlaybackType,
    RepeatEnding,
    ShapeType,
    SmartShape,
    SmartShapeEndPoint,
    Staff,
    StaffGroup,
    StaffStyle,
    StaffStyleAssign,
    StaffSystem,
    StemDirection,
    TempoChange,
    TextRepeatAssign,
    TextRepeatDef,
    TieAlterStart,
    TimeSignature,
    Transposition,
    TupletAutoBracketStyle,
    TupletBracketStyle,
    TupletDef,
    TupletNumberStyle,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)
Element = etree._Element

_DEFAULT_CLEF_FONT: Final[FontInfo] = FontInfo("Finale Maestro", 24)

# Finale's factory clef table: treble, alto, tenor, bass, percussion,
# treble 8vb, bass 8vb, baritone.
DEFAULT_CLEF_DEFS: Final[list[ClefDef]] = [
    ClefDef(0xE050, -6, -10, _DEFAULT_CLEF_FONT),
    ClefDef(0xE05C, -4, -4, _DEFAULT_CLEF_FONT),
    ClefDef(0xE05C, -2, -2, _DEFAULT_CLEF_FONT),
    ClefDef(0xE062, -2, 2, _DEFAULT_CLEF_FONT),
    ClefDef(0xE069, -4, -10, _DEFAULT_CLEF_FONT),
    ClefDef(0xE052, -6, -3, _DEFAULT_CLEF_FONT),
    ClefDef(0xE064, -2, 9, _DEFAULT_CLEF_FONT),
    ClefDef(0xE062, 0, 4, _DEFAULT_CLEF_FONT),
]


# ----------------------------------------------------------------------
# Element helpers
# ----------------------------------------------------------------------


def _text(element: Element, tag: str) -> str | None:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _int(element: Element, tag: str, default: int = 0) -> int:
    value = _opt_int(element, tag)
    return default if value is None else value


def _opt_int(element: Element, tag: str) -> int | None:
    text = _text(element, tag)
    if text is None or text == "":
        return None
    try:
        return int(text, 0) if text.lower().startswith("0x") else int(text)
    except ValueError:
        raise SourceDocumentInvalidError(f"<{tag}> of <{element.tag}> is not an integer: {text!r}") from None


def _flag(element: Element, tag: str) -> bool:
    return element.find(tag) is not None


def _attr(element: Element, name: str, default: int = 0) -> int:
    value = element.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise SourceDocumentInvalidError(f"{name} of <{element.tag}> is not an integer: {value!r}") from None


def _part(element: Element) -> int:
    return _attr(element, "part")


def _enum(enum_type: type[E], element: Element, tag: str, default: E) -> E:
    text = _text(element, tag)
    if text is None:
        return default
    try:
        return enum_type(text)
    except ValueError:
        logger.debug("unknown %s value %r; using %s", enum_type.__name__, text, default.value)
        return default


def _names(element: Element, tag: str) -> str:
    return trim_enigma_tags(_text(element, tag) or "")


def _bracket_style(value: int) -> BracketStyle:
    try:
        return BracketStyle(value)
    except ValueError:
        return BracketStyle.BRACKET_STRAIGHT_HOOKS


def _strip_namespaces(root: Element) -> None:
    for element in root.iter():
        if isinstance(element.tag, str):
            element.tag = etree.QName(element).localname


class ScoreReader:
    """
    Parse scoreXml bytes into a :class:`ScoreDocument`.

    Each section (``others``, ``details``, ``entries``, ``texts``) is read by a
    table of per-tag handlers. Unknown tags are skipped, so documents written
    by newer Finale versions still load.
    """

    def __init__(self) -> None:
        self._doc = ScoreDocument()
        self._others: dict[str, Callable[[Element], None]] = {
            "fontName": self._read_font_name,
            "measure": self._read_measure,
            "measNumbRegion": self._read_measure_number_region,
            "repeatEndingStart": self._read_repeat_ending,
            "textRepeatDef": self._read_text_repeat_def,
            "textRepeatText": self._read_text_repeat_text,
            "textRepeatAssign": self._read_text_repeat_assign,
            "markingsCategory": self._read_markings_category,
            "textExprDef": self._read_text_expression_def,
            "shapeExprDef": self._read_shape_expression_def,
            "measExprAssign": self._read_expression_assign,
            "tempoChange": self._read_tempo_change,
            "staffSpec": self._read_staff,
            "staffStyle": self._read_staff_style,
            "staffStyleAssign": self._read_staff_style_assign,
            "multiStaffInstGroup": self._read_multi_staff_group,
            "instUsed": self._read_instruments_used,
            "partDef": self._read_part_definition,
            "staffSystemSpec": self._read_staff_system,
            "pageSpec": self._read_page,
            "mmRest": self._read_multimeasure_rest,
            "smartShape": self._read_smart_shape,
            "articDef": self._read_articulation_def,
            "percNoteType": self._read_percussion_note_type,
        }
        self._details: dict[str, Callable[[Element], None]] = {
            "gfhold": self._read_frame_hold,
            "frameSpec": self._read_frame_spec,
            "clefList": self._read_clef_list,
            "staffGroup": self._read_staff_group,
            "tupletDef": self._read_tuplet_def,
            "articAssign": self._read_articulation_assign,
            "lyricAssign": self._read_lyric_assign,
            "crossStaff": self._read_cross_staff,
            "beamStub": self._read_beam_stub,
            "secBeamBreak": self._read_secondary_beam_break,
            "tieAlterStart": self._read_tie_alter_start,
            "percNoteInfo": self._read_percussion_note_info,
            "enharmonic": self._read_enharmonic,
            "indepTime": self._read_independent_time,
        }
        self._pending_repeat_texts: dict[int, str] = {}
        self._option_fonts: dict[str, tuple[int, int]] = {}
        self._clef_fonts: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read(self, xml: bytes) -> ScoreDocument:
        """
        Parse *xml* and return the populated document.

        Raises:
            XmlParseError: If *xml* is not well-formed.
            SourceDocumentInvalidError: If the root is not ``<finale>`` or a
                required value is malformed.
        """
        parser = etree.XMLParser(resolve_entities=False, remove_blank_text=True, huge_tree=True)
        try:
            root = etree.fromstring(xml, parser=parser)
        except etree.XMLSyntaxError as exc:
            raise XmlParseError(f"scoreXml is not well-formed: {exc}") from exc
        _strip_namespaces(root)
        if root.tag != "finale":
            raise SourceDocumentInvalidError(f"expected a <finale> root element, found <{root.tag}>")

        options = root.find("options")
        if options is not None:
            self._read_options(options)
        if not self._doc.options.clef_defs:
            self._doc.options.clef_defs = list(DEFAULT_CLEF_DEFS)
        self._read_section(root.find("others"), self._others)
        self._resolve_option_fonts()
        self._read_section(root.find("details"), self._details)
        self._read_entries(root.find("entries"))
        self._read_texts(root.find("texts"))

        for cmper, text in self._pending_repeat_texts.items():
            if cmper in self._doc.text_repeat_defs:
                self._doc.text_repeat_defs[cmper].text = text
        self._link_multi_staff_groups()
        if not self._doc.measures:
            raise SourceDocumentInvalidError("the document contains no measures")
        logger.debug(
            "read %d measures, %d staves, %d entries",
            len(self._doc.measures),
            len(self._doc.staves),
            len(self._doc.entries),
        )
        return self._doc

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _read_section(self, section: Element | None, handlers: dict[str, Callable[[Element], None]]) -> None:
        if section is None:
            return
        for element in section:
            if not isinstance(element.tag, str):
                continue
            handler = handlers.get(element.tag)
            if handler is not None:
                handler(element)

    def _read_options(self, options: Element) -> None:
        opts = self._doc.options
        barlines = options.find("barlineOptions")
        if barlines is not None:
            opts.draw_barlines = _flag(barlines, "drawBarlines")
            opts.draw_final_barline_on_last_measure = _flag(barlines, "drawFinalBarlineOnLastMeas")
            opts.draw_double_barline_before_key_changes = _flag(barlines, "drawDoubleBarlineBeforeKeyChanges")
        grace = options.find("graceNoteOptions")
        if grace is not None:
            opts.slash_flagged_grace_notes = _flag(grace, "slashFlaggedGraceNotes")
        # Font ids are resolved once the font table in <others> has been read.
        for font in options.iterfind("fontOptions/font"):
            self._option_fonts[font.get("type", "")] = (_int(font, "fontID"), _int(font, "fontSize", 12))
        clef_defs: dict[int, ClefDef] = {}
        for clef in options.iterfind("clefOptions/clefDef"):
            index = _attr(clef, "index")
            font_id = _opt_int(clef, "clefFont")
            if font_id is not None:
                self._clef_fonts[index] = font_id
            clef_defs[index] = ClefDef(
                clef_char=_int(clef, "clefChar"),
                staff_position=_int(clef, "staffPosition"),
                middle_c_position=_int(clef, "middleCPos"),
            )
        if clef_defs:
            opts.clef_defs = [clef_defs[index] for index in sorted(clef_defs)]

    def _resolve_option_fonts(self) -> None:
        opts = self._doc.options
        for font_type, (font_id, size) in self._option_fonts.items():
            font = self._doc.fonts.get(font_id)
            if font is None:
                continue
            if font_type == "music":
                opts.music_font = FontInfo(font.name, size, font_id)
            elif font_type == "text":
                opts.text_font = FontInfo(font.name, size, font_id)
        clef_defs = list(opts.clef_defs)
        for index, clef_def in enumerate(clef_defs):
            font_id = self._clef_fonts.get(index)
            if font_id is None:
                font = clef_def.font or opts.music_font
            else:
                base = self._doc.fonts.get(font_id, opts.music_font)
                font = FontInfo(base.name, opts.music_font.size, font_id)
            clef_defs[index] = replace(clef_def, font=font)
        opts.clef_defs = clef_defs

    def _read_entries(self, section: Element | None) -> None:
        if section is None:
            return
        for element in section.iterfind("entry"):
            entry = Entry(
                entnum=_attr(element, "entnum"),
                duration=_int(element, "dura"),
                next_entnum=_attr(element, "next"),
                is_note=_flag(element, "isNote"),
                is_hidden=_flag(element, "isHidden"),
                float_rest=_flag(element, "floatRest"),
                grace=_flag(element, "graceNote"),
                slash_grace=_flag(element, "slashGrace"),
                freeze_stem=_flag(element, "freezeStem"),
                up_stem=_flag(element, "upStem"),
                beam_start=_flag(element, "beam"),
                extend_beam=_flag(element, "extendBeam"),
                voice2=_flag(element, "voice2"),
                v2_launch=_flag(element, "v2Launch"),
            )
            for note in element.iterfind("note"):
                entry.notes.append(
                    Note(
                        note_id=_attr(note, "id"),
                        harm_lev=_int(note, "harmLev"),
                        harm_alt=_int(note, "harmAlt"),
                        tie_start=_flag(note, "tieStart"),
                        tie_end=_flag(note, "tieEnd"),
                        show_acci=_flag(note, "showAcci"),
                        freeze_acci=_flag(note, "freezeAcci"),
                        paren_acci=_flag(note, "parenAcci"),
                        cross_staff=_flag(note, "crossStaff"),
                    )
                )
            self._doc.entries[entry.entnum] = entry

    def _read_texts(self, section: Element | None) -> None:
        if section is None:
            return
        for element in section:
            if not isinstance(element.tag, str):
                continue
            number = _attr(element, "number")
            text = element.text or ""
            if element.tag == "expression":
                self._doc.expression_texts[number] = text
            elif element.tag in ("verse", "chorus", "section"):
                self._doc.lyric_texts[(LyricType(element.tag), number)] = trim_enigma_tags(text)

    def _font(self, font_id: int | None, size: int | None = None) -> FontInfo:
        if font_id is None or font_id not in self._doc.fonts:
            base = self._doc.options.text_font
        else:
            base = self._doc.fonts[font_id]
        return FontInfo(base.name, size or base.size, base.font_id)

    def _link_multi_staff_groups(self) -> None:
        for group in self._doc.multi_staff_groups.values():
            for staff_id in group.staff_ids:
                staff = self._doc.staves.get(staff_id)
                if staff is not None:
                    staff.multi_staff_group_id = group.cmper

    # ------------------------------------------------------------------
    # others
    # ------------------------------------------------------------------

    def _read_font_name(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.fonts[cmper] = FontInfo(_text(element, "name") or "", 12, cmper)

    def _read_measure(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        beats_text = _text(element, "beats") or "4"
        try:
            beats = Fraction(beats_text)
        except ValueError:
            raise SourceDocumentInvalidError(f"measure {cmper} has invalid beats {beats_text!r}") from None
        key = element.find("keySig")
        self._doc.measures[cmper] = Measure(
            cmper=cmper,
            time_signature=TimeSignature(beats, _int(element, "divbeat", QUARTER_EDU)),
            key_signature=KeySignature(
                fifths=_int(key, "key") if key is not None else 0,
                keyless=key is not None and _flag(key, "keyless"),
            ),
            barline=_enum(BarlineType, element, "barline", BarlineType.NORMAL),
            forward_repeat=_flag(element, "forRepBar"),
            backward_repeat=_flag(element, "bacRepBar"),
            has_ending=_flag(element, "barEnding"),
            has_text_repeat=_flag(element, "hasTextRepeat"),
            has_expression=_flag(element, "hasExpr"),
            show_full_names=_flag(element, "showFullNames"),
        )

    def _read_measure_number_region(self, element: Element) -> None:
        self._doc.measure_number_regions.append(
            MeasureNumberRegion(
                start_measure=_int(element, "startMeas", 1),
                end_measure=_int(element, "endMeas", 1),
                start_number=_int(element, "startNumber", 1),
                part_id=_part(element),
            )
        )

    def _read_repeat_ending(self, element: Element) -> None:
        numbers = tuple(int(n.text) for n in element.iterfind("numbers/n") if n.text)
        self._doc.repeat_endings[_attr(element, "cmper")] = RepeatEnding(
            numbers=numbers,
            length=_int(element, "length", 1),
            is_open=_flag(element, "open"),
        )

    def _read_text_repeat_def(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.text_repeat_defs[cmper] = TextRepeatDef(
            cmper=cmper,
            font=self._font(_opt_int(element, "fontID"), _opt_int(element, "fontSize")),
            justify=_enum(Justify, element, "justify", Justify.LEFT),
        )

    def _read_text_repeat_text(self, element: Element) -> None:
        self._pending_repeat_texts[_attr(element, "cmper")] = trim_enigma_tags(element.text or "")

    def _read_text_repeat_assign(self, element: Element) -> None:
        self._doc.text_repeat_assigns.append(
            TextRepeatAssign(
                measure=_attr(element, "cmper"),
                repeat_id=_int(element, "repnum"),
                target_measure=_opt_int(element, "target"),
                hidden=_flag(element, "hidden"),
            )
        )

    def _read_markings_category(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.categories[cmper] = MarkingCategory(
            cmper=cmper,
            category_type=_enum(CategoryType, element, "categoryType", CategoryType.MISC),
            font_id=_opt_int(element, "fontID"),
        )

    def _read_expression_def(self, element: Element, is_shape: bool) -> None:
        cmper = _attr(element, "cmper")
        self._doc.expression_defs[(is_shape, cmper)] = ExpressionDef(
            cmper=cmper,
            category_id=_int(element, "categoryID"),
            is_shape=is_shape,
            text_id=None if is_shape else _opt_int(element, "textID"),
            playback_type=_enum(PlaybackType, element, "playbackType", PlaybackType.NONE),
            value=_int(element, "value"),
            aux_data=_int(element, "auxdata1", QUARTER_EDU),
        )

    def _read_text_expression_def(self, element: Element) -> None:
        self._read_expression_def(element, is_shape=False)

    def _read_shape_expression_def(self, element: Element) -> None:
        self._read_expression_def(element, is_shape=True)

    def _read_expression_assign(self, element: Element) -> None:
        self._doc.expression_assigns.append(
            ExpressionAssign(
                measure=_attr(element, "cmper"),
                edu_position=_int(element, "eduPosition"),
                staff_id=_int(element, "staffAssign"),
                text_expr_id=_opt_int(element, "textExprID"),
                shape_expr_id=_opt_int(element, "shapeExprID"),
                layer=_int(element, "layer"),
                voice2=_flag(element, "voice2"),
                hidden=_flag(element, "hidden"),
            )
        )

    def _read_tempo_change(self, element: Element) -> None:
        self._doc.tempo_changes.append(
            TempoChange(
                measure=_attr(element, "cmper"),
                edu_position=_int(element, "eldur"),
                value=_int(element, "value"),
                unit=_int(element, "unit", QUARTER_EDU),
                is_relative=_flag(element, "isRelative"),
            )
        )

    def _read_transposition(self, element: Element) -> Transposition | None:
        transposition = element.find("transposition")
        if transposition is None:
            return None
        return Transposition(
            interval=_int(transposition, "interval"),
            chromatic=_int(transposition, "chromatic"),
            key_adjust=_int(transposition, "keyAdjust"),
            set_to_clef=_flag(transposition, "setToClef"),
            transposed_clef=_int(transposition, "transposedClef"),
        )

    def _read_staff(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        stem = _text(element, "stemDirection")
        self._doc.staves[cmper] = Staff(
            cmper=cmper,
            default_clef=_int(element, "defaultClef"),
            staff_lines=_int(element, "staffLines", 5),
            full_name=_names(element, "fullName"),
            abbreviated_name=_names(element, "abbrvName"),
            name_source=_enum(NameSource, element, "nameSource", NameSource.STAFF),
            hide_name=_flag(element, "hideName"),
            stem_direction=StemDirection(stem) if stem in ("up", "down") else None,
            transposition=self._read_transposition(element),
            is_percussion=_flag(element, "percussion"),
        )

    def _read_staff_style(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        stem = _text(element, "stemDirection")
        full_name = _text(element, "fullName")
        abbreviated_name = _text(element, "abbrvName")
        self._doc.staff_styles[cmper] = StaffStyle(
            cmper=cmper,
            default_clef=_opt_int(element, "defaultClef"),
            full_name=trim_enigma_tags(full_name) if full_name is not None else None,
            abbreviated_name=trim_enigma_tags(abbreviated_name) if abbreviated_name is not None else None,
            hide_name=True if _flag(element, "hideName") else None,
            stem_direction=StemDirection(stem) if stem in ("up", "down") else None,
            transposition=self._read_transposition(element),
        )

    def _read_staff_style_assign(self, element: Element) -> None:
        self._doc.staff_style_assigns.append(
            StaffStyleAssign(
                staff_id=_attr(element, "cmper"),
                style_id=_int(element, "styleID"),
                start_measure=_int(element, "startMeas", 1),
                end_measure=_int(element, "endMeas", 32767),
            )
        )

    def _read_multi_staff_group(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        staff_ids = tuple(int(n.text) for n in element.iterfind("staffNum") if n.text)
        self._doc.multi_staff_groups[cmper] = MultiStaffGroup(cmper, staff_ids)

    def _read_instruments_used(self, element: Element) -> None:
        key = (_part(element), _attr(element, "cmper"))
        staves = self._doc.instruments_used.setdefault(key, [])
        staves.extend(int(n.text) for n in element.iterfind("inst") if n.text)

    def _read_part_definition(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.part_definitions[cmper] = PartDefinition(
            cmper=cmper,
            name=_names(element, "name"),
            part_order=_int(element, "partOrder"),
            show_transposed=_flag(element, "showTransposed"),
        )

    def _read_staff_system(self, element: Element) -> None:
        start = _int(element, "startMeas", 1)
        self._doc.staff_systems.append(
            StaffSystem(
                cmper=_attr(element, "cmper"),
                start_measure=start,
                end_measure=_int(element, "endMeas", start),
                part_id=_part(element),
            )
        )

    def _read_page(self, element: Element) -> None:
        self._doc.pages.append(
            Page(cmper=_attr(element, "cmper"), first_system=_int(element, "firstSystem"), part_id=_part(element))
        )

    def _read_multimeasure_rest(self, element: Element) -> None:
        start = _attr(element, "cmper")
        self._doc.multimeasure_rests.append(
            MultimeasureRest(
                start_measure=start,
                next_measure=_int(element, "nextMeas", start + 1),
                hide_number=_flag(element, "hideNumber"),
                part_id=_part(element),
            )
        )

    def _read_end_point(self, element: Element | None, tag: str) -> SmartShapeEndPoint:
        point = element.find(f"{tag}/endPoint") if element is not None else None
        if point is None:
            raise SourceDocumentInvalidError(f"smart shape is missing its {tag} end point")
        return SmartShapeEndPoint(
            staff_id=_int(point, "inst"),
            measure=_int(point, "meas", 1),
            edu=_opt_int(point, "edu"),
            entry_number=_opt_int(point, "entryNum"),
        )

    def _read_smart_shape(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.smart_shapes[cmper] = SmartShape(
            cmper=cmper,
            shape_type=_enum(ShapeType, element, "shapeType", ShapeType.OTHER),
            start=self._read_end_point(element, "startTermSeg"),
            end=self._read_end_point(element, "endTermSeg"),
            entry_based=_flag(element, "entryBased"),
            hidden=_flag(element, "hidden"),
        )

    def _read_articulation_def(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        font_id = _opt_int(element, "fontMain")
        self._doc.articulation_defs[cmper] = ArticulationDef(
            cmper=cmper,
            char_main=_int(element, "charMain"),
            font=self._doc.fonts.get(font_id) if font_id is not None else None,
        )

    def _read_percussion_note_type(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.percussion_note_types[cmper] = PercussionNoteType(
            cmper=cmper,
            name=_text(element, "name") or f"Percussion {cmper}",
            general_midi=_int(element, "generalMidi", -1),
        )

    # ------------------------------------------------------------------
    # details
    # ------------------------------------------------------------------

    def _read_frame_hold(self, element: Element) -> None:
        staff_id = _attr(element, "cmper1")
        measure = _attr(element, "cmper2")
        frames = {}
        for layer in range(1, 5):
            frame = _int(element, f"frame{layer}")
            if frame:
                frames[layer] = frame
        self._doc.frame_holds[(staff_id, measure)] = FrameHold(
            staff_id=staff_id,
            measure=measure,
            frames=frames,
            clef_id=_opt_int(element, "clefID"),
            clef_list_id=_opt_int(element, "clefListID"),
        )

    def _read_frame_spec(self, element: Element) -> None:
        cmper = _attr(element, "cmper")
        self._doc.frame_specs[cmper] = FrameSpec(cmper, _int(element, "startEntry"), _int(element, "endEntry"))

    def _read_clef_list(self, element: Element) -> None:
        self._doc.clef_lists.setdefault(_attr(element, "cmper"), []).append(
            ClefChange(clef_index=_int(element, "clef"), edu_position=_int(element, "xEduPos"))
        )

    def _read_staff_group(self, element: Element) -> None:
        self._doc.staff_groups.append(
            StaffGroup(
                list_id=_attr(element, "cmper1"),
                start_staff=_int(element, "startInst"),
                end_staff=_int(element, "endInst"),
                start_measure=_int(element, "startMeas", 1),
                end_measure=_int(element, "endMeas", 32767),
                bracket_style=_bracket_style(_int(element, "bracket/id")),
                bracket_horz_adj=_int(element, "bracket/bracPos"),
                full_name=_names(element, "name"),
                abbreviated_name=_names(element, "abbrvName"),
                hide_name=_flag(element, "hideName"),
                part_id=_part(element),
            )
        )

    def _read_tuplet_def(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        self._doc.tuplets[entnum].append(
            TupletDef(
                entnum=entnum,
                display_number=_int(element, "symbolicNum", 3),
                display_duration=_int(element, "symbolicDur", QUARTER_EDU // 2),
                reference_number=_int(element, "refNum", 2),
                reference_duration=_int(element, "refDur", QUARTER_EDU // 2),
                bracket_style=_enum(TupletBracketStyle, element, "brackStyle", TupletBracketStyle.BRACKET),
                number_style=_enum(TupletNumberStyle, element, "numStyle", TupletNumberStyle.NUMBER),
                auto_bracket_style=_enum(
                    TupletAutoBracketStyle, element, "autoBracketStyle", TupletAutoBracketStyle.UNBEAMED_ONLY
                ),
                tremolo=_flag(element, "tremolo"),
            )
        )

    def _read_articulation_assign(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        self._doc.articulation_assigns[entnum].append(
            ArticulationAssign(entnum=entnum, artic_def=_int(element, "articDef"), hidden=_flag(element, "hidden"))
        )

    def _read_lyric_assign(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        self._doc.lyric_assigns[entnum].append(
            LyricAssign(
                entnum=entnum,
                lyric_type=_enum(LyricType, element, "type", LyricType.VERSE),
                lyric_number=_int(element, "lyricNumber", 1),
                syllable=_int(element, "syll", 1),
            )
        )

    def _read_cross_staff(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        note_id = _int(element, "noteID")
        self._doc.cross_staffs[(entnum, note_id)] = CrossStaff(entnum, note_id, _int(element, "staff"))

    def _read_beam_stub(self, element: Element) -> None:
        direction = _text(element, "direction")
        if direction in ("left", "right"):
            self._doc.beam_stubs[_attr(element, "entnum")] = BeamStubDirection(direction)

    def _read_secondary_beam_break(self, element: Element) -> None:
        self._doc.secondary_beam_breaks[_attr(element, "entnum")] = _int(element, "breakThrough", 2)

    def _read_tie_alter_start(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        note_id = _int(element, "noteID")
        self._doc.tie_alters[(entnum, note_id)] = TieAlterStart(
            entnum=entnum,
            note_id=note_id,
            freeze_direction=_flag(element, "freezeDirection"),
            up=_flag(element, "up"),
            active=_flag(element, "active"),
        )

    def _read_percussion_note_info(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        note_id = _int(element, "noteID")
        self._doc.percussion_note_infos[(entnum, note_id)] = PercussionNoteInfo(
            entnum, note_id, _int(element, "percNoteType")
        )

    def _read_enharmonic(self, element: Element) -> None:
        entnum = _attr(element, "entnum")
        note_id = _int(element, "noteID")
        self._doc.enharmonics[(entnum, note_id)] = Enharmonic(entnum, note_id, _int(element, "respelledLevel"))

    def _read_independent_time(self, element: Element) -> None:
        key = (_attr(element, "cmper1"), _attr(element, "cmper2"))
        beats = Fraction(_text(element, "beats") or "4")
        self._doc.independent_times[key] = TimeSignature(beats, _int(element, "divbeat", QUARTER_EDU))


def read_score_xml(xml: bytes) -> ScoreDocument:
    """Parse *xml* into a new :class:`ScoreDocument`."""
    return ScoreReader().read(xml)
