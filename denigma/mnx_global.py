"""Global measures: barlines, endings, jumps, keys, tempos and meters."""

from __future__ import annotations

from fractions import Fraction
from typing import Any

from denigma import smufl_support
from denigma.mnx_context import MnxContext, position
from denigma.mnx_mapping import BARLINE_TYPES, JumpType, convert_text_to_jump
from denigma.note_values import note_value
from denigma.score_models import (
    EDU_PER_WHOLE,
    QUARTER_EDU,
    BarlineType,
    Justify,
    Measure,
    PlaybackType,
)

# Lower sorts first when two tempo sources share a position.
_TEXT_TEMPO, _SHAPE_TEMPO, _TOOL_TEMPO = range(3)


def create_mappings(mctx: MnxContext) -> None:
    """Classify every repeat-text definition once, before the measures are walked."""
    for cmper, definition in mctx.document.text_repeat_defs.items():
        kind = convert_text_to_jump(definition.text, smufl_support.font_type(definition.font))
        mctx.jump_kinds[cmper] = kind
        if kind is JumpType.NONE:
            mctx.ctx.verbose(f"repeat text {cmper} ({definition.text!r}) is not a recognised jump")


def create_global(mctx: MnxContext) -> None:
    document = mctx.document
    measures = mctx.mnx["global"]["measures"]
    last_measure = document.last_measure
    prev_key_fifths: int | None = None
    prev_time: tuple[int, int] | None = None
    for measure in document.measure_list():
        mnx_measure: dict[str, Any] = {}

        barline = _barline_type(mctx, measure, measure.cmper == last_measure)
        if barline is not None:
            mnx_measure["barline"] = {"type": barline}

        ending = document.repeat_endings.get(measure.cmper)
        if ending is not None:
            mnx_ending: dict[str, Any] = {"duration": ending.length}
            if ending.numbers:
                mnx_ending["numbers"] = list(ending.numbers)
            if ending.is_open:
                mnx_ending["open"] = True
            mnx_measure["ending"] = mnx_ending

        _assign_jumps(mctx, measure, mnx_measure)

        key = measure.key_signature
        if not key.keyless and key.fifths != prev_key_fifths:
            mnx_measure["key"] = {"fifths": key.fifths}
            prev_key_fifths = key.fifths

        display_number = document.calc_display_number(measure.cmper)
        if display_number != measure.cmper:
            mnx_measure["number"] = display_number

        if measure.forward_repeat:
            mnx_measure["repeatStart"] = {}
        if measure.backward_repeat:
            mnx_measure["repeatEnd"] = {}

        tempos = _create_tempos(mctx, measure)
        if tempos:
            mnx_measure["tempos"] = tempos

        time = _time_signature(mctx, measure)
        if time is not None and time != prev_time:
            mnx_measure["time"] = {"count": time[0], "unit": time[1]}
            prev_time = time

        measures.append(mnx_measure)


# ----------------------------------------------------------------------
# Private helpers
# ----------------------------------------------------------------------


def _barline_type(mctx: MnxContext, measure: Measure, is_final: bool) -> str | None:
    document = mctx.document
    options = document.options
    if not options.draw_barlines:
        return "noBarline"
    kind = measure.barline
    if kind in (BarlineType.OPTIONS_DEFAULT, BarlineType.CUSTOM):
        return None
    if is_final and kind is BarlineType.FINAL and not options.draw_final_barline_on_last_measure:
        return "regular"
    if not is_final and kind is BarlineType.NORMAL and options.draw_double_barline_before_key_changes:
        following = document.get_measure(measure.cmper + 1)
        if following is not None and following.key_signature != measure.key_signature:
            return "double"
    if kind is BarlineType.NORMAL:
        return None
    return BARLINE_TYPES[kind]


def _assign_jumps(mctx: MnxContext, measure: Measure, mnx_measure: dict[str, Any]) -> None:
    document = mctx.document
    for assign, definition in document.text_repeats_in(measure.cmper):
        kind = mctx.jump_kinds.get(assign.repeat_id, JumpType.NONE)
        if kind is JumpType.NONE:
            continue
        location = Fraction(0)
        if definition.justify is not Justify.LEFT:
            location = document.calc_measure_duration(measure.cmper)
        glyph = smufl_support.glyph_name_for_text(definition.font, definition.text.strip())

        if kind is JumpType.SEGNO:
            segno: dict[str, Any] = {"location": position(location)}
            if glyph is not None and glyph.startswith("segno"):
                segno["glyph"] = glyph
            mnx_measure["segno"] = segno
        elif kind is JumpType.FINE:
            mnx_measure["fine"] = {"location": position(location)}
        elif kind.mnx_jump_type is None:
            # MNX has no coda marker and no da capo jump
            mctx.ctx.verbose(f"measure {measure.cmper}: {kind.value} has no MNX counterpart")
        else:
            mnx_measure["jump"] = {"type": kind.mnx_jump_type, "location": position(location)}


def _create_tempos(mctx: MnxContext, measure: Measure) -> list[dict[str, Any]]:
    document = mctx.document
    found: dict[int, tuple[int, int, int]] = {}

    def offer(edu: int, precedence: int, bpm: int, unit: int) -> None:
        if bpm <= 0:
            return
        current = found.get(edu)
        if current is None or precedence < current[0]:
            found[edu] = (precedence, bpm, unit)

    for assign in document.expressions_in(measure.cmper):
        definition = document.expression_def_for(assign)
        if definition is None or definition.playback_type is not PlaybackType.TEMPO:
            continue
        unit = definition.aux_data if definition.aux_data > 0 else QUARTER_EDU
        offer(assign.edu_position, _SHAPE_TEMPO if definition.is_shape else _TEXT_TEMPO, definition.value, unit)

    if mctx.ctx.options.include_tempo_tool:
        for change in document.tempo_changes_in(measure.cmper):
            unit = change.unit
            if change.is_relative:
                unit = min(document.get_time_signature(measure.cmper).calc_simplified().unit, QUARTER_EDU)
            offer(change.edu_position, _TOOL_TEMPO, change.value, unit)

    tempos = []
    for edu in sorted(found):
        _, bpm, unit = found[edu]
        value = note_value(unit)
        if value is None:
            mctx.ctx.warning(f"measure {measure.cmper}: tempo unit of {unit} EDU has no note value")
            continue
        tempo: dict[str, Any] = {"bpm": bpm, "value": value}
        if edu:
            tempo["location"] = position(Fraction(edu, EDU_PER_WHOLE))
        tempos.append(tempo)
    return tempos


def _time_signature(mctx: MnxContext, measure: Measure) -> tuple[int, int] | None:
    """Return ``(count, unit)`` with ``unit`` as an MNX note-value denominator."""
    simplified = measure.time_signature.calc_simplified()
    count = simplified.count
    unit = simplified.unit
    if count.denominator != 1:
        if unit % count.denominator == 0:
            unit //= count.denominator
            count *= count.denominator
        else:
            mctx.ctx.warning(f"measure {measure.cmper}: time signature {count} x {unit} EDU cannot be expressed exactly")
            count = Fraction(round(count))
    if unit <= 0 or EDU_PER_WHOLE % unit != 0:
        mctx.ctx.warning(f"measure {measure.cmper}: time signature unit of {unit} EDU is not supported")
        return None
    return int(count), EDU_PER_WHOLE // unit
