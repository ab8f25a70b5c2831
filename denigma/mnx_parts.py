"""Parts and their per-measure content: beams, clefs, dynamics, ottavas and sequences."""

from __future__ import annotations

from fractions import Fraction
from typing import Any

from denigma.entry_frames import EntryFrame, EntryInfo, beam_stub_direction
from denigma.enigma_text import parse_enigma_text, trim_enigma_tags
from denigma.mnx_context import MnxContext, event_id, position, voice_id
from denigma.mnx_mapping import convert_clef, convert_dynamic
from denigma.mnx_sequences import create_sequences
from denigma.score_models import EDU_PER_WHOLE, MAX_LAYERS, CategoryType, Staff, Transposition


def create_parts(mctx: MnxContext) -> None:
    """
    Create one MNX part per instrument in the scroll view.

    The staves of a multi-staff instrument are collapsed into one part.
    """
    document = mctx.document
    scroll_view = document.scroll_view()
    part_number = 0
    for staff_id in scroll_view:
        if staff_id in mctx.inst_to_part:
            continue
        group = document.multi_staff_group_for(staff_id)
        staff_ids = [s for s in group.staff_ids if s in scroll_view] if group else [staff_id]
        if not staff_ids:
            staff_ids = [staff_id]
        part_number += 1
        part_id = f"P{part_number}"
        part: dict[str, Any] = {"id": part_id}

        staff = document.get_staff(staff_ids[0], 1)
        name = trim_enigma_tags(staff.full_name).strip()
        if name:
            part["name"] = name
        short_name = trim_enigma_tags(staff.abbreviated_name).strip()
        if short_name:
            part["shortName"] = short_name
        if len(staff_ids) > 1:
            part["staves"] = len(staff_ids)
        transposition = _transposition(staff.transposition)
        if transposition is not None:
            part["transposition"] = transposition

        for member in staff_ids:
            mctx.inst_to_part[member] = part_id
        mctx.part_to_inst[part_id] = staff_ids
        mctx.parts_by_id[part_id] = part
        part["measures"] = [{"sequences": []} for _ in document.measures]
        mctx.mnx["parts"].append(part)

    for part in mctx.mnx["parts"]:
        _create_part_measures(mctx, part)


def _transposition(transposition: Transposition | None) -> dict[str, Any] | None:
    """
    MNX transposition from written to sounding pitch.

    The source stores how far the written part sits above concert pitch: a
    diatonic interval plus the key change in fifths. The half steps are the
    chromatic size the key change implies, taken in the octave closest to the
    diatonic interval.
    """
    if transposition is None:
        return None
    if not (transposition.interval or transposition.chromatic or transposition.key_adjust):
        return None
    staff_distance = -transposition.interval
    base = (-7 * transposition.key_adjust) % 12
    half_steps = base + 12 * round((staff_distance * 12 / 7 - base) / 12) - transposition.chromatic
    result: dict[str, Any] = {"interval": {"staffDistance": staff_distance, "halfSteps": half_steps}}
    if transposition.key_adjust:
        result["keyFifthsFlipAt"] = 7
    if staff_distance % 7 == 0 and half_steps % 12 == 0:
        result["prefersWrittenPitches"] = True
    return result


def _create_part_measures(mctx: MnxContext, part: dict[str, Any]) -> None:
    document = mctx.document
    staff_ids = mctx.part_to_inst[part["id"]]
    current_clefs: dict[int, int] = {}
    for measure in document.measure_list():
        part_measure = part["measures"][mctx.measure_index(measure.cmper)]
        for staff_id in staff_ids:
            _create_beams(mctx, part, staff_id, measure.cmper)
            _create_clefs(mctx, part, part_measure, staff_id, measure.cmper, current_clefs)
            _create_dynamics(mctx, part, part_measure, staff_id, measure.cmper)
            _create_ottavas(mctx, part, part_measure, staff_id, measure.cmper)
            create_sequences(mctx, part, part_measure, staff_id, measure.cmper)


def _staff_number(mctx: MnxContext, part: dict[str, Any], staff_id: int) -> int | None:
    if len(mctx.part_to_inst[part["id"]]) < 2:
        return None
    return mctx.part_staff_number(part["id"], staff_id)


# ----------------------------------------------------------------------
# Beams
# ----------------------------------------------------------------------


def _create_beams(mctx: MnxContext, part: dict[str, Any], staff_id: int, measure: int) -> None:
    for layer in range(1, MAX_LAYERS + 1):
        frame = mctx.frames.get(staff_id, measure, layer)
        for voice in (1, 2):
            for group in frame.beam_groups(voice):
                if group[0].entry.entnum in mctx.beamed_entries:
                    continue
                entries = _extend_over_barlines(mctx, group)
                mctx.beamed_entries.update(info.entry.entnum for info in entries)
                # tremolos carry their own beams
                if any(info.tremolo_tuplet() is not None for info in entries):
                    continue
                beam = _build_beam(mctx, entries, 0)
                if beam is None:
                    continue
                owner = part["measures"][mctx.measure_index(entries[0].measure)]
                owner.setdefault("beams", []).append(beam)


def _extend_over_barlines(mctx: MnxContext, group: list[EntryInfo]) -> list[EntryInfo]:
    """Continue *group* into following measures while its last entry extends the beam."""
    entries = list(group)
    while entries[-1].entry.extend_beam:
        last = entries[-1]
        if last.voice_entries()[-1] is not last or last.measure + 1 not in mctx.document.measures:
            break
        frame = mctx.frames.get(last.staff_id, last.measure + 1, last.layer)
        run = _leading_beam_run(frame, last.voice)
        if not run:
            break
        entries.extend(run)
    return entries


def _leading_beam_run(frame: EntryFrame, voice: int) -> list[EntryInfo]:
    run: list[EntryInfo] = []
    for info in frame.voice_entries(voice):
        if info.entry.grace or not info.can_be_beamed or (run and info.entry.beam_start):
            break
        run.append(info)
    return run


def _build_beam(mctx: MnxContext, entries: list[EntryInfo], depth: int) -> dict[str, Any] | None:
    """
    Build the beam at *depth* (0 for the primary beam) over *entries*.

    Deeper beams are built from runs of entries that carry them; a run of one
    entry becomes a hook.
    """
    visible = [info for info in entries if not info.calc_hidden()]
    if len(visible) < 2 and depth == 0:
        return None
    beam: dict[str, Any] = {"events": [event_id(info.entry.entnum) for info in visible]}
    hooks: list[dict[str, Any]] = []
    inner: list[dict[str, Any]] = []
    beam_number = depth + 2
    run: list[EntryInfo] = []

    def flush() -> None:
        if len(run) == 1:
            direction = beam_stub_direction(mctx.document, visible, run[0])
            hooks.append({"event": event_id(run[0].entry.entnum), "direction": direction.value})
        elif run:
            child = _build_beam(mctx, list(run), depth + 1)
            if child is not None:
                inner.append(child)
        run.clear()

    for info in visible:
        if info.number_of_beams < beam_number:
            flush()
            continue
        broken = mctx.document.secondary_beam_breaks.get(info.entry.entnum)
        if run and broken is not None and broken < beam_number:
            flush()
        run.append(info)
    flush()

    if hooks:
        beam["hooks"] = hooks
    if inner:
        beam["inner"] = inner
    return beam


# ----------------------------------------------------------------------
# Clefs
# ----------------------------------------------------------------------


def _create_clefs(
    mctx: MnxContext,
    part: dict[str, Any],
    part_measure: dict[str, Any],
    staff_id: int,
    measure: int,
    current_clefs: dict[int, int],
) -> None:
    document = mctx.document
    staff = document.get_staff(staff_id, measure)
    transposition = staff.transposition
    forced = transposition is not None and transposition.set_to_clef

    at_start = transposition.transposed_clef if forced else document.clef_at_measure_start(staff_id, measure)
    changes: list[tuple[int, Fraction]] = []
    if current_clefs.get(staff_id) != at_start:
        changes.append((at_start, Fraction(0)))
    current = at_start
    if not forced:
        for change in document.clef_changes(staff_id, measure):
            if change.edu_position <= 0 or change.clef_index == current:
                continue
            location = _snap_to_entry(mctx, staff_id, measure, Fraction(change.edu_position, EDU_PER_WHOLE))
            changes.append((change.clef_index, location))
            current = change.clef_index
    current_clefs[staff_id] = current

    for clef_index, location in changes:
        mnx_clef = _clef_object(mctx, staff, clef_index)
        if mnx_clef is None:
            continue
        clef: dict[str, Any] = {"clef": mnx_clef}
        if location:
            clef["position"] = position(location)
        staff_number = _staff_number(mctx, part, staff_id)
        if staff_number is not None:
            clef["staff"] = staff_number
        part_measure.setdefault("clefs", []).append(clef)


def _clef_object(mctx: MnxContext, staff: Staff, clef_index: int) -> dict[str, Any] | None:
    clef_defs = mctx.document.options.clef_defs
    if not 0 <= clef_index < len(clef_defs):
        mctx.ctx.warning(f"staff {staff.cmper}: clef index {clef_index} is not in the clef table")
        return None
    converted = convert_clef(clef_defs[clef_index], staff.middle_line_position)
    if converted is None:
        mctx.ctx.verbose(f"staff {staff.cmper}: clef {clef_index} has no MNX equivalent")
    return converted


def _snap_to_entry(mctx: MnxContext, staff_id: int, measure: int, location: Fraction) -> Fraction:
    """Move a mid-measure clef change onto the nearest entry position."""
    positions = {
        info.elapsed
        for layer in range(1, MAX_LAYERS + 1)
        for info in mctx.frames.get(staff_id, measure, layer).entries
        if not info.entry.grace
    }
    if not positions:
        return location
    return min(positions, key=lambda candidate: (abs(candidate - location), candidate))


# ----------------------------------------------------------------------
# Dynamics and ottavas
# ----------------------------------------------------------------------


def _create_dynamics(
    mctx: MnxContext,
    part: dict[str, Any],
    part_measure: dict[str, Any],
    staff_id: int,
    measure: int,
) -> None:
    document = mctx.document
    for assign in document.expressions_in(measure):
        if assign.hidden or assign.staff_id != staff_id or assign.text_expr_id is None:
            continue
        definition = document.expression_def_for(assign)
        if definition is None or definition.text_id is None:
            continue
        category = document.categories.get(definition.category_id)
        if category is None or category.category_type is not CategoryType.DYNAMICS:
            continue
        default_font = document.fonts.get(category.font_id) if category.font_id is not None else None
        text, font = parse_enigma_text(
            document.expression_texts.get(definition.text_id, ""),
            document.fonts,
            default_font or document.options.music_font,
        )
        value, glyph = convert_dynamic(text, font)
        if not value:
            continue
        dynamic: dict[str, Any] = {"value": value}
        if glyph is not None:
            dynamic["glyph"] = glyph
        dynamic["position"] = position(Fraction(assign.edu_position, EDU_PER_WHOLE))
        staff_number = _staff_number(mctx, part, staff_id)
        if staff_number is not None:
            dynamic["staff"] = staff_number
        if assign.layer > 0:
            dynamic["voice"] = voice_id(assign.layer, 2 if assign.voice2 else 1)
        part_measure.setdefault("dynamics", []).append(dynamic)


def _create_ottavas(
    mctx: MnxContext,
    part: dict[str, Any],
    part_measure: dict[str, Any],
    staff_id: int,
    measure: int,
) -> None:
    shapes = mctx.document.ottavas_in(staff_id, measure)
    mctx.ottavas_by_measure[(staff_id, measure)] = shapes
    for shape in shapes:
        if shape.start.measure != measure or shape.hidden:
            continue
        start = mctx.shape_end_position(shape, start=True)
        end = mctx.shape_end_position(shape, start=False)
        if start is None or end is None:
            mctx.ctx.warning(
                f"ottava {shape.cmper}: an end is attached to an entry that is not on staff {staff_id}"
            )
            start = start if start is not None else Fraction(0)
            end = end if end is not None else mctx.document.calc_measure_duration(shape.end.measure)
        ottava: dict[str, Any] = {
            "value": shape.shape_type.octave_delta,
            "position": position(start),
            "end": {
                "measure": shape.end.measure,
                "position": {"fraction": [end.numerator, end.denominator], "graceIndex": 0},
            },
        }
        staff_number = _staff_number(mctx, part, staff_id)
        if staff_number is not None:
            ottava["staff"] = staff_number
        part_measure.setdefault("ottavas", []).append(ottava)
