"""Sequences, events and notes for one staff of one measure, plus deferred jump ties."""

from __future__ import annotations

from fractions import Fraction
from typing import Any

from denigma.entry_frames import EntryCursor, EntryFrame, EntryInfo, TieTargetType, number_of_beams
from denigma.mnx_context import MnxContext, event_id, note_id, voice_id
from denigma.mnx_mapping import (
    convert_articulation,
    percussion_sound,
    tuplet_bracket,
    tuplet_show_number,
    tuplet_show_value,
)
from denigma.note_values import binary_groups, note_value, note_value_quantity, padding_values
from denigma.score_models import Note, ShapeType, SmartShape

_LINE_TYPES = {
    ShapeType.DASH_SLUR_AUTO: "dashed",
    ShapeType.DASH_SLUR_UP: "dashed",
    ShapeType.DASH_SLUR_DOWN: "dashed",
    ShapeType.DOTTED_SLUR_AUTO: "dotted",
    ShapeType.DOTTED_SLUR_UP: "dotted",
    ShapeType.DOTTED_SLUR_DOWN: "dotted",
}
_SLUR_SIDES = {
    ShapeType.SLUR_UP: "up",
    ShapeType.DASH_SLUR_UP: "up",
    ShapeType.DOTTED_SLUR_UP: "up",
    ShapeType.SLUR_DOWN: "down",
    ShapeType.DASH_SLUR_DOWN: "down",
    ShapeType.DOTTED_SLUR_DOWN: "down",
}


def create_sequences(
    mctx: MnxContext,
    part: dict[str, Any],
    part_measure: dict[str, Any],
    staff_id: int,
    measure: int,
) -> None:
    """Append one sequence per active layer and voice of *staff_id* to *part_measure*."""
    frames = [mctx.frames.get(staff_id, measure, layer) for layer in range(1, 5)]
    active_layers = [frame for frame in frames if frame.entries]
    has_v1v2 = len(active_layers) > 1 or any(frame.has_voice2 for frame in active_layers)
    multi_staff = len(mctx.part_to_inst.get(part["id"], [])) > 1
    for frame in active_layers:
        for voice in (1, 2):
            entries = frame.voice_entries(voice)
            if not entries:
                continue
            builder = SequenceBuilder(mctx, part, frame, entries, has_v1v2)
            sequence: dict[str, Any] = {"content": builder.build(), "voice": voice_id(frame.layer, voice)}
            if multi_staff:
                sequence["staff"] = mctx.part_staff_number(part["id"], staff_id)
            part_measure["sequences"].append(sequence)


class SequenceBuilder:
    """
    Walk the entries of one voice and build its MNX content tree.

    Grace runs, tuplets and tremolos open nested containers; the walk
    recurses into them and returns when the container's last entry has been
    emitted.
    """

    def __init__(
        self,
        mctx: MnxContext,
        part: dict[str, Any],
        frame: EntryFrame,
        entries: list[EntryInfo],
        has_v1v2: bool,
    ) -> None:
        self.mctx = mctx
        self.document = mctx.document
        self.part = part
        self.frame = frame
        self.entries = entries
        self.has_v1v2 = has_v1v2
        self.elapsed = Fraction(0)
        self.last_index = -1
        self._overfull_logged: set[int] = set()

    def build(self) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        cursor = EntryCursor(self.entries)
        self._process(cursor, content, None, None)
        if self.elapsed < self.frame.measure_duration:
            self._add_spaces(content, padding_values(self.frame.measure_duration - self.elapsed))
            self.elapsed = self.frame.measure_duration
        return content

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _process(
        self,
        cursor: EntryCursor,
        content: list[dict[str, Any]],
        tuplet_index: int | None,
        tremolo_edu: int | None,
    ) -> None:
        while not cursor.at_end:
            info = cursor.current()

            if info.entry.grace:
                grace: dict[str, Any] = {"type": "grace", "content": []}
                if self._calc_slash(info):
                    grace["slash"] = True
                self._process_grace(cursor, grace["content"])
                if grace["content"]:
                    content.append(grace)
                continue

            if tuplet_index is None and info.elapsed > self.elapsed:
                gap = info.elapsed - self.elapsed
                spaces = padding_values(gap)
                if not spaces:
                    self.mctx.ctx.warning(
                        f"measure {self.frame.measure}, staff {self.frame.staff_id}: gap of {gap} cannot be filled"
                    )
                self._add_spaces(content, spaces)
                self.elapsed = info.elapsed

            next_tuplet = self._next_tuplet_at(info, tuplet_index)
            if next_tuplet is not None:
                self._open_tuplet(cursor, content, next_tuplet)
                if tuplet_index is not None and self.frame.tuplets[tuplet_index].end_index <= self.last_index:
                    return
                continue

            self._emit_event(info, content, tremolo_edu)
            self.last_index = info.index
            cursor.next()
            if tuplet_index is not None and self.frame.tuplets[tuplet_index].end_index <= info.index:
                return

    def _process_grace(self, cursor: EntryCursor, content: list[dict[str, Any]]) -> None:
        first = True
        while not cursor.at_end:
            info = cursor.current()
            if not info.entry.grace:
                return
            if not first and (info.calc_unbeamed() or info.calc_is_beam_start()):
                return
            self._emit_event(info, content, None)
            cursor.next()
            first = False

    def _calc_slash(self, info: EntryInfo) -> bool:
        slash = info.entry.slash_grace or self.document.options.slash_flagged_grace_notes
        return slash and info.can_be_beamed and info.calc_unbeamed()

    def _next_tuplet_at(self, info: EntryInfo, current: int | None) -> int | None:
        indices = info.tuplet_indices
        depth = indices.index(current) + 1 if current in indices else 0
        if depth < len(indices):
            candidate = indices[depth]
            if self.frame.tuplets[candidate].start_index == info.index:
                return candidate
        return None

    def _open_tuplet(self, cursor: EntryCursor, content: list[dict[str, Any]], index: int) -> None:
        info = self.frame.tuplets[index]
        tuplet = info.tuplet
        if info.is_tremolo:
            per_entry = info.reference_duration_per_entry
            first = cursor.current()
            marks = max(0, number_of_beams(first.entry.duration) - number_of_beams(per_entry))
            container: dict[str, Any] = {
                "type": "multiNoteTremolo",
                "marks": marks,
                "value": note_value_quantity(info.entry_count, per_entry),
                "content": [],
            }
            content.append(container)
            self._process(cursor, container["content"], index, per_entry)
            return

        container = {
            "type": "tuplet",
            "inner": note_value_quantity(tuplet.display_number, tuplet.display_duration),
            "outer": note_value_quantity(tuplet.reference_number, tuplet.reference_duration),
            "content": [],
        }
        bracket = tuplet_bracket(tuplet)
        if bracket != "auto":
            container["bracket"] = bracket
        show_number = tuplet_show_number(tuplet)
        if show_number != "inner":
            container["showNumber"] = show_number
        show_value = tuplet_show_value(tuplet)
        if show_value != "noNumber":
            container["showValue"] = show_value
        if info.end_elapsed > self.frame.measure_duration:
            self.mctx.ctx.warning(
                f"measure {self.frame.measure}, staff {self.frame.staff_id}: tuplet extends past the end of the measure"
            )
        content.append(container)
        self._process(cursor, container["content"], index, None)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit_event(self, info: EntryInfo, content: list[dict[str, Any]], tremolo_edu: int | None) -> None:
        entry = info.entry
        if not entry.grace and info.end_elapsed > self.frame.measure_duration:
            if entry.entnum not in self._overfull_logged:
                self._overfull_logged.add(entry.entnum)
                self.mctx.ctx.warning(
                    f"measure {self.frame.measure}, staff {self.frame.staff_id}: "
                    f"entry {entry.entnum} extends past the end of the measure"
                )

        if info.calc_hidden():
            if not entry.grace:
                self._add_spaces(content, binary_groups(entry.duration))
                self.elapsed += info.actual_duration
            return

        event: dict[str, Any] = {"type": "event", "id": event_id(entry.entnum)}
        if self._is_whole_measure_rest(info):
            event["measure"] = True
        else:
            # tremolo members are notated with their written value, not the beamed one
            value = note_value(tremolo_edu if tremolo_edu is not None else entry.duration)
            if value is None:
                self.mctx.ctx.warning(f"entry {entry.entnum}: duration of {entry.duration} EDU has no note value")
                value = {"base": "quarter"}
            event["duration"] = value

        entry_staff = self._whole_entry_cross_staff(info)
        if entry_staff is not None:
            event["staff"] = entry_staff

        stem = self._stem_direction(info)
        if stem is not None:
            event["stemDirection"] = stem

        if entry.is_note:
            self._add_notes(info, event, entry_staff is not None)
        else:
            rest: dict[str, Any] = {}
            if not entry.float_rest and entry.notes:
                rest["staffPosition"] = entry.notes[0].harm_lev
            event["rest"] = rest

        markings: dict[str, Any] = {}
        for assign, definition in self.document.articulations_for(entry.entnum):
            if not assign.hidden:
                markings.update(convert_articulation(definition.char_main, definition.font or self.document.options.music_font))
        if markings:
            event["markings"] = markings

        slurs = [self._create_slur(shape) for shape in self.document.shapes_starting_at_entry(entry.entnum)
                 if shape.shape_type.is_slur and not shape.hidden and shape.end.entry_number]
        if slurs:
            event["slurs"] = slurs

        lyrics = self._create_lyrics(info)
        if lyrics:
            event["lyrics"] = {"lines": lyrics}

        content.append(event)
        self.mctx.events_by_id[event["id"]] = event
        self.elapsed += info.actual_duration

    def _add_spaces(self, content: list[dict[str, Any]], groups: list[int]) -> None:
        for edu in groups:
            duration = note_value_quantity(1, edu)
            if duration is None:
                self.mctx.ctx.warning(
                    f"measure {self.frame.measure}, staff {self.frame.staff_id}: space of {edu} EDU has no note value"
                )
                continue
            content.append({"type": "space", "duration": duration})

    def _is_whole_measure_rest(self, info: EntryInfo) -> bool:
        if info.entry.is_note or info.tuplet_indices:
            return False
        others = [e for e in self.entries if not e.entry.grace and e is not info]
        return not others and info.elapsed == 0 and info.actual_duration == self.frame.measure_duration

    def _whole_entry_cross_staff(self, info: EntryInfo) -> int | None:
        entry = info.entry
        if not entry.notes:
            return None
        targets = {self.document.cross_staffs.get((entry.entnum, note.note_id)) for note in entry.notes}
        if None in targets or len({target.staff_id for target in targets}) != 1:
            return None
        staff_id = next(iter(targets)).staff_id
        if staff_id == info.staff_id:
            return None
        return self.mctx.part_staff_number(self.part["id"], staff_id)

    def _stem_direction(self, info: EntryInfo) -> str | None:
        entry = info.entry
        if not entry.is_note:
            return None
        if entry.freeze_stem:
            return "up" if entry.up_stem else "down"
        if self.has_v1v2:
            if info.voice == 2:
                return "down"
            return "up" if info.layer % 2 == 1 else "down"
        return None

    def _create_slur(self, shape: SmartShape) -> dict[str, Any]:
        slur: dict[str, Any] = {"target": event_id(shape.end.entry_number)}
        line_type = _LINE_TYPES.get(shape.shape_type)
        if line_type is not None:
            slur["lineType"] = line_type
        side = _SLUR_SIDES.get(shape.shape_type)
        if side is not None:
            slur["side"] = side
        return slur

    def _create_lyrics(self, info: EntryInfo) -> dict[str, Any]:
        lines: dict[str, Any] = {}
        for assign in self.document.lyric_assigns.get(info.entry.entnum, []):
            syllables = self.document.lyric_syllables(assign.lyric_type, assign.lyric_number)
            if not 0 < assign.syllable <= len(syllables):
                self.mctx.ctx.verbose(f"entry {info.entry.entnum}: lyric syllable {assign.syllable} not found")
                continue
            syllable = syllables[assign.syllable - 1]
            line_id = f"{assign.lyric_type.id_prefix}{assign.lyric_number}"
            if syllable.hyphen_before and syllable.hyphen_after:
                line_type = "middle"
            elif syllable.hyphen_before:
                line_type = "end"
            elif syllable.hyphen_after:
                line_type = "start"
            else:
                line_type = "whole"
            lines[line_id] = {"text": syllable.text, "type": line_type}
            self.mctx.lyric_lines.setdefault(line_id, f"{assign.lyric_type.value.title()} {assign.lyric_number}")
        return lines

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def _add_notes(self, info: EntryInfo, event: dict[str, Any], entry_cross_staffed: bool) -> None:
        staff = self.document.get_staff(info.staff_id, info.measure)
        notes = []
        kit_notes = []
        for note in info.entry.notes:
            perc = self.document.percussion_note_infos.get((info.entry.entnum, note.note_id))
            if staff.is_percussion and perc is not None:
                kit_notes.append(self._create_kit_note(info, note, perc.perc_note_type))
            else:
                notes.append(self._create_note(info, note, entry_cross_staffed))
        if notes:
            event["notes"] = notes
        if kit_notes:
            event["kitNotes"] = kit_notes

    def _create_note(self, info: EntryInfo, note: Note, entry_cross_staffed: bool) -> dict[str, Any]:
        entnum = info.entry.entnum
        pitch = self.mctx.frames.pitch_of(info, note)
        octave = pitch.octave + self._ottava_delta(info, note)
        mnx_pitch: dict[str, Any] = {"step": pitch.step_name, "octave": octave}
        if pitch.alter:
            mnx_pitch["alter"] = pitch.alter
        mnx_note: dict[str, Any] = {"id": note_id(entnum, note.note_id), "pitch": mnx_pitch}

        if note.freeze_acci or note.paren_acci:
            display: dict[str, Any] = {"show": note.show_acci}
            if note.freeze_acci:
                display["force"] = True
            if note.paren_acci:
                display["enclosure"] = "parentheses"
            mnx_note["accidentalDisplay"] = display

        enharmonic = self.document.enharmonics.get((entnum, note.note_id))
        if enharmonic is not None and enharmonic.respelled_level != note.harm_lev:
            mnx_note["written"] = {"diatonicDelta": enharmonic.respelled_level - note.harm_lev}

        cross = self.document.cross_staffs.get((entnum, note.note_id))
        if cross is not None and not entry_cross_staffed and cross.staff_id != info.staff_id:
            staff_number = self.mctx.part_staff_number(self.part["id"], cross.staff_id)
            if staff_number is None:
                self.mctx.ctx.warning(f"entry {entnum}: note crosses to staff {cross.staff_id} outside its part")
            else:
                mnx_note["staff"] = staff_number

        ties = self._create_ties(info, note, mnx_note["id"])
        if ties:
            mnx_note["ties"] = ties
        self.mctx.notes_by_id[mnx_note["id"]] = mnx_note
        return mnx_note

    def _create_kit_note(self, info: EntryInfo, note: Note, perc_note_type: int) -> dict[str, Any]:
        component_id = f"ke{perc_note_type}"
        kit = self.part.setdefault("kit", {})
        if component_id not in kit:
            name, general_midi = percussion_sound(self.document, perc_note_type)
            sound_id = f"ks{perc_note_type}"
            sounds = self.mctx.mnx["global"].setdefault("sounds", {})
            sound: dict[str, Any] = {"name": name}
            if general_midi >= 0:
                sound["midiNumber"] = general_midi
            sounds.setdefault(sound_id, sound)
            kit[component_id] = {"name": name, "sound": sound_id, "staffPosition": self._staff_position(info, note)}
        kit_note: dict[str, Any] = {"id": note_id(info.entry.entnum, note.note_id), "kitComponent": component_id}
        ties = self._create_ties(info, note, kit_note["id"])
        if ties:
            kit_note["ties"] = ties
        self.mctx.notes_by_id[kit_note["id"]] = kit_note
        return kit_note

    def _staff_position(self, info: EntryInfo, note: Note) -> int:
        """Staff position of *note* relative to the middle line under the clef in force."""
        staff = self.document.get_staff(info.staff_id, info.measure)
        clef_index = self.document.clef_at_measure_start(info.staff_id, info.measure)
        clefs = self.document.options.clef_defs
        middle_c = clefs[clef_index].middle_c_position if 0 <= clef_index < len(clefs) else -10
        pitch = self.mctx.frames.pitch_of(info, note)
        diatonic = pitch.octave * 7 + pitch.step
        return middle_c + (diatonic - 28) - staff.middle_line_position

    def _ottava_delta(self, info: EntryInfo, note: Note) -> int:
        covering = self._covering_ottavas(info)
        if note.tie_end:
            origin = self._tie_origin(info, note)
            if origin is not None and origin is not info:
                origin_covering = self._covering_ottavas(origin)
                if {s.cmper for s in origin_covering} != {s.cmper for s in covering}:
                    self.mctx.ctx.verbose(
                        f"entry {info.entry.entnum}: tied from a different ottava region; octave left unchanged"
                    )
                    return 0
                covering = origin_covering
        return sum(shape.shape_type.octave_delta for shape in covering)

    def _covering_ottavas(self, info: EntryInfo) -> list[SmartShape]:
        found = []
        for shape in self.mctx.ottavas_by_measure.get((info.staff_id, info.measure), []):
            start = (shape.start.measure, self._end_point_position(shape, start=True))
            end = (shape.end.measure, self._end_point_position(shape, start=False))
            here = (info.measure, info.elapsed)
            if start <= here <= end:
                found.append(shape)
        return found

    def _end_point_position(self, shape: SmartShape, start: bool) -> Fraction:
        found = self.mctx.shape_end_position(shape, start)
        if found is None:
            end_point = shape.start if start else shape.end
            return Fraction(0) if start else self.document.calc_measure_duration(end_point.measure)
        return found

    def _tie_origin(self, info: EntryInfo, note: Note) -> EntryInfo | None:
        """Follow a chain of ties back to the entry that starts it."""
        frames = self.mctx.frames
        pitch = frames.pitch_of(info, note)
        current, current_note = info, note
        for _ in range(64):
            if not current_note.tie_end:
                return current
            previous = current.previous_in_voice()
            while previous is not None and previous.entry.grace:
                previous = previous.previous_in_voice()
            if previous is None and current.measure - 1 in self.document.measures:
                frame = frames.get(current.staff_id, current.measure - 1, current.layer)
                candidates = [e for e in frame.voice_entries(current.voice) if not e.entry.grace]
                previous = candidates[-1] if candidates else None
            if previous is None:
                return current
            match = next(
                (n for n in previous.entry.notes if n.tie_start and frames.pitch_of(previous, n) == pitch), None
            )
            if match is None:
                return current
            current, current_note = previous, match
        return current

    def _create_ties(self, info: EntryInfo, note: Note, mnx_note_id: str) -> list[dict[str, Any]]:
        frames = self.mctx.frames
        side = frames.tie_side(info, note)
        ties: list[dict[str, Any]] = []
        if note.tie_start:
            target = frames.calc_tie_target(info, note)
            if target is not None and not target[0].calc_hidden():
                target_info, target_note, target_type = target
                tie: dict[str, Any] = {"target": note_id(target_info.entry.entnum, target_note.note_id)}
                if target_type is not TieTargetType.NEXT_NOTE:
                    tie["targetType"] = target_type.value
                if side is not None:
                    tie["side"] = side
                ties.append(tie)
            else:
                ties.append(_lv_tie(side))
        elif frames.calc_pseudo_lv(info, note) is not None:
            ties.append(_lv_tie(side))

        if not info.calc_hidden():
            for start_info, start_note in frames.calc_jump_tie_continuations_from(info, note):
                if start_info.calc_hidden():
                    continue
                self.mctx.defer_jump_tie(
                    note_id(start_info.entry.entnum, start_note.note_id),
                    mnx_note_id,
                    frames.tie_side(start_info, start_note),
                )
        return ties


def _lv_tie(side: str | None) -> dict[str, Any]:
    tie: dict[str, Any] = {"lv": True}
    if side is not None:
        tie["side"] = side
    return tie


# ----------------------------------------------------------------------
# Deferred jump ties
# ----------------------------------------------------------------------


def finalize_jump_ties(mctx: MnxContext) -> None:
    """Add the cross-jump ties collected while the notes were built."""
    stripped: set[str] = set()
    for deferred in mctx.deferred_jump_ties:
        start_note = mctx.notes_by_id.get(deferred.start_note_id)
        if start_note is None:
            continue
        ties = start_note.setdefault("ties", [])
        real_ties = [tie for tie in ties if not tie.get("lv")]
        sides = {tie.get("side") for tie in real_ties}
        consensus = next(iter(sides)) if len(sides) == 1 else None
        if deferred.start_note_id not in stripped:
            ties[:] = real_ties
            stripped.add(deferred.start_note_id)
        if any(tie.get("target") == deferred.end_note_id for tie in ties):
            continue
        tie: dict[str, Any] = {"target": deferred.end_note_id, "targetType": TieTargetType.CROSS_JUMP.value}
        side = deferred.side or consensus
        if side is not None:
            tie["side"] = side
        ties.append(tie)
