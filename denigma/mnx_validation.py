"""Schema and reference checks run on a finished MNX document."""

from __future__ import annotations

import json
from collections.abc import Iterator
from importlib import resources
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from denigma.context import DenigmaContext
from denigma.errors import DenigmaError, ErrorKind

SCHEMA_RESOURCE = "mnx_schema.json"


def load_schema(schema_path: Path | None = None) -> dict[str, Any]:
    """Load a JSON Schema from *schema_path*, or the one shipped with the package."""
    try:
        if schema_path is not None:
            text = Path(schema_path).read_text(encoding="utf-8")
        else:
            text = resources.files("denigma").joinpath(SCHEMA_RESOURCE).read_text(encoding="utf-8")
        return json.loads(text)
    except (OSError, json.JSONDecodeError) as exc:
        raise DenigmaError(f"unable to load MNX schema: {exc}", ErrorKind.SCHEMA_VALIDATION) from exc


def schema_errors(mnx: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    """Every schema violation in *mnx*, as ``path: message`` strings."""
    validator = Draft202012Validator(schema)
    messages = []
    for error in sorted(validator.iter_errors(mnx), key=lambda e: list(map(str, e.absolute_path))):
        location = "/".join(str(part) for part in error.absolute_path) or "(root)"
        messages.append(f"{location}: {error.message}")
    return messages


def semantic_errors(mnx: dict[str, Any]) -> list[str]:
    """Broken references between the parts of *mnx*."""
    return list(_SemanticChecker(mnx).check())


def validate(mnx: dict[str, Any], ctx: DenigmaContext) -> bool:
    """
    Run both checks and log each problem as a warning.

    Returns ``True`` when the document passed both.
    """
    schema = load_schema(ctx.options.mnx_schema_path)
    problems = schema_errors(mnx, schema)
    if problems:
        ctx.warning("MNX schema validation failed:")
        for message in problems:
            ctx.warning(f"    {message}")
    references = semantic_errors(mnx)
    if references:
        ctx.warning("MNX semantic validation failed:")
        for message in references:
            ctx.warning(f"    {message}")
    if not problems and not references:
        ctx.verbose("MNX document is valid")
    return not problems and not references


# ----------------------------------------------------------------------
# Private helpers
# ----------------------------------------------------------------------


def _walk_content(content: list[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    for item in content:
        if item.get("type") == "event":
            yield item
        elif "content" in item:
            yield from _walk_content(item["content"])


class _SemanticChecker:
    def __init__(self, mnx: dict[str, Any]) -> None:
        self.mnx = mnx
        self.global_measures = mnx.get("global", {}).get("measures", [])
        self.parts = mnx.get("parts", [])
        self.events: dict[str, dict[str, Any]] = {}
        self.notes: dict[str, dict[str, Any]] = {}
        self.lyric_lines: set[str] = set()
        self._duplicates: list[str] = []
        for part in self.parts:
            for measure in part.get("measures", []):
                for sequence in measure.get("sequences", []):
                    for event in _walk_content(sequence.get("content", [])):
                        self._index(event)

    def _index(self, event: dict[str, Any]) -> None:
        if "id" in event:
            if event["id"] in self.events:
                self._duplicates.append(f"duplicate event id {event['id']}")
            self.events[event["id"]] = event
        for note in event.get("notes", []) + event.get("kitNotes", []):
            if "id" in note:
                if note["id"] in self.notes:
                    self._duplicates.append(f"duplicate note id {note['id']}")
                self.notes[note["id"]] = note
        self.lyric_lines.update(event.get("lyrics", {}).get("lines", {}))

    def check(self) -> Iterator[str]:
        yield from self._duplicates
        part_ids = set()
        sounds = self.mnx.get("global", {}).get("sounds", {})
        for part in self.parts:
            part_id = part.get("id", "?")
            part_ids.add(part_id)
            if len(part.get("measures", [])) != len(self.global_measures):
                yield f"part {part_id} has {len(part.get('measures', []))} measures, global has {len(self.global_measures)}"
            kit = part.get("kit", {})
            for component_id, component in kit.items():
                if "sound" in component and component["sound"] not in sounds:
                    yield f"kit component {component_id} refers to unknown sound {component['sound']}"
            for index, measure in enumerate(part.get("measures", [])):
                yield from self._check_measure(part_id, index, measure, kit)

        for note_id, note in self.notes.items():
            for tie in note.get("ties", []):
                if "target" in tie and tie["target"] not in self.notes:
                    yield f"note {note_id} is tied to unknown note {tie['target']}"
        for event_id, event in self.events.items():
            for slur in event.get("slurs", []):
                if "target" in slur and slur["target"] not in self.events:
                    yield f"event {event_id} has a slur to unknown event {slur['target']}"

        lyrics = self.mnx.get("global", {}).get("lyrics", {})
        for line_id in lyrics.get("lineOrder", []):
            if line_id not in self.lyric_lines:
                yield f"lyric line {line_id} is declared but never used"
        for line_id in self.lyric_lines:
            if line_id not in lyrics.get("lineMetadata", {}):
                yield f"lyric line {line_id} has no metadata"

        layout_ids = set()
        for layout in self.mnx.get("layouts", []):
            if layout.get("id") in layout_ids:
                yield f"duplicate layout id {layout.get('id')}"
            layout_ids.add(layout.get("id"))
            yield from self._check_layout_content(layout.get("id"), layout.get("content", []), part_ids)
        for score in self.mnx.get("scores", []):
            if score.get("layout") not in layout_ids:
                yield f"score {score.get('name')} refers to unknown layout {score.get('layout')}"
            for page in score.get("pages", []):
                for system in page.get("systems", []):
                    if "layout" in system and system["layout"] not in layout_ids:
                        yield f"score {score.get('name')} has a system with unknown layout {system['layout']}"

    def _check_measure(self, part_id: str, index: int, measure: dict[str, Any], kit: dict[str, Any]) -> Iterator[str]:
        where = f"part {part_id} measure {index + 1}"
        for beam in measure.get("beams", []):
            yield from self._check_beam(where, beam)
        for ottava in measure.get("ottavas", []):
            end_measure = ottava.get("end", {}).get("measure")
            if not isinstance(end_measure, int) or not 1 <= end_measure <= len(self.global_measures):
                yield f"{where}: ottava ends in unknown measure {end_measure}"
        for sequence in measure.get("sequences", []):
            for event in _walk_content(sequence.get("content", [])):
                for kit_note in event.get("kitNotes", []):
                    if kit_note.get("kitComponent") not in kit:
                        yield f"{where}: kit note {kit_note.get('id')} refers to unknown component"

    def _check_beam(self, where: str, beam: dict[str, Any]) -> Iterator[str]:
        for event_id in beam.get("events", []):
            if event_id not in self.events:
                yield f"{where}: beam refers to unknown event {event_id}"
        for hook in beam.get("hooks", []):
            if hook.get("event") not in beam.get("events", []):
                yield f"{where}: beam hook on {hook.get('event')} is outside its beam"
        for inner in beam.get("inner", []):
            for event_id in inner.get("events", []):
                if event_id not in beam.get("events", []):
                    yield f"{where}: inner beam event {event_id} is outside its parent beam"
            yield from self._check_beam(where, inner)

    def _check_layout_content(self, layout_id: str, content: list[dict[str, Any]], part_ids: set[str]) -> Iterator[str]:
        for item in content:
            if item.get("type") == "group":
                yield from self._check_layout_content(layout_id, item.get("content", []), part_ids)
                continue
            for source in item.get("sources", []):
                if source.get("part") not in part_ids:
                    yield f"layout {layout_id} refers to unknown part {source.get('part')}"
