"""Layouts: the staff order, groups and labels of each linked part and system."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from denigma.enigma_text import trim_enigma_tags
from denigma.mnx_context import MnxContext
from denigma.score_models import (
    SCORE_PARTID,
    SCROLL_VIEW_IULIST,
    BracketStyle,
    NameSource,
    PartDefinition,
    StaffGroup,
)


def scroll_view_layout_id(part_id: int) -> str:
    return f"S{part_id}-ScrVw"


def system_layout_id(part_id: int, system_id: int) -> str:
    return f"S{part_id}-Sys{system_id}"


@dataclass(frozen=True)
class _PlacedGroup:
    """A staff group with its first and last staff resolved to slots in a staff list."""

    group: StaffGroup
    start_slot: int
    end_slot: int


def create_layouts(mctx: MnxContext) -> None:
    """
    Build the scroll-view layout of every linked part, plus one layout per
    system whose staves differ from it.
    """
    layouts = mctx.mnx.setdefault("layouts", [])
    for part in mctx.document.linked_parts():
        base_staves = mctx.document.scroll_view(part.cmper)
        base_id = scroll_view_layout_id(part.cmper)
        layouts.append(_build_layout(mctx, part, base_id, base_staves, SCROLL_VIEW_IULIST, 1))
        mctx.layout_ids[(part.cmper, SCROLL_VIEW_IULIST)] = base_id

        for system in mctx.document.systems_for(part.cmper):
            staves = mctx.document.system_staves(part.cmper, system.cmper)
            if staves == base_staves:
                mctx.layout_ids[(part.cmper, system.cmper)] = base_id
                continue
            layout_id = system_layout_id(part.cmper, system.cmper)
            layouts.append(_build_layout(mctx, part, layout_id, staves, system.cmper, system.start_measure))
            mctx.layout_ids[(part.cmper, system.cmper)] = layout_id


def _build_layout(
    mctx: MnxContext,
    part: PartDefinition,
    layout_id: str,
    staves: list[int],
    list_id: int,
    anchor_measure: int,
) -> dict[str, Any]:
    groups = _groups_at(mctx, part.cmper, list_id, anchor_measure, staves)
    measure = mctx.document.get_measure(anchor_measure)
    full_names = anchor_measure == 1 or (measure is not None and measure.show_full_names)
    builder = _ContentBuilder(mctx, staves, groups, anchor_measure, full_names)
    return {"id": layout_id, "content": builder.build(0, len(staves) - 1)}


def _groups_at(
    mctx: MnxContext,
    part_id: int,
    list_id: int,
    measure: int,
    staves: list[int],
) -> list[_PlacedGroup]:
    document = mctx.document
    found = document.staff_groups_at(part_id, list_id, measure)
    if not found and list_id != SCROLL_VIEW_IULIST:
        found = document.staff_groups_at(part_id, SCROLL_VIEW_IULIST, measure)
    if not found and part_id != SCORE_PARTID:
        found = document.staff_groups_at(SCORE_PARTID, SCROLL_VIEW_IULIST, measure)

    placed = []
    for group in found:
        if group.start_staff not in staves or group.end_staff not in staves:
            mctx.ctx.verbose(f"staff group {group.start_staff}-{group.end_staff} is not in this staff list")
            continue
        start, end = staves.index(group.start_staff), staves.index(group.end_staff)
        if start > end:
            start, end = end, start
        placed.append(_PlacedGroup(group, start, end))
    placed.sort(key=lambda g: (g.start_slot, -g.end_slot, g.group.bracket_horz_adj))
    return placed


class _ContentBuilder:
    """Recursively nests staves inside the groups that span them."""

    def __init__(
        self,
        mctx: MnxContext,
        staves: list[int],
        groups: list[_PlacedGroup],
        measure: int,
        full_names: bool,
    ) -> None:
        self.mctx = mctx
        self.staves = staves
        self.groups = groups
        self.measure = measure
        self.full_names = full_names
        self._used: set[int] = set()

    def build(self, first: int, last: int) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        index = first
        while index <= last:
            group_index = self._group_starting_at(index, last)
            if group_index is None:
                staff = self._staff(self.staves[index])
                if staff is not None:
                    content.append(staff)
                index += 1
                continue
            self._used.add(group_index)
            placed = self.groups[group_index]
            content.append(self._group(placed))
            index = placed.end_slot + 1
        return content

    def _group_starting_at(self, index: int, last: int) -> int | None:
        for group_index, placed in enumerate(self.groups):
            if group_index in self._used:
                continue
            if placed.start_slot == index and placed.end_slot <= last:
                return group_index
        return None

    def _group(self, placed: _PlacedGroup) -> dict[str, Any]:
        group = placed.group
        result: dict[str, Any] = {"type": "group"}
        if group.bracket_style is BracketStyle.PIANO_BRACE:
            result["symbol"] = "brace"
        elif group.bracket_style is not BracketStyle.NONE:
            result["symbol"] = "bracket"
        if not group.hide_name:
            label = trim_enigma_tags(group.full_name if self.full_names else group.abbreviated_name).strip()
            if label:
                result["label"] = label
        result["content"] = self.build(placed.start_slot, placed.end_slot)
        return result

    def _staff(self, staff_id: int) -> dict[str, Any] | None:
        part_id = self.mctx.inst_to_part.get(staff_id)
        if part_id is None:
            self.mctx.ctx.warning(f"staff {staff_id} is in a layout but belongs to no part")
            return None
        staff = self.mctx.document.get_staff(staff_id, self.measure)
        source: dict[str, Any] = {"part": part_id}
        part_staves = self.mctx.part_to_inst[part_id]
        if len(part_staves) > 1:
            source["staff"] = part_staves.index(staff_id) + 1
        if not staff.hide_name:
            if len(part_staves) == 1 and staff.name_source is NameSource.INSTRUMENT:
                source["labelref"] = "name" if self.full_names else "shortName"
            else:
                label = trim_enigma_tags(staff.full_name if self.full_names else staff.abbreviated_name).strip()
                if label:
                    source["label"] = label
        if staff.stem_direction is not None:
            source["stem"] = staff.stem_direction.value
        return {"type": "staff", "sources": [source]}
