"""Scores: one per linked part and one per divergent system, with pages and multimeasure rests."""

from __future__ import annotations

from typing import Any

from denigma.enigma_text import trim_enigma_tags
from denigma.mnx_context import MnxContext
from denigma.score_models import SCROLL_VIEW_IULIST, PartDefinition


def create_scores(mctx: MnxContext) -> None:
    scores = mctx.mnx.setdefault("scores", [])
    for part in mctx.document.linked_parts():
        score: dict[str, Any] = {
            "name": _score_name(part),
            "layout": mctx.layout_ids[(part.cmper, SCROLL_VIEW_IULIST)],
        }
        pages = _create_pages(mctx, part)
        if pages:
            score["pages"] = pages

        mm_rests = []
        for rest in mctx.document.multimeasure_rests_for(part.cmper):
            mm_rest: dict[str, Any] = {"start": rest.start_measure, "duration": rest.number_of_measures}
            if rest.hide_number:
                mm_rest["label"] = ""
            mm_rests.append(mm_rest)
        if mm_rests:
            score["multimeasureRests"] = mm_rests

        use_written = not part.is_score and not part.show_transposed
        if use_written:
            score["useWritten"] = True
        scores.append(score)
        scores.extend(_system_scores(mctx, part, score["name"], use_written))


def _system_scores(mctx: MnxContext, part: PartDefinition, name: str, use_written: bool) -> list[dict[str, Any]]:
    """One score per system whose staff list has its own layout."""
    base_layout = mctx.layout_ids[(part.cmper, SCROLL_VIEW_IULIST)]
    result = []
    for system in mctx.document.systems_for(part.cmper):
        layout_id = mctx.layout_ids.get((part.cmper, system.cmper), base_layout)
        if layout_id == base_layout:
            continue
        score: dict[str, Any] = {"name": f"{name} (system {system.cmper})", "layout": layout_id}
        if use_written:
            score["useWritten"] = True
        result.append(score)
    return result

def _score_name(part: PartDefinition) -> str:
    name = trim_enigma_tags(part.name).strip()
    if name:
        return name
    return "Score" if part.is_score else f"Part {part.cmper}"


def _create_pages(mctx: MnxContext, part: PartDefinition) -> list[dict[str, Any]]:
    """Pages in order, each listing the systems that start on it."""
    systems = mctx.document.systems_for(part.cmper)
    if not systems:
        return []
    last_system = systems[-1].cmper
    pages = [page for page in mctx.document.pages_for(part.cmper) if not page.is_blank]
    result = []
    for index, page in enumerate(pages):
        following = pages[index + 1].first_system if index + 1 < len(pages) else last_system + 1
        page_systems = []
        for system in systems:
            if page.first_system <= system.cmper < following:
                page_systems.append(
                    {
                        "measure": system.start_measure,
                        "layout": mctx.layout_ids.get(
                            (part.cmper, system.cmper), mctx.layout_ids[(part.cmper, SCROLL_VIEW_IULIST)]
                        ),
                    }
                )
        result.append({"systems": page_systems})
    return result
