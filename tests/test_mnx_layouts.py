"""Tests for MNX layouts, scores and the global measure array."""

from scorexml import WHOLE, ScoreXml, build_mnx, rest


def _score(staves=(1, 2, 3), measures: int = 1) -> ScoreXml:
    score = ScoreXml(staves=staves, measures=measures)
    for staff in staves:
        for measure in range(1, measures + 1):
            score.layer(staff, measure, [rest(WHOLE)])
    return score


def test_scroll_view_layout_nests_groups() -> None:
    score = _score()
    score.others.append('<staffSpec cmper="1"><fullName>Violin</fullName></staffSpec>')
    score.details.append(
        '<staffGroup cmper1="0" cmper2="1"><startInst>2</startInst><endInst>3</endInst>'
        "<bracket><id>2</id></bracket><name>Strings</name></staffGroup>"
    )
    mnx = build_mnx(score)
    (layout,) = mnx["layouts"]
    assert layout["id"] == "S0-ScrVw"
    first, group = layout["content"]
    assert first == {"type": "staff", "sources": [{"part": "P1", "label": "Violin"}]}
    assert group["type"] == "group"
    assert group["symbol"] == "bracket"
    assert group["label"] == "Strings"
    assert [item["sources"][0]["part"] for item in group["content"]] == ["P2", "P3"]


def test_one_score_per_linked_part() -> None:
    score = _score(staves=(1, 2))
    score.others.append('<partDef cmper="1"><name>Flute</name><partOrder>1</partOrder></partDef>')
    score.others.append('<instUsed cmper="0" part="1"><inst>1</inst></instUsed>')
    score.others.append('<instUsed cmper="0"><inst>1</inst><inst>2</inst></instUsed>')
    mnx = build_mnx(score)
    assert [layout["id"] for layout in mnx["layouts"]] == ["S0-ScrVw", "S1-ScrVw"]
    part_layout = mnx["layouts"][1]
    assert [item["sources"][0]["part"] for item in part_layout["content"]] == ["P1"]
    score_entry, part_entry = mnx["scores"]
    assert score_entry == {"name": "Score", "layout": "S0-ScrVw"}
    assert part_entry["name"] == "Flute"
    assert part_entry["layout"] == "S1-ScrVw"
    assert part_entry["useWritten"] is True


def test_system_layouts_and_pages() -> None:
    score = _score(measures=4)
    score.others.append('<staffSystemSpec cmper="1"><startMeas>1</startMeas><endMeas>3</endMeas></staffSystemSpec>')
    score.others.append('<staffSystemSpec cmper="2"><startMeas>3</startMeas><endMeas>5</endMeas></staffSystemSpec>')
    score.others.append('<instUsed cmper="2"><inst>1</inst><inst>3</inst></instUsed>')
    score.others.append('<instUsed cmper="0"><inst>1</inst><inst>2</inst><inst>3</inst></instUsed>')
    score.others.append('<pageSpec cmper="1"><firstSystem>1</firstSystem></pageSpec>')
    mnx = build_mnx(score)
    assert [layout["id"] for layout in mnx["layouts"]] == ["S0-ScrVw", "S0-Sys2"]
    (page,) = mnx["scores"][0]["pages"]
    assert page["systems"] == [
        {"measure": 1, "layout": "S0-ScrVw"},
        {"measure": 3, "layout": "S0-Sys2"},
    ]
    assert [entry["layout"] for entry in mnx["scores"]] == ["S0-ScrVw", "S0-Sys2"]
    assert mnx["scores"][1] == {"name": "Score (system 2)", "layout": "S0-Sys2"}


def test_multimeasure_rests() -> None:
    score = _score(staves=(1,), measures=4)
    score.others.append('<mmRest cmper="2"><nextMeas>5</nextMeas><hideNumber/></mmRest>')
    (score_entry,) = build_mnx(score)["scores"]
    assert score_entry["multimeasureRests"] == [{"start": 2, "duration": 3, "label": ""}]


def test_global_measures() -> None:
    score = _score(staves=(1,), measures=3)
    score.measure_extras[1] = "<keySig><key>-3</key></keySig>"
    score.measure_extras[2] = "<keySig><key>-3</key></keySig><forRepBar/>"
    score.measure_extras[3] = "<keySig><key>1</key></keySig><bacRepBar/><barline>final</barline>"
    score.measure_times[3] = (6, 128)
    measures = build_mnx(score)["global"]["measures"]
    assert measures[0] == {"key": {"fifths": -3}, "time": {"count": 4, "unit": 4}}
    assert measures[1] == {"repeatStart": {}}
    assert measures[2]["key"] == {"fifths": 1}
    assert measures[2]["repeatEnd"] == {}
    assert measures[2]["barline"] == {"type": "final"}
    assert measures[2]["time"] == {"count": 6, "unit": 8}


def test_document_header() -> None:
    mnx = build_mnx(_score(staves=(1,)))
    assert mnx["mnx"] == {"version": 1}


def test_repeat_text_without_an_mnx_jump() -> None:
    score = _score(staves=(1,), measures=2)
    for cmper, text in ((1, "D.S. al Fine"), (2, "D.C. al Fine")):
        score.others.append(f'<textRepeatDef cmper="{cmper}"/>')
        score.others.append(f'<textRepeatText cmper="{cmper}">{text}</textRepeatText>')
        score.others.append(f'<textRepeatAssign cmper="{cmper}"><repnum>{cmper}</repnum><target>1</target></textRepeatAssign>')
    measures = build_mnx(score)["global"]["measures"]
    assert measures[0]["jump"]["type"] == "dsalfine"
    assert "jump" not in measures[1]
