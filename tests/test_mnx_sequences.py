"""Tests for MNX sequence content: events, spaces, containers and ties."""

from fractions import Fraction
from typing import Any

from denigma import mnx_validation
from denigma.context import DenigmaContext
from denigma.mnx_context import MnxContext
from denigma.mnx_sequences import finalize_jump_ties
from scorexml import DOTTED_HALF, EIGHTH, HALF, QUARTER, WHOLE, ScoreXml, build_mnx, note, rest

_BASE_VALUES = {
    "whole": Fraction(1),
    "half": Fraction(1, 2),
    "quarter": Fraction(1, 4),
    "eighth": Fraction(1, 8),
    "16th": Fraction(1, 16),
    "32nd": Fraction(1, 32),
    "64th": Fraction(1, 64),
}


def _value(note_value: dict[str, Any]) -> Fraction:
    base = _BASE_VALUES[note_value["base"]]
    dots = note_value.get("dots", 0)
    return base * (2 - Fraction(1, 2**dots))


def _quantity(quantity: dict[str, Any]) -> Fraction:
    return quantity["multiple"] * _value(quantity["duration"])


def _content_duration(content: list[dict[str, Any]], measure_duration: Fraction) -> Fraction:
    total = Fraction(0)
    for item in content:
        kind = item["type"]
        if kind == "event":
            total += measure_duration if item.get("measure") else _value(item["duration"])
        elif kind == "space":
            total += _quantity(item["duration"])
        elif kind == "tuplet":
            total += _quantity(item["outer"])
        elif kind == "multiNoteTremolo":
            total += _quantity(item["value"])
        # grace notes take no time
    return total


def _sequences(mnx: dict[str, Any], measure: int = 1, part: int = 0) -> list[dict[str, Any]]:
    return mnx["parts"][part]["measures"][measure - 1]["sequences"]


def test_simple_sequence_fills_the_measure() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(HALF, 0), note(QUARTER, 2), note(QUARTER, 4)])
    (sequence,) = _sequences(build_mnx(score))
    assert sequence["voice"] == "layer1"
    content = sequence["content"]
    assert [item["id"] for item in content] == [f"ev{n}" for n in entnums]
    assert content[0]["duration"] == {"base": "half"}
    assert content[0]["notes"] == [{"id": f"ev{entnums[0]}n1", "pitch": {"step": "C", "octave": 4}}]
    assert content[2]["notes"][0]["pitch"] == {"step": "G", "octave": 4}
    assert _content_duration(content, Fraction(1)) == 1


def test_short_layer_is_padded_with_spaces() -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(QUARTER, 0)])
    content = _sequences(build_mnx(score))[0]["content"]
    spaces = [item for item in content if item["type"] == "space"]
    assert [space["duration"] for space in spaces] == [{"multiple": 1, "duration": {"base": "half", "dots": 1}}]
    assert _content_duration(content, Fraction(1)) == 1


def test_single_short_note_is_padded_with_named_spaces() -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(16, 0)])
    mnx = build_mnx(score)
    content = _sequences(mnx)[0]["content"]
    spaces = [item for item in content if item["type"] == "space"]
    assert [space["duration"]["duration"] for space in spaces] == [
        {"base": "half", "dots": 3},
        {"base": "32nd", "dots": 1},
    ]
    assert _content_duration(content, Fraction(1)) == 1
    assert mnx_validation.schema_errors(mnx, mnx_validation.load_schema()) == []


def test_hidden_entry_becomes_a_space() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(HALF, 0, flags="<isHidden/>"), note(HALF, 1)])
    content = _sequences(build_mnx(score))[0]["content"]
    assert content[0] == {"type": "space", "duration": {"multiple": 1, "duration": {"base": "half"}}}
    assert content[1]["id"] == f"ev{entnums[1]}"


def test_unfillable_remainder_leaves_no_padding() -> None:
    score = ScoreXml(measure_times={1: ("1/3", WHOLE)})
    score.layer(1, 1, [note(EIGHTH, 0)])
    content = _sequences(build_mnx(score))[0]["content"]
    assert [item["type"] for item in content] == ["event"]


def test_whole_measure_rest_and_rest_positions() -> None:
    score = ScoreXml(measures=2)
    score.layer(1, 1, [rest(WHOLE)])
    score.layer(1, 2, [
        f"<dura>{HALF}</dura><note id=\"1\"><harmLev>-4</harmLev></note>",
        rest(HALF, flags="<floatRest/>"),
    ])
    mnx = build_mnx(score)
    measure_rest = _sequences(mnx, 1)[0]["content"][0]
    assert measure_rest["measure"] is True
    assert "duration" not in measure_rest
    fixed, floating = _sequences(mnx, 2)[0]["content"]
    assert fixed["rest"] == {"staffPosition": -4}
    assert floating["rest"] == {}


def test_triplet_container() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(QUARTER, 0), note(QUARTER, 1), note(QUARTER, 2), note(HALF, 3)])
    score.details.append(
        f'<tupletDef entnum="{entnums[0]}"><symbolicNum>3</symbolicNum><symbolicDur>{QUARTER}</symbolicDur>'
        f"<refNum>2</refNum><refDur>{QUARTER}</refDur></tupletDef>"
    )
    content = _sequences(build_mnx(score))[0]["content"]
    tuplet = content[0]
    assert tuplet["type"] == "tuplet"
    assert tuplet["inner"] == {"multiple": 3, "duration": {"base": "quarter"}}
    assert tuplet["outer"] == {"multiple": 2, "duration": {"base": "quarter"}}
    assert [event["id"] for event in tuplet["content"]] == [f"ev{n}" for n in entnums[:3]]
    assert content[1]["id"] == f"ev{entnums[3]}"
    assert _content_duration(content, Fraction(1)) == 1


def test_tuplet_ratio_display() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(QUARTER, 0), note(QUARTER, 1), note(QUARTER, 2), note(HALF, 3)])
    score.details.append(
        f'<tupletDef entnum="{entnums[0]}"><symbolicNum>3</symbolicNum><symbolicDur>{QUARTER}</symbolicDur>'
        f"<refNum>2</refNum><refDur>{QUARTER}</refDur><numStyle>ratioPlusBothNotes</numStyle></tupletDef>"
    )
    tuplet = _sequences(build_mnx(score))[0]["content"][0]
    assert tuplet["showNumber"] == "both"
    assert tuplet["showValue"] == "both"

    score.details[-1] = score.details[-1].replace("ratioPlusBothNotes", "ratioPlusDenominatorNote")
    tuplet = _sequences(build_mnx(score))[0]["content"][0]
    assert tuplet["showNumber"] == "both"
    assert "showValue" not in tuplet


def test_tremolo_container_uses_written_values() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(HALF, 0), note(HALF, 2), note(HALF, 4)])
    # two half notes alternating for the length of one half note
    score.details.append(
        f'<tupletDef entnum="{entnums[0]}"><symbolicNum>2</symbolicNum><symbolicDur>{HALF}</symbolicDur>'
        f"<refNum>1</refNum><refDur>{HALF}</refDur><tremolo/></tupletDef>"
    )
    content = _sequences(build_mnx(score))[0]["content"]
    tremolo = content[0]
    assert tremolo["type"] == "multiNoteTremolo"
    assert tremolo["marks"] == 0
    assert tremolo["value"] == {"multiple": 2, "duration": {"base": "quarter"}}
    assert [event["duration"] for event in tremolo["content"]] == [{"base": "quarter"}] * 2
    assert content[1]["id"] == f"ev{entnums[2]}"
    assert _content_duration(content, Fraction(1)) == 1


def test_grace_notes_open_a_grace_container() -> None:
    score = ScoreXml()
    entnums = score.layer(1, 1, [note(EIGHTH, 8, flags="<graceNote/>"), note(WHOLE, 7)])
    content = _sequences(build_mnx(score))[0]["content"]
    grace = content[0]
    assert grace["type"] == "grace"
    assert grace["slash"] is True
    assert [event["id"] for event in grace["content"]] == [f"ev{entnums[0]}"]
    assert _content_duration(content, Fraction(1)) == 1


def test_two_layers_get_stem_directions() -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(WHOLE, 7)])
    score.layer(1, 1, [note(WHOLE, 0)], layer=2)
    upper, lower = _sequences(build_mnx(score))
    assert upper["voice"] == "layer1"
    assert lower["voice"] == "layer2"
    assert upper["content"][0]["stemDirection"] == "up"
    assert lower["content"][0]["stemDirection"] == "down"


def test_tie_to_next_note() -> None:
    score = ScoreXml(measures=2)
    (first,) = score.layer(1, 1, [note(WHOLE, 2, note_flags="<tieStart/>")])
    (second,) = score.layer(1, 2, [note(WHOLE, 2, note_flags="<tieEnd/>")])
    start_note = _sequences(build_mnx(score), 1)[0]["content"][0]["notes"][0]
    assert start_note["ties"] == [{"target": f"ev{second}n1"}]
    assert f"ev{first}n1" == start_note["id"]


def test_dangling_tie_becomes_laissez_vibrer() -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(HALF, 2, note_flags="<tieStart/>"), note(HALF, 4)])
    start_note = _sequences(build_mnx(score))[0]["content"][0]["notes"][0]
    assert start_note["ties"] == [{"lv": True}]


def test_tie_across_a_jump() -> None:
    score = ScoreXml(measures=4)
    score.layer(1, 1, [note(WHOLE, 0)])
    (jump_from,) = score.layer(1, 2, [note(WHOLE, 2, note_flags="<tieStart/>")])
    score.layer(1, 3, [note(WHOLE, 4)])
    (coda,) = score.layer(1, 4, [note(WHOLE, 2, note_flags="<tieEnd/>")])
    score.others.append('<textRepeatDef cmper="1"/>')
    score.others.append('<textRepeatText cmper="1">D.S. al Coda</textRepeatText>')
    score.others.append('<textRepeatAssign cmper="2"><repnum>1</repnum><target>4</target></textRepeatAssign>')
    mnx = build_mnx(score)

    start_note = _sequences(mnx, 2)[0]["content"][0]["notes"][0]
    assert start_note["id"] == f"ev{jump_from}n1"
    assert start_note["ties"] == [{"target": f"ev{coda}n1", "targetType": "crossJump"}]
    assert not any(tie.get("lv") for tie in start_note["ties"])
    assert mnx["global"]["measures"][1]["jump"]["type"] == "segno"


def test_overfull_measure_is_reported(caplog) -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(DOTTED_HALF, 0), note(HALF, 1)])
    build_mnx(score, DenigmaContext())
    assert "extends past the end of the measure" in caplog.text


def test_every_sequence_adds_up() -> None:
    score = ScoreXml(measures=3, staves=(1, 2))
    score.layer(1, 1, [note(QUARTER, 0), note(EIGHTH, 1), note(EIGHTH, 2), note(HALF, 3)])
    score.layer(2, 1, [rest(WHOLE)])
    score.layer(1, 2, [note(DOTTED_HALF, 4)])
    score.layer(2, 2, [note(EIGHTH, -7)] * 8)
    score.layer(1, 3, [note(QUARTER, 0)])
    mnx = build_mnx(score)
    for part in mnx["parts"]:
        for measure in part["measures"]:
            for sequence in measure["sequences"]:
                assert _content_duration(sequence["content"], Fraction(1)) == 1


# ── deferred jump ties ────────────────────────────────────────────────────────


def _jump_context(*ties: dict[str, Any]) -> tuple[MnxContext, dict[str, Any]]:
    mctx = MnxContext(ScoreXml().document(), DenigmaContext())
    start = {"id": "ev1n1", "pitch": {"step": "C", "octave": 4}, "ties": list(ties)}
    mctx.notes_by_id["ev1n1"] = start
    mctx.notes_by_id["ev9n1"] = {"id": "ev9n1", "pitch": {"step": "C", "octave": 4}}
    return mctx, start


def test_jump_tie_takes_the_shared_side() -> None:
    mctx, start = _jump_context({"target": "ev2n1", "side": "up"}, {"lv": True})
    mctx.defer_jump_tie("ev1n1", "ev9n1", None)
    finalize_jump_ties(mctx)
    assert start["ties"] == [
        {"target": "ev2n1", "side": "up"},
        {"target": "ev9n1", "targetType": "crossJump", "side": "up"},
    ]


def test_jump_tie_without_a_shared_side() -> None:
    mctx, start = _jump_context({"target": "ev2n1", "side": "up"}, {"target": "ev3n1"})
    mctx.defer_jump_tie("ev1n1", "ev9n1", None)
    finalize_jump_ties(mctx)
    assert start["ties"][-1] == {"target": "ev9n1", "targetType": "crossJump"}


def test_jump_tie_keeps_its_own_side() -> None:
    mctx, start = _jump_context({"target": "ev2n1", "side": "up"})
    mctx.defer_jump_tie("ev1n1", "ev9n1", "down")
    finalize_jump_ties(mctx)
    assert start["ties"][-1] == {"target": "ev9n1", "targetType": "crossJump", "side": "down"}


def test_jump_ties_are_recorded_once() -> None:
    mctx, start = _jump_context({"lv": True})
    assert mctx.defer_jump_tie("ev1n1", "ev9n1", None)
    assert not mctx.defer_jump_tie("ev1n1", "ev9n1", "up")
    assert len(mctx.deferred_jump_ties) == 1
    finalize_jump_ties(mctx)
    finalize_jump_ties(mctx)
    assert start["ties"] == [{"target": "ev9n1", "targetType": "crossJump"}]
