"""Tests for the MusicXML repairs."""

import pytest
from lxml import etree

from denigma import PROGRAM_NAME
from denigma.context import DenigmaContext, DenigmaOptions
from denigma.errors import DenigmaError, XmlParseError
from denigma.musicxml_massager import MusicXmlMassager
from musicxml_samples import musicxml, octave_shift, pitched
from scorexml import HALF, QUARTER, WHOLE, ScoreXml, note, rest


def massage(xml: bytes, options: DenigmaOptions | None = None, companion=None) -> etree._Element:
    ctx = DenigmaContext(options or DenigmaOptions())
    return etree.fromstring(MusicXmlMassager(ctx, companion).massage(xml))


def _sequence(measure: etree._Element) -> list[str]:
    """Tags of the measure's children, with notes written as their step and octave."""
    items = []
    for child in measure:
        if child.tag == "note":
            items.append(child.findtext("pitch/step") + child.findtext("pitch/octave"))
        elif child.tag == "direction":
            items.append(child.find("direction-type/octave-shift").get("type"))
    return items


def test_ottava_stop_moves_past_the_next_note() -> None:
    xml = musicxml(octave_shift("up") + pitched("C", 5) + pitched("D", 5) + octave_shift("stop") + pitched("E", 5))
    measure = massage(xml).find("part/measure")
    assert _sequence(measure) == ["up", "C5", "D5", "E5", "stop"]


def test_ottava_stop_includes_the_whole_chord() -> None:
    chord_note = "<note><chord/><pitch><step>G</step><octave>5</octave></pitch><duration>1</duration><type>quarter</type></note>"
    xml = musicxml(pitched("C", 5) + octave_shift("stop") + pitched("E", 5) + chord_note + pitched("A", 5))
    measure = massage(xml).find("part/measure")
    assert _sequence(measure) == ["C5", "E5", "G5", "stop", "A5"]


def test_ottava_start_moves_before_grace_notes() -> None:
    xml = musicxml(
        pitched("B", 5, "eighth", grace=True)
        + pitched("C", 6, "eighth", grace=True)
        + octave_shift("down", 15)
        + pitched("D", 6)
    )
    measure = massage(xml).find("part/measure")
    assert _sequence(measure) == ["down", "B3", "C4", "D6"]


def test_small_ottava_leaves_grace_pitches() -> None:
    xml = musicxml(pitched("B", 5, "eighth", grace=True) + octave_shift("down", 7) + pitched("D", 6))
    measure = massage(xml).find("part/measure")
    assert _sequence(measure) == ["down", "B5", "D6"]


def test_fermata_whole_rest_becomes_measure_rest() -> None:
    xml = musicxml("<note><rest/><duration>4</duration><type>whole</type><notations><fermata/></notations></note>")
    note_element = massage(xml).find("part/measure/note")
    assert note_element.find("rest").get("measure") == "yes"
    assert note_element.find("type") is None


def test_switches_turn_repairs_off() -> None:
    xml = musicxml(
        "<note><rest/><duration>4</duration><type>whole</type><notations><fermata/></notations></note>"
        + pitched("C", 5)
        + octave_shift("stop")
        + pitched("E", 5)
    )
    options = DenigmaOptions(extend_ottavas_right=False, fermata_whole_rests=False)
    measure = massage(xml, options).find("part/measure")
    assert measure.find("note/type").text == "whole"
    assert _sequence(measure)[-2:] == ["stop", "E5"]


def test_encoding_records_the_original_software() -> None:
    root = massage(musicxml(pitched("C", 4, "whole")))
    encoding = root.find("identification/encoding")
    assert encoding.findtext("software").startswith(PROGRAM_NAME)
    fields = {f.get("name"): f.text for f in root.iterfind("identification/miscellaneous/miscellaneous-field")}
    assert fields["original-software"] == "Finale v27.4 for Mac"
    assert fields["original-encoding-date"] == "2023-05-01"
    assert fields["refloat-rests"] == "yes"
    assert fields["extend-ottavas-right"] == "yes"


def test_second_massage_changes_only_the_encoding() -> None:
    xml = musicxml(pitched("C", 5) + octave_shift("stop") + pitched("E", 5) + pitched("F", 5))
    ctx = DenigmaContext(DenigmaOptions())
    once = MusicXmlMassager(ctx).massage(xml)
    twice_root = etree.fromstring(MusicXmlMassager(ctx).massage(once))
    once_root = etree.fromstring(once)
    assert _sequence(twice_root.find("part/measure")) == _sequence(once_root.find("part/measure"))
    fields = [f.get("name") for f in twice_root.iterfind("identification/miscellaneous/miscellaneous-field")]
    assert fields.count("original-software") == 1
    assert twice_root.findtext(
        "identification/miscellaneous/miscellaneous-field[@name='original-software']"
    ) == "Finale v27.4 for Mac"


def test_other_exporters_are_refused() -> None:
    with pytest.raises(DenigmaError):
        massage(musicxml(pitched("C", 4, "whole"), software="Sibelius 2024"))


def test_malformed_musicxml() -> None:
    with pytest.raises(XmlParseError):
        massage(b"<score-partwise><part>")


def test_companion_refloats_rests() -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(HALF, 0), rest(QUARTER, flags="<floatRest/>"), rest(QUARTER)])
    measure = (
        pitched("C", 4, "half")
        + "<note><rest><display-step>B</display-step><display-octave>4</display-octave></rest>"
        "<duration>1</duration><type>quarter</type></note>"
        + "<note><rest><display-step>E</display-step><display-octave>5</display-octave></rest>"
        "<duration>1</duration><type>quarter</type></note>"
    )
    root = massage(musicxml(measure), companion=score.document())
    floating, fixed = root.findall("part/measure/note")[1:]
    assert floating.find("rest/display-step") is None
    assert floating.find("rest/display-octave") is None
    assert fixed.findtext("rest/display-step") == "E"


def test_companion_mismatch_is_reported(caplog) -> None:
    score = ScoreXml()
    score.layer(1, 1, [note(HALF, 0), rest(HALF, flags="<floatRest/>")])
    measure = (
        pitched("C", 4, "quarter")
        + "<note><rest><display-step>B</display-step><display-octave>4</display-octave></rest>"
        "<duration>3</duration><type>half</type><dot/></note>"
    )
    massage(musicxml(measure), companion=score.document())
    assert "MassageMismatch" in caplog.text


def _piano_companion() -> ScoreXml:
    score = ScoreXml(staves=(1, 2))
    score.others.append('<multiStaffInstGroup cmper="1"><staffNum>1</staffNum><staffNum>2</staffNum></multiStaffInstGroup>')
    score.layer(1, 1, [note(HALF, 0), note(HALF, 2)])
    score.layer(2, 1, [rest(WHOLE, flags="<floatRest/>")])
    return score


_PIANO_MEASURE = (
    "<note><pitch><step>C</step><octave>4</octave></pitch><duration>1</duration><type>quarter</type>"
    "<staff>1</staff></note>"
    "<backup><duration>1</duration></backup>"
    "<note><rest><display-step>D</display-step><display-octave>3</display-octave></rest>"
    "<duration>4</duration><type>whole</type><staff>2</staff></note>"
)


@pytest.mark.parametrize("stop_on_mismatch", [False, True])
def test_later_staves_are_refloated_after_a_mismatch(caplog, stop_on_mismatch: bool) -> None:
    options = DenigmaOptions(massage_stop_on_mismatch=stop_on_mismatch)
    root = massage(musicxml(_PIANO_MEASURE), options, companion=_piano_companion().document())
    assert "MassageMismatch" in caplog.text
    lower = root.findall("part/measure/note")[1]
    assert lower.find("rest/display-step") is None
    assert lower.find("rest/display-octave") is None


def test_second_massage_keeps_the_recorded_options() -> None:
    xml = musicxml("<note><rest/><duration>4</duration><type>whole</type><notations><fermata/></notations></note>")
    once = MusicXmlMassager(DenigmaContext(DenigmaOptions(fermata_whole_rests=False))).massage(xml)
    twice = etree.fromstring(MusicXmlMassager(DenigmaContext(DenigmaOptions(fermata_whole_rests=True))).massage(once))
    fields = {f.get("name"): f.text for f in twice.iterfind("identification/miscellaneous/miscellaneous-field")}
    assert fields["fermata-whole-rests"] == "no"
    assert twice.findtext("part/measure/note/type") == "whole"
