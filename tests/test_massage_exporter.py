"""Tests for massaging .musicxml and .mxl files."""

import zipfile
from pathlib import Path

import pytest
from lxml import etree

from denigma.context import DenigmaContext, DenigmaOptions
from denigma.errors import UnsupportedFormatError
from denigma.massage_exporter import MassageExporter, read_mxl_layout
from musicxml_samples import musicxml, octave_shift, pitched
from scorexml import WHOLE, ScoreXml, rest

CONTAINER = (
    b'<?xml version="1.0" encoding="UTF-8"?><container><rootfiles>'
    b'<rootfile full-path="score.musicxml" media-type="application/vnd.recordare.musicxml+xml"/>'
    b"</rootfiles></container>"
)

XLINK = "http://www.w3.org/1999/xlink"


def _score_with_links() -> bytes:
    root = etree.fromstring(musicxml(pitched("C", 4, "whole")))
    score_part = root.find("part-list/score-part")
    for href, title in (("parts/flute.musicxml", "Flute 1"), ("parts/oboe.musicxml", "Oboe")):
        etree.SubElement(score_part, "part-link", {f"{{{XLINK}}}href": href, f"{{{XLINK}}}title": title})
    return etree.tostring(root)


def _mxl(path: Path) -> Path:
    part = musicxml(pitched("C", 5) + octave_shift("stop") + pitched("E", 5))
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("mimetype", b"application/vnd.recordare.musicxml")
        archive.writestr("META-INF/container.xml", CONTAINER)
        archive.writestr("score.musicxml", _score_with_links())
        archive.writestr("parts/flute.musicxml", part)
        archive.writestr("parts/oboe.musicxml", part)
    return path


def _exporter(**options) -> MassageExporter:
    options.setdefault("refloat_rests", False)
    return MassageExporter(DenigmaContext(DenigmaOptions(**options)))


def _was_massaged(data: bytes) -> bool:
    root = etree.fromstring(data)
    return root.find("identification/miscellaneous/miscellaneous-field[@name='original-software']") is not None


def test_read_mxl_layout(tmp_path: Path) -> None:
    layout = read_mxl_layout(_mxl(tmp_path / "song.mxl"))
    assert layout.score_path == "score.musicxml"
    assert [(link.href, link.title) for link in layout.part_links] == [
        ("parts/flute.musicxml", "Flute 1"),
        ("parts/oboe.musicxml", "Oboe"),
    ]


@pytest.mark.parametrize(
    ("options", "massaged"),
    [
        ({}, {"score.musicxml", "parts/flute.musicxml", "parts/oboe.musicxml"}),
        ({"part_name": ""}, {"score.musicxml", "parts/flute.musicxml"}),
        ({"part_name": "Ob"}, {"score.musicxml", "parts/oboe.musicxml"}),
        ({"part_name": "Ob", "all_parts_and_score": True}, {"score.musicxml", "parts/flute.musicxml", "parts/oboe.musicxml"}),
    ],
)
def test_mxl_part_selection(tmp_path: Path, options: dict, massaged: set[str]) -> None:
    source = _mxl(tmp_path / "song.mxl")
    output = tmp_path / "song.massaged.mxl"
    _exporter(**options).massage(source, output)
    with zipfile.ZipFile(output) as archive:
        assert archive.namelist() == zipfile.ZipFile(source).namelist()
        found = {name for name in archive.namelist() if name.endswith(".musicxml") and _was_massaged(archive.read(name))}
        assert archive.read("META-INF/container.xml") == CONTAINER
    assert found == massaged


def test_unknown_part_name_is_reported(tmp_path: Path, caplog) -> None:
    output = tmp_path / "out.mxl"
    _exporter(part_name="Tuba").massage(_mxl(tmp_path / "song.mxl"), output)
    assert 'No part name starting with "Tuba" was found' in caplog.text
    assert output.exists()


def test_musicxml_file(tmp_path: Path) -> None:
    source = tmp_path / "song.musicxml"
    source.write_bytes(musicxml(pitched("C", 5) + octave_shift("stop") + pitched("E", 5)))
    output = tmp_path / "song.massaged.musicxml"
    _exporter().massage(source, output)
    assert _was_massaged(output.read_bytes())


def test_cross_format_is_refused(tmp_path: Path) -> None:
    source = tmp_path / "song.musicxml"
    source.write_bytes(musicxml(pitched("C", 4, "whole")))
    with pytest.raises(UnsupportedFormatError):
        _exporter().massage(source, tmp_path / "song.mxl")
    with pytest.raises(UnsupportedFormatError):
        _exporter().massage(_mxl(tmp_path / "other.mxl"), tmp_path / "other.musicxml")


def _companion(path: Path) -> Path:
    score = ScoreXml()
    score.layer(1, 1, [rest(WHOLE)])
    path.write_bytes(score.render())
    return path


def test_companion_beside_the_input(tmp_path: Path) -> None:
    source = tmp_path / "song.massaged.musicxml"
    companion = _companion(tmp_path / "song.enigmaxml")
    assert _exporter().find_companion(source) == companion


def test_companion_in_the_parent_directory(tmp_path: Path) -> None:
    (tmp_path / "exports").mkdir()
    companion = _companion(tmp_path / "song.enigmaxml")
    assert _exporter().find_companion(tmp_path / "exports" / "song.musicxml") == companion


def test_explicit_companion_directory(tmp_path: Path) -> None:
    originals = tmp_path / "originals"
    originals.mkdir()
    companion = _companion(originals / "song.enigmaxml")
    exporter = _exporter(finale_file_path=originals)
    assert exporter.find_companion(tmp_path / "song.musicxml") == companion
    assert exporter.find_companion(tmp_path / "other.musicxml") is None


def test_missing_companion_is_a_warning(tmp_path: Path, caplog) -> None:
    source = tmp_path / "song.musicxml"
    source.write_bytes(musicxml(pitched("C", 4, "whole")))
    _exporter(refloat_rests=True).massage(source, tmp_path / "out.musicxml")
    assert "no Finale document found" in caplog.text
