"""Unit tests for zip member access and member-preserving rewrites."""

import zipfile
from pathlib import Path

import pytest

from denigma import zip_archive
from denigma.errors import ArchiveEntryMissingError, UnsupportedFormatError
from denigma.zip_archive import ArchiveEntry, EntryType, HostOS, VisitResult


def _make_archive(path: Path) -> None:
    with zipfile.ZipFile(path, "w") as archive:
        stored = zipfile.ZipInfo("META-INF/container.xml", date_time=(2020, 1, 2, 3, 4, 6))
        stored.compress_type = zipfile.ZIP_STORED
        stored.create_system = HostOS.UNIX
        stored.external_attr = 0o100644 << 16
        archive.writestr(stored, b"<container/>")

        deflated = zipfile.ZipInfo("score.musicxml", date_time=(2021, 5, 6, 7, 8, 10))
        deflated.compress_type = zipfile.ZIP_DEFLATED
        deflated.create_system = HostOS.DOS
        deflated.external_attr = 0x20
        archive.writestr(deflated, b"<score-partwise/>" * 20)

        image = zipfile.ZipInfo("graphics/logo.png", date_time=(2019, 12, 31, 23, 58, 0))
        image.compress_type = zipfile.ZIP_STORED
        image.create_system = HostOS.UNIX
        image.external_attr = 0o100600 << 16
        archive.writestr(image, bytes(range(256)))


def _info_by_name(path: Path) -> dict[str, zipfile.ZipInfo]:
    with zipfile.ZipFile(path) as archive:
        return {info.filename: info for info in archive.infolist()}


def test_rewrite_preserves_pass_through_members(tmp_path: Path) -> None:
    source = tmp_path / "in.mxl"
    target = tmp_path / "out.mxl"
    _make_archive(source)

    def visit(entry: ArchiveEntry, data: bytes) -> VisitResult:
        if entry.filename == "score.musicxml":
            return VisitResult(replacement=b"<changed/>")
        return VisitResult()

    zip_archive.rewrite(source, target, visit)

    before = _info_by_name(source)
    after = _info_by_name(target)
    assert list(after) == list(before)
    for name in ("META-INF/container.xml", "graphics/logo.png"):
        assert after[name].date_time == before[name].date_time
        assert after[name].compress_type == before[name].compress_type
        assert after[name].external_attr == before[name].external_attr
        assert after[name].create_system == before[name].create_system
    with zipfile.ZipFile(source) as old, zipfile.ZipFile(target) as new:
        assert new.read("graphics/logo.png") == old.read("graphics/logo.png")
        assert new.read("META-INF/container.xml") == old.read("META-INF/container.xml")
        assert new.read("score.musicxml") == b"<changed/>"
    assert after["score.musicxml"].compress_type == zipfile.ZIP_DEFLATED


def test_rewrite_can_drop_members(tmp_path: Path) -> None:
    source = tmp_path / "in.mxl"
    target = tmp_path / "out.mxl"
    _make_archive(source)
    zip_archive.rewrite(source, target, lambda entry, data: VisitResult(keep=not entry.filename.startswith("graphics/")))
    assert "graphics/logo.png" not in _info_by_name(target)


def test_iterate_members_reports_metadata(tmp_path: Path) -> None:
    source = tmp_path / "in.mxl"
    _make_archive(source)
    seen: list[tuple[ArchiveEntry, bytes]] = []
    zip_archive.iterate_members(source, lambda entry, data: seen.append((entry, data)))
    assert [entry.filename for entry, _ in seen] == ["META-INF/container.xml", "score.musicxml", "graphics/logo.png"]
    container, score, image = (entry for entry, _ in seen)
    assert container.host_os == HostOS.UNIX
    assert container.date_time == (2020, 1, 2, 3, 4, 6)
    assert score.host_os == HostOS.DOS
    assert score.compress_type == zipfile.ZIP_DEFLATED
    assert image.posix_mode == 0o600
    assert seen[2][1] == bytes(range(256))


def test_read_entry_missing_member(tmp_path: Path) -> None:
    source = tmp_path / "in.mxl"
    _make_archive(source)
    assert zip_archive.read_entry(source, "META-INF/container.xml") == b"<container/>"
    with pytest.raises(ArchiveEntryMissingError):
        zip_archive.read_entry(source, "missing.xml")


def test_not_a_zip_file(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.musx"
    bogus.write_bytes(b"not a zip")
    with pytest.raises(UnsupportedFormatError):
        zip_archive.read_container(bogus)


def test_read_container_collects_graphics_and_metadata(tmp_path: Path) -> None:
    path = tmp_path / "doc.musx"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("score.dat", b"\x01\x02")
        archive.writestr("NotationMetadata.xml", b"<metadata/>")
        archive.writestr("graphics/one.png", b"png")
        archive.writestr("graphics/nested/two.png", b"ignored")
    contents = zip_archive.read_container(path)
    assert contents.score_blob == b"\x01\x02"
    assert contents.metadata == b"<metadata/>"
    assert [g.filename for g in contents.graphics] == ["one.png"]


def test_read_container_requires_score_dat(tmp_path: Path) -> None:
    path = tmp_path / "doc.musx"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("other.txt", b"x")
    with pytest.raises(ArchiveEntryMissingError):
        zip_archive.read_container(path)


@pytest.mark.parametrize(
    ("host_os", "external_attr", "filename", "expected"),
    [
        (HostOS.UNIX, 0o040755 << 16, "dir/", EntryType.DIRECTORY),
        (HostOS.UNIX, 0o120777 << 16, "link", EntryType.SYMLINK),
        (HostOS.UNIX, 0o100644 << 16, "file", EntryType.FILE),
        (HostOS.DOS, 0x10, "dir", EntryType.DIRECTORY),
        (HostOS.WINDOWS_NTFS, 0x400, "link", EntryType.SYMLINK),
        (HostOS.DOS, 0x20, "file", EntryType.FILE),
    ],
)
def test_entry_type_by_host(host_os: int, external_attr: int, filename: str, expected: EntryType) -> None:
    entry = ArchiveEntry(filename, (1980, 1, 1, 0, 0, 0), 0, external_attr, host_os, zipfile.ZIP_STORED)
    assert entry.entry_type is expected


def test_posix_mode_only_for_posix_hosts() -> None:
    unix = ArchiveEntry("f", (1980, 1, 1, 0, 0, 0), 0, 0o100640 << 16, HostOS.UNIX, 0)
    dos = ArchiveEntry("f", (1980, 1, 1, 0, 0, 0), 0, 0x20, HostOS.DOS, 0)
    assert unix.posix_mode == 0o640
    assert dos.posix_mode is None
