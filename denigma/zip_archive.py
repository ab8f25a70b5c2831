"""Zip container access for ``.musx`` and ``.mxl`` files."""

from __future__ import annotations

import logging
import stat
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path, PurePosixPath
from typing import Final

from denigma.errors import ArchiveEntryMissingError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SCORE_DAT_NAME: Final[str] = "score.dat"
NOTATION_METADATA_NAME: Final[str] = "NotationMetadata.xml"
GRAPHICS_DIRECTORY: Final[str] = "graphics"

_DOS_DIRECTORY_FLAG: Final[int] = 0x10
_DOS_REPARSE_POINT_FLAG: Final[int] = 0x400


class HostOS(IntEnum):
    """Value of the "version made by" high byte in a zip central directory."""

    DOS = 0
    AMIGA = 1
    OPENVMS = 2
    UNIX = 3
    VM_CMS = 4
    ATARI_ST = 5
    OS2_HPFS = 6
    MACINTOSH = 7
    Z_SYSTEM = 8
    CPM = 9
    WINDOWS_NTFS = 10
    MVS = 11
    VSE = 12
    ACORN_RISC = 13
    VFAT = 14
    ALTERNATE_MVS = 15
    BEOS = 16
    TANDEM = 17
    OS400 = 18
    OSX = 19


# Hosts whose external attributes carry POSIX mode bits in the high word.
_POSIX_HOSTS: Final[frozenset[int]] = frozenset({HostOS.UNIX, HostOS.OSX, HostOS.BEOS})
# Hosts whose external attributes are DOS attribute flags in the low byte.
_DOS_HOSTS: Final[frozenset[int]] = frozenset(
    {HostOS.DOS, HostOS.OS2_HPFS, HostOS.WINDOWS_NTFS, HostOS.VFAT}
)


class EntryType(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class ArchiveEntry:
    """Metadata for one zip member, independent of its payload."""

    filename: str
    date_time: tuple[int, int, int, int, int, int]
    internal_attr: int
    external_attr: int
    host_os: int
    compress_type: int

    @classmethod
    def from_zipinfo(cls, info: zipfile.ZipInfo) -> ArchiveEntry:
        # zipfile splits "version made by" into create_system (high byte)
        # and create_version (low byte).
        return cls(
            filename=info.filename,
            date_time=info.date_time,
            internal_attr=info.internal_attr,
            external_attr=info.external_attr,
            host_os=info.create_system,
            compress_type=info.compress_type,
        )

    @property
    def entry_type(self) -> EntryType:
        if self.host_os in _POSIX_HOSTS:
            mode = self.external_attr >> 16
            if stat.S_ISLNK(mode):
                return EntryType.SYMLINK
            if stat.S_ISDIR(mode):
                return EntryType.DIRECTORY
        elif self.host_os in _DOS_HOSTS:
            if self.external_attr & _DOS_REPARSE_POINT_FLAG:
                return EntryType.SYMLINK
            if self.external_attr & _DOS_DIRECTORY_FLAG:
                return EntryType.DIRECTORY
        if self.filename.endswith("/"):
            return EntryType.DIRECTORY
        return EntryType.FILE

    @property
    def is_file(self) -> bool:
        return self.entry_type is EntryType.FILE

    @property
    def posix_mode(self) -> int | None:
        """Permission bits when the host stores them, else ``None``."""
        if self.host_os in _POSIX_HOSTS:
            return stat.S_IMODE(self.external_attr >> 16)
        return None


@dataclass
class VisitResult:
    """What a visitor wants done with the member it was handed."""

    keep: bool = True
    replacement: bytes | None = None


ArchiveVisitor = Callable[[ArchiveEntry, bytes], "VisitResult | None"]


@dataclass(frozen=True)
class GraphicFile:
    filename: str
    data: bytes


@dataclass
class ContainerContents:
    """The members of a ``.musx`` archive that a source document is built from."""

    score_blob: bytes
    metadata: bytes | None = None
    graphics: list[GraphicFile] = field(default_factory=list)


def _open_archive(archive_path: Path) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(archive_path, "r")
    except zipfile.BadZipFile as exc:
        raise UnsupportedFormatError(f"{archive_path} is not a valid zip archive: {exc}") from exc


def read_entry(archive_path: Path, name: str) -> bytes:
    """
    Return the uncompressed bytes of member *name*.

    Raises:
        ArchiveEntryMissingError: If the archive has no member called *name*.
    """
    with _open_archive(Path(archive_path)) as archive:
        try:
            info = archive.getinfo(name)
        except KeyError:
            raise ArchiveEntryMissingError(f"{name} not found in {archive_path}") from None
        return archive.read(info)


def read_container(archive_path: Path) -> ContainerContents:
    """Collect ``score.dat``, the optional metadata and every ``graphics/`` file."""
    archive_path = Path(archive_path)
    score_blob: bytes | None = None
    metadata: bytes | None = None
    graphics: list[GraphicFile] = []
    with _open_archive(archive_path) as archive:
        for info in archive.infolist():
            entry = ArchiveEntry.from_zipinfo(info)
            if not entry.is_file:
                continue
            member = PurePosixPath(info.filename)
            if info.filename == SCORE_DAT_NAME:
                score_blob = archive.read(info)
            elif info.filename == NOTATION_METADATA_NAME:
                metadata = archive.read(info)
            elif member.parent.name == GRAPHICS_DIRECTORY and len(member.parts) == 2:
                graphics.append(GraphicFile(filename=member.name, data=archive.read(info)))
    if score_blob is None:
        raise ArchiveEntryMissingError(f"{SCORE_DAT_NAME} not found in {archive_path}")
    logger.debug("read %s: %d graphics, metadata=%s", archive_path, len(graphics), metadata is not None)
    return ContainerContents(score_blob=score_blob, metadata=metadata, graphics=graphics)


def iterate_members(archive_path: Path, visitor: ArchiveVisitor) -> None:
    """Hand every member's metadata and bytes to *visitor*, in archive order."""
    with _open_archive(Path(archive_path)) as archive:
        for info in archive.infolist():
            visitor(ArchiveEntry.from_zipinfo(info), archive.read(info))


def rewrite(in_path: Path, out_path: Path, visitor: ArchiveVisitor) -> None:
    """
    Copy an archive member by member, letting *visitor* replace or drop entries.

    Each kept member keeps its name, timestamp, attributes, host system and
    compression method (deflated members stay deflated, everything else is
    stored).
    """
    in_path = Path(in_path)
    out_path = Path(out_path)
    with _open_archive(in_path) as source, zipfile.ZipFile(out_path, "w") as target:
        for info in source.infolist():
            entry = ArchiveEntry.from_zipinfo(info)
            data = source.read(info)
            result = visitor(entry, data) or VisitResult()
            if not result.keep:
                logger.debug("dropping %s", entry.filename)
                continue
            if result.replacement is not None:
                data = result.replacement
            target.writestr(_copy_info(info), data)


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    copied = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    copied.compress_type = zipfile.ZIP_DEFLATED if info.compress_type == zipfile.ZIP_DEFLATED else zipfile.ZIP_STORED
    copied.internal_attr = info.internal_attr
    copied.external_attr = info.external_attr
    copied.create_system = info.create_system
    copied.comment = info.comment
    return copied
