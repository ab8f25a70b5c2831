"""Turn a ``.musx`` or ``.enigmaxml`` file into scoreXml bytes or a source document."""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path
from typing import Final

from denigma import score_crypter
from denigma.errors import InputNotFoundError, SourceDocumentInvalidError, UnsupportedFormatError
from denigma.score_document import ScoreDocument
from denigma.score_reader import read_score_xml
from denigma.zip_archive import ContainerContents, read_container

logger = logging.getLogger(__name__)

MUSX_EXTENSION: Final[str] = "musx"
ENIGMAXML_EXTENSION: Final[str] = "enigmaxml"


def decode_score_blob(blob: bytes) -> bytes:
    """
    Decode ``score.dat`` bytes into scoreXml.

    Raises:
        SourceDocumentInvalidError: If the decoded payload is not gzip data.
    """
    decoded = score_crypter.crypt(blob)
    try:
        return gzip.decompress(decoded)
    except (OSError, EOFError, zlib.error) as exc:
        raise SourceDocumentInvalidError(f"score.dat does not decode to gzip data: {exc}") from exc


def encode_score_xml(xml: bytes) -> bytes:
    """Inverse of :func:`decode_score_blob`; used to build test fixtures."""
    return score_crypter.crypt(gzip.compress(xml))


def extract_score_xml(musx_path: Path) -> bytes:
    """Read and decode the scoreXml held in a ``.musx`` archive."""
    contents = _read_container(Path(musx_path))
    return decode_score_blob(contents.score_blob)


def read_enigmaxml(path: Path) -> bytes:
    path = Path(path)
    if not path.is_file():
        raise InputNotFoundError(f"{path} not found")
    return path.read_bytes()


def load_score_xml(path: Path) -> bytes:
    """Return the scoreXml for *path*, dispatching on its extension."""
    path = Path(path)
    extension = path.suffix.lstrip(".").lower()
    if extension == MUSX_EXTENSION:
        return extract_score_xml(path)
    if extension == ENIGMAXML_EXTENSION:
        return read_enigmaxml(path)
    raise UnsupportedFormatError(f"{path.name} is not a .{MUSX_EXTENSION} or .{ENIGMAXML_EXTENSION} file")


def load_document(path: Path) -> ScoreDocument:
    """
    Build the source document for a ``.musx`` or ``.enigmaxml`` file.

    For ``.musx`` input the container's notation metadata and embedded
    graphics are attached to the document as well.
    """
    path = Path(path)
    extension = path.suffix.lstrip(".").lower()
    if extension != MUSX_EXTENSION:
        return read_score_xml(load_score_xml(path))

    contents = _read_container(path)
    document = read_score_xml(decode_score_blob(contents.score_blob))
    document.notation_metadata = contents.metadata
    document.graphics = {graphic.filename: graphic.data for graphic in contents.graphics}
    logger.debug("loaded %s with %d embedded graphics", path.name, len(document.graphics))
    return document


def write_enigmaxml(output_path: Path, xml: bytes) -> None:
    Path(output_path).write_bytes(xml)


def _read_container(path: Path) -> ContainerContents:
    if not path.is_file():
        raise InputNotFoundError(f"{path} not found")
    return read_container(path)
