"""Error kinds raised or logged while processing a single input file."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Every failure the pipeline knows how to report."""

    INPUT_NOT_FOUND = "InputNotFound"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    ARCHIVE_ENTRY_MISSING = "ArchiveEntryMissing"
    XML_PARSE = "XmlParse"
    SOURCE_DOCUMENT_INVALID = "SourceDocumentInvalid"
    SCHEMA_VALIDATION = "SchemaValidation"
    SEMANTIC_VALIDATION = "SemanticValidation"
    MASSAGE_MISMATCH = "MassageMismatch"
    OVERFULL_MEASURE = "OverfullMeasure"
    UNRESOLVED_OTTAVA_STAFF = "UnresolvedOttavaStaff"
    FONT_RESOLUTION_FAILED = "FontResolutionFailed"


class DenigmaError(Exception):
    """
    Base class for failures that abort processing of the current file.

    The command loop catches these at the per-file boundary, logs them at
    error severity and moves on to the next input.
    """

    kind: ErrorKind = ErrorKind.SOURCE_DOCUMENT_INVALID

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class InputNotFoundError(DenigmaError):
    """An input path or pattern resolved to nothing readable."""

    kind = ErrorKind.INPUT_NOT_FOUND


class UnsupportedFormatError(DenigmaError):
    """The file extension or container layout is not one we process."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class ArchiveEntryMissingError(DenigmaError):
    """A required member is absent from a zip container."""

    kind = ErrorKind.ARCHIVE_ENTRY_MISSING


class XmlParseError(DenigmaError):
    """An XML payload could not be parsed."""

    kind = ErrorKind.XML_PARSE


class SourceDocumentInvalidError(DenigmaError):
    """The decoded score could not be turned into a source document."""

    kind = ErrorKind.SOURCE_DOCUMENT_INVALID
