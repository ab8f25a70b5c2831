"""denigma: export Finale documents to open formats and repair Finale MusicXML."""

__version__ = "0.9.0"

PROGRAM_NAME = "denigma"
