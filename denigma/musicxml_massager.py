"""Repairs applied to one MusicXML document exported by Finale."""

from __future__ import annotations

import datetime
import re
from typing import Final

from lxml import etree

from denigma import PROGRAM_NAME, __version__
from denigma.context import DenigmaContext
from denigma.entry_frames import EntryFrame
from denigma.errors import DenigmaError, ErrorKind, XmlParseError
from denigma.note_values import edu_for_musicxml_type, musicxml_type
from denigma.score_document import ScoreDocument
from denigma.score_models import MAX_LAYERS, QUARTER_EDU

FINALE_SOFTWARE_PREFIX: Final[str] = "Finale"
ORIGINAL_SOFTWARE: Final[str] = "original-software"
ORIGINAL_ENCODING_DATE: Final[str] = "original-encoding-date"

_PART_ID: Final = re.compile(r"^P(\d+)$")


def parse_musicxml(xml: bytes) -> etree._ElementTree:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        return etree.ElementTree(etree.fromstring(xml, parser))
    except etree.XMLSyntaxError as exc:
        raise XmlParseError(f"MusicXML could not be parsed: {exc}") from exc


def serialize_musicxml(tree: etree._ElementTree) -> bytes:
    return etree.tostring(tree, xml_declaration=True, encoding="UTF-8", standalone=False)


def _is_grace(element: etree._Element) -> bool:
    return element.tag == "note" and element.find("grace") is not None


def _is_chord_member(element: etree._Element) -> bool:
    return element.tag == "note" and element.find("chord") is not None


class MusicXmlMassager:
    """
    Apply the Finale MusicXML repairs to one partwise document.

    *companion* is the source document the MusicXML was exported from. When
    it is ``None`` the companion-driven checks and the rest refloating are
    skipped.
    """

    def __init__(self, ctx: DenigmaContext, companion: ScoreDocument | None = None) -> None:
        self.ctx = ctx
        self.options = ctx.options
        self.companion = companion
        self._instruments = self._companion_instruments()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _companion_instruments(self) -> list[list[int]]:
        """Staves of each instrument in the companion's scroll view, in order."""
        if self.companion is None:
            return []
        instruments: list[list[int]] = []
        seen: set[int] = set()
        scroll_view = self.companion.scroll_view()
        for staff_id in scroll_view:
            if staff_id in seen:
                continue
            group = self.companion.multi_staff_group_for(staff_id)
            staves = [s for s in group.staff_ids if s in scroll_view] if group else [staff_id]
            seen.update(staves)
            instruments.append(staves or [staff_id])
        return instruments

    def _instrument_for(self, part: etree._Element, position: int) -> list[int] | None:
        match = _PART_ID.match(part.get("id", ""))
        index = int(match.group(1)) - 1 if match else position
        if 0 <= index < len(self._instruments):
            return self._instruments[index]
        return None

    def _update_encoding(self, root: etree._Element) -> bool:
        """
        Stamp this program into ``identification/encoding``.

        Returns ``True`` when the document was massaged before. Raises when
        the document was not exported by Finale.
        """
        identification = root.find("identification")
        if identification is None:
            identification = etree.SubElement(root, "identification")
            work_or_title = [child for child in root if child.tag in ("work", "movement-number", "movement-title")]
            if work_or_title:
                work_or_title[-1].addnext(identification)
        encoding = identification.find("encoding")
        if encoding is None:
            encoding = etree.SubElement(identification, "encoding")
        miscellaneous = identification.find("miscellaneous")

        previous = None
        if miscellaneous is not None:
            previous = miscellaneous.find(f"miscellaneous-field[@name='{ORIGINAL_SOFTWARE}']")
        already_massaged = previous is not None

        software = encoding.find("software")
        date = encoding.find("encoding-date")
        original_software = previous.text if already_massaged else (software.text if software is not None else "")
        if not (original_software or "").strip().startswith(FINALE_SOFTWARE_PREFIX):
            raise DenigmaError(
                f"not exported by {FINALE_SOFTWARE_PREFIX} (software is {original_software!r})",
                ErrorKind.UNSUPPORTED_FORMAT,
            )

        if miscellaneous is None:
            miscellaneous = etree.SubElement(identification, "miscellaneous")
        if not already_massaged:
            self._set_field(miscellaneous, ORIGINAL_SOFTWARE, software.text if software is not None else "")
            self._set_field(miscellaneous, ORIGINAL_ENCODING_DATE, date.text if date is not None else "")

        if software is None:
            software = etree.SubElement(encoding, "software")
        software.text = f"{PROGRAM_NAME} {__version__}"
        if date is None:
            date = etree.Element("encoding-date")
            software.addprevious(date)
        date.text = datetime.date.today().isoformat()
        # option fields describe the pass that made the repairs
        if not already_massaged:
            for name, value in self.options.massage_option_values():
                self._set_field(miscellaneous, name, value)
        return already_massaged

    def _set_field(self, miscellaneous: etree._Element, name: str, value: str) -> None:
        field = miscellaneous.find(f"miscellaneous-field[@name='{name}']")
        if field is None:
            field = etree.SubElement(miscellaneous, "miscellaneous-field", name=name)
        field.text = value

    # ------------------------------------------------------------------
    # Companion repairs
    # ------------------------------------------------------------------

    def _massage_with_companion(self, measure: etree._Element, staves: list[int], measure_number: int) -> None:
        companion = self.companion
        if companion is None or measure_number not in companion.measures:
            return
        notes = [note for note in measure.iter("note") if not _is_chord_member(note)]
        for staff_number, staff_id in enumerate(staves, start=1):
            staff_notes = [note for note in notes if int(note.findtext("staff", "1")) == staff_number]
            self._massage_staff(companion, staff_notes, staff_id, measure_number)

    def _massage_staff(
        self, companion: ScoreDocument, staff_notes: list[etree._Element], staff_id: int, measure_number: int
    ) -> None:
        """Pair one staff's companion entries with its MusicXML notes, stopping at the first gap."""
        candidates = iter(staff_notes)
        for layer in range(1, MAX_LAYERS + 1):
            for info in EntryFrame(companion, staff_id, measure_number, layer).entries:
                xml_note = next(candidates, None)
                if xml_note is None:
                    return
                if not self._check_pair(info.entry.duration, xml_note, staff_id, measure_number):
                    if self.options.massage_stop_on_mismatch:
                        return
                    continue
                if self.options.refloat_rests and not info.entry.is_note and info.entry.float_rest:
                    rest = xml_note.find("rest")
                    if rest is not None:
                        for name in ("display-step", "display-octave"):
                            for child in rest.findall(name):
                                rest.remove(child)

    def _check_pair(self, duration: int, xml_note: etree._Element, staff_id: int, measure_number: int) -> bool:
        expected = musicxml_type(duration)
        xml_type = xml_note.findtext("type")
        if expected is None or xml_type is None:
            return True
        xml_dots = len(xml_note.findall("dot"))
        expected_type, expected_dots = expected
        if expected_type != xml_type:
            shifted = self._tremolo_shifted_type(duration, xml_note, xml_type)
            if shifted == xml_type:
                return True
            self.ctx.warning(
                f"[{ErrorKind.MASSAGE_MISMATCH.value}] staff {staff_id} measure {measure_number}: "
                f"note type {xml_type} does not match {expected_type}"
            )
            return False
        if expected_dots != xml_dots:
            self.ctx.warning(
                f"[{ErrorKind.MASSAGE_MISMATCH.value}] staff {staff_id} measure {measure_number}: "
                f"{xml_dots} dots do not match {expected_dots}"
            )
            return False
        return True

    def _tremolo_shifted_type(self, duration: int, xml_note: etree._Element, xml_type: str) -> str | None:
        """The source type rewritten the way exported tremolos rewrite it, if the note has one."""
        tremolo = xml_note.find("notations/ornaments/tremolo")
        xml_edu = edu_for_musicxml_type(xml_type)
        if tremolo is None or xml_edu is None:
            return None
        try:
            marks = int((tremolo.text or "0").strip())
        except ValueError:
            return None
        shift = marks + (xml_edu.bit_length() - 1) - (QUARTER_EDU.bit_length() - 1)
        shifted = duration >> shift if shift >= 0 else duration << -shift
        found = musicxml_type(shifted)
        return found[0] if found else None

    # ------------------------------------------------------------------
    # Measure repairs
    # ------------------------------------------------------------------

    def _extend_ottavas_right(self, measure: etree._Element) -> None:
        stops = [d for d in measure.iter("direction") if d.find("direction-type/octave-shift[@type='stop']") is not None]
        for direction in stops:
            target = None
            for sibling in direction.itersiblings():
                if sibling.tag in ("backup", "forward"):
                    break
                if sibling.tag != "note":
                    continue
                if target is None:
                    if sibling.find("rest") is not None:
                        break
                    target = sibling
                elif _is_chord_member(sibling):
                    target = sibling
                else:
                    break
            if target is not None:
                target.addnext(direction)

    def _extend_ottavas_left(self, measure: etree._Element) -> None:
        starts = [
            d
            for d in measure.iter("direction")
            if d.find("direction-type/octave-shift[@type='up']") is not None
            or d.find("direction-type/octave-shift[@type='down']") is not None
        ]
        for direction in starts:
            graces = []
            for sibling in direction.itersiblings(preceding=True):
                if not _is_grace(sibling):
                    break
                graces.append(sibling)
            if not graces:
                continue
            shift = direction.find("direction-type/octave-shift")
            # sizes below 8 give no whole octave and leave the pitches alone
            octaves = (int(shift.get("size", "8")) - 1) // 7
            sign = -1 if shift.get("type") == "down" else 1
            for grace in graces:
                octave = grace.find("pitch/octave")
                if octave is not None and octave.text is not None:
                    octave.text = str(int(octave.text) + sign * octaves)
            graces[-1].addprevious(direction)

    def _fermata_whole_rest(self, measure: etree._Element) -> None:
        first = measure.find("note")
        if first is None:
            return
        rest = first.find("rest")
        note_type = first.find("type")
        if rest is None or note_type is None or note_type.text != "whole":
            return
        if first.find("notations/fermata") is None:
            return
        rest.set("measure", "yes")
        first.remove(note_type)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def massage_tree(self, tree: etree._ElementTree) -> None:
        """Repair *tree* in place."""
        root = tree.getroot()
        if root.tag != "score-partwise":
            raise DenigmaError(f"root element is <{root.tag}>, expected <score-partwise>", ErrorKind.UNSUPPORTED_FORMAT)
        if self._update_encoding(root):
            self.ctx.verbose("already massaged; only the encoding software and date were refreshed")
            return

        use_companion = self.companion is not None and self.options.refloat_rests
        for position, part in enumerate(root.iter("part")):
            staves = self._instrument_for(part, position) if use_companion else None
            if use_companion and staves is None:
                self.ctx.warning(f"part {part.get('id')} has no matching instrument in the Finale document")
            for measure_position, measure in enumerate(part.iter("measure"), start=1):
                if staves is not None:
                    self._massage_with_companion(measure, staves, measure_position)
                if self.options.extend_ottavas_right:
                    self._extend_ottavas_right(measure)
                if self.options.extend_ottavas_left:
                    self._extend_ottavas_left(measure)
                if self.options.fermata_whole_rests:
                    self._fermata_whole_rest(measure)

    def massage(self, xml: bytes) -> bytes:
        """Return the repaired form of the MusicXML document *xml*."""
        tree = parse_musicxml(xml)
        self.massage_tree(tree)
        return serialize_musicxml(tree)
