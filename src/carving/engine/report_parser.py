"""
Parser for the carving engine's DFXML report.

The engine writes one ``fileobject`` element per recovered file:

    <fileobject>
      <filename>f0001234.jpg</filename>
      <filesize>40960</filesize>
      <byte_runs>
        <byte_run offset="0" img_offset="631808" len="40960"/>
      </byte_runs>
    </fileobject>

``img_offset`` is relative to the file the engine scanned, which is the
unit's temp copy, so it is a unit offset.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path, PurePath, PureWindowsPath
from typing import Iterator, List, Optional

from ..core.context import JobContext
from ..core.exceptions import ParseError
from ..core.models import ByteRange, CarvedItem, Unit


logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    """Strip any XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            yield child


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in _children(element, name):
        return (child.text or "").strip()
    return None


def map_to_image_ranges(run: ByteRange, image_ranges: List[ByteRange]) -> List[ByteRange]:
    """
    Translate a unit-relative run into image offsets.

    A unit is the concatenation of ``image_ranges``; a run that crosses a
    range boundary comes back as several pieces. Bytes beyond the end of the
    unit are dropped.
    """
    pieces: List[ByteRange] = []
    remaining = run.length
    position = run.offset
    unit_offset = 0

    for image_range in image_ranges:
        if remaining <= 0:
            break
        range_end = unit_offset + image_range.length
        if position < range_end:
            skip = position - unit_offset
            take = min(remaining, image_range.length - skip)
            pieces.append(ByteRange(image_range.offset + skip, take))
            position += take
            remaining -= take
        unit_offset = range_end

    return pieces


class ReportParser:
    """
    Turns an engine report into carved-file descriptors.
    """

    def parse(
        self,
        report_path: Path,
        unit: Unit,
        context: Optional[JobContext] = None,
    ) -> List[CarvedItem]:
        """
        Parse a report for files carved from a unit.

        Args:
            report_path: The relocated ``report.xml``
            unit: The unit the engine scanned
            context: Job context, polled for cancellation between files

        Returns:
            Carved items in report order; empty when the report is missing,
            lists nothing, or the job was cancelled while parsing

        Raises:
            ParseError: The report is not well-formed XML
        """
        report_path = Path(report_path)
        if not report_path.exists():
            logger.info(f"No report for {unit.name} at {report_path}")
            return []

        try:
            root = ET.parse(report_path).getroot()
        except ET.ParseError as e:
            raise ParseError(f"Malformed report for {unit.name}: {e}", report_path=report_path) from e

        items: List[CarvedItem] = []
        for fileobject in root.iter():
            if _local_name(fileobject.tag) != "fileobject":
                continue
            if context is not None and context.is_cancelled():
                logger.info(f"Report parsing cancelled for {unit.name}")
                return []

            item = self._parse_fileobject(fileobject, unit, report_path)
            if item is not None:
                items.append(item)

        logger.debug(f"Parsed {len(items)} carved files for {unit.name}")
        return items

    def _parse_fileobject(
        self,
        fileobject: ET.Element,
        unit: Unit,
        report_path: Path,
    ) -> Optional[CarvedItem]:
        raw_name = _child_text(fileobject, "filename")
        if not raw_name:
            logger.debug(f"Skipping fileobject without a name in {report_path}")
            return None
        # The engine may report a path in either separator style
        name = PureWindowsPath(raw_name).name if "\\" in raw_name else PurePath(raw_name).name

        runs: List[ByteRange] = []
        for byte_runs in _children(fileobject, "byte_runs"):
            for byte_run in _children(byte_runs, "byte_run"):
                run = self._parse_run(byte_run, report_path)
                if run is None or run.length <= 0:
                    continue
                if unit.image_ranges:
                    runs.extend(map_to_image_ranges(run, unit.image_ranges))
                else:
                    runs.append(run)

        if not runs:
            logger.debug(f"Skipping {name}: no usable byte runs")
            return None

        size_text = _child_text(fileobject, "filesize")
        try:
            size = int(size_text) if size_text else sum(r.length for r in runs)
        except ValueError:
            raise ParseError(f"Invalid filesize '{size_text}' for {name}", report_path=report_path)

        suffix = PurePath(name).suffix
        return CarvedItem(
            name=name,
            size=size,
            ranges=runs,
            source_unit_id=unit.unit_id,
            file_type=suffix[1:].lower() if suffix else None,
        )

    def _parse_run(self, byte_run: ET.Element, report_path: Path) -> Optional[ByteRange]:
        offset = byte_run.get("img_offset", byte_run.get("offset"))
        length = byte_run.get("len")
        if offset is None or length is None:
            return None
        try:
            return ByteRange(int(offset), int(length))
        except ValueError:
            raise ParseError(
                f"Invalid byte_run offset={offset!r} len={length!r}",
                report_path=report_path,
            )
