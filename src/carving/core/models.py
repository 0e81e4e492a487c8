"""
Core data models for the unallocated space carving pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional


class ContentKind(str, Enum):
    """Structural type of a node in the case content hierarchy."""
    DATA_SOURCE = "data_source"
    VIRTUAL_DIRECTORY = "virtual_directory"
    DIRECTORY = "directory"
    UNALLOC_BLOCKS = "unalloc_blocks"
    CARVED_FILE = "carved_file"
    FILE = "file"


class ProcessResult(str, Enum):
    """Outcome reported back to the scheduler for one unit."""
    OK = "ok"
    ERROR = "error"


class TaskState(str, Enum):
    """States of the per-unit carving pipeline."""
    PREFLIGHT = "preflight"
    WRITING = "writing"
    CARVING = "carving"
    PARSING = "parsing"
    RECONCILING = "reconciling"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class ByteRange:
    """A contiguous run of bytes, as an offset and a length."""
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class ContentNode:
    """
    A persisted node in the case content hierarchy.

    Attributes:
        content_id: Storage-assigned identifier
        name: Display name
        kind: Structural type (virtual directory, data source, ...)
        parent_id: Identifier of the parent node, None for roots
        size: Size in bytes (0 for directories)
        data_source_id: Identifier of the owning data source
    """
    content_id: int
    name: str
    kind: ContentKind
    parent_id: Optional[int] = None
    size: int = 0
    data_source_id: Optional[int] = None

    @property
    def is_virtual_directory(self) -> bool:
        return self.kind == ContentKind.VIRTUAL_DIRECTORY

    @property
    def is_data_source(self) -> bool:
        return self.kind == ContentKind.DATA_SOURCE


@dataclass
class Unit:
    """
    One unallocated-space blob submitted for carving.

    Attributes:
        unit_id: Stable identifier of the unit in the case
        name: Unit name
        size: Size in bytes
        opener: Callable returning a fresh binary stream over the unit content
        kind: Content kind; only UNALLOC_BLOCKS units are carved
        data_source_id: Identifier of the owning data source
        image_ranges: Where the unit's bytes live in the source image, in order
    """
    unit_id: int
    name: str
    size: int
    opener: Callable[[], BinaryIO]
    kind: ContentKind = ContentKind.UNALLOC_BLOCKS
    data_source_id: Optional[int] = None
    image_ranges: List[ByteRange] = field(default_factory=list)

    def open(self) -> BinaryIO:
        return self.opener()

    @property
    def work_name(self) -> str:
        """Name of the unit's temp file and output subdirectory, unique per job."""
        return f"{self.unit_id}_{self.name}"

    @classmethod
    def from_file(
        cls,
        path: Path,
        unit_id: int,
        data_source_id: Optional[int] = None,
    ) -> "Unit":
        """Build a unit backed by a file on disk."""
        path = Path(path)
        return cls(
            unit_id=unit_id,
            name=path.name,
            size=path.stat().st_size,
            opener=lambda: open(path, "rb"),
            data_source_id=data_source_id,
        )


@dataclass
class CarvedItem:
    """
    A file recovered by the carving engine from a unit.

    Attributes:
        name: File name as reported by the engine (base name only)
        size: Declared file size in bytes
        ranges: Byte runs making up the file; image offsets when the unit
            carries image ranges, unit offsets otherwise
        source_unit_id: Identifier of the unit the file was carved from
        file_type: Type inferred from the file extension
    """
    name: str
    size: int
    ranges: List[ByteRange]
    source_unit_id: int
    file_type: Optional[str] = None


@dataclass(frozen=True)
class Workspace:
    """The per-job pair of output and temp directories."""
    output_dir: Path
    temp_dir: Path


@dataclass
class TaskOutcome:
    """
    Detailed result of one task execution.

    ``result`` is what the scheduler sees; ``state`` is the absorbing state the
    pipeline finished in, which distinguishes a cancelled unit (ABORTED, OK)
    from one that carved successfully (DONE, OK).
    """
    result: ProcessResult
    state: TaskState
    items: List[ContentNode] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def cancelled(self) -> bool:
        return self.state == TaskState.ABORTED
