"""
Streams unit content to a local file.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from ..core.exceptions import ReadError
from ..core.models import Unit


logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def write_unit_to_file(
    unit: Unit,
    destination: Path,
    is_cancelled: Optional[Callable[[], bool]] = None,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """
    Copy a unit's bytes into ``destination``.

    Cancellation is polled between chunks; a cancelled copy stops early and
    leaves a partial file for the caller to remove.

    Args:
        unit: Unit to copy
        destination: File to create (overwritten if present)
        is_cancelled: Cancellation predicate
        chunk_size: Bytes per read

    Returns:
        Number of bytes written

    Raises:
        ReadError: The unit's content could not be read
        OSError: The destination could not be written
    """
    written = 0
    try:
        source = unit.open()
    except OSError as e:
        raise ReadError(f"Error opening '{unit.name}' (id={unit.unit_id}): {e}") from e

    with source, open(destination, "wb") as out:
        while True:
            if is_cancelled is not None and is_cancelled():
                logger.debug(f"Copy of {unit.name} cancelled after {written} bytes")
                break
            try:
                chunk = source.read(chunk_size)
            except OSError as e:
                raise ReadError(
                    f"Error reading '{unit.name}' (id={unit.unit_id}) at offset {written}: {e}"
                ) from e
            if not chunk:
                break
            out.write(chunk)
            written += len(chunk)

    return written
