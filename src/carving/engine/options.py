"""
Command line construction for the carving engine.
"""

import logging
from pathlib import Path
from typing import List

from ..config.settings import CarverSettings, ExtensionFilterOption


logger = logging.getLogger(__name__)

RESULTS_BASE = "results"
RESULTS_EXTENDED = "results.1"
REPORT_NAME = "report.xml"
LOG_FILE = "run_log.txt"

# Forces the engine to run with the caller's privileges instead of elevating.
COMPAT_ENV = {"__COMPAT_LAYER": "RunAsInvoker"}


def build_options_string(settings: CarverSettings) -> str:
    """
    Build the engine's scripted menu string from job settings.

    The include filter disables ``everything`` then enables each listed
    family; the exclude filter enables ``everything`` then disables each one.
    The string always ends with ``search``.

    Example:
        >>> build_options_string(CarverSettings(
        ...     extension_filter=ExtensionFilterOption.INCLUDE,
        ...     extensions=["jpg", "png"]))
        'fileopt,everything,disable,jpg,enable,png,enable,search'
    """
    tokens: List[str] = []

    if settings.keep_corrupted_files:
        tokens.extend(["options", "keep_corrupted_file"])

    if settings.extension_filter != ExtensionFilterOption.NO_FILTER:
        tokens.append("fileopt")

        including = settings.extension_filter == ExtensionFilterOption.INCLUDE
        tokens.extend(["everything", "disable" if including else "enable"])

        item_toggle = "enable" if including else "disable"
        for extension in settings.extensions:
            tokens.extend([extension, item_toggle])

    tokens.append("search")
    return ",".join(tokens)


def build_command(
    executable: Path,
    output_dir: Path,
    source_file: Path,
    options: str,
) -> List[str]:
    """
    Build the full engine invocation for one unit.

    Args:
        executable: Engine executable
        output_dir: Per-unit output directory; results land in ``results.N``
            beneath it
        source_file: Temp file holding the unit's bytes
        options: Scripted menu string from build_options_string()

    Returns:
        Argument vector suitable for subprocess
    """
    return [
        str(executable),
        "/d",
        str(Path(output_dir).absolute() / RESULTS_BASE),
        "/cmd",
        str(source_file),
        options,
    ]
