"""
Locating the carving engine executable.
"""

import logging
import os
import platform
from pathlib import Path
from typing import Optional

from ..core.exceptions import ExecutableNotFoundError, ExecutableNotRunnableError


logger = logging.getLogger(__name__)

BUNDLED_DIRECTORY = "photorec_exec"
BUNDLED_SUBDIRECTORY = "bin"
WINDOWS_EXECUTABLE = "photorec_win.exe"
POSIX_EXECUTABLE = "photorec"


def is_windows(system: Optional[str] = None) -> bool:
    return (system or platform.system()) == "Windows"


def _find_bundled(bundled_dir: Optional[Path]) -> Optional[Path]:
    if bundled_dir is None:
        return None
    candidate = Path(bundled_dir) / BUNDLED_DIRECTORY / BUNDLED_SUBDIRECTORY / WINDOWS_EXECUTABLE
    return candidate if candidate.exists() else None


def _find_on_path(name: str, search_path: Optional[str]) -> Optional[Path]:
    if search_path is None:
        search_path = os.environ.get("PATH", "")
    for dir_name in search_path.split(os.pathsep):
        if not dir_name:
            continue
        candidate = Path(dir_name) / name
        if candidate.exists():
            return candidate
    return None


def locate_executable(
    explicit: Optional[Path] = None,
    bundled_dir: Optional[Path] = None,
    system: Optional[str] = None,
    search_path: Optional[str] = None,
) -> Path:
    """
    Find the carving engine executable.

    Lookup order:
    1. ``explicit`` path from configuration, if given
    2. On Windows, the copy bundled under ``bundled_dir``
    3. Elsewhere, the first ``photorec`` found on PATH

    Args:
        explicit: Configured executable path
        bundled_dir: Install root holding the bundled engine
        system: Platform name override (as returned by platform.system())
        search_path: PATH override

    Returns:
        Path to a runnable executable

    Raises:
        ExecutableNotFoundError: Nothing was found
        ExecutableNotRunnableError: The file found is not executable
    """
    if explicit is not None:
        exe = Path(explicit)
        if not exe.exists():
            exe = None
    elif is_windows(system):
        exe = _find_bundled(bundled_dir)
    else:
        exe = _find_on_path(POSIX_EXECUTABLE, search_path)

    if exe is None:
        raise ExecutableNotFoundError("Unable to locate the carving engine executable.")

    if not exe.is_file() or not os.access(exe, os.X_OK):
        raise ExecutableNotRunnableError(f"Unable to execute the carving engine: {exe}", path=exe)

    logger.debug(f"Using carving engine: {exe}")
    return exe
