"""
Custom exceptions for the carving pipeline.

Start-up errors abort a job before any unit is processed. Per-unit errors are
turned into an ERROR outcome for that unit only.
"""

from pathlib import Path
from typing import List, Optional


class CarvingError(Exception):
    """Base exception for all carving pipeline errors."""
    pass


# =============================================================================
# Start-up errors
# =============================================================================

class WorkspaceInitError(CarvingError):
    """
    A job workspace directory could not be created.

    Raised when:
    - The parent directory is not writable
    - The path exists but is not a usable directory
    - The path form is not supported by the filesystem
    """

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class PathAccessError(CarvingError):
    """
    A network output path could not be normalized or is not read/write
    accessible.
    """

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ExecutableNotFoundError(CarvingError):
    """The carving engine executable could not be located."""
    pass


class ExecutableNotRunnableError(CarvingError):
    """The carving engine executable was found but cannot be executed."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class SettingsError(CarvingError):
    """
    Job settings are invalid.

    Raised when:
    - The include filter is selected with no extensions
    - An extension is unknown to the carving engine
    """

    def __init__(self, message: str, invalid_extensions: Optional[List[str]] = None):
        super().__init__(message)
        self.invalid_extensions = invalid_extensions or []


class UnallocatedSpaceDisabledError(CarvingError):
    """The job skips unallocated space, so carving would be a no-op."""
    pass


# =============================================================================
# Per-unit errors
# =============================================================================

class InsufficientDiskSpaceError(CarvingError):
    """Not enough free disk space to write a unit out for carving."""

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class EngineExecutionError(CarvingError):
    """The carving engine exited non-zero or was terminated on timeout."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.timed_out = timed_out


class ReadError(CarvingError):
    """The unit's bytes could not be read from the case."""
    pass


class ParseError(CarvingError):
    """The engine report could not be parsed."""

    def __init__(self, message: str, report_path: Optional[Path] = None):
        super().__init__(message)
        self.report_path = report_path


class CaseStorageError(CarvingError):
    """Persisting or resolving content in case storage failed."""
    pass
