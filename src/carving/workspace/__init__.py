"""
Per-job workspace directories and path helpers.
"""

from .manager import JobTeardown, WorkspaceManager
from .paths import DISK_FREE_SPACE_UNKNOWN, get_free_disk_space, normalize_output_root

__all__ = [
    "JobTeardown",
    "WorkspaceManager",
    "DISK_FREE_SPACE_UNKNOWN",
    "get_free_disk_space",
    "normalize_output_root",
]
