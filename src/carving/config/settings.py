"""
Per-job carver settings.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.exceptions import SettingsError
from ..engine.extensions import is_valid_extension


logger = logging.getLogger(__name__)


class ExtensionFilterOption(str, Enum):
    """How the configured extension list restricts carving."""
    NO_FILTER = "no_filter"
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass
class CarverSettings:
    """
    Settings for one carving job.

    Attributes:
        keep_corrupted_files: Ask the engine to keep files it could not validate
        extension_filter: Whether ``extensions`` is an allow list, a deny list
            or ignored
        extensions: File families to include or exclude, in configured order
        disk_space_margin: Free space required, as a multiple of the unit size
    """
    keep_corrupted_files: bool = False
    extension_filter: ExtensionFilterOption = ExtensionFilterOption.NO_FILTER
    extensions: List[str] = field(default_factory=list)
    disk_space_margin: float = 1.2

    def __post_init__(self):
        self.extension_filter = ExtensionFilterOption(self.extension_filter)
        self.extensions = [e.strip().lower() for e in self.extensions if e and e.strip()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CarverSettings":
        """Create settings from the ``carver`` config section."""
        raw_filter = str(data.get("extension_filter") or "no_filter").lower()
        try:
            extension_filter = ExtensionFilterOption(raw_filter)
        except ValueError:
            raise SettingsError(f"Unknown extension filter: {raw_filter}")

        return cls(
            keep_corrupted_files=bool(data.get("keep_corrupted_files", False)),
            extension_filter=extension_filter,
            extensions=list(data.get("extensions") or []),
            disk_space_margin=float(data.get("disk_space_margin", 1.2)),
        )

    def validate(self) -> None:
        """
        Check the settings can be turned into an engine command line.

        Raises:
            SettingsError: include filter without extensions, or unknown
                extensions
        """
        if self.extension_filter == ExtensionFilterOption.NO_FILTER:
            return

        if not self.extensions and self.extension_filter == ExtensionFilterOption.INCLUDE:
            raise SettingsError("No extensions provided for the carver to carve.")

        invalid = [ext for ext in self.extensions if not is_valid_extension(ext)]
        if invalid:
            raise SettingsError(
                f"The following extensions are invalid: {','.join(invalid)}",
                invalid_extensions=invalid,
            )


@dataclass
class EngineConfig:
    """
    How to find and supervise the carving engine.

    Attributes:
        executable: Explicit executable path; skips platform lookup
        bundled_dir: Install root holding the bundled Windows engine
        timeout_seconds: Wall-clock limit per engine run (None/0 = none)
        poll_interval: Seconds between cancellation/timeout polls
        kill_grace_seconds: Time allowed to exit after a terminate request
    """
    executable: Optional[Path] = None
    bundled_dir: Optional[Path] = None
    timeout_seconds: Optional[float] = 3600
    poll_interval: float = 0.5
    kill_grace_seconds: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create from the ``engine`` config section."""
        executable = data.get("executable")
        bundled_dir = data.get("bundled_dir")
        timeout = data.get("timeout_seconds", 3600)
        return cls(
            executable=Path(executable) if executable else None,
            bundled_dir=Path(bundled_dir) if bundled_dir else None,
            timeout_seconds=float(timeout) if timeout else None,
            poll_interval=float(data.get("poll_interval", 0.5)),
            kill_grace_seconds=float(data.get("kill_grace_seconds", 5.0)),
        )
