"""
Path helpers for job workspaces.

The carving engine cannot work with UNC paths that name the server by IP
address, so network output roots are rewritten to use the host name and
checked for read/write access before a job starts.
"""

import ipaddress
import logging
import shutil
import socket
import tempfile
from pathlib import Path, PureWindowsPath
from typing import Optional, Union

from ..core.exceptions import PathAccessError


logger = logging.getLogger(__name__)

DISK_FREE_SPACE_UNKNOWN = -1

PathLike = Union[str, Path]


def is_unc_path(path: PathLike) -> bool:
    """Return True for ``\\\\server\\share`` (or ``//server/share``) paths."""
    text = str(path)
    return text.startswith("\\\\") or text.startswith("//")


def _split_unc(path: PathLike):
    """Split a UNC path into (host, remainder)."""
    text = str(path).replace("/", "\\").lstrip("\\")
    host, _, remainder = text.partition("\\")
    return host, remainder


def ip_to_hostname(path: PathLike) -> Optional[str]:
    """
    Rewrite a UNC path so the server is named by host name.

    Returns:
        The rewritten path; the path unchanged when it already uses a host
        name; None when the address cannot be resolved
    """
    host, remainder = _split_unc(path)
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return str(path)

    try:
        hostname = socket.gethostbyaddr(host)[0]
    except (socket.herror, socket.gaierror, OSError) as e:
        logger.warning(f"Could not resolve host name for {host}: {e}")
        return None

    return str(PureWindowsPath(f"\\\\{hostname}\\{remainder}"))


def has_read_write_access(path: PathLike) -> bool:
    """Check access by creating and removing a scratch file in ``path``."""
    try:
        with tempfile.NamedTemporaryFile(dir=str(path), prefix=".carver-access-"):
            pass
        return True
    except OSError as e:
        logger.debug(f"No read/write access to {path}: {e}")
        return False


def normalize_output_root(path: PathLike) -> PathLike:
    """
    Make an output root usable by the carving engine.

    Local paths are returned unchanged. UNC paths are rewritten from IP
    address to host name and must be read/write accessible.

    Raises:
        PathAccessError: The host cannot be resolved or access is insufficient
    """
    if not is_unc_path(path):
        return path

    normalized = ip_to_hostname(path)
    if normalized is None:
        raise PathAccessError(
            "The carving engine cannot operate with a UNC path containing IP addresses.",
            path=Path(str(path)),
        )

    if not has_read_write_access(normalized):
        raise PathAccessError(
            f"Insufficient permissions accessing {normalized}. "
            "Check the share's authentication settings.",
            path=Path(normalized),
        )

    return normalized


def get_free_disk_space(path: PathLike) -> int:
    """
    Free bytes on the filesystem holding ``path``.

    Returns DISK_FREE_SPACE_UNKNOWN when the filesystem cannot report it,
    which some network filesystems do.
    """
    try:
        return shutil.disk_usage(str(path)).free
    except OSError as e:
        logger.debug(f"Free space unknown for {path}: {e}")
        return DISK_FREE_SPACE_UNKNOWN
