"""
Discovery of virtual directories materialized by a carved-file insert.
"""

import logging
from typing import Iterable, List, Optional, Set

from .models import ContentNode
from .storage import CaseStorage


logger = logging.getLogger(__name__)


def collect_virtual_directory_parents(
    items: Iterable[ContentNode],
    storage: CaseStorage,
    visited: Optional[Set[int]] = None,
) -> List[ContentNode]:
    """
    Return the virtual directory ancestors of a batch of carved files.

    These directories were probably created while the batch was inserted
    (the carved files root and its numbered subfolders). For each item the
    parent chain is walked upward until one of:
    - a parent that was already looked at for this batch
    - a parent that is not a virtual directory
    - a node that is itself a data source

    Args:
        items: Persisted carved files from one batch
        storage: Case storage used to resolve parents
        visited: Parent ids already looked at; shared across the whole batch
            and updated in place

    Returns:
        Each discovered virtual directory once, in first-discovery order

    Raises:
        CaseStorageError if a parent lookup fails
    """
    if visited is None:
        visited = set()

    parents: List[ContentNode] = []
    for item in items:
        current = item
        while current.parent_id is not None and current.parent_id not in visited:
            parent = storage.get_parent(current)
            visited.add(current.parent_id)
            if parent is None:
                logger.debug(f"Parent {current.parent_id} of {current.content_id} not found")
                break
            if not parent.is_virtual_directory or current.is_data_source:
                break
            current = parent
            parents.append(current)
    return parents
