"""
Case storage interface for persisting carved files.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..core.models import CarvedItem, ContentNode, Unit


class CaseStorage(ABC):
    """
    Abstract base class for case storage backends.

    Case storage owns carved files once they are committed. Inserting carved
    files may create virtual directories as a side effect; callers discover
    those through the parent chain of the returned nodes.
    """

    @abstractmethod
    def add_carved_files(self, items: List[CarvedItem], unit: Unit) -> List[ContentNode]:
        """
        Persist a batch of carved files recovered from a unit.

        Args:
            items: Carved files produced by the output parser
            unit: The unit the files were carved from

        Returns:
            The persisted nodes, in the same order as ``items``

        Raises:
            CaseStorageError if the batch cannot be persisted
        """
        pass

    @abstractmethod
    def get_content(self, content_id: int) -> Optional[ContentNode]:
        """
        Look up a node by identifier.

        Returns:
            The node if found, None otherwise
        """
        pass

    def get_parent(self, node: ContentNode) -> Optional[ContentNode]:
        """Resolve the parent of a node, None for roots."""
        if node.parent_id is None:
            return None
        return self.get_content(node.parent_id)

    @abstractmethod
    def add_data_source(self, name: str) -> ContentNode:
        """Register a top-level data source and return its node."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the storage backend name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
