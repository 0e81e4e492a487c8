"""
Unit tests for virtual directory discovery.
"""

from typing import Dict, Optional
from unittest.mock import Mock

import pytest

from carving.core.exceptions import CaseStorageError
from carving.core.hierarchy import collect_virtual_directory_parents
from carving.core.models import ContentKind, ContentNode
from carving.core.storage import CaseStorage


class InMemoryStorage(CaseStorage):
    """Just enough storage to resolve parents."""

    def __init__(self, nodes):
        self.nodes: Dict[int, ContentNode] = {n.content_id: n for n in nodes}
        self.lookups = []

    def get_content(self, content_id: int) -> Optional[ContentNode]:
        self.lookups.append(content_id)
        return self.nodes.get(content_id)

    def add_carved_files(self, items, unit):
        raise NotImplementedError

    def add_data_source(self, name):
        raise NotImplementedError

    def get_name(self):
        return "memory"


def tree():
    """
    1 image.dd (data source)
      2 $CarvedFiles (virtual)
        3 "1" (virtual)
          10, 11 carved files
        4 "2" (virtual)
          12 carved file
      5 Documents (directory)
        13 carved file
    """
    return [
        ContentNode(1, "image.dd", ContentKind.DATA_SOURCE),
        ContentNode(2, "$CarvedFiles", ContentKind.VIRTUAL_DIRECTORY, parent_id=1),
        ContentNode(3, "1", ContentKind.VIRTUAL_DIRECTORY, parent_id=2),
        ContentNode(4, "2", ContentKind.VIRTUAL_DIRECTORY, parent_id=2),
        ContentNode(5, "Documents", ContentKind.DIRECTORY, parent_id=1),
        ContentNode(10, "a.jpg", ContentKind.CARVED_FILE, parent_id=3),
        ContentNode(11, "b.jpg", ContentKind.CARVED_FILE, parent_id=3),
        ContentNode(12, "c.jpg", ContentKind.CARVED_FILE, parent_id=4),
        ContentNode(13, "d.jpg", ContentKind.CARVED_FILE, parent_id=5),
    ]


class TestCollectVirtualDirectoryParents:
    """Tests for collect_virtual_directory_parents()."""

    @pytest.fixture
    def storage(self):
        return InMemoryStorage(tree())

    def test_single_file_walks_to_data_source(self, storage):
        parents = collect_virtual_directory_parents([storage.nodes[10]], storage)

        assert [p.content_id for p in parents] == [3, 2]

    def test_siblings_reported_once(self, storage):
        parents = collect_virtual_directory_parents(
            [storage.nodes[10], storage.nodes[11]], storage
        )

        assert [p.content_id for p in parents] == [3, 2]
        # Second file stops at its already-visited parent without a lookup
        assert storage.lookups == [3, 2, 1]

    def test_shared_ancestor_reported_once(self, storage):
        parents = collect_virtual_directory_parents(
            [storage.nodes[10], storage.nodes[12]], storage
        )

        assert [p.content_id for p in parents] == [3, 2, 4]

    def test_stops_at_non_virtual_parent(self, storage):
        assert collect_virtual_directory_parents([storage.nodes[13]], storage) == []

    def test_data_source_item(self, storage):
        assert collect_virtual_directory_parents([storage.nodes[1]], storage) == []

    def test_visited_set_is_shared(self, storage):
        visited = {3}

        parents = collect_virtual_directory_parents([storage.nodes[10]], storage, visited)

        assert parents == []

    def test_missing_parent(self):
        storage = InMemoryStorage([ContentNode(10, "a.jpg", ContentKind.CARVED_FILE, parent_id=99)])

        assert collect_virtual_directory_parents([storage.nodes[10]], storage) == []

    def test_storage_error_propagates(self):
        storage = Mock()
        storage.get_parent.side_effect = CaseStorageError("db locked")
        item = ContentNode(10, "a.jpg", ContentKind.CARVED_FILE, parent_id=3)

        with pytest.raises(CaseStorageError):
            collect_virtual_directory_parents([item], storage)

    def test_empty_batch(self, storage):
        assert collect_virtual_directory_parents([], storage) == []
