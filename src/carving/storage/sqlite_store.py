"""
SQLite-based case storage for carved files.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import CaseStorageError
from ..core.models import ByteRange, CarvedItem, ContentKind, ContentNode, Unit
from ..core.storage import CaseStorage


logger = logging.getLogger(__name__)

CARVED_FILES_DIR = "$CarvedFiles"
DEFAULT_MAX_FILES_PER_FOLDER = 2000


class SqliteCaseStore(CaseStorage):
    """
    SQLite-based implementation of case storage.

    Carved files are filed under a ``$CarvedFiles`` virtual directory of their
    data source, split into numbered virtual subfolders (``1``, ``2``, ...)
    holding at most ``max_files_per_folder`` files each. Folders are created
    on demand, so the first batch for a data source creates two virtual
    directories.
    """

    def __init__(
        self,
        db_path: Path,
        auto_init: bool = True,
        max_files_per_folder: int = DEFAULT_MAX_FILES_PER_FOLDER,
    ):
        """
        Initialize the SQLite case store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            auto_init: Whether to create tables automatically
            max_files_per_folder: Carved files per numbered subfolder
        """
        self.db_path = db_path
        self.max_files_per_folder = max_files_per_folder
        self.conn = None
        self._lock = threading.Lock()
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False
        )
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite case store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS content (
                content_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                kind TEXT NOT NULL,
                parent_id INTEGER REFERENCES content (content_id),
                size INTEGER NOT NULL DEFAULT 0,
                data_source_id INTEGER,
                source_unit_id INTEGER,
                file_type TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS file_ranges (
                content_id INTEGER NOT NULL REFERENCES content (content_id),
                sequence INTEGER NOT NULL,
                byte_offset INTEGER NOT NULL,
                byte_length INTEGER NOT NULL,
                PRIMARY KEY (content_id, sequence)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS ix_content_parent
            ON content (parent_id, kind)
        """)

        self.conn.commit()
        logger.debug("Initialized case store schema")

    # =========================================================================
    # CaseStorage
    # =========================================================================

    def add_data_source(self, name: str) -> ContentNode:
        with self._lock:
            try:
                cursor = self.conn.cursor()
                content_id = self._insert(cursor, name, ContentKind.DATA_SOURCE, None, None)
                cursor.execute(
                    "UPDATE content SET data_source_id = ? WHERE content_id = ?",
                    (content_id, content_id),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CaseStorageError(f"Error adding data source {name}: {e}") from e

        logger.info(f"Added data source {name} (id={content_id})")
        return ContentNode(content_id, name, ContentKind.DATA_SOURCE, data_source_id=content_id)

    def add_carved_files(self, items: List[CarvedItem], unit: Unit) -> List[ContentNode]:
        """
        Persist carved files under the unit's data source.

        The batch is committed atomically; on error nothing is kept.
        """
        if not items:
            return []

        data_source_id = unit.data_source_id
        with self._lock:
            try:
                cursor = self.conn.cursor()
                if data_source_id is None or self._fetch(cursor, data_source_id) is None:
                    raise CaseStorageError(
                        f"Unit {unit.name} has no data source in this case"
                    )

                carved_root = self._get_or_create_dir(cursor, CARVED_FILES_DIR, data_source_id, data_source_id)
                folder_id, folder_count = self._current_folder(cursor, carved_root, data_source_id)

                persisted = []
                for item in items:
                    if folder_count >= self.max_files_per_folder:
                        folder_id = self._new_folder(cursor, carved_root, data_source_id)
                        folder_count = 0
                    content_id = self._insert(
                        cursor, item.name, ContentKind.CARVED_FILE, folder_id, data_source_id,
                        size=item.size, source_unit_id=item.source_unit_id, file_type=item.file_type,
                    )
                    cursor.executemany(
                        """
                        INSERT INTO file_ranges (content_id, sequence, byte_offset, byte_length)
                        VALUES (?, ?, ?, ?)
                        """,
                        [(content_id, seq, r.offset, r.length) for seq, r in enumerate(item.ranges)],
                    )
                    folder_count += 1
                    persisted.append(ContentNode(
                        content_id, item.name, ContentKind.CARVED_FILE,
                        parent_id=folder_id, size=item.size, data_source_id=data_source_id,
                    ))

                self.conn.commit()
            except CaseStorageError:
                self.conn.rollback()
                raise
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CaseStorageError(f"Error adding carved files from {unit.name}: {e}") from e

        logger.debug(f"Persisted {len(persisted)} carved files from {unit.name}")
        return persisted

    def get_content(self, content_id: int) -> Optional[ContentNode]:
        with self._lock:
            try:
                return self._fetch(self.conn.cursor(), content_id)
            except sqlite3.Error as e:
                raise CaseStorageError(f"Error reading content {content_id}: {e}") from e

    def get_children(self, content_id: int) -> List[ContentNode]:
        """Return the direct children of a node, in insertion order."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT * FROM content WHERE parent_id = ? ORDER BY content_id",
                (content_id,),
            )
            return [self._row_to_node(row) for row in cursor.fetchall()]

    def get_file_ranges(self, content_id: int) -> List[ByteRange]:
        """Return the byte runs recorded for a carved file."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                SELECT byte_offset, byte_length FROM file_ranges
                WHERE content_id = ? ORDER BY sequence
                """,
                (content_id,),
            )
            return [ByteRange(row["byte_offset"], row["byte_length"]) for row in cursor.fetchall()]

    def get_name(self) -> str:
        return f"sqlite:{self.db_path}"

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite case store connection")

    # =========================================================================
    # Helpers (caller holds the lock)
    # =========================================================================

    def _insert(
        self,
        cursor: sqlite3.Cursor,
        name: str,
        kind: ContentKind,
        parent_id: Optional[int],
        data_source_id: Optional[int],
        size: int = 0,
        source_unit_id: Optional[int] = None,
        file_type: Optional[str] = None,
    ) -> int:
        cursor.execute(
            """
            INSERT INTO content (name, kind, parent_id, size, data_source_id,
                                 source_unit_id, file_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (name, kind.value, parent_id, size, data_source_id, source_unit_id,
             file_type, datetime.now(timezone.utc).isoformat()),
        )
        return cursor.lastrowid

    def _fetch(self, cursor: sqlite3.Cursor, content_id: int) -> Optional[ContentNode]:
        cursor.execute("SELECT * FROM content WHERE content_id = ?", (content_id,))
        row = cursor.fetchone()
        return self._row_to_node(row) if row else None

    def _get_or_create_dir(self, cursor, name: str, parent_id: int, data_source_id: int) -> int:
        cursor.execute(
            "SELECT content_id FROM content WHERE parent_id = ? AND name = ? AND kind = ?",
            (parent_id, name, ContentKind.VIRTUAL_DIRECTORY.value),
        )
        row = cursor.fetchone()
        if row:
            return row["content_id"]
        return self._insert(cursor, name, ContentKind.VIRTUAL_DIRECTORY, parent_id, data_source_id)

    def _current_folder(self, cursor, carved_root: int, data_source_id: int):
        """Return (folder id, file count) of the highest-numbered subfolder."""
        cursor.execute(
            """
            SELECT c.content_id,
                   (SELECT COUNT(*) FROM content f WHERE f.parent_id = c.content_id) AS file_count
            FROM content c
            WHERE c.parent_id = ? AND c.kind = ?
            ORDER BY CAST(c.name AS INTEGER) DESC
            LIMIT 1
            """,
            (carved_root, ContentKind.VIRTUAL_DIRECTORY.value),
        )
        row = cursor.fetchone()
        if row is None:
            return self._new_folder(cursor, carved_root, data_source_id), 0
        return row["content_id"], row["file_count"]

    def _new_folder(self, cursor, carved_root: int, data_source_id: int) -> int:
        cursor.execute(
            "SELECT COUNT(*) FROM content WHERE parent_id = ? AND kind = ?",
            (carved_root, ContentKind.VIRTUAL_DIRECTORY.value),
        )
        number = cursor.fetchone()[0] + 1
        return self._insert(
            cursor, str(number), ContentKind.VIRTUAL_DIRECTORY, carved_root, data_source_id
        )

    def _row_to_node(self, row: sqlite3.Row) -> ContentNode:
        return ContentNode(
            content_id=row["content_id"],
            name=row["name"],
            kind=ContentKind(row["kind"]),
            parent_id=row["parent_id"],
            size=row["size"],
            data_source_id=row["data_source_id"],
        )
