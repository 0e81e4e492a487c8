"""
SQL Server-based case storage for carved files.

Use this backend when several ingest hosts share one case database.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import List, Optional

try:
    import pyodbc
except ImportError:
    pyodbc = None

from ..core.exceptions import CaseStorageError
from ..core.models import ByteRange, CarvedItem, ContentKind, ContentNode, Unit
from ..core.storage import CaseStorage
from .sqlite_store import CARVED_FILES_DIR, DEFAULT_MAX_FILES_PER_FOLDER


logger = logging.getLogger(__name__)


class SqlServerCaseStore(CaseStorage):
    """
    SQL Server-based implementation of case storage.

    Uses the same ``$CarvedFiles`` layout as SqliteCaseStore. Each thread
    gets its own connection, so task executors on different workers never
    share a cursor.
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        host: str = "localhost",
        port: int = 1433,
        database: str = "Carving",
        username: str = "sa",
        password: Optional[str] = None,
        driver: str = "ODBC Driver 18 for SQL Server",
        schema: str = "carving",
        auto_init: bool = True,
        trust_server_certificate: bool = True,
        max_files_per_folder: int = DEFAULT_MAX_FILES_PER_FOLDER,
    ):
        """
        Initialize the SQL Server case store.

        Args:
            connection_string: Full ODBC connection string (if provided, other params ignored)
            host: SQL Server host
            port: SQL Server port
            database: Database name
            username: Database username
            password: Database password
            driver: ODBC driver name
            schema: Schema name for tables (default: 'carving')
            auto_init: Whether to create schema and tables automatically
            trust_server_certificate: Whether to trust self-signed certificates
            max_files_per_folder: Carved files per numbered subfolder
        """
        if pyodbc is None:
            raise ImportError(
                "pyodbc is required for SqlServerCaseStore. "
                "Install with: pip install pyodbc"
            )

        if not self._is_valid_identifier(schema):
            raise ValueError(f"Invalid schema name: {schema}")

        self.schema = schema
        self.max_files_per_folder = max_files_per_folder

        if connection_string:
            self.connection_string = connection_string
        else:
            trust_cert = "yes" if trust_server_certificate else "no"
            self.connection_string = (
                f"Driver={{{driver}}};"
                f"Server={host},{port};"
                f"Database={database};"
                f"UID={username};"
                f"PWD={password};"
                f"TrustServerCertificate={trust_cert}"
            )

        self._thread_local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()
        # Folder rollover is read-then-insert; serialize batches in-process
        self._write_lock = threading.Lock()
        self.conn = _ThreadLocalConnectionProxy(self)
        self._connect()

        if auto_init:
            self._init_schema()

    def _is_valid_identifier(self, name: str) -> bool:
        """
        Validate that a name is a safe SQL identifier.

        Must start with a letter or underscore, contain only letters, digits
        and underscores, fit SQL Server's 128 character limit and not be a
        reserved word.
        """
        if not name or len(name) > 128:
            return False

        if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', name):
            return False

        reserved_words = {
            'select', 'insert', 'update', 'delete', 'drop', 'create', 'alter',
            'exec', 'execute', 'union', 'where', 'from', 'table', 'database',
            'schema', 'index', 'grant', 'revoke', 'truncate', 'declare', 'set'
        }
        return name.lower() not in reserved_words

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._get_conn()
            logger.debug(f"Connected to SQL Server case store (schema: {self.schema})")
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to SQL Server: {e}")
            raise

    def _get_conn(self):
        """Get (or create) a thread-local connection for safe concurrent use."""
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = pyodbc.connect(self.connection_string)
            self._thread_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _init_schema(self) -> None:
        """Initialize database schema and tables."""
        cursor = self.conn.cursor()

        try:
            # Schema name passed _is_valid_identifier(); CREATE SCHEMA takes no parameters
            cursor.execute(f"""
                IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = ?)
                BEGIN
                    EXEC('CREATE SCHEMA [{self.schema}]')
                END
            """, (self.schema,))

            cursor.execute(f"""
                IF NOT EXISTS (SELECT * FROM sys.tables t
                               JOIN sys.schemas s ON t.schema_id = s.schema_id
                               WHERE t.name = 'content' AND s.name = ?)
                BEGIN
                    CREATE TABLE [{self.schema}].[content] (
                        content_id BIGINT IDENTITY(1,1) PRIMARY KEY,
                        name NVARCHAR(1024) NOT NULL,
                        kind NVARCHAR(32) NOT NULL,
                        parent_id BIGINT NULL,
                        size BIGINT NOT NULL DEFAULT 0,
                        data_source_id BIGINT NULL,
                        source_unit_id BIGINT NULL,
                        file_type NVARCHAR(32) NULL,
                        created_at DATETIME2 NOT NULL
                    );
                    CREATE INDEX ix_content_parent ON [{self.schema}].[content] (parent_id, kind);
                END
            """, (self.schema,))

            cursor.execute(f"""
                IF NOT EXISTS (SELECT * FROM sys.tables t
                               JOIN sys.schemas s ON t.schema_id = s.schema_id
                               WHERE t.name = 'file_ranges' AND s.name = ?)
                BEGIN
                    CREATE TABLE [{self.schema}].[file_ranges] (
                        content_id BIGINT NOT NULL,
                        sequence INT NOT NULL,
                        byte_offset BIGINT NOT NULL,
                        byte_length BIGINT NOT NULL,
                        CONSTRAINT pk_file_ranges PRIMARY KEY (content_id, sequence)
                    )
                END
            """, (self.schema,))

            self.conn.commit()
            logger.debug(f"Initialized case store schema [{self.schema}]")
        except pyodbc.Error as e:
            logger.error(f"Failed to initialize schema: {e}")
            self.conn.rollback()
            raise

    # =========================================================================
    # CaseStorage
    # =========================================================================

    def add_data_source(self, name: str) -> ContentNode:
        try:
            cursor = self.conn.cursor()
            content_id = self._insert(cursor, name, ContentKind.DATA_SOURCE, None, None)
            cursor.execute(
                f"UPDATE [{self.schema}].[content] SET data_source_id = ? WHERE content_id = ?",
                (content_id, content_id),
            )
            self.conn.commit()
        except pyodbc.Error as e:
            self.conn.rollback()
            raise CaseStorageError(f"Error adding data source {name}: {e}") from e

        logger.info(f"Added data source {name} (id={content_id})")
        return ContentNode(content_id, name, ContentKind.DATA_SOURCE, data_source_id=content_id)

    def add_carved_files(self, items: List[CarvedItem], unit: Unit) -> List[ContentNode]:
        """Persist carved files under the unit's data source in one transaction."""
        if not items:
            return []

        data_source_id = unit.data_source_id
        with self._write_lock:
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
                    if item.ranges:
                        cursor.executemany(
                            f"""
                            INSERT INTO [{self.schema}].[file_ranges]
                                (content_id, sequence, byte_offset, byte_length)
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
            except pyodbc.Error as e:
                logger.error(f"Failed to add carved files: {e}")
                self.conn.rollback()
                raise CaseStorageError(f"Error adding carved files from {unit.name}: {e}") from e

        return persisted

    def get_content(self, content_id: int) -> Optional[ContentNode]:
        try:
            return self._fetch(self.conn.cursor(), content_id)
        except pyodbc.Error as e:
            raise CaseStorageError(f"Error reading content {content_id}: {e}") from e

    def get_children(self, content_id: int) -> List[ContentNode]:
        """Return the direct children of a node, in insertion order."""
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT * FROM [{self.schema}].[content] WHERE parent_id = ? ORDER BY content_id",
            (content_id,),
        )
        return [self._row_to_node(cursor, row) for row in cursor.fetchall()]

    def get_file_ranges(self, content_id: int) -> List[ByteRange]:
        """Return the byte runs recorded for a carved file."""
        cursor = self.conn.cursor()
        cursor.execute(f"""
            SELECT byte_offset, byte_length FROM [{self.schema}].[file_ranges]
            WHERE content_id = ? ORDER BY sequence
        """, (content_id,))
        return [ByteRange(row[0], row[1]) for row in cursor.fetchall()]

    def get_name(self) -> str:
        return f"sqlserver:{self.schema}"

    def close(self) -> None:
        """Close the database connections."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except pyodbc.Error:
                    pass
            self._connections.clear()
        logger.debug("Closed SQL Server case store connections")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _insert(
        self,
        cursor,
        name: str,
        kind: ContentKind,
        parent_id: Optional[int],
        data_source_id: Optional[int],
        size: int = 0,
        source_unit_id: Optional[int] = None,
        file_type: Optional[str] = None,
    ) -> int:
        cursor.execute(f"""
            INSERT INTO [{self.schema}].[content] (
                name, kind, parent_id, size, data_source_id,
                source_unit_id, file_type, created_at
            )
            OUTPUT INSERTED.content_id
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            name, kind.value, parent_id, size, data_source_id,
            source_unit_id, file_type, datetime.now(timezone.utc),
        ))
        return int(cursor.fetchone()[0])

    def _fetch(self, cursor, content_id: int) -> Optional[ContentNode]:
        cursor.execute(
            f"SELECT * FROM [{self.schema}].[content] WHERE content_id = ?",
            (content_id,),
        )
        row = cursor.fetchone()
        return self._row_to_node(cursor, row) if row else None

    def _get_or_create_dir(self, cursor, name: str, parent_id: int, data_source_id: int) -> int:
        cursor.execute(f"""
            SELECT content_id FROM [{self.schema}].[content]
            WHERE parent_id = ? AND name = ? AND kind = ?
        """, (parent_id, name, ContentKind.VIRTUAL_DIRECTORY.value))
        row = cursor.fetchone()
        if row:
            return int(row[0])
        return self._insert(cursor, name, ContentKind.VIRTUAL_DIRECTORY, parent_id, data_source_id)

    def _current_folder(self, cursor, carved_root: int, data_source_id: int):
        """Return (folder id, file count) of the highest-numbered subfolder."""
        cursor.execute(f"""
            SELECT TOP 1 c.content_id,
                   (SELECT COUNT(*) FROM [{self.schema}].[content] f
                    WHERE f.parent_id = c.content_id) AS file_count
            FROM [{self.schema}].[content] c
            WHERE c.parent_id = ? AND c.kind = ?
            ORDER BY TRY_CAST(c.name AS INT) DESC
        """, (carved_root, ContentKind.VIRTUAL_DIRECTORY.value))
        row = cursor.fetchone()
        if row is None:
            return self._new_folder(cursor, carved_root, data_source_id), 0
        return int(row[0]), int(row[1])

    def _new_folder(self, cursor, carved_root: int, data_source_id: int) -> int:
        cursor.execute(f"""
            SELECT COUNT(*) FROM [{self.schema}].[content]
            WHERE parent_id = ? AND kind = ?
        """, (carved_root, ContentKind.VIRTUAL_DIRECTORY.value))
        number = int(cursor.fetchone()[0]) + 1
        return self._insert(
            cursor, str(number), ContentKind.VIRTUAL_DIRECTORY, carved_root, data_source_id
        )

    def _row_to_node(self, cursor, row) -> ContentNode:
        columns = [column[0] for column in cursor.description]
        data = dict(zip(columns, row))
        return ContentNode(
            content_id=int(data["content_id"]),
            name=data["name"],
            kind=ContentKind(data["kind"]),
            parent_id=int(data["parent_id"]) if data["parent_id"] is not None else None,
            size=int(data["size"]),
            data_source_id=int(data["data_source_id"]) if data["data_source_id"] is not None else None,
        )


class _ThreadLocalConnectionProxy:
    """Proxy that routes cursor/commit/rollback/close to a thread-local connection."""
    def __init__(self, store: "SqlServerCaseStore"):
        self._store = store

    def cursor(self):
        return self._store._get_conn().cursor()

    def commit(self):
        return self._store._get_conn().commit()

    def rollback(self):
        return self._store._get_conn().rollback()

    def close(self):
        return self._store._get_conn().close()
