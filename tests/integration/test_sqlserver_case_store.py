"""
Integration tests for the SQL Server case store.

Each test class runs against a fresh, uniquely named schema which is
dropped afterwards.
"""

import pytest

from carving.core.exceptions import CaseStorageError
from carving.core.hierarchy import collect_virtual_directory_parents
from carving.core.models import ByteRange, CarvedItem, ContentKind

from conftest import make_unit


@pytest.fixture
def sqlserver_store(sqlserver_config, test_schema_name):
    from carving.storage.sqlserver_store import SqlServerCaseStore

    store = SqlServerCaseStore(
        host=sqlserver_config["host"],
        port=sqlserver_config["port"],
        database=sqlserver_config["database"],
        username=sqlserver_config["username"],
        password=sqlserver_config["password"],
        driver=sqlserver_config["driver"],
        schema=test_schema_name,
        max_files_per_folder=2,
    )

    yield store

    try:
        cursor = store.conn.cursor()
        cursor.execute(f"DROP TABLE IF EXISTS [{store.schema}].[file_ranges]")
        cursor.execute(f"DROP TABLE IF EXISTS [{store.schema}].[content]")
        cursor.execute(f"DROP SCHEMA IF EXISTS [{store.schema}]")
        store.conn.commit()
    finally:
        store.close()


def carved(n, start=0):
    return [
        CarvedItem(name=f"f{start + i:07d}.jpg", size=10, ranges=[ByteRange(i * 10, 10)],
                   source_unit_id=1, file_type="jpg")
        for i in range(n)
    ]


@pytest.mark.integration
class TestSchema:
    """Schema auto-initialization."""

    def test_tables_exist(self, sqlserver_store):
        cursor = sqlserver_store.conn.cursor()

        for table in ("content", "file_ranges"):
            cursor.execute("""
                SELECT 1 FROM sys.tables t
                JOIN sys.schemas s ON t.schema_id = s.schema_id
                WHERE t.name = ? AND s.name = ?
            """, (table, sqlserver_store.schema))
            assert cursor.fetchone() is not None, f"Table '{table}' does not exist"

    def test_invalid_schema_name(self, sqlserver_config):
        from carving.storage.sqlserver_store import SqlServerCaseStore

        with pytest.raises(ValueError):
            SqlServerCaseStore(password=sqlserver_config["password"], schema="drop")


@pytest.mark.integration
class TestCarvedFiles:
    """Carved file persistence."""

    def test_layout_and_rollover(self, sqlserver_store, tmp_path):
        ds = sqlserver_store.add_data_source("image.dd")
        unit = make_unit(tmp_path, data_source_id=ds.content_id)

        persisted = sqlserver_store.add_carved_files(carved(3), unit)

        folders = [sqlserver_store.get_content(n.parent_id).name for n in persisted]
        assert folders == ["1", "1", "2"]
        parents = collect_virtual_directory_parents(persisted, sqlserver_store)
        assert [p.name for p in parents] == ["1", "$CarvedFiles", "2"]
        assert all(p.kind == ContentKind.VIRTUAL_DIRECTORY for p in parents)
        assert sqlserver_store.get_file_ranges(persisted[2].content_id) == [ByteRange(20, 10)]

    def test_unknown_data_source(self, sqlserver_store, tmp_path):
        unit = make_unit(tmp_path, data_source_id=987654)

        with pytest.raises(CaseStorageError):
            sqlserver_store.add_carved_files(carved(1), unit)
