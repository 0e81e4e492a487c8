"""
Case storage implementations for carved files.

The default backend is SQLite (SqliteCaseStore), a single case database on
the ingest host. SQL Server (SqlServerCaseStore) serves multi-host cases.

To select backend, set ``storage.backend`` in the config file or the
CARVER_DB_BACKEND environment variable:
    - CARVER_DB_BACKEND=sqlite (default)
    - CARVER_DB_BACKEND=sqlserver
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.storage import CaseStorage
from .sqlite_store import SqliteCaseStore


logger = logging.getLogger(__name__)


# Lazy import so pyodbc is only needed when the backend is selected
def _get_sqlserver_store():
    from .sqlserver_store import SqlServerCaseStore
    return SqlServerCaseStore


def create_case_storage(config: Optional[Dict[str, Any]] = None) -> CaseStorage:
    """
    Create the case storage backend described by a ``storage`` config section.

    Args:
        config: Storage section, as returned by CarverConfig.get_storage_config()

    Returns:
        CaseStorage instance

    Raises:
        ValueError: If the backend is not recognized
        ImportError: If required dependencies are missing
    """
    config = config or {}
    backend = (config.get("backend") or os.environ.get("CARVER_DB_BACKEND") or "sqlite").lower()
    max_files = int(config.get("max_files_per_folder", 2000))

    if backend == "sqlite":
        sqlite_config = config.get("sqlite", {})
        db_path = sqlite_config.get("db_path") or "local/case/case.db"
        logger.debug(f"Using SQLite case storage at {db_path}")
        return SqliteCaseStore(
            db_path=db_path if db_path == ":memory:" else Path(db_path),
            max_files_per_folder=max_files,
        )

    elif backend == "sqlserver":
        SqlServerCaseStore = _get_sqlserver_store()
        sql_config = config.get("sqlserver", {})

        password = sql_config.get("password") or os.environ.get("MSSQL_SA_PASSWORD")

        return SqlServerCaseStore(
            connection_string=sql_config.get("connection_string"),
            host=sql_config.get("host", "localhost"),
            port=int(sql_config.get("port", 1433)),
            database=sql_config.get("database", "Carving"),
            username=sql_config.get("user", "sa"),
            password=password,
            driver=sql_config.get("driver", "ODBC Driver 18 for SQL Server"),
            schema=sql_config.get("schema", "carving"),
            trust_server_certificate=bool(sql_config.get("trust_server_certificate", True)),
            max_files_per_folder=max_files,
        )

    else:
        raise ValueError(
            f"Unknown backend: {backend}. "
            "Supported backends: 'sqlite' (default), 'sqlserver'"
        )


__all__ = ["SqliteCaseStore", "create_case_storage"]
