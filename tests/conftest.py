"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import stat
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from carving.core.context import JobContext
from carving.core.events import IngestMessage, ModuleContentEvent, Notifier
from carving.core.models import ByteRange, ContentKind, ContentNode, Unit
from carving.engine.process_runner import ProcessOutcome, TerminationCode


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def _sqlserver_password() -> Optional[str]:
    return os.environ.get("CARVER_SQLSERVER_PASSWORD") or os.environ.get("MSSQL_SA_PASSWORD")


def is_sqlserver_available() -> bool:
    """Check if SQL Server is available for testing."""
    password = _sqlserver_password()
    if not password:
        return False

    try:
        import pyodbc

        host = os.environ.get("CARVER_SQLSERVER_HOST", "localhost")
        port = int(os.environ.get("CARVER_SQLSERVER_PORT", "1433"))
        database = os.environ.get("CARVER_SQLSERVER_DATABASE",
                                  os.environ.get("MSSQL_DATABASE", "Carving"))
        username = os.environ.get("CARVER_SQLSERVER_USER", "sa")
        driver = os.environ.get("CARVER_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server")

        conn_str = (
            f"Driver={{{driver}}};"
            f"Server={host},{port};"
            f"Database={database};"
            f"UID={username};"
            f"PWD={password};"
            f"TrustServerCertificate=yes"
        )

        conn = pyodbc.connect(conn_str, timeout=5)
        conn.close()
        return True

    except Exception as e:
        logger.debug(f"SQL Server not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires SQL Server)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if SQL Server is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_sqlserver_available():
        return

    skip_sqlserver = pytest.mark.skip(
        reason="SQL Server not available (set MSSQL_SA_PASSWORD and ensure SQL Server is running)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_sqlserver)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def sqlserver_config() -> dict:
    """Session-scoped fixture providing SQL Server connection configuration."""
    return {
        "host": os.environ.get("CARVER_SQLSERVER_HOST", "localhost"),
        "port": int(os.environ.get("CARVER_SQLSERVER_PORT", "1433")),
        "database": os.environ.get("CARVER_SQLSERVER_DATABASE",
                                   os.environ.get("MSSQL_DATABASE", "Carving")),
        "username": os.environ.get("CARVER_SQLSERVER_USER", "sa"),
        "password": _sqlserver_password(),
        "driver": os.environ.get("CARVER_SQLSERVER_DRIVER", "ODBC Driver 18 for SQL Server"),
    }


@pytest.fixture
def test_schema_name() -> str:
    """Fixture providing a unique test schema name."""
    import uuid
    return f"test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def fake_executable(tmp_path) -> Path:
    """An executable file standing in for the carving engine."""
    exe = tmp_path / "bin" / "photorec"
    exe.parent.mkdir()
    exe.write_text("#!/bin/sh\nexit 0\n")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return exe


@pytest.fixture
def case_dirs(tmp_path) -> Dict[str, Path]:
    """Module output and temp roots of a scratch case."""
    dirs = {
        "module_dir": tmp_path / "case" / "ModuleOutput",
        "temp_dir": tmp_path / "case" / "Temp",
    }
    return dirs


@pytest.fixture
def sqlite_store(tmp_path):
    """A SQLite case store in a temp directory."""
    from carving.storage import SqliteCaseStore

    store = SqliteCaseStore(db_path=tmp_path / "case.db")
    yield store
    store.close()


@pytest.fixture
def data_source(sqlite_store) -> ContentNode:
    return sqlite_store.add_data_source("image.dd")


@pytest.fixture
def recorder():
    """Notifier plus the content events and messages it delivered."""
    return NotificationRecorder()


@pytest.fixture
def job_context(data_source) -> JobContext:
    return JobContext(job_id=1, data_source=data_source)


def make_unit(tmp_path: Path, name: str = "Unalloc_1_0_4096", size: int = 4096,
              data_source_id: Optional[int] = None, unit_id: int = 100,
              image_ranges: Optional[List[ByteRange]] = None) -> Unit:
    """Create a file-backed unallocated unit filled with a repeating pattern."""
    source = tmp_path / "units" / name
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_bytes(bytes(range(256)) * (size // 256) + bytes(size % 256))
    unit = Unit.from_file(source, unit_id=unit_id, data_source_id=data_source_id)
    if image_ranges:
        unit.image_ranges = list(image_ranges)
    return unit


REPORT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<dfxml xmlns="http://www.forensicswiki.org/wiki/Category:Digital_Forensics_XML" version="1.0">
  <source>
    <image_filename>{source}</image_filename>
  </source>
{fileobjects}
</dfxml>
"""

FILEOBJECT_TEMPLATE = """  <fileobject>
    <filename>{name}</filename>
    <filesize>{size}</filesize>
    <byte_runs>
{runs}
    </byte_runs>
  </fileobject>"""


def make_report(files: List[Dict], source: str = "unit.bin") -> str:
    """
    Render a DFXML report.

    Args:
        files: Dicts with ``name``, ``size`` and ``runs`` as (offset, img_offset, len)
    """
    objects = []
    for f in files:
        runs = "\n".join(
            f'      <byte_run offset="{o}" img_offset="{io}" len="{n}"/>'
            for o, io, n in f["runs"]
        )
        objects.append(FILEOBJECT_TEMPLATE.format(name=f["name"], size=f["size"], runs=runs))
    return REPORT_TEMPLATE.format(source=source, fileobjects="\n".join(objects))


class NotificationRecorder:
    """Collects everything a Notifier delivers."""

    def __init__(self):
        self.notifier = Notifier()
        self.events: List[ModuleContentEvent] = []
        self.messages: List[IngestMessage] = []
        self.notifier.subscribe_content(self.events.append)
        self.notifier.subscribe_messages(self.messages.append)


class FakeEngineRunner:
    """
    Stands in for ProcessRunner.

    Writes ``report`` to ``<output>/results.1/report.xml`` the way the engine
    does, then returns ``outcome``. ``on_run`` is called with the command
    before returning, for tests that cancel mid-carve.
    """

    def __init__(self, report: Optional[str] = None, exit_code: int = 0,
                 termination: TerminationCode = TerminationCode.NONE, on_run=None):
        self.report = report
        self.exit_code = exit_code
        self.termination = termination
        self.on_run = on_run
        self.calls = []

    def run(self, command, policy=None, env=None, log_path=None, cwd=None):
        self.calls.append({"command": command, "policy": policy, "env": env, "log_path": log_path})
        results_dir = Path(command[2]).parent / "results.1"
        results_dir.mkdir(parents=True, exist_ok=True)
        (results_dir / "f0000001.jpg").write_bytes(b"\xff\xd8\xff")
        if self.report is not None:
            (results_dir / "report.xml").write_text(self.report, encoding="utf-8")
        if log_path is not None:
            Path(log_path).write_text("PhotoRec run\n")
        if self.on_run is not None:
            self.on_run(command)
        return ProcessOutcome(exit_code=self.exit_code, termination=self.termination)
