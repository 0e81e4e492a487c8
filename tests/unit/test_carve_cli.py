"""
Unit tests for the carve-unalloc CLI.
"""

from unittest.mock import patch

import pytest

from carving import carve_cli
from carving.storage import SqliteCaseStore

from conftest import FakeEngineRunner, make_report


REPORT = make_report([{"name": "f0000001.jpg", "size": 100, "runs": [(0, 0, 100)]}])


@pytest.fixture
def cli_config(tmp_path, fake_executable, monkeypatch):
    for name in ("CARVER_CASE_DIR", "CARVER_EXECUTABLE", "CARVER_TIMEOUT_SECONDS",
                 "CARVER_DB_BACKEND"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "carver.yaml"
    path.write_text(
        f"case:\n"
        f"  module_dir: {tmp_path / 'case' / 'ModuleOutput'}\n"
        f"  temp_dir: {tmp_path / 'case' / 'Temp'}\n"
        f"engine:\n"
        f"  executable: {fake_executable}\n"
        f"storage:\n"
        f"  backend: sqlite\n"
        f"  sqlite:\n"
        f"    db_path: {tmp_path / 'case' / 'case.db'}\n"
        f"runner:\n"
        f"  max_workers: 2\n"
    )
    return path


@pytest.fixture
def unit_files(tmp_path):
    files = []
    for i in range(3):
        path = tmp_path / "input" / f"Unalloc_{i}"
        path.parent.mkdir(exist_ok=True)
        path.write_bytes(b"\0" * 1024)
        files.append(path)
    return files


class TestParseArgs:
    def test_requires_data_source(self, unit_files):
        with pytest.raises(SystemExit):
            carve_cli.parse_args([str(unit_files[0])])

    def test_arguments(self, unit_files):
        args = carve_cli.parse_args(
            ["--data-source-id", "4", "--workers", "2", "-v", *map(str, unit_files)]
        )

        assert args.data_source_id == 4
        assert args.workers == 2
        assert args.verbose is True
        assert len(args.units) == 3


class TestMain:
    """Tests for carve_cli.main()."""

    def test_full_run(self, cli_config, unit_files, tmp_path, capsys):
        with patch("carving.runner.carving_task.ProcessRunner",
                   side_effect=lambda: FakeEngineRunner(report=REPORT)):
            code = carve_cli.main(
                ["--config", str(cli_config), "--data-source-id", "1", "--job-id", "5",
                 *map(str, unit_files)]
            )

        assert code == 0
        out = capsys.readouterr().out
        assert "Unallocated Carver Results" in out
        assert "Number of Files Carved" in out

        store = SqliteCaseStore(tmp_path / "case" / "case.db")
        carved_root = store.get_children(1)[0]
        folder = store.get_children(carved_root.content_id)[0]
        assert len(store.get_children(folder.content_id)) == 3
        store.close()

    def test_start_up_failure(self, cli_config, unit_files, tmp_path, capsys):
        text = cli_config.read_text().replace(
            "storage:", "carver:\n  extension_filter: include\nstorage:"
        )
        cli_config.write_text(text)

        code = carve_cli.main(
            ["--config", str(cli_config), "--data-source-id", "1", *map(str, unit_files)]
        )

        assert code == 1
        assert "No extensions provided" in capsys.readouterr().out

    def test_missing_unit_file(self, cli_config, tmp_path):
        code = carve_cli.main(
            ["--config", str(cli_config), "--data-source-id", "1", str(tmp_path / "nope")]
        )

        assert code == 1

    def test_storage_failure_returns_error(self, cli_config, unit_files):
        cli_config.write_text(cli_config.read_text().replace("backend: sqlite", "backend: csv"))

        code = carve_cli.main(
            ["--config", str(cli_config), "--data-source-id", "1", *map(str, unit_files)]
        )

        assert code == 1
