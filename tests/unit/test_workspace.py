"""
Unit tests for the job workspace manager and path helpers.
"""

import threading
from datetime import datetime
from unittest.mock import patch

import pytest

from carving.core.exceptions import PathAccessError, WorkspaceInitError
from carving.workspace import paths
from carving.workspace.manager import WorkspaceManager, job_folder_name


FIXED_NOW = datetime(2024, 3, 9, 14, 5, 7, 42_000)


class TestJobFolderName:
    """Tests for job_folder_name()."""

    def test_format(self):
        assert job_folder_name(12, FIXED_NOW) == "12_03-09-2024-14-05-07-0042"

    def test_milliseconds_padded(self):
        assert job_folder_name(1, datetime(2024, 1, 1, 0, 0, 0, 0)).endswith("-0000")


class TestWorkspaceManager:
    """Tests for WorkspaceManager."""

    @pytest.fixture
    def manager(self, case_dirs):
        return WorkspaceManager(case_dirs["module_dir"], case_dirs["temp_dir"], clock=lambda: FIXED_NOW)

    def test_first_attach_creates_directories(self, manager, case_dirs):
        workspace = manager.attach(job_id=5, data_source_id=12)

        folder = "12_03-09-2024-14-05-07-0042"
        assert workspace.output_dir == case_dirs["module_dir"] / "Unallocated Carver" / folder
        assert workspace.temp_dir == case_dirs["temp_dir"] / "PhotoRec Carver" / folder
        assert workspace.output_dir.is_dir()
        assert workspace.temp_dir.is_dir()
        assert manager.ref_count(5) == 1

    def test_later_attach_reuses_workspace(self, manager):
        first = manager.attach(5, 12)
        second = manager.attach(5, 12)

        assert first is second
        assert manager.ref_count(5) == 2

    def test_jobs_are_independent(self, case_dirs):
        times = iter([datetime(2024, 1, 1, 0, 0, 1), datetime(2024, 1, 1, 0, 0, 2)])
        manager = WorkspaceManager(case_dirs["module_dir"], case_dirs["temp_dir"], clock=lambda: next(times))

        a = manager.attach(1, 7)
        b = manager.attach(2, 7)

        assert a.output_dir != b.output_dir
        assert manager.get_totals(1) is not manager.get_totals(2)
        assert sorted(manager.active_jobs()) == [1, 2]

    def test_last_detach_returns_teardown(self, manager):
        manager.attach(5, 12)
        manager.attach(5, 12)
        manager.get_totals(5).add_recovered(3)

        assert manager.detach(5) is None
        teardown = manager.detach(5)

        assert teardown.job_id == 5
        assert teardown.totals.items_recovered == 3
        assert manager.active_jobs() == []
        assert manager.get_workspace(5) is None

    def test_detach_unknown_job(self, manager):
        assert manager.detach(404) is None

    def test_concurrent_attach_detach(self, manager):
        workspaces = []
        teardowns = []
        barrier = threading.Barrier(8)

        def task():
            barrier.wait()
            workspaces.append(manager.attach(9, 1))
            manager.get_totals(9).add_error()
            barrier.wait()
            teardowns.append(manager.detach(9))

        threads = [threading.Thread(target=task) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(w) for w in workspaces}) == 1
        finished = [t for t in teardowns if t is not None]
        assert len(finished) == 1
        assert finished[0].totals.items_with_errors == 8

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        manager = WorkspaceManager(blocker / "ModuleOutput", tmp_path / "Temp")

        with pytest.raises(WorkspaceInitError) as exc_info:
            manager.attach(1, 1)

        assert manager.active_jobs() == []
        assert exc_info.value.path is not None


class TestPaths:
    """Tests for workspace path helpers."""

    def test_is_unc_path(self):
        assert paths.is_unc_path(r"\\server\share\case")
        assert paths.is_unc_path("//server/share")
        assert not paths.is_unc_path("/var/case")
        assert not paths.is_unc_path(r"C:\case")

    def test_ip_to_hostname(self):
        with patch.object(paths.socket, "gethostbyaddr", return_value=("fileserver", [], [])):
            result = paths.ip_to_hostname(r"\\10.0.0.5\cases\ModuleOutput")

        assert result == r"\\fileserver\cases\ModuleOutput"

    def test_hostname_unchanged(self):
        assert paths.ip_to_hostname(r"\\fileserver\cases") == r"\\fileserver\cases"

    def test_unresolvable_ip(self):
        with patch.object(paths.socket, "gethostbyaddr", side_effect=OSError("no PTR")):
            assert paths.ip_to_hostname(r"\\10.0.0.5\cases") is None

    def test_normalize_local_path_unchanged(self, tmp_path):
        assert paths.normalize_output_root(tmp_path) == tmp_path

    def test_normalize_unresolvable_unc(self):
        with patch.object(paths.socket, "gethostbyaddr", side_effect=OSError("no PTR")):
            with pytest.raises(PathAccessError):
                paths.normalize_output_root(r"\\10.0.0.5\cases")

    def test_normalize_inaccessible_unc(self):
        with patch.object(paths, "has_read_write_access", return_value=False):
            with pytest.raises(PathAccessError):
                paths.normalize_output_root(r"\\fileserver\cases")

    def test_read_write_access(self, tmp_path):
        assert paths.has_read_write_access(tmp_path)
        assert not paths.has_read_write_access(tmp_path / "missing")
        assert list(tmp_path.iterdir()) == []

    def test_free_disk_space(self, tmp_path):
        assert paths.get_free_disk_space(tmp_path) > 0

    def test_free_disk_space_unknown(self, tmp_path):
        assert paths.get_free_disk_space(tmp_path / "missing") == paths.DISK_FREE_SPACE_UNKNOWN
