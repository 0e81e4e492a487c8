"""
Job workspace manager.

Every task executor of a job attaches to the job's workspace when it starts
and detaches when it shuts down. The first attach creates the job's output
and temp directories and its accounting record; the last detach hands both
back to the caller for teardown. The manager is owned by one ingest run, so
tests and concurrent runs never share job state.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.exceptions import WorkspaceInitError
from ..core.models import Workspace
from ..jobs.accounting import JobTotals, JobTotalsSnapshot
from .paths import normalize_output_root


logger = logging.getLogger(__name__)

OUTPUT_SUBDIR = "Unallocated Carver"
TEMP_SUBDIR = "PhotoRec Carver"


@dataclass
class JobHandle:
    """Shared state of one active job, with the number of attached tasks."""
    job_id: int
    workspace: Workspace
    totals: JobTotals
    ref_count: int = 0


@dataclass(frozen=True)
class JobTeardown:
    """What the last detach of a job returns."""
    job_id: int
    workspace: Workspace
    totals: JobTotalsSnapshot


def job_folder_name(data_source_id: int, now: datetime) -> str:
    """Name of a job's folder: data source id plus a millisecond timestamp."""
    return f"{data_source_id}_{now.strftime('%m-%d-%Y-%H-%M-%S')}-{now.microsecond // 1000:04d}"


class WorkspaceManager:
    """
    Registry of job workspaces keyed by job id.

    Attributes:
        module_dir: Case directory under which per-job output dirs are created
        temp_dir: Case directory under which per-job temp dirs are created
    """

    def __init__(
        self,
        module_dir: Path,
        temp_dir: Path,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.module_dir = Path(module_dir)
        self.temp_dir = Path(temp_dir)
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[int, JobHandle] = {}

    def attach(self, job_id: int, data_source_id: int) -> Workspace:
        """
        Attach one task to a job, creating the job's workspace on first use.

        Args:
            job_id: Ingest job identifier
            data_source_id: Data source the job ingests; names the job folder

        Returns:
            The job's workspace (the same object for every attach)

        Raises:
            WorkspaceInitError: A directory could not be created
            PathAccessError: A network root is unusable
        """
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                workspace = self._create_workspace(data_source_id)
                handle = JobHandle(job_id=job_id, workspace=workspace, totals=JobTotals(job_id))
                self._jobs[job_id] = handle
                logger.info(
                    f"Created workspace for job {job_id}: "
                    f"output={workspace.output_dir} temp={workspace.temp_dir}"
                )
            handle.ref_count += 1
            logger.debug(f"Job {job_id} attached ({handle.ref_count} active)")
            return handle.workspace

    def detach(self, job_id: int) -> Optional[JobTeardown]:
        """
        Detach one task from a job.

        Returns:
            The workspace and final totals when this was the last attached
            task, None while other tasks remain (or the job is unknown)
        """
        with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                logger.warning(f"Detach for unknown job {job_id}")
                return None

            handle.ref_count -= 1
            logger.debug(f"Job {job_id} detached ({handle.ref_count} active)")
            if handle.ref_count > 0:
                return None

            del self._jobs[job_id]
            return JobTeardown(
                job_id=job_id,
                workspace=handle.workspace,
                totals=handle.totals.snapshot(),
            )

    def get_workspace(self, job_id: int) -> Optional[Workspace]:
        with self._lock:
            handle = self._jobs.get(job_id)
            return handle.workspace if handle else None

    def get_totals(self, job_id: int) -> Optional[JobTotals]:
        with self._lock:
            handle = self._jobs.get(job_id)
            return handle.totals if handle else None

    def ref_count(self, job_id: int) -> int:
        with self._lock:
            handle = self._jobs.get(job_id)
            return handle.ref_count if handle else 0

    def active_jobs(self) -> List[int]:
        with self._lock:
            return list(self._jobs)

    def _create_workspace(self, data_source_id: int) -> Workspace:
        output_root = self._create_root(self.module_dir / OUTPUT_SUBDIR)
        temp_root = self._create_root(self.temp_dir / TEMP_SUBDIR)

        folder = job_folder_name(data_source_id, self._clock())
        output_dir = Path(output_root) / folder
        temp_dir = Path(temp_root) / folder
        self._make_dir(output_dir)
        self._make_dir(temp_dir)
        return Workspace(output_dir=output_dir, temp_dir=temp_dir)

    def _create_root(self, path: Path):
        self._make_dir(path)
        return normalize_output_root(path)

    def _make_dir(self, path: Path) -> None:
        """Create a directory; an existing directory is fine."""
        try:
            path.mkdir(parents=True, exist_ok=True)
        except (OSError, NotImplementedError) as e:
            raise WorkspaceInitError(f"Unable to create output directory: {path} ({e})", path=path) from e
