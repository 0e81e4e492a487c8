"""
Job start/end handling for the carving pipeline.
"""

import logging
import shutil
from typing import Optional

from ..core.events import Notifier
from ..core.models import Workspace
from ..workspace.manager import WorkspaceManager
from .accounting import JobTotals, JobTotalsSnapshot, build_summary_message


logger = logging.getLogger(__name__)


class JobLifecycle:
    """
    Reference-counted start and end of carving jobs.

    ``start_job`` and ``end_job`` are called once per task executor. Only
    the ``end_job`` that brings a job's count to zero tears the job down:
    it deletes the temp directory tree, posts the summary message and drops
    the job's accounting record.
    """

    def __init__(self, workspaces: WorkspaceManager, notifier: Notifier):
        self.workspaces = workspaces
        self.notifier = notifier

    def start_job(self, job_id: int, data_source_id: int) -> Workspace:
        """Attach a task to a job; see WorkspaceManager.attach()."""
        return self.workspaces.attach(job_id, data_source_id)

    def totals(self, job_id: int) -> Optional[JobTotals]:
        return self.workspaces.get_totals(job_id)

    def end_job(self, job_id: int) -> Optional[JobTotalsSnapshot]:
        """
        Detach a task from a job.

        Returns:
            The job's final totals if this call tore the job down, else None
        """
        teardown = self.workspaces.detach(job_id)
        if teardown is None:
            return None

        temp_dir = teardown.workspace.temp_dir
        try:
            shutil.rmtree(temp_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error deleting temp directory {temp_dir} for job {job_id}: {e}")

        snapshot = teardown.totals
        logger.info(
            f"Job {job_id} complete: carved={snapshot.items_recovered}, "
            f"errors={snapshot.items_with_errors}, "
            f"write_ms={snapshot.write_time_ms}, parse_ms={snapshot.parse_time_ms}"
        )
        self.notifier.post_message(build_summary_message(snapshot))
        return snapshot
