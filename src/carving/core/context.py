"""
Job context shared by every task executor attached to an ingest job.
"""

import logging
import threading
from typing import Callable, List, Optional

from .models import ContentNode


logger = logging.getLogger(__name__)


class JobContext:
    """
    Per-job view exposed to task executors.

    Cancellation is cooperative: the host sets it, executors poll it at state
    boundaries and the process runner polls it while the engine runs.

    Attributes:
        job_id: Opaque numeric job identifier
        data_source: Top-level data source node being ingested
        processing_unallocated_space: Whether the job feeds unallocated units
        process_timeout_seconds: Wall-clock limit per engine run (None = no limit)
    """

    def __init__(
        self,
        job_id: int,
        data_source: ContentNode,
        processing_unallocated_space: bool = True,
        process_timeout_seconds: Optional[float] = None,
        files_added_callback: Optional[Callable[[List[ContentNode]], None]] = None,
    ):
        self.job_id = job_id
        self.data_source = data_source
        self.processing_unallocated_space = processing_unallocated_space
        self.process_timeout_seconds = process_timeout_seconds
        self._files_added_callback = files_added_callback
        self._cancelled = threading.Event()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation of every unit in the job."""
        if not self._cancelled.is_set():
            logger.info(f"Cancellation requested for job {self.job_id}")
        self._cancelled.set()

    def add_files_to_job(self, files: List[ContentNode]) -> None:
        """Hand newly carved files back to the job for downstream analysis."""
        if self._files_added_callback is not None and files:
            self._files_added_callback(list(files))
