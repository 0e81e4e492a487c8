"""
Per-job accounting for the carving pipeline.
"""

import threading
from dataclasses import dataclass

from ..core.events import IngestMessage, MessageType, MODULE_NAME


SUMMARY_SUBJECT = f"{MODULE_NAME} Results"


@dataclass(frozen=True)
class JobTotalsSnapshot:
    """Immutable view of a job's counters, taken at teardown."""
    job_id: int
    items_recovered: int = 0
    items_with_errors: int = 0
    write_time_ms: int = 0
    parse_time_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "items_recovered": self.items_recovered,
            "items_with_errors": self.items_with_errors,
            "write_time_ms": self.write_time_ms,
            "parse_time_ms": self.parse_time_ms,
        }


class JobTotals:
    """
    Counters shared by every task executor of one job.

    All mutators are safe to call from concurrent worker threads.
    """

    def __init__(self, job_id: int):
        self.job_id = job_id
        self._lock = threading.Lock()
        self._items_recovered = 0
        self._items_with_errors = 0
        self._write_time_ms = 0
        self._parse_time_ms = 0

    def add_recovered(self, count: int) -> None:
        with self._lock:
            self._items_recovered += count

    def add_error(self) -> None:
        with self._lock:
            self._items_with_errors += 1

    def add_write_time(self, millis: int) -> None:
        with self._lock:
            self._write_time_ms += millis

    def add_parse_time(self, millis: int) -> None:
        with self._lock:
            self._parse_time_ms += millis

    def snapshot(self) -> JobTotalsSnapshot:
        with self._lock:
            return JobTotalsSnapshot(
                job_id=self.job_id,
                items_recovered=self._items_recovered,
                items_with_errors=self._items_with_errors,
                write_time_ms=self._write_time_ms,
                parse_time_ms=self._parse_time_ms,
            )


def build_summary_message(snapshot: JobTotalsSnapshot) -> IngestMessage:
    """Render a job's totals as the end-of-job inbox message."""
    rows = [
        ("Number of Files Carved", snapshot.items_recovered),
        ("Number of Files with Errors", snapshot.items_with_errors),
        ("Total Write Time (ms)", snapshot.write_time_ms),
        ("Total Parse Time (ms)", snapshot.parse_time_ms),
    ]
    width = max(len(label) for label, _ in rows)
    details = "\n".join(f"{label:<{width}}  {value}" for label, value in rows)

    return IngestMessage(
        message_type=MessageType.INFO,
        module_name=MODULE_NAME,
        subject=SUMMARY_SUBJECT,
        details=details,
        data=snapshot.to_dict(),
    )
