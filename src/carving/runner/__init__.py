"""
Runners for carving tasks.
"""

from .carving_task import CarvingTaskExecutor
from .concurrent_runner import ConcurrentRunner, RunMetrics, RunnerConfig
from .content_writer import write_unit_to_file

__all__ = [
    "CarvingTaskExecutor",
    "ConcurrentRunner",
    "RunMetrics",
    "RunnerConfig",
    "write_unit_to_file",
]
