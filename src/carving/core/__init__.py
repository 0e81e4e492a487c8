"""
Core abstractions and interfaces for the carving pipeline.
"""

from .models import (
    ByteRange, CarvedItem, ContentKind, ContentNode, ProcessResult,
    TaskOutcome, TaskState, Unit, Workspace
)
from .context import JobContext
from .events import IngestMessage, MessageType, ModuleContentEvent, Notifier
from .storage import CaseStorage
from .hierarchy import collect_virtual_directory_parents

__all__ = [
    "ByteRange",
    "CarvedItem",
    "ContentKind",
    "ContentNode",
    "ProcessResult",
    "TaskOutcome",
    "TaskState",
    "Unit",
    "Workspace",
    "JobContext",
    "IngestMessage",
    "MessageType",
    "ModuleContentEvent",
    "Notifier",
    "CaseStorage",
    "collect_virtual_directory_parents",
]
