"""Background task execution for minivcs."""

from minivcs.tasks.events import (
    CancelledEvent,
    ErrorEvent,
    ProgressEvent,
    ProgressListener,
    SuccessEvent,
    TaskEvent,
)
from minivcs.tasks.orchestrator import TaskHandle, TaskOrchestrator

__all__ = [
    "CancelledEvent",
    "ErrorEvent",
    "ProgressEvent",
    "ProgressListener",
    "SuccessEvent",
    "TaskEvent",
    "TaskHandle",
    "TaskOrchestrator",
]
