"""Events reported by background tasks and the listener interface."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TaskEvent:
    """Base class of every task event."""

    task_id: str
    operation: str


@dataclass
class ProgressEvent(TaskEvent):
    message: str = ""
    percent: int = 0


@dataclass
class SuccessEvent(TaskEvent):
    result: Any = None


@dataclass
class ErrorEvent(TaskEvent):
    message: str = ""
    cause: Optional[BaseException] = field(default=None, repr=False)


@dataclass
class CancelledEvent(TaskEvent):
    """The task stopped early; ``partial`` holds whatever it finished."""

    partial: Any = None


TERMINAL_EVENTS = (SuccessEvent, ErrorEvent, CancelledEvent)


class ProgressListener:
    """Receives task events on the thread that calls ``dispatch_events``.

    Subclasses override the callbacks they care about.
    """

    def on_progress(self, event: ProgressEvent) -> None:
        pass

    def on_success(self, event: SuccessEvent) -> None:
        pass

    def on_error(self, event: ErrorEvent) -> None:
        pass

    def on_cancelled(self, event: CancelledEvent) -> None:
        pass
