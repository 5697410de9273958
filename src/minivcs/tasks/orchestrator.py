"""Background execution of repository operations.

Each operation runs as one unit of work on a thread pool. Workers never call
listeners directly: they push events onto a queue, and the caller drains it
with ``dispatch_events()`` on its own thread.
"""

import itertools
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from minivcs.core.models import AddAllResult
from minivcs.core.vcs import VCS
from minivcs.exceptions import VCSError
from minivcs.tasks.events import (
    CancelledEvent,
    ErrorEvent,
    ProgressEvent,
    ProgressListener,
    SuccessEvent,
    TaskEvent,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class TaskHandle:
    """Handle of a submitted task.

    Attributes:
        task_id: Unique id within the orchestrator
        operation: Operation name (``add``, ``commit``...)
        cancellable: Whether the running task checks the cancel flag
    """

    def __init__(self, task_id: str, operation: str, cancellable: bool = False):
        self.task_id = task_id
        self.operation = operation
        self.cancellable = cancellable
        self.future: Optional[Future] = None
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()
        self._terminal: Optional[TaskEvent] = None

    def cancel(self) -> None:
        """Request cancellation.

        A task that has not started yet finishes with ``CancelledEvent``
        without running. A running task stops only if it is cancellable.
        """
        self._cancel_event.set()

    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._done_event.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[TaskEvent]:
        """Block until the task finishes and return its terminal event.

        Returns:
            The terminal event, or None if ``timeout`` expired first
        """
        self._done_event.wait(timeout)
        return self._terminal

    @property
    def terminal_event(self) -> Optional[TaskEvent]:
        return self._terminal

    def _finish(self, event: TaskEvent) -> None:
        self._terminal = event
        self._done_event.set()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"TaskHandle({self.task_id}, {self.operation}, {state})"


class TaskOrchestrator:
    """Runs ``VCS`` operations on worker threads.

    Attributes:
        vcs: Facade the operations run against
        events: Channel of events waiting to be dispatched

    Example:
        >>> orchestrator = TaskOrchestrator(vcs)
        >>> orchestrator.add_listener(MyListener())
        >>> handle = orchestrator.commit("first")
        >>> handle.wait()
        >>> orchestrator.dispatch_events()
    """

    def __init__(self, vcs: VCS, max_workers: Optional[int] = None):
        self.vcs = vcs
        self.max_workers = max_workers or vcs.config.max_workers
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="minivcs-task"
        )
        self.events: "queue.Queue[TaskEvent]" = queue.Queue()
        self._listeners: List[ProgressListener] = []
        self._listeners_lock = threading.Lock()
        self._counter = itertools.count(1)

        logger.debug("Started task orchestrator with %d worker(s)", self.max_workers)

    def __enter__(self) -> "TaskOrchestrator":
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    # Listeners

    def add_listener(self, listener: ProgressListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def dispatch_events(self) -> int:
        """Deliver every queued event to the listeners on the calling thread.

        Returns:
            Number of events dispatched
        """
        with self._listeners_lock:
            listeners = list(self._listeners)

        count = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return count
            count += 1
            for listener in listeners:
                if isinstance(event, ProgressEvent):
                    listener.on_progress(event)
                elif isinstance(event, SuccessEvent):
                    listener.on_success(event)
                elif isinstance(event, ErrorEvent):
                    listener.on_error(event)
                elif isinstance(event, CancelledEvent):
                    listener.on_cancelled(event)

    def wait(self, handle: TaskHandle, timeout: Optional[float] = None) -> Optional[TaskEvent]:
        """Wait for ``handle`` and dispatch everything it reported."""
        event = handle.wait(timeout)
        self.dispatch_events()
        return event

    # Operations

    def init(
        self,
        path: PathLike,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TaskHandle:
        return self.submit("init", lambda handle: self.vcs.init(path, name, description))

    def open(self, path: PathLike) -> TaskHandle:
        return self.submit("open", lambda handle: self.vcs.open(path))

    def add(self, path: PathLike) -> TaskHandle:
        return self.submit("add", lambda handle: self.vcs.add(path))

    def add_all(
        self,
        path: Optional[PathLike] = None,
        exclude_patterns: Optional[List[str]] = None,
    ) -> TaskHandle:
        def run(handle: TaskHandle) -> AddAllResult:
            def progress(done: int, total: int, current: str) -> None:
                percent = int(done * 100 / total) if total else 100
                self._emit(ProgressEvent(handle.task_id, handle.operation, f"Processed {current}", percent))

            return self.vcs.add_all(
                path,
                exclude_patterns,
                is_cancelled=handle.is_cancelled,
                progress=progress,
            )

        return self.submit("add_all", run, cancellable=True)

    def commit(self, message: str, summary: Optional[str] = None) -> TaskHandle:
        return self.submit("commit", lambda handle: self.vcs.commit(message, summary))

    def diff(self, commit_a: str, commit_b: str, detailed: bool = False) -> TaskHandle:
        return self.submit("diff", lambda handle: self.vcs.diff(commit_a, commit_b, detailed))

    def status(self) -> TaskHandle:
        return self.submit("status", lambda handle: self.vcs.status())

    def log(self, limit: Optional[int] = None) -> TaskHandle:
        return self.submit("log", lambda handle: self.vcs.log(limit))

    def show(self, commit_id: str) -> TaskHandle:
        return self.submit("show", lambda handle: self.vcs.commit_report(commit_id))

    def quick_status(self) -> TaskHandle:
        return self.submit("quick_status", lambda handle: self.vcs.quick_status())

    def recent_activity(self, limit: int = 10) -> TaskHandle:
        return self.submit("recent_activity", lambda handle: self.vcs.recent_activity(limit))

    def submit(
        self,
        operation: str,
        fn: Callable[[TaskHandle], Any],
        cancellable: bool = False,
    ) -> TaskHandle:
        """Schedule ``fn(handle)`` as one unit of work."""
        handle = TaskHandle(f"task_{next(self._counter)}", operation, cancellable)
        handle.future = self.executor.submit(self._run, handle, fn)
        return handle

    def _emit(self, event: TaskEvent) -> None:
        self.events.put(event)

    def _run(self, handle: TaskHandle, fn: Callable[[TaskHandle], Any]) -> None:
        task_id, operation = handle.task_id, handle.operation
        terminal: TaskEvent

        if handle.is_cancelled():
            terminal = CancelledEvent(task_id, operation, None)
        else:
            self._emit(ProgressEvent(task_id, operation, f"Starting {operation}", 0))
            try:
                result = fn(handle)
            except VCSError as e:
                logger.debug("%s task failed: %s", operation, e)
                terminal = ErrorEvent(task_id, operation, str(e), e)
            except Exception as e:
                logger.exception("Unexpected error in %s task", operation)
                terminal = ErrorEvent(task_id, operation, f"Unexpected error: {e}", e)
            else:
                if isinstance(result, AddAllResult) and result.cancelled:
                    terminal = CancelledEvent(task_id, operation, result)
                else:
                    self._emit(ProgressEvent(task_id, operation, f"Finished {operation}", 100))
                    terminal = SuccessEvent(task_id, operation, result)

        self._emit(terminal)
        handle._finish(terminal)
