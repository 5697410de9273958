"""Unit tests for the task orchestrator."""

import threading
from pathlib import Path
from typing import List

import pytest

from minivcs.core.models import AddAllResult, Commit
from minivcs.core.vcs import VCS
from minivcs.tasks import (
    CancelledEvent,
    ErrorEvent,
    ProgressEvent,
    ProgressListener,
    SuccessEvent,
    TaskEvent,
    TaskOrchestrator,
)


class RecordingListener(ProgressListener):
    """Collects every event together with the thread that received it."""

    def __init__(self) -> None:
        self.events: List[TaskEvent] = []
        self.threads: List[str] = []

    def _record(self, event: TaskEvent) -> None:
        self.events.append(event)
        self.threads.append(threading.current_thread().name)

    on_progress = _record
    on_success = _record
    on_error = _record
    on_cancelled = _record


@pytest.fixture
def orchestrator(repo_vcs: VCS) -> TaskOrchestrator:
    with TaskOrchestrator(repo_vcs, max_workers=2) as orch:
        yield orch


@pytest.fixture
def listener(orchestrator: TaskOrchestrator) -> RecordingListener:
    recording = RecordingListener()
    orchestrator.add_listener(recording)
    return recording


class TestDispatch:
    """Test event delivery."""

    def test_success_delivered_on_caller_thread(
        self, orchestrator: TaskOrchestrator, listener: RecordingListener
    ) -> None:
        event = orchestrator.wait(orchestrator.add("notes.txt"))

        assert isinstance(event, SuccessEvent)
        assert event.result.path == "notes.txt"
        assert isinstance(listener.events[0], ProgressEvent)
        assert listener.events[-1] is event
        assert set(listener.threads) == {threading.current_thread().name}

    def test_nothing_delivered_before_dispatch(
        self, orchestrator: TaskOrchestrator, listener: RecordingListener
    ) -> None:
        handle = orchestrator.status()
        handle.wait()

        assert listener.events == []
        assert orchestrator.dispatch_events() >= 2
        assert isinstance(listener.events[-1], SuccessEvent)

    def test_removed_listener_receives_nothing(
        self, orchestrator: TaskOrchestrator, listener: RecordingListener
    ) -> None:
        orchestrator.remove_listener(listener)
        orchestrator.wait(orchestrator.status())
        assert listener.events == []


class TestOutcomes:
    """Test terminal events."""

    def test_commit(self, orchestrator: TaskOrchestrator, listener: RecordingListener) -> None:
        orchestrator.wait(orchestrator.add("notes.txt"))
        event = orchestrator.wait(orchestrator.commit("first"))

        assert isinstance(event, SuccessEvent)
        assert isinstance(event.result, Commit)
        assert event.operation == "commit"

    def test_domain_error(self, orchestrator: TaskOrchestrator, listener: RecordingListener) -> None:
        event = orchestrator.wait(orchestrator.commit("first"))

        assert isinstance(event, ErrorEvent)
        assert "Nothing to commit" in event.message
        assert listener.events[-1] is event

    def test_unexpected_error(self, orchestrator: TaskOrchestrator, listener: RecordingListener) -> None:
        def explode(handle):
            raise RuntimeError("boom")

        event = orchestrator.wait(orchestrator.submit("custom", explode))

        assert isinstance(event, ErrorEvent)
        assert event.message == "Unexpected error: boom"
        assert isinstance(event.cause, RuntimeError)

    def test_diff_and_log(self, orchestrator: TaskOrchestrator) -> None:
        orchestrator.wait(orchestrator.add("notes.txt"))
        first = orchestrator.wait(orchestrator.commit("first")).result  # type: ignore[union-attr]
        orchestrator.wait(orchestrator.add("todo.txt"))
        second = orchestrator.wait(orchestrator.commit("second")).result  # type: ignore[union-attr]

        diff_event = orchestrator.wait(orchestrator.diff(first.commit_id, second.commit_id))
        log_event = orchestrator.wait(orchestrator.log(1))

        assert diff_event.result.added == ["todo.txt"]  # type: ignore[union-attr]
        assert [c.commit_id for c in log_event.result] == [second.commit_id]  # type: ignore[union-attr]

    def test_open_unknown_path(self, orchestrator: TaskOrchestrator, tmp_path: Path) -> None:
        event = orchestrator.wait(orchestrator.open(tmp_path / "nothing"))
        assert isinstance(event, ErrorEvent)
        assert "Not a minivcs repository" in event.message


class TestCancellation:
    """Test cancelling tasks."""

    def test_cancel_before_start(self, orchestrator: TaskOrchestrator, listener: RecordingListener) -> None:
        gate = threading.Event()
        blockers = [orchestrator.submit("block", lambda h: gate.wait(5)) for _ in range(2)]

        handle = orchestrator.add("notes.txt")
        handle.cancel()
        gate.set()
        for blocker in blockers:
            blocker.wait(5)
        event = orchestrator.wait(handle, 5)

        assert isinstance(event, CancelledEvent)
        assert event.partial is None
        assert orchestrator.vcs.staging.list() == []  # type: ignore[union-attr]

    def test_cancel_add_all_keeps_partial(
        self, orchestrator: TaskOrchestrator, listener: RecordingListener, repo_dir: Path
    ) -> None:
        for i in range(5):
            (repo_dir / f"extra{i}.txt").write_text(str(i))

        def run(handle):
            return orchestrator.vcs.add_all(
                is_cancelled=handle.is_cancelled,
                progress=lambda done, total, path: handle.cancel(),
            )

        event = orchestrator.wait(orchestrator.submit("add_all", run, cancellable=True))

        assert isinstance(event, CancelledEvent)
        assert isinstance(event.partial, AddAllResult)
        assert event.partial.added_files == ["extra0.txt"]
        assert orchestrator.vcs.staging.list() == ["extra0.txt"]  # type: ignore[union-attr]

    def test_add_all_reports_progress(
        self, orchestrator: TaskOrchestrator, listener: RecordingListener
    ) -> None:
        event = orchestrator.wait(orchestrator.add_all())

        assert isinstance(event, SuccessEvent)
        assert event.result.added == 2
        percents = [e.percent for e in listener.events if isinstance(e, ProgressEvent)]
        assert percents[0] == 0
        assert 50 in percents
        assert percents[-1] == 100


class TestConcurrency:
    """Test adds racing a commit on several workers."""

    def test_adds_interleaved_with_commit(self, repo_vcs: VCS, repo_dir: Path) -> None:
        paths = [f"extra{i}.txt" for i in range(12)]
        for i, path in enumerate(paths):
            (repo_dir / path).write_text(f"extra {i}\n")

        with TaskOrchestrator(repo_vcs, max_workers=4) as orchestrator:
            orchestrator.wait(orchestrator.add("notes.txt"))
            handles = [orchestrator.add(path) for path in paths[:6]]
            commit_handle = orchestrator.commit("mid")
            handles += [orchestrator.add(path) for path in paths[6:]]

            events = [orchestrator.wait(handle, 10) for handle in handles]
            commit_event = orchestrator.wait(commit_handle, 10)

        assert all(isinstance(event, SuccessEvent) for event in events)
        assert isinstance(commit_event, SuccessEvent)
        committed = set(commit_event.result.changed_files)
        remaining = set(repo_vcs.staging.list())  # type: ignore[union-attr]

        assert "notes.txt" in committed
        assert "notes.txt" not in remaining
        for path in paths:
            assert (path in committed) != (path in remaining), path
        assert repo_vcs.status().head == commit_event.result.commit_id
