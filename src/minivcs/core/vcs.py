"""Operation facade for minivcs.

``VCS`` wires a repository to its staging area, commit engine, diff engine
and relational reconciler, and serializes mutating operations on a
per-repository lock.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from minivcs.config import VCSConfig
from minivcs.constants import OP_ADD_FILE, OP_BULK_ADD, OP_INIT, TIMESTAMP_FORMAT
from minivcs.core.commit_engine import CommitEngine
from minivcs.core.diff_engine import DiffEngine
from minivcs.core.models import AddAllResult, Commit, CommitDiff, RepositoryStatus, StageResult
from minivcs.core.repository import Repository
from minivcs.core.staging import CancelCheck, ProgressCallback, StagingArea
from minivcs.core.summary import SummaryGenerator
from minivcs.exceptions import NotFoundError, ValidationError, VCSIOError
from minivcs.storage.file_store import FileStore
from minivcs.storage.reconciler import StoreReconciler

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class VCS:
    """Entry point for every repository operation.

    One instance manages at most one open repository at a time.

    Attributes:
        config: Active configuration
        reconciler: Relational side of persistence
        repository: Open repository, or None before ``init``/``open``

    Example:
        >>> vcs = VCS(VCSConfig())
        >>> vcs.init("/work/project")
        >>> vcs.add("notes.txt")
        >>> vcs.commit("first")
    """

    def __init__(
        self,
        config: Optional[VCSConfig] = None,
        reconciler: Optional[StoreReconciler] = None,
    ):
        self.config = config or VCSConfig()
        self.reconciler = reconciler or StoreReconciler.from_config(self.config.database)
        self.summary_generator = SummaryGenerator()
        self.repository: Optional[Repository] = None
        self.staging: Optional[StagingArea] = None
        self.commit_engine: Optional[CommitEngine] = None
        self.diff_engine: Optional[DiffEngine] = None
        self._lock = threading.RLock()

    def __enter__(self) -> "VCS":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        self.reconciler.close()

    def init(
        self,
        path: PathLike,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Repository:
        """Create (or re-open) a repository at ``path``.

        Existing history is preserved when ``path`` is already a repository.

        Raises:
            ValidationError: If ``path`` exists and is not a directory
            VCSIOError: If the layout cannot be created
        """
        root = Path(path).expanduser().resolve()
        if root.exists() and not root.is_dir():
            raise ValidationError(f"Not a directory: {path}")

        with self._lock:
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise VCSIOError(f"Failed to create repository directory {root}: {e}") from e

            file_store = FileStore(root)
            existed = file_store.is_initialized()
            file_store.initialize()

            repository = Repository(root, name=name, description=description, file_store=file_store)
            repository.load()
            self._attach(repository)

            repository.repo_id = self.reconciler.register_repository(
                root, repository.name, description
            )
            if not existed:
                self.reconciler.record_activity(
                    repository.repo_id, OP_INIT, f"Initialized repository {repository.name} at {root}"
                )
            logger.info("%s repository at %s", "Reinitialized" if existed else "Initialized", root)
            return repository

    def open(self, path: PathLike) -> Repository:
        """Open an existing repository.

        Raises:
            NotFoundError: If ``path`` is not a repository
        """
        root = Path(path).expanduser().resolve()
        with self._lock:
            file_store = FileStore(root)
            if not file_store.is_initialized():
                raise NotFoundError(f"Not a minivcs repository: {root}")

            repository = Repository(root, file_store=file_store).load()
            if self.reconciler.available:
                repository.repo_id = self.reconciler.resolve_repo_id(root)
            self._attach(repository)
            return repository

    def _attach(self, repository: Repository) -> None:
        self.repository = repository
        self.staging = StagingArea(
            repository.root,
            repository.file_store,
            self.config.staging.exclude_patterns,
        )
        self.commit_engine = CommitEngine(
            repository,
            self.staging,
            self.reconciler,
            summary_generator=self.summary_generator,
            max_message_length=self.config.max_message_length,
            author=self.config.resolve_author(),
        )
        self.diff_engine = DiffEngine(repository)

    def _require_repository(self) -> Repository:
        if self.repository is None:
            raise NotFoundError("No repository is open; run init or open first")
        return self.repository

    def add(self, path: PathLike) -> StageResult:
        """Stage one file. Re-adding a staged file refreshes its copy."""
        with self._lock:
            repository = self._require_repository()
            assert self.staging is not None
            result = self.staging.stage(path)
            self._record_staged(repository, [result.path])
            self.reconciler.record_activity(
                repository.repo_id,
                OP_ADD_FILE,
                f"{'Re-staged' if result.already_staged else 'Staged'} {result.path} ({result.size} bytes)",
            )
            return result

    def add_all(
        self,
        path: Optional[PathLike] = None,
        exclude_patterns: Optional[List[str]] = None,
        is_cancelled: Optional[CancelCheck] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> AddAllResult:
        """Stage every new file under ``path`` (the repository root by default)."""
        with self._lock:
            repository = self._require_repository()
            assert self.staging is not None
            result = self.staging.stage_all(
                path if path is not None else repository.root,
                exclude_patterns,
                is_cancelled=is_cancelled,
                progress=progress,
            )
            if result.added_files:
                self._record_staged(repository, result.added_files)
                self.reconciler.record_activity(
                    repository.repo_id,
                    OP_BULK_ADD,
                    f"Staged {result.added} of {result.processed} file(s)"
                    f" ({result.skipped} skipped{', cancelled' if result.cancelled else ''})",
                )
            return result

    def _record_staged(self, repository: Repository, paths: List[str]) -> None:
        if repository.repo_id is None or not self.reconciler.available:
            return
        assert self.staging is not None
        entries = {e.path: e for e in self.staging.entries()}
        for path in paths:
            entry = entries.get(path)
            if entry is None:
                continue
            modified = entry.modified.strftime(TIMESTAMP_FORMAT) if entry.modified else None
            self.reconciler.record_staged(repository.repo_id, path, entry.size, modified)

    def commit(self, message: str, summary: Optional[str] = None) -> Commit:
        """Commit the staged files. See ``CommitEngine.commit``."""
        with self._lock:
            self._require_repository()
            assert self.commit_engine is not None
            return self.commit_engine.commit(message, summary)

    def status(self) -> RepositoryStatus:
        repository = self._require_repository()
        assert self.staging is not None
        with self._lock:
            staged = self.staging.entries()
        return RepositoryStatus(
            root=repository.root,
            name=repository.name,
            head=repository.head,
            commit_count=len(repository.commits),
            staged=staged,
            last_commit=repository.latest_commit,
            repo_id=repository.repo_id,
        )

    def log(self, limit: Optional[int] = None) -> List[Commit]:
        """Commit history, newest first."""
        return self._require_repository().history(limit)

    def diff(self, commit_a: str, commit_b: str, detailed: bool = False) -> CommitDiff:
        self._require_repository()
        assert self.diff_engine is not None
        return self.diff_engine.diff(commit_a, commit_b, detailed)

    def format_diff(self, result: CommitDiff) -> str:
        self._require_repository()
        assert self.diff_engine is not None
        return self.diff_engine.format_diff(result)

    def commit_report(self, commit_id: str) -> str:
        """Long report of one commit relative to the commit before it."""
        repository = self._require_repository()
        commit = repository.get_commit(commit_id)
        commits = repository.commits
        previous = None
        for index, candidate in enumerate(commits):
            if candidate.commit_id == commit.commit_id and index > 0:
                previous = commits[index - 1]
        return self.summary_generator.commit_report(commit, previous)

    def quick_status(self) -> str:
        repository = self._require_repository()
        assert self.staging is not None
        return self.summary_generator.quick_status(repository.commits, self.staging.list())

    def recent_activity(self, limit: int = 10) -> str:
        """Newest-first listing of recent commits."""
        return self.summary_generator.recent_activity(self._require_repository().commits, limit)
