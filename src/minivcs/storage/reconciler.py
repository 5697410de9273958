"""Relational side effects of repository operations.

The filesystem store is always written first. The reconciler then mirrors the
change into the metadata database. When the database is disabled, unreachable,
or does not know the repository, every operation degrades to filesystem-only
with a warning. Only the commit transaction reports relational failure to the
caller.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from minivcs.config import DatabaseConfig
from minivcs.constants import (
    OP_COMMIT,
    STATUS_ADDED,
    STATUS_MODIFIED,
    STATUS_REMOVED,
)
from minivcs.core.models import Commit
from minivcs.exceptions import DatabaseError, StoreUnavailableError, TransactionError
from minivcs.storage.metadata_db import MetadataDB
from minivcs.storage.records import (
    ActivityLogRecord,
    CommitFileRecord,
    CommitRecord,
    StagedFileRecord,
)

logger = logging.getLogger(__name__)


def commit_file_statuses(
    files: Iterable[str],
    previous_files: Iterable[str],
    tree: Optional[Iterable[str]] = None,
) -> List[tuple]:
    """Pair each changed path with its status relative to the previous commit.

    Args:
        files: Paths staged for the commit
        previous_files: Tree of the previous commit
        tree: Tree of the new commit; defaults to ``files``

    Returns:
        (path, status) tuples: the staged files in order as added/modified,
        followed by previous paths missing from the new tree as removed
    """
    current = list(files)
    previous = list(previous_files)
    previous_set = set(previous)
    current_set = set(tree) if tree is not None else set(current)
    statuses = [
        (path, STATUS_MODIFIED if path in previous_set else STATUS_ADDED)
        for path in current
    ]
    statuses.extend((path, STATUS_REMOVED) for path in previous if path not in current_set)
    return statuses


class StoreReconciler:
    """Mirrors filesystem operations into the metadata database.

    Attributes:
        db: Open metadata database, or None in filesystem-only mode
    """

    def __init__(self, db: Optional[MetadataDB] = None) -> None:
        self.db = db

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "StoreReconciler":
        """Open the configured database, falling back to filesystem-only."""
        if not config.enabled:
            logger.debug("Metadata database disabled; using filesystem-only mode")
            return cls(None)

        db = MetadataDB(config.resolved_path(), timeout=config.timeout)
        try:
            db.open()
            db.init_schema()
        except (StoreUnavailableError, DatabaseError) as e:
            logger.warning("Metadata database unavailable, continuing filesystem-only: %s", e)
            db.close()
            return cls(None)
        return cls(db)

    @property
    def available(self) -> bool:
        return self.db is not None and self.db.is_open

    def close(self) -> None:
        if self.db is not None:
            self.db.close()

    def resolve_repo_id(self, repo_path: Path) -> Optional[int]:
        """Database id of the repository at ``repo_path``, or None."""
        if not self.available:
            return None
        try:
            record = self.db.find_repository_by_path(str(repo_path))  # type: ignore[union-attr]
        except DatabaseError as e:
            logger.warning("Could not resolve repository %s: %s", repo_path, e)
            return None
        if record is None:
            logger.warning(
                "Repository %s is not registered in the metadata database; "
                "metadata will not be recorded",
                repo_path,
            )
            return None
        return record.repo_id

    def register_repository(
        self,
        repo_path: Path,
        name: str,
        description: Optional[str] = None,
    ) -> Optional[int]:
        """Register a repository (or find its existing registration)."""
        if not self.available:
            return None
        try:
            existing = self.db.find_repository_by_path(str(repo_path))  # type: ignore[union-attr]
            if existing is not None:
                return existing.repo_id
            return self.db.create_repository(name, str(repo_path), description)  # type: ignore[union-attr]
        except DatabaseError as e:
            logger.warning("Could not register repository %s: %s", repo_path, e)
            return None

    def record_staged(
        self,
        repo_id: Optional[int],
        file_path: str,
        file_size: int,
        last_modified: Optional[str],
    ) -> bool:
        if repo_id is None or not self.available:
            return False
        try:
            self.db.upsert_staged_file(repo_id, file_path, file_size, last_modified)  # type: ignore[union-attr]
            return True
        except DatabaseError as e:
            logger.warning("Could not record staged file %s: %s", file_path, e)
            return False

    def record_activity(self, repo_id: Optional[int], operation: str, details: str) -> bool:
        if repo_id is None or not self.available:
            return False
        try:
            self.db.insert_activity(repo_id, operation, details)  # type: ignore[union-attr]
            return True
        except DatabaseError as e:
            logger.warning("Could not log %s activity: %s", operation, e)
            return False

    def record_commit(
        self,
        repo_id: int,
        commit: Commit,
        file_sizes: Dict[str, int],
        previous_files: Iterable[str] = (),
        author: Optional[str] = None,
        on_commit: Optional[Callable[[], None]] = None,
    ) -> None:
        """Write every relational row of a commit in one transaction.

        ``on_commit`` runs as the last step inside the transaction; if it
        raises, the rows are rolled back and its exception propagates.

        Args:
            repo_id: Database id of the repository
            commit: The new commit
            file_sizes: Snapshot size of each committed path
            previous_files: Tree of the previous commit
            author: Commit author
            on_commit: Filesystem step that must succeed for the rows to stay

        Raises:
            TransactionError: If any write fails (the transaction is rolled back)
        """
        if not self.available:
            raise TransactionError(f"Metadata database unavailable for commit {commit.commit_id}")

        db = self.db
        assert db is not None
        with db.transaction():
            db.insert_commit(
                CommitRecord(
                    commit_id=commit.commit_id,
                    repo_id=repo_id,
                    message=commit.message,
                    summary=commit.summary,
                    author=author,
                    timestamp=commit.formatted_timestamp,
                    file_count=commit.file_count,
                )
            )
            for path, status in commit_file_statuses(
                commit.changed_files, previous_files, commit.tree
            ):
                db.insert_commit_file(
                    CommitFileRecord(
                        commit_id=commit.commit_id,
                        repo_id=repo_id,
                        file_path=path,
                        file_size=0 if status == STATUS_REMOVED else file_sizes.get(path, 0),
                        status=status,
                    )
                )
            db.delete_staged_files(repo_id)
            db.update_last_commit(repo_id, commit.formatted_timestamp)
            db.insert_activity(
                repo_id,
                OP_COMMIT,
                f"Commit {commit.commit_id}: {commit.message} ({commit.file_count} file(s))",
                commit.formatted_timestamp,
            )
            if on_commit is not None:
                on_commit()
        logger.debug("Recorded commit %s in metadata database", commit.commit_id)

    def commit_files(self, commit_id: str) -> List[CommitFileRecord]:
        if not self.available:
            return []
        return self.db.list_commit_files(commit_id)  # type: ignore[union-attr]

    def staged_files(self, repo_id: Optional[int]) -> List[StagedFileRecord]:
        if repo_id is None or not self.available:
            return []
        return self.db.list_staged_files(repo_id)  # type: ignore[union-attr]

    def activity(self, repo_id: Optional[int], limit: Optional[int] = None) -> List[ActivityLogRecord]:
        if repo_id is None or not self.available:
            return []
        return self.db.list_activity(repo_id, limit)  # type: ignore[union-attr]
