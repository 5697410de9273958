"""Repository state management.

A ``Repository`` owns the in-memory commit history and HEAD of one working
directory. History is loaded from the commit journal on open; commits whose
write-ahead intent marker survived a crash are cleaned up at the same time.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from minivcs.core.models import Commit
from minivcs.exceptions import NotFoundError, ValidationError
from minivcs.storage.file_store import FileStore

logger = logging.getLogger(__name__)


class Repository:
    """State of one repository.

    Attributes:
        root: Absolute working directory
        name: Display name
        created_at: Creation time of the repository layout
        file_store: Filesystem store rooted at ``root``
    """

    def __init__(
        self,
        root: Path,
        name: Optional[str] = None,
        description: Optional[str] = None,
        file_store: Optional[FileStore] = None,
    ):
        self.root = Path(root).resolve()
        self.name = name or self.root.name
        self.description = description
        self.file_store = file_store or FileStore(self.root)
        self.created_at = datetime.now().replace(microsecond=0)
        self._commits: List[Commit] = []
        self._by_id: Dict[str, Commit] = {}
        self._trees: Dict[str, Tuple[str, ...]] = {}
        self._repo_id: Optional[int] = None

    @property
    def repo_id(self) -> Optional[int]:
        """Identity in the metadata database, if registered."""
        return self._repo_id

    @repo_id.setter
    def repo_id(self, value: Optional[int]) -> None:
        if value is None:
            return
        if self._repo_id is not None and self._repo_id != value:
            raise ValidationError(
                f"Repository {self.root} already has database id {self._repo_id}, "
                f"cannot reassign to {value}"
            )
        self._repo_id = value

    @property
    def commits(self) -> List[Commit]:
        """Commit history, oldest first."""
        return list(self._commits)

    @property
    def head(self) -> Optional[str]:
        return self.file_store.read_head()

    @property
    def latest_commit(self) -> Optional[Commit]:
        return self._commits[-1] if self._commits else None

    def load(self) -> "Repository":
        """Load history from the journal and drop incomplete commits."""
        if not self.file_store.is_initialized():
            raise NotFoundError(f"Not a minivcs repository (no data/ layout in {self.root})")

        data_dir = self.file_store.index_dir.parent
        self.created_at = datetime.fromtimestamp(data_dir.stat().st_mtime).replace(microsecond=0)

        self._commits = []
        self._by_id = {}
        self._trees = {}
        for commit in self.file_store.read_journal():
            if commit.commit_id in self._by_id:
                logger.warning("Duplicate journal entry for commit %s ignored", commit.commit_id)
                continue
            self._commits.append(commit)
            self._by_id[commit.commit_id] = commit

        self.recover_incomplete_commits()
        logger.debug("Loaded %d commit(s) from %s", len(self._commits), self.root)
        return self

    def recover_incomplete_commits(self) -> List[str]:
        """Remove commit directories left behind by an interrupted commit.

        Returns:
            Ids of the commit directories that were deleted
        """
        removed = []
        for commit_id in self.file_store.pending_intents():
            if commit_id in self._by_id:
                self.file_store.remove_intent(commit_id)
                continue
            logger.warning("Removing incomplete commit %s left by an interrupted commit", commit_id)
            self.file_store.remove_commit_dir(commit_id)
            removed.append(commit_id)
        return removed

    def has_commit(self, commit_id: str) -> bool:
        return commit_id in self._by_id

    def is_id_taken(self, commit_id: str) -> bool:
        return commit_id in self._by_id or self.file_store.commit_dir_exists(commit_id)

    def get_commit(self, commit_id: str) -> Commit:
        """Look up a commit by id.

        Falls back to the commit's ``metadata.txt`` for commits missing from
        the journal.

        Raises:
            NotFoundError: If no such commit exists
        """
        commit = self._by_id.get(commit_id)
        if commit is not None:
            return commit

        if commit_id and commit_id not in self.file_store.pending_intents():
            commit = self.file_store.read_metadata(commit_id)
            if commit is not None:
                return commit

        raise NotFoundError(f"Commit not found: {commit_id}")

    def previous_commit(self) -> Optional[Commit]:
        head = self.head
        if head and head in self._by_id:
            return self._by_id[head]
        return self.latest_commit

    def tree(self, commit: Commit) -> Tuple[str, ...]:
        """Every path captured by ``commit``'s snapshot.

        Commits written in this session carry their tree; older ones are read
        from the snapshot directory, falling back to the changed files.
        """
        if commit.tree is not None:
            return commit.tree
        cached = self._trees.get(commit.commit_id)
        if cached is None:
            listed = self.file_store.snapshot_files(commit.commit_id)
            cached = tuple(listed) if listed is not None else commit.changed_files
            self._trees[commit.commit_id] = cached
        return cached

    def record_commit(self, commit: Commit, journal: bool = True) -> None:
        """Journal a fully persisted commit and move HEAD to it.

        Pass ``journal=False`` when the journal entry was already appended.
        """
        if journal:
            self.file_store.append_journal(commit)
        self._commits.append(commit)
        self._by_id[commit.commit_id] = commit
        self.file_store.write_head(commit.commit_id)

    def history(self, limit: Optional[int] = None) -> List[Commit]:
        """Commits newest first."""
        commits = list(reversed(self._commits))
        if limit is not None and limit >= 0:
            commits = commits[:limit]
        return commits

    def __repr__(self) -> str:
        return f"Repository({self.root}, {len(self._commits)} commit(s))"
