"""Core data model for minivcs.

These types are free of any storage-specific representation: the filesystem
store and the relational store both translate to and from them.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from minivcs.constants import TIMESTAMP_FORMAT


class Commit:
    """An immutable snapshot record.

    Attributes:
        commit_id: 8 hex character identifier
        message: Trimmed commit message
        summary: Human readable one-line summary
        timestamp: Creation time, second precision, local time
        changed_files: Staged paths in staging order
        tree: Full snapshot contents (carried-forward paths plus staged ones)
    """

    __slots__ = ("_commit_id", "_message", "_summary", "_timestamp", "_changed_files", "_tree")

    def __init__(
        self,
        commit_id: str,
        message: str,
        timestamp: datetime,
        changed_files: Iterable[str],
        summary: str = "",
        tree: Optional[Iterable[str]] = None,
    ):
        self._commit_id = commit_id
        self._message = message
        self._summary = summary
        self._timestamp = timestamp.replace(microsecond=0)
        self._changed_files: Tuple[str, ...] = tuple(changed_files)
        self._tree: Optional[Tuple[str, ...]] = tuple(tree) if tree is not None else None

    @property
    def commit_id(self) -> str:
        return self._commit_id

    @property
    def message(self) -> str:
        return self._message

    @property
    def summary(self) -> str:
        return self._summary

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def changed_files(self) -> Tuple[str, ...]:
        return self._changed_files

    @property
    def tree(self) -> Optional[Tuple[str, ...]]:
        """Every path captured by the snapshot, when known.

        None for commits loaded from the journal; the repository derives it
        from the snapshot directory on demand.
        """
        return self._tree

    @property
    def file_count(self) -> int:
        return len(self._changed_files)

    @property
    def formatted_timestamp(self) -> str:
        return self._timestamp.strftime(TIMESTAMP_FORMAT)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Commit):
            return NotImplemented
        return self._commit_id == other._commit_id

    def __hash__(self) -> int:
        return hash(self._commit_id)

    def __repr__(self) -> str:
        return f"Commit({self._commit_id}: {self._message!r}, {self.file_count} file(s))"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "commit_id": self._commit_id,
            "message": self._message,
            "summary": self._summary,
            "timestamp": self.formatted_timestamp,
            "changed_files": list(self._changed_files),
            "file_count": self.file_count,
            "tree": list(self._tree) if self._tree is not None else None,
        }


class StagedFile:
    """A file currently in the staging area.

    Attributes:
        path: Staged path as recorded in the staged list
        size: Size in bytes of the index copy
        modified: Last-modified time of the index copy
    """

    def __init__(self, path: str, size: int, modified: Optional[datetime] = None):
        self.path = path
        self.size = size
        self.modified = modified

    def __repr__(self) -> str:
        return f"StagedFile({self.path}, {self.size} bytes)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "modified": self.modified.strftime(TIMESTAMP_FORMAT) if self.modified else None,
        }


class StageResult:
    """Outcome of staging a single file."""

    def __init__(self, path: str, source: Path, size: int, already_staged: bool = False):
        self.path = path
        self.source = source
        self.size = size
        self.already_staged = already_staged

    def __repr__(self) -> str:
        state = "refreshed" if self.already_staged else "staged"
        return f"StageResult({self.path}: {state})"


class AddAllResult:
    """Outcome of a bulk add.

    ``processed`` counts every file found under the root; ``skipped`` covers
    files that were already staged as well as files that failed to stage.
    """

    def __init__(self) -> None:
        self.processed = 0
        self.added_files: List[str] = []
        self.skipped_files: List[str] = []
        self.cancelled = False

    @property
    def added(self) -> int:
        return len(self.added_files)

    @property
    def skipped(self) -> int:
        return len(self.skipped_files)

    def __repr__(self) -> str:
        return (
            f"AddAllResult(processed={self.processed}, added={self.added}, "
            f"skipped={self.skipped}, cancelled={self.cancelled})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "added": self.added,
            "skipped": self.skipped,
            "added_files": list(self.added_files),
            "skipped_files": list(self.skipped_files),
            "cancelled": self.cancelled,
        }


class FileLineDiff:
    """Line-level changes of one file common to both commits.

    Attributes:
        path: File path
        removed_lines: (line number in old file, text) pairs
        added_lines: (line number in new file, text) pairs
    """

    def __init__(
        self,
        path: str,
        removed_lines: List[Tuple[int, str]],
        added_lines: List[Tuple[int, str]],
    ):
        self.path = path
        self.removed_lines = removed_lines
        self.added_lines = added_lines

    @property
    def has_changes(self) -> bool:
        return bool(self.removed_lines or self.added_lines)

    def __repr__(self) -> str:
        return f"FileLineDiff({self.path}: -{len(self.removed_lines)} +{len(self.added_lines)})"


class CommitDiff:
    """File-set (and optionally line-level) difference between two commits."""

    def __init__(
        self,
        commit_a: str,
        commit_b: str,
        added: List[str],
        removed: List[str],
        common: List[str],
        file_diffs: Optional[List[FileLineDiff]] = None,
    ):
        self.commit_a = commit_a
        self.commit_b = commit_b
        self.added = added
        self.removed = removed
        self.common = common
        self.file_diffs = file_diffs or []

    @property
    def is_empty(self) -> bool:
        """True when no file was added or removed and no line changed."""
        return not self.added and not self.removed and not any(
            d.has_changes for d in self.file_diffs
        )

    def __repr__(self) -> str:
        return (
            f"CommitDiff({self.commit_a}..{self.commit_b}: +{len(self.added)} "
            f"-{len(self.removed)} ={len(self.common)})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit_a": self.commit_a,
            "commit_b": self.commit_b,
            "added": list(self.added),
            "removed": list(self.removed),
            "common": list(self.common),
            "file_diffs": [
                {
                    "path": d.path,
                    "removed_lines": [list(x) for x in d.removed_lines],
                    "added_lines": [list(x) for x in d.added_lines],
                }
                for d in self.file_diffs
            ],
        }


class RepositoryStatus:
    """Snapshot of a repository's state for status displays."""

    def __init__(
        self,
        root: Path,
        name: str,
        head: Optional[str],
        commit_count: int,
        staged: List[StagedFile],
        last_commit: Optional[Commit] = None,
        repo_id: Optional[int] = None,
    ):
        self.root = root
        self.name = name
        self.head = head
        self.commit_count = commit_count
        self.staged = staged
        self.last_commit = last_commit
        self.repo_id = repo_id

    @property
    def staged_paths(self) -> List[str]:
        return [s.path for s in self.staged]

    @property
    def database_backed(self) -> bool:
        return self.repo_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "name": self.name,
            "head": self.head,
            "commit_count": self.commit_count,
            "staged": [s.to_dict() for s in self.staged],
            "last_commit": self.last_commit.to_dict() if self.last_commit else None,
            "repo_id": self.repo_id,
        }
