"""Typed rows returned by the metadata database.

Rows are converted at the adapter boundary so callers never handle
``sqlite3.Row`` objects.
"""

import sqlite3
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RepositoryRecord:
    repo_id: int
    repo_name: str
    repo_path: str
    created_at: str
    last_commit_at: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "RepositoryRecord":
        return cls(
            repo_id=row["repo_id"],
            repo_name=row["repo_name"],
            repo_path=row["repo_path"],
            created_at=row["created_at"],
            last_commit_at=row["last_commit_at"],
            description=row["description"],
        )


@dataclass(frozen=True)
class CommitRecord:
    commit_id: str
    repo_id: int
    message: str
    summary: Optional[str]
    author: Optional[str]
    timestamp: str
    file_count: int
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CommitRecord":
        return cls(
            commit_id=row["commit_id"],
            repo_id=row["repo_id"],
            message=row["message"],
            summary=row["summary"],
            author=row["author"],
            timestamp=row["timestamp"],
            file_count=row["file_count"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class CommitFileRecord:
    commit_id: str
    repo_id: int
    file_path: str
    file_size: int
    status: str
    commit_file_id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CommitFileRecord":
        return cls(
            commit_file_id=row["commit_file_id"],
            commit_id=row["commit_id"],
            repo_id=row["repo_id"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            status=row["status"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class StagedFileRecord:
    repo_id: int
    file_path: str
    file_size: int
    last_modified: Optional[str]
    status: str
    staged_file_id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "StagedFileRecord":
        return cls(
            staged_file_id=row["staged_file_id"],
            repo_id=row["repo_id"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            last_modified=row["last_modified"],
            status=row["status"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class ActivityLogRecord:
    repo_id: int
    operation: str
    details: Optional[str]
    timestamp: str
    log_id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ActivityLogRecord":
        return cls(
            log_id=row["log_id"],
            repo_id=row["repo_id"],
            operation=row["operation"],
            details=row["details"],
            timestamp=row["timestamp"],
            created_at=row["created_at"],
        )
