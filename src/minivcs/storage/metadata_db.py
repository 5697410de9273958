"""SQLite metadata database for minivcs.

The database mirrors what the filesystem store holds (repositories, commits,
their files, the staged set) and keeps an append-only activity log. The
commit journal under ``data/`` remains the source of truth for history; the
database adds queryable metadata and the audit trail.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional

from minivcs.constants import DB_SCHEMA_VERSION, STATUS_STAGED, TIMESTAMP_FORMAT
from minivcs.exceptions import DatabaseError, StoreUnavailableError, TransactionError
from minivcs.storage.records import (
    ActivityLogRecord,
    CommitFileRecord,
    CommitRecord,
    RepositoryRecord,
    StagedFileRecord,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS repositories (
        repo_id INTEGER PRIMARY KEY AUTOINCREMENT,
        repo_name TEXT NOT NULL,
        repo_path TEXT UNIQUE NOT NULL,
        created_at TEXT NOT NULL,
        last_commit_at TEXT,
        description TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS commits (
        commit_id TEXT PRIMARY KEY,
        repo_id INTEGER NOT NULL,
        message TEXT NOT NULL,
        summary TEXT,
        author TEXT,
        timestamp TEXT NOT NULL,
        file_count INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (repo_id) REFERENCES repositories(repo_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_commits_repo ON commits(repo_id)",
    """
    CREATE TABLE IF NOT EXISTS commit_files (
        commit_file_id INTEGER PRIMARY KEY AUTOINCREMENT,
        commit_id TEXT NOT NULL,
        repo_id INTEGER NOT NULL,
        file_path TEXT NOT NULL,
        file_size INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (commit_id, file_path),
        FOREIGN KEY (commit_id) REFERENCES commits(commit_id) ON DELETE CASCADE,
        FOREIGN KEY (repo_id) REFERENCES repositories(repo_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_commit_files_commit ON commit_files(commit_id)",
    """
    CREATE TABLE IF NOT EXISTS staged_files (
        staged_file_id INTEGER PRIMARY KEY AUTOINCREMENT,
        repo_id INTEGER NOT NULL,
        file_path TEXT NOT NULL,
        file_size INTEGER NOT NULL DEFAULT 0,
        last_modified TEXT,
        status TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (repo_id) REFERENCES repositories(repo_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_staged_repo_path ON staged_files(repo_id, file_path)",
    """
    CREATE TABLE IF NOT EXISTS activity_logs (
        log_id INTEGER PRIMARY KEY AUTOINCREMENT,
        repo_id INTEGER NOT NULL,
        operation TEXT NOT NULL,
        details TEXT,
        timestamp TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (repo_id) REFERENCES repositories(repo_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_activity_repo ON activity_logs(repo_id)",
)


def _now() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class MetadataDB:
    """SQLite database manager for minivcs metadata.

    A single connection is shared by every thread; all access goes through
    an internal re-entrant lock. Multi-statement work uses ``transaction()``,
    inside which the individual write methods do not commit on their own.

    Attributes:
        db_path: Path to the SQLite database file
        conn: Active database connection (if open)

    Example:
        >>> with MetadataDB(Path("metadata.db")) as db:
        ...     db.init_schema()
        ...     repo_id = db.create_repository("demo", "/work/demo")
    """

    def __init__(self, db_path: Path, timeout: float = 30.0) -> None:
        """Initialize database manager.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait for a locked database
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.conn: Optional[sqlite3.Connection] = None
        self._wal_mode_supported: Optional[bool] = None
        self._lock = threading.RLock()
        self._in_transaction = False

    def open(self) -> None:
        """Open database connection and configure journal mode.

        Attempts to use WAL mode for better concurrency. Falls back to
        DELETE mode if WAL is not supported (e.g., on NFS).

        Raises:
            StoreUnavailableError: If the database cannot be opened
        """
        with self._lock:
            if self.conn is not None:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self.conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=self.timeout,
                    check_same_thread=False,
                )
                self.conn.row_factory = sqlite3.Row

                if self._wal_mode_supported is None:
                    self._detect_wal_support()

                if self._wal_mode_supported:
                    self.conn.execute("PRAGMA journal_mode=WAL")
                else:
                    self.conn.execute("PRAGMA journal_mode=DELETE")

                self.conn.execute("PRAGMA foreign_keys=ON")

            except (sqlite3.Error, OSError) as e:
                if self.conn is not None:
                    self.conn.close()
                    self.conn = None
                raise StoreUnavailableError(
                    f"Failed to open database {self.db_path}: {e}"
                ) from e

            logger.debug("Opened metadata database %s", self.db_path)

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    @property
    def is_open(self) -> bool:
        return self.conn is not None

    def __enter__(self) -> "MetadataDB":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _detect_wal_support(self) -> None:
        """Detect if WAL journal mode is supported.

        WAL may not work on network filesystems like NFS.
        """
        try:
            cursor = self.conn.execute("PRAGMA journal_mode=WAL")  # type: ignore
            result = cursor.fetchone()
            self._wal_mode_supported = result[0].upper() == "WAL"
        except sqlite3.Error:
            self._wal_mode_supported = False

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise DatabaseError(f"Database not open: {self.db_path}")
        return self.conn

    def _commit(self) -> None:
        if not self._in_transaction:
            self._connection().commit()

    def _rollback(self) -> None:
        if not self._in_transaction and self.conn is not None:
            self.conn.rollback()

    def init_schema(self) -> None:
        """Initialize database schema.

        Creates all tables and indices. Safe to call on an existing database.

        Raises:
            DatabaseError: If schema creation fails
        """
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.cursor()
                for statement in _SCHEMA:
                    cursor.execute(statement)

                cursor.execute(
                    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                    ("schema_version", str(DB_SCHEMA_VERSION)),
                )

                conn.commit()

            except sqlite3.Error as e:
                conn.rollback()
                raise DatabaseError(f"Failed to initialize schema: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator["MetadataDB"]:
        """Run several writes atomically.

        Everything executed inside the block is committed together, or rolled
        back together if any statement fails.

        Raises:
            TransactionError: If any write inside the block fails
        """
        with self._lock:
            conn = self._connection()
            if self._in_transaction:
                yield self
                return

            self._in_transaction = True
            try:
                yield self
                conn.commit()
            except (sqlite3.Error, DatabaseError) as e:
                conn.rollback()
                logger.error("Transaction rolled back: %s", e)
                if isinstance(e, TransactionError):
                    raise
                raise TransactionError(f"Transaction failed and was rolled back: {e}") from e
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._in_transaction = False

    # Repositories

    def create_repository(
        self,
        repo_name: str,
        repo_path: str,
        description: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> int:
        """Register a repository.

        Args:
            repo_name: Display name
            repo_path: Absolute path of the working directory
            description: Optional free text
            created_at: Creation time (defaults to now)

        Returns:
            Database ID of the repository

        Raises:
            DatabaseError: If the path is already registered or the insert fails
        """
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO repositories (repo_name, repo_path, created_at, description)
                    VALUES (?, ?, ?, ?)
                    """,
                    (repo_name, repo_path, created_at or _now(), description),
                )
                self._commit()
                return cursor.lastrowid  # type: ignore

            except sqlite3.IntegrityError as e:
                self._rollback()
                raise DatabaseError(f"Repository already registered: {repo_path}") from e
            except sqlite3.Error as e:
                self._rollback()
                raise DatabaseError(f"Failed to register repository {repo_path}: {e}") from e

    def find_repository_by_path(self, repo_path: str) -> Optional[RepositoryRecord]:
        row = self._fetch_one(
            "SELECT * FROM repositories WHERE repo_path = ?", (repo_path,)
        )
        return RepositoryRecord.from_row(row) if row else None

    def find_repository_by_id(self, repo_id: int) -> Optional[RepositoryRecord]:
        row = self._fetch_one(
            "SELECT * FROM repositories WHERE repo_id = ?", (repo_id,)
        )
        return RepositoryRecord.from_row(row) if row else None

    def update_last_commit(self, repo_id: int, timestamp: str) -> None:
        self._execute(
            "UPDATE repositories SET last_commit_at = ? WHERE repo_id = ?",
            (timestamp, repo_id),
            f"Failed to update repository {repo_id}",
        )

    # Commits

    def insert_commit(self, record: CommitRecord) -> None:
        """Insert a commit row.

        Raises:
            DatabaseError: If the id already exists or the insert fails
        """
        with self._lock:
            conn = self._connection()
            try:
                conn.execute(
                    """
                    INSERT INTO commits
                        (commit_id, repo_id, message, summary, author, timestamp, file_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.commit_id,
                        record.repo_id,
                        record.message,
                        record.summary,
                        record.author,
                        record.timestamp,
                        record.file_count,
                    ),
                )
                self._commit()

            except sqlite3.IntegrityError as e:
                self._rollback()
                raise DatabaseError(f"Commit already exists: {record.commit_id}") from e
            except sqlite3.Error as e:
                self._rollback()
                raise DatabaseError(f"Failed to insert commit {record.commit_id}: {e}") from e

    def get_commit(self, commit_id: str) -> Optional[CommitRecord]:
        row = self._fetch_one("SELECT * FROM commits WHERE commit_id = ?", (commit_id,))
        return CommitRecord.from_row(row) if row else None

    def list_commits(self, repo_id: int, limit: Optional[int] = None) -> List[CommitRecord]:
        """Commits of a repository, newest first."""
        query = "SELECT * FROM commits WHERE repo_id = ? ORDER BY timestamp DESC, rowid DESC"
        params: tuple = (repo_id,)
        if limit:
            query += " LIMIT ?"
            params = (repo_id, int(limit))
        return [CommitRecord.from_row(r) for r in self._fetch_all(query, params)]

    def insert_commit_file(self, record: CommitFileRecord) -> None:
        self._execute(
            """
            INSERT INTO commit_files (commit_id, repo_id, file_path, file_size, status)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.commit_id,
                record.repo_id,
                record.file_path,
                record.file_size,
                record.status,
            ),
            f"Failed to insert commit file {record.file_path}",
        )

    def list_commit_files(self, commit_id: str) -> List[CommitFileRecord]:
        rows = self._fetch_all(
            "SELECT * FROM commit_files WHERE commit_id = ? ORDER BY commit_file_id",
            (commit_id,),
        )
        return [CommitFileRecord.from_row(r) for r in rows]

    # Staged files

    def upsert_staged_file(
        self,
        repo_id: int,
        file_path: str,
        file_size: int,
        last_modified: Optional[str],
    ) -> None:
        """Record a staged file, updating the existing row if there is one."""
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute(
                    """
                    UPDATE staged_files SET file_size = ?, last_modified = ?
                    WHERE repo_id = ? AND file_path = ? AND status = ?
                    """,
                    (file_size, last_modified, repo_id, file_path, STATUS_STAGED),
                )
                if cursor.rowcount == 0:
                    conn.execute(
                        """
                        INSERT INTO staged_files
                            (repo_id, file_path, file_size, last_modified, status)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (repo_id, file_path, file_size, last_modified, STATUS_STAGED),
                    )
                self._commit()

            except sqlite3.Error as e:
                self._rollback()
                raise DatabaseError(f"Failed to record staged file {file_path}: {e}") from e

    def list_staged_files(self, repo_id: int) -> List[StagedFileRecord]:
        rows = self._fetch_all(
            "SELECT * FROM staged_files WHERE repo_id = ? AND status = ? ORDER BY staged_file_id",
            (repo_id, STATUS_STAGED),
        )
        return [StagedFileRecord.from_row(r) for r in rows]

    def delete_staged_files(self, repo_id: int) -> int:
        """Remove every staged row of a repository.

        Returns:
            Number of rows deleted
        """
        return self._execute(
            "DELETE FROM staged_files WHERE repo_id = ?",
            (repo_id,),
            f"Failed to clear staged files of repository {repo_id}",
        )

    # Activity log

    def insert_activity(
        self,
        repo_id: int,
        operation: str,
        details: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        self._execute(
            "INSERT INTO activity_logs (repo_id, operation, details, timestamp) VALUES (?, ?, ?, ?)",
            (repo_id, operation, details, timestamp or _now()),
            f"Failed to log {operation} activity",
        )

    def list_activity(self, repo_id: int, limit: Optional[int] = None) -> List[ActivityLogRecord]:
        """Activity of a repository, newest first."""
        query = "SELECT * FROM activity_logs WHERE repo_id = ? ORDER BY log_id DESC"
        params: tuple = (repo_id,)
        if limit:
            query += " LIMIT ?"
            params = (repo_id, int(limit))
        return [ActivityLogRecord.from_row(r) for r in self._fetch_all(query, params)]

    # Metadata

    def get_setting(self, key: str) -> Optional[str]:
        row = self._fetch_one("SELECT value FROM metadata WHERE key = ?", (key,))
        return row[0] if row else None

    def get_schema_version(self) -> int:
        value = self.get_setting("schema_version")
        return int(value) if value is not None else 0

    def _execute(self, query: str, params: tuple, error: str) -> int:
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute(query, params)
                self._commit()
                return cursor.rowcount
            except sqlite3.Error as e:
                self._rollback()
                raise DatabaseError(f"{error}: {e}") from e

    def _fetch_one(self, query: str, params: tuple) -> Optional[sqlite3.Row]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(query, params).fetchone()
            except sqlite3.Error as e:
                raise DatabaseError(f"Query failed: {e}") from e

    def _fetch_all(self, query: str, params: tuple) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(query, params).fetchall()
            except sqlite3.Error as e:
                raise DatabaseError(f"Query failed: {e}") from e
