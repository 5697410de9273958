"""Unit tests for MetadataDB."""

import sqlite3
from pathlib import Path

import pytest

from minivcs.constants import DB_SCHEMA_VERSION
from minivcs.exceptions import DatabaseError, StoreUnavailableError, TransactionError
from minivcs.storage.metadata_db import MetadataDB
from minivcs.storage.records import CommitFileRecord, CommitRecord


@pytest.fixture
def db(db_path: Path) -> MetadataDB:
    """Create and initialize a MetadataDB instance."""
    metadata_db = MetadataDB(db_path)
    metadata_db.open()
    metadata_db.init_schema()
    yield metadata_db
    metadata_db.close()


@pytest.fixture
def repo_id(db: MetadataDB) -> int:
    return db.create_repository("project", "/work/project", "demo repository")


def _commit_record(repo_id: int, commit_id: str = "0a1b2c3d", timestamp: str = "2024-05-01 09:00:00") -> CommitRecord:
    return CommitRecord(
        commit_id=commit_id,
        repo_id=repo_id,
        message="first",
        summary="Initial commit: 1 file(s)",
        author="tester",
        timestamp=timestamp,
        file_count=1,
    )


class TestMetadataDBInit:
    """Test database initialization."""

    def test_open_creates_parent_and_connection(self, db_path: Path) -> None:
        """Test opening database connection."""
        db = MetadataDB(db_path)
        assert db.conn is None

        db.open()

        assert isinstance(db.conn, sqlite3.Connection)
        assert db_path.exists()
        db.close()

    def test_open_idempotent(self, db_path: Path) -> None:
        """Test that calling open multiple times is safe."""
        db = MetadataDB(db_path)
        db.open()
        conn1 = db.conn
        db.open()
        assert db.conn is conn1
        db.close()

    def test_context_manager(self, db_path: Path) -> None:
        """Test using database as context manager."""
        db = MetadataDB(db_path)
        with db:
            assert db.is_open
        assert not db.is_open

    def test_unreachable_location(self, tmp_path: Path) -> None:
        """Test that a path under a regular file cannot be opened."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StoreUnavailableError, match="Failed to open database"):
            MetadataDB(blocker / "metadata.db").open()

    def test_init_schema_creates_tables(self, db: MetadataDB) -> None:
        """Test schema initialization creates all tables."""
        cursor = db.conn.cursor()  # type: ignore[union-attr]
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        tables = [row[0] for row in cursor.fetchall()]

        for table in ["activity_logs", "commit_files", "commits", "metadata", "repositories", "staged_files"]:
            assert table in tables

    def test_init_schema_sets_version(self, db: MetadataDB) -> None:
        assert db.get_schema_version() == DB_SCHEMA_VERSION
        assert db.get_setting("schema_version") == str(DB_SCHEMA_VERSION)
        assert db.get_setting("hybrid.storage") is None

    def test_init_schema_idempotent(self, db: MetadataDB) -> None:
        db.init_schema()
        assert db.get_schema_version() == DB_SCHEMA_VERSION

    def test_query_on_closed_database(self, db_path: Path) -> None:
        with pytest.raises(DatabaseError, match="not open"):
            MetadataDB(db_path).get_schema_version()


class TestRepositories:
    """Test repository registration."""

    def test_create_and_find(self, db: MetadataDB, repo_id: int) -> None:
        record = db.find_repository_by_path("/work/project")
        assert record is not None
        assert record.repo_id == repo_id
        assert record.repo_name == "project"
        assert record.description == "demo repository"
        assert record.last_commit_at is None
        assert db.find_repository_by_id(repo_id) == record

    def test_duplicate_path_rejected(self, db: MetadataDB, repo_id: int) -> None:
        with pytest.raises(DatabaseError, match="already registered"):
            db.create_repository("again", "/work/project")

    def test_unknown_path(self, db: MetadataDB) -> None:
        assert db.find_repository_by_path("/nowhere") is None

    def test_update_last_commit(self, db: MetadataDB, repo_id: int) -> None:
        db.update_last_commit(repo_id, "2024-05-01 09:00:00")
        assert db.find_repository_by_id(repo_id).last_commit_at == "2024-05-01 09:00:00"  # type: ignore[union-attr]


class TestCommits:
    """Test commit and commit-file rows."""

    def test_insert_and_get(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_commit(_commit_record(repo_id))

        record = db.get_commit("0a1b2c3d")
        assert record is not None
        assert record.message == "first"
        assert record.author == "tester"
        assert record.file_count == 1

    def test_duplicate_commit_id(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_commit(_commit_record(repo_id))
        with pytest.raises(DatabaseError, match="already exists"):
            db.insert_commit(_commit_record(repo_id))

    def test_list_commits_newest_first(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_commit(_commit_record(repo_id, "11111111", "2024-05-01 09:00:00"))
        db.insert_commit(_commit_record(repo_id, "22222222", "2024-05-01 10:00:00"))

        assert [c.commit_id for c in db.list_commits(repo_id)] == ["22222222", "11111111"]
        assert len(db.list_commits(repo_id, limit=1)) == 1

    def test_commit_files(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_commit(_commit_record(repo_id))
        db.insert_commit_file(CommitFileRecord("0a1b2c3d", repo_id, "notes.txt", 12, "added"))

        files = db.list_commit_files("0a1b2c3d")
        assert [(f.file_path, f.file_size, f.status) for f in files] == [("notes.txt", 12, "added")]

    def test_commit_file_unique_per_commit(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_commit(_commit_record(repo_id))
        db.insert_commit_file(CommitFileRecord("0a1b2c3d", repo_id, "notes.txt", 12, "added"))
        with pytest.raises(DatabaseError, match="notes.txt"):
            db.insert_commit_file(CommitFileRecord("0a1b2c3d", repo_id, "notes.txt", 12, "added"))


class TestStagedFiles:
    """Test staged-file rows."""

    def test_upsert_updates_in_place(self, db: MetadataDB, repo_id: int) -> None:
        db.upsert_staged_file(repo_id, "notes.txt", 10, "2024-05-01 09:00:00")
        db.upsert_staged_file(repo_id, "notes.txt", 20, "2024-05-01 09:05:00")

        staged = db.list_staged_files(repo_id)
        assert len(staged) == 1
        assert staged[0].file_size == 20
        assert staged[0].status == "staged"

    def test_delete_staged_files(self, db: MetadataDB, repo_id: int) -> None:
        db.upsert_staged_file(repo_id, "a.txt", 1, None)
        db.upsert_staged_file(repo_id, "b.txt", 2, None)

        assert db.delete_staged_files(repo_id) == 2
        assert db.list_staged_files(repo_id) == []


class TestActivity:
    """Test the activity log."""

    def test_newest_first(self, db: MetadataDB, repo_id: int) -> None:
        db.insert_activity(repo_id, "INIT", "created")
        db.insert_activity(repo_id, "ADD_FILE", "staged notes.txt")

        activity = db.list_activity(repo_id)
        assert [a.operation for a in activity] == ["ADD_FILE", "INIT"]
        assert activity[0].timestamp
        assert len(db.list_activity(repo_id, limit=1)) == 1


class TestTransaction:
    """Test multi-statement atomicity."""

    def test_commits_all_writes(self, db: MetadataDB, repo_id: int) -> None:
        with db.transaction():
            db.insert_commit(_commit_record(repo_id))
            db.insert_activity(repo_id, "COMMIT", "first")

        assert db.get_commit("0a1b2c3d") is not None
        assert len(db.list_activity(repo_id)) == 1

    def test_rolls_back_on_failure(self, db: MetadataDB, repo_id: int) -> None:
        db.upsert_staged_file(repo_id, "notes.txt", 10, None)

        with pytest.raises(TransactionError, match="rolled back"):
            with db.transaction():
                db.insert_commit(_commit_record(repo_id))
                db.delete_staged_files(repo_id)
                db.insert_commit(_commit_record(repo_id))

        assert db.get_commit("0a1b2c3d") is None
        assert len(db.list_staged_files(repo_id)) == 1

    def test_other_exceptions_roll_back_and_propagate(self, db: MetadataDB, repo_id: int) -> None:
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.insert_commit(_commit_record(repo_id))
                raise RuntimeError("boom")

        assert db.get_commit("0a1b2c3d") is None
