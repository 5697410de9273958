"""Unit tests for the minivcs CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from minivcs import __version__
from minivcs.cli.main import app
from minivcs.exceptions import DatabaseError
from minivcs.storage.metadata_db import MetadataDB
from minivcs.tasks import TaskOrchestrator

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path, db_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"database": {"path": str(db_path)}}))
    return path


@pytest.fixture
def cli(config_file: Path, repo_dir: Path):
    """Invoke the app against ``repo_dir`` with a temporary database."""

    def invoke(*args: str):
        return runner.invoke(app, ["--config", str(config_file), "-C", str(repo_dir), *args])

    return invoke


@pytest.fixture
def initialized(cli):
    result = cli("init", "--quiet")
    assert result.exit_code == 0, result.output
    return cli


def _commit_ids(cli) -> list:
    result = cli("log", "--format", "json")
    assert result.exit_code == 0, result.output
    return [c["commit_id"] for c in json.loads(result.stdout)]


class TestVersionAndConfig:
    """Test the callback options."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"minivcs version {__version__}" in result.output

    def test_invalid_config_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")

        result = runner.invoke(app, ["--config", str(bad), "status"])

        assert result.exit_code == 1
        assert "Failed to load config" in result.output


class TestInit:
    """Test 'minivcs init'."""

    def test_init_creates_layout(self, cli, repo_dir: Path, db_path: Path) -> None:
        result = cli("init")

        assert result.exit_code == 0
        assert "Initialized minivcs repository" in result.output
        assert "filesystem + metadata database" in result.output
        assert (repo_dir / "data" / "index").is_dir()
        assert (repo_dir / "data" / "commits").is_dir()
        assert db_path.exists()

    def test_init_quiet(self, cli) -> None:
        result = cli("init", "--quiet")
        assert result.exit_code == 0
        assert result.output == ""

    def test_init_explicit_path(self, config_file: Path, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere"

        result = runner.invoke(app, ["--config", str(config_file), "init", str(target), "--name", "demo"])

        assert result.exit_code == 0
        assert "demo" in result.output
        assert (target / "data" / "index").is_dir()

    def test_init_without_database(self, tmp_path: Path, repo_dir: Path) -> None:
        config = tmp_path / "fs.json"
        config.write_text(json.dumps({"database": {"enabled": False}}))

        result = runner.invoke(app, ["--config", str(config), "-C", str(repo_dir), "init"])

        assert result.exit_code == 0
        assert "filesystem only" in result.output


class TestAdd:
    """Test 'minivcs add' and 'minivcs add-all'."""

    def test_add_not_initialized(self, cli) -> None:
        result = cli("add", "notes.txt")
        assert result.exit_code == 1
        assert "Not a minivcs repository" in result.output

    def test_add_files(self, initialized) -> None:
        result = initialized("add", "notes.txt", "todo.txt")

        assert result.exit_code == 0
        assert "+ notes.txt" in result.output
        assert "2 file(s) staged for commit" in result.output

    def test_add_again_refreshes(self, initialized) -> None:
        initialized("add", "notes.txt")
        result = initialized("add", "notes.txt")

        assert result.exit_code == 0
        assert "refreshed" in result.output

    def test_add_missing_file_keeps_others(self, initialized) -> None:
        result = initialized("add", "missing.txt", "notes.txt")

        assert result.exit_code == 1
        assert "File not found: missing.txt" in result.output
        assert "1 file(s) staged for commit" in result.output
        assert "A  notes.txt" in initialized("status", "--short").output

    def test_add_runs_through_orchestrator(self, initialized, monkeypatch: pytest.MonkeyPatch) -> None:
        submitted = []
        original = TaskOrchestrator.add

        def recording(self, path):
            submitted.append(str(path))
            return original(self, path)

        monkeypatch.setattr(TaskOrchestrator, "add", recording)
        result = initialized("add", "notes.txt", "todo.txt")

        assert result.exit_code == 0
        assert submitted == ["notes.txt", "todo.txt"]

    def test_add_data_file_rejected(self, initialized) -> None:
        result = initialized("add", "data/index/staged_files.txt")
        assert result.exit_code == 1
        assert "Cannot stage repository data file" in result.output

    def test_add_all(self, initialized) -> None:
        result = initialized("add-all")

        assert result.exit_code == 0
        assert "+ notes.txt" in result.output
        assert "Processed 2 file(s)" in result.output
        assert "2 added" in result.output

    def test_add_all_exclude(self, initialized) -> None:
        result = initialized("add-all", "-x", "todo*")

        assert result.exit_code == 0
        assert "1 added" in result.output
        assert "todo.txt" not in result.output


class TestCommit:
    """Test 'minivcs commit'."""

    def test_message_required(self, initialized) -> None:
        result = initialized("commit")
        assert result.exit_code == 1
        assert "Commit message is required" in result.output

    def test_nothing_to_commit(self, initialized) -> None:
        result = initialized("commit", "-m", "first")
        assert result.exit_code == 1
        assert "Nothing to commit" in result.output

    def test_message_too_long(self, initialized) -> None:
        initialized("add", "notes.txt")
        result = initialized("commit", "-m", "x" * 501)
        assert result.exit_code == 1
        assert "too long" in result.output

    def test_commit(self, initialized) -> None:
        initialized("add", "notes.txt")

        result = initialized("commit", "-m", "first")

        assert result.exit_code == 0
        assert "Created commit" in result.output
        assert "Initial commit: 1 file(s)" in result.output
        assert len(_commit_ids(initialized)) == 1

    def test_summary_override(self, initialized) -> None:
        initialized("add", "notes.txt")
        result = initialized("commit", "-m", "first", "--summary", "by hand")
        assert "Summary: by hand" in result.output

    def test_partial_commit_exit_code(self, initialized, monkeypatch: pytest.MonkeyPatch) -> None:
        initialized("add", "notes.txt")

        def broken(self, record):
            raise DatabaseError("disk I/O error")

        monkeypatch.setattr(MetadataDB, "insert_commit_file", broken)
        result = initialized("commit", "-m", "first")

        assert result.exit_code == 3
        assert "partially persisted" in result.output
        assert "A  notes.txt" in initialized("status", "--short").output


class TestStatusAndLog:
    """Test 'minivcs status' and 'minivcs log'."""

    def test_status_empty(self, initialized) -> None:
        result = initialized("status")

        assert result.exit_code == 0
        assert "no commits yet" in result.output
        assert "No files staged for commit" in result.output

    def test_status_staged(self, initialized) -> None:
        initialized("add", "notes.txt")

        result = initialized("status")

        assert "Changes to be committed" in result.output
        assert "notes.txt" in result.output

    def test_status_after_commit(self, initialized) -> None:
        initialized("add", "notes.txt")
        initialized("commit", "-m", "first")
        (commit_id,) = _commit_ids(initialized)

        result = initialized("status")

        assert f"HEAD: {commit_id}" in result.output
        assert "Nothing to commit" in result.output

    def test_status_quick(self, initialized) -> None:
        initialized("add", "notes.txt")

        result = initialized("status", "--quick")

        assert result.exit_code == 0
        assert "=== Quick Status ===" in result.output
        assert "Staged files: 1" in result.output

    def test_log_activity_empty(self, initialized) -> None:
        result = initialized("log", "--activity")
        assert result.exit_code == 0
        assert "No commits in repository" in result.output

    def test_log_activity(self, initialized) -> None:
        initialized("add", "notes.txt")
        initialized("commit", "-m", "first")

        result = initialized("log", "--activity")

        assert result.exit_code == 0
        assert "=== Recent Activity Summary ===" in result.output
        assert "Total commits: 1" in result.output

    def test_log_empty(self, initialized) -> None:
        result = initialized("log")
        assert result.exit_code == 0
        assert "No commits yet" in result.output

    def test_log_formats(self, initialized) -> None:
        initialized("add", "notes.txt")
        initialized("commit", "-m", "first")
        initialized("add", "todo.txt")
        initialized("commit", "-m", "second")
        second, first = _commit_ids(initialized)

        default = initialized("log")
        oneline = initialized("log", "--oneline")
        limited = initialized("log", "-n", "1", "--format", "json")

        assert default.output.index(f"commit {second}") < default.output.index(f"commit {first}")
        assert f"{first} first" in oneline.output
        assert [c["message"] for c in json.loads(limited.stdout)] == ["second"]


class TestShowAndDiff:
    """Test 'minivcs show' and 'minivcs diff'."""

    @pytest.fixture
    def two_commits(self, initialized, repo_dir: Path):
        initialized("add", "notes.txt")
        initialized("commit", "-m", "first")
        (repo_dir / "notes.txt").write_text("alpha\ngamma\ndelta\n")
        initialized("add", "notes.txt", "todo.txt")
        initialized("commit", "-m", "second")
        second, first = _commit_ids(initialized)
        return initialized, first, second

    def test_show(self, two_commits) -> None:
        cli, first, second = two_commits

        result = cli("show", second)

        assert result.exit_code == 0
        assert "=== Commit Summary ===" in result.output
        assert f"ID: {second}" in result.output
        assert "Message: second" in result.output

    def test_show_unknown(self, initialized) -> None:
        result = initialized("show", "cafebabe")
        assert result.exit_code == 1
        assert "Commit not found: cafebabe" in result.output

    def test_diff_text(self, two_commits) -> None:
        cli, first, second = two_commits

        result = cli("diff", first, second, "--detailed")

        assert result.exit_code == 0
        assert "todo.txt" in result.output
        assert "beta" in result.output
        assert "delta" in result.output

    def test_diff_json(self, two_commits) -> None:
        cli, first, second = two_commits

        result = cli("diff", first, second, "--format", "json")
        data = json.loads(result.stdout)

        assert data["added"] == ["todo.txt"]
        assert data["removed"] == []
        assert data["common"] == ["notes.txt"]

    def test_diff_summary(self, two_commits) -> None:
        cli, first, second = two_commits

        result = cli("diff", first, second, "--summary")

        assert result.exit_code == 0
        assert "Added" in result.output
        assert "Common" in result.output

    def test_diff_unknown(self, initialized) -> None:
        result = initialized("diff", "unknown1", "unknown2")
        assert result.exit_code == 1
        assert "unknown1" in result.output
