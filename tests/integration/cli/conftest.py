"""Fixtures for CLI integration tests."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest


@pytest.fixture
def run_cli(tmp_path: Path, isolated_home: Path):
    """Run ``minivcs`` in a subprocess with a private home and database.

    Returns:
        Callable taking the command arguments and an optional ``cwd``
    """
    config_file = tmp_path / "cli-config.json"
    config_file.write_text(json.dumps({"database": {"path": str(tmp_path / "cli-meta" / "metadata.db")}}))
    env = dict(os.environ, HOME=str(isolated_home), USERPROFILE=str(isolated_home), COLUMNS="200",
               PYTHONIOENCODING="utf-8")

    def run(*args: str, cwd: Path = tmp_path) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, "-m", "minivcs.cli.main", "--config", str(config_file), *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            env=env,
        )

    return run


@pytest.fixture
def initialized_repo(tmp_path: Path, run_cli) -> Path:
    """Create a workspace with an initialized minivcs repository.

    Returns:
        Path: Path to the workspace root
    """
    workspace = tmp_path / "test_workspace"
    workspace.mkdir()

    result = run_cli("init", "--quiet", cwd=workspace)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to initialize repo: {result.stdout}\n{result.stderr}")

    return workspace
