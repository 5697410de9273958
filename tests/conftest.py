"""Pytest configuration and shared fixtures."""

import logging
from pathlib import Path

import pytest

from minivcs.config import DatabaseConfig, VCSConfig
from minivcs.core.vcs import VCS
from minivcs.logging_config import LOGGER_NAME


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep ~/.minivcs (config and default database) inside the test dir."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("MINIVCS_CONFIG", raising=False)
    yield home

    # The CLI attaches a rich handler and stops propagation; undo it so
    # caplog sees records in later tests.
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "meta" / "metadata.db"


@pytest.fixture
def db_config(db_path: Path) -> VCSConfig:
    """Configuration with the metadata database inside the test dir."""
    return VCSConfig(database=DatabaseConfig(path=db_path))


@pytest.fixture
def fs_only_config() -> VCSConfig:
    """Configuration with the metadata database disabled."""
    return VCSConfig(database=DatabaseConfig(enabled=False))


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Create a working directory with a couple of text files."""
    project = tmp_path / "project"
    project.mkdir()
    (project / "notes.txt").write_text("alpha\nbeta\ngamma\n")
    (project / "todo.txt").write_text("write tests\n")
    return project


@pytest.fixture
def vcs(db_config: VCSConfig) -> VCS:
    """VCS facade backed by a temporary metadata database."""
    facade = VCS(db_config)
    yield facade
    facade.close()


@pytest.fixture
def repo_vcs(vcs: VCS, repo_dir: Path) -> VCS:
    """VCS facade with a repository initialized at ``repo_dir``."""
    vcs.init(repo_dir)
    return vcs
