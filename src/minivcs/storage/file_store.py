"""Filesystem content store for minivcs.

Layout under the repository root::

    data/index/staged_files.txt        staged paths, one per line
    data/index/<mirrored tree>         byte copies of staged files
    data/index/head.txt                current HEAD commit id
    data/commits/commit_<id>/snapshot/ byte copies of the commit's files
    data/commits/commit_<id>/metadata.txt
    data/commits/commit_<id>/INTENT    only while the commit is in flight
    data/commits.log                   append-only commit journal

Single-line files are replaced atomically (temp file + rename). The journal
is only ever appended to.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from minivcs.constants import (
    COMMIT_DIR_PREFIX,
    COMMITS_DIR,
    COMMITS_LOG,
    HEAD_FILE,
    INDEX_DIR,
    INTENT_FILE,
    JOURNAL_FOOTER,
    JOURNAL_HEADER,
    METADATA_FILE,
    PARENT_MIRROR_DIR,
    RESERVED_ESCAPE_DIR,
    SNAPSHOT_DIR,
    STAGED_FILES,
    TIMESTAMP_FORMAT,
)
from minivcs.core.models import Commit
from minivcs.exceptions import VCSIOError

logger = logging.getLogger(__name__)

_JOURNAL_PREFIX = JOURNAL_HEADER.split("{")[0]

# Index entries whose names would shadow the index bookkeeping files or the
# mirror directories; their copies live under RESERVED_ESCAPE_DIR.
_RESERVED_ROOT_NAMES = frozenset(
    {PurePosixPath(STAGED_FILES).name, PurePosixPath(HEAD_FILE).name}
)
_RESERVED_DIRS = frozenset({PARENT_MIRROR_DIR, RESERVED_ESCAPE_DIR})


def escape_value(value: str) -> str:
    """Escape backslashes and line breaks so a value fits on one line."""
    return value.replace("\\", "\\\\").replace("\r", "\\r").replace("\n", "\\n")


def unescape_value(value: str) -> str:
    """Reverse :func:`escape_value` (and the ``\\,`` escape of file lists)."""
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            nxt = value[i + 1]
            out.append({"n": "\n", "r": "\r"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def join_paths(paths: List[str], separator: str) -> str:
    """Join paths into one escaped field; commas inside a path are escaped."""
    return separator.join(escape_value(p).replace(",", "\\,") for p in paths)


def split_paths(field: str) -> List[str]:
    """Split a field written by :func:`join_paths` (either separator)."""
    if not field.strip():
        return []
    parts = []
    current = []
    i = 0
    while i < len(field):
        ch = field[i]
        if ch == "\\" and i + 1 < len(field):
            current.append(field[i : i + 2])
            i += 2
            continue
        if ch == ",":
            parts.append("".join(current))
            current = []
            i += 1
            if i < len(field) and field[i] == " ":
                i += 1
            continue
        current.append(ch)
        i += 1
    parts.append("".join(current))
    return [unescape_value(p) for p in parts if p]


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` via a temp file and rename.

    Raises:
        VCSIOError: If the write fails
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".txt")
    except OSError as e:
        raise VCSIOError(f"Failed to write {path}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise VCSIOError(f"Failed to write {path}: {e}") from e


class FileStore:
    """Filesystem side of repository persistence.

    Attributes:
        root: Repository working directory
        index_dir: ``data/index``
        commits_dir: ``data/commits``
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.index_dir = self.root / INDEX_DIR
        self.commits_dir = self.root / COMMITS_DIR
        self.staged_list_path = self.root / STAGED_FILES
        self.head_path = self.root / HEAD_FILE
        self.journal_path = self.root / COMMITS_LOG

    def initialize(self) -> None:
        """Create the directory layout. Existing content is left untouched.

        Raises:
            VCSIOError: If directories or files cannot be created
        """
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            self.commits_dir.mkdir(parents=True, exist_ok=True)
            if not self.staged_list_path.exists():
                self.staged_list_path.touch()
            if not self.journal_path.exists():
                self.journal_path.touch()
        except OSError as e:
            raise VCSIOError(f"Failed to initialize repository layout in {self.root}: {e}") from e

    def is_initialized(self) -> bool:
        return self.index_dir.is_dir() and self.commits_dir.is_dir()

    # Staged list and index copies

    def index_key(self, staged_path: str) -> PurePosixPath:
        """Relative location of a staged path inside the index or a snapshot.

        Paths inside the root keep their relative layout; absolute paths from
        the parent boundary are mirrored under ``__parent__/``. Root-level
        ``staged_files.txt`` and ``head.txt``, and paths starting with either
        mirror directory, are moved under ``__reserved__/``.
        """
        posix = PurePosixPath(staged_path)
        if not posix.is_absolute() and not Path(staged_path).is_absolute():
            parts = posix.parts
            if parts[0] in _RESERVED_DIRS or (len(parts) == 1 and parts[0] in _RESERVED_ROOT_NAMES):
                return PurePosixPath(RESERVED_ESCAPE_DIR) / posix
            return posix
        rel = Path(staged_path).relative_to(self.root.parent)
        return PurePosixPath(PARENT_MIRROR_DIR) / PurePosixPath(rel.as_posix())

    def index_path(self, staged_path: str) -> Path:
        return self.index_dir / self.index_key(staged_path)

    def copy_to_index(self, source: Path, staged_path: str) -> int:
        """Copy a working file into the index.

        Returns:
            Size in bytes of the copy

        Raises:
            VCSIOError: If the copy fails
        """
        target = self.index_path(staged_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            return target.stat().st_size
        except OSError as e:
            raise VCSIOError(f"Failed to copy {source} into the index: {e}") from e

    def read_staged(self) -> List[str]:
        if not self.staged_list_path.exists():
            return []
        try:
            text = self.staged_list_path.read_text(encoding="utf-8")
        except OSError as e:
            raise VCSIOError(f"Failed to read {self.staged_list_path}: {e}") from e
        return [unescape_value(line) for line in text.splitlines() if line.strip()]

    def write_staged(self, paths: List[str]) -> None:
        text = "".join(escape_value(p) + "\n" for p in paths)
        atomic_write_text(self.staged_list_path, text)

    def clear_index(self) -> None:
        """Empty the staged list and remove every index copy (HEAD is kept)."""
        keep = {self.staged_list_path.name, self.head_path.name}
        try:
            for entry in self.index_dir.iterdir():
                if entry.name in keep:
                    continue
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        except OSError as e:
            raise VCSIOError(f"Failed to clear index {self.index_dir}: {e}") from e
        self.write_staged([])

    # HEAD

    def read_head(self) -> Optional[str]:
        if not self.head_path.exists():
            return None
        try:
            value = self.head_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise VCSIOError(f"Failed to read {self.head_path}: {e}") from e
        return value or None

    def write_head(self, commit_id: str) -> None:
        atomic_write_text(self.head_path, commit_id + "\n")

    # Commit directories

    def commit_dir(self, commit_id: str) -> Path:
        return self.commits_dir / f"{COMMIT_DIR_PREFIX}{commit_id}"

    def commit_dir_exists(self, commit_id: str) -> bool:
        return self.commit_dir(commit_id).exists()

    def write_intent(self, commit_id: str, message: str) -> None:
        """Mark a commit as in flight before anything else is written."""
        path = self.commit_dir(commit_id) / INTENT_FILE
        atomic_write_text(path, f"COMMIT_ID={commit_id}\nMESSAGE={escape_value(message)}\n")

    def remove_intent(self, commit_id: str) -> None:
        path = self.commit_dir(commit_id) / INTENT_FILE
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise VCSIOError(f"Failed to remove intent marker {path}: {e}") from e

    def pending_intents(self) -> List[str]:
        """Commit ids whose directory still carries an intent marker."""
        if not self.commits_dir.is_dir():
            return []
        ids = []
        for entry in sorted(self.commits_dir.iterdir()):
            if entry.is_dir() and entry.name.startswith(COMMIT_DIR_PREFIX):
                if (entry / INTENT_FILE).exists():
                    ids.append(entry.name[len(COMMIT_DIR_PREFIX) :])
        return ids

    def remove_commit_dir(self, commit_id: str) -> None:
        path = self.commit_dir(commit_id)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise VCSIOError(f"Failed to remove {path}: {e}") from e

    def write_snapshot(
        self,
        commit_id: str,
        staged_paths: List[str],
        carried_paths: Optional[List[str]] = None,
        previous_commit_id: Optional[str] = None,
    ) -> Dict[str, int]:
        """Fill the commit snapshot.

        Staged paths are copied from the index; ``carried_paths`` are copied
        unchanged from the snapshot of ``previous_commit_id``.

        Returns:
            Mapping of path to snapshot size in bytes

        Raises:
            VCSIOError: If any copy fails
        """
        snapshot = self.commit_dir(commit_id) / SNAPSHOT_DIR
        sources = [(p, self.index_dir) for p in staged_paths]
        if carried_paths and previous_commit_id:
            previous_snapshot = self.commit_dir(previous_commit_id) / SNAPSHOT_DIR
            sources += [(p, previous_snapshot) for p in carried_paths]

        sizes: Dict[str, int] = {}
        for path, base in sources:
            key = self.index_key(path)
            target = snapshot / key
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(base / key, target)
                sizes[path] = target.stat().st_size
            except OSError as e:
                raise VCSIOError(f"Failed to snapshot {path} for commit {commit_id}: {e}") from e
        return sizes

    def snapshot_files(self, commit_id: str) -> Optional[List[str]]:
        """Paths captured by a commit snapshot, sorted; None without a snapshot."""
        snapshot = self.commit_dir(commit_id) / SNAPSHOT_DIR
        if not snapshot.is_dir():
            return None
        paths = []
        for current, _dirs, filenames in os.walk(snapshot):
            for name in filenames:
                rel = (Path(current) / name).relative_to(snapshot)
                if rel.parts[0] == PARENT_MIRROR_DIR:
                    paths.append(self.root.parent.joinpath(*rel.parts[1:]).as_posix())
                elif rel.parts[0] == RESERVED_ESCAPE_DIR:
                    paths.append(PurePosixPath(*rel.parts[1:]).as_posix())
                else:
                    paths.append(rel.as_posix())
        return sorted(paths)

    def snapshot_path(self, commit_id: str, staged_path: str) -> Path:
        return self.commit_dir(commit_id) / SNAPSHOT_DIR / self.index_key(staged_path)

    def read_snapshot_text(self, commit_id: str, staged_path: str) -> str:
        """Text of a file as committed; a missing copy reads as empty."""
        path = self.snapshot_path(commit_id, staged_path)
        try:
            return path.read_bytes().decode("utf-8", errors="replace")
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise VCSIOError(f"Failed to read {path}: {e}") from e

    # Metadata and journal

    def write_metadata(self, commit: Commit) -> None:
        lines = [
            f"COMMIT_ID={commit.commit_id}",
            f"MESSAGE={escape_value(commit.message)}",
            f"TIMESTAMP={commit.formatted_timestamp}",
            f"SUMMARY={escape_value(commit.summary)}",
            f"FILE_COUNT={commit.file_count}",
            f"FILES={join_paths(list(commit.changed_files), ',')}",
        ]
        atomic_write_text(self.commit_dir(commit.commit_id) / METADATA_FILE, "\n".join(lines) + "\n")

    def read_metadata(self, commit_id: str) -> Optional[Commit]:
        """Rebuild a commit from its ``metadata.txt``, or None when absent."""
        path = self.commit_dir(commit_id) / METADATA_FILE
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise VCSIOError(f"Failed to read {path}: {e}") from e

        values: Dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key.strip()] = value

        try:
            return Commit(
                commit_id=values.get("COMMIT_ID", commit_id),
                message=unescape_value(values.get("MESSAGE", "")),
                timestamp=datetime.strptime(values["TIMESTAMP"], TIMESTAMP_FORMAT),
                changed_files=split_paths(values.get("FILES", "")),
                summary=unescape_value(values.get("SUMMARY", "")),
            )
        except (KeyError, ValueError) as e:
            logger.warning("Ignoring unreadable metadata %s: %s", path, e)
            return None

    def append_journal(self, commit: Commit) -> None:
        block = "\n".join(
            [
                JOURNAL_HEADER.format(commit_id=commit.commit_id),
                f"Message: {escape_value(commit.message)}",
                f"Timestamp: {commit.formatted_timestamp}",
                f"Summary: {escape_value(commit.summary)}",
                f"Files: {join_paths(list(commit.changed_files), ', ')}",
                f"File Count: {commit.file_count}",
                JOURNAL_FOOTER,
                "",
                "",
            ]
        )
        try:
            with open(self.journal_path, "a", encoding="utf-8", newline="\n") as f:
                f.write(block)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise VCSIOError(f"Failed to append to {self.journal_path}: {e}") from e

    def read_journal(self) -> List[Commit]:
        """Every journaled commit, oldest first.

        Malformed blocks are skipped with a warning.
        """
        if not self.journal_path.exists():
            return []
        try:
            text = self.journal_path.read_text(encoding="utf-8")
        except OSError as e:
            raise VCSIOError(f"Failed to read {self.journal_path}: {e}") from e

        commits: List[Commit] = []
        block: Optional[Dict[str, str]] = None
        for line in text.splitlines():
            if line.startswith(_JOURNAL_PREFIX) and line != JOURNAL_FOOTER:
                block = {"id": line[len(_JOURNAL_PREFIX) :].rstrip("= ").strip()}
            elif line == JOURNAL_FOOTER:
                if block is not None:
                    commit = self._commit_from_block(block)
                    if commit is not None:
                        commits.append(commit)
                block = None
            elif block is not None:
                key, sep, value = line.partition(": ")
                if sep:
                    block[key] = value
        return commits

    def _commit_from_block(self, block: Dict[str, str]) -> Optional[Commit]:
        try:
            return Commit(
                commit_id=block["id"],
                message=unescape_value(block.get("Message", "")),
                timestamp=datetime.strptime(block["Timestamp"], TIMESTAMP_FORMAT),
                changed_files=split_paths(block.get("Files", "")),
                summary=unescape_value(block.get("Summary", "")),
            )
        except (KeyError, ValueError) as e:
            logger.warning("Skipping malformed journal block for %s: %s", block.get("id"), e)
            return None
