"""Staging area management for minivcs.

The staging area tracks which files go into the next commit. The staged list
lives in ``data/index/staged_files.txt`` (one path per line, insertion order)
and each staged file is copied byte for byte into ``data/index/``, so a commit
records the content as it was when staged.
"""

import fnmatch
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from minivcs.constants import DATA_DIR, DEFAULT_EXCLUDE_PATTERNS
from minivcs.core.models import AddAllResult, StagedFile, StageResult
from minivcs.exceptions import NotFoundError, ValidationError, VCSError, VCSIOError
from minivcs.storage.file_store import FileStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]
CancelCheck = Callable[[], bool]


class StagingArea:
    """Manager for the staging area (index).

    Files may be staged from inside the repository root or from its immediate
    parent directory. Inside the root a staged path is recorded relative to
    the root (POSIX separators); from the parent it is recorded as an
    absolute path.

    Attributes:
        root: Repository root
        file_store: Filesystem store holding the index
        exclude_patterns: Default add-all exclusions
    """

    def __init__(
        self,
        root: Path,
        file_store: FileStore,
        exclude_patterns: Optional[Iterable[str]] = None,
    ):
        """Initialize StagingArea.

        Args:
            root: Repository root directory
            file_store: Filesystem store for the index copies
            exclude_patterns: Default add-all exclusions (built-in defaults if None)
        """
        self.root = Path(root).resolve()
        self.file_store = file_store
        self.exclude_patterns = list(
            exclude_patterns if exclude_patterns is not None else DEFAULT_EXCLUDE_PATTERNS
        )
        self.data_dir = self.root / DATA_DIR

    def stage(self, path: Union[str, Path]) -> StageResult:
        """Stage a single file.

        Re-staging a path refreshes its index copy and leaves the staged list
        unchanged.

        Args:
            path: File to stage (relative paths resolve against the root)

        Returns:
            StageResult describing the staged entry

        Raises:
            NotFoundError: If the file does not exist
            ValidationError: If it is not a regular file or lies outside the boundary
            VCSIOError: If it cannot be read or copied
        """
        staged = self.file_store.read_staged()
        result = self._stage_into(path, staged)
        if not result.already_staged:
            staged.append(result.path)
            self.file_store.write_staged(staged)
        logger.debug("Staged %s (%d bytes)", result.path, result.size)
        return result

    def stage_all(
        self,
        root_directory: Union[str, Path, None] = None,
        exclude_patterns: Optional[Iterable[str]] = None,
        is_cancelled: Optional[CancelCheck] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> AddAllResult:
        """Stage every not-yet-staged file under a directory.

        Args:
            root_directory: Directory to scan (defaults to the repository root)
            exclude_patterns: Extra patterns, added to the defaults; a file is
                skipped when any of its path components matches one
            is_cancelled: Checked between files; stops the scan when True
            progress: Called as ``progress(done, total, path)`` after each file

        Returns:
            AddAllResult with counts and the added/skipped file lists

        Raises:
            NotFoundError: If the directory does not exist
            ValidationError: If it is not a directory
        """
        directory = self._resolve(root_directory if root_directory is not None else self.root)
        if not directory.exists():
            raise NotFoundError(f"Directory not found: {root_directory}")
        if not directory.is_dir():
            raise ValidationError(f"Not a directory: {root_directory}")

        patterns = self.exclude_patterns + [p for p in (exclude_patterns or []) if p]
        files = self._collect_files(directory, patterns)

        result = AddAllResult()
        result.processed = len(files)

        staged = self.file_store.read_staged()
        already = {self._canonical(p).lower() for p in staged}

        try:
            for done, file_path in enumerate(files, start=1):
                if is_cancelled is not None and is_cancelled():
                    result.cancelled = True
                    logger.info("Add-all cancelled after %d of %d file(s)", done - 1, len(files))
                    break

                display = self._display(file_path)
                if str(file_path).lower() in already:
                    result.skipped_files.append(display)
                else:
                    try:
                        staged_result = self._stage_into(file_path, staged)
                    except VCSError as e:
                        logger.info("Skipping %s: %s", display, e)
                        result.skipped_files.append(display)
                    else:
                        if staged_result.already_staged:
                            result.skipped_files.append(staged_result.path)
                        else:
                            staged.append(staged_result.path)
                            already.add(str(file_path).lower())
                            result.added_files.append(staged_result.path)

                if progress is not None:
                    progress(done, len(files), display)
        finally:
            if result.added_files:
                self.file_store.write_staged(staged)

        return result

    def clear(self) -> None:
        """Empty the staged set and remove the index copies."""
        self.file_store.clear_index()

    def list(self) -> List[str]:
        """Staged paths in insertion order."""
        return self.file_store.read_staged()

    def entries(self) -> List[StagedFile]:
        """Staged files with the size and mtime of their index copies."""
        entries = []
        for path in self.file_store.read_staged():
            copy = self.file_store.index_path(path)
            try:
                stat = copy.stat()
                entries.append(
                    StagedFile(path, stat.st_size, datetime.fromtimestamp(stat.st_mtime).replace(microsecond=0))
                )
            except OSError:
                entries.append(StagedFile(path, 0, None))
        return entries

    def is_empty(self) -> bool:
        return not self.file_store.read_staged()

    def _stage_into(self, path: Union[str, Path], staged: List[str]) -> StageResult:
        abs_path = self._resolve(path)

        if not abs_path.exists():
            raise NotFoundError(f"File not found: {path}")
        if not abs_path.is_file():
            raise ValidationError(f"Not a regular file: {path}")
        if not os.access(abs_path, os.R_OK):
            raise VCSIOError(f"File is not readable: {path}")

        staged_path = self.staged_path_for(abs_path)
        size = self.file_store.copy_to_index(abs_path, staged_path)
        return StageResult(staged_path, abs_path, size, already_staged=staged_path in staged)

    def staged_path_for(self, abs_path: Path) -> str:
        """Staged representation of an absolute path.

        Raises:
            ValidationError: If the path is outside the boundary or inside ``data/``
        """
        if self._is_within(abs_path, self.data_dir):
            raise ValidationError(f"Cannot stage repository data file: {abs_path}")
        if self._is_within(abs_path, self.root):
            return abs_path.relative_to(self.root).as_posix()
        if self._is_within(abs_path, self.root.parent):
            return abs_path.as_posix()
        raise ValidationError(
            f"Path {abs_path} is outside the repository boundary {self.root.parent}"
        )

    def source_path(self, staged_path: str) -> Path:
        """Working-directory location of a staged path."""
        return Path(self._canonical(staged_path))

    def _resolve(self, path: Union[str, Path]) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.root / p
        return p.resolve()

    def _canonical(self, staged_path: str) -> str:
        p = Path(staged_path)
        if p.is_absolute():
            return str(p)
        return str(self.root / p)

    def _display(self, abs_path: Path) -> str:
        if self._is_within(abs_path, self.root):
            return abs_path.relative_to(self.root).as_posix()
        return abs_path.as_posix()

    def _collect_files(self, directory: Path, patterns: List[str]) -> List[Path]:
        """Regular files under ``directory``, sorted, minus excluded components."""
        files: List[Path] = []
        for current, dirnames, filenames in os.walk(directory):
            current_path = Path(current)
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not self._matches(d, patterns)
                and not self._is_within(current_path / d, self.data_dir)
            )
            for name in sorted(filenames):
                if self._matches(name, patterns):
                    continue
                candidate = current_path / name
                if candidate.is_file():
                    files.append(candidate)
        return files

    @staticmethod
    def _matches(component: str, patterns: List[str]) -> bool:
        return any(fnmatch.fnmatch(component, pattern) for pattern in patterns)

    @staticmethod
    def _is_within(path: Path, directory: Path) -> bool:
        try:
            path.relative_to(directory)
            return True
        except ValueError:
            return False
