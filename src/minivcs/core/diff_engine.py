"""Commit comparison for minivcs.

File sets are the full snapshot trees of the two commits and are compared
exactly. Line changes inside files common to both commits use a set-based
comparison: a line counts as removed when it does not occur anywhere in the
new file, and as added when it does not occur anywhere in the old file.
Reordered or duplicated lines are therefore not reported.
"""

from typing import Any, Dict, List, Tuple

from minivcs.core.models import CommitDiff, FileLineDiff
from minivcs.core.repository import Repository


def line_diff(path: str, old_text: str, new_text: str) -> FileLineDiff:
    """Set-based line comparison of two versions of one file.

    Args:
        path: File path (carried into the result)
        old_text: Content in the first commit
        new_text: Content in the second commit

    Returns:
        FileLineDiff with 1-based line numbers
    """
    old_lines = old_text.splitlines()
    new_lines = new_text.splitlines()
    old_set = set(old_lines)
    new_set = set(new_lines)

    removed: List[Tuple[int, str]] = [
        (number, line) for number, line in enumerate(old_lines, start=1) if line not in new_set
    ]
    added: List[Tuple[int, str]] = [
        (number, line) for number, line in enumerate(new_lines, start=1) if line not in old_set
    ]
    return FileLineDiff(path, removed, added)


def format_diff(result: CommitDiff) -> str:
    """Render a diff as text: counts, file listings, then line changes."""
    lines = [
        f"Comparing {result.commit_a} -> {result.commit_b}",
        f"Files added:     {len(result.added):3d}",
        f"Files removed:   {len(result.removed):3d}",
        f"Files in common: {len(result.common):3d}",
    ]

    for title, marker, paths in (
        ("Added files", "➕", result.added),
        ("Removed files", "➖", result.removed),
        ("Common files", "➜", result.common),
    ):
        if paths:
            lines += ["", f"{title} ({len(paths)}):"]
            lines += [f"  {marker} {path}" for path in paths]

    changed = [d for d in result.file_diffs if d.has_changes]
    if result.file_diffs:
        lines += ["", "Line changes:"]
        if not changed:
            lines.append("  (No differences found)")
        for file_diff in changed:
            lines.append(f"  📝 {file_diff.path}")
            lines += [f"  [{n:3d}] ➖ {text}" for n, text in file_diff.removed_lines]
            lines += [f"  [{n:3d}] ➕ {text}" for n, text in file_diff.added_lines]
            lines.append(
                f"  Changes: +{len(file_diff.added_lines)} -{len(file_diff.removed_lines)}"
            )

    if result.is_empty:
        lines += ["", "No changes"]

    return "\n".join(lines) + "\n"


def summarize_diff(result: CommitDiff) -> Dict[str, Any]:
    """Summary statistics for a diff.

    Returns:
        Dictionary with file counts and total line changes
    """
    return {
        "added": len(result.added),
        "removed": len(result.removed),
        "common": len(result.common),
        "files_with_line_changes": sum(1 for d in result.file_diffs if d.has_changes),
        "lines_added": sum(len(d.added_lines) for d in result.file_diffs),
        "lines_removed": sum(len(d.removed_lines) for d in result.file_diffs),
    }


class DiffEngine:
    """Computes differences between two commits of a repository.

    Attributes:
        repository: Repository whose commits are compared
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    def diff(self, commit_a: str, commit_b: str, detailed: bool = False) -> CommitDiff:
        """Compare two commits.

        Args:
            commit_a: Id of the older (base) commit
            commit_b: Id of the newer commit
            detailed: Also compare the lines of files present in both

        Returns:
            CommitDiff with sorted added/removed/common lists

        Raises:
            NotFoundError: Naming the first unknown id, in argument order
        """
        first = self.repository.get_commit(commit_a)
        second = self.repository.get_commit(commit_b)

        files_a = set(self.repository.tree(first))
        files_b = set(self.repository.tree(second))

        if first.commit_id == second.commit_id:
            return CommitDiff(first.commit_id, second.commit_id, [], [], sorted(files_a))

        added = sorted(files_b - files_a)
        removed = sorted(files_a - files_b)
        common = sorted(files_a & files_b)

        file_diffs: List[FileLineDiff] = []
        if detailed:
            store = self.repository.file_store
            for path in common:
                file_diffs.append(
                    line_diff(
                        path,
                        store.read_snapshot_text(first.commit_id, path),
                        store.read_snapshot_text(second.commit_id, path),
                    )
                )

        return CommitDiff(first.commit_id, second.commit_id, added, removed, common, file_diffs)

    def format_diff(self, result: CommitDiff) -> str:
        return format_diff(result)

    def summarize_diff(self, result: CommitDiff) -> Dict[str, Any]:
        return summarize_diff(result)
