"""Commit and repository summaries."""

from typing import Dict, Iterable, List, Optional, Sequence

from minivcs.constants import CODE_EXTENSIONS, CONFIG_EXTENSIONS, DOC_EXTENSIONS
from minivcs.core.models import Commit


def count_by_extension(files: Iterable[str], extensions: Sequence[str]) -> int:
    """Number of paths ending in one of ``extensions`` (case-insensitive)."""
    suffixes = tuple("." + ext.lower() for ext in extensions)
    return sum(1 for f in files if f and f.lower().endswith(suffixes))


def breakdown(files: Sequence[str]) -> Dict[str, int]:
    return {
        "code": count_by_extension(files, CODE_EXTENSIONS),
        "docs": count_by_extension(files, DOC_EXTENSIONS),
        "config": count_by_extension(files, CONFIG_EXTENSIONS),
    }


class SummaryGenerator:
    """Builds the one-line commit summary and the longer text reports.

    Attributes:
        file_preview: Changed files listed in a commit report
        staged_preview: Staged files listed in a quick status
    """

    def __init__(self, file_preview: int = 20, staged_preview: int = 10):
        self.file_preview = file_preview
        self.staged_preview = staged_preview

    def summarize(self, files: Sequence[str], previous: Optional[Commit] = None) -> str:
        """One-line summary of a commit with ``files`` following ``previous``."""
        total = len(files)
        if previous is None:
            head = f"Initial commit: {total} file(s)"
        else:
            difference = total - previous.file_count
            if difference > 0:
                head = f"Added {difference} file(s) (total: {total})"
            elif difference < 0:
                head = f"Removed {-difference} file(s) (total: {total})"
            else:
                head = f"Modified {total} file(s)"

        counts = breakdown(files)
        return f"{head} [code: {counts['code']}, docs: {counts['docs']}, config: {counts['config']}]"

    def commit_report(self, commit: Commit, previous: Optional[Commit] = None) -> str:
        """Multi-line report of a single commit."""
        lines = [
            "=== Commit Summary ===",
            f"ID: {commit.commit_id}",
            f"Message: {commit.message}",
            f"Time: {commit.formatted_timestamp}",
            "",
        ]

        total = commit.file_count
        if previous is None:
            lines.append("Type: Initial commit")
            lines.append(f"Files added: {total}")
        else:
            difference = total - previous.file_count
            if difference > 0:
                lines.append(f"Files added: {difference} (total: {total})")
            elif difference < 0:
                lines.append(f"Files removed: {-difference} (total: {total})")
            else:
                lines.append(f"Files modified (no count change): {total}")

        counts = breakdown(commit.changed_files)
        lines += [
            "",
            "Breakdown:",
            f" - Code files: {counts['code']}",
            f" - Docs: {counts['docs']}",
            f" - Config: {counts['config']}",
            "",
            f"Changed files ({total}):",
        ]
        lines += _preview(list(commit.changed_files), self.file_preview)
        return "\n".join(lines) + "\n"

    def quick_status(
        self,
        commits: Sequence[Commit],
        staged: Sequence[str],
    ) -> str:
        """Short status: counts, a staged-file preview and the last commit."""
        lines = [
            "=== Quick Status ===",
            f"Commits: {len(commits)}",
            f"Staged files: {len(staged)}",
        ]
        if staged:
            lines += ["", "Staged files preview:"]
            lines += _preview(list(staged), self.staged_preview)
        if commits:
            last = commits[-1]
            lines += ["", f"Last commit: {last.commit_id} - {last.message}"]
        return "\n".join(lines) + "\n"

    def recent_activity(self, commits: Sequence[Commit], limit: int = 10) -> str:
        """Newest-first listing of up to ``limit`` commits."""
        if not commits:
            return "No commits in repository\n"

        lines = ["=== Recent Activity Summary ===", f"Total commits: {len(commits)}", ""]
        for shown, commit in enumerate(list(reversed(commits))[: max(limit, 0)], start=1):
            lines.append(f"{shown}) {commit.commit_id} - {commit.message}")
            lines.append(f"   Date: {commit.formatted_timestamp}")
            if commit.summary:
                lines.append(f"   Summary: {commit.summary}")
            lines.append("---")
        return "\n".join(lines) + "\n"


def _preview(items: List[str], limit: int) -> List[str]:
    lines = [f" - {item}" for item in items[:limit]]
    if len(items) > limit:
        lines.append(f" - ... and {len(items) - limit} more")
    return lines
