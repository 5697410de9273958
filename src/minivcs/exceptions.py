"""Exception hierarchy for minivcs.

Every failure that crosses a public operation boundary is a ``VCSError``
subclass, so callers (the task orchestrator, the CLI) can tell expected
failures apart from programming errors.
"""

from typing import Optional


class VCSError(Exception):
    """Base class for all minivcs errors."""


class ValidationError(VCSError):
    """Bad or empty input, message too long, or path outside the boundary."""


class NotFoundError(VCSError):
    """Missing file, unknown commit id, or missing repository registration."""


class VCSIOError(VCSError):
    """Copy, read or write failure on the filesystem store."""


class EmptyCommitError(VCSError):
    """Raised when committing with nothing staged."""


class StoreUnavailableError(VCSError):
    """The relational store cannot be reached."""


class DatabaseError(VCSError):
    """A relational query or write failed."""


class TransactionError(DatabaseError):
    """A multi-step relational write failed and was rolled back."""


class PartialCommitError(VCSError):
    """The filesystem snapshot was written but the metadata was not recorded."""

    def __init__(self, commit_id: str, cause: Optional[BaseException] = None):
        self.commit_id = commit_id
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Commit {commit_id} partially persisted: filesystem snapshot exists, "
            f"metadata not recorded{detail}"
        )
