"""Commit creation for minivcs.

A commit freezes the staged index copies into an immutable snapshot under
``data/commits/commit_<id>/`` and records its metadata in both stores.

The snapshot holds the full tree: files of the previous commit are carried
forward unless they were re-staged (the staged copy wins) or deleted from the
working directory (they drop out and are recorded as removed). The commit's
``changed_files`` stay the staged paths only.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from minivcs.constants import COMMIT_ID_LENGTH, MAX_MESSAGE_LENGTH
from minivcs.core.models import Commit
from minivcs.core.repository import Repository
from minivcs.core.staging import StagingArea
from minivcs.core.summary import SummaryGenerator
from minivcs.exceptions import (
    EmptyCommitError,
    PartialCommitError,
    TransactionError,
    ValidationError,
    VCSIOError,
)
from minivcs.storage.reconciler import StoreReconciler

logger = logging.getLogger(__name__)


class CommitEngine:
    """Builds and persists commits.

    Persistence order:
        1. ``INTENT`` marker in the new commit directory
        2. snapshot copies of every staged file
        3. ``metadata.txt``
        4. relational transaction, with the journal entry appended as its
           last step (journal only when the repository has no database
           identity)
        5. HEAD, staging cleared, ``INTENT`` removed

    A failure in steps 1-3, or a failed journal append, removes the commit
    directory and rolls the rows back. A database failure in step 4 leaves
    the snapshot and the marker in place and raises ``PartialCommitError``;
    the next open of the repository cleans it up.
    HEAD and the staged set change only in step 5.

    Attributes:
        repository: Repository state manager
        staging: Staging area of the repository
        reconciler: Relational side of persistence
    """

    def __init__(
        self,
        repository: Repository,
        staging: StagingArea,
        reconciler: StoreReconciler,
        summary_generator: Optional[SummaryGenerator] = None,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        author: Optional[str] = None,
    ):
        self.repository = repository
        self.staging = staging
        self.reconciler = reconciler
        self.summary_generator = summary_generator or SummaryGenerator()
        self.max_message_length = max_message_length
        self.author = author

    def validate_message(self, message: Optional[str]) -> str:
        """Trimmed message.

        Raises:
            ValidationError: If the message is empty or too long
        """
        trimmed = (message or "").strip()
        if not trimmed:
            raise ValidationError("Commit message cannot be empty")
        if len(trimmed) > self.max_message_length:
            raise ValidationError(
                f"Commit message too long: {len(trimmed)} characters "
                f"(maximum {self.max_message_length})"
            )
        return trimmed

    def new_commit_id(self) -> str:
        """Random identifier not used by any known commit or commit directory."""
        while True:
            commit_id = uuid.uuid4().hex[:COMMIT_ID_LENGTH]
            if not self.repository.is_id_taken(commit_id):
                return commit_id

    def commit(self, message: str, summary: Optional[str] = None) -> Commit:
        """Create a commit from the staged files.

        Args:
            message: Commit message (trimmed, 1-500 characters)
            summary: Summary override; derived from the file changes if None

        Returns:
            The new commit

        Raises:
            ValidationError: If the message is invalid
            EmptyCommitError: If nothing is staged
            VCSIOError: If the snapshot cannot be written
            PartialCommitError: If the snapshot was written but the metadata
                transaction failed
        """
        message = self.validate_message(message)

        staged = self.staging.list()
        if not staged:
            raise EmptyCommitError(f"Nothing to commit: no files staged in {self.repository.root}")

        previous = self.repository.previous_commit()
        previous_tree = list(self.repository.tree(previous)) if previous else []
        staged_set = set(staged)
        carried = [
            path
            for path in previous_tree
            if path not in staged_set and self.staging.source_path(path).exists()
        ]
        kept = staged_set.union(carried)
        tree = [path for path in previous_tree if path in kept]
        tree += [path for path in staged if path not in set(previous_tree)]

        if summary is None or not summary.strip():
            summary = self.summary_generator.summarize(staged, previous)

        commit = Commit(
            commit_id=self.new_commit_id(),
            message=message,
            timestamp=datetime.now(),
            changed_files=staged,
            summary=summary.strip(),
            tree=tree,
        )
        file_store = self.repository.file_store

        try:
            file_store.write_intent(commit.commit_id, message)
            sizes = file_store.write_snapshot(
                commit.commit_id,
                staged,
                carried_paths=carried,
                previous_commit_id=previous.commit_id if previous else None,
            )
            file_store.write_metadata(commit)
        except VCSIOError:
            self._discard(commit.commit_id)
            raise
        logger.debug(
            "Wrote snapshot of %d file(s) (%d carried forward) for commit %s",
            len(tree),
            len(carried),
            commit.commit_id,
        )

        repo_id = self.repository.repo_id
        if repo_id is None and self.reconciler.available:
            repo_id = self.reconciler.resolve_repo_id(self.repository.root)
            self.repository.repo_id = repo_id

        journaled = []

        def append_journal() -> None:
            file_store.append_journal(commit)
            journaled.append(commit.commit_id)

        try:
            if repo_id is None:
                if self.reconciler.available:
                    logger.warning(
                        "Commit %s recorded on the filesystem only", commit.commit_id
                    )
                append_journal()
            else:
                self.reconciler.record_commit(
                    repo_id,
                    commit,
                    sizes,
                    previous_tree,
                    self.author,
                    on_commit=append_journal,
                )
        except VCSIOError:
            self._discard(commit.commit_id)
            raise
        except TransactionError as e:
            if not journaled:
                logger.error("Metadata for commit %s was rolled back: %s", commit.commit_id, e)
                raise PartialCommitError(commit.commit_id, e) from e
            # The journal entry landed before the final database commit failed.
            logger.warning(
                "Commit %s is journaled but its metadata was not recorded: %s",
                commit.commit_id,
                e,
            )

        self.repository.record_commit(commit, journal=False)
        self.staging.clear()
        file_store.remove_intent(commit.commit_id)
        logger.info("Created commit %s (%d file(s))", commit.commit_id, commit.file_count)
        return commit

    def _discard(self, commit_id: str) -> None:
        try:
            self.repository.file_store.remove_commit_dir(commit_id)
        except VCSIOError as e:
            logger.warning("Could not remove incomplete commit %s: %s", commit_id, e)
