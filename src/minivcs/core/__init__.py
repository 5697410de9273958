"""Core engine layer for minivcs.

This package holds the repository state manager, staging area, commit and
diff engines and the ``VCS`` facade. Only the data model is re-exported here;
import the engines from their modules.
"""

from minivcs.core.models import (
    AddAllResult,
    Commit,
    CommitDiff,
    FileLineDiff,
    RepositoryStatus,
    StagedFile,
    StageResult,
)

__all__ = [
    "AddAllResult",
    "Commit",
    "CommitDiff",
    "FileLineDiff",
    "RepositoryStatus",
    "StagedFile",
    "StageResult",
]
