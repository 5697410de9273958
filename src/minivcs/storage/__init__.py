"""Storage layer for minivcs.

This package provides the filesystem content store, the SQLite metadata
database and the reconciler that keeps the two in step.
"""

from minivcs.storage.file_store import FileStore
from minivcs.storage.metadata_db import MetadataDB
from minivcs.storage.reconciler import StoreReconciler

__all__ = [
    "FileStore",
    "MetadataDB",
    "StoreReconciler",
]
