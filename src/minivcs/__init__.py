"""minivcs - a miniature version-control engine.

minivcs stages working-directory files, freezes them into immutable commits
stored both on the filesystem and in a relational metadata index, and answers
"what changed between two commits".
"""

__version__ = "0.1.0"
__author__ = "minivcs Contributors"

__all__ = ["__version__", "__author__"]
