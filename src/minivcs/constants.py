"""Constants used throughout minivcs."""

# Version
VERSION = "0.1.0"

# Directory names (relative to the repository root)
DATA_DIR = "data"
INDEX_DIR = "data/index"
COMMITS_DIR = "data/commits"
SNAPSHOT_DIR = "snapshot"
PARENT_MIRROR_DIR = "__parent__"
RESERVED_ESCAPE_DIR = "__reserved__"

# File names
STAGED_FILES = "data/index/staged_files.txt"
HEAD_FILE = "data/index/head.txt"
COMMITS_LOG = "data/commits.log"
METADATA_FILE = "metadata.txt"
INTENT_FILE = "INTENT"
COMMIT_DIR_PREFIX = "commit_"

# Journal markers
JOURNAL_HEADER = "=== COMMIT {commit_id} ==="
JOURNAL_FOOTER = "=== END COMMIT ==="

# Timestamps are stored with second precision in local time
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Commit constraints
MAX_MESSAGE_LENGTH = 500
COMMIT_ID_LENGTH = 8

# Default add-all exclusions (matched against each path component)
DEFAULT_EXCLUDE_PATTERNS = [
    "data",
    ".git",
    ".svn",
    "target",
    "build",
    ".idea",
    ".vscode",
]

# File-type buckets used by commit summaries
CODE_EXTENSIONS = ("java", "py", "cpp", "js")
DOC_EXTENSIONS = ("md", "txt", "pdf", "doc")
CONFIG_EXTENSIONS = ("xml", "json", "yml", "properties")

# Staged / commit file statuses
STATUS_STAGED = "staged"
STATUS_ADDED = "added"
STATUS_MODIFIED = "modified"
STATUS_REMOVED = "removed"

# Activity log operations
OP_INIT = "INIT"
OP_ADD_FILE = "ADD_FILE"
OP_BULK_ADD = "BULK_ADD_FILES"
OP_COMMIT = "COMMIT"

# User-level configuration
CONFIG_DIR = ".minivcs"
CONFIG_FILE = "config.json"
DATABASE_FILE = "metadata.db"
CONFIG_ENV_VAR = "MINIVCS_CONFIG"

# Exit codes
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1
EXIT_SYSTEM_ERROR = 2
EXIT_DATA_ERROR = 3
EXIT_INTERRUPTED = 130

# Database schema version
DB_SCHEMA_VERSION = 1
