STORAGE_DIR_NAME = ".cortex"
TASKS_DIR_NAME = "tasks"
CONFIG_FILE = "config.yaml"
TASK_FILE = "task.json"
ARTIFACT_SUFFIX = ".md"

# On-disk schema version for the folder-per-task layout
CURRENT_STORAGE_VERSION = "8.0.0"

SEQUENCE_WIDTH = 3
SLUG_MAX_LENGTH = 50
SLUG_FALLBACK = "task"
TASK_FOLDER_PATTERN = r"^\d{3}-.+"

DEFAULT_CACHE_TTL_SECONDS = 5 * 60
DEFAULT_CACHE_MAX_SIZE = 1000
DEFAULT_FOLDER_CACHE_TTL_SECONDS = 1.0

TASK_DETAILS_MIN_LENGTH = 1
TASK_DETAILS_MAX_LENGTH = 2000
TAG_MIN_LENGTH = 1
TAG_MAX_LENGTH = 50
MAX_TAGS = 20
MAX_ACTUAL_HOURS = 10_000
TASK_ID_MAX_LENGTH = 100

ARTIFACT_CONTENT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
ARTIFACT_ERROR_MAX_LENGTH = 5000
MAX_RETRIES = 100

FRONTMATTER_MARKER = "---"
