"""Application-wide constants."""

APP_NAME = "chatrelay"

# Log file naming.
LOG_FILE_EXTENSION = ".log"
DATETIME_FORMAT_FILENAME = "%Y-%m-%d_%H-%M-%S"

# Persisted document format.
STORE_FORMAT_VERSION = 1
JSON_INDENT = 2

# Auto-titling.
DEFAULT_TITLE_MAX_CHARS = 60
DEFAULT_CHAT_TITLE = "New Chat"
