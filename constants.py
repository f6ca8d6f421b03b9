"""Constants for the Hermes log analyst engine to eliminate string literal duplication."""

APP_NAME = "Hermes Log Analyst"
APP_DIR_NAME = "hermes-log-analyst"
APP_VERSION = "0.3.0"

# Server Configuration
DEFAULT_PORT = 8000
DEFAULT_HOST = "127.0.0.1"

# Cache / query bounds
DEFAULT_QUERY_CAP = 10000
DEFAULT_LOCAL_EVENTS_LIMIT = 2000
DEFAULT_CRASH_LIMIT = 250
MAX_CRASH_LIMIT = 5000
DEFAULT_CRASH_IMPORT_LIMIT = 200

# Collector
DEFAULT_COLLECTOR_TIMEOUT_SECONDS = 120.0
COLLECTOR_HARD_MAX_EVENTS = 20000

# Correlation
DEFAULT_CORRELATION_WINDOW_MINUTES = 15
MIN_CORRELATION_WINDOW_MINUTES = 1
MAX_CORRELATION_WINDOW_MINUTES = 180
DEFAULT_RELATED_LIMIT = 200
MAX_RELATED_LIMIT = 2000
FALLBACK_WINDOW_MINUTES = 15
DEFAULT_PRE_CRASH_WINDOW_MINUTES = 15

# Diagnostics logging
DEFAULT_LOG_RETENTION_DAYS = 7
LOG_FILE_PREFIX = "diagnostics"

# Placeholder messages
NO_MESSAGE = "No log message."
UNKNOWN_PROVIDER = "Unknown Provider"

# Settings keys
SETTING_THEME = "theme"
SETTING_EXPORT_DIR = "export_dir"
SETTING_INGEST_WINDOW_DAYS = "ingest_window_days"
SETTING_INGEST_PROFILE = "ingest_profile"
THEMES = ("system", "light", "dark")

# Environment Variables
ENV_CONFIG_PATH = "HERMES_CONFIG"
ENV_DATA_DIR = "HERMES_DATA_DIR"
ENV_QUERY_CAP = "HERMES_QUERY_CAP"
ENV_COLLECTOR_TIMEOUT = "HERMES_COLLECTOR_TIMEOUT"
ENV_LOG_LEVEL = "HERMES_LOG_LEVEL"
ENV_TIMEZONE = "HERMES_TIMEZONE"
