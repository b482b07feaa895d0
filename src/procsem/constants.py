"""Constants for procsem."""

# Milliseconds between retries; actual sleeps are drawn from [d/2, 3d/2]
DEFAULT_RETRY_DELAY_MS = 100

# Shared state line: "<timestamp>|<remaining>|<pid>,<pid>,..."
STATE_FIELD_SEPARATOR = "|"
PID_SEPARATOR = ","
STATE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_CONFIG_FILE = "procsem.toml"

# CLI exit codes
EXIT_ERROR = 1
EXIT_TIMEOUT = 124  # Same as timeout(1)
