import os
import sys

from dotenv import load_dotenv

from enums.runtime_environment import RuntimeEnvironment

# Load .env but don't override existing environment variables
# This allows test scripts to set RUNTIME_ENVIRONMENT=TEST before import
load_dotenv(".env", override=False)

# Parse RUNTIME_ENVIRONMENT with clear error message on misconfiguration
try:
    _runtime_env_str = os.environ.get("RUNTIME_ENVIRONMENT")
    if not _runtime_env_str:
        raise ValueError("RUNTIME_ENVIRONMENT environment variable is not set")
    RUNTIME_ENVIRONMENT = RuntimeEnvironment(_runtime_env_str)
except ValueError as e:
    valid_values = [env.value for env in RuntimeEnvironment]
    print(f"\n ERROR: Invalid RUNTIME_ENVIRONMENT configuration\n", file=sys.stderr)
    print(f"Reason: {e}", file=sys.stderr)
    print(f"Valid values: {', '.join(valid_values)}", file=sys.stderr)
    print(f"Current value: {os.environ.get('RUNTIME_ENVIRONMENT', '(not set)')}", file=sys.stderr)
    print(f"\nAdd to .env: RUNTIME_ENVIRONMENT={valid_values[0]}\n", file=sys.stderr)
    sys.exit(1)

# Database
DB_URL = os.environ.get("DB_URL", "sqlite+aiosqlite:///data/groupbuy.db")
DB_BUSY_TIMEOUT_SECONDS = float(os.environ.get("DB_BUSY_TIMEOUT_SECONDS", "10"))
SQL_ECHO = os.environ.get("SQL_ECHO", "false") == "true"


def positive_int_setting(name: str, default: str) -> int:
    """Read an integer setting that must be > 0; exit with a clear message otherwise."""
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError("must be greater than 0")
    except ValueError as e:
        print(f"\n ERROR: Invalid {name} configuration\n", file=sys.stderr)
        print(f"Reason: {e}", file=sys.stderr)
        print(f"Current value: {raw}", file=sys.stderr)
        print(f"\nAdd to .env: {name}={default}\n", file=sys.stderr)
        sys.exit(1)
    return value


# Chatroom lifecycle
CHATROOM_WINDOW_HOURS = positive_int_setting("CHATROOM_WINDOW_HOURS", "24")  # Deadline after spawn
DEADLINE_EXTENSION_HOURS = positive_int_setting("DEADLINE_EXTENSION_HOURS", "2")  # Added per extension
EXTENSIONS_PER_PHASE = positive_int_setting("EXTENSIONS_PER_PHASE", "1")  # Before ordered / while ordered

# Chat messages
MESSAGE_MAX_LENGTH = int(os.environ.get("MESSAGE_MAX_LENGTH", "2000"))

# Realtime change feed (Redis pub/sub)
REDIS_HOST = os.environ.get("REDIS_HOST")
REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.environ.get("REDIS_PASSWORD")
REALTIME_CHANNEL_PREFIX = os.environ.get("REALTIME_CHANNEL_PREFIX", "realtime")
REALTIME_REFETCH_RETRIES = int(os.environ.get("REALTIME_REFETCH_RETRIES", "3"))
REALTIME_REFETCH_DELAY_SECONDS = float(os.environ.get("REALTIME_REFETCH_DELAY_SECONDS", "0.5"))
REALTIME_POLL_INTERVAL_SECONDS = float(os.environ.get("REALTIME_POLL_INTERVAL_SECONDS", "30"))

# Attachment storage (image/audio messages)
STORAGE_BASE_URL = os.environ.get("STORAGE_BASE_URL", "http://localhost:8000/storage").rstrip("/")
STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "chat-uploads")
STORAGE_SIGNING_SECRET = os.environ.get("STORAGE_SIGNING_SECRET", "")
STORAGE_URL_TTL_SECONDS = int(os.environ.get("STORAGE_URL_TTL_SECONDS", "3600"))

# User-facing messages (l10n/{UI_LANGUAGE}.json)
UI_LANGUAGE = os.environ.get("UI_LANGUAGE", "en")

# Logging Configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_MASK_SECRETS = os.environ.get("LOG_MASK_SECRETS", "true") == "true"  # Mask sensitive data in logs

# Log Retention: Environment-specific defaults
if RUNTIME_ENVIRONMENT == RuntimeEnvironment.DEV:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "30"))
else:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "5"))
