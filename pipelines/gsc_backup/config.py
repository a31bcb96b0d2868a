"""Configuration constants for the Search Console backup pipeline.

Values come from environment variables (a local .env is loaded first) and
can be overridden by an optional YAML settings file pointed to by
BACKUP_SETTINGS_PATH, e.g.:

    probe:
      day_offsets: [2, 3, 4, 5, 6, 7]
      month_lookback: 3
    trigger:
      hour: 2
      day_of_month: 3
    import:
      budget_seconds: 300
"""

import os
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

from core.config_loader import load_optional_config
from core.contracts.backup import DEFAULT_TRIGGER_DAY_OF_MONTH, DEFAULT_TRIGGER_HOUR

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    try:
        return int(value) if value else default
    except ValueError:
        return default


SETTINGS_PATH = os.getenv("BACKUP_SETTINGS_PATH", "")
_settings: Dict[str, Any] = load_optional_config(SETTINGS_PATH)


def _setting(section: str, key: str, default: Any) -> Any:
    block = _settings.get(section) or {}
    return block.get(key, default) if isinstance(block, dict) else default


# Pipeline identification
PIPELINE_NAME = "GSC_SCHEDULED_BACKUP"

# Google credentials (service account with Search Console, Sheets and Drive access)
GOOGLE_CREDENTIALS_PATH = Path(
    os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials/service_account.json")
)
# Optional user to impersonate with domain-wide delegation
GOOGLE_IMPERSONATE_USER = os.getenv("GOOGLE_IMPERSONATE_USER", "") or None

# Spreadsheet used by manual imports (list_sheets / import_now)
DEFAULT_SPREADSHEET_ID = os.getenv("GOOGLE_SPREADSHEET_ID", "")

# Durable configuration store
BACKUP_STATE_PATH = Path(os.getenv("BACKUP_STATE_PATH", "state/backup_configs.json"))

# Drive folder collecting scheduled backup spreadsheets
BACKUP_FOLDER_NAME = os.getenv("BACKUP_FOLDER_NAME", "Search Console Backups")

# Sheet labels inside each backup artifact
PRIMARY_SHEET_NAME = "Search Console Data"
UNGROUPED_SHEET_NAME = "All Dimensions (Ungrouped)"

# Notifications
NOTIFICATION_EMAIL = os.getenv("NOTIFICATION_EMAIL", "")
MOCK_EMAIL = _env_bool("MOCK_EMAIL", "true")
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "") or SMTP_USERNAME
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

# Search Console HTTP client
HTTP_TIMEOUT_SECONDS = _env_int("GSC_HTTP_TIMEOUT", 60)
HTTP_MAX_RETRIES = _env_int("GSC_MAX_RETRIES", 3)

# Upper bound on rows fetched per import (paged 25000 at a time)
MAX_ROWS_PER_IMPORT = _env_int("GSC_MAX_ROWS", 25000)

# Availability probe windows
PROBE_DAY_OFFSETS: List[int] = [int(d) for d in _setting("probe", "day_offsets", [2, 3, 4, 5, 6, 7])]
PROBE_MONTH_LOOKBACK: int = int(_setting("probe", "month_lookback", 3))
PROBE_DIMENSION: str = str(_setting("probe", "dimension", "query"))

# Trigger timing
TRIGGER_HOUR: int = int(_setting("trigger", "hour", DEFAULT_TRIGGER_HOUR))
TRIGGER_DAY_OF_MONTH: int = int(_setting("trigger", "day_of_month", DEFAULT_TRIGGER_DAY_OF_MONTH))

# Soft wall-clock budget checked before a manual import starts
IMPORT_BUDGET_SECONDS: float = float(
    _setting("import", "budget_seconds", _env_int("IMPORT_BUDGET_SECONDS", 300))
)

# Persistent trigger job store (SQLAlchemy URL), shared by every process
TRIGGER_STORE_URL: str = os.getenv(
    "TRIGGER_STORE_URL", f"sqlite:///{BACKUP_STATE_PATH.with_name('backup_triggers.sqlite')}"
)

# How often a `serve` process drops triggers whose configuration is gone
# and wakes up to pick up triggers added by other processes
TRIGGER_SYNC_MINUTES: int = int(_setting("trigger", "sync_minutes", _env_int("TRIGGER_SYNC_MINUTES", 5)))
TRIGGER_TIMEZONE: str = str(_setting("trigger", "timezone", os.getenv("TRIGGER_TIMEZONE", "")))
