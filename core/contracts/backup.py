"""
Backup Schedule Contract.

Typed configuration for a recurring Search Console backup, as persisted in
the configuration store. Stored entries are plain JSON; they are turned into
a validated BackupConfig exactly once, at the store boundary, and all
internal code works on the typed value.

CRITICAL INVARIANTS:
- schedule_id is the stable key and maps to at most one live trigger
- dimensions is a non-empty ordered set of known dimensions
- resume issues a new schedule_id; the stored entry moves with it
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

from core.contracts.search_analytics import DIMENSIONS, SEARCH_TYPES
from core.errors import InvalidConfig


class BackupType(str, Enum):
    """How often a schedule fires and what range it backs up."""

    DAILY = "daily"      # latest available day
    MONTHLY = "monthly"  # latest complete calendar month


class ScheduleStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"


# Default trigger timing
DEFAULT_TRIGGER_HOUR = 2
DEFAULT_TRIGGER_DAY_OF_MONTH = 3


def _parse_ts(value: Any, field: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise InvalidConfig(f"Field '{field}' is not an ISO timestamp: {value!r}") from e


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BackupConfig:
    """Configuration and status of one backup schedule."""

    __slots__ = (
        "schedule_id",
        "website",
        "dimensions",
        "search_type",
        "backup_type",
        "separate_ungrouped",
        "email_notification",
        "status",
        "created_at",
        "paused_at",
        "resumed_at",
        "last_error",
        "last_run_at",
    )

    def __init__(
        self,
        schedule_id: str,
        website: str,
        dimensions: List[str],
        backup_type: BackupType,
        search_type: str = "web",
        separate_ungrouped: bool = False,
        email_notification: bool = False,
        status: ScheduleStatus = ScheduleStatus.ACTIVE,
        created_at: Optional[datetime] = None,
        paused_at: Optional[datetime] = None,
        resumed_at: Optional[datetime] = None,
        last_error: Optional[str] = None,
        last_run_at: Optional[datetime] = None,
    ) -> None:
        self.schedule_id = schedule_id
        self.website = website
        self.dimensions = list(dimensions)
        self.backup_type = BackupType(backup_type)
        self.search_type = search_type
        self.separate_ungrouped = separate_ungrouped
        self.email_notification = email_notification
        self.status = ScheduleStatus(status)
        self.created_at = created_at or datetime.now()
        self.paused_at = paused_at
        self.resumed_at = resumed_at
        self.last_error = last_error
        self.last_run_at = last_run_at

    @property
    def is_paused(self) -> bool:
        return self.status == ScheduleStatus.PAUSED

    def validate(self) -> "BackupConfig":
        """
        Check the fields a backup run depends on.

        Raises:
            InvalidConfig: If website or dimensions are missing or unknown.
        """
        if not self.schedule_id:
            raise InvalidConfig("Backup configuration has no schedule id")
        if not self.website or not str(self.website).strip():
            raise InvalidConfig(f"Schedule {self.schedule_id} has no website configured")
        if not self.dimensions:
            raise InvalidConfig(f"Schedule {self.schedule_id} has no dimensions configured")
        unknown = [d for d in self.dimensions if d not in DIMENSIONS]
        if unknown:
            raise InvalidConfig(
                f"Schedule {self.schedule_id} has unknown dimension(s): {', '.join(unknown)}"
            )
        if self.search_type not in SEARCH_TYPES:
            raise InvalidConfig(
                f"Schedule {self.schedule_id} has unknown search type '{self.search_type}'"
            )
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupConfig":
        """
        Build a config from its stored JSON form.

        Raises:
            InvalidConfig: If required fields are missing or malformed.
        """
        if not isinstance(data, dict):
            raise InvalidConfig(f"Backup configuration must be an object, got {type(data).__name__}")

        try:
            backup_type = BackupType(data.get("backupType"))
        except ValueError as e:
            raise InvalidConfig(f"Unknown backup type: {data.get('backupType')!r}") from e

        try:
            status = ScheduleStatus(data.get("status", ScheduleStatus.ACTIVE.value))
        except ValueError as e:
            raise InvalidConfig(f"Unknown schedule status: {data.get('status')!r}") from e

        dimensions = data.get("dimensions") or []
        if not isinstance(dimensions, list):
            raise InvalidConfig("Field 'dimensions' must be a list")

        return cls(
            schedule_id=str(data.get("scheduleId") or ""),
            website=str(data.get("website") or ""),
            dimensions=[str(d) for d in dimensions],
            backup_type=backup_type,
            search_type=str(data.get("searchType") or "web"),
            separate_ungrouped=bool(data.get("separateUngrouped", False)),
            email_notification=bool(data.get("emailNotification", False)),
            status=status,
            created_at=_parse_ts(data.get("createdAt"), "createdAt"),
            paused_at=_parse_ts(data.get("pausedAt"), "pausedAt"),
            resumed_at=_parse_ts(data.get("resumedAt"), "resumedAt"),
            last_error=data.get("lastError"),
            last_run_at=_parse_ts(data.get("lastRunAt"), "lastRunAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stored JSON form."""
        return {
            "scheduleId": self.schedule_id,
            "website": self.website,
            "dimensions": list(self.dimensions),
            "searchType": self.search_type,
            "backupType": self.backup_type.value,
            "separateUngrouped": self.separate_ungrouped,
            "emailNotification": self.email_notification,
            "status": self.status.value,
            "createdAt": _format_ts(self.created_at),
            "pausedAt": _format_ts(self.paused_at),
            "resumedAt": _format_ts(self.resumed_at),
            "lastError": self.last_error,
            "lastRunAt": _format_ts(self.last_run_at),
        }

    def __repr__(self) -> str:
        return (
            f"BackupConfig(schedule_id={self.schedule_id!r}, website={self.website!r}, "
            f"backup_type={self.backup_type.value}, status={self.status.value})"
        )


class BackupConfigSummary(TypedDict):
    """Row returned by ScheduleManager.list()."""
    scheduleId: str
    website: str
    backupType: str
    dimensions: List[str]
    searchType: str
    separateUngrouped: bool
    emailNotification: bool
    status: str
    createdAt: Optional[str]
    pausedAt: Optional[str]
    lastRunAt: Optional[str]
    lastError: Optional[str]
    nextRun: str


# =============================================================================
# TRIGGER TIMING
# =============================================================================

class TriggerSpec:
    """When a recurring trigger fires."""

    __slots__ = ("backup_type", "hour", "day_of_month")

    def __init__(
        self,
        backup_type: BackupType,
        hour: int = DEFAULT_TRIGGER_HOUR,
        day_of_month: Optional[int] = None,
    ) -> None:
        self.backup_type = BackupType(backup_type)
        self.hour = hour
        self.day_of_month = day_of_month

    @classmethod
    def for_backup_type(
        cls,
        backup_type: BackupType,
        hour: int = DEFAULT_TRIGGER_HOUR,
        day_of_month: int = DEFAULT_TRIGGER_DAY_OF_MONTH,
    ) -> "TriggerSpec":
        """daily: every day at `hour`; monthly: on `day_of_month` at `hour`."""
        backup_type = BackupType(backup_type)
        if backup_type == BackupType.MONTHLY:
            return cls(backup_type, hour=hour, day_of_month=day_of_month)
        return cls(backup_type, hour=hour)

    def describe(self) -> str:
        """Human-readable next-run description."""
        if self.backup_type == BackupType.MONTHLY:
            return f"Monthly on day {self.day_of_month} at {self.hour:02d}:00"
        return f"Daily at {self.hour:02d}:00"

    def __repr__(self) -> str:
        return f"TriggerSpec({self.describe()})"
