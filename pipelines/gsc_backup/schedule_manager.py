"""
Schedule Manager for recurring Search Console backups.

Owns the link between stored configurations and live triggers:
setup / pause / resume / delete / list, plus reconciliation when the two
drift apart.

State Transitions:
    (setup) → ACTIVE ──pause──→ PAUSED ──resume──→ ACTIVE (new schedule id)
                 └────────── delete ──────────┘

CRITICAL INVARIANTS:
- At most one schedule per (website, backup type); re-setup replaces it
- An ACTIVE schedule's id is the id of its live trigger
- A PAUSED schedule has no trigger; its configuration survives
- Resume cannot reactivate the old trigger, so the configuration is
  migrated to the new trigger's id (old key deleted, new key written)
"""

from datetime import datetime
from typing import Callable, List, Optional

from core.contracts.backup import (
    BackupConfig,
    BackupConfigSummary,
    BackupType,
    ScheduleStatus,
    TriggerSpec,
)
from core.contracts.search_analytics import DIMENSIONS, SEARCH_TYPES
from core.errors import AlreadyPaused, InvalidConfig, NotPaused, ValidationError
from core.logger import get_logger
from pipelines.gsc_backup.config import TRIGGER_DAY_OF_MONTH, TRIGGER_HOUR
from pipelines.gsc_backup.config_store import ConfigStore
from pipelines.gsc_backup.scheduler import TriggerScheduler

logger = get_logger(__name__)

UNKNOWN = "Unknown"


def validate_schedule_params(
    website: str,
    backup_type: str,
    dimensions: List[str],
    search_type: str,
) -> None:
    """
    Validate caller input for a new schedule.

    Raises:
        ValidationError: On the first invalid parameter.
    """
    if not website or not str(website).strip():
        raise ValidationError("Website is required")
    try:
        BackupType(backup_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown backup type '{backup_type}'. Allowed: daily, monthly"
        ) from e
    if not dimensions:
        raise ValidationError("Select at least one dimension")
    unknown = [d for d in dimensions if d not in DIMENSIONS]
    if unknown:
        raise ValidationError(
            f"Unknown dimension(s): {', '.join(unknown)}. Allowed: {', '.join(DIMENSIONS)}"
        )
    if len(set(dimensions)) != len(dimensions):
        raise ValidationError("Dimensions must not contain duplicates")
    if search_type not in SEARCH_TYPES:
        raise ValidationError(
            f"Unknown search type '{search_type}'. Allowed: {', '.join(SEARCH_TYPES)}"
        )


class ScheduleManager:
    """
    Creates and maintains recurring backup schedules.

    Attributes:
        store: ConfigStore holding BackupConfig entries
        scheduler: TriggerScheduler holding live triggers
        trigger_hour: Hour of day triggers fire
        trigger_day_of_month: Day of month monthly triggers fire
    """

    def __init__(
        self,
        store: ConfigStore,
        scheduler: TriggerScheduler,
        now: Callable[[], datetime] = datetime.now,
        trigger_hour: int = TRIGGER_HOUR,
        trigger_day_of_month: int = TRIGGER_DAY_OF_MONTH,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self._now = now
        self.trigger_hour = trigger_hour
        self.trigger_day_of_month = trigger_day_of_month

    def _spec(self, backup_type: BackupType) -> TriggerSpec:
        return TriggerSpec.for_backup_type(
            backup_type, hour=self.trigger_hour, day_of_month=self.trigger_day_of_month
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def setup(
        self,
        website: str,
        backup_type: str,
        dimensions: List[str],
        search_type: str = "web",
        separate_ungrouped: bool = False,
        email_notification: bool = False,
    ) -> str:
        """
        Create a schedule, replacing any existing one for the same website and type.

        Returns:
            The new schedule id.

        Raises:
            ValidationError: On invalid input.
        """
        validate_schedule_params(website, backup_type, dimensions, search_type)
        website = website.strip()
        backup_type_enum = BackupType(backup_type)

        for schedule_id, existing in self.store.list_all().items():
            if existing.website == website and existing.backup_type == backup_type_enum:
                logger.info(
                    f"Replacing existing {backup_type_enum.value} schedule {schedule_id} for {website}"
                )
                self.delete(schedule_id)

        # Trigger and configuration are written under one store lock so that
        # drop_stale_triggers in another process never sees the trigger alone
        with self.store.lock(f"setup-{backup_type_enum.value}-{website}"):
            schedule_id = self.scheduler.schedule(self._spec(backup_type_enum))
            config = BackupConfig(
                schedule_id=schedule_id,
                website=website,
                dimensions=dimensions,
                backup_type=backup_type_enum,
                search_type=search_type,
                separate_ungrouped=separate_ungrouped,
                email_notification=email_notification,
                status=ScheduleStatus.ACTIVE,
                created_at=self._now(),
            )

            try:
                self.store.set(schedule_id, config)
            except Exception:
                self.scheduler.cancel(schedule_id)
                raise

        logger.info(f"Schedule {schedule_id} created: {backup_type_enum.value} backup of {website}")
        return schedule_id

    def pause(self, schedule_id: str) -> BackupConfig:
        """
        Pause a schedule: keep its configuration, remove its trigger.

        Raises:
            ConfigNotFound: If the schedule does not exist.
            AlreadyPaused: If it is already paused.
        """
        with self.store.lock(schedule_id):
            config = self.store.require(schedule_id)
            if config.is_paused:
                raise AlreadyPaused(schedule_id)

            config.status = ScheduleStatus.PAUSED
            config.paused_at = self._now()
            self.store.set(schedule_id, config)

            if not self.scheduler.cancel(schedule_id):
                logger.warning(f"Schedule {schedule_id} had no live trigger when paused")

        logger.info(f"Schedule {schedule_id} paused ({config.website})")
        return config

    def resume(self, schedule_id: str) -> str:
        """
        Resume a paused schedule under a fresh trigger.

        Returns:
            The new schedule id.

        Raises:
            ConfigNotFound: If the schedule does not exist.
            NotPaused: If it is not paused.
        """
        with self.store.lock(schedule_id):
            config = self.store.require(schedule_id)
            if not config.is_paused:
                raise NotPaused(schedule_id)

            # A stale trigger may survive an interrupted pause
            self.scheduler.cancel(schedule_id)

            new_id = self.scheduler.schedule(self._spec(config.backup_type))
            config.status = ScheduleStatus.ACTIVE
            config.resumed_at = self._now()
            config.paused_at = None

            try:
                self.store.set(new_id, config)
            except Exception:
                self.scheduler.cancel(new_id)
                raise
            self.store.delete(schedule_id)

        logger.info(f"Schedule {schedule_id} resumed as {new_id} ({config.website})")
        return new_id

    def delete(self, schedule_id: str) -> str:
        """
        Remove a schedule's trigger and configuration.

        A missing trigger is not an error.

        Returns:
            The schedule's website, or "Unknown".
        """
        with self.store.lock(schedule_id):
            website = UNKNOWN
            try:
                config = self.store.get(schedule_id)
                if config is not None and config.website:
                    website = config.website
            except InvalidConfig as e:
                logger.warning(f"Deleting unreadable configuration {schedule_id}: {e}")

            if not self.scheduler.cancel(schedule_id):
                logger.info(f"No live trigger for {schedule_id}, cleaning up configuration only")

            self.store.delete(schedule_id)

        logger.info(f"Schedule {schedule_id} deleted ({website})")
        return website

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, schedule_id: str) -> BackupConfig:
        return self.store.require(schedule_id)

    def next_run(self, config: BackupConfig) -> str:
        if config.status != ScheduleStatus.ACTIVE:
            return UNKNOWN
        return self._spec(config.backup_type).describe()

    def list(self) -> List[BackupConfigSummary]:
        """All schedules, newest first."""
        configs = sorted(
            self.store.list_all().values(),
            key=lambda c: c.created_at,
            reverse=True,
        )
        summaries: List[BackupConfigSummary] = []
        for config in configs:
            data = config.to_dict()
            summaries.append(
                {
                    "scheduleId": config.schedule_id,
                    "website": config.website,
                    "backupType": config.backup_type.value,
                    "dimensions": list(config.dimensions),
                    "searchType": config.search_type,
                    "separateUngrouped": config.separate_ungrouped,
                    "emailNotification": config.email_notification,
                    "status": config.status.value,
                    "createdAt": data["createdAt"],
                    "pausedAt": data["pausedAt"],
                    "lastRunAt": data["lastRunAt"],
                    "lastError": config.last_error,
                    "nextRun": self.next_run(config),
                }
            )
        return summaries

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    def find_orphans(self) -> List[str]:
        """
        Ids of stored configurations without a live trigger.

        Paused schedules have no trigger on purpose and are not orphans.
        Unreadable entries without a trigger are.
        """
        live = set(self.scheduler.list())
        configs = self.store.list_all()
        orphans: List[str] = []
        for schedule_id in self.store.list_ids():
            if schedule_id in live:
                continue
            config: Optional[BackupConfig] = configs.get(schedule_id)
            if config is not None and config.is_paused:
                continue
            orphans.append(schedule_id)
        return orphans

    def reconcile_orphans(self) -> int:
        """
        Delete configurations whose trigger no longer exists.

        Returns:
            Number of entries removed.
        """
        orphans = self.find_orphans()
        for schedule_id in orphans:
            with self.store.lock(schedule_id):
                self.store.delete(schedule_id)
            logger.info(f"Removed orphaned configuration {schedule_id}")

        logger.info(f"Orphan cleanup removed {len(orphans)} configuration(s)")
        return len(orphans)

    def drop_stale_triggers(self) -> int:
        """
        Cancel live triggers with no active configuration behind them.

        Returns:
            Number of triggers cancelled.
        """
        # Triggers are listed before configurations are read; setup and resume
        # write a new trigger's configuration before releasing the store lock
        live = self.scheduler.list()
        active = {
            schedule_id
            for schedule_id, config in self.store.list_all().items()
            if config.status == ScheduleStatus.ACTIVE
        }
        dropped = 0
        for trigger_id in live:
            if trigger_id not in active and self.scheduler.cancel(trigger_id):
                dropped += 1

        if dropped:
            logger.info(f"Cancelled {dropped} trigger(s) without an active configuration")
        return dropped

