"""Recurring trigger scheduling.

TriggerScheduler is the seam between schedule management and whatever
actually fires activations. ApschedulerTriggerScheduler backs it with
APScheduler cron jobs; each job calls the activation callback with its own
trigger id, which doubles as the schedule id.

Trigger jobs live in a persistent SQLAlchemy job store so that they outlive
the process that created them and every process sees the same set. A
trigger removed from that store is gone for good, which is what makes a
configuration without a trigger an orphan.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.base import BaseScheduler

from core.contracts.backup import BackupType, TriggerSpec
from core.logger import get_logger

logger = get_logger(__name__)

# Backup trigger jobs are named with this prefix; other jobs on a shared
# scheduler are ignored by list()
JOB_NAME_PREFIX = "gsc-backup-"

# Job store alias holding backup triggers; "default" stays in memory for
# process-local housekeeping jobs
TRIGGER_JOBSTORE = "triggers"
TRIGGER_TABLE = "gsc_backup_triggers"


class TriggerScheduler(ABC):
    """Create, cancel and enumerate recurring triggers."""

    @abstractmethod
    def schedule(self, spec: TriggerSpec) -> str:
        """
        Register a recurring trigger under a new id.

        Returns:
            The trigger id.
        """

    @abstractmethod
    def cancel(self, trigger_id: str) -> bool:
        """Remove a trigger. Returns False if it did not exist."""

    @abstractmethod
    def list(self) -> List[str]:
        """Ids of all live triggers."""

    def shutdown(self) -> None:
        """Release the underlying scheduler, if any."""


def new_trigger_id() -> str:
    return uuid.uuid4().hex


def create_aps_scheduler(
    scheduler_cls: Type[BaseScheduler],
    url: str,
    timezone: Optional[str] = None,
) -> BaseScheduler:
    """
    Build an APScheduler scheduler whose trigger job store is persistent.

    Args:
        scheduler_cls: BlockingScheduler for `serve`, BackgroundScheduler otherwise.
        url: SQLAlchemy database URL for the trigger job store.
        timezone: Optional scheduler timezone.
    """
    options: dict = {
        "jobstores": {
            "default": MemoryJobStore(),
            TRIGGER_JOBSTORE: SQLAlchemyJobStore(url=url, tablename=TRIGGER_TABLE),
        },
    }
    if timezone:
        options["timezone"] = timezone
    return scheduler_cls(**options)


class ApschedulerTriggerScheduler(TriggerScheduler):
    """
    TriggerScheduler on top of an APScheduler 3.x scheduler.

    With a persistent job store the callback must be a module-level function
    and is stored by reference; it is called with the trigger id only.

    Usage:
        aps = create_aps_scheduler(BackgroundScheduler, "sqlite:///triggers.sqlite")
        triggers = ApschedulerTriggerScheduler(
            aps, callback=run_scheduled_backup, jobstore=TRIGGER_JOBSTORE
        )
        aps.start(paused=True)
        trigger_id = triggers.schedule(TriggerSpec.for_backup_type("daily"))
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        callback: Callable[[str], Any],
        timezone: Optional[str] = None,
        jobstore: str = "default",
    ) -> None:
        """
        Args:
            scheduler: APScheduler scheduler. Jobs already in a persistent
                store are only visible once it has been started.
            callback: Called with the trigger id on every firing.
            timezone: Optional timezone for cron triggers.
            jobstore: Alias of the job store holding triggers.
        """
        self.scheduler = scheduler
        self.callback = callback
        self.timezone = timezone
        self.jobstore = jobstore

    def schedule(self, spec: TriggerSpec) -> str:
        trigger_id = new_trigger_id()

        cron_fields = {"hour": spec.hour, "minute": 0}
        if spec.backup_type == BackupType.MONTHLY:
            cron_fields["day"] = spec.day_of_month
        if self.timezone:
            cron_fields["timezone"] = self.timezone

        self.scheduler.add_job(
            self.callback,
            trigger="cron",
            args=[trigger_id],
            id=trigger_id,
            name=f"{JOB_NAME_PREFIX}{spec.backup_type.value}",
            jobstore=self.jobstore,
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
            **cron_fields,
        )
        logger.info(f"Trigger {trigger_id} scheduled: {spec.describe()}")
        return trigger_id

    def cancel(self, trigger_id: str) -> bool:
        try:
            self.scheduler.remove_job(trigger_id, jobstore=self.jobstore)
        except JobLookupError:
            logger.debug(f"Trigger {trigger_id} not found when cancelling")
            return False
        logger.info(f"Trigger {trigger_id} cancelled")
        return True

    def list(self) -> List[str]:
        return [
            job.id
            for job in self.scheduler.get_jobs(jobstore=self.jobstore)
            if (job.name or "").startswith(JOB_NAME_PREFIX)
        ]

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
