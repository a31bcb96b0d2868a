"""Caller-facing operations for Search Console backups.

BackupService is the single entry point used by the CLI (or any other
caller). Action operations return a displayable message string; listing
operations return structured rows for the caller to render. Failures are
raised as typed errors from core.errors whose messages are safe to show.
"""

import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

import gspread

from core.contracts.backup import BackupConfigSummary, ScheduleStatus
from core.contracts.search_analytics import MAX_ROW_LIMIT, QueryRequest
from core.errors import SheetNotFound, TimeoutExceeded, ValidationError
from core.infrastructure import JsonFileStateStore
from core.logger import get_logger
from core.tools.search_console_client import GoogleTokenProvider, SearchConsoleClient, SiteEntry
from pipelines.gsc_backup.config import (
    BACKUP_STATE_PATH,
    DEFAULT_SPREADSHEET_ID,
    GOOGLE_CREDENTIALS_PATH,
    GOOGLE_IMPERSONATE_USER,
    HTTP_MAX_RETRIES,
    HTTP_TIMEOUT_SECONDS,
    IMPORT_BUDGET_SECONDS,
    MAX_ROWS_PER_IMPORT,
    NOTIFICATION_EMAIL,
    TRIGGER_STORE_URL,
    TRIGGER_TIMEZONE,
)
from pipelines.gsc_backup.config_store import ConfigStore
from pipelines.gsc_backup.destination import DriveBackupDestination, load_google_credentials
from pipelines.gsc_backup.notifications import BackupNotifier, default_sender
from pipelines.gsc_backup.orchestrator import BackupOrchestrator
from pipelines.gsc_backup.schedule_manager import ScheduleManager
from pipelines.gsc_backup.scheduler import (
    TRIGGER_JOBSTORE,
    ApschedulerTriggerScheduler,
    create_aps_scheduler,
)
from pipelines.gsc_backup.sheet_writer import SheetWriter, build_table

logger = get_logger(__name__)

DateLike = Union[date, str]


def parse_date(value: DateLike, field: str) -> date:
    """Accept a date or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format, got {value!r}") from e


class BackupService:
    """
    Manual imports, schedule management and diagnostics.

    Attributes:
        client: SearchConsoleClient
        destination: Spreadsheet access (open_spreadsheet) for manual imports
        manager: ScheduleManager
        orchestrator: BackupOrchestrator for run-now
        spreadsheet_id: Spreadsheet holding the sheets manual imports write to
    """

    def __init__(
        self,
        client: Any,
        destination: Any,
        manager: ScheduleManager,
        orchestrator: BackupOrchestrator,
        spreadsheet_id: str = DEFAULT_SPREADSHEET_ID,
        writer: Optional[SheetWriter] = None,
        notifier: Optional[BackupNotifier] = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.monotonic,
        import_budget_seconds: float = IMPORT_BUDGET_SECONDS,
        max_rows: int = MAX_ROWS_PER_IMPORT,
    ) -> None:
        self.client = client
        self.destination = destination
        self.manager = manager
        self.orchestrator = orchestrator
        self.spreadsheet_id = spreadsheet_id
        self.writer = writer or SheetWriter()
        self.notifier = notifier
        self._today = today
        self._clock = clock
        self.import_budget_seconds = import_budget_seconds
        self.max_rows = max_rows

    # =========================================================================
    # WEBSITES AND SHEETS
    # =========================================================================

    def list_websites(self) -> List[SiteEntry]:
        return self.client.list_verified_sites()

    def _spreadsheet(self) -> Any:
        if not self.spreadsheet_id:
            raise ValidationError(
                "No spreadsheet configured. Set GOOGLE_SPREADSHEET_ID to the target spreadsheet."
            )
        return self.destination.open_spreadsheet(self.spreadsheet_id)

    def list_sheets(self) -> List[str]:
        """Titles of the sheets in the configured spreadsheet."""
        return [ws.title for ws in self._spreadsheet().worksheets()]

    def _worksheet(self, sheet_name: str) -> Any:
        try:
            return self._spreadsheet().worksheet(sheet_name)
        except gspread.exceptions.WorksheetNotFound as e:
            raise SheetNotFound(sheet_name) from e

    # =========================================================================
    # MANUAL IMPORT
    # =========================================================================

    def import_now(
        self,
        sheet_name: str,
        website: str,
        start_date: DateLike,
        end_date: DateLike,
        dimensions: List[str],
        search_type: str = "web",
        filters: Optional[Dict[str, str]] = None,
        mode: str = "auto",
        row_limit: int = MAX_ROW_LIMIT,
        aggregation_type: Optional[str] = None,
    ) -> str:
        """
        Fetch one date range and write it into an existing sheet.

        Args:
            sheet_name: Target sheet in the configured spreadsheet.
            website: Property URL.
            start_date: First day (inclusive).
            end_date: Last day (inclusive).
            dimensions: Dimensions in output column order.
            search_type: web, image, video, news, discover or googleNews.
            filters: Optional {dimension: expression} equality filters.
            mode: "auto" (append when headers match) or "overwrite".
            row_limit: Page size, 1..25000.
            aggregation_type: Optional auto, byPage or byProperty.

        Returns:
            The writer's message: row count written, or the no-data message.

        Raises:
            ValidationError: Invalid parameters.
            SheetNotFound: The sheet does not exist.
            TimeoutExceeded: The time budget ran out before the import began.
            AuthError, UpstreamError, WriteError: From the API or the sheet.
        """
        started = self._clock()

        if not sheet_name:
            raise ValidationError("Select a sheet to import into")
        if not website or not website.strip():
            raise ValidationError("Website is required")
        if not dimensions:
            raise ValidationError("Select at least one dimension")

        request = QueryRequest(
            start_date=parse_date(start_date, "Start date"),
            end_date=parse_date(end_date, "End date"),
            dimensions=dimensions,
            row_limit=row_limit,
            search_type=search_type,
            filters=filters,
            aggregation_type=aggregation_type,
        ).validate(self._today())

        worksheet = self._worksheet(sheet_name)

        elapsed = self._clock() - started
        if elapsed > self.import_budget_seconds:
            raise TimeoutExceeded(elapsed, self.import_budget_seconds)

        logger.info(f"Manual import of {website} into '{sheet_name}': {request!r}")
        result = self.client.query_all(website.strip(), request, max_rows=self.max_rows)
        headers, rows = build_table(request.dimensions, result)
        outcome = self.writer.write(worksheet, headers, rows, mode=mode)
        return outcome["message"]

    # =========================================================================
    # SCHEDULES
    # =========================================================================

    def setup_schedule(
        self,
        website: str,
        backup_type: str,
        dimensions: List[str],
        search_type: str = "web",
        separate_ungrouped: bool = False,
        email_notification: bool = False,
    ) -> str:
        schedule_id = self.manager.setup(
            website,
            backup_type,
            dimensions,
            search_type=search_type,
            separate_ungrouped=separate_ungrouped,
            email_notification=email_notification,
        )
        config = self.manager.get(schedule_id)
        return (
            f"{config.backup_type.value.capitalize()} backup scheduled for {config.website}. "
            f"Schedule ID: {schedule_id}. Next run: {self.manager.next_run(config)}."
        )

    def list_schedules(self) -> List[BackupConfigSummary]:
        return self.manager.list()

    def run_schedule_now(self, schedule_id: str) -> str:
        return self.orchestrator.run(schedule_id)

    def pause_schedule(self, schedule_id: str) -> str:
        config = self.manager.pause(schedule_id)
        return f"Backup schedule for {config.website} paused."

    def resume_schedule(self, schedule_id: str) -> str:
        new_id = self.manager.resume(schedule_id)
        config = self.manager.get(new_id)
        return f"Backup schedule for {config.website} resumed. New schedule ID: {new_id}."

    def delete_schedule(self, schedule_id: str) -> str:
        website = self.manager.delete(schedule_id)
        return f"Backup schedule for {website} deleted."

    def cleanup_orphans(self) -> str:
        removed = self.manager.reconcile_orphans()
        if removed == 0:
            return "No orphaned configurations found."
        return f"Removed {removed} orphaned configuration(s)."

    def close(self) -> None:
        """Shut down the trigger scheduler."""
        self.manager.scheduler.shutdown()

    # =========================================================================
    # DIAGNOSTICS
    # =========================================================================

    def run_diagnostics(self) -> str:
        """
        Report on credentials, stored schedules, triggers and the spreadsheet.

        Each check is independent; a failing check is reported, not raised.
        """
        lines = ["Search Console backup diagnostics"]

        try:
            sites = self.client.list_verified_sites()
            lines.append(f"[OK] Search Console access: {len(sites)} verified site(s)")
        except Exception as e:
            lines.append(f"[FAIL] Search Console access: {e}")

        try:
            configs = self.manager.store.list_all()
            paused = sum(1 for c in configs.values() if c.status == ScheduleStatus.PAUSED)
            failing = sum(1 for c in configs.values() if c.last_error)
            lines.append(
                f"[OK] Stored schedules: {len(configs)} ({len(configs) - paused} active, {paused} paused)"
            )
            if failing:
                lines.append(f"[WARN] Schedules whose last run failed: {failing}")
        except Exception as e:
            lines.append(f"[FAIL] Configuration store: {e}")

        try:
            triggers = self.manager.scheduler.list()
            orphans = self.manager.find_orphans()
            lines.append(f"[OK] Live triggers: {len(triggers)}")
            if orphans:
                lines.append(
                    f"[WARN] Orphaned configurations: {len(orphans)} (run cleanup-orphans)"
                )
            else:
                lines.append("[OK] No orphaned configurations")
        except Exception as e:
            lines.append(f"[FAIL] Trigger scheduler: {e}")

        if self.spreadsheet_id:
            try:
                sheet_count = len(self.list_sheets())
                lines.append(f"[OK] Spreadsheet {self.spreadsheet_id}: {sheet_count} sheet(s)")
            except Exception as e:
                lines.append(f"[FAIL] Spreadsheet {self.spreadsheet_id}: {e}")
        else:
            lines.append("[WARN] No spreadsheet configured for manual imports (GOOGLE_SPREADSHEET_ID)")

        if self.notifier is not None:
            if self.notifier.recipient:
                sender = type(self.notifier.sender).__name__
                lines.append(f"[OK] Notifications to {self.notifier.recipient} via {sender}")
            else:
                lines.append("[WARN] No notification recipient configured (NOTIFICATION_EMAIL)")

        return "\n".join(lines)


# =============================================================================
# WIRING
# =============================================================================

def build_orchestrator(credentials: Any = None) -> BackupOrchestrator:
    """
    Wire the backup orchestrator from environment configuration.

    Raises:
        FileNotFoundError: If the service account file is missing.
    """
    if credentials is None:
        credentials = load_google_credentials(GOOGLE_CREDENTIALS_PATH, GOOGLE_IMPERSONATE_USER)
    client = SearchConsoleClient(
        GoogleTokenProvider(credentials),
        timeout=HTTP_TIMEOUT_SECONDS,
        max_retries=HTTP_MAX_RETRIES,
    )
    destination = DriveBackupDestination.from_credentials(credentials)
    store = ConfigStore(JsonFileStateStore(BACKUP_STATE_PATH))
    notifier = BackupNotifier(default_sender(), NOTIFICATION_EMAIL)
    return BackupOrchestrator(store, client, destination, notifier)


def run_scheduled_backup(schedule_id: str) -> None:
    """
    Trigger callback stored by reference in the persistent job store.

    Runs in whichever process hosts the scheduler, so it wires its own
    orchestrator from configuration on every firing.
    """
    build_orchestrator().run(schedule_id)


def build_service(aps_scheduler: Any = None) -> BackupService:
    """
    Wire the service from environment configuration.

    Args:
        aps_scheduler: APScheduler scheduler built by create_aps_scheduler,
            owned by the caller. When omitted, a BackgroundScheduler on the
            persistent trigger store is created and started paused, so
            triggers are read and written without ever firing here; release
            it with BackupService.close().

    Raises:
        FileNotFoundError: If the service account file is missing.
    """
    from apscheduler.schedulers.background import BackgroundScheduler

    credentials = load_google_credentials(GOOGLE_CREDENTIALS_PATH, GOOGLE_IMPERSONATE_USER)
    orchestrator = build_orchestrator(credentials)

    if aps_scheduler is None:
        aps_scheduler = create_aps_scheduler(
            BackgroundScheduler, TRIGGER_STORE_URL, timezone=TRIGGER_TIMEZONE or None
        )
        aps_scheduler.start(paused=True)

    triggers = ApschedulerTriggerScheduler(
        aps_scheduler,
        callback=run_scheduled_backup,
        timezone=TRIGGER_TIMEZONE or None,
        jobstore=TRIGGER_JOBSTORE,
    )
    manager = ScheduleManager(orchestrator.store, triggers)

    return BackupService(
        orchestrator.client,
        orchestrator.destination,
        manager,
        orchestrator,
        notifier=orchestrator.notifier,
    )
