"""
Backup Orchestrator: one scheduled (or manual) backup activation.

Stages:
    LOAD_CONFIG → VALIDATE → COMPUTE_RANGE → VERIFY_ACCESS →
    PREPARE_DESTINATION → IMPORT_PRIMARY → [IMPORT_UNGROUPED] → [NOTIFY] → DONE

CRITICAL INVARIANTS:
- Every activation reloads its configuration from the store
- The first unhandled failure ends the run; the original error is re-raised
- On failure: best-effort failure email (if enabled and config loaded),
  then the error is recorded as lastError
- On success: lastRunAt is recorded; lastError is cleared unless the
  success email failed
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.core.runner import PipelineRunner
from pipelines.gsc_backup.agents import (
    AccessCheckAgent,
    DateRangeAgent,
    DestinationAgent,
    LoadConfigAgent,
    NotificationAgent,
    PrimaryImportAgent,
    UngroupedImportAgent,
    ValidateConfigAgent,
)
from pipelines.gsc_backup.availability_probe import AvailabilityProbe
from pipelines.gsc_backup.config import BACKUP_FOLDER_NAME, MAX_ROWS_PER_IMPORT, PIPELINE_NAME
from pipelines.gsc_backup.config_store import ConfigStore
from pipelines.gsc_backup.destination import Destination
from pipelines.gsc_backup.notifications import BackupNotifier
from pipelines.gsc_backup.sheet_writer import SheetWriter

logger = get_logger(__name__)


class BackupOrchestrator:
    """
    Runs the backup pipeline for a schedule id.

    Invokable by the trigger scheduler (callback with the trigger id) or
    directly for a manual run.
    """

    def __init__(
        self,
        store: ConfigStore,
        client: Any,
        destination: Destination,
        notifier: BackupNotifier,
        probe: Optional[AvailabilityProbe] = None,
        writer: Optional[SheetWriter] = None,
        now: Callable[[], datetime] = datetime.now,
        max_rows: int = MAX_ROWS_PER_IMPORT,
        folder_name: str = BACKUP_FOLDER_NAME,
    ) -> None:
        self.store = store
        self.client = client
        self.destination = destination
        self.notifier = notifier
        self._now = now
        self.probe = probe or AvailabilityProbe(client, today=lambda: self._now().date())
        self.writer = writer or SheetWriter()
        self.max_rows = max_rows
        self.folder_name = folder_name

    def build_agents(self) -> List[BaseAgent]:
        return [
            LoadConfigAgent(self.store),
            ValidateConfigAgent(),
            DateRangeAgent(self.probe, today=lambda: self._now().date()),
            AccessCheckAgent(self.client),
            DestinationAgent(self.destination, folder_name=self.folder_name),
            PrimaryImportAgent(self.client, self.writer, now=self._now, max_rows=self.max_rows),
            UngroupedImportAgent(self.client, self.writer, now=self._now, max_rows=self.max_rows),
            NotificationAgent(self.notifier),
        ]

    def run(self, schedule_id: str) -> str:
        """
        Execute one backup activation.

        Returns:
            Displayable summary of the run.

        Raises:
            BackupError: Typed failure from the stage that stopped the run.
            RuntimeError: Unexpected failure, naming the stage.
        """
        started_at = self._now()
        context: Dict[str, Any] = {"schedule_id": schedule_id}
        runner = PipelineRunner(self.build_agents(), name=PIPELINE_NAME)

        logger.info(f"Backup run for schedule {schedule_id} started")
        try:
            runner.run(context)
        except Exception as e:
            self._handle_failure(schedule_id, context, e)
            raise

        self.store.record_run(schedule_id, last_error=context.get("notify_error"), ran_at=started_at)
        message = self._summary(context)
        logger.info(f"Backup run for schedule {schedule_id} completed: {message}")
        return message

    # =========================================================================
    # OUTCOME HANDLING
    # =========================================================================

    def _handle_failure(self, schedule_id: str, context: Dict[str, Any], error: Exception) -> None:
        """Failure email and lastError bookkeeping. Never raises."""
        stage = context.get("stage", "LOAD_CONFIG")
        config = context.get("config")
        logger.error(f"Backup run for schedule {schedule_id} failed at {stage}: {error}")

        if config is None:
            return

        if config.email_notification:
            try:
                self.notifier.send_failure(config, str(error), self._now())
            except Exception as e:
                logger.warning(f"Failure notification for {config.website} could not be sent: {e}")

        try:
            self.store.record_run(schedule_id, last_error=str(error), ran_at=self._now())
        except Exception as e:
            logger.warning(f"Could not record failure on schedule {schedule_id}: {e}")

    @staticmethod
    def _summary(context: Dict[str, Any]) -> str:
        config = context["config"]
        parts = [
            f"Backup of {config.website} for "
            f"{context['start_date'].isoformat()} to {context['end_date'].isoformat()} completed.",
            context["primary_outcome"]["message"],
        ]
        if context.get("ungrouped_outcome"):
            parts.append(f"Ungrouped: {context['ungrouped_outcome']['message']}")
        elif context.get("ungrouped_error"):
            parts.append(f"Ungrouped sheet failed: {context['ungrouped_error']}")
        if context.get("spreadsheet_url"):
            parts.append(f"Spreadsheet: {context['spreadsheet_url']}")
        if context.get("notify_error"):
            parts.append(context["notify_error"])
        return " ".join(parts)
