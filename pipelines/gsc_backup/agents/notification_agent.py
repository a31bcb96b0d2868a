"""NOTIFY stage: success email after a completed backup."""

from typing import Any, Dict

from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.gsc_backup.notifications import BackupNotifier

logger = get_logger(__name__)


class NotificationAgent(BaseAgent):
    """
    Send the success email when the schedule asks for one.

    A failed send does not fail the run; the error is returned as
    "notify_error" and recorded on the configuration by the orchestrator.
    """

    def __init__(self, notifier: BackupNotifier) -> None:
        super().__init__(name="NOTIFY")
        self.notifier = notifier

    def is_enabled(self, context: Dict[str, Any]) -> bool:
        return bool(context["config"].email_notification)

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        config = input_data["config"]
        try:
            self.notifier.send_success(
                config,
                start_date=input_data["start_date"].isoformat(),
                end_date=input_data["end_date"].isoformat(),
                artifact_url=input_data.get("spreadsheet_url", ""),
                import_result=input_data["primary_outcome"]["message"],
            )
        except Exception as e:
            logger.warning(f"Success notification for {config.website} failed: {e}")
            return {"notify_error": f"Notification failed: {e}"}

        logger.info(f"Success notification sent for {config.website}")
        return {"notify_error": None}
