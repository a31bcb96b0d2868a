"""PREPARE_DESTINATION stage: folder + dated spreadsheet artifact."""

from typing import Any, Dict

from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.gsc_backup.config import BACKUP_FOLDER_NAME
from pipelines.gsc_backup.destination import Destination

logger = get_logger(__name__)


def artifact_title(website: str, backup_type: str, start_date: Any, end_date: Any) -> str:
    """e.g. 'GSC Backup - sc-domain:example.com - daily - 2024-05-03'."""
    if start_date == end_date:
        span = start_date.isoformat()
    else:
        span = f"{start_date.isoformat()} to {end_date.isoformat()}"
    return f"GSC Backup - {website} - {backup_type} - {span}"


class DestinationAgent(BaseAgent):
    """
    Create the backup artifact and file it into the backup folder.

    Relocation is best-effort: if the move fails the spreadsheet stays
    where it was created and the run continues.

    Output:
        {"spreadsheet": gspread.Spreadsheet, "spreadsheet_url": str,
         "folder_id": str | None}
    """

    def __init__(self, destination: Destination, folder_name: str = BACKUP_FOLDER_NAME) -> None:
        super().__init__(name="PREPARE_DESTINATION")
        self.destination = destination
        self.folder_name = folder_name

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        config = input_data["config"]
        title = artifact_title(
            config.website,
            config.backup_type.value,
            input_data["start_date"],
            input_data["end_date"],
        )

        folder_id = self.destination.ensure_folder(self.folder_name)
        spreadsheet = self.destination.create_spreadsheet(title)

        try:
            self.destination.move_to_folder(spreadsheet.id, folder_id)
        except Exception as e:
            logger.warning(
                f"Could not move '{title}' into folder '{self.folder_name}', "
                f"leaving it in place: {e}"
            )
            folder_id = None

        return {
            "spreadsheet": spreadsheet,
            "spreadsheet_url": getattr(spreadsheet, "url", ""),
            "folder_id": folder_id,
        }
