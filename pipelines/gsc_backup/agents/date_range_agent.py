"""COMPUTE_RANGE stage: decide which dates a backup run covers."""

from datetime import date
from typing import Any, Callable, Dict

from core.contracts.backup import BackupType
from core.contracts.search_analytics import full_month_before, yesterday
from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.gsc_backup.availability_probe import AvailabilityProbe

logger = get_logger(__name__)


class DateRangeAgent(BaseAgent):
    """
    Compute the backup window from the availability probe.

    daily:   latest day with data, else yesterday
    monthly: latest complete month with data, else the previous month

    Output: {"start_date": date, "end_date": date}
    """

    def __init__(self, probe: AvailabilityProbe, today: Callable[[], date] = date.today) -> None:
        super().__init__(name="COMPUTE_RANGE")
        self.probe = probe
        self._today = today

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        config = input_data["config"]
        today = self._today()

        if config.backup_type == BackupType.DAILY:
            day = self.probe.find_latest_available_day(config.website, config.search_type)
            if day is None:
                day = yesterday(today)
                logger.warning(f"Probe found no recent data for {config.website}, using {day}")
            start_date, end_date = day, day
        else:
            month = self.probe.find_latest_complete_month(config.website, config.search_type)
            if month is None:
                month = full_month_before(today, 1)
                logger.warning(
                    f"Probe found no complete month for {config.website}, using {month[0]:%Y-%m}"
                )
            start_date, end_date = month

        logger.info(f"Backup range: {start_date.isoformat()} to {end_date.isoformat()}")
        return {"start_date": start_date, "end_date": end_date}
