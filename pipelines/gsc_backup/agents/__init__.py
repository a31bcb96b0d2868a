"""Stage agents for the scheduled backup pipeline."""

from pipelines.gsc_backup.agents.config_agents import LoadConfigAgent, ValidateConfigAgent
from pipelines.gsc_backup.agents.date_range_agent import DateRangeAgent
from pipelines.gsc_backup.agents.access_check_agent import AccessCheckAgent
from pipelines.gsc_backup.agents.destination_agent import DestinationAgent
from pipelines.gsc_backup.agents.import_agents import PrimaryImportAgent, UngroupedImportAgent
from pipelines.gsc_backup.agents.notification_agent import NotificationAgent

__all__ = [
    "LoadConfigAgent",
    "ValidateConfigAgent",
    "DateRangeAgent",
    "AccessCheckAgent",
    "DestinationAgent",
    "PrimaryImportAgent",
    "UngroupedImportAgent",
    "NotificationAgent",
]
