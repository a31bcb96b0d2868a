"""Stages that load and validate the schedule's stored configuration."""

from typing import Any, Dict

from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.gsc_backup.config_store import ConfigStore

logger = get_logger(__name__)


class LoadConfigAgent(BaseAgent):
    """
    LOAD_CONFIG: resolve the firing schedule id to its BackupConfig.

    Input:  {"schedule_id": str}
    Output: {"config": BackupConfig}

    Raises:
        ConfigNotFound: If no configuration is stored under the id.
    """

    def __init__(self, store: ConfigStore) -> None:
        super().__init__(name="LOAD_CONFIG")
        self.store = store

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        schedule_id = input_data["schedule_id"]
        config = self.store.require(schedule_id)
        logger.info(
            f"Loaded {config.backup_type.value} backup config {schedule_id} for {config.website}"
        )
        return {"config": config}


class ValidateConfigAgent(BaseAgent):
    """VALIDATE: website and dimensions must be present and known."""

    def __init__(self) -> None:
        super().__init__(name="VALIDATE")

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        input_data["config"].validate()
        return {}
