"""Configuration store for backup schedules.

Thin key-value layer over a StateStore. Entries live under
"backup_<schedule_id>" as plain JSON and are converted to a validated
BackupConfig on the way out.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, Optional

from core.contracts.backup import BackupConfig
from core.errors import ConfigNotFound, InvalidConfig
from core.infrastructure import StateStore
from core.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "backup_"


def config_key(schedule_id: str) -> str:
    return f"{KEY_PREFIX}{schedule_id}"


class ConfigStore:
    """
    Durable mapping of schedule id -> BackupConfig.

    Single-key reads and writes are atomic. Read-modify-write sequences
    (pause, resume, delete, run bookkeeping) must run inside lock(id).
    """

    def __init__(self, state_store: StateStore) -> None:
        self.state_store = state_store

    def get(self, schedule_id: str) -> Optional[BackupConfig]:
        """
        Load one configuration.

        Returns:
            BackupConfig, or None if no entry exists.

        Raises:
            InvalidConfig: If the stored entry cannot be parsed.
        """
        raw = self.state_store.get(config_key(schedule_id))
        if raw is None:
            return None
        config = BackupConfig.from_dict(raw)
        if not config.schedule_id:
            config.schedule_id = schedule_id
        return config

    def require(self, schedule_id: str) -> BackupConfig:
        """Like get(), raising ConfigNotFound when the entry is missing."""
        config = self.get(schedule_id)
        if config is None:
            raise ConfigNotFound(schedule_id)
        return config

    def set(self, schedule_id: str, config: BackupConfig) -> None:
        config.schedule_id = schedule_id
        self.state_store.set(config_key(schedule_id), config.to_dict())

    def delete(self, schedule_id: str) -> bool:
        """Remove an entry. Returns False if it did not exist."""
        return self.state_store.delete(config_key(schedule_id))

    def list_ids(self) -> list[str]:
        """Schedule ids of every stored entry, parseable or not."""
        return [k[len(KEY_PREFIX):] for k in self.state_store.get_all_keys(prefix=KEY_PREFIX)]

    def list_all(self) -> Dict[str, BackupConfig]:
        """
        All parseable configurations keyed by schedule id.

        Entries that fail to parse are logged and skipped.
        """
        configs: Dict[str, BackupConfig] = {}
        for key, raw in self.state_store.items(prefix=KEY_PREFIX).items():
            schedule_id = key[len(KEY_PREFIX):]
            try:
                config = BackupConfig.from_dict(raw)
            except InvalidConfig as e:
                logger.warning(f"Skipping unreadable configuration {key}: {e}")
                continue
            if not config.schedule_id:
                config.schedule_id = schedule_id
            configs[schedule_id] = config
        return configs

    def record_run(
        self,
        schedule_id: str,
        last_error: Optional[str] = None,
        ran_at: Optional[datetime] = None,
    ) -> bool:
        """
        Store the outcome of a run on its configuration.

        A success (last_error=None) clears any previous error.

        Returns:
            False if the configuration disappeared in the meantime.
        """
        with self.lock(schedule_id):
            config = self.get(schedule_id)
            if config is None:
                logger.warning(f"Cannot record run for {schedule_id}: configuration is gone")
                return False
            config.last_error = last_error
            if ran_at is not None:
                config.last_run_at = ran_at
            self.set(schedule_id, config)
        return True

    @contextmanager
    def lock(self, schedule_id: str) -> Iterator[None]:
        """Per-schedule mutex around read-modify-write sequences."""
        with self.state_store.lock(config_key(schedule_id)):
            yield
