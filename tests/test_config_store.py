"""Tests for ConfigStore, BackupConfig parsing and the JSON file state store."""

import json
import multiprocessing
from datetime import datetime

import pytest
from filelock import Timeout

from core.contracts.backup import BackupConfig, BackupType, ScheduleStatus
from core.errors import ConfigNotFound, InvalidConfig
from core.infrastructure import JsonFileStateStore, StateStore
from pipelines.gsc_backup.config_store import ConfigStore, config_key

CREATED = datetime(2024, 6, 1, 9, 30)


def _write_keys(path: str, prefix: str, count: int) -> None:
    store = JsonFileStateStore(path)
    for i in range(count):
        store.set(f"backup_{prefix}{i}", {"n": i})


def _config(schedule_id: str = "abc", **overrides) -> BackupConfig:
    params = {
        "schedule_id": schedule_id,
        "website": "sc-domain:example.com",
        "dimensions": ["query", "page"],
        "backup_type": BackupType.DAILY,
        "created_at": CREATED,
    }
    params.update(overrides)
    return BackupConfig(**params)


@pytest.fixture
def state_store() -> StateStore:
    return StateStore()


@pytest.fixture
def store(state_store: StateStore) -> ConfigStore:
    return ConfigStore(state_store)


class TestBackupConfig:
    """Typed configuration at the store boundary."""

    def test_round_trip_through_stored_form(self):
        config = _config(
            search_type="image",
            separate_ungrouped=True,
            email_notification=True,
            status=ScheduleStatus.PAUSED,
            paused_at=datetime(2024, 6, 2, 8, 0),
        )

        restored = BackupConfig.from_dict(config.to_dict())

        assert restored.to_dict() == config.to_dict()
        assert restored.is_paused

    def test_stored_form_uses_camel_case(self):
        data = _config().to_dict()

        assert data["scheduleId"] == "abc"
        assert data["backupType"] == "daily"
        assert data["createdAt"] == "2024-06-01T09:30:00"
        assert data["lastError"] is None

    def test_unknown_backup_type_is_invalid(self):
        with pytest.raises(InvalidConfig, match="backup type"):
            BackupConfig.from_dict({"website": "x", "dimensions": ["query"], "backupType": "hourly"})

    def test_bad_timestamp_is_invalid(self):
        data = _config().to_dict()
        data["createdAt"] = "yesterday"

        with pytest.raises(InvalidConfig, match="createdAt"):
            BackupConfig.from_dict(data)

    def test_validate_requires_website_and_dimensions(self):
        with pytest.raises(InvalidConfig, match="no website"):
            _config(website="").validate()
        with pytest.raises(InvalidConfig, match="no dimensions"):
            _config(dimensions=[]).validate()
        with pytest.raises(InvalidConfig, match="unknown dimension"):
            _config(dimensions=["keyword"]).validate()


class TestConfigStore:

    def test_set_and_get(self, store, state_store):
        store.set("abc", _config())

        loaded = store.get("abc")

        assert loaded.website == "sc-domain:example.com"
        assert loaded.dimensions == ["query", "page"]
        assert state_store.exists(config_key("abc"))
        assert config_key("abc") == "backup_abc"

    def test_missing_entry(self, store):
        assert store.get("nope") is None
        with pytest.raises(ConfigNotFound, match="nope"):
            store.require("nope")

    def test_set_stamps_schedule_id(self, store):
        """The store key wins over whatever id the config carried."""
        store.set("new-id", _config("old-id"))

        assert store.get("new-id").schedule_id == "new-id"

    def test_delete(self, store):
        store.set("abc", _config())

        assert store.delete("abc") is True
        assert store.delete("abc") is False
        assert store.get("abc") is None

    def test_list_all_skips_unreadable_entries(self, store, state_store):
        """Malformed entries are skipped by list_all but still listed by id."""
        store.set("good", _config("good"))
        state_store.set("backup_bad", {"backupType": "hourly"})
        state_store.set("unrelated", {"foo": "bar"})

        assert list(store.list_all()) == ["good"]
        assert sorted(store.list_ids()) == ["bad", "good"]

    def test_record_run_success_clears_error(self, store):
        store.set("abc", _config(last_error="previous failure"))
        ran_at = datetime(2024, 6, 15, 2, 0)

        assert store.record_run("abc", last_error=None, ran_at=ran_at) is True

        config = store.get("abc")
        assert config.last_error is None
        assert config.last_run_at == ran_at

    def test_record_run_failure(self, store):
        store.set("abc", _config())

        store.record_run("abc", last_error="Access denied")

        assert store.get("abc").last_error == "Access denied"

    def test_record_run_on_deleted_config(self, store):
        assert store.record_run("gone", last_error="x") is False


class TestJsonFileStateStore:
    """Durable store shared between activations through the file only."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state" / "configs.json"
        ConfigStore(JsonFileStateStore(path)).set("abc", _config())

        reloaded = ConfigStore(JsonFileStateStore(path)).get("abc")

        assert reloaded.website == "sc-domain:example.com"
        assert json.loads(path.read_text(encoding="utf-8"))["backup_abc"]["backupType"] == "daily"

    def test_sees_writes_from_other_instances(self, tmp_path):
        """No in-memory caching between reads."""
        path = tmp_path / "configs.json"
        first = JsonFileStateStore(path)
        second = JsonFileStateStore(path)

        first.set("backup_x", {"a": 1})
        assert second.get("backup_x") == {"a": 1}

        second.delete("backup_x")
        assert first.get("backup_x") is None

    def test_missing_or_empty_file_is_empty_store(self, tmp_path):
        path = tmp_path / "configs.json"
        store = JsonFileStateStore(path)
        assert store.size() == 0

        path.write_text("", encoding="utf-8")
        assert store.get_all_keys() == []

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStateStore(tmp_path / "configs.json")
        store.set("k", "v")
        store.set("k", "w")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["configs.json", "configs.json.lock"]

    def test_key_lock_excludes_other_instances(self, tmp_path):
        """lock(key) holds the shared lock file, not just an in-process lock."""
        path = tmp_path / "configs.json"
        holder = JsonFileStateStore(path)
        other = JsonFileStateStore(path, lock_timeout=0.1)

        with holder.lock("backup_x"):
            holder.set("backup_x", {"a": 1})
            with pytest.raises(Timeout):
                other.set("backup_y", {"b": 2})

        other.set("backup_y", {"b": 2})
        assert sorted(holder.get_all_keys()) == ["backup_x", "backup_y"]

    def test_concurrent_processes_keep_every_write(self, tmp_path):
        """Two processes writing distinct keys to one file lose nothing."""
        path = tmp_path / "configs.json"
        context = multiprocessing.get_context("spawn")
        workers = [
            context.Process(target=_write_keys, args=(str(path), prefix, 100))
            for prefix in ("a", "b")
        ]

        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=120)

        assert [worker.exitcode for worker in workers] == [0, 0]
        store = JsonFileStateStore(path)
        assert len(store.get_all_keys(prefix="backup_a")) == 100
        assert len(store.get_all_keys(prefix="backup_b")) == 100
