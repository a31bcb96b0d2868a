"""Tests for BackupOrchestrator - one backup activation end to end."""

from datetime import date, datetime

import pytest

from core.contracts.backup import BackupConfig, BackupType
from core.errors import AccessRevoked, ConfigNotFound, InvalidConfig, UpstreamError
from core.infrastructure import StateStore
from fixtures import FakeAnalyticsClient, FakeDestination, make_rows
from pipelines.gsc_backup.config import PRIMARY_SHEET_NAME, UNGROUPED_SHEET_NAME
from pipelines.gsc_backup.config_store import ConfigStore
from pipelines.gsc_backup.notifications import BackupNotifier, MockEmailSender
from pipelines.gsc_backup.orchestrator import BackupOrchestrator
from pipelines.gsc_backup.sheet_writer import DEFAULT_EMPTY_MESSAGE

NOW = datetime(2024, 6, 15, 2, 0)
SITE = "https://example.com/"
LATEST_DAY = date(2024, 6, 13)  # today-2
RECIPIENT = "owner@example.com"


class FailingSender:
    def send(self, to, subject, body, from_email=None):
        raise ConnectionError("SMTP server unreachable")


@pytest.fixture
def store() -> ConfigStore:
    return ConfigStore(StateStore())


@pytest.fixture
def client() -> FakeAnalyticsClient:
    return FakeAnalyticsClient(
        {(LATEST_DAY, LATEST_DAY): make_rows(3, dimensions=2)},
        sites=[SITE],
    )


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def sender() -> MockEmailSender:
    return MockEmailSender()


@pytest.fixture
def orchestrator(store, client, destination, sender) -> BackupOrchestrator:
    return BackupOrchestrator(
        store,
        client,
        destination,
        BackupNotifier(sender, RECIPIENT),
        now=lambda: NOW,
    )


def _save(store: ConfigStore, schedule_id: str = "sched-1", **overrides) -> BackupConfig:
    params = {
        "schedule_id": schedule_id,
        "website": SITE,
        "dimensions": ["query", "page"],
        "backup_type": BackupType.DAILY,
        "separate_ungrouped": True,
        "email_notification": True,
    }
    params.update(overrides)
    config = BackupConfig(**params)
    store.set(schedule_id, config)
    return config


def _only_spreadsheet(destination: FakeDestination):
    assert len(destination.spreadsheets) == 1
    return next(iter(destination.spreadsheets.values()))


# =============================================================================
# Success path
# =============================================================================

class TestSuccessfulRun:

    def test_full_run(self, orchestrator, store, destination, sender):
        _save(store)

        message = orchestrator.run("sched-1")

        assert "Imported 3 rows into 'Search Console Data'." in message
        assert "2024-06-13 to 2024-06-13" in message

        spreadsheet = _only_spreadsheet(destination)
        assert "2024-06-13" in spreadsheet.title
        assert SITE in spreadsheet.title
        assert destination.moves == [(spreadsheet.id, "folder-1")]

        primary = spreadsheet.worksheet(PRIMARY_SHEET_NAME)
        assert primary.get_all_values()[0][:3] == ["Query", "Page", "Date and Time"]
        assert len(primary.get_all_values()) == 4

        ungrouped = spreadsheet.worksheet(UNGROUPED_SHEET_NAME)
        assert ungrouped.get_all_values()[0][:5] == ["Query", "Page", "Country", "Device", "Date and Time"]

    def test_success_email_content(self, orchestrator, store, destination, sender):
        _save(store)

        orchestrator.run("sched-1")

        assert len(sender.sent_emails) == 1
        email = sender.sent_emails[0]
        assert email["to"] == RECIPIENT
        assert "completed" in email["subject"]
        assert "2024-06-13 to 2024-06-13" in email["body"]
        assert "query, page" in email["body"]
        assert "Separate ungrouped sheet: Yes" in email["body"]
        assert _only_spreadsheet(destination).url in email["body"]

    def test_records_last_run(self, orchestrator, store):
        _save(store, last_error="old failure")

        orchestrator.run("sched-1")

        config = store.get("sched-1")
        assert config.last_run_at == NOW
        assert config.last_error is None

    def test_optional_stages_skipped(self, orchestrator, store, destination, sender):
        _save(store, separate_ungrouped=False, email_notification=False)

        orchestrator.run("sched-1")

        spreadsheet = _only_spreadsheet(destination)
        assert [ws.title for ws in spreadsheet.worksheets()] == [PRIMARY_SHEET_NAME]
        assert sender.sent_emails == []


# =============================================================================
# Date range
# =============================================================================

class TestDateRange:

    def test_daily_falls_back_to_yesterday(self, orchestrator, store, client):
        client.data = {}
        _save(store)

        message = orchestrator.run("sched-1")

        assert "2024-06-14 to 2024-06-14" in message
        assert DEFAULT_EMPTY_MESSAGE in message

    def test_monthly_uses_latest_complete_month(self, orchestrator, store, client):
        may = (date(2024, 5, 1), date(2024, 5, 31))
        client.data = {may: make_rows(5, dimensions=2)}
        _save(store, backup_type=BackupType.MONTHLY)

        message = orchestrator.run("sched-1")

        assert "2024-05-01 to 2024-05-31" in message
        assert "Imported 5 rows" in message

    def test_monthly_falls_back_to_previous_month(self, orchestrator, store, client):
        client.data = {}
        _save(store, backup_type=BackupType.MONTHLY)

        message = orchestrator.run("sched-1")

        assert "2024-05-01 to 2024-05-31" in message


# =============================================================================
# Failure path
# =============================================================================

class TestFailures:

    def test_missing_config(self, orchestrator, sender, destination):
        with pytest.raises(ConfigNotFound):
            orchestrator.run("missing")

        assert sender.sent_emails == []
        assert destination.spreadsheets == {}

    def test_invalid_config_reported(self, orchestrator, store, sender):
        _save(store, website="")

        with pytest.raises(InvalidConfig):
            orchestrator.run("sched-1")

        assert "FAILED" in sender.sent_emails[0]["subject"]
        assert "no website" in store.get("sched-1").last_error

    def test_access_revoked(self, orchestrator, store, client, destination, sender):
        """Site no longer verified: no artifact, failure email, error recorded."""
        client.sites = ["https://other.example/"]
        _save(store)

        with pytest.raises(AccessRevoked):
            orchestrator.run("sched-1")

        assert destination.spreadsheets == {}
        assert len(sender.sent_emails) == 1
        assert "no longer has access" in sender.sent_emails[0]["body"]
        assert "no longer has access" in store.get("sched-1").last_error

    def test_site_match_ignores_trailing_slash(self, orchestrator, store, client):
        client.sites = ["https://example.com"]
        _save(store)

        orchestrator.run("sched-1")

    def test_primary_import_failure_propagates(self, orchestrator, store, client, sender):
        """Probe errors are swallowed; the import error is not."""
        client.error = UpstreamError("Search Console returned 500", 500)
        _save(store)

        with pytest.raises(UpstreamError):
            orchestrator.run("sched-1")

        assert store.get("sched-1").last_error == "Search Console returned 500"
        assert "FAILED" in sender.sent_emails[-1]["subject"]

    def test_no_failure_email_when_disabled(self, orchestrator, store, client, sender):
        client.sites = []
        _save(store, email_notification=False)

        with pytest.raises(AccessRevoked):
            orchestrator.run("sched-1")

        assert sender.sent_emails == []
        assert store.get("sched-1").last_error is not None

    def test_unexpected_error_names_stage(self, orchestrator, store, destination, monkeypatch):
        def broken_folder(name):
            raise KeyError("drive quota")

        monkeypatch.setattr(destination, "ensure_folder", broken_folder)
        _save(store)

        with pytest.raises(RuntimeError, match="PREPARE_DESTINATION"):
            orchestrator.run("sched-1")

        assert "PREPARE_DESTINATION" in store.get("sched-1").last_error

    def test_failure_email_error_does_not_mask_original(self, store, client, destination):
        client.sites = []
        _save(store)
        orchestrator = BackupOrchestrator(
            store, client, destination, BackupNotifier(FailingSender(), RECIPIENT), now=lambda: NOW
        )

        with pytest.raises(AccessRevoked):
            orchestrator.run("sched-1")


# =============================================================================
# Best-effort stages
# =============================================================================

class TestBestEffortStages:

    def test_relocation_failure_is_not_fatal(self, orchestrator, store, destination):
        destination.fail_move = True
        _save(store)

        message = orchestrator.run("sched-1")

        assert "Imported 3 rows" in message
        assert destination.moves == []

    def test_ungrouped_failure_is_not_fatal(self, orchestrator, store, destination, monkeypatch):
        original_create = destination.create_spreadsheet

        def create_without_second_sheet(title):
            spreadsheet = original_create(title)
            spreadsheet.fail_add_worksheet = True
            return spreadsheet

        monkeypatch.setattr(destination, "create_spreadsheet", create_without_second_sheet)
        _save(store)

        message = orchestrator.run("sched-1")

        assert "Imported 3 rows" in message
        assert "Ungrouped sheet failed" in message
        assert store.get("sched-1").last_error is None

    def test_notification_failure_recorded_not_raised(self, store, client, destination):
        _save(store)
        orchestrator = BackupOrchestrator(
            store, client, destination, BackupNotifier(FailingSender(), RECIPIENT), now=lambda: NOW
        )

        message = orchestrator.run("sched-1")

        assert "Notification failed" in message
        config = store.get("sched-1")
        assert config.last_error.startswith("Notification failed")
        assert config.last_run_at == NOW
