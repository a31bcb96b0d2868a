"""Tests for DriveBackupDestination folder handling and artifact titles."""

from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from core.contracts.backup import BackupType
from pipelines.gsc_backup.agents.destination_agent import artifact_title
from pipelines.gsc_backup.destination import (
    DRIVE_FILES_URL,
    FOLDER_MIME_TYPE,
    DriveBackupDestination,
    load_google_credentials,
)


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gspread_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def destination(gspread_client, session) -> DriveBackupDestination:
    return DriveBackupDestination(gspread_client, session)


class TestFolders:

    def test_existing_folder_reused(self, destination, session):
        session.get.return_value = _response({"files": [{"id": "folder-9", "name": "Backups"}]})

        assert destination.ensure_folder("Backups") == "folder-9"
        session.post.assert_not_called()

        query = session.get.call_args.kwargs["params"]["q"]
        assert "name = 'Backups'" in query
        assert FOLDER_MIME_TYPE in query
        assert "trashed = false" in query

    def test_missing_folder_created(self, destination, session):
        session.get.return_value = _response({"files": []})
        session.post.return_value = _response({"id": "folder-new"})

        assert destination.ensure_folder("Backups") == "folder-new"

        body = session.post.call_args.kwargs["json"]
        assert body == {"name": "Backups", "mimeType": FOLDER_MIME_TYPE}

    def test_quotes_in_folder_name_escaped(self, destination, session):
        session.get.return_value = _response({"files": [{"id": "f"}]})

        destination.ensure_folder("Bob's backups")

        assert "name = 'Bob\\'s backups'" in session.get.call_args.kwargs["params"]["q"]

    def test_http_error_propagates(self, destination, session):
        session.get.return_value.raise_for_status.side_effect = RuntimeError("403 Forbidden")

        with pytest.raises(RuntimeError, match="403"):
            destination.ensure_folder("Backups")


class TestSpreadsheets:

    def test_create_and_open(self, destination, gspread_client):
        gspread_client.create.return_value.id = "sheet-1"

        spreadsheet = destination.create_spreadsheet("GSC Backup")
        destination.open_spreadsheet("abc")

        assert spreadsheet.id == "sheet-1"
        gspread_client.create.assert_called_once_with("GSC Backup")
        gspread_client.open_by_key.assert_called_once_with("abc")

    def test_move_replaces_parents(self, destination, session):
        session.get.return_value = _response({"parents": ["root", "shared"]})

        destination.move_to_folder("sheet-1", "folder-1")

        url = session.patch.call_args.args[0]
        params = session.patch.call_args.kwargs["params"]
        assert url == f"{DRIVE_FILES_URL}/sheet-1"
        assert params["addParents"] == "folder-1"
        assert params["removeParents"] == "root,shared"

    def test_move_without_parents(self, destination, session):
        session.get.return_value = _response({})

        destination.move_to_folder("sheet-1", "folder-1")

        assert "removeParents" not in session.patch.call_args.kwargs["params"]


class TestCredentialsAndTitles:

    def test_missing_credentials_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="credentials not found"):
            load_google_credentials(Path(tmp_path) / "missing.json")

    def test_artifact_title_daily(self):
        title = artifact_title("sc-domain:example.com", BackupType.DAILY.value, date(2024, 6, 13), date(2024, 6, 13))

        assert title == "GSC Backup - sc-domain:example.com - daily - 2024-06-13"
