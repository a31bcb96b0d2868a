"""Backup destination: Drive folder and per-run spreadsheet artifacts.

Spreadsheets are created through gspread; folder lookup/creation and
relocation go through the Drive v3 REST API on an authorized session.
"""

from pathlib import Path
from typing import Any, Optional, Protocol

from core.logger import get_logger

logger = get_logger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DRIVE_TIMEOUT = 30

GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/webmasters.readonly",
]


class Destination(Protocol):
    """What the orchestrator needs from a destination."""

    def ensure_folder(self, name: str) -> str: ...
    def create_spreadsheet(self, title: str) -> Any: ...
    def move_to_folder(self, file_id: str, folder_id: str) -> None: ...


def _quote_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def load_google_credentials(credentials_path: Path, subject: Optional[str] = None):
    """
    Load service-account credentials for Sheets, Drive and Search Console.

    Raises:
        FileNotFoundError: If the credentials file is missing.
    """
    from google.oauth2.service_account import Credentials

    if not credentials_path.exists():
        raise FileNotFoundError(
            f"Service account credentials not found: {credentials_path}"
        )
    creds = Credentials.from_service_account_file(str(credentials_path), scopes=GOOGLE_SCOPES)
    if subject:
        creds = creds.with_subject(subject)
    return creds


class DriveBackupDestination:
    """
    Creates dated backup spreadsheets and files them into a Drive folder.

    Attributes:
        client: Authorized gspread client
        session: Authorized requests session (google.auth AuthorizedSession)
    """

    def __init__(self, client: Any, session: Any) -> None:
        self.client = client
        self.session = session

    @classmethod
    def from_credentials(cls, credentials: Any) -> "DriveBackupDestination":
        import gspread
        from google.auth.transport.requests import AuthorizedSession

        return cls(gspread.authorize(credentials), AuthorizedSession(credentials))

    def find_folder(self, name: str) -> Optional[str]:
        query = (
            f"name = '{_quote_query_value(name)}' and mimeType = '{FOLDER_MIME_TYPE}' "
            f"and trashed = false"
        )
        response = self.session.get(
            DRIVE_FILES_URL,
            params={"q": query, "fields": "files(id, name)", "spaces": "drive"},
            timeout=DRIVE_TIMEOUT,
        )
        response.raise_for_status()
        files = response.json().get("files", [])
        return files[0]["id"] if files else None

    def ensure_folder(self, name: str) -> str:
        """Return the id of the folder called `name`, creating it if needed."""
        folder_id = self.find_folder(name)
        if folder_id:
            logger.debug(f"Using existing backup folder '{name}' ({folder_id})")
            return folder_id

        response = self.session.post(
            DRIVE_FILES_URL,
            params={"fields": "id"},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE},
            timeout=DRIVE_TIMEOUT,
        )
        response.raise_for_status()
        folder_id = response.json()["id"]
        logger.info(f"Created backup folder '{name}' ({folder_id})")
        return folder_id

    def create_spreadsheet(self, title: str) -> Any:
        spreadsheet = self.client.create(title)
        logger.info(f"Created spreadsheet '{title}' ({spreadsheet.id})")
        return spreadsheet

    def open_spreadsheet(self, spreadsheet_id: str) -> Any:
        return self.client.open_by_key(spreadsheet_id)

    def move_to_folder(self, file_id: str, folder_id: str) -> None:
        """Re-parent a file into folder_id, removing its current parents."""
        url = f"{DRIVE_FILES_URL}/{file_id}"
        current = self.session.get(url, params={"fields": "parents"}, timeout=DRIVE_TIMEOUT)
        current.raise_for_status()
        parents = ",".join(current.json().get("parents", []))

        params = {"addParents": folder_id, "fields": "id, parents"}
        if parents:
            params["removeParents"] = parents
        response = self.session.patch(url, params=params, json={}, timeout=DRIVE_TIMEOUT)
        response.raise_for_status()
        logger.debug(f"Moved {file_id} into folder {folder_id}")
