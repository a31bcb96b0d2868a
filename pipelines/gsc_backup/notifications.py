"""Email notifications for scheduled backup runs.

Design:
    - Mock mode for testing (MOCK_EMAIL=true), records instead of sending
    - SMTP sending via smtplib for real deployments
    - Fixed success and failure templates
"""

import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Optional, Protocol

from core.contracts.backup import BackupConfig
from core.logger import get_logger
from pipelines.gsc_backup import config as settings

logger = get_logger(__name__)


class EmailSender(Protocol):
    """Protocol for email sending implementations."""

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
    ) -> bool:
        """Send an email. Returns True on success."""
        ...


class MockEmailSender:
    """Mock email sender for testing."""

    def __init__(self) -> None:
        self.sent_emails: list[dict[str, Any]] = []

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
    ) -> bool:
        """Record the email instead of sending it."""
        self.sent_emails.append(
            {
                "to": to,
                "subject": subject,
                "body": body,
                "from": from_email,
                "sent_at": datetime.now().isoformat(),
            }
        )
        logger.info(f"MOCK EMAIL: To={to}, Subject={subject}")
        return True


class SmtpEmailSender:
    """Plain-text email over SMTP."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        default_from: str = "",
        timeout: int = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_from = default_from
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "SmtpEmailSender":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            default_from=settings.SMTP_FROM_EMAIL,
        )

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        from_email: Optional[str] = None,
    ) -> bool:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = from_email or self.default_from
        message["To"] = to
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(message)

        logger.info(f"Email sent to {to}: {subject}")
        return True


def default_sender() -> EmailSender:
    """Mock sender when MOCK_EMAIL is set, SMTP otherwise."""
    if settings.MOCK_EMAIL:
        return MockEmailSender()
    return SmtpEmailSender.from_settings()


# =============================================================================
# TEMPLATES
# =============================================================================

SUCCESS_SUBJECT = "Search Console backup completed: {website}"
SUCCESS_TEMPLATE = """Your scheduled Search Console backup completed successfully.

Website: {website}
Backup type: {backup_type}
Date range: {start_date} to {end_date}
Dimensions: {dimensions}
Search type: {search_type}
Separate ungrouped sheet: {ungrouped}

Spreadsheet: {artifact_url}
Result: {import_result}
"""

FAILURE_SUBJECT = "Search Console backup FAILED: {website}"
FAILURE_TEMPLATE = """Your scheduled Search Console backup failed.

Website: {website}
Backup type: {backup_type}
Time: {timestamp}

Error: {error}

The schedule is still active and will run again at its next trigger.
"""


class BackupNotifier:
    """
    Sends success/failure emails for backup runs.

    Raises whatever the sender raises; callers decide whether a failed
    notification matters.
    """

    def __init__(self, sender: EmailSender, recipient: str) -> None:
        self.sender = sender
        self.recipient = recipient

    def _send(self, subject: str, body: str) -> None:
        if not self.recipient:
            raise ValueError("No notification recipient configured (NOTIFICATION_EMAIL)")
        if not self.sender.send(to=self.recipient, subject=subject, body=body):
            raise RuntimeError(f"Email sender reported failure for '{subject}'")

    def send_success(
        self,
        config: BackupConfig,
        start_date: str,
        end_date: str,
        artifact_url: str,
        import_result: str,
    ) -> None:
        subject = SUCCESS_SUBJECT.format(website=config.website)
        body = SUCCESS_TEMPLATE.format(
            website=config.website,
            backup_type=config.backup_type.value,
            start_date=start_date,
            end_date=end_date,
            dimensions=", ".join(config.dimensions),
            search_type=config.search_type,
            ungrouped="Yes" if config.separate_ungrouped else "No",
            artifact_url=artifact_url,
            import_result=import_result,
        )
        self._send(subject, body)

    def send_failure(self, config: BackupConfig, error: str, timestamp: datetime) -> None:
        subject = FAILURE_SUBJECT.format(website=config.website)
        body = FAILURE_TEMPLATE.format(
            website=config.website,
            backup_type=config.backup_type.value,
            timestamp=timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            error=error,
        )
        self._send(subject, body)
