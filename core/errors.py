"""Error taxonomy for the backup system.

Every message is meant to be shown to the caller as-is: no stack traces,
a human-readable cause and, where it helps, what to do about it.
"""

from typing import Optional


class BackupError(Exception):
    """Base class for all expected failures."""


# =============================================================================
# CALLER INPUT
# =============================================================================

class ValidationError(BackupError):
    """Bad or missing caller input. Never retried."""


class InvalidConfig(ValidationError):
    """A stored backup configuration is incomplete or malformed."""


# =============================================================================
# CREDENTIALS AND PERMISSIONS
# =============================================================================

class AuthError(BackupError):
    """The bearer token was rejected or could not be obtained."""


class Unauthorized(AuthError):
    """HTTP 401 from the analytics API."""

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "Search Console rejected the credentials (401). "
            "Re-authorize the account and try again."
        )


class AccessDenied(AuthError):
    """HTTP 403 from the analytics API."""

    def __init__(self, site: str, detail: str = "") -> None:
        self.site = site
        text = (
            f"Access denied for {site} (403). Check that the account has "
            f"permission on this property in Search Console."
        )
        if detail:
            text = f"{text} Details: {detail}"
        super().__init__(text)


class AccessRevoked(AuthError):
    """The configured website is no longer among the verified sites."""

    def __init__(self, site: str) -> None:
        self.site = site
        super().__init__(
            f"The account no longer has access to {site}. Verify ownership "
            f"in Search Console or delete this schedule."
        )


# =============================================================================
# UPSTREAM API
# =============================================================================

class UpstreamError(BackupError):
    """Non-200 response from the analytics API that is not otherwise classified."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class BadRequest(UpstreamError):
    """HTTP 400 with the API's validation detail echoed back."""

    def __init__(self, detail: str, body: str = "") -> None:
        self.detail = detail
        super().__init__(f"Search Console rejected the request: {detail}", 400, body)


# =============================================================================
# MISSING THINGS
# =============================================================================

class NotFoundError(BackupError):
    """A configuration, trigger, sheet or remote resource does not exist."""


class ConfigNotFound(NotFoundError):
    def __init__(self, schedule_id: str) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"No backup configuration found for schedule {schedule_id}.")


class TriggerNotFound(NotFoundError):
    def __init__(self, trigger_id: str) -> None:
        self.trigger_id = trigger_id
        super().__init__(f"No trigger found with id {trigger_id}.")


class SheetNotFound(NotFoundError):
    def __init__(self, sheet_name: str) -> None:
        self.sheet_name = sheet_name
        super().__init__(f"Sheet '{sheet_name}' does not exist in the spreadsheet.")


class ResourceNotFound(NotFoundError):
    """HTTP 404 from the analytics API."""

    def __init__(self, site: str, body: str = "") -> None:
        self.site = site
        self.body = body
        super().__init__(
            f"Search Console property {site} was not found (404). "
            f"Check the property URL, including the sc-domain: prefix."
        )


# =============================================================================
# EXECUTION
# =============================================================================

class WriteError(BackupError):
    """Writing to the destination sheet failed after the fallback."""


class TimeoutExceeded(BackupError):
    """The soft time budget was already spent before the import phase."""

    def __init__(self, elapsed_seconds: float, budget_seconds: float) -> None:
        self.elapsed_seconds = elapsed_seconds
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Time budget exceeded ({elapsed_seconds:.0f}s of {budget_seconds:.0f}s) "
            f"before the import started. Try again with a smaller date range."
        )


# =============================================================================
# SCHEDULE STATE MACHINE
# =============================================================================

class ScheduleStateError(BackupError):
    """Pause/resume called in the wrong state."""


class AlreadyPaused(ScheduleStateError):
    def __init__(self, schedule_id: str) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Schedule {schedule_id} is already paused.")


class NotPaused(ScheduleStateError):
    def __init__(self, schedule_id: str) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Schedule {schedule_id} is not paused.")
