"""Search Console API client for search-analytics queries and site listing."""

import time
from typing import Any, Callable, Dict, List, Optional, TypedDict
from urllib.parse import quote

import requests

from core.contracts.search_analytics import QueryRequest, QueryResult
from core.errors import (
    AccessDenied,
    AuthError,
    BadRequest,
    ResourceNotFound,
    Unauthorized,
    UpstreamError,
)
from core.logger import get_logger

logger = get_logger(__name__)

API_BASE_URL = "https://www.googleapis.com/webmasters/v3"
SITES_URL = f"{API_BASE_URL}/sites"
SEARCH_CONSOLE_SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]

DEFAULT_TIMEOUT = 60
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0

# Statuses worth another attempt; everything else is classified immediately
RETRYABLE_STATUSES = frozenset([429, 500, 502, 503, 504])

# Body excerpt length kept on UpstreamError
BODY_EXCERPT_CHARS = 300


class SiteEntry(TypedDict):
    url: str
    permissionLevel: str


TokenProvider = Callable[[], str]


class GoogleTokenProvider:
    """
    Bearer tokens from google-auth credentials, refreshed when expired.

    Usage:
        provider = GoogleTokenProvider.from_service_account_file("sa.json")
        token = provider()
    """

    def __init__(self, credentials: Any) -> None:
        self.credentials = credentials

    @classmethod
    def from_service_account_file(
        cls,
        path: str,
        scopes: Optional[List[str]] = None,
        subject: Optional[str] = None,
    ) -> "GoogleTokenProvider":
        """
        Load service-account credentials.

        Args:
            path: Service account JSON file.
            scopes: OAuth scopes (defaults to read-only Search Console).
            subject: Optional user to impersonate (domain-wide delegation).
        """
        from google.oauth2.service_account import Credentials

        credentials = Credentials.from_service_account_file(
            path, scopes=scopes or SEARCH_CONSOLE_SCOPES
        )
        if subject:
            credentials = credentials.with_subject(subject)
        return cls(credentials)

    def __call__(self) -> str:
        from google.auth.exceptions import RefreshError
        from google.auth.transport.requests import Request

        if not self.credentials.valid:
            try:
                self.credentials.refresh(Request())
            except RefreshError as e:
                raise AuthError(
                    f"Could not refresh Google credentials: {e}. "
                    f"Check the service account file and its access."
                ) from e
        return self.credentials.token


def _error_detail(response: requests.Response) -> str:
    """Extract `error.message` from an API error body, falling back to raw text."""
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "").strip()[:BODY_EXCERPT_CHARS]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return (response.text or "").strip()[:BODY_EXCERPT_CHARS]


class SearchConsoleClient:
    """
    Thin HTTP client for the Search Console API.

    Issues bearer-authenticated requests, retries transient failures a fixed
    number of times, and classifies non-200 responses into typed errors.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            token_provider: Callable returning a bearer token.
            session: Optional requests session (injected in tests).
            timeout: Per-request timeout in seconds.
            max_retries: Attempts per request, including the first.
            retry_delay: Fixed delay between attempts in seconds.
            sleep: Sleep function (injected in tests).
        """
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep

    # =========================================================================
    # HTTP
    # =========================================================================

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_provider()}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, url: str, json_body: Optional[Dict[str, Any]] = None) -> requests.Response:
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.request(
                    method,
                    url,
                    json=json_body,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                last_exception = e
                logger.warning(
                    f"Search Console request failed ({type(e).__name__}), "
                    f"attempt {attempt}/{self.max_retries}"
                )
                if attempt < self.max_retries:
                    self._sleep(self.retry_delay)
                continue

            if response.status_code in RETRYABLE_STATUSES and attempt < self.max_retries:
                logger.warning(
                    f"Search Console returned {response.status_code}, "
                    f"retrying in {self.retry_delay}s (attempt {attempt}/{self.max_retries})"
                )
                self._sleep(self.retry_delay)
                continue

            return response

        raise UpstreamError(
            f"Search Console is unreachable after {self.max_retries} attempts: {last_exception}"
        )

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                "Search Console returned a response that is not valid JSON",
                response.status_code,
                (response.text or "")[:BODY_EXCERPT_CHARS],
            ) from e
        return payload if isinstance(payload, dict) else {}

    # =========================================================================
    # API METHODS
    # =========================================================================

    def list_verified_sites(self) -> List[SiteEntry]:
        """
        List the properties the token has verified access to.

        Returns:
            List of {url, permissionLevel} dicts.

        Raises:
            AuthError: If the token is rejected (401).
            UpstreamError: For any other non-200 response.
        """
        response = self._request("GET", SITES_URL)

        if response.status_code == 401:
            raise Unauthorized()
        if response.status_code != 200:
            detail = _error_detail(response)
            raise UpstreamError(
                f"Could not list Search Console sites ({response.status_code}): {detail}",
                response.status_code,
                detail,
            )

        entries = self._json(response).get("siteEntry") or []
        sites: List[SiteEntry] = [
            {"url": entry.get("siteUrl", ""), "permissionLevel": entry.get("permissionLevel", "")}
            for entry in entries
            if entry.get("siteUrl") and entry.get("permissionLevel") != "siteUnverifiedUser"
        ]
        logger.info(f"Fetched {len(sites)} verified Search Console sites")
        return sites

    def query(self, site: str, request: QueryRequest) -> QueryResult:
        """
        Run one searchAnalytics.query call.

        Args:
            site: Property URL (e.g. "https://example.com/" or "sc-domain:example.com").
            request: Query to serialize.

        Returns:
            QueryResult; empty when the API returns no rows.

        Raises:
            AccessDenied, BadRequest, Unauthorized, ResourceNotFound, UpstreamError
        """
        url = f"{SITES_URL}/{quote(site, safe='')}/searchAnalytics/query"
        logger.debug(f"Query {site}: {request!r}")

        response = self._request("POST", url, json_body=dict(request.to_body()))
        status = response.status_code

        if status == 200:
            result = QueryResult.from_response(self._json(response))
            logger.debug(f"Query {site} returned {len(result)} rows")
            return result

        detail = _error_detail(response)
        if status == 403:
            raise AccessDenied(site, detail)
        if status == 400:
            raise BadRequest(detail, response.text or "")
        if status == 401:
            raise Unauthorized()
        if status == 404:
            raise ResourceNotFound(site, detail)
        raise UpstreamError(
            f"Search Console returned {status} for {site}: {detail}",
            status,
            detail,
        )

    def query_all(self, site: str, request: QueryRequest, max_rows: int) -> QueryResult:
        """
        Page through results with startRow until a short page or max_rows.

        Args:
            site: Property URL.
            request: First page of the query.
            max_rows: Upper bound on rows collected.

        Returns:
            Concatenated QueryResult, truncated to max_rows.
        """
        combined = QueryResult()
        page = request

        while True:
            result = self.query(site, page)
            combined.extend(result)

            if len(result) < page.row_limit or len(combined) >= max_rows:
                break
            page = page.next_page()
            logger.info(f"Fetching next page for {site} (startRow={page.start_row})")

        if len(combined) > max_rows:
            combined.rows = combined.rows[:max_rows]
        return combined
