"""Tests for SearchConsoleClient with a mocked HTTP session."""

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from core.contracts.search_analytics import QueryRequest
from core.errors import (
    AccessDenied,
    BadRequest,
    ResourceNotFound,
    Unauthorized,
    UpstreamError,
)
from core.tools.search_console_client import SITES_URL, SearchConsoleClient

SITE = "sc-domain:example.com"


def _response(status: int, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


def _row(key: str) -> dict:
    return {"keys": [key], "clicks": 1, "impressions": 10, "ctr": 0.1, "position": 3.0}


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(session: MagicMock, sleep: MagicMock) -> SearchConsoleClient:
    return SearchConsoleClient(
        token_provider=lambda: "test-token",
        session=session,
        max_retries=3,
        retry_delay=0.5,
        sleep=sleep,
    )


@pytest.fixture
def request_may() -> QueryRequest:
    return QueryRequest(date(2024, 5, 1), date(2024, 5, 31), ["query"])


# =============================================================================
# query()
# =============================================================================

class TestQuery:
    """Single searchAnalytics.query calls."""

    def test_success_parses_rows(self, client, session, request_may):
        """200 responses become QueryResult rows."""
        session.request.return_value = _response(200, {"rows": [_row("shoes")]})

        result = client.query(SITE, request_may)

        assert len(result) == 1
        assert result.rows[0].keys == ["shoes"]

    def test_request_shape(self, client, session, request_may):
        """POST to the encoded site URL with bearer auth and the JSON body."""
        session.request.return_value = _response(200, {"rows": []})

        client.query(SITE, request_may)

        args, kwargs = session.request.call_args
        assert args[0] == "POST"
        assert args[1] == f"{SITES_URL}/sc-domain%3Aexample.com/searchAnalytics/query"
        assert kwargs["headers"]["Authorization"] == "Bearer test-token"
        assert kwargs["json"]["startDate"] == "2024-05-01"
        assert kwargs["json"]["rowLimit"] == 25000

    def test_missing_rows_is_empty(self, client, session, request_may):
        """200 without rows is an explicit empty result, not an error."""
        session.request.return_value = _response(200, {"responseAggregationType": "byProperty"})

        assert client.query(SITE, request_may).is_empty

    def test_403_access_denied(self, client, session, request_may):
        session.request.return_value = _response(403, {"error": {"message": "User does not have sufficient permission"}})

        with pytest.raises(AccessDenied, match="sufficient permission"):
            client.query(SITE, request_may)

    def test_400_bad_request_echoes_message(self, client, session, request_may):
        """The API's error.message is surfaced in the error."""
        session.request.return_value = _response(400, {"error": {"message": "Invalid value at 'dimensions'"}})

        with pytest.raises(BadRequest, match="Invalid value at 'dimensions'"):
            client.query(SITE, request_may)

    def test_401_unauthorized(self, client, session, request_may):
        session.request.return_value = _response(401, {"error": {"message": "Invalid Credentials"}})

        with pytest.raises(Unauthorized):
            client.query(SITE, request_may)

    def test_404_resource_not_found(self, client, session, request_may):
        session.request.return_value = _response(404, None, text="Not Found")

        with pytest.raises(ResourceNotFound, match="sc-domain:example.com"):
            client.query(SITE, request_may)

    def test_other_status_upstream_error(self, client, session, request_may):
        """Unclassified statuses keep status code and body excerpt."""
        session.request.return_value = _response(418, None, text="I'm a teapot")

        with pytest.raises(UpstreamError) as exc_info:
            client.query(SITE, request_may)

        assert exc_info.value.status_code == 418
        assert "teapot" in exc_info.value.body


# =============================================================================
# Retries
# =============================================================================

class TestRetries:
    """Simple fixed-delay retries for transient failures."""

    def test_retries_transient_status_then_succeeds(self, client, session, sleep, request_may):
        session.request.side_effect = [
            _response(503, None, text="unavailable"),
            _response(200, {"rows": [_row("shoes")]}),
        ]

        result = client.query(SITE, request_may)

        assert len(result) == 1
        assert session.request.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_exhausted_retries_classify_last_response(self, client, session, request_may):
        """After the last attempt the final status is classified normally."""
        session.request.return_value = _response(503, None, text="unavailable")

        with pytest.raises(UpstreamError) as exc_info:
            client.query(SITE, request_may)

        assert exc_info.value.status_code == 503
        assert session.request.call_count == 3

    def test_connection_errors_exhaust_to_upstream_error(self, client, session, request_may):
        session.request.side_effect = requests.ConnectionError("connection reset")

        with pytest.raises(UpstreamError, match="unreachable after 3 attempts"):
            client.query(SITE, request_may)

    def test_client_errors_not_retried(self, client, session, request_may):
        """4xx other than 429 is classified on the first attempt."""
        session.request.return_value = _response(403, {"error": {"message": "denied"}})

        with pytest.raises(AccessDenied):
            client.query(SITE, request_may)

        assert session.request.call_count == 1


# =============================================================================
# Paging and site listing
# =============================================================================

class TestQueryAll:

    def test_pages_until_short_page(self, client, session):
        """Full pages trigger another request with startRow advanced."""
        request = QueryRequest(date(2024, 5, 1), date(2024, 5, 31), ["query"], row_limit=2)
        session.request.side_effect = [
            _response(200, {"rows": [_row("a"), _row("b")]}),
            _response(200, {"rows": [_row("c")]}),
        ]

        result = client.query_all(SITE, request, max_rows=100)

        assert [r.keys[0] for r in result] == ["a", "b", "c"]
        second_body = session.request.call_args_list[1].kwargs["json"]
        assert second_body["startRow"] == 2

    def test_stops_and_truncates_at_max_rows(self, client, session):
        request = QueryRequest(date(2024, 5, 1), date(2024, 5, 31), ["query"], row_limit=2)
        session.request.side_effect = [
            _response(200, {"rows": [_row("a"), _row("b")]}),
            _response(200, {"rows": [_row("c"), _row("d")]}),
        ]

        result = client.query_all(SITE, request, max_rows=3)

        assert len(result) == 3
        assert session.request.call_count == 2


class TestListVerifiedSites:

    def test_excludes_unverified_entries(self, client, session):
        session.request.return_value = _response(
            200,
            {
                "siteEntry": [
                    {"siteUrl": "https://example.com/", "permissionLevel": "siteOwner"},
                    {"siteUrl": "sc-domain:example.org", "permissionLevel": "siteFullUser"},
                    {"siteUrl": "https://pending.example/", "permissionLevel": "siteUnverifiedUser"},
                ]
            },
        )

        sites = client.list_verified_sites()

        assert [s["url"] for s in sites] == ["https://example.com/", "sc-domain:example.org"]

    def test_no_sites(self, client, session):
        session.request.return_value = _response(200, {})

        assert client.list_verified_sites() == []

    def test_401_raises_unauthorized(self, client, session):
        session.request.return_value = _response(401, {"error": {"message": "Invalid Credentials"}})

        with pytest.raises(Unauthorized):
            client.list_verified_sites()

    def test_server_error_raises_upstream_error(self, client, session):
        session.request.return_value = _response(500, None, text="backend error")

        with pytest.raises(UpstreamError):
            client.list_verified_sites()
