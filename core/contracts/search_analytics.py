"""
Search Analytics Query Contract.

Typed request/response shapes for the Search Console searchAnalytics.query
endpoint, plus the calendar helpers the request window depends on.

CRITICAL INVARIANTS:
- startDate <= endDate <= today
- startDate within the trailing 16-month window the API serves
- rowLimit within 1..25000
- An empty result is a valid outcome, distinct from an error
"""

import calendar
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple, TypedDict

from core.errors import ValidationError


# =============================================================================
# QUERY VOCABULARY
# =============================================================================

DIMENSIONS = ("query", "page", "country", "device", "searchAppearance")

# searchAppearance cannot be used in an equality filter group here
FILTERABLE_DIMENSIONS = ("query", "page", "country", "device")

# Dimensions written to the "ungrouped" sheet
BASE_DIMENSIONS = ["query", "page", "country", "device"]

SEARCH_TYPES = ("web", "image", "video", "news", "discover", "googleNews")

AGGREGATION_TYPES = ("auto", "byPage", "byProperty")

MAX_ROW_LIMIT = 25000

# Search Console keeps roughly 16 months of history
HISTORY_WINDOW_MONTHS = 16


class FilterWire(TypedDict):
    dimension: str
    operator: str
    expression: str


class FilterGroupWire(TypedDict):
    filters: List[FilterWire]


class QueryBodyWire(TypedDict, total=False):
    """JSON body POSTed to searchAnalytics/query."""
    startDate: str
    endDate: str
    dimensions: List[str]
    rowLimit: int
    startRow: int
    type: str
    dimensionFilterGroups: List[FilterGroupWire]
    aggregationType: str


# =============================================================================
# CALENDAR HELPERS
# =============================================================================

def shift_months(day: date, months: int) -> date:
    """
    Move a date by a whole number of months, clamping the day of month.

    >>> shift_months(date(2024, 3, 31), -1)
    datetime.date(2024, 2, 29)
    """
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """Return the first and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def full_month_before(today: date, months_back: int) -> Tuple[date, date]:
    """
    Return the bounds of the Nth full calendar month before today's month.

    months_back=1 is the previous month.
    """
    anchor = shift_months(today.replace(day=1), -months_back)
    return month_bounds(anchor.year, anchor.month)


def earliest_queryable_date(today: date) -> date:
    """First day still inside the API's trailing history window."""
    return shift_months(today, -HISTORY_WINDOW_MONTHS)


# =============================================================================
# REQUEST
# =============================================================================

class QueryRequest:
    """A validated searchAnalytics query."""

    __slots__ = (
        "start_date",
        "end_date",
        "dimensions",
        "row_limit",
        "search_type",
        "filters",
        "aggregation_type",
        "start_row",
    )

    def __init__(
        self,
        start_date: date,
        end_date: date,
        dimensions: List[str],
        row_limit: int = MAX_ROW_LIMIT,
        search_type: str = "web",
        filters: Optional[Dict[str, str]] = None,
        aggregation_type: Optional[str] = None,
        start_row: int = 0,
    ) -> None:
        self.start_date = start_date
        self.end_date = end_date
        self.dimensions = list(dimensions)
        self.row_limit = row_limit
        self.search_type = search_type
        self.filters = dict(filters or {})
        self.aggregation_type = aggregation_type
        self.start_row = start_row

    def validate(self, today: date) -> "QueryRequest":
        """
        Check the request against the API's hard constraints.

        Args:
            today: The caller's notion of today.

        Returns:
            self, to allow chaining.

        Raises:
            ValidationError: On the first violated constraint.
        """
        unknown = [d for d in self.dimensions if d not in DIMENSIONS]
        if unknown:
            raise ValidationError(
                f"Unknown dimension(s): {', '.join(unknown)}. "
                f"Allowed: {', '.join(DIMENSIONS)}"
            )
        if len(set(self.dimensions)) != len(self.dimensions):
            raise ValidationError("Dimensions must not contain duplicates")

        bad_filters = [d for d in self.filters if d not in FILTERABLE_DIMENSIONS]
        if bad_filters:
            raise ValidationError(
                f"Cannot filter on: {', '.join(bad_filters)}. "
                f"Filterable: {', '.join(FILTERABLE_DIMENSIONS)}"
            )

        if not 1 <= self.row_limit <= MAX_ROW_LIMIT:
            raise ValidationError(f"rowLimit must be between 1 and {MAX_ROW_LIMIT}, got {self.row_limit}")

        if self.start_row < 0:
            raise ValidationError(f"startRow must not be negative, got {self.start_row}")

        if self.search_type not in SEARCH_TYPES:
            raise ValidationError(
                f"Unknown search type '{self.search_type}'. Allowed: {', '.join(SEARCH_TYPES)}"
            )

        if self.aggregation_type is not None and self.aggregation_type not in AGGREGATION_TYPES:
            raise ValidationError(f"Unknown aggregation type '{self.aggregation_type}'")

        if self.start_date > self.end_date:
            raise ValidationError(
                f"Start date {self.start_date.isoformat()} is after end date {self.end_date.isoformat()}"
            )

        if self.end_date > today:
            raise ValidationError(f"End date {self.end_date.isoformat()} is in the future")

        earliest = earliest_queryable_date(today)
        if self.start_date < earliest:
            raise ValidationError(
                f"Start date {self.start_date.isoformat()} is older than {HISTORY_WINDOW_MONTHS} "
                f"months; the earliest available date is {earliest.isoformat()}"
            )

        return self

    def to_body(self) -> QueryBodyWire:
        """Serialize to the JSON wire format."""
        body: QueryBodyWire = {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "dimensions": list(self.dimensions),
            "rowLimit": self.row_limit,
            "startRow": self.start_row,
            "type": self.search_type,
        }
        if self.filters:
            body["dimensionFilterGroups"] = [
                {
                    "filters": [
                        {"dimension": dimension, "operator": "equals", "expression": expression}
                        for dimension, expression in self.filters.items()
                    ]
                }
            ]
        if self.aggregation_type:
            body["aggregationType"] = self.aggregation_type
        return body

    def next_page(self) -> "QueryRequest":
        """Same query, starting after the rows of this page."""
        return QueryRequest(
            start_date=self.start_date,
            end_date=self.end_date,
            dimensions=self.dimensions,
            row_limit=self.row_limit,
            search_type=self.search_type,
            filters=self.filters,
            aggregation_type=self.aggregation_type,
            start_row=self.start_row + self.row_limit,
        )

    def __repr__(self) -> str:
        return (
            f"QueryRequest({self.start_date.isoformat()}..{self.end_date.isoformat()}, "
            f"dimensions={self.dimensions}, type={self.search_type}, rowLimit={self.row_limit})"
        )


def yesterday(today: date) -> date:
    return today - timedelta(days=1)


# =============================================================================
# RESPONSE
# =============================================================================

class SearchAnalyticsRow:
    """One result row: dimension keys plus the four metrics."""

    __slots__ = ("keys", "clicks", "impressions", "ctr", "position")

    def __init__(
        self,
        keys: List[str],
        clicks: int,
        impressions: int,
        ctr: float,
        position: float,
    ) -> None:
        self.keys = keys
        self.clicks = clicks
        self.impressions = impressions
        self.ctr = ctr
        self.position = position

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "SearchAnalyticsRow":
        return cls(
            keys=[str(k) for k in raw.get("keys", [])],
            clicks=int(raw.get("clicks", 0) or 0),
            impressions=int(raw.get("impressions", 0) or 0),
            ctr=float(raw.get("ctr", 0.0) or 0.0),
            position=float(raw.get("position", 0.0) or 0.0),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchAnalyticsRow):
            return NotImplemented
        return (
            self.keys == other.keys
            and self.clicks == other.clicks
            and self.impressions == other.impressions
            and self.ctr == other.ctr
            and self.position == other.position
        )

    def __repr__(self) -> str:
        return (
            f"SearchAnalyticsRow(keys={self.keys}, clicks={self.clicks}, "
            f"impressions={self.impressions}, ctr={self.ctr}, position={self.position})"
        )


class QueryResult:
    """Ordered result rows. Zero rows is a valid, distinct outcome."""

    __slots__ = ("rows",)

    def __init__(self, rows: Optional[List[SearchAnalyticsRow]] = None) -> None:
        self.rows = list(rows or [])

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "QueryResult":
        raw_rows = payload.get("rows") or []
        return cls([SearchAnalyticsRow.from_api(r) for r in raw_rows])

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def extend(self, other: "QueryResult") -> None:
        self.rows.extend(other.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[SearchAnalyticsRow]:
        return iter(self.rows)

    def __repr__(self) -> str:
        return f"QueryResult(rows={len(self.rows)})"
