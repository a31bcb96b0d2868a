"""
Availability Probe for the Search Console backup pipeline.

Finds the most recent day or month that actually has data, instead of
assuming a fixed reporting lag. Each probe is a one-row query: an
existence check, not a data fetch.

CRITICAL INVARIANTS:
- Probes are issued nearest-first; the first non-empty one wins
- Probing never raises: any error degrades to "no data found" (None)
- Probe windows are constructor arguments, not hard-coded
"""

from datetime import date, timedelta
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from core.contracts.search_analytics import QueryRequest, QueryResult, full_month_before
from core.logger import get_logger
from pipelines.gsc_backup.config import PROBE_DAY_OFFSETS, PROBE_DIMENSION, PROBE_MONTH_LOOKBACK

logger = get_logger(__name__)


class QueryClient(Protocol):
    """The part of SearchConsoleClient the probe needs."""

    def query(self, site: str, request: QueryRequest) -> QueryResult:
        ...


class AvailabilityProbe:
    """
    Bounded backward search for the latest date or month with data.

    Attributes:
        client: Anything with query(site, request) -> QueryResult
        day_offsets: Days before today to probe, in probe order
        month_lookback: Number of full months before the current one to probe
        dimension: Single dimension used by probe queries
    """

    def __init__(
        self,
        client: QueryClient,
        today: Callable[[], date] = date.today,
        day_offsets: Sequence[int] = tuple(PROBE_DAY_OFFSETS),
        month_lookback: int = PROBE_MONTH_LOOKBACK,
        dimension: str = PROBE_DIMENSION,
    ) -> None:
        self.client = client
        self._today = today
        self.day_offsets: List[int] = sorted(day_offsets)
        self.month_lookback = month_lookback
        self.dimension = dimension

    def _has_data(self, site: str, start: date, end: date, search_type: str) -> bool:
        request = QueryRequest(
            start_date=start,
            end_date=end,
            dimensions=[self.dimension],
            row_limit=1,
            search_type=search_type,
        )
        try:
            return not self.client.query(site, request).is_empty
        except Exception as e:
            logger.warning(
                f"Probe {start.isoformat()}..{end.isoformat()} for {site} failed, "
                f"treating as empty: {e}"
            )
            return False

    def find_latest_available_day(self, site: str, search_type: str = "web") -> Optional[date]:
        """
        Probe today-2 .. today-7 (nearest first) for the latest day with rows.

        Args:
            site: Property URL.
            search_type: Search type to probe.

        Returns:
            The closest day with at least one row, or None.
        """
        today = self._today()

        for offset in self.day_offsets:
            day = today - timedelta(days=offset)
            if self._has_data(site, day, day, search_type):
                logger.info(f"Latest available day for {site}: {day.isoformat()} (today-{offset})")
                return day

        logger.warning(
            f"No data found for {site} in the last {len(self.day_offsets)} probed days"
        )
        return None

    def find_latest_complete_month(
        self, site: str, search_type: str = "web"
    ) -> Optional[Tuple[date, date]]:
        """
        Probe the 1st..Nth full calendar month before the current month.

        Args:
            site: Property URL.
            search_type: Search type to probe.

        Returns:
            (first_day, last_day) of the most recent month with rows, or None.
        """
        today = self._today()

        for months_back in range(1, self.month_lookback + 1):
            start, end = full_month_before(today, months_back)
            if self._has_data(site, start, end, search_type):
                logger.info(f"Latest complete month for {site}: {start:%Y-%m}")
                return start, end

        logger.warning(
            f"No data found for {site} in the last {self.month_lookback} complete months"
        )
        return None
