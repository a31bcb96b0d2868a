"""Import stages: fetch Search Console rows and write them into the artifact.

IMPORT_PRIMARY writes the configured dimensions to the first sheet and is
fatal on failure. IMPORT_UNGROUPED writes all four base dimensions to a
second sheet; it runs regardless of the primary outcome and never fails
the run.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Protocol

from core.contracts.search_analytics import (
    BASE_DIMENSIONS,
    MAX_ROW_LIMIT,
    QueryRequest,
    QueryResult,
)
from core.logger import get_logger
from pipelines.core.base_agent import BaseAgent
from pipelines.gsc_backup.config import (
    MAX_ROWS_PER_IMPORT,
    PRIMARY_SHEET_NAME,
    UNGROUPED_SHEET_NAME,
)
from pipelines.gsc_backup.sheet_writer import SheetWriter, build_table

logger = get_logger(__name__)


class PagedQueryClient(Protocol):
    def query_all(self, site: str, request: QueryRequest, max_rows: int) -> QueryResult: ...


def fetch_and_write(
    client: PagedQueryClient,
    writer: SheetWriter,
    worksheet: Any,
    config: Any,
    dimensions: List[str],
    start_date: Any,
    end_date: Any,
    max_rows: int,
    written_at: datetime,
) -> Dict[str, Any]:
    """Query one backup window and overwrite the worksheet with the result."""
    request = QueryRequest(
        start_date=start_date,
        end_date=end_date,
        dimensions=dimensions,
        row_limit=min(MAX_ROW_LIMIT, max_rows),
        search_type=config.search_type,
    )
    result = client.query_all(config.website, request, max_rows=max_rows)
    headers, rows = build_table(dimensions, result, written_at=written_at)
    return writer.write(worksheet, headers, rows, mode="overwrite")


class PrimaryImportAgent(BaseAgent):
    """
    IMPORT_PRIMARY: configured dimensions onto the renamed first sheet.

    Output: {"primary_outcome": WriteOutcome}
    """

    def __init__(
        self,
        client: PagedQueryClient,
        writer: SheetWriter,
        now: Callable[[], datetime] = datetime.now,
        max_rows: int = MAX_ROWS_PER_IMPORT,
        sheet_name: str = PRIMARY_SHEET_NAME,
    ) -> None:
        super().__init__(name="IMPORT_PRIMARY")
        self.client = client
        self.writer = writer
        self._now = now
        self.max_rows = max_rows
        self.sheet_name = sheet_name

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        config = input_data["config"]
        worksheet = input_data["spreadsheet"].sheet1
        worksheet.update_title(self.sheet_name)

        outcome = fetch_and_write(
            self.client,
            self.writer,
            worksheet,
            config,
            config.dimensions,
            input_data["start_date"],
            input_data["end_date"],
            self.max_rows,
            self._now(),
        )
        logger.info(f"Primary import: {outcome['message']}")
        return {"primary_outcome": outcome}


class UngroupedImportAgent(BaseAgent):
    """IMPORT_UNGROUPED: all base dimensions on a second sheet, best-effort."""

    def __init__(
        self,
        client: PagedQueryClient,
        writer: SheetWriter,
        now: Callable[[], datetime] = datetime.now,
        max_rows: int = MAX_ROWS_PER_IMPORT,
        sheet_name: str = UNGROUPED_SHEET_NAME,
    ) -> None:
        super().__init__(name="IMPORT_UNGROUPED")
        self.client = client
        self.writer = writer
        self._now = now
        self.max_rows = max_rows
        self.sheet_name = sheet_name

    def is_enabled(self, context: Dict[str, Any]) -> bool:
        return bool(context["config"].separate_ungrouped)

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        config = input_data["config"]
        try:
            worksheet = input_data["spreadsheet"].add_worksheet(
                title=self.sheet_name,
                rows=1000,
                cols=len(BASE_DIMENSIONS) + 5,
            )
            outcome = fetch_and_write(
                self.client,
                self.writer,
                worksheet,
                config,
                list(BASE_DIMENSIONS),
                input_data["start_date"],
                input_data["end_date"],
                self.max_rows,
                self._now(),
            )
        except Exception as e:
            logger.warning(f"Ungrouped import for {config.website} failed, continuing: {e}")
            return {"ungrouped_outcome": None, "ungrouped_error": str(e)}

        logger.info(f"Ungrouped import: {outcome['message']}")
        return {"ungrouped_outcome": outcome, "ungrouped_error": None}
