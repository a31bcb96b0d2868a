"""Sheet writer for Search Console backup tables.

Writes a header row plus data rows to a gspread-style worksheet, choosing
between append and overwrite by comparing the existing header row:
- overwrite: full clear → header + rows from A1 → formatting
- auto: empty sheet or header mismatch → overwrite; header match → append
- zero rows: single diagnostic cell, reported as a distinct outcome

Formatting is cosmetic and best-effort; clearing and writing are not.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple, TypedDict

from gspread.utils import rowcol_to_a1

from core.contracts.search_analytics import QueryResult
from core.errors import ValidationError, WriteError
from core.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# OUTPUT SCHEMA
# =============================================================================

DIMENSION_LABELS: Dict[str, str] = {
    "query": "Query",
    "page": "Page",
    "country": "Country",
    "device": "Device",
    "searchAppearance": "Search Appearance",
}

METRIC_HEADERS = ["Date and Time", "Clicks", "Impressions", "CTR", "Position"]

INTEGER_COLUMNS = ("Clicks", "Impressions")
ONE_DECIMAL_COLUMNS = ("Position",)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

HEADER_BACKGROUND = {"red": 0.26, "green": 0.52, "blue": 0.96}
HEADER_TEXT_COLOR = {"red": 1.0, "green": 1.0, "blue": 1.0}

DEFAULT_EMPTY_MESSAGE = "No data found for the selected date range and parameters."

WriteMode = Literal["overwrite", "auto"]
VALID_MODES = frozenset(["overwrite", "auto"])

# Leading characters Sheets would parse as a formula under USER_ENTERED
FORMULA_PREFIXES = ("=", "+", "-", "@")


class SheetTarget(Protocol):
    """The subset of gspread.Worksheet the writer relies on."""

    id: int
    title: str
    row_count: int
    col_count: int
    spreadsheet: Any

    def get_all_values(self) -> List[List[str]]: ...
    def clear(self) -> Any: ...
    def resize(self, rows: Optional[int] = None, cols: Optional[int] = None) -> Any: ...
    def update(self, values: Any = None, range_name: Optional[str] = None, **kwargs: Any) -> Any: ...
    def batch_format(self, formats: List[Dict[str, Any]]) -> Any: ...


class WriteOutcome(TypedDict):
    """Result of SheetWriter.write()."""
    message: str
    mode: str            # "overwrite" | "append" | "empty"
    rows_written: int
    sheet_name: str


# =============================================================================
# TABLE BUILDING
# =============================================================================

def protect_text_for_sheets(value: Any) -> str:
    """
    Prefix an apostrophe so Sheets keeps formula-looking text as text.

    >>> protect_text_for_sheets("=cheap flights")
    "'=cheap flights"
    >>> protect_text_for_sheets("shoes")
    'shoes'
    """
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        return f"'{text}"
    return text


def format_ctr(ctr: float) -> str:
    """0.1234 -> '12.34%'."""
    return f"{ctr * 100:.2f}%"


def build_headers(dimensions: List[str]) -> List[str]:
    """Dimension labels in selection order, followed by the metric columns."""
    unknown = [d for d in dimensions if d not in DIMENSION_LABELS]
    if unknown:
        raise ValidationError(f"Unknown dimension(s): {', '.join(unknown)}")
    return [DIMENSION_LABELS[d] for d in dimensions] + list(METRIC_HEADERS)


def build_table(
    dimensions: List[str],
    result: QueryResult,
    written_at: Optional[datetime] = None,
) -> Tuple[List[str], List[List[Any]]]:
    """
    Turn a QueryResult into (headers, rows) in the output schema.

    Args:
        dimensions: Dimensions the query was grouped by, in order.
        result: Query result rows.
        written_at: Wall-clock time stamped on every row (defaults to now).

    Returns:
        Header list and row lists.
    """
    headers = build_headers(dimensions)
    stamp = (written_at or datetime.now()).strftime(TIMESTAMP_FORMAT)

    rows: List[List[Any]] = []
    for row in result:
        keys = [protect_text_for_sheets(k) for k in row.keys[: len(dimensions)]]
        keys += [""] * (len(dimensions) - len(keys))
        rows.append(
            keys
            + [
                stamp,
                row.clicks,
                row.impressions,
                format_ctr(row.ctr),
                round(row.position, 1),
            ]
        )
    return headers, rows


# =============================================================================
# SHEET WRITER
# =============================================================================

class SheetWriter:
    """
    Persist tabular rows to a worksheet with append-vs-overwrite semantics.

    Usage:
        writer = SheetWriter()
        outcome = writer.write(worksheet, headers, rows, mode="auto")
        print(outcome["message"])
    """

    def __init__(self, value_input_option: str = "USER_ENTERED") -> None:
        self.value_input_option = value_input_option

    def write(
        self,
        target: SheetTarget,
        headers: List[str],
        rows: List[List[Any]],
        mode: WriteMode = "overwrite",
        empty_message: Optional[str] = None,
    ) -> WriteOutcome:
        """
        Write headers and rows to the target.

        Args:
            target: Worksheet to write to.
            headers: Header row.
            rows: Data rows, each aligned with headers.
            mode: "overwrite" or "auto".
            empty_message: Diagnostic text written when rows is empty.

        Returns:
            WriteOutcome with a displayable message.

        Raises:
            ValidationError: On an unknown mode or empty headers.
            WriteError: If clearing (after fallback) or writing fails.
        """
        if mode not in VALID_MODES:
            raise ValidationError(f"Unknown write mode '{mode}'. Allowed: {sorted(VALID_MODES)}")
        if not headers:
            raise ValidationError("Cannot write a table without headers")

        existing = self._read_values(target)
        sheet_empty = not existing
        header_row = existing[0] if existing and self._is_filled(existing[0]) else []

        if not rows:
            return self._write_empty(target, mode, sheet_empty, empty_message or DEFAULT_EMPTY_MESSAGE)

        if mode == "auto" and not sheet_empty:
            if header_row and self._headers_match(header_row, headers):
                return self._append(target, headers, rows, last_row=len(existing))
            logger.info(f"Header mismatch on '{target.title}', overwriting")

        return self._overwrite(target, headers, rows)

    # =========================================================================
    # WRITE PATHS
    # =========================================================================

    def _overwrite(self, target: SheetTarget, headers: List[str], rows: List[List[Any]]) -> WriteOutcome:
        self._clear(target)

        values = [list(headers)] + rows
        self._ensure_size(target, len(values), len(headers))
        self._update(target, "A1", values)

        self._apply_formatting(target, headers, first_row=1, last_row=len(values), include_header=True)

        logger.info(f"Wrote {len(rows)} rows to '{target.title}' (overwrite)")
        return {
            "message": f"Imported {len(rows)} rows into '{target.title}'.",
            "mode": "overwrite",
            "rows_written": len(rows),
            "sheet_name": target.title,
        }

    def _append(
        self,
        target: SheetTarget,
        headers: List[str],
        rows: List[List[Any]],
        last_row: int,
    ) -> WriteOutcome:
        first_new_row = last_row + 1
        last_new_row = last_row + len(rows)

        self._ensure_size(target, last_new_row, len(headers))
        self._update(target, rowcol_to_a1(first_new_row, 1), rows)

        self._apply_formatting(
            target, headers, first_row=first_new_row, last_row=last_new_row, include_header=False
        )

        logger.info(f"Appended {len(rows)} rows to '{target.title}' after row {last_row}")
        return {
            "message": f"Appended {len(rows)} rows to '{target.title}'.",
            "mode": "append",
            "rows_written": len(rows),
            "sheet_name": target.title,
        }

    def _write_empty(
        self,
        target: SheetTarget,
        mode: str,
        sheet_empty: bool,
        message: str,
    ) -> WriteOutcome:
        if mode == "overwrite":
            self._clear(target)
            self._update(target, "A1", [[message]])
        elif sheet_empty:
            self._update(target, "A1", [[message]])
        else:
            logger.info(f"No rows to append; existing data on '{target.title}' left untouched")

        logger.warning(f"No data to write to '{target.title}'")
        return {
            "message": message,
            "mode": "empty",
            "rows_written": 0,
            "sheet_name": target.title,
        }

    # =========================================================================
    # PRIMITIVES
    # =========================================================================

    @staticmethod
    def _headers_match(existing_header: List[Any], headers: List[str]) -> bool:
        """Stringified column-by-column comparison up to the new header count."""
        for idx, header in enumerate(headers):
            current = existing_header[idx] if idx < len(existing_header) else ""
            if str(current).strip() != str(header).strip():
                return False
        return True

    @staticmethod
    def _is_filled(row: List[Any]) -> bool:
        return any(str(cell).strip() for cell in row)

    @classmethod
    def _read_values(cls, target: SheetTarget) -> List[List[str]]:
        """Sheet values up to the last non-empty row; blank rows in between are kept."""
        try:
            values = [list(row) for row in target.get_all_values()]
        except Exception as e:
            raise WriteError(f"Could not read sheet '{target.title}': {e}") from e
        while values and not cls._is_filled(values[-1]):
            values.pop()
        return values

    @staticmethod
    def _clear(target: SheetTarget) -> None:
        """Clear values, formatting, validation and notes; fall back to a values-only clear."""
        try:
            target.spreadsheet.batch_update(
                {
                    "requests": [
                        {"updateCells": {"range": {"sheetId": target.id}, "fields": "*"}}
                    ]
                }
            )
            return
        except Exception as e:
            logger.warning(f"Full clear of '{target.title}' failed, falling back to values clear: {e}")

        try:
            target.clear()
        except Exception as e:
            raise WriteError(f"Could not clear sheet '{target.title}': {e}") from e

    @staticmethod
    def _ensure_size(target: SheetTarget, rows: int, cols: int) -> None:
        if target.row_count >= rows and target.col_count >= cols:
            return
        try:
            target.resize(rows=max(target.row_count, rows), cols=max(target.col_count, cols))
        except Exception as e:
            raise WriteError(f"Could not resize sheet '{target.title}': {e}") from e

    def _update(self, target: SheetTarget, start_cell: str, values: List[List[Any]]) -> None:
        try:
            target.update(
                values=values,
                range_name=start_cell,
                value_input_option=self.value_input_option,
            )
        except Exception as e:
            raise WriteError(f"Could not write to sheet '{target.title}': {e}") from e

    def _apply_formatting(
        self,
        target: SheetTarget,
        headers: List[str],
        first_row: int,
        last_row: int,
        include_header: bool,
    ) -> None:
        """Header style, number formats and borders. Failures are logged, never raised."""
        last_col = len(headers)
        data_first_row = first_row + 1 if include_header else first_row
        formats: List[Dict[str, Any]] = []

        if include_header:
            formats.append(
                {
                    "range": f"A{first_row}:{rowcol_to_a1(first_row, last_col)}",
                    "format": {
                        "textFormat": {"bold": True, "foregroundColor": HEADER_TEXT_COLOR},
                        "backgroundColor": HEADER_BACKGROUND,
                        "horizontalAlignment": "CENTER",
                    },
                }
            )

        if data_first_row <= last_row:
            for idx, header in enumerate(headers, start=1):
                if header in INTEGER_COLUMNS:
                    pattern = "#,##0"
                elif header in ONE_DECIMAL_COLUMNS:
                    pattern = "0.0"
                else:
                    continue
                formats.append(
                    {
                        "range": f"{rowcol_to_a1(data_first_row, idx)}:{rowcol_to_a1(last_row, idx)}",
                        "format": {"numberFormat": {"type": "NUMBER", "pattern": pattern}},
                    }
                )

        solid = {"style": "SOLID"}
        formats.append(
            {
                "range": f"{rowcol_to_a1(first_row, 1)}:{rowcol_to_a1(last_row, last_col)}",
                "format": {"borders": {"top": solid, "bottom": solid, "left": solid, "right": solid}},
            }
        )

        try:
            target.batch_format(formats)
        except Exception as e:
            logger.warning(f"Formatting '{target.title}' failed (data was written): {e}")
