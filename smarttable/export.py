"""
CSV export of the filtered (pre-pagination) rows.

Format: CSV, RFC 4180 quoting (fields containing a comma, double quote,
CR or LF are quoted, embedded quotes doubled), CRLF line endings, UTF-8
with a byte order mark by default so spreadsheet apps detect the encoding.
"""

import asyncio
import csv
import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

import pandas as pd

from smarttable.local_query import read_field
from smarttable.types import ColumnPreset

logger = logging.getLogger("smarttable.export")

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
UTF8_BOM = "\ufeff"

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\r\n\t]+')


@dataclass(frozen=True)
class ExportFile:
    """A finished export, ready to be sent as a download."""

    filename: str
    content: bytes
    media_type: str = CSV_MEDIA_TYPE


def to_display_string(value: Any) -> str:
    """Stringify one cell value."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return to_display_string(value.value)
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
        except ValueError:
            return str(value)
    return str(value)


def format_timestamp(moment: datetime) -> str:
    """yyyyMMdd-HHmm"""
    return moment.strftime("%Y%m%d-%H%M")


def with_csv_ext(name: str, moment: datetime) -> str:
    name = _UNSAFE_FILENAME.sub("_", (name or "").strip())
    if not name:
        return f"export-{format_timestamp(moment)}.csv"
    return name if name.lower().endswith(".csv") else f"{name}.csv"


def build_filename(base: str, moment: datetime, filename: Optional[str] = None) -> str:
    """Explicit filename if given, else `{base}-{timestamp}.csv`."""
    if filename:
        return with_csv_ext(filename, moment)
    base = (base or "").strip() or "export"
    return with_csv_ext(f"{base}-{format_timestamp(moment)}", moment)


def cell_value(row: Any, column: ColumnPreset) -> Any:
    if column.accessor is not None:
        return column.accessor(row)
    return read_field(row, column.field_name)


def build_csv(
    rows: Iterable[Any],
    columns: Sequence[ColumnPreset],
    map_row: Optional[Callable[[Any, int], Any]] = None,
    newline: str = "\r\n",
) -> str:
    """
    Render rows as CSV text (no BOM).

    Args:
        rows: Rows to export, in order
        columns: Visible columns in display order; titles form the header
        map_row: Optional per-row mapping applied before reading fields
        newline: Record separator

    Returns:
        CSV text, header first
    """
    titles = [column.title for column in columns]
    body: List[List[str]] = []
    for index, row in enumerate(rows):
        source = map_row(row, index) if map_row is not None else row
        body.append([to_display_string(cell_value(source, column)) for column in columns])

    # Every cell is already a string, so pandas does no number formatting
    frame = pd.DataFrame(body, columns=range(len(titles)), dtype=object)
    frame.columns = titles
    text = frame.to_csv(
        index=False,
        lineterminator=newline,
        quoting=csv.QUOTE_MINIMAL,
        quotechar='"',
        doublequote=True,
    )
    # to_csv terminates the last record too
    if text.endswith(newline):
        text = text[: -len(newline)]
    return text


class CsvExporter:
    """
    Export the filtered rows of a table.

    `exporting` is True while an export runs; calls made meanwhile return
    None without doing anything.
    """

    def __init__(
        self,
        filename_base: str = "export",
        with_bom: bool = True,
        newline: str = "\r\n",
        allow_empty: bool = False,
        sink: Optional[Callable[[ExportFile], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.filename_base = filename_base
        self.with_bom = with_bom
        self.newline = newline
        self.allow_empty = allow_empty
        self.sink = sink
        self.clock = clock or datetime.now
        self.exporting = False
        self.error: Optional[Exception] = None

    def render(
        self,
        rows: Sequence[Any],
        columns: Sequence[ColumnPreset],
        map_row: Optional[Callable[[Any, int], Any]] = None,
    ) -> bytes:
        text = build_csv(rows, columns, map_row=map_row, newline=self.newline)
        if self.with_bom:
            text = UTF8_BOM + text
        return text.encode("utf-8")

    async def export(
        self,
        rows: Sequence[Any],
        columns: Sequence[ColumnPreset],
        map_row: Optional[Callable[[Any, int], Any]] = None,
        filename: Optional[str] = None,
    ) -> Optional[ExportFile]:
        """
        Serialize `rows` restricted to `columns` and hand the file to the sink.

        Returns:
            The ExportFile, or None if skipped (already exporting, no
            columns, or no rows while empty exports are not allowed)
        """
        if self.exporting:
            logger.debug("Export already running, ignoring request")
            return None

        rows = list(rows or [])
        columns = list(columns or [])
        if not columns:
            logger.warning("Export skipped: no columns configured")
            return None
        if not rows and not self.allow_empty:
            logger.info("Export skipped: no rows")
            return None

        name = build_filename(self.filename_base, self.clock(), filename)
        self.exporting = True
        self.error = None
        try:
            content = await asyncio.to_thread(self.render, rows, columns, map_row)
            exported = ExportFile(filename=name, content=content)
            if self.sink is not None:
                result = self.sink(exported)
                if asyncio.iscoroutine(result):
                    await result
            logger.info(f"Exported {len(rows)} rows to {name}")
            return exported
        except Exception as e:
            self.error = e
            logger.exception(f"Export {name} failed")
            raise
        finally:
            self.exporting = False
