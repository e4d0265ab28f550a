"""Spreadsheet export of a dataset document."""

from __future__ import annotations

import io
import json
from collections.abc import Sequence
from datetime import date
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from labelsync.records import Record

SHEET_TITLE = "Image Analytics"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def export_filename(today: date | None = None) -> str:
    """Download name for an export made on ``today``."""
    return f"image_analytics_{(today or date.today()).isoformat()}.xlsx"


def _columns(records: Sequence[Record]) -> list[str]:
    # Union of keys in first-seen order, so rows with extra fields still export
    columns: dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)


def _cell_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.dumps(value, ensure_ascii=False)


def build_workbook(records: Sequence[Record]) -> Workbook:
    """One header row plus one row per record, in document order."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    columns = _columns(records)
    ws.append(columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.freeze_panes = "A2"

    for record in records:
        ws.append([_cell_value(record.get(column)) for column in columns])

    for index, column in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(index)].width = max(10, min(len(column) + 2, 40))

    return wb


def export_xlsx(records: Sequence[Record]) -> bytes:
    """Render ``records`` as an .xlsx file."""
    buffer = io.BytesIO()
    build_workbook(records).save(buffer)
    return buffer.getvalue()
