# spreadsheet_io.py - Excel (.xlsx) row reader and record export
#
# Export uses the same column labels and display texts the importer
# recognizes, so an exported workbook can be imported again.

import logging
from pathlib import Path
from typing import Any, Iterable

from openpyxl import Workbook, load_workbook

from domain.models import InstrumentRecord, display_label
from file_utils import with_suffix
from services.import_service import COLUMN_MAP

logger = logging.getLogger(__name__)

# First label wins for attributes with synonyms (部门 before 科室)
EXPORT_COLUMNS: list[tuple[str, str]] = []
for _label, _attr in COLUMN_MAP.items():
    if _attr not in {a for _, a in EXPORT_COLUMNS}:
        EXPORT_COLUMNS.append((_label, _attr))


def read_xlsx_rows(path: str | Path) -> list[dict[str, Any]]:
    """
    Rows of the first worksheet as {header: value}. Row 1 is the header;
    empty cells are left out and blank rows are skipped.
    """
    wb = load_workbook(filename=str(path), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        labels = [None if h is None else str(h).strip() for h in header]
        out = []
        for values in rows:
            row = {
                label: value
                for label, value in zip(labels, values)
                if label and value is not None and value != ""
            }
            if row:
                out.append(row)
        return out
    finally:
        wb.close()


def export_records_xlsx(records: Iterable[InstrumentRecord], path: str | Path) -> int:
    """Write records to an .xlsx file. Returns the number of rows written."""
    path = with_suffix(path, ".xlsx")
    wb = Workbook()
    ws = wb.active
    if ws is None:
        ws = wb.create_sheet("Instruments", 0)
    ws.title = "Instruments"
    for col, (label, _attr) in enumerate(EXPORT_COLUMNS, 1):
        ws.cell(row=1, column=col, value=label)
    count = 0
    for count, record in enumerate(records, 1):
        for col, (_label, attr) in enumerate(EXPORT_COLUMNS, 1):
            value = getattr(record, attr)
            ws.cell(row=count + 1, column=col, value="" if value is None else display_label(value))
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    logger.info("Exported %s instrument(s) to %s", count, path)
    return count
