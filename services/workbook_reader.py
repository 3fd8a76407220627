"""
Workbook reading and sheet normalization.

``WorkbookReader`` decodes an uploaded .xlsx payload with openpyxl into
named sheets of header-keyed rows; ``normalize_rows`` turns those raw rows
into trimmed, string-only ``SheetRow`` values and drops blank rows.
"""

import logging
import zipfile
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Dict, Iterable, List, NamedTuple, Tuple

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from services.exceptions import WorkbookReadError

logger = logging.getLogger(__name__)


class RawRow(NamedTuple):
    """One data row as read from the sheet: untouched header keys and cell values."""
    row_number: int
    values: Dict[str, Any]


class SheetRow(NamedTuple):
    """One normalized data row: trimmed column names mapped to trimmed strings."""
    row_number: int
    values: Dict[str, str]


def cell_to_text(value: Any) -> str:
    """
    Coerce a cell value to its trimmed string form.

    Integral floats lose their ``.0`` so codes and ranks typed as numbers
    ("3" rather than "3.0") compare equal to their text form.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).replace('\xa0', ' ').strip()


def normalize_rows(raw_rows: Iterable[RawRow]) -> List[SheetRow]:
    """
    Normalize raw sheet rows.

    Every column name is trimmed, every value coerced to a trimmed string
    (missing -> ""), and rows whose values are all empty are dropped.
    """
    normalized = []
    for raw in raw_rows:
        values = {
            str(key).strip(): cell_to_text(value)
            for key, value in raw.values.items()
        }
        if any(values.values()):
            normalized.append(SheetRow(raw.row_number, values))
    return normalized


class WorkbookReader:
    """
    Read-only view of an uploaded workbook.

    The whole workbook is materialized on construction so the openpyxl
    handle can be closed immediately.
    """

    def __init__(self, data: bytes):
        self._sheets: Dict[str, Tuple[List[str], List[RawRow]]] = {}
        try:
            workbook = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise WorkbookReadError(
                f"Failed to read Excel file: {e}. Please ensure the file is a valid "
                f"Excel file (.xlsx) and not corrupted."
            ) from e

        try:
            for sheet_name in workbook.sheetnames:
                self._sheets[sheet_name] = self._read_worksheet(workbook[sheet_name])
        finally:
            workbook.close()

        logger.info(f"Read workbook with {len(self._sheets)} sheets: {', '.join(self._sheets)}")

    @staticmethod
    def _read_worksheet(worksheet) -> Tuple[List[str], List[RawRow]]:
        rows = worksheet.iter_rows(values_only=True)
        header_cells = next(rows, None)
        if header_cells is None:
            return [], []

        # Columns with a blank header carry no data we can address
        columns = [
            (idx, str(cell)) for idx, cell in enumerate(header_cells)
            if cell is not None and str(cell).strip()
        ]
        headers = [name for _, name in columns]

        raw_rows = []
        for row_number, cells in enumerate(rows, start=2):
            values = {
                name: cells[idx] if idx < len(cells) else None
                for idx, name in columns
            }
            raw_rows.append(RawRow(row_number, values))
        return headers, raw_rows

    def list_sheet_names(self) -> List[str]:
        return list(self._sheets)

    def has_sheet(self, name: str) -> bool:
        return name in self._sheets

    def get_headers(self, name: str) -> List[str]:
        """Trimmed header names of a sheet (empty if the sheet is absent)."""
        headers, _ = self._sheets.get(name, ([], []))
        return [header.strip() for header in headers]

    def read_sheet(self, name: str) -> List[RawRow]:
        if name not in self._sheets:
            logger.warning(f'Sheet "{name}" not found in Excel file')
            return []
        _, raw_rows = self._sheets[name]
        return list(raw_rows)
