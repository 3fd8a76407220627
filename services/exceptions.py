"""
Exceptions raised by the workbook import/export services.

Structural problems (``WorkbookReadError``, ``WorkbookStructureError``) are
raised before any transaction is opened. ``RowError`` never escapes a
reconciler: it is recorded against the offending row and the phase moves on.
"""

from typing import Dict, List, Optional


class WorkbookError(Exception):
    """Base class for workbook-level errors."""


class WorkbookReadError(WorkbookError):
    """The uploaded payload could not be decoded as a workbook."""


class WorkbookStructureError(WorkbookError):
    """Required sheets or columns are missing, or a sheet has unknown columns."""

    def __init__(
        self,
        missing_sheets: Optional[List[str]] = None,
        missing_columns: Optional[Dict[str, List[str]]] = None,
        unexpected_columns: Optional[Dict[str, List[str]]] = None
    ):
        self.missing_sheets = list(missing_sheets or [])
        self.missing_columns = dict(missing_columns or {})
        self.unexpected_columns = dict(unexpected_columns or {})
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        parts = []
        if self.missing_sheets:
            parts.append(
                f"Excel file is missing required sheets: {', '.join(self.missing_sheets)}"
            )
        for sheet, columns in self.missing_columns.items():
            parts.append(f"Sheet '{sheet}' is missing columns: {', '.join(columns)}")
        for sheet, columns in self.unexpected_columns.items():
            parts.append(f"Sheet '{sheet}' has unexpected columns: {', '.join(columns)}")
        return '; '.join(parts) or 'Invalid workbook structure'

    def to_dict(self) -> dict:
        return {
            'message': str(self),
            'missing_sheets': self.missing_sheets,
            'missing_columns': self.missing_columns,
            'unexpected_columns': self.unexpected_columns,
        }


class RowError(Exception):
    """A single sheet row cannot be reconciled (missing value, unknown code, bad number)."""


class ExportSelectionError(Exception):
    """The export selector matched nothing (unknown company, no such processes)."""
