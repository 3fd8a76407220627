"""
Per-sheet import counters and the aggregate import report.

Field names follow the wire format (camelCase) through aliases; Python code
uses the snake_case attribute names.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RowErrorDetail(BaseModel):
    """One failed row: spreadsheet row number plus a human readable reason."""
    row: int
    error: str


class SheetImportDetail(BaseModel):
    """Counters and row errors of one import phase."""
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[RowErrorDetail] = Field(default_factory=list)

    def record_imported(self):
        self.imported += 1

    def record_skipped(self):
        self.skipped += 1

    def record_failure(self, row: int, error: str):
        self.failed += 1
        self.errors.append(RowErrorDetail(row=row, error=error))

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.failed


class ImportSummary(BaseModel):
    """Totals across every phase of one import."""
    total_sheets: int = Field(0, alias='totalSheets')
    processed_sheets: int = Field(0, alias='processedSheets')
    total_records: int = Field(0, alias='totalRecords')
    imported: int = 0
    skipped: int = 0
    failed: int = 0

    class Config:
        populate_by_name = True


class ImportResult(BaseModel):
    """
    Outcome of one import call.

    A dry run and a committed run share the same shape; only ``message``
    (and the store) tell them apart. A storage failure carries no summary
    and no details.
    """
    success: bool
    message: str
    summary: Optional[ImportSummary] = None
    details: Dict[str, SheetImportDetail] = Field(default_factory=dict)

    class Config:
        populate_by_name = True

    def to_response(self) -> dict:
        """Serialize with wire (camelCase) field names."""
        return self.model_dump(by_alias=True)


def build_summary(details: Dict[str, SheetImportDetail], processed_sheets: int) -> ImportSummary:
    """
    Fold per-sheet details into the aggregate summary.

    Args:
        details: Detail per phase that ran
        processed_sheets: Number of phase sheets present in the workbook
    """
    imported = sum(detail.imported for detail in details.values())
    skipped = sum(detail.skipped for detail in details.values())
    failed = sum(detail.failed for detail in details.values())
    return ImportSummary(
        total_sheets=len(details),
        processed_sheets=processed_sheets,
        total_records=imported + skipped + failed,
        imported=imported,
        skipped=skipped,
        failed=failed
    )
