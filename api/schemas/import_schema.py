"""
Import-related Pydantic schemas.

This module contains schemas for workbook validation and background import
responses. The synchronous import response is ``services.import_summary.ImportResult``.
"""

from typing import Dict, List
from pydantic import BaseModel, Field
from api.schemas.job_schema import JobCreateResponse


class WorkbookValidationResponse(BaseModel):
    """Structural check of an uploaded workbook; nothing is written."""

    valid: bool = Field(..., description="Whether the workbook can be imported")
    missing_sheets: List[str] = Field(default_factory=list, description="Required sheets not found")
    missing_columns: Dict[str, List[str]] = Field(
        default_factory=dict, description="Contract columns absent, per sheet"
    )
    unexpected_columns: Dict[str, List[str]] = Field(
        default_factory=dict, description="Columns outside the contract, per sheet"
    )
    found_sheets: List[str] = Field(default_factory=list, description="All sheets in the workbook")
    row_counts: Dict[str, int] = Field(
        default_factory=dict, description="Non-blank data rows per recognized sheet"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "valid": False,
                "missing_sheets": ["Job-Task"],
                "missing_columns": {},
                "unexpected_columns": {"Job": ["Notes"]},
                "found_sheets": ["Company", "Function", "Job", "Task", "Process", "Task-Process"],
                "row_counts": {"Company": 1, "Function": 4, "Job": 12}
            }
        }


class ImportStartResponse(JobCreateResponse):
    """
    Response when a background import is initiated.
    """

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "abc-123-def-456",
                "message": "Workbook import job started",
                "status_url": "/api/import/job/abc-123-def-456",
                "websocket_url": "/ws/import/abc-123-def-456"
            }
        }
