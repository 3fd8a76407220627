"""
Sheet column contracts, typed rows and structural validation.

Each importable sheet is described by an immutable pydantic model whose
field aliases are the exact (case- and spacing-sensitive) column headers.
The same aliases drive the exporter, so an exported workbook always
satisfies the import contract.
"""

import logging
from typing import ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, Field

from services.exceptions import WorkbookStructureError
from services.workbook_reader import WorkbookReader, normalize_rows

logger = logging.getLogger(__name__)

COMPANY_SHEET = 'Company'
FUNCTION_SHEET = 'Function'
JOB_SHEET = 'Job'
TASK_SHEET = 'Task'
PROCESS_SHEET = 'Process'
TASK_PROCESS_SHEET = 'Task-Process'
JOB_TASK_SHEET = 'Job-Task'
PEOPLE_SHEET = 'People'

# Import phase order; export writes sheets in the same order
SHEET_ORDER = [
    COMPANY_SHEET,
    FUNCTION_SHEET,
    JOB_SHEET,
    TASK_SHEET,
    PROCESS_SHEET,
    TASK_PROCESS_SHEET,
    JOB_TASK_SHEET,
    PEOPLE_SHEET,
]

REQUIRED_SHEETS = [name for name in SHEET_ORDER if name != PEOPLE_SHEET]


class SheetRowModel(BaseModel):
    """Base class for typed sheet rows."""

    sheet_name: ClassVar[str] = ''

    row_number: int = Field(2, description="1-based spreadsheet row (header is row 1)")

    class Config:
        frozen = True
        populate_by_name = True
        extra = 'forbid'

    @classmethod
    def columns(cls) -> List[str]:
        """Header contract of the sheet, in column order."""
        return [field.alias for field in cls.model_fields.values() if field.alias]

    @classmethod
    def from_values(cls, row_number: int, values: Dict[str, str]):
        return cls.model_validate({**values, 'row_number': row_number})


class CompanyRow(SheetRowModel):
    sheet_name: ClassVar[str] = COMPANY_SHEET

    company_code: str = Field('', alias='Company Code')
    company_name: str = Field('', alias='Company Name')


class FunctionRow(SheetRowModel):
    sheet_name: ClassVar[str] = FUNCTION_SHEET

    function_name: str = Field('', alias='Function Name')
    function_code: str = Field('', alias='Function Code')
    background_color: str = Field('', alias='Background color')
    company_code: str = Field('', alias='Company Code')
    parent_function_code: str = Field('', alias='Parent Function Code')
    description: str = Field('', alias='Description')


class JobRow(SheetRowModel):
    sheet_name: ClassVar[str] = JOB_SHEET

    job_name: str = Field('', alias='Job Name')
    job_code: str = Field('', alias='Job Code')
    hourly_rate: str = Field('', alias='Hourly Rate')
    max_hours_per_day: str = Field('', alias='Max Hours Per Day')
    function_code: str = Field('', alias='Function')
    company_code: str = Field('', alias='Company Code')
    level_rank: str = Field('', alias='Level Rank')
    skills: str = Field('', alias='Skills')
    skill_rank: str = Field('', alias='Skill Rank')
    job_description: str = Field('', alias='Job Description')


class TaskRow(SheetRowModel):
    sheet_name: ClassVar[str] = TASK_SHEET

    task_name: str = Field('', alias='Task Name')
    task_code: str = Field('', alias='Task Code')
    capacity_minutes: str = Field('', alias='Capacity (minutes)')
    company_code: str = Field('', alias='Company Code')
    associated_jobs: str = Field('', alias='Associated Jobs')
    req_skills: str = Field('', alias='Req Skills')
    skill_rank: str = Field('', alias='Skill Rank')
    task_description: str = Field('', alias='Task Description')


class ProcessRow(SheetRowModel):
    sheet_name: ClassVar[str] = PROCESS_SHEET

    process_name: str = Field('', alias='Process Name')
    process_code: str = Field('', alias='Process Code')
    company_code: str = Field('', alias='Company Code')
    process_overview: str = Field('', alias='Process Overview')


class TaskProcessRow(SheetRowModel):
    sheet_name: ClassVar[str] = TASK_PROCESS_SHEET

    task_code: str = Field('', alias='TaskCode')
    process_code: str = Field('', alias='ProcessCode')
    order: str = Field('', alias='Order')


class JobTaskRow(SheetRowModel):
    sheet_name: ClassVar[str] = JOB_TASK_SHEET

    task_code: str = Field('', alias='TaskCode')
    job_code: str = Field('', alias='JobCode')


class PeopleRow(SheetRowModel):
    sheet_name: ClassVar[str] = PEOPLE_SHEET

    first_name: str = Field('', alias='First Name')
    surname: str = Field('', alias='Surname')
    email: str = Field('', alias='Email')
    phone: str = Field('', alias='Phone')
    company_code: str = Field('', alias='Company Code')
    job_code: str = Field('', alias='Job Code')
    is_manager: str = Field('', alias='Is Manager')


ROW_MODELS: Dict[str, Type[SheetRowModel]] = {
    model.sheet_name: model
    for model in (
        CompanyRow, FunctionRow, JobRow, TaskRow, ProcessRow,
        TaskProcessRow, JobTaskRow, PeopleRow,
    )
}

SHEET_COLUMNS: Dict[str, List[str]] = {
    name: ROW_MODELS[name].columns() for name in SHEET_ORDER
}


class StructureValidation(BaseModel):
    """Outcome of the structural check of a workbook."""

    valid: bool
    missing_sheets: List[str] = Field(default_factory=list)
    missing_columns: Dict[str, List[str]] = Field(default_factory=dict)
    unexpected_columns: Dict[str, List[str]] = Field(default_factory=dict)


def validate_structure(sheet_names: List[str]) -> StructureValidation:
    """Check that every sheet required for import is present."""
    present = set(sheet_names)
    missing = [name for name in REQUIRED_SHEETS if name not in present]
    return StructureValidation(valid=not missing, missing_sheets=missing)


def validate_headers(sheet_name: str, headers: List[str]) -> Dict[str, List[str]]:
    """
    Compare a sheet's headers against its column contract.

    Returns:
        ``{'missing': [...], 'unexpected': [...]}``
    """
    expected = SHEET_COLUMNS[sheet_name]
    found = [header.strip() for header in headers]
    return {
        'missing': [column for column in expected if column not in found],
        'unexpected': [column for column in found if column not in expected],
    }


def validate_workbook(reader: WorkbookReader) -> StructureValidation:
    """Full structural check: required sheets plus the header contract of every present sheet."""
    result = validate_structure(reader.list_sheet_names())

    for sheet_name in SHEET_ORDER:
        if not reader.has_sheet(sheet_name):
            continue
        header_check = validate_headers(sheet_name, reader.get_headers(sheet_name))
        if header_check['missing']:
            result.missing_columns[sheet_name] = header_check['missing']
        if header_check['unexpected']:
            result.unexpected_columns[sheet_name] = header_check['unexpected']

    result.valid = not (result.missing_sheets or result.missing_columns or result.unexpected_columns)
    return result


def count_rows(reader: WorkbookReader) -> Dict[str, int]:
    """Data rows per recognized sheet, blank rows excluded."""
    return {
        name: len(normalize_rows(reader.read_sheet(name)))
        for name in SHEET_ORDER if reader.has_sheet(name)
    }


class ParsedWorkbook:
    """
    Typed rows per sheet, valid for the duration of one import call.

    Sheets absent from the workbook (only People may be) map to an empty list.
    """

    def __init__(self, rows: Dict[str, List[SheetRowModel]], sheet_names: Optional[List[str]] = None):
        self.rows = {name: list(rows.get(name, [])) for name in SHEET_ORDER}
        self.sheet_names = list(sheet_names if sheet_names is not None else rows.keys())

    def __getitem__(self, sheet_name: str) -> List[SheetRowModel]:
        return self.rows[sheet_name]

    def has_sheet(self, sheet_name: str) -> bool:
        return sheet_name in self.sheet_names

    @property
    def total_rows(self) -> int:
        return sum(len(rows) for rows in self.rows.values())


def parse_workbook(reader: WorkbookReader) -> ParsedWorkbook:
    """
    Validate and parse a workbook into typed rows.

    Raises:
        WorkbookStructureError: If required sheets or columns are missing,
            or a sheet carries columns outside its contract.
    """
    validation = validate_workbook(reader)
    if not validation.valid:
        raise WorkbookStructureError(
            missing_sheets=validation.missing_sheets,
            missing_columns=validation.missing_columns,
            unexpected_columns=validation.unexpected_columns
        )

    known = set(SHEET_ORDER)
    ignored = [name for name in reader.list_sheet_names() if name not in known]
    if ignored:
        logger.info(f"Ignoring sheets outside the import contract: {', '.join(ignored)}")

    rows = {}
    for sheet_name in SHEET_ORDER:
        if not reader.has_sheet(sheet_name):
            continue
        model = ROW_MODELS[sheet_name]
        normalized = normalize_rows(reader.read_sheet(sheet_name))
        rows[sheet_name] = [model.from_values(row.row_number, row.values) for row in normalized]
        logger.debug(f"Parsed {len(rows[sheet_name])} rows from sheet '{sheet_name}'")

    present = [name for name in SHEET_ORDER if reader.has_sheet(name)]
    return ParsedWorkbook(rows, sheet_names=present)
