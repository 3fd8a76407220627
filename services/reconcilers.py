"""
Entity reconcilers: one find-or-create routine per workbook sheet.

Every reconciler follows the same contract:

1. Look the row up by its natural key; if it exists the row is skipped,
   never overwritten.
2. Resolve required references by natural key; an unresolved reference is
   a row failure naming the missing code.
3. Resolve optional references, falling back to null.
4. Create the record.
5. Job and Task rows attach their skills whether the parent was created or
   already existed.

Rows run in sheet order, each inside its own SAVEPOINT on the shared
session, so a failing row rolls back only its own writes and everything
earlier in the import stays visible to later rows.
"""

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Iterable, Optional, Type

from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from backend.models.schema import (
    Company, Function, Job, JobTask, People, Process, ProcessTask, Task
)
from services import lookups
from services.exceptions import RowError
from services.import_summary import SheetImportDetail
from services.sheet_schema import (
    COMPANY_SHEET, FUNCTION_SHEET, JOB_SHEET, TASK_SHEET, PROCESS_SHEET,
    TASK_PROCESS_SHEET, JOB_TASK_SHEET, PEOPLE_SHEET,
    CompanyRow, FunctionRow, JobRow, TaskRow, ProcessRow, TaskProcessRow,
    JobTaskRow, PeopleRow, SheetRowModel
)

logger = logging.getLogger(__name__)

DEFAULT_HOURLY_RATE = Decimal('0')
DEFAULT_MAX_HOURS_PER_DAY = Decimal('8')
DEFAULT_CAPACITY_MINUTES = 0
DEFAULT_ORDER = 0

TRUTHY_VALUES = {'yes', 'y', 'true', '1'}


class RowOutcome(str, Enum):
    IMPORTED = 'imported'
    SKIPPED = 'skipped'


def require(value: str, column: str) -> str:
    if not value:
        raise RowError(f"{column} is required")
    return value


def parse_decimal(value: str, column: str, default: Decimal) -> Decimal:
    if not value:
        return default
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise RowError(f"Invalid {column} '{value}': expected a number")
    if not number.is_finite():
        raise RowError(f"Invalid {column} '{value}': expected a number")
    return number


def parse_int(value: str, column: str, default: int) -> int:
    if not value:
        return default
    try:
        number = float(value)
    except ValueError:
        raise RowError(f"Invalid {column} '{value}': expected a whole number")
    if not number.is_integer():
        raise RowError(f"Invalid {column} '{value}': expected a whole number")
    if abs(number) > lookups.MAX_INTEGER:
        raise RowError(f"Invalid {column} '{value}': out of range")
    return int(number)


def parse_bool(value: str) -> bool:
    return value.strip().lower() in TRUTHY_VALUES


def optional_text(value: str) -> Optional[str]:
    return value or None


class EntityReconciler:
    """
    Base reconciler: drives the per-row SAVEPOINT loop and bookkeeping.

    Subclasses implement ``reconcile_row`` and raise ``RowError`` for any
    row-level problem.
    """

    sheet_name = ''

    def __init__(self, session: Session, default_company_code: Optional[str] = None):
        self.session = session
        self.default_company_code = default_company_code

    def reconcile(self, rows: Iterable[SheetRowModel]) -> SheetImportDetail:
        detail = SheetImportDetail()

        for row in rows:
            try:
                with self.session.begin_nested():
                    outcome = self.reconcile_row(row)
            except RowError as e:
                logger.warning(f"{self.sheet_name} row {row.row_number} failed: {e}")
                detail.record_failure(row.row_number, str(e))
                continue
            except (IntegrityError, DataError) as e:
                message = f"Database rejected row: {getattr(e, 'orig', e)}"
                logger.warning(f"{self.sheet_name} row {row.row_number} failed: {message}")
                detail.record_failure(row.row_number, message)
                continue

            if outcome is RowOutcome.IMPORTED:
                detail.record_imported()
            else:
                detail.record_skipped()

        logger.info(
            f"{self.sheet_name}: {detail.imported} imported, "
            f"{detail.skipped} skipped, {detail.failed} failed"
        )
        return detail

    def reconcile_row(self, row) -> RowOutcome:
        raise NotImplementedError

    def resolve_company(self, code: str) -> Company:
        code = code or (self.default_company_code or '')
        require(code, 'Company Code')
        company = lookups.find_company(self.session, code)
        if company is None:
            raise RowError(f'Company "{code}" not found')
        return company

    def create(self, instance):
        self.session.add(instance)
        self.session.flush()
        return instance


class CompanyReconciler(EntityReconciler):
    sheet_name = COMPANY_SHEET

    def reconcile_row(self, row: CompanyRow) -> RowOutcome:
        code = require(row.company_code, 'Company Code')
        if lookups.find_company(self.session, code) is not None:
            return RowOutcome.SKIPPED

        name = require(row.company_name, 'Company Name')
        self.create(Company(company_code=code, name=name))
        return RowOutcome.IMPORTED


class FunctionReconciler(EntityReconciler):
    sheet_name = FUNCTION_SHEET

    def reconcile_row(self, row: FunctionRow) -> RowOutcome:
        code = require(row.function_code, 'Function Code')
        if lookups.find_function(self.session, code) is not None:
            return RowOutcome.SKIPPED

        name = require(row.function_name, 'Function Name')
        company = self.resolve_company(row.company_code)

        parent = None
        if row.parent_function_code:
            parent = lookups.find_function(self.session, row.parent_function_code)
            if parent is None:
                logger.info(
                    f"Function {code}: parent function '{row.parent_function_code}' "
                    f"not found, importing without parent"
                )

        self.create(Function(
            function_code=code,
            name=name,
            company_id=company.company_id,
            background_color=optional_text(row.background_color),
            parent_function_id=parent.function_id if parent else None,
            overview=optional_text(row.description)
        ))
        return RowOutcome.IMPORTED


class JobReconciler(EntityReconciler):
    sheet_name = JOB_SHEET

    def reconcile_row(self, row: JobRow) -> RowOutcome:
        code = require(row.job_code, 'Job Code')
        job = lookups.find_job(self.session, code)
        outcome = RowOutcome.SKIPPED

        if job is None:
            name = require(row.job_name, 'Job Name')
            company = self.resolve_company(row.company_code)

            function_code = require(row.function_code, 'Function')
            function = lookups.find_function(self.session, function_code)
            if function is None:
                raise RowError(f'Function "{function_code}" not found')

            level_rank = (
                lookups.parse_rank(row.level_rank, 'Level Rank')
                if row.level_rank else lookups.DEFAULT_RANK
            )
            job_level = lookups.get_or_create_job_level(self.session, level_rank)

            job = self.create(Job(
                job_code=code,
                name=name,
                company_id=company.company_id,
                function_id=function.function_id,
                job_level_id=job_level.id,
                hourly_rate=parse_decimal(row.hourly_rate, 'Hourly Rate', DEFAULT_HOURLY_RATE),
                max_hours_per_day=parse_decimal(
                    row.max_hours_per_day, 'Max Hours Per Day', DEFAULT_MAX_HOURS_PER_DAY
                ),
                description=optional_text(row.job_description)
            ))
            outcome = RowOutcome.IMPORTED

        attached = lookups.attach_job_skills(self.session, job, row.skills, row.skill_rank)
        if attached and outcome is RowOutcome.SKIPPED:
            logger.info(f"Job {code}: attached {attached} new skills to existing job")
        return outcome


class TaskReconciler(EntityReconciler):
    sheet_name = TASK_SHEET

    def reconcile_row(self, row: TaskRow) -> RowOutcome:
        code = require(row.task_code, 'Task Code')
        task = lookups.find_task(self.session, code)
        outcome = RowOutcome.SKIPPED

        if task is None:
            name = require(row.task_name, 'Task Name')
            company = self.resolve_company(row.company_code)

            task = self.create(Task(
                task_code=code,
                task_name=name,
                task_company_id=company.company_id,
                task_capacity_minutes=parse_int(
                    row.capacity_minutes, 'Capacity (minutes)', DEFAULT_CAPACITY_MINUTES
                ),
                task_overview=optional_text(row.task_description)
            ))
            outcome = RowOutcome.IMPORTED

        # Associated Jobs is informational; job links come from the Job-Task sheet
        attached = lookups.attach_task_skills(self.session, task, row.req_skills, row.skill_rank)
        if attached and outcome is RowOutcome.SKIPPED:
            logger.info(f"Task {code}: attached {attached} new skills to existing task")
        return outcome


class ProcessReconciler(EntityReconciler):
    sheet_name = PROCESS_SHEET

    def reconcile_row(self, row: ProcessRow) -> RowOutcome:
        code = require(row.process_code, 'Process Code')
        if lookups.find_process(self.session, code) is not None:
            return RowOutcome.SKIPPED

        name = require(row.process_name, 'Process Name')
        company = self.resolve_company(row.company_code)

        self.create(Process(
            process_code=code,
            process_name=name,
            company_id=company.company_id,
            process_overview=optional_text(row.process_overview)
        ))
        return RowOutcome.IMPORTED


class TaskProcessReconciler(EntityReconciler):
    """Links tasks to processes. A link naming an unknown task or process is skipped."""

    sheet_name = TASK_PROCESS_SHEET

    def reconcile_row(self, row: TaskProcessRow) -> RowOutcome:
        task = lookups.find_task(self.session, row.task_code) if row.task_code else None
        process = lookups.find_process(self.session, row.process_code) if row.process_code else None
        if task is None or process is None:
            logger.warning(
                f"Task-Process row {row.row_number}: task '{row.task_code}' or "
                f"process '{row.process_code}' not found, skipping link"
            )
            return RowOutcome.SKIPPED

        if self.session.get(ProcessTask, (process.process_id, task.task_id)) is not None:
            return RowOutcome.SKIPPED

        self.create(ProcessTask(
            process_id=process.process_id,
            task_id=task.task_id,
            order=parse_int(row.order, 'Order', DEFAULT_ORDER)
        ))
        return RowOutcome.IMPORTED


class JobTaskReconciler(EntityReconciler):
    """Links jobs to tasks. A link naming an unknown job or task is skipped."""

    sheet_name = JOB_TASK_SHEET

    def reconcile_row(self, row: JobTaskRow) -> RowOutcome:
        task = lookups.find_task(self.session, row.task_code) if row.task_code else None
        job = lookups.find_job(self.session, row.job_code) if row.job_code else None
        if task is None or job is None:
            logger.warning(
                f"Job-Task row {row.row_number}: task '{row.task_code}' or "
                f"job '{row.job_code}' not found, skipping link"
            )
            return RowOutcome.SKIPPED

        if self.session.get(JobTask, (job.job_id, task.task_id)) is not None:
            return RowOutcome.SKIPPED

        self.create(JobTask(job_id=job.job_id, task_id=task.task_id))
        return RowOutcome.IMPORTED


class PeopleReconciler(EntityReconciler):
    sheet_name = PEOPLE_SHEET

    def reconcile_row(self, row: PeopleRow) -> RowOutcome:
        email = require(row.email, 'Email')
        if lookups.find_person(self.session, email) is not None:
            return RowOutcome.SKIPPED

        first_name = require(row.first_name, 'First Name')
        company = self.resolve_company(row.company_code)

        job = None
        if row.job_code:
            job = lookups.find_job(self.session, row.job_code)
            if job is None:
                raise RowError(f'Job "{row.job_code}" not found')

        self.create(People(
            people_name=first_name,
            people_surname=optional_text(row.surname),
            people_email=email,
            people_phone=optional_text(row.phone),
            company_id=company.company_id,
            job_id=job.job_id if job else None,
            is_manager=parse_bool(row.is_manager)
        ))
        return RowOutcome.IMPORTED


RECONCILERS: Dict[str, Type[EntityReconciler]] = {
    COMPANY_SHEET: CompanyReconciler,
    FUNCTION_SHEET: FunctionReconciler,
    JOB_SHEET: JobReconciler,
    TASK_SHEET: TaskReconciler,
    PROCESS_SHEET: ProcessReconciler,
    TASK_PROCESS_SHEET: TaskProcessReconciler,
    JOB_TASK_SHEET: JobTaskReconciler,
    PEOPLE_SHEET: PeopleReconciler,
}
