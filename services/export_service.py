"""
Workbook Export Service.

Projects committed relational data back into the import column contract:
one sheet per entity type, in import phase order, with a bold frozen header
row. A workbook produced here can be fed straight back into the importer.
"""

import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.models.schema import (
    Company, Function, Job, JobTask, People, Process, ProcessTask, Task
)
from services.exceptions import ExportSelectionError
from services.sheet_schema import (
    COMPANY_SHEET, FUNCTION_SHEET, JOB_SHEET, TASK_SHEET, PROCESS_SHEET,
    TASK_PROCESS_SHEET, JOB_TASK_SHEET, PEOPLE_SHEET, SHEET_COLUMNS, SHEET_ORDER
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CELL_LENGTH = 32000
TRUNCATION_MARKER = '... [truncated]'
LIST_DELIMITER = ','
MAX_COLUMN_WIDTH = 60


@dataclass
class ExportScope:
    """The set of records one export writes, grouped by sheet."""
    name: str
    companies: List[Company] = field(default_factory=list)
    functions: List[Function] = field(default_factory=list)
    jobs: List[Job] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    processes: List[Process] = field(default_factory=list)
    people: List[People] = field(default_factory=list)
    process_tasks: List[ProcessTask] = field(default_factory=list)
    job_tasks: List[JobTask] = field(default_factory=list)


def order_parents_first(functions: Iterable[Function]) -> List[Function]:
    """
    Order functions so a parent always precedes its children.

    Parents outside the given set impose no constraint.
    """
    pending = list(functions)
    in_scope = {function.function_id for function in pending}
    emitted = set()
    ordered = []

    while pending:
        remaining = []
        for function in pending:
            parent_id = function.parent_function_id
            if parent_id is None or parent_id not in in_scope or parent_id in emitted:
                ordered.append(function)
                emitted.add(function.function_id)
            else:
                remaining.append(function)
        if len(remaining) == len(pending):
            # Parent cycle; emit the rest as stored
            ordered.extend(remaining)
            break
        pending = remaining

    return ordered


class ExportService:
    """Builds organization workbooks from the store."""

    def __init__(self, db_session: Session, max_cell_length: int = DEFAULT_MAX_CELL_LENGTH):
        self.session = db_session
        self.max_cell_length = max_cell_length

    def truncate(self, value: Optional[str]) -> str:
        if not value:
            return ''
        if len(value) <= self.max_cell_length:
            return value
        return value[:self.max_cell_length] + TRUNCATION_MARKER

    # Scope resolution

    def collect_company_scope(
        self,
        company_id: Optional[int] = None,
        company_code: Optional[str] = None
    ) -> ExportScope:
        """Everything owned by one company, plus the links touching it."""
        if company_id is not None:
            company = self.session.get(Company, company_id)
            selector = f"id {company_id}"
        elif company_code:
            company = self.session.query(Company).filter_by(company_code=company_code).first()
            selector = f"code '{company_code}'"
        else:
            raise ExportSelectionError('A company id or company code is required')

        if company is None:
            raise ExportSelectionError(f"Company with {selector} not found")

        scope = ExportScope(name=company.company_code, companies=[company])
        scope.functions = (
            self.session.query(Function)
            .filter_by(company_id=company.company_id)
            .order_by(Function.function_id)
            .all()
        )
        scope.jobs = (
            self.session.query(Job)
            .filter_by(company_id=company.company_id)
            .order_by(Job.job_id)
            .all()
        )
        scope.tasks = (
            self.session.query(Task)
            .filter_by(task_company_id=company.company_id)
            .order_by(Task.task_id)
            .all()
        )
        scope.processes = (
            self.session.query(Process)
            .filter_by(company_id=company.company_id)
            .order_by(Process.process_id)
            .all()
        )
        scope.people = (
            self.session.query(People)
            .filter_by(company_id=company.company_id)
            .order_by(People.people_id)
            .all()
        )

        process_ids = [process.process_id for process in scope.processes]
        task_ids = [task.task_id for task in scope.tasks]
        job_ids = [job.job_id for job in scope.jobs]

        scope.process_tasks = (
            self.session.query(ProcessTask)
            .filter(or_(ProcessTask.process_id.in_(process_ids), ProcessTask.task_id.in_(task_ids)))
            .order_by(ProcessTask.process_id, ProcessTask.order, ProcessTask.task_id)
            .all()
        )
        scope.job_tasks = (
            self.session.query(JobTask)
            .filter(JobTask.job_id.in_(job_ids))
            .order_by(JobTask.job_id, JobTask.task_id)
            .all()
        )

        logger.info(
            f"Export scope for company {company.company_code}: {len(scope.functions)} functions, "
            f"{len(scope.jobs)} jobs, {len(scope.tasks)} tasks, {len(scope.processes)} processes, "
            f"{len(scope.people)} people"
        )
        return scope

    def collect_process_scope(self, process_ids: List[int]) -> ExportScope:
        """
        Closure of a set of processes.

        processes -> their tasks -> jobs linked to those tasks -> functions of
        those jobs -> owning companies; plus the people holding those jobs.
        Links are restricted to the closure.
        """
        ids = sorted(set(process_ids))
        processes = (
            self.session.query(Process)
            .filter(Process.process_id.in_(ids))
            .order_by(Process.process_id)
            .all()
        )
        if not processes:
            raise ExportSelectionError(
                f"No processes found for ids: {', '.join(str(pid) for pid in ids)}"
            )

        found_ids = [process.process_id for process in processes]
        missing = [pid for pid in ids if pid not in found_ids]
        if missing:
            logger.warning(f"Export ignoring unknown process ids: {missing}")

        scope = ExportScope(name='processes', processes=processes)
        scope.process_tasks = (
            self.session.query(ProcessTask)
            .filter(ProcessTask.process_id.in_(found_ids))
            .order_by(ProcessTask.process_id, ProcessTask.order, ProcessTask.task_id)
            .all()
        )

        task_ids = sorted({link.task_id for link in scope.process_tasks})
        scope.tasks = (
            self.session.query(Task)
            .filter(Task.task_id.in_(task_ids))
            .order_by(Task.task_id)
            .all()
        )
        scope.job_tasks = (
            self.session.query(JobTask)
            .filter(JobTask.task_id.in_(task_ids))
            .order_by(JobTask.job_id, JobTask.task_id)
            .all()
        )

        job_ids = sorted({link.job_id for link in scope.job_tasks})
        scope.jobs = (
            self.session.query(Job)
            .filter(Job.job_id.in_(job_ids))
            .order_by(Job.job_id)
            .all()
        )

        function_ids = sorted({job.function_id for job in scope.jobs})
        scope.functions = (
            self.session.query(Function)
            .filter(Function.function_id.in_(function_ids))
            .order_by(Function.function_id)
            .all()
        )

        scope.people = (
            self.session.query(People)
            .filter(People.job_id.in_(job_ids))
            .order_by(People.people_id)
            .all()
        )

        company_ids = (
            {process.company_id for process in scope.processes}
            | {task.task_company_id for task in scope.tasks}
            | {job.company_id for job in scope.jobs}
            | {function.company_id for function in scope.functions}
            | {person.company_id for person in scope.people}
        )
        scope.companies = (
            self.session.query(Company)
            .filter(Company.company_id.in_(sorted(company_ids)))
            .order_by(Company.company_id)
            .all()
        )

        logger.info(
            f"Export scope for {len(processes)} processes: {len(scope.tasks)} tasks, "
            f"{len(scope.jobs)} jobs, {len(scope.functions)} functions, "
            f"{len(scope.companies)} companies, {len(scope.people)} people"
        )
        return scope

    # Projection

    @staticmethod
    def _skill_columns(attachments) -> Dict[str, str]:
        ordered = sorted(attachments, key=lambda attachment: attachment.skill.name)
        return {
            'names': LIST_DELIMITER.join(attachment.skill.name for attachment in ordered),
            'ranks': LIST_DELIMITER.join(
                str(attachment.skill_level.level_rank) for attachment in ordered
            ),
        }

    def build_sheets(self, scope: ExportScope) -> Dict[str, List[Dict[str, Any]]]:
        """Project a scope into row dicts keyed by the import column names."""
        sheets: Dict[str, List[Dict[str, Any]]] = {name: [] for name in SHEET_ORDER}

        for company in scope.companies:
            sheets[COMPANY_SHEET].append({
                'Company Code': company.company_code,
                'Company Name': company.name,
            })

        for function in order_parents_first(scope.functions):
            sheets[FUNCTION_SHEET].append({
                'Function Name': function.name,
                'Function Code': function.function_code,
                'Background color': function.background_color or '',
                'Company Code': function.company.company_code,
                'Parent Function Code': function.parent.function_code if function.parent else '',
                'Description': self.truncate(function.overview),
            })

        for job in scope.jobs:
            skills = self._skill_columns(job.skills)
            sheets[JOB_SHEET].append({
                'Job Name': job.name,
                'Job Code': job.job_code,
                'Hourly Rate': float(job.hourly_rate) if job.hourly_rate is not None else '',
                'Max Hours Per Day': (
                    float(job.max_hours_per_day) if job.max_hours_per_day is not None else ''
                ),
                'Function': job.function.function_code,
                'Company Code': job.company.company_code,
                'Level Rank': job.job_level.level_rank if job.job_level else 1,
                'Skills': skills['names'],
                'Skill Rank': skills['ranks'],
                'Job Description': self.truncate(job.description),
            })

        for task in scope.tasks:
            skills = self._skill_columns(task.skills)
            job_codes = sorted(link.job.job_code for link in task.job_links)
            sheets[TASK_SHEET].append({
                'Task Name': task.task_name,
                'Task Code': task.task_code,
                'Capacity (minutes)': task.task_capacity_minutes,
                'Company Code': task.company.company_code,
                'Associated Jobs': LIST_DELIMITER.join(job_codes),
                'Req Skills': skills['names'],
                'Skill Rank': skills['ranks'],
                'Task Description': self.truncate(task.task_overview),
            })

        for process in scope.processes:
            sheets[PROCESS_SHEET].append({
                'Process Name': process.process_name,
                'Process Code': process.process_code,
                'Company Code': process.company.company_code,
                'Process Overview': self.truncate(process.process_overview),
            })

        for link in scope.process_tasks:
            sheets[TASK_PROCESS_SHEET].append({
                'TaskCode': link.task.task_code,
                'ProcessCode': link.process.process_code,
                'Order': link.order,
            })

        for link in scope.job_tasks:
            sheets[JOB_TASK_SHEET].append({
                'TaskCode': link.task.task_code,
                'JobCode': link.job.job_code,
            })

        for person in scope.people:
            sheets[PEOPLE_SHEET].append({
                'First Name': person.people_name,
                'Surname': person.people_surname or '',
                'Email': person.people_email,
                'Phone': person.people_phone or '',
                'Company Code': person.company.company_code,
                'Job Code': person.job.job_code if person.job else '',
                'Is Manager': 'Yes' if person.is_manager else 'No',
            })

        return sheets

    # Rendering

    def write_workbook(self, sheets: Dict[str, List[Dict[str, Any]]]) -> bytes:
        """Render projected sheets as .xlsx bytes."""
        workbook = openpyxl.Workbook()
        workbook.remove(workbook.active)
        header_font = Font(bold=True)

        for sheet_name in SHEET_ORDER:
            columns = SHEET_COLUMNS[sheet_name]
            worksheet = workbook.create_sheet(sheet_name)
            worksheet.append(columns)
            for cell in worksheet[1]:
                cell.font = header_font
            worksheet.freeze_panes = 'A2'

            widths = [len(column) for column in columns]
            for row in sheets.get(sheet_name, []):
                values = [row.get(column, '') for column in columns]
                worksheet.append([None if value == '' else value for value in values])
                for idx, value in enumerate(values):
                    widths[idx] = max(widths[idx], min(len(str(value)), MAX_COLUMN_WIDTH))

            for idx, width in enumerate(widths, start=1):
                worksheet.column_dimensions[get_column_letter(idx)].width = width + 2

        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def export_scope(self, scope: ExportScope) -> bytes:
        sheets = self.build_sheets(scope)
        data = self.write_workbook(sheets)
        logger.info(
            f"Exported workbook '{scope.name}' "
            f"({sum(len(rows) for rows in sheets.values())} rows, {len(data)} bytes)"
        )
        return data

    def export_company(
        self,
        company_id: Optional[int] = None,
        company_code: Optional[str] = None
    ) -> bytes:
        return self.export_scope(self.collect_company_scope(company_id, company_code))

    def export_processes(self, process_ids: List[int]) -> bytes:
        return self.export_scope(self.collect_process_scope(process_ids))
