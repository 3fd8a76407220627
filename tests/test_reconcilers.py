"""
Tests for the per-sheet reconcilers.

Each reconciler is exercised directly with typed rows, so these tests pin
down find-or-create, reference resolution and row isolation without going
through a workbook.
"""

from decimal import Decimal

import pytest

from backend.models.schema import (
    Company, Function, Job, JobTask, People, Process, ProcessTask, Task, TaskSkill
)
from services.reconcilers import (
    CompanyReconciler, FunctionReconciler, JobReconciler, JobTaskReconciler,
    PeopleReconciler, ProcessReconciler, TaskProcessReconciler, TaskReconciler,
    parse_bool, parse_decimal, parse_int
)
from services.exceptions import RowError
from services.sheet_schema import (
    CompanyRow, FunctionRow, JobRow, JobTaskRow, PeopleRow, ProcessRow, TaskProcessRow, TaskRow
)


def rows(model, *values_list, start=2):
    return [model.from_values(start + idx, values) for idx, values in enumerate(values_list)]


@pytest.fixture
def acme(session):
    """Store holding company ACME with function OPS."""
    company = Company(company_code='ACME', name='Acme Corp')
    session.add(company)
    session.flush()
    session.add(Function(function_code='OPS', name='Operations', company_id=company.company_id))
    session.flush()
    return company


class TestValueParsing:
    """Test cell value parsers."""

    def test_parse_decimal(self):
        assert parse_decimal('', 'Hourly Rate', Decimal('0')) == Decimal('0')
        assert parse_decimal('32.5', 'Hourly Rate', Decimal('0')) == Decimal('32.5')
        with pytest.raises(RowError):
            parse_decimal('lots', 'Hourly Rate', Decimal('0'))

    def test_parse_int(self):
        assert parse_int('', 'Order', 0) == 0
        assert parse_int('4.0', 'Order', 0) == 4
        with pytest.raises(RowError):
            parse_int('first', 'Order', 0)
        with pytest.raises(RowError):
            parse_int('1e30', 'Order', 0)
        with pytest.raises(RowError):
            parse_int('-1e30', 'Capacity (minutes)', 0)
        assert parse_int(str(2 ** 31 - 1), 'Order', 0) == 2 ** 31 - 1

    @pytest.mark.parametrize('value,expected', [
        ('Yes', True), ('y', True), ('TRUE', True), ('1', True),
        ('No', False), ('', False), ('maybe', False),
    ])
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected


class TestCompanyReconciler:
    """Test company import."""

    def test_creates_company(self, session):
        detail = CompanyReconciler(session).reconcile(
            rows(CompanyRow, {'Company Code': 'ACME', 'Company Name': 'Acme Corp'})
        )

        assert detail.model_dump() == {'imported': 1, 'skipped': 0, 'failed': 0, 'errors': []}
        assert session.query(Company).filter_by(company_code='ACME').one().name == 'Acme Corp'

    def test_existing_company_is_skipped_not_updated(self, session, acme):
        detail = CompanyReconciler(session).reconcile(
            rows(CompanyRow, {'Company Code': 'ACME', 'Company Name': 'Renamed'})
        )

        assert detail.skipped == 1
        assert session.query(Company).filter_by(company_code='ACME').one().name == 'Acme Corp'

    def test_missing_name_fails_row(self, session):
        detail = CompanyReconciler(session).reconcile(
            rows(CompanyRow, {'Company Code': 'ACME'})
        )

        assert detail.failed == 1
        assert detail.errors[0].row == 2
        assert 'Company Name' in detail.errors[0].error


class TestFunctionReconciler:
    """Test function import."""

    def test_unknown_company_fails_row(self, session):
        detail = FunctionReconciler(session).reconcile(
            rows(FunctionRow, {'Function Code': 'F1', 'Function Name': 'Finance', 'Company Code': 'GHOST'})
        )

        assert detail.failed == 1
        assert detail.errors[0].row == 2
        assert 'GHOST' in detail.errors[0].error
        assert session.query(Function).filter_by(function_code='F1').first() is None

    def test_parent_resolved_within_same_sheet(self, session, acme):
        detail = FunctionReconciler(session).reconcile(rows(
            FunctionRow,
            {'Function Code': 'FAB', 'Function Name': 'Fabrication', 'Company Code': 'ACME',
             'Parent Function Code': 'OPS'},
            {'Function Code': 'PAINT', 'Function Name': 'Paint', 'Company Code': 'ACME',
             'Parent Function Code': 'FAB'},
        ))

        assert detail.imported == 2
        paint = session.query(Function).filter_by(function_code='PAINT').one()
        assert paint.parent.function_code == 'FAB'

    def test_unknown_parent_imports_without_parent(self, session, acme):
        detail = FunctionReconciler(session).reconcile(rows(
            FunctionRow,
            {'Function Code': 'FAB', 'Function Name': 'Fabrication', 'Company Code': 'ACME',
             'Parent Function Code': 'LATER'},
        ))

        assert detail.imported == 1
        assert session.query(Function).filter_by(function_code='FAB').one().parent_function_id is None

    def test_default_company_fills_blank_code(self, session, acme):
        detail = FunctionReconciler(session, default_company_code='ACME').reconcile(rows(
            FunctionRow, {'Function Code': 'HR', 'Function Name': 'People'}
        ))

        assert detail.imported == 1
        assert session.query(Function).filter_by(function_code='HR').one().company_id == acme.company_id


class TestJobReconciler:
    """Test job import."""

    def test_creates_job_with_defaults(self, session, acme):
        detail = JobReconciler(session).reconcile(rows(
            JobRow, {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'OPS', 'Company Code': 'ACME'}
        ))

        assert detail.imported == 1
        job = session.query(Job).filter_by(job_code='J1').one()
        assert job.job_level.level_rank == 1
        assert job.job_level.level_name == 'NOVICE'
        assert Decimal(job.hourly_rate) == Decimal('0')
        assert Decimal(job.max_hours_per_day) == Decimal('8')

    def test_unknown_function_fails_row(self, session, acme):
        detail = JobReconciler(session).reconcile(rows(
            JobRow, {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'NOPE', 'Company Code': 'ACME'}
        ))

        assert detail.failed == 1
        assert 'NOPE' in detail.errors[0].error

    def test_bad_number_rolls_back_only_that_row(self, session, acme):
        detail = JobReconciler(session).reconcile(rows(
            JobRow,
            {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'OPS', 'Company Code': 'ACME',
             'Hourly Rate': 'plenty', 'Skills': 'Filing'},
            {'Job Code': 'J2', 'Job Name': 'Typist', 'Function': 'OPS', 'Company Code': 'ACME'},
        ))

        assert (detail.imported, detail.failed) == (1, 1)
        assert detail.errors[0].row == 2
        assert 'Hourly Rate' in detail.errors[0].error
        assert session.query(Job).filter_by(job_code='J1').first() is None
        assert session.query(Job).filter_by(job_code='J2').one() is not None

    def test_existing_job_gains_new_skills(self, session, acme):
        reconciler = JobReconciler(session)
        reconciler.reconcile(rows(
            JobRow, {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'OPS', 'Company Code': 'ACME',
                     'Skills': 'Filing'}
        ))
        detail = reconciler.reconcile(rows(
            JobRow, {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'OPS', 'Company Code': 'ACME',
                     'Skills': 'Filing,Typing', 'Skill Rank': '2,2'}
        ))

        assert detail.skipped == 1
        job = session.query(Job).filter_by(job_code='J1').one()
        session.refresh(job)
        assert sorted(link.skill.name for link in job.skills) == ['Filing', 'Typing']

    def test_invalid_level_rank_fails_row(self, session, acme):
        detail = JobReconciler(session).reconcile(rows(
            JobRow, {'Job Code': 'J1', 'Job Name': 'Clerk', 'Function': 'OPS', 'Company Code': 'ACME',
                     'Level Rank': '0'}
        ))

        assert detail.failed == 1
        assert 'Level Rank' in detail.errors[0].error


class TestTaskAndProcessReconcilers:
    """Test task and process import."""

    def test_task_with_skills(self, session, acme):
        detail = TaskReconciler(session).reconcile(rows(
            TaskRow, {'Task Code': 'T1', 'Task Name': 'File', 'Company Code': 'ACME',
                      'Capacity (minutes)': '45', 'Req Skills': 'Filing', 'Skill Rank': '2'}
        ))

        assert detail.imported == 1
        task = session.query(Task).filter_by(task_code='T1').one()
        assert task.task_capacity_minutes == 45
        link = session.query(TaskSkill).filter_by(task_id=task.task_id).one()
        assert link.skill_name == 'Filing'
        assert link.skill_level.level_rank == 2

    def test_process_requires_known_company(self, session):
        detail = ProcessReconciler(session).reconcile(rows(
            ProcessRow, {'Process Code': 'P1', 'Process Name': 'Close', 'Company Code': 'GHOST'}
        ))
        assert detail.failed == 1
        assert session.query(Process).count() == 0


class TestJunctionReconcilers:
    """Test Task-Process and Job-Task links."""

    @pytest.fixture
    def linked_store(self, session, acme):
        ops = session.query(Function).filter_by(function_code='OPS').one()
        session.add_all([
            Task(task_code='T1', task_name='File', task_company_id=acme.company_id),
            Process(process_code='P1', process_name='Close', company_id=acme.company_id),
            Job(job_code='J1', name='Clerk', company_id=acme.company_id, function_id=ops.function_id),
        ])
        session.flush()

    def test_task_process_link_with_order(self, session, linked_store):
        detail = TaskProcessReconciler(session).reconcile(rows(
            TaskProcessRow, {'TaskCode': 'T1', 'ProcessCode': 'P1', 'Order': '3'}
        ))

        assert detail.imported == 1
        assert session.query(ProcessTask).one().order == 3

    def test_existing_link_is_skipped(self, session, linked_store):
        reconciler = TaskProcessReconciler(session)
        reconciler.reconcile(rows(TaskProcessRow, {'TaskCode': 'T1', 'ProcessCode': 'P1'}))
        detail = reconciler.reconcile(rows(TaskProcessRow, {'TaskCode': 'T1', 'ProcessCode': 'P1', 'Order': '9'}))

        assert detail.skipped == 1
        assert session.query(ProcessTask).one().order == 0

    def test_unknown_side_is_skipped_not_failed(self, session, linked_store):
        detail = TaskProcessReconciler(session).reconcile(rows(
            TaskProcessRow, {'TaskCode': 'T404', 'ProcessCode': 'P1'}
        ))
        assert (detail.imported, detail.skipped, detail.failed) == (0, 1, 0)

        detail = JobTaskReconciler(session).reconcile(rows(
            JobTaskRow, {'TaskCode': 'T1', 'JobCode': 'J404'}
        ))
        assert (detail.imported, detail.skipped, detail.failed) == (0, 1, 0)

    def test_invalid_order_fails_row(self, session, linked_store):
        detail = TaskProcessReconciler(session).reconcile(rows(
            TaskProcessRow, {'TaskCode': 'T1', 'ProcessCode': 'P1', 'Order': 'first'}
        ))
        assert detail.failed == 1
        assert session.query(ProcessTask).count() == 0

    def test_job_task_link(self, session, linked_store):
        detail = JobTaskReconciler(session).reconcile(rows(
            JobTaskRow, {'TaskCode': 'T1', 'JobCode': 'J1'}, {'TaskCode': 'T1', 'JobCode': 'J1'}
        ))
        assert (detail.imported, detail.skipped) == (1, 1)
        assert session.query(JobTask).count() == 1


class TestPeopleReconciler:
    """Test people import."""

    def test_person_without_job(self, session, acme):
        detail = PeopleReconciler(session).reconcile(rows(
            PeopleRow, {'First Name': 'Ada', 'Email': 'ada@acme.test', 'Company Code': 'ACME',
                        'Is Manager': 'yes'}
        ))

        assert detail.imported == 1
        person = session.query(People).filter_by(people_email='ada@acme.test').one()
        assert person.job_id is None
        assert person.is_manager is True

    def test_unknown_job_fails_row(self, session, acme):
        detail = PeopleReconciler(session).reconcile(rows(
            PeopleRow, {'First Name': 'Ada', 'Email': 'ada@acme.test', 'Company Code': 'ACME',
                        'Job Code': 'J404'}
        ))
        assert detail.failed == 1
        assert 'J404' in detail.errors[0].error

    def test_email_is_the_identity(self, session, acme):
        reconciler = PeopleReconciler(session)
        reconciler.reconcile(rows(
            PeopleRow, {'First Name': 'Ada', 'Email': 'ada@acme.test', 'Company Code': 'ACME'}
        ))
        detail = reconciler.reconcile(rows(
            PeopleRow, {'First Name': 'Someone Else', 'Email': 'ada@acme.test', 'Company Code': 'ACME'}
        ))

        assert detail.skipped == 1
        assert session.query(People).one().people_name == 'Ada'
