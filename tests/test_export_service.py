"""
Tests for workbook export.

Exports are read back with the import-side reader, so the tests also pin
down that an exported workbook satisfies the import column contract.
"""

import pytest

from backend.models.schema import Company, Function, Process
from services.exceptions import ExportSelectionError
from services.export_service import ExportService, TRUNCATION_MARKER, order_parents_first
from services.import_service import WorkbookImportService
from services.sheet_schema import SHEET_COLUMNS, SHEET_ORDER, parse_workbook
from services.workbook_reader import WorkbookReader


@pytest.fixture
def imported(session, acme_workbook):
    """Store holding the ACME organization."""
    result = WorkbookImportService(session).import_bytes(acme_workbook)
    assert result.summary.failed == 0
    return session


def read_back(data):
    return parse_workbook(WorkbookReader(data))


class TestCompanyExport:
    """Test exporting one company."""

    def test_sheets_and_headers(self, imported):
        data = ExportService(imported).export_company(company_code='ACME')
        reader = WorkbookReader(data)

        assert reader.list_sheet_names() == SHEET_ORDER
        for sheet_name in SHEET_ORDER:
            assert reader.get_headers(sheet_name) == SHEET_COLUMNS[sheet_name]

    def test_projected_values(self, imported):
        parsed = read_back(ExportService(imported).export_company(company_code='ACME'))

        assert [row.company_code for row in parsed['Company']] == ['ACME']

        welder = next(row for row in parsed['Job'] if row.job_code == 'J-WELD')
        assert welder.function_code == 'FAB'
        assert welder.hourly_rate == '32.5'
        assert welder.level_rank == '2'
        assert welder.skills == 'Painting,Welding'
        assert welder.skill_rank == '1,3'

        weld_task = next(row for row in parsed['Task'] if row.task_code == 'T-WELD')
        assert weld_task.associated_jobs == 'J-WELD'
        assert weld_task.capacity_minutes == '90'

        links = [(row.task_code, row.process_code, row.order) for row in parsed['Task-Process']]
        assert links == [('T-WELD', 'P-FRAME', '1'), ('T-INSPECT', 'P-FRAME', '2')]

        managers = {row.email: row.is_manager for row in parsed['People']}
        assert managers == {'ada@acme.test': 'No', 'bo@acme.test': 'Yes'}

    def test_functions_listed_parents_first(self, imported):
        parsed = read_back(ExportService(imported).export_company(company_code='ACME'))
        assert [row.function_code for row in parsed['Function']] == ['OPS', 'FAB']

    def test_select_by_id(self, imported):
        company = imported.query(Company).filter_by(company_code='ACME').one()
        scope = ExportService(imported).collect_company_scope(company_id=company.company_id)
        assert scope.name == 'ACME'
        assert len(scope.jobs) == 2

    def test_unknown_company(self, session):
        with pytest.raises(ExportSelectionError):
            ExportService(session).export_company(company_code='NOPE')

    def test_round_trip_skips_everything(self, imported):
        data = ExportService(imported).export_company(company_code='ACME')
        result = WorkbookImportService(imported).import_bytes(data)

        assert result.success is True
        assert result.summary.imported == 0
        assert result.summary.failed == 0
        assert result.summary.skipped == result.summary.total_records == 14


class TestProcessExport:
    """Test exporting a process closure."""

    def test_closure(self, imported):
        process = imported.query(Process).filter_by(process_code='P-FRAME').one()
        scope = ExportService(imported).collect_process_scope([process.process_id])

        assert scope.name == 'processes'
        assert sorted(task.task_code for task in scope.tasks) == ['T-INSPECT', 'T-WELD']
        assert sorted(job.job_code for job in scope.jobs) == ['J-SUP', 'J-WELD']
        assert sorted(function.function_code for function in scope.functions) == ['FAB', 'OPS']
        assert [company.company_code for company in scope.companies] == ['ACME']
        assert sorted(person.people_email for person in scope.people) == ['ada@acme.test', 'bo@acme.test']

    def test_unknown_processes(self, imported):
        with pytest.raises(ExportSelectionError):
            ExportService(imported).collect_process_scope([987654])


class TestProjectionDetails:
    """Test cell-level projection rules."""

    def test_long_text_is_truncated(self, session):
        service = ExportService(session, max_cell_length=10)
        assert service.truncate('x' * 25) == 'x' * 10 + TRUNCATION_MARKER
        assert service.truncate('short') == 'short'
        assert service.truncate(None) == ''

    def test_parents_first_ordering(self):
        parent = Function(function_id=1, function_code='A', parent_function_id=None)
        child = Function(function_id=2, function_code='B', parent_function_id=1)
        grandchild = Function(function_id=3, function_code='C', parent_function_id=2)
        orphan = Function(function_id=4, function_code='D', parent_function_id=99)

        ordered = order_parents_first([grandchild, child, orphan, parent])
        codes = [function.function_code for function in ordered]

        assert codes.index('A') < codes.index('B') < codes.index('C')
        assert 'D' in codes
