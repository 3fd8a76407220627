"""
Pytest configuration and fixtures for workbook import/export tests.
"""

import os
from io import BytesIO

import openpyxl
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

from backend.models import Base
from services.sheet_schema import SHEET_COLUMNS, SHEET_ORDER

# Load environment
load_dotenv()

# Test database URL (in-memory SQLite unless a separate test database is configured)
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite://')


def _enable_sqlite_savepoints(eng):
    """Let pysqlite run real SAVEPOINTs and enforce foreign keys."""

    @event.listens_for(eng, 'connect')
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(eng, 'begin')
    def do_begin(conn):
        conn.exec_driver_sql('BEGIN')


@pytest.fixture(scope='session')
def engine():
    """Create test database engine."""
    if TEST_DATABASE_URL.startswith('sqlite'):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )
        _enable_sqlite_savepoints(eng)
    else:
        eng = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture(scope='function')
def connection(engine):
    """Connection whose outer transaction is rolled back after each test."""
    conn = engine.connect()
    transaction = conn.begin()

    yield conn

    transaction.rollback()
    conn.close()


@pytest.fixture(scope='function')
def session_factory(connection):
    """
    Build sessions joined to the test connection.

    ``commit()`` on these sessions only releases a SAVEPOINT, so services
    that commit or roll back themselves still leave nothing behind.
    """
    sessions = []

    def factory():
        sess = Session(bind=connection, join_transaction_mode='create_savepoint')
        sessions.append(sess)
        return sess

    yield factory

    # Innermost SAVEPOINT first
    for sess in reversed(sessions):
        sess.close()


@pytest.fixture(scope='function')
def session(session_factory):
    """Create a new database session for a test."""
    return session_factory()


def build_workbook(sheets=None, omit=(), headers=None, extra_sheets=None) -> bytes:
    """
    Build an .xlsx payload in memory.

    Args:
        sheets: Rows per sheet name, each row a dict keyed by column header
        omit: Contract sheets to leave out of the workbook
        headers: Header overrides per sheet name
        extra_sheets: Additional sheets (name -> list of rows as lists)
    """
    sheets = sheets or {}
    headers = headers or {}

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)

    for sheet_name in SHEET_ORDER:
        if sheet_name in omit:
            continue
        columns = headers.get(sheet_name, SHEET_COLUMNS[sheet_name])
        worksheet = workbook.create_sheet(sheet_name)
        worksheet.append(columns)
        for row in sheets.get(sheet_name, []):
            worksheet.append([row.get(column) for column in columns])

    for sheet_name, rows in (extra_sheets or {}).items():
        worksheet = workbook.create_sheet(sheet_name)
        for row in rows:
            worksheet.append(row)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def workbook_builder():
    """Provide the in-memory workbook builder."""
    return build_workbook


@pytest.fixture
def acme_sheets():
    """A small but complete organization: one company touching every sheet."""
    return {
        'Company': [
            {'Company Code': 'ACME', 'Company Name': 'Acme Corp'},
        ],
        'Function': [
            {'Function Name': 'Operations', 'Function Code': 'OPS', 'Company Code': 'ACME',
             'Background color': '#FFAA00', 'Description': 'Runs the plant'},
            {'Function Name': 'Fabrication', 'Function Code': 'FAB', 'Company Code': 'ACME',
             'Parent Function Code': 'OPS'},
        ],
        'Job': [
            {'Job Name': 'Welder', 'Job Code': 'J-WELD', 'Hourly Rate': 32.5,
             'Max Hours Per Day': 8, 'Function': 'FAB', 'Company Code': 'ACME',
             'Level Rank': 2, 'Skills': 'Welding,Painting', 'Skill Rank': '3,1',
             'Job Description': 'Joins metal'},
            {'Job Name': 'Supervisor', 'Job Code': 'J-SUP', 'Function': 'OPS',
             'Company Code': 'ACME', 'Skills': 'Leadership'},
        ],
        'Task': [
            {'Task Name': 'Weld frame', 'Task Code': 'T-WELD', 'Capacity (minutes)': 90,
             'Company Code': 'ACME', 'Associated Jobs': 'J-WELD', 'Req Skills': 'Welding',
             'Skill Rank': 3, 'Task Description': 'Frame assembly'},
            {'Task Name': 'Inspect frame', 'Task Code': 'T-INSPECT', 'Company Code': 'ACME'},
        ],
        'Process': [
            {'Process Name': 'Frame build', 'Process Code': 'P-FRAME', 'Company Code': 'ACME',
             'Process Overview': 'Build and check a frame'},
        ],
        'Task-Process': [
            {'TaskCode': 'T-WELD', 'ProcessCode': 'P-FRAME', 'Order': 1},
            {'TaskCode': 'T-INSPECT', 'ProcessCode': 'P-FRAME', 'Order': 2},
        ],
        'Job-Task': [
            {'TaskCode': 'T-WELD', 'JobCode': 'J-WELD'},
            {'TaskCode': 'T-INSPECT', 'JobCode': 'J-SUP'},
        ],
        'People': [
            {'First Name': 'Ada', 'Surname': 'Steel', 'Email': 'ada@acme.test',
             'Phone': '555-0100', 'Company Code': 'ACME', 'Job Code': 'J-WELD',
             'Is Manager': 'No'},
            {'First Name': 'Bo', 'Email': 'bo@acme.test', 'Company Code': 'ACME',
             'Job Code': 'J-SUP', 'Is Manager': 'Yes'},
        ],
    }


@pytest.fixture
def acme_workbook(acme_sheets):
    """The ACME organization as .xlsx bytes."""
    return build_workbook(acme_sheets)


class FakeRedis:
    """In-memory stand-in for the few redis-py calls the app makes."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    def ping(self):
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()
