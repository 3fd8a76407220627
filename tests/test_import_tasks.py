"""
Tests for the Celery import tasks.

Tasks run eagerly through ``apply``; the task module's session factory and
Redis client are swapped for the test database and an in-memory store.
"""

import json
from datetime import datetime, timedelta

import pytest

from backend.models.job import JobProgress, JobRun
from backend.models.schema import Company
from tasks import import_tasks
from tasks.import_tasks import cleanup_old_jobs, import_workbook_file


@pytest.fixture
def task_env(session_factory, fake_redis, tmp_path, monkeypatch):
    """Point the task module at the test database, fake Redis and a temp upload dir."""
    monkeypatch.setattr(import_tasks, 'get_db_session', session_factory)
    monkeypatch.setattr(import_tasks, 'redis_client', fake_redis)
    monkeypatch.setattr(import_tasks, 'TEMP_UPLOAD_DIR', str(tmp_path))
    return tmp_path


def create_job(session_factory, job_id, job_type='import', status='pending', **kwargs):
    with session_factory() as sess:
        sess.add(JobRun(job_id=job_id, job_type=job_type, status=status, params={}, **kwargs))
        sess.commit()


def load_job(session_factory, job_id):
    sess = session_factory()
    return sess.query(JobRun).filter_by(job_id=job_id).one()


class TestImportWorkbookFile:
    """Test the background import task."""

    def test_successful_import(self, task_env, session_factory, fake_redis, acme_workbook):
        upload = task_env / 'acme.xlsx'
        upload.write_bytes(acme_workbook)
        create_job(session_factory, 'job-ok')

        report = import_workbook_file.apply(args=[str(upload), False, None], task_id='job-ok').get()

        assert report['success'] is True
        assert report['summary']['imported'] == 14

        job_run = load_job(session_factory, 'job-ok')
        assert job_run.status == 'success'
        assert job_run.result['summary']['totalRecords'] == 14
        assert job_run.started_at is not None and job_run.completed_at is not None

        progress = json.loads(fake_redis.get('job_progress:job-ok'))
        assert progress['stage'] == 'complete'
        assert progress['percent'] == 100
        assert len(job_run.progress) > 0

        assert not upload.exists()
        assert session_factory().query(Company).count() == 1

    def test_dry_run_persists_nothing(self, task_env, session_factory, acme_workbook):
        upload = task_env / 'acme.xlsx'
        upload.write_bytes(acme_workbook)
        create_job(session_factory, 'job-dry', job_type='dry_run')

        report = import_workbook_file.apply(args=[str(upload), True, None], task_id='job-dry').get()

        assert report['message'] == 'Dry run completed successfully (no data saved)'
        assert load_job(session_factory, 'job-dry').status == 'success'
        assert session_factory().query(Company).count() == 0

    def test_structural_error_fails_job(self, task_env, session_factory, workbook_builder):
        upload = task_env / 'broken.xlsx'
        upload.write_bytes(workbook_builder(omit=('Process',)))
        create_job(session_factory, 'job-bad')

        report = import_workbook_file.apply(args=[str(upload), False, None], task_id='job-bad').get()

        assert report['success'] is False
        job_run = load_job(session_factory, 'job-bad')
        assert job_run.status == 'failed'
        assert job_run.error['missing_sheets'] == ['Process']
        assert not upload.exists()


class TestCancelledJobs:
    """Test that a cancellation is final."""

    def test_cancelled_job_is_not_imported(self, task_env, session_factory, acme_workbook):
        upload = task_env / 'acme.xlsx'
        upload.write_bytes(acme_workbook)
        create_job(session_factory, 'job-cancelled', status='cancelled', completed_at=datetime.utcnow())

        report = import_workbook_file.apply(args=[str(upload), False, None], task_id='job-cancelled').get()

        assert report['success'] is False
        assert report['message'] == import_tasks.CANCELLED_MESSAGE
        job_run = load_job(session_factory, 'job-cancelled')
        assert job_run.status == 'cancelled'
        assert job_run.started_at is None
        assert not upload.exists()
        assert session_factory().query(Company).count() == 0

    def test_late_cancellation_is_kept(self, task_env, session_factory, acme_workbook, monkeypatch):
        upload = task_env / 'acme.xlsx'
        upload.write_bytes(acme_workbook)
        create_job(session_factory, 'job-race')

        class CancelledDuringImport(import_tasks.WorkbookImportService):
            def import_bytes(self, data, dry_run=False):
                with session_factory() as sess:
                    job_run = sess.query(JobRun).filter_by(job_id='job-race').one()
                    job_run.status = 'cancelled'
                    sess.commit()
                return super().import_bytes(data, dry_run=dry_run)

        monkeypatch.setattr(import_tasks, 'WorkbookImportService', CancelledDuringImport)

        report = import_workbook_file.apply(args=[str(upload), False, None], task_id='job-race').get()

        # The transaction ran to completion; the cancelled status stays
        assert report['success'] is True
        job_run = load_job(session_factory, 'job-race')
        assert job_run.status == 'cancelled'
        assert job_run.result is None


class TestCleanupOldJobs:
    """Test periodic job cleanup."""

    def test_removes_only_old_finished_jobs(self, task_env, session_factory):
        old = datetime.utcnow() - timedelta(days=45)
        create_job(session_factory, 'old-done', status='success', completed_at=old)
        create_job(session_factory, 'old-running', status='processing')
        create_job(session_factory, 'recent-done', status='failed', completed_at=datetime.utcnow())

        with session_factory() as sess:
            sess.add(JobProgress(job_id='old-done', stage='complete', percent=100, message='done'))
            sess.commit()

        stats = cleanup_old_jobs.apply(args=[30]).get()

        assert stats['deleted_jobs'] == 1
        assert stats['deleted_progress'] == 1
        remaining = {job.job_id for job in session_factory().query(JobRun)}
        assert remaining == {'old-running', 'recent-done'}
