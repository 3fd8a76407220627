"""
Import router - Workbook imports, structural validation and job tracking.

This module provides endpoints for importing organization workbooks either
synchronously or as background jobs, validating a workbook without
touching the store, and checking the status of import jobs.
"""

import os
import logging
import tempfile
import shutil
import json
import uuid
from pathlib import Path
from datetime import datetime
from typing import Optional

import redis
from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, status, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_db, get_current_user, verify_file_extension, verify_file_size
from api.schemas.import_schema import ImportStartResponse, WorkbookValidationResponse
from api.schemas.job_schema import JobStatusResponse, JobProgressResponse, JobListResponse, JobListItem
from backend.models.job import JobRun, JobType, JobStatus
from services.exceptions import WorkbookError, WorkbookStructureError
from services.import_service import WorkbookImportService
from services.import_summary import ImportResult
from services.sheet_schema import count_rows, validate_workbook
from services.workbook_reader import WorkbookReader
from tasks.import_tasks import import_workbook_file

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/import', tags=['import'])

# Redis client for progress tracking
redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


def read_upload(file: UploadFile) -> bytes:
    """Check extension and size of an upload and return its content."""
    verify_file_extension(file.filename)
    data = file.file.read()
    verify_file_size(len(data))
    return data


def workbook_error_detail(error: WorkbookError) -> dict:
    if isinstance(error, WorkbookStructureError):
        return error.to_dict()
    return {'message': str(error)}


@router.post('/excel', response_model=ImportResult)
def import_excel(
    file: UploadFile = File(..., description="Workbook to import (.xlsx or .xlsm)"),
    dry_run: bool = Form(False, description="Compute the report without saving anything"),
    default_company_code: Optional[str] = Form(None, description="Company code for rows that leave it blank"),
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user)
):
    """
    Import an organization workbook synchronously.

    Sheets are reconciled in dependency order inside one transaction.
    Existing records (matched by code or email) are skipped, never
    overwritten; rows that cannot be imported are reported per sheet.

    **Returns:**
    - 200 with the import report (also for dry runs)
    - 400 if the file is unreadable or sheets/columns are missing
    - 413 if the file is too large
    - 500 with `success: false` if the database rejected the import
    """
    logger.info(f"Import request from {current_user}: {file.filename} (dry_run={dry_run})")

    data = read_upload(file)
    service = WorkbookImportService(
        db_session=db,
        transaction_timeout=settings.IMPORT_TRANSACTION_TIMEOUT_SECONDS,
        default_company_code=default_company_code
    )

    try:
        result = service.import_bytes(data, dry_run=dry_run)
    except WorkbookError as e:
        logger.warning(f"Rejected workbook {file.filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=workbook_error_detail(e)
        )

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.to_response()
        )

    return result


@router.post('/validate', response_model=WorkbookValidationResponse)
def validate_excel(
    file: UploadFile = File(..., description="Workbook to check (.xlsx or .xlsm)")
):
    """
    Check a workbook's sheets and headers without importing it.

    **Returns:**
    - Missing required sheets, missing/unexpected columns per sheet
    - All sheet names found and the data row count of each recognized sheet
    """
    data = read_upload(file)

    try:
        reader = WorkbookReader(data)
    except WorkbookError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=workbook_error_detail(e)
        )

    validation = validate_workbook(reader)
    row_counts = count_rows(reader)

    logger.info(f"Validated {file.filename}: valid={validation.valid}")

    return WorkbookValidationResponse(
        valid=validation.valid,
        missing_sheets=validation.missing_sheets,
        missing_columns=validation.missing_columns,
        unexpected_columns=validation.unexpected_columns,
        found_sheets=reader.list_sheet_names(),
        row_counts=row_counts
    )


@router.post('/upload', response_model=ImportStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_excel_file(
    file: UploadFile = File(..., description="Workbook to import (.xlsx or .xlsm)"),
    dry_run: bool = Form(False, description="Compute the report without saving anything"),
    default_company_code: Optional[str] = Form(None, description="Company code for rows that leave it blank"),
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user)
):
    """
    Upload a workbook and start a background import job.

    **Workflow:**
    1. Validate file type
    2. Save upload to temporary location and check its size
    3. Create job record in database
    4. Enqueue Celery task
    5. Return job ID for status tracking

    **Progress Tracking:**
    - Poll GET /api/import/job/{job_id} for status
    - Connect to WebSocket /ws/import/{job_id} for real-time updates
    """
    logger.info(f"Upload request from {current_user}: {file.filename} (dry_run={dry_run})")

    verify_file_extension(file.filename)

    temp_file = None
    try:
        fd, temp_path = tempfile.mkstemp(
            suffix=Path(file.filename).suffix,
            dir=settings.TEMP_UPLOAD_DIR
        )
        with os.fdopen(fd, 'wb') as tmp:
            shutil.copyfileobj(file.file, tmp)
        temp_file = temp_path

        file_size = os.path.getsize(temp_path)
        verify_file_size(file_size)

        logger.info(f"File saved to {temp_path} ({file_size / 1024 / 1024:.2f} MB)")

        # Record the job before enqueueing so the worker always finds it
        job_id = str(uuid.uuid4())
        job_run = JobRun(
            job_id=job_id,
            job_type=(JobType.DRY_RUN if dry_run else JobType.IMPORT).value,
            status=JobStatus.PENDING.value,
            params={
                'filename': file.filename,
                'dry_run': dry_run,
                'default_company_code': default_company_code,
                'file_size_mb': round(file_size / 1024 / 1024, 2)
            },
            created_by=current_user
        )
        db.add(job_run)
        db.commit()

        import_workbook_file.apply_async(
            args=[temp_path, dry_run, default_company_code],
            task_id=job_id
        )

        logger.info(f"Started import task {job_id} for file: {file.filename}")

        return ImportStartResponse(
            job_id=job_id,
            message="Workbook import job started",
            status_url=f"/api/import/job/{job_id}",
            websocket_url=f"/ws/import/{job_id}"
        )

    except HTTPException:
        if temp_file and os.path.exists(temp_file):
            os.unlink(temp_file)
        raise

    except Exception as e:
        if temp_file and os.path.exists(temp_file):
            os.unlink(temp_file)

        logger.error(f"Upload failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Upload failed: {str(e)}"
        )


def latest_progress(job_run: JobRun) -> Optional[JobProgressResponse]:
    """Latest progress of a job: Redis first (real-time), then the last stored record."""
    try:
        progress_data = redis_client.get(f'job_progress:{job_run.job_id}')
        if progress_data:
            return JobProgressResponse(**json.loads(progress_data))
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Could not fetch progress from Redis for {job_run.job_id}: {e}")

    if job_run.progress:
        last = job_run.progress[-1]
        return JobProgressResponse(
            stage=last.stage,
            percent=float(last.percent),
            message=last.message or "",
            timestamp=last.timestamp
        )
    return None


@router.get('/job/{job_id}', response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    db: Session = Depends(get_db)
):
    """
    Get current status of an import job.

    **Status Values:**
    - `pending`: Job is queued, waiting for worker
    - `processing`: Job is currently running
    - `success`: Import (or dry run) finished; see `result`
    - `failed`: Workbook rejected or database failure; see `error`
    - `cancelled`: Job was cancelled
    """
    job_run = db.query(JobRun).filter_by(job_id=job_id).first()

    if not job_run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )

    return JobStatusResponse(
        job_id=job_run.job_id,
        job_type=job_run.job_type,
        status=job_run.status,
        created_at=job_run.created_at,
        started_at=job_run.started_at,
        completed_at=job_run.completed_at,
        progress=latest_progress(job_run),
        params=job_run.params,
        result=job_run.result,
        error=job_run.error,
        created_by=job_run.created_by
    )


@router.get('/jobs', response_model=JobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    job_type: Optional[str] = Query(None, description="Filter by job type ('import' or 'dry_run')"),
    status: Optional[str] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db)
):
    """
    List import jobs with pagination and filtering.

    **Example:**
    ```bash
    curl "http://localhost:8000/api/import/jobs?job_type=import&status=success&page=1"
    ```
    """
    query = db.query(JobRun)

    if job_type:
        query = query.filter_by(job_type=job_type)

    if status:
        query = query.filter_by(status=status)

    total = query.count()

    jobs = query.order_by(JobRun.created_at.desc())\
        .offset((page - 1) * page_size)\
        .limit(page_size)\
        .all()

    total_pages = (total + page_size - 1) // page_size

    return JobListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        items=[JobListItem.model_validate(job) for job in jobs]
    )


@router.delete('/job/{job_id}', status_code=status.HTTP_204_NO_CONTENT)
async def cancel_job(
    job_id: str,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user)
):
    """
    Cancel a job that is still waiting for a worker.

    An import that has started runs its transaction to the end, so only
    pending jobs can be cancelled. A worker that picks the job up anyway
    sees the cancelled status and leaves the workbook untouched.

    **Returns:**
    - 204 No Content if successfully cancelled
    - 404 if job not found
    - 400 if job already started or finished
    """
    job_run = db.query(JobRun).filter_by(job_id=job_id).first()

    if not job_run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )

    if job_run.status != JobStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot cancel job with status '{job_run.status}'"
        )

    job_run.status = JobStatus.CANCELLED.value
    job_run.completed_at = datetime.utcnow()
    job_run.error = {
        'error': 'Job cancelled by user',
        'cancelled_by': current_user,
        'cancelled_at': datetime.utcnow().isoformat()
    }

    db.commit()

    try:
        from tasks.celery_app import celery_app
        celery_app.control.revoke(job_id)
        logger.info(f"Revoked Celery task {job_id}")
    except Exception as e:
        logger.warning(f"Could not revoke Celery task {job_id}: {e}")

    logger.info(f"Job {job_id} cancelled by {current_user}")

    return None
