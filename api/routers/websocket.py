"""
WebSocket router - Real-time import progress.

Streams a background import's status changes and per-phase progress, then
a final message carrying the import report (or the failure).
"""

import json
import logging
import asyncio
from typing import Optional

import redis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, status
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_db
from backend.models.job import JobRun, JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=['websocket'])

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

POLL_INTERVAL_SECONDS = 0.5


def read_progress(job_id: str) -> Optional[dict]:
    """Latest progress snapshot the worker left in Redis, if any."""
    try:
        progress_data = redis_client.get(f'job_progress:{job_id}')
    except redis.RedisError as e:
        logger.warning(f"Error reading progress from Redis for {job_id}: {e}")
        return None
    if not progress_data:
        return None
    try:
        return json.loads(progress_data)
    except ValueError:
        logger.warning(f"Discarding malformed progress for {job_id}")
        return None


def final_message(job_run: JobRun) -> dict:
    """
    Closing message for a finished job.

    Successful jobs carry the import report; failed jobs carry the error and,
    when the store rejected the import, the unsuccessful report as well.
    """
    message = {
        'job_id': job_run.job_id,
        'status': job_run.status,
        'completed_at': job_run.completed_at.isoformat() if job_run.completed_at else None
    }
    if job_run.status == JobStatus.SUCCESS.value:
        message['result'] = job_run.result
    else:
        message['error'] = job_run.error
        message['result'] = job_run.result
    return message


@router.websocket('/ws/import/{job_id}')
async def websocket_import_progress(
    websocket: WebSocket,
    job_id: str,
    db: Session = Depends(get_db)
):
    """
    Stream progress of one background import.

    **Progress message:**
    ```json
    {
        "job_id": "abc-123-def-456",
        "status": "processing",
        "progress": {
            "stage": "importing",
            "percent": 41.9,
            "message": "Job: 40 imported, 0 skipped, 2 failed",
            "timestamp": "2025-10-15T12:30:45Z"
        }
    }
    ```

    **Final message:**
    ```json
    {
        "job_id": "abc-123-def-456",
        "status": "success",
        "completed_at": "2025-10-15T12:31:00Z",
        "result": {"success": true, "message": "Import completed successfully", "summary": {...}, "details": {...}}
    }
    ```
    """
    await websocket.accept()
    logger.info(f"Progress stream opened for job {job_id}")

    try:
        job_run = db.query(JobRun).filter_by(job_id=job_id).first()
        if not job_run:
            await websocket.send_json({'error': f'Job {job_id} not found', 'job_id': job_id})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.send_json({
            'job_id': job_id,
            'status': job_run.status,
            'message': 'Connected to job progress stream'
        })

        last_status = job_run.status
        last_progress = None

        while not job_run.is_complete():
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
            db.refresh(job_run)

            if job_run.status != last_status:
                last_status = job_run.status
                await websocket.send_json({
                    'job_id': job_id,
                    'status': job_run.status,
                    'message': f'Job status changed to {job_run.status}'
                })

            progress = read_progress(job_id)
            if progress and progress != last_progress:
                last_progress = progress
                await websocket.send_json({'job_id': job_id, 'status': job_run.status, 'progress': progress})

        await websocket.send_json(final_message(job_run))
        logger.info(f"Job {job_id} finished with status {job_run.status}")

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"Client left progress stream for job {job_id}")

    except Exception as e:
        logger.error(f"WebSocket error for job {job_id}: {e}", exc_info=True)
        try:
            await websocket.send_json({'error': str(e), 'job_id': job_id})
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug(f"Could not report error to closed WebSocket for job {job_id}")
