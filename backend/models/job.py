"""
Job tracking models for background workbook imports.

This module defines SQLAlchemy models for tracking Celery import jobs
(not to be confused with the organizational ``Job`` entity), including
their progress and the import report they produce.
"""

from enum import Enum
from sqlalchemy import (
    Column, Integer, String, TIMESTAMP, ForeignKey, Numeric, Text, JSON,
    CheckConstraint, Index, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from backend.models.schema import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test databases)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


class JobStatus(str, Enum):
    """Job execution status."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


class JobType(str, Enum):
    """Type of background job."""
    IMPORT = 'import'
    DRY_RUN = 'dry_run'


TERMINAL_STATUSES = (JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED)


class JobRun(Base):
    """
    Represents a background workbook import.

    Tracks the lifecycle of a job from upload through completion,
    storing upload parameters, the import report, and error information.
    """

    __tablename__ = 'job_runs'
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed', 'cancelled')",
            name='job_runs_status_check'
        ),
        CheckConstraint(
            "job_type IN ('import', 'dry_run')",
            name='job_runs_job_type_check'
        ),
        Index('idx_job_runs_status', 'status'),
        Index('idx_job_runs_created_at', 'created_at'),
        Index('idx_job_runs_type_status', 'job_type', 'status'),
        {'comment': 'Tracks background workbook import jobs'}
    )

    job_id = Column(
        String(255),
        primary_key=True,
        nullable=False,
        comment='Celery task UUID'
    )
    job_type = Column(
        String(50),
        nullable=False,
        comment='Type of job: import or dry_run'
    )
    status = Column(
        String(20),
        nullable=False,
        server_default='pending',
        comment='Current job status'
    )
    created_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Job creation timestamp'
    )
    started_at = Column(TIMESTAMP, nullable=True, comment='Job start timestamp')
    completed_at = Column(TIMESTAMP, nullable=True, comment='Job completion timestamp')

    params = Column(
        JSONType,
        server_default='{}',
        nullable=False,
        comment='Upload parameters: filename, dry_run, default company'
    )
    result = Column(JSONType, nullable=True, comment='Import report (summary + per-sheet details)')
    error = Column(JSONType, nullable=True, comment='Error details if job failed')

    created_by = Column(
        String(255),
        nullable=True,
        comment='User or API key that created the job'
    )

    progress = relationship(
        'JobProgress',
        back_populates='job',
        cascade='all, delete-orphan',
        order_by='JobProgress.timestamp'
    )

    def __repr__(self):
        return f"<JobRun(job_id='{self.job_id}', type='{self.job_type}', status='{self.status}')>"

    def is_complete(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobProgress(Base):
    """
    Progress update for a job: one row per import phase.
    """

    __tablename__ = 'job_progress'
    __table_args__ = (
        Index('idx_job_progress_job_id', 'job_id'),
        Index('idx_job_progress_timestamp', 'timestamp'),
        {'comment': 'Per-phase progress tracking for import jobs'}
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    job_id = Column(
        String(255),
        ForeignKey('job_runs.job_id', ondelete='CASCADE'),
        nullable=False,
        comment='Associated job ID'
    )
    stage = Column(
        String(50),
        nullable=False,
        comment='Current stage (parsing, a sheet name, commit)'
    )
    percent = Column(
        Numeric(5, 2),
        nullable=False,
        comment='Progress percentage (0.00 to 100.00)'
    )
    message = Column(Text, nullable=True, comment='Human-readable progress message')
    timestamp = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False,
        comment='Progress update timestamp'
    )

    job = relationship('JobRun', back_populates='progress')

    def __repr__(self):
        return f"<JobProgress(job_id='{self.job_id}', stage='{self.stage}', percent={self.percent})>"
