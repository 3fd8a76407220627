"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import ErrorResponse, HealthCheckResponse
from api.schemas.job_schema import (
    JobStatusEnum, JobTypeEnum, JobProgressResponse,
    JobStatusResponse, JobCreateResponse, JobListItem, JobListResponse
)
from api.schemas.import_schema import WorkbookValidationResponse, ImportStartResponse

__all__ = [
    # Common
    'ErrorResponse',
    'HealthCheckResponse',

    # Job
    'JobStatusEnum',
    'JobTypeEnum',
    'JobProgressResponse',
    'JobStatusResponse',
    'JobCreateResponse',
    'JobListItem',
    'JobListResponse',

    # Import
    'WorkbookValidationResponse',
    'ImportStartResponse',
]
