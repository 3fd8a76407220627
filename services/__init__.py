"""
Service layer for the organization workbook import/export engine.

This package contains framework-agnostic business logic that can be used
by CLI, API, Celery tasks, or any other interface.
"""

__version__ = "1.0.0"
