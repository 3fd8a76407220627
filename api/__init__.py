"""
FastAPI application for the organization workbook service.

This package contains the REST API and WebSocket server for workbook
imports, exports and background job tracking.
"""

__version__ = "1.0.0"
