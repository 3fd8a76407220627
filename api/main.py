"""
FastAPI application for the organization workbook service.

Wires the import, export and progress routers onto one app, sets up
logging and CORS, and exposes health endpoints for the store, Redis and
the Celery workers that run background imports.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Tuple

import redis
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.config import settings
from api.dependencies import engine, SessionLocal
from api.routers import export_router, import_router, websocket
from api.schemas.common import ErrorResponse, HealthCheckResponse
from backend.models.schema import Base
from services.sheet_schema import SHEET_ORDER, REQUIRED_SHEETS

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables and the upload directory on startup."""
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1]}")  # Hide credentials

    # Alembic remains the source of truth; this only covers fresh databases
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Organization store tables verified")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")

    os.makedirs(settings.TEMP_UPLOAD_DIR, exist_ok=True)
    logger.info(f"Uploads staged in {settings.TEMP_UPLOAD_DIR}")

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS
)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail={"message": str(exc)} if settings.DEBUG else None,
            path=str(request.url)
        ).model_dump(mode='json')
    )


app.include_router(import_router.router, prefix=settings.API_PREFIX)
app.include_router(export_router.router, prefix=settings.API_PREFIX)
app.include_router(websocket.router)  # WebSocket doesn't use /api prefix


@app.get('/', include_in_schema=False)
async def root():
    """Service index: where the docs live and what a workbook must contain."""
    return {
        'message': f'Welcome to {settings.API_TITLE}',
        'version': settings.API_VERSION,
        'docs': '/docs',
        'sheets': SHEET_ORDER,
        'required_sheets': REQUIRED_SHEETS,
    }


# Health checks: each returns (state, healthy)

def check_database() -> Tuple[str, bool]:
    try:
        with SessionLocal() as session:
            session.execute(text('SELECT 1'))
        return 'connected', True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return 'disconnected', False


def check_redis() -> Tuple[str, bool]:
    try:
        redis.Redis.from_url(settings.REDIS_URL).ping()
        return 'connected', True
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return 'disconnected', False


def check_workers() -> Tuple[str, bool]:
    from tasks.celery_app import celery_app

    try:
        active_workers = celery_app.control.inspect(timeout=1.0).active()
    except (BrokerError, OSError) as e:
        logger.error(f"Celery health check failed: {e}")
        return 'unknown', False

    if not active_workers:
        return 'no workers', False
    return f'active ({len(active_workers)} workers)', True


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
def health_check():
    """
    Health check endpoint.

    The store is essential (unhealthy without it); Redis and Celery only
    serve background imports (degraded without them).

    **Example:**
    ```bash
    curl http://localhost:8000/health
    ```
    """
    database, database_ok = check_database()
    redis_state, redis_ok = check_redis()
    celery_state, celery_ok = check_workers()

    if not database_ok:
        overall = 'unhealthy'
    elif not (redis_ok and celery_ok):
        overall = 'degraded'
    else:
        overall = 'healthy'

    return HealthCheckResponse(
        status=overall,
        timestamp=datetime.utcnow(),
        version=settings.API_VERSION,
        database=database,
        redis=redis_state,
        celery=celery_state
    )


@app.get('/api/ping', tags=['health'])
async def ping():
    """Simple ping endpoint for load balancers."""
    return {'ping': 'pong'}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} - {response.status_code}")
    return response


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(
        'api.main:app',
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
