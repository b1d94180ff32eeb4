"""
FastAPI application entry point.
Sets up the API with lifespan events for storage initialization.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from tododiary.config import settings
from tododiary.api.router import api_router
from tododiary.middleware.metrics_middleware import MetricsMiddleware
from tododiary.storage.client import get_storage_registry
from tododiary.utils.errors import init_error_reporting
from tododiary.utils.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: logging, error reporting, storage backend resolution
    - Shutdown: nothing to release
    """
    configure_logging('tododiary-api', settings.log_level)
    init_error_reporting(settings.sentry_dsn, settings.environment)

    # Resolve the storage backend now: missing R2 configuration
    # raises StorageConfigurationError and aborts startup.
    get_storage_registry()

    yield


# Create FastAPI app
app = FastAPI(
    title="TODO Diary Storage API",
    description="Presigned uploads and profile image storage for the TODO/diary app",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware (browser uploads go to the object store, but the
# presign calls come from the web app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "TODO Diary Storage API",
        "version": "0.1.0",
        "environment": settings.environment
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
