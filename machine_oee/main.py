"""
Machine OEE - Main FastAPI Application

This is the main entry point for the Machine OEE analysis API. It computes
Availability, Performance, Quality and OEE for a machine from its event log,
production counter and shift configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response
import structlog

from machine_oee.api.v1 import oee
from machine_oee.config import settings
from machine_oee.database import check_database_health, close_db, init_db
from machine_oee.utils.exceptions import OEEServiceException
from machine_oee.utils.metrics import application_metrics
from machine_oee.utils.timezone import utc_now

logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("Starting Machine OEE API", environment=settings.ENVIRONMENT)
    await init_db()
    logger.info("Database initialized successfully")

    yield

    # Shutdown
    logger.info("Shutting down Machine OEE API")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    OEE analysis API for industrial machines.

    This API provides:
    - Availability, Performance, Quality and OEE over a range of days
    - Time breakdown (scheduled, planned stoppage, operating, downtime)
    - Top unplanned-downtime causes
    - Per-machine OEE parameters
    """,
    version=settings.VERSION,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(OEEServiceException)
async def oee_service_exception_handler(request: Request, exc: OEEServiceException) -> JSONResponse:
    """Handle OEE service exceptions."""
    logger.error(
        "OEE service exception occurred",
        exception_type=type(exc).__name__,
        message=exc.message,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    logger.warning(
        "Validation error occurred",
        errors=str(exc.errors()),
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": [error.get("msg") for error in exc.errors()]}
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unexpected error occurred",
        exception_type=type(exc).__name__,
        message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An unexpected error occurred",
            "details": None if settings.ENVIRONMENT == "production" else str(exc)
        }
    )


# Health check endpoints
@app.get("/health", tags=["Health"])
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": utc_now().isoformat()
    }


@app.get("/health/detailed", tags=["Health"])
async def detailed_health_check() -> Dict[str, Any]:
    """Detailed health check with database connectivity."""
    database = await check_database_health()
    healthy = database.get("status") == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": utc_now().isoformat(),
        "components": {
            "database": database,
            "api": "healthy"
        }
    }


# Metrics endpoint for Prometheus
@app.get("/metrics", tags=["Monitoring"])
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    if not settings.ENABLE_METRICS:
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return Response(
        generate_latest(application_metrics.registry),
        media_type=CONTENT_TYPE_LATEST
    )


# Include API routers
app.include_router(oee.router, prefix="/api/v1/oee", tags=["OEE Analysis"])


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    """Root endpoint with API information."""
    return {
        "message": settings.APP_NAME,
        "version": settings.VERSION,
        "docs": "/docs" if settings.ENVIRONMENT != "production" else "Documentation not available in production",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "machine_oee.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True
    )
