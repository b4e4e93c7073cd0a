"""
Shop Sales Ledger API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from domain.errors import ConflictError, NotFoundError, RepositoryError, ValidationError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Shop Sales Ledger API",
    description="REST API for auto-repair shop sales records",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for demo
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


def _error(status_code: int, error: str, detail: str, field: Optional[str] = None) -> JSONResponse:
    # Same shape as api.models.ErrorResponse
    content = {"error": error, "detail": detail, "status_code": status_code}
    if field is not None:
        content["field"] = field
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, "Invalid request", str(exc), field=exc.field)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "Not found", str(exc))


@app.exception_handler(ConflictError)
def handle_conflict(request: Request, exc: ConflictError) -> JSONResponse:
    return _error(409, "Conflict", str(exc))


@app.exception_handler(RepositoryError)
def handle_repository_error(request: Request, exc: RepositoryError) -> JSONResponse:
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return _error(502, "Storage service error", str(exc))


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "shop-sales-ledger-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Shop Sales Ledger API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import sales_records

app.include_router(sales_records.router, prefix="/api/v1", tags=["Sales Records"])
